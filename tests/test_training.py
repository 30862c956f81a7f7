"""
Tests for the training loop (minibatching, dev-set checkpointing, cancellation).
"""

import sys
sys.path.insert(0, '.')

import math
import signal

import pytest
import torch

from src.treebank import ParseError, Vocabulary, parse_tree
from src.sentiment.config import ConfigError, ModelConfig, OptimizerConfig, TrainingConfig
from src.sentiment.model import SentimentModel
from src.sentiment.store import load_model
from src.sentiment.training import (CancellationToken, Trainer, compute_loss,
                                    make_interrupt_handler, perplexity, seed_everything)


TREES = [
    "(3 (2 good) (1 movie))",
    "(1 (2 bad) (2 (0 awful) (2 plot)))",
    "(4 (4 (3 very) (4 good)) (2 .))",
    "(2 (2 the) (2 movie))",
    "(0 (1 terrible) (1 acting))",
    "(3 (2 (2 a) (3 fine)) (2 film))",
    "(1 (2 not) (3 good))",
    "(4 (4 great) (2 fun) (3 nice))",
    "(2 (2 it) (2 (2 was) (2 ok)))",
    "(0 (0 worst) (2 ever))",
]


def _dataset(texts, vocab):
    trees = []
    for text in texts:
        tree = parse_tree(text, vocab)
        tree.assign_node_ids()
        trees.append(tree)
    return trees


def _setup(batch_size=1, num_iterations=1, **training_options):
    torch.manual_seed(0)
    vocab = Vocabulary()
    training_set = _dataset(TREES, vocab)
    dev_set = _dataset(TREES[:3], vocab)
    model = SentimentModel(len(vocab), ModelConfig(word_embedding_dim=4, node_embedding_dim=4,
                                                   final_hidden_dim=4))
    training_config = TrainingConfig(num_iterations=num_iterations, batch_size=batch_size,
                                     random_seed=1, progress=False, **training_options)
    return vocab, training_set, dev_set, model, training_config


def test_checkpoint_on_dev_improvement_or_tie():
    """Test that ties in dev loss count as an improvement."""
    print("\n" + "="*60)
    print("TEST: Dev-Set Checkpoint Policy")
    print("="*60)

    vocab, training_set, dev_set, model, training_config = _setup(num_iterations=4)
    dev_losses = iter([10.0, 9.5, 9.5, 9.6])
    checkpoints = []

    trainer = Trainer(model, vocab, training_set, dev_set,
                      training_config=training_config,
                      dev_loss_fn=lambda: (next(dev_losses), 10),
                      checkpoint_fn=lambda epoch, loss: checkpoints.append((epoch, loss)))
    history = trainer.train()

    print(f"\nCheckpoints: {checkpoints}")

    assert checkpoints == [(1, 10.0), (2, 9.5), (3, 9.5)]
    assert [e.new_best for e in history.epochs] == [True, True, True, False]
    assert history.best_dev_loss == 9.5
    assert not history.interrupted

    print("\n[OK] Checkpoint policy works!")


def test_minibatch_updates_carry_over():
    """10 examples with batch size 4: 2 updates, 2 examples carried to the next epoch."""
    vocab, training_set, dev_set, model, training_config = _setup(batch_size=4, num_iterations=1)
    trainer = Trainer(model, vocab, training_set, dev_set,
                      training_config=training_config,
                      dev_loss_fn=lambda: (1.0, 1),
                      checkpoint_fn=lambda epoch, loss: None)

    history = trainer.train()

    assert history.updates == 2
    assert trainer.minibatch_count == 2

    # The carried examples complete the first minibatch of the next epoch
    trainer.train_epoch(1)
    assert trainer.updates == 5
    assert trainer.minibatch_count == 0


def test_parameters_change_only_on_update():
    vocab, training_set, dev_set, model, training_config = _setup(batch_size=4)
    trainer = Trainer(model, vocab, training_set, dev_set, training_config=training_config)
    before = model.classifier.output.weight.detach().clone()

    for tree in training_set[:3]:
        trainer.train_example(tree)
    assert torch.equal(before, model.classifier.output.weight)
    assert model.classifier.output.weight.grad is not None

    trainer.train_example(training_set[3])
    trainer.apply_update()
    assert not torch.equal(before, model.classifier.output.weight)
    assert model.classifier.output.weight.grad is None or \
        not model.classifier.output.weight.grad.any()


def test_training_writes_best_model(tmp_path):
    """A real run saves a checkpoint that loads back."""
    path = tmp_path / "best.pt"
    vocab, training_set, dev_set, model, training_config = _setup(
        batch_size=2, num_iterations=2, checkpoint_path=str(path))

    trainer = Trainer(model, vocab, training_set, dev_set,
                      optimizer_config=OptimizerConfig(name='adagrad'),
                      training_config=training_config)
    history = trainer.train()

    assert len(history.epochs) == 2
    assert history.epochs[0].new_best
    assert math.isfinite(history.epochs[0].dev_perplexity)
    assert path.exists()

    loaded_vocab, loaded_model = load_model(path)
    assert len(loaded_vocab) == len(vocab)


def test_progress_report_format(capsys):
    vocab, training_set, dev_set, model, training_config = _setup(report_frequency=5)
    trainer = Trainer(model, vocab, training_set, dev_set,
                      training_config=training_config,
                      dev_loss_fn=lambda: (4.0, 2),
                      checkpoint_fn=lambda epoch, loss: None)

    trainer.train()
    err = capsys.readouterr().err

    assert "--0.5     perp=" in err
    assert "--1     perp=" in err
    assert "##1     perp=" in err
    assert f"**1 dev perp: {math.exp(2.0):g} (New best!)" in err


def test_cancellation_mid_epoch():
    """Cancelling finishes the current example and skips the dev pass."""
    vocab, training_set, dev_set, model, training_config = _setup(num_iterations=None)
    token = CancellationToken()
    checkpoints = []
    trainer = Trainer(model, vocab, training_set, dev_set,
                      training_config=training_config,
                      cancel_token=token,
                      checkpoint_fn=lambda epoch, loss: checkpoints.append(epoch))

    seen = []
    train_example = trainer.train_example

    def counting_train_example(tree):
        seen.append(tree)
        if len(seen) == 3:
            token.cancel()
        return train_example(tree)

    trainer.train_example = counting_train_example
    history = trainer.train()

    assert len(seen) == 3
    assert history.interrupted
    assert len(history.epochs) == 1
    assert history.epochs[0].examples == 3
    assert history.epochs[0].dev_loss is None
    assert checkpoints == []


def test_cancellation_during_dev_evaluation():
    """A dev pass cut short by Ctrl-C never replaces the best checkpoint."""
    vocab, training_set, dev_set, model, training_config = _setup(num_iterations=3)
    token = CancellationToken()
    checkpoints = []
    dev_calls = []

    def dev_loss_fn():
        dev_calls.append(len(dev_calls) + 1)
        if len(dev_calls) == 2:
            # Interrupted after the first dev tree: only a partial sum
            token.cancel()
            return 0.5, 1
        return 100.0, 10

    trainer = Trainer(model, vocab, training_set, dev_set,
                      training_config=training_config,
                      cancel_token=token,
                      dev_loss_fn=dev_loss_fn,
                      checkpoint_fn=lambda epoch, loss: checkpoints.append((epoch, loss)))
    history = trainer.train()

    assert checkpoints == [(1, 100.0)]
    assert history.best_dev_loss == 100.0
    assert len(history.epochs) == 2
    assert history.epochs[1].dev_loss is None
    assert not history.epochs[1].new_best
    assert history.interrupted


def test_cancellation_inside_compute_loss(tmp_path):
    """Same policy with the built-in dev evaluation and a real checkpoint file."""
    path = tmp_path / "best.pt"
    vocab, training_set, dev_set, model, training_config = _setup(
        num_iterations=2, checkpoint_path=str(path))
    token = CancellationToken()
    trainer = Trainer(model, vocab, training_set, dev_set,
                      training_config=training_config, cancel_token=token)

    trainer.train_epoch(0)
    assert path.exists()
    saved_at = path.stat().st_mtime_ns
    best = trainer.best_dev_loss

    # Cancel while the second dev tree is being scored
    model_loss = model.loss
    scored = []

    def interrupting_loss(tree):
        if not model.training:
            scored.append(tree)
            if len(scored) == 2:
                token.cancel()
        return model_loss(tree)

    model.loss = interrupting_loss
    result = trainer.train_epoch(1)

    assert len(scored) == 2
    assert result.dev_loss is None
    assert trainer.best_dev_loss == best
    assert path.stat().st_mtime_ns == saved_at


def test_out_of_range_labels_rejected():
    """Gold labels outside the model's classes fail before training starts."""
    vocab, training_set, dev_set, model, training_config = _setup()
    bad = parse_tree("(7 (2 good) (1 movie))", vocab)
    bad.assign_node_ids()

    with pytest.raises(ParseError, match="training tree 10"):
        Trainer(model, vocab, training_set + [bad], dev_set, training_config=training_config)
    with pytest.raises(ParseError, match="dev tree 0"):
        Trainer(model, vocab, training_set, [bad], training_config=training_config)


def test_cancelled_before_start():
    vocab, training_set, dev_set, model, training_config = _setup()
    token = CancellationToken()
    token.cancel()

    history = Trainer(model, vocab, training_set, dev_set,
                      training_config=training_config, cancel_token=token).train()

    assert history.epochs == []
    assert history.updates == 0
    assert history.interrupted


def test_interrupt_handler():
    """First SIGINT cancels, the second exits with status 1."""
    token = CancellationToken()
    handler = make_interrupt_handler(token)

    handler(signal.SIGINT, None)
    assert token.cancelled

    with pytest.raises(SystemExit) as excinfo:
        handler(signal.SIGINT, None)
    assert excinfo.value.code == 1


def test_batch_size_larger_than_training_set():
    vocab, training_set, dev_set, model, training_config = _setup(batch_size=11)

    with pytest.raises(ConfigError):
        Trainer(model, vocab, training_set, dev_set, training_config=training_config)


def test_compute_loss():
    vocab, training_set, dev_set, model, _ = _setup()
    model.train()

    loss, count = compute_loss(dev_set, model)

    assert count == sum(tree.num_internal_nodes() for tree in dev_set)
    assert loss > 0
    assert not model.training


def test_perplexity():
    assert perplexity(2 * math.log(3.0), 2) == pytest.approx(3.0)
    assert math.isnan(perplexity(0.0, 0))
    assert perplexity(1e6, 1) == float('inf')


def test_seed_everything():
    assert seed_everything(7) == 7
    first = torch.rand(3)
    seed_everything(7)
    assert torch.equal(first, torch.rand(3))
    assert seed_everything(0) > 0
