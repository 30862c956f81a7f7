"""
Tests for checkpoint saving and loading.
"""

import sys
sys.path.insert(0, '.')

import pytest
import torch

from src.treebank import Vocabulary, parse_tree
from src.sentiment.config import ModelConfig
from src.sentiment.model import SentimentModel
from src.sentiment.store import (FORMAT_VERSION, CheckpointError, load_checkpoint,
                                 load_model, save_model)


def _trained_vocab():
    vocab = Vocabulary()
    parse_tree("(3 (2 good) (1 movie))", vocab)
    parse_tree("(1 (2 bad) (2 (0 awful) (2 plot)))", vocab)
    return vocab


def test_checkpoint_round_trip(tmp_path):
    """Test that vocabulary, hyperparameters and parameters survive a save/load."""
    print("\n" + "="*60)
    print("TEST: Checkpoint Round Trip")
    print("="*60)

    torch.manual_seed(3)
    vocab = _trained_vocab()
    config = ModelConfig(lstm_layer_count=2, word_embedding_dim=4, node_embedding_dim=6,
                         final_hidden_dim=5, use_bidirectional=True)
    model = SentimentModel(len(vocab), config)
    path = tmp_path / "model.pt"

    save_model(path, vocab, model, epoch=3, dev_loss=12.5)
    loaded_vocab, loaded_model = load_model(path)

    assert loaded_vocab.frozen
    assert loaded_vocab.to_list() == vocab.to_list()
    assert loaded_model.config == config
    assert loaded_model.vocab_size == len(vocab)
    assert not loaded_model.training

    original = model.state_dict()
    restored = loaded_model.state_dict()
    assert original.keys() == restored.keys()
    for name in original:
        assert torch.equal(original[name], restored[name]), name

    checkpoint = load_checkpoint(path)
    assert checkpoint['format_version'] == FORMAT_VERSION
    assert checkpoint['epoch'] == 3
    assert checkpoint['dev_loss'] == 12.5

    print(f"\nRestored {len(restored)} tensors, vocabulary size {len(loaded_vocab)}")
    print("\n[OK] Checkpoint round trip works!")


def test_loaded_model_predicts_identically(tmp_path):
    torch.manual_seed(5)
    vocab = _trained_vocab()
    model = SentimentModel(len(vocab), ModelConfig(word_embedding_dim=4, node_embedding_dim=4))
    path = tmp_path / "model.pt"
    save_model(path, vocab, model)

    loaded_vocab, loaded_model = load_model(path)
    tree = parse_tree("(3 (2 good) (1 movie))", loaded_vocab)
    tree.assign_node_ids()

    model.eval()
    expected = [p.probabilities for p in model.predict(tree)]
    actual = [p.probabilities for p in loaded_model.predict(tree)]
    for e, a in zip(expected, actual):
        assert (e == a).all()


def test_missing_checkpoint(tmp_path):
    with pytest.raises(OSError):
        load_model(tmp_path / "missing.pt")


def test_unsupported_version(tmp_path):
    vocab = _trained_vocab()
    model = SentimentModel(len(vocab), ModelConfig(word_embedding_dim=4, node_embedding_dim=4))
    path = tmp_path / "model.pt"
    save_model(path, vocab, model)

    checkpoint = torch.load(path, weights_only=True)
    checkpoint['format_version'] = FORMAT_VERSION + 1
    torch.save(checkpoint, path)

    with pytest.raises(CheckpointError, match="version"):
        load_model(path)


def test_malformed_checkpoints(tmp_path):
    """Files that are not checkpoints raise CheckpointError."""
    not_torch = tmp_path / "notes.txt"
    not_torch.write_text("(3 (2 good) (1 movie))\n")
    with pytest.raises(CheckpointError):
        load_model(not_torch)

    missing_keys = tmp_path / "partial.pt"
    torch.save({'format_version': FORMAT_VERSION, 'vocabulary': ['UNK']}, missing_keys)
    with pytest.raises(CheckpointError, match="model_state_dict"):
        load_model(missing_keys)

    not_dict = tmp_path / "list.pt"
    torch.save([1, 2, 3], not_dict)
    with pytest.raises(CheckpointError):
        load_model(not_dict)


def test_mismatched_parameters(tmp_path):
    """Parameters that do not fit the stored hyperparameters are rejected."""
    vocab = _trained_vocab()
    model = SentimentModel(len(vocab), ModelConfig(word_embedding_dim=4, node_embedding_dim=4))
    path = tmp_path / "model.pt"
    save_model(path, vocab, model)

    checkpoint = torch.load(path, weights_only=True)
    checkpoint['model_config']['final_hidden_dim'] = 7
    torch.save(checkpoint, path)

    with pytest.raises(CheckpointError):
        load_model(path)


def test_save_rejects_wrong_vocabulary(tmp_path):
    vocab = _trained_vocab()
    model = SentimentModel(len(vocab) + 1, ModelConfig(word_embedding_dim=4, node_embedding_dim=4))

    with pytest.raises(CheckpointError):
        save_model(tmp_path / "model.pt", vocab, model)
