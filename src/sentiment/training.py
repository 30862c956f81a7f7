"""
Sentiment Training

Trains the Tree-LSTM sentiment model one tree at a time:

- Every epoch shuffles the training set and runs forward/backward per tree
- Gradients accumulate over `batch_size` trees, then one optimizer update
  is applied with the gradients scaled by 1/batch_size
- A partial minibatch at the end of an epoch carries over into the next
- After each epoch the dev set is evaluated; the model is checkpointed
  whenever the dev loss is lower than or equal to the best seen so far

Interruption is cooperative: a CancellationToken is polled between trees
and between epochs, so the tree in flight always completes.
"""

import math
import random
import signal
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import torch
from tqdm import tqdm

from .config import OptimizerConfig, TrainingConfig
from .model import SentimentModel
from .optimizers import build_optimizer, build_scheduler, clip_gradients
from .store import save_model
from ..treebank.syntax_tree import ParseError, SyntaxTree, check_sentiment_range
from ..treebank.vocabulary import Vocabulary


class CancellationToken:
    """Flag set from outside (e.g. a SIGINT handler) to stop training."""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def make_interrupt_handler(token: CancellationToken) -> Callable:
    """
    SIGINT handler: the first interrupt cancels `token`, a second one exits
    immediately with status 1.
    """
    def handler(signum, frame):
        if token.cancelled:
            print("\nInterrupted again, exiting", file=sys.stderr)
            sys.exit(1)
        print("\nInterrupt received, stopping after the current example "
              "(press Ctrl-C again to force)", file=sys.stderr)
        token.cancel()

    return handler


def install_interrupt_handler(token: CancellationToken):
    signal.signal(signal.SIGINT, make_interrupt_handler(token))


@dataclass
class EpochResult:
    """
    Outcome of one epoch.

    Attributes:
        epoch: 1-based epoch number
        train_perplexity: Perplexity over the trees seen this epoch
        dev_loss: Summed dev loss (None if the epoch was interrupted)
        dev_perplexity: Dev perplexity (None if the epoch was interrupted)
        new_best: Whether a checkpoint was written
        examples: Number of trees processed
    """
    epoch: int
    train_perplexity: float
    dev_loss: Optional[float] = None
    dev_perplexity: Optional[float] = None
    new_best: bool = False
    examples: int = 0


@dataclass
class TrainingHistory:
    epochs: List[EpochResult] = field(default_factory=list)
    updates: int = 0
    best_dev_loss: float = float('inf')
    interrupted: bool = False


def perplexity(loss: float, node_count: int) -> float:
    """exp(loss / node_count), inf on overflow, nan without nodes."""
    if node_count == 0:
        return float('nan')
    try:
        return math.exp(loss / node_count)
    except OverflowError:
        return float('inf')


def seed_everything(seed: int = 0) -> int:
    """
    Seed Python, NumPy and torch.

    Args:
        seed: Seed value; 0 picks one at random

    Returns:
        The seed actually used
    """
    if seed == 0:
        seed = random.SystemRandom().randint(1, 2**31 - 1)
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    return seed


def compute_loss(data: Sequence[SyntaxTree], model: SentimentModel,
                 cancel_token: Optional[CancellationToken] = None) -> Tuple[float, int]:
    """
    Total loss and classified node count over a dataset, without updates.

    Args:
        data: Trees with node ids assigned
        model: Model to evaluate
        cancel_token: Stops the evaluation early when cancelled

    Returns:
        (summed loss, number of non-terminal nodes)
    """
    model.eval()
    total_loss = 0.0
    node_count = 0

    with torch.no_grad():
        for tree in data:
            loss, count = model.loss(tree)
            total_loss += loss.item()
            node_count += count
            if cancel_token is not None and cancel_token.cancelled:
                break

    return total_loss, node_count


class Trainer:
    """
    Minibatch training loop with dev-set early stopping.

    Attributes:
        updates: Optimizer updates applied so far
        minibatch_count: Trees accumulated since the last update
        best_dev_loss: Lowest dev loss seen so far
    """

    def __init__(self, model: SentimentModel, vocab: Vocabulary,
                 training_set: List[SyntaxTree], dev_set: List[SyntaxTree],
                 optimizer_config: OptimizerConfig = None,
                 training_config: TrainingConfig = None,
                 cancel_token: Optional[CancellationToken] = None,
                 dev_loss_fn: Optional[Callable[[], Tuple[float, int]]] = None,
                 checkpoint_fn: Optional[Callable[[int, float], None]] = None,
                 rng: Optional[random.Random] = None):
        """
        Args:
            model: Model to train
            vocab: Vocabulary saved alongside the model
            training_set: Training trees (node ids assigned)
            dev_set: Dev trees used for model selection
            optimizer_config: Optimizer settings (SGD defaults if None)
            training_config: Loop settings (defaults if None)
            cancel_token: Polled between trees and epochs
            dev_loss_fn: Overrides dev evaluation; returns (loss, node_count)
            checkpoint_fn: Overrides checkpoint writing; called as (epoch, dev_loss)
            rng: Random generator for shuffling

        Raises:
            ConfigError: For invalid settings (checked before any training)
            ParseError: If a gold label is not a valid class index
        """
        self.optimizer_config = optimizer_config or OptimizerConfig()
        self.training_config = training_config or TrainingConfig()
        self.optimizer_config.validate()
        self.training_config.validate(len(training_set))

        num_classes = model.config.num_classes
        for name, trees in (('training', training_set), ('dev', dev_set)):
            for i, tree in enumerate(trees):
                try:
                    check_sentiment_range(tree, num_classes)
                except ParseError as e:
                    raise ParseError(f"{name} tree {i}: {e}") from e

        self.model = model
        self.vocab = vocab
        self.training_set = list(training_set)
        self.dev_set = dev_set
        self.cancel_token = cancel_token or CancellationToken()
        self.rng = rng or random.Random(self.training_config.random_seed)

        self.dev_loss_fn = dev_loss_fn or (lambda: compute_loss(self.dev_set, self.model,
                                                                self.cancel_token))
        self.checkpoint_fn = checkpoint_fn or self._save_checkpoint

        self.optimizer = build_optimizer(model.parameters(), self.optimizer_config)
        self.scheduler = build_scheduler(self.optimizer, self.optimizer_config)
        self.optimizer.zero_grad()

        self.updates = 0
        self.minibatch_count = 0
        self.best_dev_loss = float('inf')

    def _log(self, message: str):
        tqdm.write(message, file=sys.stderr)

    def _save_checkpoint(self, epoch: int, dev_loss: float):
        save_model(self.training_config.checkpoint_path, self.vocab, self.model,
                   epoch=epoch, dev_loss=dev_loss)

    def train_example(self, tree: SyntaxTree) -> Tuple[float, int]:
        """Forward and backward pass for one tree; gradients accumulate."""
        loss, node_count = self.model.loss(tree)
        if loss.requires_grad:
            loss.backward()
        return loss.item(), node_count

    def apply_update(self):
        """One optimizer step on the accumulated, 1/batch_size-scaled gradients."""
        scale = 1.0 / self.training_config.batch_size
        parameters = [p for p in self.model.parameters() if p.grad is not None]
        for p in parameters:
            p.grad.mul_(scale)

        clip_gradients(parameters, self.optimizer_config)
        self.optimizer.step()
        self.optimizer.zero_grad()
        self.updates += 1

    def train_epoch(self, epoch: int) -> EpochResult:
        """
        Run one pass over the training set followed by dev evaluation.

        Args:
            epoch: 0-based epoch index

        Returns:
            EpochResult for this epoch
        """
        config = self.training_config
        self.model.train()

        order = list(range(len(self.training_set)))
        self.rng.shuffle(order)

        epoch_loss, epoch_nodes = 0.0, 0
        window_loss, window_nodes = 0.0, 0
        examples = 0

        pbar = tqdm(order, desc=f"Epoch {epoch + 1}", file=sys.stderr,
                    disable=not config.progress, leave=False)
        for i, index in enumerate(pbar):
            loss, node_count = self.train_example(self.training_set[index])
            examples += 1
            epoch_loss += loss
            epoch_nodes += node_count
            window_loss += loss
            window_nodes += node_count

            if i % config.report_frequency == config.report_frequency - 1:
                fractional_epoch = epoch + (i + 1) / len(self.training_set)
                self._log(f"--{fractional_epoch:g}     perp={perplexity(window_loss, window_nodes):g}")
                window_loss, window_nodes = 0.0, 0

            self.minibatch_count += 1
            if self.minibatch_count == config.batch_size:
                self.apply_update()
                self.minibatch_count = 0

            if self.cancel_token.cancelled:
                break
        pbar.close()

        result = EpochResult(epoch=epoch + 1,
                             train_perplexity=perplexity(epoch_loss, epoch_nodes),
                             examples=examples)
        self._log(f"##{epoch + 1}     perp={result.train_perplexity:g}")

        if self.scheduler is not None:
            self.scheduler.step()

        if self.cancel_token.cancelled:
            return result

        dev_loss, dev_nodes = self.dev_loss_fn()
        # A dev pass cut short by cancellation only covers part of the dev set
        if self.cancel_token.cancelled:
            self._log(f"**{epoch + 1} dev evaluation interrupted")
            return result

        result.dev_loss = dev_loss
        result.dev_perplexity = perplexity(dev_loss, dev_nodes)
        # Ties count as an improvement
        result.new_best = dev_loss <= self.best_dev_loss
        self._log(f"**{epoch + 1} dev perp: {result.dev_perplexity:g}"
                  f"{' (New best!)' if result.new_best else ''}")
        if result.new_best:
            self.checkpoint_fn(epoch + 1, dev_loss)
            self.best_dev_loss = dev_loss

        return result

    def train(self) -> TrainingHistory:
        """
        Train until num_iterations epochs have run or the token is cancelled.

        Returns:
            TrainingHistory with one EpochResult per (possibly partial) epoch
        """
        history = TrainingHistory()
        num_iterations = self.training_config.num_iterations

        epoch = 0
        while num_iterations is None or epoch < num_iterations:
            if self.cancel_token.cancelled:
                break
            history.epochs.append(self.train_epoch(epoch))
            epoch += 1

        history.updates = self.updates
        history.best_dev_loss = self.best_dev_loss
        history.interrupted = self.cancel_token.cancelled
        return history
