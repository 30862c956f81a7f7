"""
Configuration

Model hyperparameters, optimizer settings and training-loop settings.

All configuration objects validate eagerly so that bad combinations are
reported before any data is loaded or any parameter is allocated.
"""

import json
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union


class ConfigError(ValueError):
    """Raised for unsupported or inconsistent configuration."""


@dataclass
class ModelConfig:
    """
    Model hyperparameters (stored in every checkpoint).

    Attributes:
        lstm_layer_count: Stacked layers in the tree and sequence LSTMs
        word_embedding_dim: Dimension of word embeddings
        node_embedding_dim: Dimension of node annotations
        final_hidden_dim: Hidden layer size of the classifier
        num_classes: Number of sentiment classes
        use_bidirectional: Run forward/reverse LSTMs over the leaves
    """
    lstm_layer_count: int = 1
    word_embedding_dim: int = 50
    node_embedding_dim: int = 50
    final_hidden_dim: int = 50
    num_classes: int = 5
    use_bidirectional: bool = False

    def validate(self):
        for name in ('lstm_layer_count', 'word_embedding_dim', 'node_embedding_dim',
                     'final_hidden_dim', 'num_classes'):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")

        if self.use_bidirectional:
            if self.node_embedding_dim % 2 != 0:
                raise ConfigError("node_embedding_dim must be even with the bidirectional leaf encoder")
        elif self.word_embedding_dim != self.node_embedding_dim:
            raise ConfigError("word_embedding_dim must equal node_embedding_dim "
                              "unless the bidirectional leaf encoder is enabled")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown model settings: {sorted(unknown)}")
        config = cls(**data)
        config.validate()
        return config

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> 'ModelConfig':
        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_dict(json.load(f))


# Options each optimizer accepts
OPTIMIZER_OPTIONS = {
    'sgd': {'learning_rate', 'momentum'},
    'adagrad': {'learning_rate', 'epsilon'},
    'adadelta': {'learning_rate', 'rho', 'epsilon'},
    'rmsprop': {'learning_rate', 'rho', 'epsilon'},
    'adam': {'alpha', 'beta1', 'beta2', 'epsilon'},
}

OPTIMIZER_DEFAULTS = {
    'sgd': {'learning_rate': 0.1},
    'momentum_sgd': {'learning_rate': 0.01, 'momentum': 0.9},
    'adagrad': {'learning_rate': 0.1, 'epsilon': 1e-20},
    'adadelta': {'learning_rate': 1.0, 'rho': 0.95, 'epsilon': 1e-6},
    'rmsprop': {'learning_rate': 0.1, 'rho': 0.95, 'epsilon': 1e-20},
    'adam': {'alpha': 0.001, 'beta1': 0.9, 'beta2': 0.999, 'epsilon': 1e-8},
}


@dataclass
class OptimizerConfig:
    """
    Optimizer choice and its hyperparameters.

    Unset (None) hyperparameters fall back to OPTIMIZER_DEFAULTS.
    """
    name: str = 'sgd'
    learning_rate: Optional[float] = None
    momentum: Optional[float] = None
    alpha: Optional[float] = None
    beta1: Optional[float] = None
    beta2: Optional[float] = None
    rho: Optional[float] = None
    epsilon: Optional[float] = None
    regularization: float = 0.0
    eta_decay: float = 0.05
    clipping: bool = True
    clip_threshold: float = 5.0

    def validate(self):
        if self.name not in OPTIMIZER_OPTIONS:
            raise ConfigError(f"Unknown optimizer: {self.name}")

        allowed = OPTIMIZER_OPTIONS[self.name]
        for option in ('learning_rate', 'momentum', 'alpha', 'beta1', 'beta2', 'rho', 'epsilon'):
            value = getattr(self, option)
            if value is None:
                continue
            if option not in allowed:
                raise ConfigError(f"--{option.replace('_', '-')} is not supported by {self.name}")
            if value < 0:
                raise ConfigError(f"{option} must be non-negative, got {value}")

        for option in ('beta1', 'beta2', 'rho', 'momentum'):
            value = getattr(self, option)
            if value is not None and value >= 1.0:
                raise ConfigError(f"{option} must be below 1, got {value}")

        if self.regularization < 0:
            raise ConfigError(f"regularization must be non-negative, got {self.regularization}")
        if self.eta_decay < 0:
            raise ConfigError(f"eta_decay must be non-negative, got {self.eta_decay}")
        if self.clip_threshold <= 0:
            raise ConfigError(f"clip_threshold must be positive, got {self.clip_threshold}")

    def resolved(self, option: str) -> Optional[float]:
        """Value of an option, falling back to the optimizer's default."""
        value = getattr(self, option)
        if value is not None:
            return value
        key = self.name
        if self.name == 'sgd' and self.momentum is not None:
            key = 'momentum_sgd'
        return OPTIMIZER_DEFAULTS[key].get(option)


def optimizer_config_from_flags(sgd: bool = False, adagrad: bool = False,
                                adadelta: bool = False, rmsprop: bool = False,
                                adam: bool = False, **options) -> OptimizerConfig:
    """
    Build an OptimizerConfig from boolean optimizer flags plus options.

    At most one flag may be set; with none, SGD is used.

    Raises:
        ConfigError: For conflicting flags or options the optimizer ignores
    """
    chosen = [name for name, flag in (('sgd', sgd), ('adagrad', adagrad),
                                      ('adadelta', adadelta), ('rmsprop', rmsprop),
                                      ('adam', adam)) if flag]
    if len(chosen) > 1:
        raise ConfigError(f"Only one optimizer may be chosen, got {', '.join(chosen)}")

    config = OptimizerConfig(name=chosen[0] if chosen else 'sgd', **options)
    config.validate()
    return config


@dataclass
class TrainingConfig:
    """
    Training loop settings.

    Attributes:
        num_iterations: Number of epochs (None = until interrupted)
        batch_size: Examples per optimizer update
        random_seed: Seed for shuffling and initialization (0 = random)
        report_frequency: Examples between running perplexity reports
        checkpoint_path: Where the best model is written
        progress: Show a progress bar
    """
    num_iterations: Optional[int] = None
    batch_size: int = 1
    random_seed: int = 0
    report_frequency: int = 500
    checkpoint_path: str = 'sentiment_model.pt'
    progress: bool = True

    def validate(self, training_set_size: Optional[int] = None):
        if self.num_iterations is not None and self.num_iterations < 0:
            raise ConfigError(f"num_iterations must be non-negative, got {self.num_iterations}")
        if self.batch_size < 1:
            raise ConfigError(f"batch_size must be positive, got {self.batch_size}")
        if training_set_size is not None and self.batch_size > training_set_size:
            raise ConfigError(f"batch_size ({self.batch_size}) exceeds the training set "
                              f"size ({training_set_size})")
        if self.report_frequency < 1:
            raise ConfigError(f"report_frequency must be positive, got {self.report_frequency}")
        if self.random_seed < 0:
            raise ConfigError(f"random_seed must be non-negative, got {self.random_seed}")
