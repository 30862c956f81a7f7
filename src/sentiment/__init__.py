"""
Sentiment module: Tree-LSTM sentiment classification over parse trees.

This module provides:
- Configuration dataclasses and validation
- Leaf encoder, Child-Sum Tree-LSTM composer and classifier head
- The combined SentimentModel with loss and prediction
- Checkpoint saving/loading
- Minibatch training loop with dev-set model selection
- Prediction output formatting
"""

from .config import ConfigError, ModelConfig, OptimizerConfig, TrainingConfig
from .model import NodePrediction, SentimentModel
from .store import CheckpointError, load_model, save_model
from .training import CancellationToken, Trainer, TrainingHistory, compute_loss
from .predict import format_prediction, predict_lines

__all__ = [
    'ConfigError',
    'ModelConfig',
    'OptimizerConfig',
    'TrainingConfig',
    'NodePrediction',
    'SentimentModel',
    'CheckpointError',
    'load_model',
    'save_model',
    'CancellationToken',
    'Trainer',
    'TrainingHistory',
    'compute_loss',
    'format_prediction',
    'predict_lines',
]
