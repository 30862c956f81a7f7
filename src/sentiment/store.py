"""
Model Store

Saves and loads the vocabulary, the model hyperparameters and the learned
parameters as one versioned checkpoint.

Loading order matters: parameter shapes are derived from the
hyperparameters and the vocabulary size, so both are restored before the
state dict.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import torch

from .config import ModelConfig
from .model import SentimentModel
from ..treebank.vocabulary import Vocabulary


FORMAT_VERSION = 1

REQUIRED_KEYS = ('format_version', 'vocabulary', 'model_config', 'model_state_dict')


class CheckpointError(ValueError):
    """Raised for malformed or unsupported checkpoints."""


def save_model(filepath: Union[str, Path], vocab: Vocabulary, model: SentimentModel,
               epoch: Optional[int] = None, dev_loss: Optional[float] = None):
    """
    Write a checkpoint.

    Args:
        filepath: Destination file
        vocab: Vocabulary the model was built with
        model: Model to save
        epoch: Epoch the model comes from (metadata)
        dev_loss: Dev loss of the model (metadata)
    """
    if len(vocab) != model.vocab_size:
        raise CheckpointError(f"Vocabulary has {len(vocab)} entries but the model "
                              f"was built for {model.vocab_size}")

    state_dict = {name: tensor.detach().cpu()
                  for name, tensor in model.state_dict().items()}

    checkpoint = {
        'format_version': FORMAT_VERSION,
        'vocabulary': vocab.to_list(),
        'model_config': model.config.to_dict(),
        'model_state_dict': state_dict,
        'epoch': epoch,
        'dev_loss': dev_loss,
    }
    torch.save(checkpoint, filepath)


def load_checkpoint(filepath: Union[str, Path]) -> Dict[str, Any]:
    """
    Read and check a raw checkpoint dict.

    Raises:
        OSError: If the file cannot be read
        CheckpointError: If the content is not a supported checkpoint
    """
    try:
        checkpoint = torch.load(filepath, map_location='cpu', weights_only=True)
    except OSError:
        raise
    except Exception as e:
        raise CheckpointError(f"Unable to read checkpoint {filepath}: {e}") from e

    if not isinstance(checkpoint, dict):
        raise CheckpointError(f"{filepath} is not a model checkpoint")

    missing = [key for key in REQUIRED_KEYS if key not in checkpoint]
    if missing:
        raise CheckpointError(f"{filepath} is missing {', '.join(missing)}")

    if checkpoint['format_version'] != FORMAT_VERSION:
        raise CheckpointError(f"Unsupported checkpoint version {checkpoint['format_version']} "
                              f"(expected {FORMAT_VERSION})")

    return checkpoint


def load_model(filepath: Union[str, Path],
               device: Optional[torch.device] = None) -> Tuple[Vocabulary, SentimentModel]:
    """
    Restore a vocabulary and model from a checkpoint.

    The vocabulary comes back frozen and the model in eval mode.

    Args:
        filepath: Checkpoint written by save_model()
        device: Device to place the model on (CPU if None)

    Returns:
        (vocab, model)
    """
    checkpoint = load_checkpoint(filepath)

    try:
        vocab = Vocabulary.from_list(list(checkpoint['vocabulary']), frozen=True)
        config = ModelConfig.from_dict(dict(checkpoint['model_config']))
    except (ValueError, TypeError) as e:
        raise CheckpointError(f"Invalid checkpoint {filepath}: {e}") from e

    model = SentimentModel(len(vocab), config)
    try:
        model.load_state_dict(checkpoint['model_state_dict'])
    except RuntimeError as e:
        raise CheckpointError(f"Parameters in {filepath} do not match the model: {e}") from e

    if device is not None:
        model = model.to(device)
    model.eval()

    return vocab, model
