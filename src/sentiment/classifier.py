"""
Classifier Head

Single-hidden-layer network mapping a node annotation to sentiment scores.
"""

import torch
import torch.nn as nn

from .config import ModelConfig


class ClassifierHead(nn.Module):
    """scores = W_out · tanh(W_in · annotation + b_hidden) + b_out"""

    def __init__(self, config: ModelConfig):
        super(ClassifierHead, self).__init__()

        self.hidden = nn.Linear(config.node_embedding_dim, config.final_hidden_dim)
        self.output = nn.Linear(config.final_hidden_dim, config.num_classes)

    def forward(self, annotations: torch.Tensor) -> torch.Tensor:
        """
        Args:
            annotations: (num_nodes, node_embedding_dim) or a single vector

        Returns:
            Unnormalized scores (..., num_classes)
        """
        return self.output(torch.tanh(self.hidden(annotations)))
