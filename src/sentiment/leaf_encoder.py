"""
Leaf Encoder

Maps the terminals of a tree (left to right) to one vector each.

By default every leaf is a plain embedding lookup. Optionally a forward and
a reverse LSTM run over the leaf sequence and each position gets the
concatenation of both states.
"""

import torch
import torch.nn as nn
from typing import List

from .config import ModelConfig


class LeafEncoder(nn.Module):
    """
    Word embeddings plus an optional bidirectional sequence encoder.

    Output vectors have node_embedding_dim entries in both modes.
    """

    def __init__(self, vocab_size: int, config: ModelConfig):
        """
        Args:
            vocab_size: Number of rows in the embedding table
            config: Model hyperparameters
        """
        super(LeafEncoder, self).__init__()

        self.use_bidirectional = config.use_bidirectional
        self.output_dim = config.node_embedding_dim

        self.word_embeddings = nn.Embedding(vocab_size, config.word_embedding_dim)

        if self.use_bidirectional:
            half_dim = config.node_embedding_dim // 2
            # Two independent single-direction encoders
            self.forward_lstm = nn.LSTM(config.word_embedding_dim, half_dim,
                                        num_layers=config.lstm_layer_count, batch_first=True)
            self.reverse_lstm = nn.LSTM(config.word_embedding_dim, half_dim,
                                        num_layers=config.lstm_layer_count, batch_first=True)

    def forward(self, terminals: List[int]) -> torch.Tensor:
        """
        Encode a leaf sequence.

        Args:
            terminals: Word ids in reading order

        Returns:
            Leaf vectors (num_terminals, node_embedding_dim)
        """
        word_ids = torch.tensor(terminals, dtype=torch.long,
                                device=self.word_embeddings.weight.device)
        embedded = self.word_embeddings(word_ids)

        if not self.use_bidirectional:
            return embedded

        sequence = embedded.unsqueeze(0)  # (1, n, word_dim)
        forward_states, _ = self.forward_lstm(sequence)
        reverse_states, _ = self.reverse_lstm(torch.flip(sequence, dims=[1]))
        reverse_states = torch.flip(reverse_states, dims=[1])

        return torch.cat([forward_states, reverse_states], dim=2).squeeze(0)
