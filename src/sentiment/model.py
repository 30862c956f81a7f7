"""
Sentiment Model

Tree-LSTM sentiment classifier:

    terminals -> LeafEncoder -> TreeComposer (every node, bottom-up)
              -> ClassifierHead (every non-terminal node)

Leaves are never classified. The training loss of a tree is the summed
negative log-likelihood of the gold class over its non-terminal nodes.
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F

from .config import ModelConfig
from .leaf_encoder import LeafEncoder
from .composer import TreeComposer
from .classifier import ClassifierHead
from ..treebank.syntax_tree import SyntaxTree


@dataclass
class NodePrediction:
    """
    Prediction for one non-terminal node.

    Attributes:
        node: The classified node
        probabilities: Softmax distribution over classes
        predicted: Most probable class (lowest index on ties)
    """
    node: SyntaxTree
    probabilities: np.ndarray
    predicted: int


class SentimentModel(nn.Module):
    """
    Leaf encoder, tree composer and classifier head over one vocabulary.

    Attributes:
        vocab_size: Rows of the embedding table
        config: Model hyperparameters
    """

    def __init__(self, vocab_size: int, config: ModelConfig = None):
        """
        Args:
            vocab_size: Size of the vocabulary (words and labels)
            config: Model hyperparameters (defaults if None)
        """
        super(SentimentModel, self).__init__()

        if config is None:
            config = ModelConfig()
        config.validate()

        self.vocab_size = vocab_size
        self.config = config

        self.leaf_encoder = LeafEncoder(vocab_size, config)
        self.composer = TreeComposer(config)
        self.classifier = ClassifierHead(config)

    def build_annotations(self, tree: SyntaxTree) -> List[torch.Tensor]:
        """One annotation per node of the tree, indexed by node id."""
        if tree.is_empty:
            raise ValueError("Cannot encode an empty parse")
        leaf_vectors = self.leaf_encoder(tree.get_terminals())
        return self.composer(tree, leaf_vectors)

    def forward(self, tree: SyntaxTree) -> Tuple[List[SyntaxTree], torch.Tensor]:
        """
        Score every non-terminal node.

        Args:
            tree: Tree with node ids assigned

        Returns:
            nodes: Non-terminal nodes in post-order
            scores: Unnormalized scores (len(nodes), num_classes)
        """
        annotations = self.build_annotations(tree)
        nodes = tree.get_internal_nodes()
        if not nodes:
            return nodes, annotations[0].new_zeros((0, self.config.num_classes))

        node_annotations = torch.stack([annotations[node.id] for node in nodes])
        return nodes, self.classifier(node_annotations)

    def loss(self, tree: SyntaxTree) -> Tuple[torch.Tensor, int]:
        """
        Summed negative log-likelihood of the gold classes.

        Returns:
            loss: Scalar loss tensor
            node_count: Number of classified (non-terminal) nodes
        """
        nodes, scores = self(tree)
        if not nodes:
            return scores.sum(), 0

        gold = torch.tensor([node.sentiment for node in nodes],
                            dtype=torch.long, device=scores.device)
        return F.cross_entropy(scores, gold, reduction='sum'), len(nodes)

    def predict(self, tree: SyntaxTree) -> List[NodePrediction]:
        """Class distribution and argmax for every non-terminal node."""
        with torch.no_grad():
            nodes, scores = self(tree)
            probabilities = F.softmax(scores, dim=-1).cpu().numpy()

        return [NodePrediction(node=node, probabilities=p, predicted=int(np.argmax(p)))
                for node, p in zip(nodes, probabilities)]
