"""
Tree Composer

Child-Sum Tree-LSTM that produces one annotation vector per tree node,
bottom-up, for trees of any arity.

Based on "Improved Semantic Representations From Tree-Structured Long
Short-Term Memory Networks" (Tai et al., 2015).

Nodes are visited with an explicit stack instead of recursion: sentence
trees can be deeper than the interpreter's recursion limit.
"""

import torch
import torch.nn as nn
from typing import List, Tuple

from .config import ModelConfig
from ..treebank.syntax_tree import SyntaxTree


State = Tuple[torch.Tensor, torch.Tensor]


class ChildSumTreeLSTMCell(nn.Module):
    """
    Child-Sum Tree-LSTM cell for one tree node.

    Input, output and update gates see the sum of all children's hidden
    states; each child gets its own forget gate.
    """

    def __init__(self, input_dim: int, hidden_dim: int):
        """
        Args:
            input_dim: Dimension of the node input
            hidden_dim: Dimension of hidden and cell states
        """
        super(ChildSumTreeLSTMCell, self).__init__()

        self.input_dim = input_dim
        self.hidden_dim = hidden_dim

        # Input gate
        self.W_i = nn.Linear(input_dim, hidden_dim)
        self.U_i = nn.Linear(hidden_dim, hidden_dim, bias=False)

        # Forget gates (one per child, shared weights)
        self.W_f = nn.Linear(input_dim, hidden_dim)
        self.U_f = nn.Linear(hidden_dim, hidden_dim, bias=False)

        # Output gate
        self.W_o = nn.Linear(input_dim, hidden_dim)
        self.U_o = nn.Linear(hidden_dim, hidden_dim, bias=False)

        # Cell update
        self.W_u = nn.Linear(input_dim, hidden_dim)
        self.U_u = nn.Linear(hidden_dim, hidden_dim, bias=False)

    def forward(self, x: torch.Tensor,
                child_h: List[torch.Tensor],
                child_c: List[torch.Tensor]) -> State:
        """
        Forward pass for one node.

        Args:
            x: Node input (input_dim,)
            child_h: Hidden states of the children, left to right
            child_c: Cell states of the children, left to right

        Returns:
            h: Hidden state (hidden_dim,)
            c: Cell state (hidden_dim,)
        """
        if child_h:
            h_children = torch.stack(child_h)  # (num_children, hidden_dim)
            c_children = torch.stack(child_c)
            h_sum = h_children.sum(dim=0)
        else:
            h_sum = x.new_zeros(self.hidden_dim)

        i = torch.sigmoid(self.W_i(x) + self.U_i(h_sum))
        o = torch.sigmoid(self.W_o(x) + self.U_o(h_sum))
        u = torch.tanh(self.W_u(x) + self.U_u(h_sum))

        c = i * u
        if child_h:
            f = torch.sigmoid(self.W_f(x).unsqueeze(0) + self.U_f(h_children))
            c = c + (f * c_children).sum(dim=0)

        h = o * torch.tanh(c)

        return h, c


class TreeComposer(nn.Module):
    """
    Stacked Child-Sum Tree-LSTM over a whole tree.

    Leaves consume the leaf vectors in reading order; internal nodes consume
    the constant `zero_input` vector and their children's states.
    """

    def __init__(self, config: ModelConfig):
        super(TreeComposer, self).__init__()

        dim = config.node_embedding_dim
        self.node_embedding_dim = dim
        # Layer 0 reads the node input, layer l > 0 reads layer l-1's output
        self.cells = nn.ModuleList([ChildSumTreeLSTMCell(dim, dim)
                                    for _ in range(config.lstm_layer_count)])

        # Input of every internal node
        self.register_buffer('zero_input', torch.zeros(dim))

    def _compose_node(self, x: torch.Tensor, child_states: List[List[State]]) -> List[State]:
        layer_states = []
        for layer, cell in enumerate(self.cells):
            h, c = cell(x,
                        [states[layer][0] for states in child_states],
                        [states[layer][1] for states in child_states])
            layer_states.append((h, c))
            x = h
        return layer_states

    def forward(self, tree: SyntaxTree, leaf_vectors: torch.Tensor) -> List[torch.Tensor]:
        """
        Compute annotations for every node of a tree.

        Node ids must have been assigned (tree.assign_node_ids()).

        Args:
            tree: Root of the tree
            leaf_vectors: One vector per terminal, in reading order
                (num_terminals, node_embedding_dim)

        Returns:
            Annotations indexed by node id (num_nodes entries)

        Raises:
            ValueError: If node ids are missing or not post-order, or the
                number of leaf vectors does not match the terminals
        """
        states: List[List[State]] = []
        annotations: List[torch.Tensor] = []
        stack = [[tree, 0]]
        terminal_index = 0

        while stack:
            frame = stack[-1]
            node, i = frame
            if i < node.num_children:
                frame[1] += 1
                stack.append([node.children[i], 0])
                continue

            if node.id != len(annotations):
                raise ValueError(f"Node id {node.id} reached at position {len(annotations)}; "
                                 f"call assign_node_ids() on the root first")

            child_states = []
            for child in node.children:
                if child.id < 0 or child.id >= len(annotations):
                    raise ValueError(f"Child id {child.id} used before it was computed")
                child_states.append(states[child.id])

            if node.is_terminal:
                if terminal_index >= len(leaf_vectors):
                    raise ValueError("More terminals than leaf vectors")
                x = leaf_vectors[terminal_index]
                terminal_index += 1
            else:
                x = self.zero_input

            layer_states = self._compose_node(x, child_states)
            states.append(layer_states)
            annotations.append(layer_states[-1][0])
            stack.pop()

        if terminal_index != len(leaf_vectors):
            raise ValueError(f"{len(leaf_vectors)} leaf vectors for {terminal_index} terminals")

        return annotations
