"""
Treebank Corpus

Reads sentiment treebanks (one bracket-notation tree per line) and computes
structural statistics over them.
"""

import warnings
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .syntax_tree import ParseError, SyntaxTree, check_sentiment_range, parse_tree
from .vocabulary import Vocabulary


def iter_tree_lines(path: Union[str, Path]) -> Iterator[Tuple[int, str]]:
    """
    Yield (line_number, stripped_line) for every non-blank line of a file.

    Line numbers are 1-based.
    """
    with open(path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if line:
                yield line_number, line


def read_trees(path: Union[str, Path], vocab: Vocabulary,
               num_classes: Optional[int] = None) -> List[SyntaxTree]:
    """
    Load every tree of a corpus file and assign node ids.

    Failed parses ("()") are skipped with a warning. Malformed trees are
    fatal, since dropping them silently would misalign the corpus.

    Args:
        path: Corpus file, one tree per line
        vocab: Vocabulary to convert words and labels with
        num_classes: If given, gold labels must lie in [0, num_classes)

    Returns:
        List of trees with node ids assigned

    Raises:
        ParseError: If a line is not a well-formed tree or has an
            out-of-range label
        OSError: If the file cannot be read
    """
    trees = []
    for line_number, line in iter_tree_lines(path):
        try:
            tree = parse_tree(line, vocab)
            if num_classes is not None:
                check_sentiment_range(tree, num_classes)
        except ParseError as e:
            raise ParseError(f"{path}:{line_number}: {e}") from e

        if tree.is_empty:
            warnings.warn(f"{path}:{line_number}: skipping empty parse")
            continue

        tree.assign_node_ids()
        trees.append(tree)

    return trees


def corpus_statistics(trees: List[SyntaxTree]) -> Dict[str, float]:
    """
    Structural statistics of a list of trees.

    Returns:
        Dict with num_trees, num_nodes, num_internal_nodes, num_terminals,
        max_branch_count, min_depth, max_depth and mean_terminals
    """
    if not trees:
        return {
            'num_trees': 0,
            'num_nodes': 0,
            'num_internal_nodes': 0,
            'num_terminals': 0,
            'max_branch_count': 0,
            'min_depth': 0,
            'max_depth': 0,
            'mean_terminals': 0.0,
        }

    num_nodes = sum(tree.num_nodes() for tree in trees)
    num_internal = sum(tree.num_internal_nodes() for tree in trees)
    num_terminals = sum(len(tree.get_terminals()) for tree in trees)

    return {
        'num_trees': len(trees),
        'num_nodes': num_nodes,
        'num_internal_nodes': num_internal,
        'num_terminals': num_terminals,
        'max_branch_count': max(tree.max_branch_count() for tree in trees),
        'min_depth': min(tree.min_depth() for tree in trees),
        'max_depth': max(tree.max_depth() for tree in trees),
        'mean_terminals': num_terminals / len(trees),
    }
