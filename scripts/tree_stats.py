"""
Treebank Statistics

Prints structural statistics of a sentiment treebank (size, branching,
depth) and optionally pretty-prints the first trees.

Usage:
    python scripts/tree_stats.py train.txt [--show 3]
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse
from nltk.tree.prettyprinter import TreePrettyPrinter

from src.treebank import ParseError, Vocabulary, read_trees, corpus_statistics


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Treebank statistics')
    parser.add_argument('treebank', help='Trees, one per line')
    parser.add_argument('--show', type=int, default=0, help='Pretty-print the first N trees')
    args = parser.parse_args(argv)

    vocab = Vocabulary()
    try:
        trees = read_trees(args.treebank, vocab)
    except OSError as e:
        print(f"ERROR: Unable to read treebank: {e}", file=sys.stderr)
        return 1
    except ParseError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    stats = corpus_statistics(trees)
    print("=" * 60)
    print(f"Treebank: {args.treebank}")
    print("=" * 60)
    print(f"Trees:              {stats['num_trees']}")
    print(f"Nodes:              {stats['num_nodes']}")
    print(f"Classified nodes:   {stats['num_internal_nodes']}")
    print(f"Terminals:          {stats['num_terminals']} ({stats['mean_terminals']:.1f} per tree)")
    print(f"Max branch count:   {stats['max_branch_count']}")
    print(f"Min depth:          {stats['min_depth']}")
    print(f"Max depth:          {stats['max_depth']}")
    print(f"Vocabulary size:    {len(vocab)}")

    for tree in trees[:args.show]:
        print()
        print(TreePrettyPrinter(tree.to_nltk(vocab)).text())

    return 0


if __name__ == "__main__":
    sys.exit(main())
