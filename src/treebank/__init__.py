"""
Treebank module: constituency trees in bracket notation.

This module provides:
- Vocabulary for words and constituent labels
- SyntaxTree with its bracket-notation parser
- Corpus reading and structural statistics
"""

from .vocabulary import Vocabulary, UNK_TOKEN
from .syntax_tree import SyntaxTree, ParseError, check_sentiment_range, parse_tree
from .corpus import read_trees, corpus_statistics

__all__ = [
    'Vocabulary',
    'UNK_TOKEN',
    'SyntaxTree',
    'ParseError',
    'parse_tree',
    'check_sentiment_range',
    'read_trees',
    'corpus_statistics',
]
