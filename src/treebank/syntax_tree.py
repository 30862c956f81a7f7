"""
Syntax Tree

N-ary constituency trees parsed from Penn-Treebank-style bracket notation,
e.g. "(3 (2 good) (1 movie))".

Every non-terminal label is a digit string that doubles as the node's gold
sentiment class. Terminals carry a word. Node ids are assigned post-order
(children before parents) by an explicit pass before the tree is handed to
the model.

All traversals use explicit stacks so that very deep trees do not hit the
interpreter's recursion limit.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from .vocabulary import Vocabulary


EMPTY_PARSE = "()"

_CLOSE = object()


class ParseError(ValueError):
    """Raised for malformed bracket-notation trees."""


@dataclass(eq=False)
class SyntaxTree:
    """
    A node of a constituency tree (and, through its children, the subtree).

    Attributes:
        label: Vocabulary id of the word (terminals) or constituent label
        sentiment: Gold sentiment class (non-terminals only)
        id: Post-order node id, -1 until assign_node_ids() runs
        children: Ordered child subtrees (empty for terminals)
    """
    label: int
    sentiment: Optional[int] = None
    id: int = -1
    children: List['SyntaxTree'] = field(default_factory=list)

    @classmethod
    def empty(cls) -> 'SyntaxTree':
        """Placeholder produced for a failed parse ("()")."""
        return cls(label=-1)

    @property
    def is_empty(self) -> bool:
        return self.label < 0 and not self.children

    @property
    def is_terminal(self) -> bool:
        return len(self.children) == 0

    @property
    def num_children(self) -> int:
        return len(self.children)

    def get_child(self, i: int) -> 'SyntaxTree':
        if i < 0 or i >= len(self.children):
            raise IndexError(f"Child index {i} out of range ({len(self.children)} children)")
        return self.children[i]

    def iter_preorder(self) -> Iterator['SyntaxTree']:
        """Yield nodes parent-first, children left to right."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_postorder(self) -> Iterator['SyntaxTree']:
        """Yield nodes children-first, left to right (node id order)."""
        stack: List[Tuple[SyntaxTree, int]] = [(self, 0)]
        while stack:
            node, i = stack[-1]
            if i < len(node.children):
                stack[-1] = (node, i + 1)
                stack.append((node.children[i], 0))
            else:
                stack.pop()
                yield node

    def num_nodes(self) -> int:
        """Size of the subtree rooted here (including this node)."""
        return sum(1 for _ in self.iter_preorder())

    def num_internal_nodes(self) -> int:
        """Number of non-terminal nodes, i.e. the nodes that get classified."""
        return sum(1 for node in self.iter_preorder() if not node.is_terminal)

    def max_branch_count(self) -> int:
        return max(node.num_children for node in self.iter_preorder())

    def _depths(self) -> Tuple[int, int]:
        depths: Dict[int, Tuple[int, int]] = {}
        for node in self.iter_postorder():
            if node.is_terminal:
                depths[id(node)] = (0, 0)
            else:
                child_depths = [depths.pop(id(child)) for child in node.children]
                depths[id(node)] = (min(d[0] for d in child_depths) + 1,
                                    max(d[1] for d in child_depths) + 1)
        return depths[id(self)]

    def min_depth(self) -> int:
        """Length of the shortest root-to-terminal path."""
        return self._depths()[0]

    def max_depth(self) -> int:
        """Length of the longest root-to-terminal path."""
        return self._depths()[1]

    def get_terminals(self) -> List[int]:
        """Word ids of the terminals, in left-to-right reading order."""
        return [node.label for node in self.iter_preorder() if node.is_terminal]

    def get_internal_nodes(self) -> List['SyntaxTree']:
        """Non-terminal nodes in post-order (node id order)."""
        return [node for node in self.iter_postorder() if not node.is_terminal]

    def assign_node_ids(self, start: int = 0) -> int:
        """
        Number the nodes post-order, left to right.

        Every child ends up with a smaller id than its parent and the ids of
        the subtree are contiguous from `start`.

        Returns:
            The next free id
        """
        for node in self.iter_postorder():
            node.id = start
            start += 1
        return start

    def to_string(self, vocab: Vocabulary) -> str:
        """Render back to bracket notation."""
        if self.is_empty:
            return EMPTY_PARSE

        parts: List[str] = []
        stack: list = [self]
        while stack:
            item = stack.pop()
            if item is _CLOSE:
                parts.append(")")
                continue

            if item.is_terminal:
                piece = vocab.lookup(item.label)
            else:
                piece = "(" + vocab.lookup(item.label)
                stack.append(_CLOSE)
                stack.extend(reversed(item.children))
            parts.append(" " + piece if parts else piece)

        return "".join(parts)

    def to_nltk(self, vocab: Vocabulary):
        """Convert to an nltk.Tree (used for pretty printing)."""
        from nltk.tree import Tree

        if self.is_empty:
            return Tree("", [])

        converted: Dict[int, object] = {}
        for node in self.iter_postorder():
            if node.is_terminal:
                converted[id(node)] = vocab.lookup(node.label)
            else:
                children = [converted.pop(id(child)) for child in node.children]
                converted[id(node)] = Tree(vocab.lookup(node.label), children)
        return converted[id(self)]

    def __repr__(self) -> str:
        if self.is_empty:
            return "SyntaxTree(empty)"
        if self.is_terminal:
            return f"SyntaxTree[{self.id}](label={self.label})"
        return (f"SyntaxTree[{self.id}](label={self.label}, sentiment={self.sentiment}, "
                f"children={self.num_children})")


def _split_children(text: str, start: int) -> List[str]:
    """Split the body of "(LABEL c1 c2 ...)" into child substrings."""
    child_strings = []
    open_parens = 0
    end = len(text) - 1  # index of the closing paren

    for i in range(start, end):
        c = text[i]
        if c == '(':
            open_parens += 1
        elif c == ')':
            open_parens -= 1
            if open_parens < 0:
                raise ParseError(f"Unbalanced ')' at position {i} in {text!r}")
            if open_parens == 0:
                child_strings.append(text[start:i + 1])
                start = i + 1
        elif c == ' ' and open_parens == 0:
            if i > start:
                child_strings.append(text[start:i])
            start = i + 1

    if open_parens != 0:
        raise ParseError(f"Unbalanced '(' in {text!r}")
    if end > start:
        child_strings.append(text[start:end])

    return child_strings


def _parse_node(text: str, vocab: Vocabulary) -> Tuple[SyntaxTree, List[str]]:
    """Parse one node; returns it with the unparsed strings of its children."""
    if not text.startswith('('):
        if not text:
            raise ParseError("Empty terminal token")
        for bad in ('(', ')', ' '):
            if bad in text:
                raise ParseError(f"Terminal {text!r} contains {bad!r}")
        return SyntaxTree(label=vocab.convert(text)), []

    if not text.endswith(')'):
        raise ParseError(f"Missing closing paren in {text!r}")
    first_space = text.find(' ')
    if first_space < 0:
        raise ParseError(f"Node without children: {text!r}")

    label_string = text[1:first_space]
    if not label_string or not all('0' <= c <= '9' for c in label_string):
        raise ParseError(f"Non-numeric sentiment label {label_string!r} in {text!r}")

    child_strings = _split_children(text, first_space + 1)
    if not child_strings:
        raise ParseError(f"Node without children: {text!r}")

    node = SyntaxTree(label=vocab.convert(label_string), sentiment=int(label_string))
    return node, child_strings


def check_sentiment_range(tree: SyntaxTree, num_classes: int):
    """
    Make sure every gold label of a tree is a valid class index.

    Raises:
        ParseError: If a non-terminal label is not in [0, num_classes)
    """
    for node in tree.iter_preorder():
        if node.sentiment is not None and not 0 <= node.sentiment < num_classes:
            raise ParseError(f"Sentiment label {node.sentiment} out of range "
                             f"(expected 0-{num_classes - 1})")


def parse_tree(text: str, vocab: Vocabulary) -> SyntaxTree:
    """
    Parse a bracket-notation tree.

    Words and labels are converted to ids with `vocab` (growing it unless it
    is frozen). Node ids are NOT assigned; call assign_node_ids() before
    handing the tree to the model.

    Args:
        text: Tree in bracket notation, or "()" for a failed parse
        vocab: Vocabulary for words and labels

    Returns:
        Parsed tree (SyntaxTree.empty() for "()")

    Raises:
        ParseError: If the text is not a well-formed sentiment tree
    """
    text = text.strip()
    if text == EMPTY_PARSE:
        return SyntaxTree.empty()

    root, child_strings = _parse_node(text, vocab)
    pending = [(root, child_strings)]
    while pending:
        node, child_strings = pending.pop()
        for child_string in child_strings:
            child, grandchild_strings = _parse_node(child_string, vocab)
            node.children.append(child)
            if grandchild_strings:
                pending.append((child, grandchild_strings))

    return root
