"""
Sentiment Prediction

Classifies every non-terminal node of trees read one per line and writes
one output line per node:

    sentence_index ||| terminals ||| gold ||| predicted ||| p0 p1 p2 p3 p4
"""

from typing import Iterable, Optional, TextIO

from .model import NodePrediction, SentimentModel
from .training import CancellationToken
from ..treebank.syntax_tree import ParseError, parse_tree
from ..treebank.vocabulary import Vocabulary


SEPARATOR = " ||| "


def format_prediction(sentence_index: int, prediction: NodePrediction,
                      vocab: Vocabulary) -> str:
    """Render one node's prediction as an output line (no newline)."""
    node = prediction.node
    terminals = " ".join(vocab.lookup(w) for w in node.get_terminals())
    probabilities = " ".join(f"{p:g}" for p in prediction.probabilities)
    return SEPARATOR.join([str(sentence_index), terminals, str(node.sentiment),
                           str(prediction.predicted), probabilities])


def predict_lines(lines: Iterable[str], vocab: Vocabulary, model: SentimentModel,
                  out: TextIO, cancel_token: Optional[CancellationToken] = None,
                  source: str = "<stdin>") -> int:
    """
    Predict every tree in `lines` and write the results to `out`.

    Blank lines and failed parses ("()") produce no output but still count
    as a sentence, so indices stay aligned with the input.

    Args:
        lines: Trees in bracket notation, one per item
        vocab: Frozen vocabulary of the model
        model: Trained model
        out: Stream for the output lines
        cancel_token: Stops after the current sentence when cancelled
        source: Name used in parse error messages

    Returns:
        Number of sentences read

    Raises:
        ParseError: If a line is not a well-formed tree
    """
    model.eval()
    sentence_count = 0

    for sentence_index, line in enumerate(lines):
        sentence_count += 1
        line = line.strip()
        if not line:
            continue

        try:
            tree = parse_tree(line, vocab)
        except ParseError as e:
            raise ParseError(f"{source}:{sentence_index + 1}: {e}") from e

        if not tree.is_empty:
            tree.assign_node_ids()
            for prediction in model.predict(tree):
                out.write(format_prediction(sentence_index, prediction, vocab) + "\n")

        if cancel_token is not None and cancel_token.cancelled:
            break

    return sentence_count
