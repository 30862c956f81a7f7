"""
Tree-LSTM Sentiment Prediction

Reads trees (bracket notation, one per line) from stdin and prints one line
per non-terminal node:

    sentence_index ||| terminals ||| gold ||| predicted ||| probabilities

Usage:
    python scripts/predict_sentiment.py sentiment_model.pt < test.txt
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse

from src.treebank import ParseError
from src.sentiment.device import DeviceManager
from src.sentiment.predict import predict_lines
from src.sentiment.store import CheckpointError, load_model
from src.sentiment.training import CancellationToken, install_interrupt_handler


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Predict sentiment for every constituent')
    parser.add_argument('model', help='Model file, as output by train_sentiment.py')
    parser.add_argument('--cpu', action='store_true', help='Run on CPU even if CUDA is available')
    args = parser.parse_args(argv)

    cancel_token = CancellationToken()
    install_interrupt_handler(cancel_token)

    device_manager = DeviceManager(prefer_cuda=not args.cpu, verbose=False)
    try:
        vocab, model = load_model(args.model, device=device_manager.device)
    except OSError:
        print(f"ERROR: Unable to open {args.model}", file=sys.stderr)
        return 1
    except CheckpointError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    try:
        predict_lines(sys.stdin, vocab, model, sys.stdout, cancel_token=cancel_token)
    except ParseError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
