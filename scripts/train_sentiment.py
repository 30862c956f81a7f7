"""
Tree-LSTM Sentiment Training

Trains the sentiment classifier on a treebank and keeps the model with the
best dev loss.

Usage:
    python scripts/train_sentiment.py train.txt dev.txt [-i 20] [-b 25] [--adagrad]

Ctrl-C stops after the current example (and skips the dev pass of the
interrupted epoch); a second Ctrl-C exits immediately with status 1.
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse

from src.treebank import ParseError, Vocabulary, read_trees, corpus_statistics
from src.sentiment.config import (ConfigError, ModelConfig, TrainingConfig,
                                  optimizer_config_from_flags)
from src.sentiment.device import DeviceManager
from src.sentiment.model import SentimentModel
from src.sentiment.training import (CancellationToken, Trainer, install_interrupt_handler,
                                    seed_everything)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Train a Tree-LSTM sentiment classifier')
    parser.add_argument('training_set', help='Training trees, one per line')
    parser.add_argument('dev_set', help='Dev trees, used for early stopping')
    parser.add_argument('-i', '--num-iterations', type=int, default=None,
                        help='Number of epochs to train for (default: until interrupted)')
    parser.add_argument('-b', '--batch-size', type=int, default=1, help='Size of minibatches')
    parser.add_argument('-r', '--random-seed', type=int, default=0,
                        help='Random seed. If this value is 0 a seed will be chosen randomly.')
    parser.add_argument('-o', '--output', default='sentiment_model.pt',
                        help='Where to write the best model')
    parser.add_argument('--model-config', default=None,
                        help='JSON file with model hyperparameters')
    parser.add_argument('--report-frequency', type=int, default=500,
                        help='Examples between running perplexity reports')

    # Optimizer configuration
    optimizers = parser.add_mutually_exclusive_group()
    optimizers.add_argument('--sgd', action='store_true', help='Use SGD for optimization')
    optimizers.add_argument('--adagrad', action='store_true', help='Use Adagrad for optimization')
    optimizers.add_argument('--adadelta', action='store_true', help='Use Adadelta for optimization')
    optimizers.add_argument('--rmsprop', action='store_true', help='Use RMSProp for optimization')
    optimizers.add_argument('--adam', action='store_true', help='Use Adam for optimization')
    parser.add_argument('--momentum', type=float, default=None,
                        help='Use SGD with this momentum value')
    parser.add_argument('--learning-rate', type=float, default=None,
                        help='Learning rate (SGD, Adagrad, Adadelta, and RMSProp only)')
    parser.add_argument('--alpha', type=float, default=None, help='Alpha (Adam only)')
    parser.add_argument('--beta1', type=float, default=None, help='Beta1 (Adam only)')
    parser.add_argument('--beta2', type=float, default=None, help='Beta2 (Adam only)')
    parser.add_argument('--rho', type=float, default=None,
                        help='Moving average decay parameter (RMSProp and Adadelta only)')
    parser.add_argument('--epsilon', type=float, default=None,
                        help='Epsilon value (Adagrad, Adadelta, RMSProp, and Adam only)')
    parser.add_argument('--regularization', type=float, default=0.0,
                        help='L2 regularization strength')
    parser.add_argument('--eta-decay', type=float, default=0.05,
                        help='Learning rate decay rate (SGD only)')
    parser.add_argument('--no-clipping', action='store_true', help='Disable clipping of gradients')

    parser.add_argument('--cpu', action='store_true', help='Train on CPU even if CUDA is available')
    parser.add_argument('--no-progress', action='store_true', help='Hide the progress bar')
    return parser


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        optimizer_config = optimizer_config_from_flags(
            sgd=args.sgd, adagrad=args.adagrad, adadelta=args.adadelta,
            rmsprop=args.rmsprop, adam=args.adam,
            learning_rate=args.learning_rate, momentum=args.momentum,
            alpha=args.alpha, beta1=args.beta1, beta2=args.beta2,
            rho=args.rho, epsilon=args.epsilon,
            regularization=args.regularization, eta_decay=args.eta_decay,
            clipping=not args.no_clipping)
        model_config = ModelConfig.from_json(args.model_config) if args.model_config else ModelConfig()
        model_config.validate()
        training_config = TrainingConfig(
            num_iterations=args.num_iterations,
            batch_size=args.batch_size,
            random_seed=args.random_seed,
            report_frequency=args.report_frequency,
            checkpoint_path=args.output,
            progress=not args.no_progress)
        training_config.validate()
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"ERROR: Unable to open {args.model_config}: {e}", file=sys.stderr)
        return 1

    print("[1/4] Loading treebanks...", file=sys.stderr)
    vocab = Vocabulary()
    try:
        training_set = read_trees(args.training_set, vocab, model_config.num_classes)
        dev_set = read_trees(args.dev_set, vocab, model_config.num_classes)
    except OSError as e:
        print(f"ERROR: Unable to read treebank: {e}", file=sys.stderr)
        return 1
    except ParseError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    stats = corpus_statistics(training_set)
    print(f"  Train: {len(training_set)} trees, {stats['num_nodes']} nodes "
          f"(max depth {stats['max_depth']}, max branching {stats['max_branch_count']})",
          file=sys.stderr)
    print(f"  Dev: {len(dev_set)} trees", file=sys.stderr)
    print(f"  Vocabulary size: {len(vocab)}", file=sys.stderr)

    try:
        training_config.validate(len(training_set))
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print("[2/4] Initializing model...", file=sys.stderr)
    seed = seed_everything(training_config.random_seed)
    print(f"  Random seed: {seed}", file=sys.stderr)
    device_manager = DeviceManager(prefer_cuda=not args.cpu, verbose=True)
    model = SentimentModel(len(vocab), model_config).to(device_manager.device)
    print(f"  Model parameters: {sum(p.numel() for p in model.parameters()):,}", file=sys.stderr)

    print(f"[3/4] Training ({optimizer_config.name})...", file=sys.stderr)
    cancel_token = CancellationToken()
    install_interrupt_handler(cancel_token)
    training_config.random_seed = seed
    trainer = Trainer(model, vocab, training_set, dev_set,
                      optimizer_config=optimizer_config,
                      training_config=training_config,
                      cancel_token=cancel_token)
    history = trainer.train()

    print("[4/4] Done.", file=sys.stderr)
    print(f"  Epochs: {len(history.epochs)}, updates: {history.updates}", file=sys.stderr)
    if history.best_dev_loss < float('inf'):
        print(f"  Best dev loss: {history.best_dev_loss:.4f} (saved to {args.output})",
              file=sys.stderr)
    device_stats = device_manager.get_device_stats()
    if 'memory_allocated' in device_stats:
        print(f"  {device_stats['device_name']}: {device_stats['memory_allocated']:.1f} MB allocated",
              file=sys.stderr)
    if history.interrupted:
        print("  Training interrupted", file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
