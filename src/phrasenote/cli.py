"""
Command-line interface for phrase normalization, trie patterns and distances.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from phrasenote import __version__
from phrasenote.config import load_config
from phrasenote.distance import build_edit_distance_metric
from phrasenote.exceptions import ConfigError
from phrasenote.normalizers import NORMALIZERS, normalize
from phrasenote.trie import trie_pattern

logger = logging.getLogger(__name__)


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the phrasenote CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="phrasenote",
        description="Phrase normalization and fuzzy matching tools",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log debug messages to stderr",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command")

    # normalize command
    normalize_parser = subparsers.add_parser(
        "normalize",
        help="Normalize a phrase",
    )
    normalize_parser.add_argument("phrase", help="Phrase to normalize")
    normalize_parser.add_argument(
        "--normalizer",
        default="",
        help="Registered normalizer name (default: the default normalizer)",
    )
    normalize_parser.set_defaults(func=cmd_normalize)

    # trie command
    trie_parser = subparsers.add_parser(
        "trie",
        help="Print a regular expression matching any of the words",
    )
    trie_parser.add_argument("words", nargs="*", help="Words to match")
    trie_parser.add_argument(
        "--no-boundary",
        action="store_true",
        help="Do not require letter boundaries around words",
    )
    trie_parser.add_argument(
        "--capture",
        action="store_true",
        help="Wrap the pattern in a capturing group",
    )
    trie_parser.set_defaults(func=cmd_trie)

    # distance command
    distance_parser = subparsers.add_parser(
        "distance",
        help="Weighted edit distance between two words",
    )
    distance_parser.add_argument("first", help="First word")
    distance_parser.add_argument("second", help="Second word")
    distance_parser.add_argument("--prefix", type=int, default=0)
    distance_parser.add_argument("--suffix", type=int, default=0)
    distance_parser.add_argument("--insertables", default="")
    distance_parser.add_argument(
        "--similar",
        action="append",
        default=[],
        metavar="GROUP",
        help="Characters that substitute cheaply for each other (repeatable)",
    )
    distance_parser.add_argument(
        "--config",
        type=Path,
        help="YAML configuration file defining sorters",
    )
    distance_parser.add_argument(
        "--sorter",
        help="Use the named sorter from --config",
    )
    distance_parser.set_defaults(func=cmd_distance)

    # normalizers command
    normalizers_parser = subparsers.add_parser(
        "normalizers",
        help="List registered normalizers",
    )
    normalizers_parser.set_defaults(func=cmd_normalizers)

    return parser


def cmd_normalize(args: argparse.Namespace) -> int:
    """Handle normalize command."""
    if args.normalizer not in NORMALIZERS:
        print(f"Unknown normalizer: {args.normalizer!r}", file=sys.stderr)
        return 1
    print(normalize(args.phrase, args.normalizer))
    return 0


def cmd_trie(args: argparse.Namespace) -> int:
    """Handle trie command."""
    print(trie_pattern(
        args.words, boundary=not args.no_boundary, capture=args.capture,
    ))
    return 0


def cmd_distance(args: argparse.Namespace) -> int:
    """Handle distance command."""
    if args.sorter:
        if args.config is None:
            print("--sorter requires --config", file=sys.stderr)
            return 1
        try:
            config = load_config(args.config)
        except ConfigError as e:
            print(f"[CONFIG ERROR] {e}", file=sys.stderr)
            if e.line:
                print(f"               Line: {e.line}", file=sys.stderr)
            return 1
        except FileNotFoundError as e:
            print(f"[ERROR] {e}", file=sys.stderr)
            return 1
        sorter = config.sorter_named(args.sorter)
        if sorter is None:
            print(f"Unknown sorter: {args.sorter!r}", file=sys.stderr)
            return 1
        logger.debug(f"Using sorter {sorter.name!r}")
        prefix, suffix = sorter.prefix, sorter.suffix
        insertables, similars = sorter.insertables, sorter.similars
    else:
        prefix, suffix = args.prefix, args.suffix
        insertables, similars = args.insertables, args.similar

    try:
        metric = build_edit_distance_metric(prefix, suffix, insertables, similars)
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    print(f"{metric(args.first, args.second):g}")
    return 0


def cmd_normalizers(args: argparse.Namespace) -> int:
    """Handle normalizers command."""
    for key, normalizer in NORMALIZERS.items():
        print(f"{key or '(default)':<12} {normalizer.description}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
