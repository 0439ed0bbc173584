"""Command-line entry point for LexiDeck."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Sequence

from lexideck.config import load_config
from lexideck.errors import ConfigurationError
from lexideck.logging_utils import configure_logging
from lexideck.runtime import LexiDeckRuntime


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lexideck",
        description="Build an Anki deck with translations and audio from a word list.",
    )
    parser.add_argument("--config", help="Path to a YAML configuration file.")
    parser.add_argument("--log-level", help="Override the console log level (e.g. DEBUG).")
    subparsers = parser.add_subparsers(dest="command")

    seed = subparsers.add_parser("seed", help="Queue a translation job for every word in the word list.")
    seed.add_argument("--words", help="Word list to seed from (defaults to paths.words).")

    subparsers.add_parser("run", help="Translate queued words and synthesize their audio.")
    subparsers.add_parser("status", help="Print job counts per queue.")

    reorder = subparsers.add_parser("reorder", help="Interleave deck entries for spaced introduction.")
    reorder.add_argument("--input", help="Deck CSV to read (defaults to paths.deck).")
    reorder.add_argument("--output", help="Where to write the reordered deck.")
    reorder.add_argument("--sequence", help="Optional JSON file receiving the word sequence.")
    reorder.add_argument("--new-per-day", type=int, help="New words introduced per day.")
    reorder.add_argument("--per-word", type=int, help="Entries per word handed out per day.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "run"

    try:
        result = load_config(args.config, include_sources=True)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    config, sources = result.config, result.sources
    logging_config = dict(config.get("logging", {}))
    logging_config.setdefault("log_dir", config.get("paths", {}).get("logs"))
    logger = configure_logging(logging_config, level_override=args.log_level)
    logger.info("Loaded configuration from: %s", ", ".join(sources) or "<defaults>")

    runtime = LexiDeckRuntime(config, logger)
    try:
        if command == "seed":
            runtime.seed(args.words)
            return 0
        if command == "status":
            print(json.dumps(runtime.status(), indent=2))
            return 0
        if command == "reorder":
            runtime.reorder(
                args.input,
                args.output,
                sequence_path=args.sequence,
                new_items_per_group=args.new_per_day,
                entries_per_group_item=args.per_word,
            )
            return 0
        success = asyncio.run(runtime.run())
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 2
    except FileNotFoundError as exc:
        logger.error("File not found: %s", exc.filename or exc)
        return 2
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        logger.warning("Interrupted by user.")
        return 1
    except Exception as exc:
        logger.exception("Runtime terminated due to unexpected error: %s", exc)
        return 1
    return 0 if success else 2


if __name__ == "__main__":
    sys.exit(main())
