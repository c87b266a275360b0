# main.py
"""CLI entry point for the novel workbench."""

from __future__ import annotations

import argparse
import sys

from orchestration.cli_runner import run


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract story state from author documents and generate chapters."
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--provider", default=None, help="LLM provider for outline/chapter generation"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("extract", help="Print the four document extractions as JSON")
    for name, help_text in (
        ("outline", "Generate a chapter outline"),
        ("chapter", "Generate and save a full chapter"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("chapter", type=int, help="Chapter number")
        sub.add_argument(
            "--requirements", default="", help="Free-text requirements for the chapter"
        )
    subparsers.add_parser("usage", help="Show configured models and token usage")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and run the workbench."""
    args = build_parser().parse_args(argv)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
