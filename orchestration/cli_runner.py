# orchestration/cli_runner.py
"""Command-line runner for the workbench."""

from __future__ import annotations

import argparse
import asyncio
from typing import Any

import structlog
from rich.console import Console

from config import settings
from core.errors import WorkbenchError
from orchestration.workbench import Workbench
from utils.logging import setup_logging

logger = structlog.get_logger(__name__)

console = Console()


async def _run(workbench: Workbench, args: argparse.Namespace) -> Any:
    if args.provider:
        workbench.writing_agent.provider = args.provider

    if args.command == "extract":
        state = await workbench.story_state()
        return state.to_json_dict()
    if args.command == "outline":
        outline = await workbench.generate_outline(args.chapter, args.requirements)
        return outline.to_json_dict()
    if args.command == "chapter":
        draft = await workbench.write_chapter(args.chapter, args.requirements)
        return {
            "chapterNumber": draft.chapter_number,
            "title": draft.title,
            "wordCount": draft.word_count,
            "content": draft.content,
        }
    if args.command == "usage":
        return {
            "dailyLimit": workbench.tracker.daily_limit,
            "models": workbench.gateway.get_models(),
            "stats": workbench.usage_stats().to_dict(),
        }
    raise ValueError(f"Unknown command: {args.command}")


async def _run_with_workbench(args: argparse.Namespace) -> Any:
    async with Workbench.from_settings(settings) as workbench:
        return await _run(workbench, args)


def run(args: argparse.Namespace) -> int:
    """Build the workbench, run the requested command and print its result."""
    setup_logging("DEBUG" if args.verbose else None)
    try:
        result = asyncio.run(_run_with_workbench(args))
    except KeyboardInterrupt:
        logger.info("Workbench shutting down due to KeyboardInterrupt...")
        return 130
    except WorkbenchError as err:
        logger.error(f"Command '{args.command}' failed: {err}")
        return 1
    console.print_json(data=result)
    return 0
