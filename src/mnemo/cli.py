"""
CLI entry point.

Commands:
- init: Initialize data directory and database
- stats: Memory and skill statistics
- recall <query>: Show the most relevant memories
- skills [agent_id]: Skill report for one agent, or all profiles
- sweep: Run expiry, decay, deduplication and consolidation once

Flags:
- --debug: Enable debug logging to file
"""

import asyncio
import json
import logging
import sys

from mnemo.core.config import Settings, get_settings
from mnemo.core.logging import get_logger, setup_logging
from mnemo.engine import Engine


def main() -> int:
    """Main entry point."""
    settings = get_settings()

    debug_mode = "--debug" in sys.argv
    if debug_mode:
        sys.argv.remove("--debug")

    log_level = logging.DEBUG if debug_mode else logging.WARNING
    log_file = settings.data_dir / "mnemo.log" if debug_mode else None
    setup_logging(level=log_level, log_file=log_file)
    logger = get_logger("cli")

    if debug_mode:
        logger.debug(f"Logging to {log_file} (debug mode)")

    if len(sys.argv) < 2:
        print("Usage: mnemo [--debug] <command> [args]")
        print("Commands: init, stats, recall <query>, skills [agent_id], sweep")
        print("Flags: --debug (enable debug logging to data/mnemo.log)")
        return 1

    command = sys.argv[1]
    args = sys.argv[2:]

    if command == "init":
        return asyncio.run(_init(settings))

    if command == "stats":
        return asyncio.run(_stats(settings))

    if command == "recall":
        if not args:
            print("Usage: mnemo recall <query>")
            return 1
        return asyncio.run(_recall(settings, " ".join(args)))

    if command == "skills":
        return asyncio.run(_skills(settings, args[0] if args else None))

    if command == "sweep":
        return asyncio.run(_sweep(settings))

    print(f"Unknown command: {command}")
    return 1


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _init(settings: Settings) -> int:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    engine = Engine(settings)
    await engine.start(schedule=False)
    await engine.stop()
    get_logger("cli").info(f"Initialized data directory: {settings.data_dir}")
    print(f"Created: {settings.db_path}")
    return 0


async def _stats(settings: Settings) -> int:
    engine = Engine(settings)
    await engine.start(schedule=False)
    try:
        _print_json({
            "memory": engine.memory.stats(),
            "analytics": engine.memory.analytics(),
            "skills": engine.skills.global_stats(),
            "collections": await engine.snapshots.names(),
        })
    finally:
        await engine.stop()
    return 0


async def _recall(settings: Settings, query: str) -> int:
    engine = Engine(settings)
    await engine.start(schedule=False)
    try:
        results = await engine.memory.recall_scored(query)
        if not results:
            print("No memories found.")
        for memory, score in results:
            tags = f" [{', '.join(memory.tags)}]" if memory.tags else ""
            print(f"{score:7.2f}  ({memory.kind.value}/{memory.category}) {memory.content}{tags}")
    finally:
        await engine.stop()
    return 0


async def _skills(settings: Settings, agent_id: str | None) -> int:
    engine = Engine(settings)
    await engine.start(schedule=False)
    try:
        if agent_id is None:
            _print_json([p.to_dict() for p in engine.skills.all_profiles()])
            return 0

        report = engine.progression.report(agent_id)
        if report is None:
            print(f"No skill profile for agent: {agent_id}")
            return 1
        _print_json(report)
    finally:
        await engine.stop()
    return 0


async def _sweep(settings: Settings) -> int:
    engine = Engine(settings)
    await engine.start(schedule=False)
    try:
        _print_json(await engine.sweep())
    finally:
        await engine.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
