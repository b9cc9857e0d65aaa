#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - CLI
Командная строка: свободные окна, статистика, импорт расписания

Версия: 1.0.0
Дата: 2025-07-02
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from config import config
from core.normalizer import describe_slots
from core.planner import PlannerController
from utils.datetime_utils import WEEKDAYS, weekday_index
from utils.logger import configure_logging

logger = logging.getLogger(__name__)

def cmd_slots(controller: PlannerController, args: argparse.Namespace) -> int:
    days = range(7) if args.day == "all" else [weekday_index(args.day)]
    if None in days:
        print(f"❌ Unknown day: {args.day}", file=sys.stderr)
        return 2

    for day in days:
        slots = controller.slots_for(day)
        print(f"{WEEKDAYS[day].capitalize()}: {describe_slots(slots)}")
    return 0

def cmd_stats(controller: PlannerController, args: argparse.Namespace) -> int:
    summary = controller.summary()
    if args.json:
        print(json.dumps(summary, ensure_ascii=False, indent=2))
        return 0

    print(f"🔥 Streak: {summary['streak']} days (best {summary['longest_streak']})")
    print(f"⏱️ Total: {summary['total_minutes']} min, today {summary['today_minutes']} min")
    print(f"🏆 MVP skill: {summary['mvp_skill']}")
    print(f"📊 Score: {summary['score']}/100")
    for skill_name, progress in summary['skill_progress'].items():
        print(f"   {skill_name}: {progress}%")
    return 0

async def _import(controller: PlannerController, path: Path) -> int:
    result = await controller.import_document(path.read_bytes())
    for warning in controller.state.warnings:
        print(f"⚠️ {warning}")

    if not result.success:
        print(f"❌ {result.message or controller.state.status_message}", file=sys.stderr)
        return 1

    print(f"✅ {result.message}")
    return 0

def cmd_extract(controller: PlannerController, args: argparse.Namespace) -> int:
    path = Path(args.document)
    if not path.exists():
        print(f"❌ File not found: {path}", file=sys.stderr)
        return 2
    return asyncio.run(_import(controller, path))

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="schedwise", description="SchedWise planner core")
    subparsers = parser.add_subparsers(dest="command", required=True)

    slots = subparsers.add_parser("slots", help="show free slots")
    slots.add_argument("--day", default="all", help="weekday name or index (0 = Monday), default all")
    slots.set_defaults(handler=cmd_slots)

    stats = subparsers.add_parser("stats", help="show progress analytics")
    stats.add_argument("--json", action="store_true", help="print raw JSON summary")
    stats.set_defaults(handler=cmd_stats)

    extract = subparsers.add_parser("extract", help="import busy intervals from a PDF or text timetable")
    extract.add_argument("document", help="path to the document")
    extract.set_defaults(handler=cmd_extract)

    return parser

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config.ensure_directories()
    configure_logging()
    logger.debug(f"Configuration: {config.to_dict()}")

    controller = PlannerController()
    controller.restore()

    try:
        return args.handler(controller, args)
    finally:
        controller.store.shutdown()

if __name__ == "__main__":
    sys.exit(main())
