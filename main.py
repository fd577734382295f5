"""FlowClip command line: clipboard watcher, single tasks and research sessions."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from flowclip.capture import ContextCapture, ScreenCapturer
from flowclip.catalog import WorkflowCatalog
from flowclip.config import FlowClipConfig
from flowclip.consolidator import SessionConsolidator
from flowclip.errors import FlowClipError
from flowclip.formatting import render_analysis_text, render_session_summary, render_task_result
from flowclip.constants import SessionType
from flowclip.models import ClipboardItem, Session, TaskType
from flowclip.orchestrator import TaskOrchestrator
from flowclip.store import SQLiteStore

logger = logging.getLogger(__name__)


def preview(text: str, *, limit: int = 80) -> str:
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3].rstrip() + "..."


async def watch_loop(
    orchestrator: TaskOrchestrator,
    store: SQLiteStore,
    capture: ContextCapture,
    *,
    interval: float,
    analyze: bool,
) -> None:
    capture.prime()
    while True:
        item = capture.poll()
        if item is None:
            await asyncio.sleep(interval)
            continue
        await store.save_clipboard_item(item)
        timestamp_local = item.timestamp.astimezone().strftime("%H:%M:%S")
        print(f"[{timestamp_local}] {item.source_app} -> {preview(item.content)}")
        print(f"  id: {item.id}")
        if item.window_title:
            print(f"  window: {item.window_title}")
        if analyze:
            try:
                analysis = await orchestrator.analyze_clipboard_item(item)
            except FlowClipError as exc:
                print(f"  analysis failed: {exc}")
            else:
                for line in render_analysis_text(analysis).splitlines():
                    print(f"  {line}")
        print()
        await asyncio.sleep(interval)


async def run_task(orchestrator: TaskOrchestrator, item_id: str, task_type: str, content: Optional[str]) -> None:
    if content is not None:
        item = ClipboardItem.create(content)
        await orchestrator.store.save_clipboard_item(item)
        item_id = item.id
        print(f"stored clipboard item {item_id}")
    outcome = await orchestrator.trigger_task(item_id, task_type)
    print(f"task {outcome.task_id} completed")
    if isinstance(outcome.result, dict):
        print(render_task_result(task_type, outcome.result))
    else:
        print(json.dumps(outcome.result, indent=2, ensure_ascii=False))


async def create_session(store: SQLiteStore, session_type: str, label: str) -> None:
    session = Session.create(session_type, label)
    await store.save_session(session)
    print(session.id)


async def add_to_session(store: SQLiteStore, session_id: str, item_id: str) -> None:
    member = await store.add_session_item(session_id, item_id)
    print(f"{member.clipboard_item_id} is item {member.sequence_order} of session {member.session_id}")


async def list_items(store: SQLiteStore, limit: int) -> None:
    for item in await store.recent_clipboard_items(limit=limit):
        timestamp_local = item.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        print(f"{item.id}  [{timestamp_local}] {item.source_app} -> {preview(item.content, limit=60)}")


async def run_session_summary(consolidator: SessionConsolidator, session_id: str, as_json: bool) -> None:
    summary = await consolidator.summarize_session(session_id)
    if as_json:
        print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False, default=str))
    else:
        print(render_session_summary(summary))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FlowClip clipboard workflow runner")
    parser.add_argument("--db", help="SQLite database path (default: FLOWCLIP_DB_PATH or flowclip.db)")
    parser.add_argument("--log-level", help="Logging level (default: FLOWCLIP_LOG_LEVEL or INFO)")
    commands = parser.add_subparsers(dest="command", required=True)

    watch = commands.add_parser("watch", help="Watch the clipboard and analyze new content")
    watch.add_argument("--interval", type=float, default=1.0, help="Polling interval in seconds")
    watch.add_argument("--no-analyze", action="store_true", help="Only store clipboard items")
    watch.add_argument("--screenshots", action="store_true", help="Capture a screenshot with each item")

    task = commands.add_parser("task", help="Run one task against a stored clipboard item")
    task.add_argument("task_type", choices=[t.value for t in TaskType if t is not TaskType.COMPREHENSIVE_ANALYSIS])
    target = task.add_mutually_exclusive_group(required=True)
    target.add_argument("--item", help="Clipboard item id")
    target.add_argument("--content", help="Store this text as a new clipboard item first")

    items = commands.add_parser("items", help="List recently stored clipboard items")
    items.add_argument("--limit", type=int, default=20, help="Number of items to show")

    session_cmd = commands.add_parser("session", help="Create research sessions and add items to them")
    session_actions = session_cmd.add_subparsers(dest="session_command", required=True)
    create = session_actions.add_parser("create", help="Create a session and print its id")
    create.add_argument("session_type", choices=[t.value for t in SessionType])
    create.add_argument("label")
    add = session_actions.add_parser("add", help="Add a stored clipboard item to a session")
    add.add_argument("session_id")
    add.add_argument("item_id")

    session = commands.add_parser("session-summary", help="Consolidate the research of a session")
    session.add_argument("session_id")
    session.add_argument("--json", action="store_true", help="Print the summary as JSON")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = FlowClipConfig.from_env()
    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = SQLiteStore(args.db or config.db_path)
    orchestrator = TaskOrchestrator.from_config(config, store)
    try:
        if args.command == "watch":
            if not orchestrator.is_configured and not args.no_analyze:
                sys.stderr.write("OpenAI API key not configured; storing clipboard items without analysis.\n")
            screens = ScreenCapturer(config.capture_dir) if args.screenshots else None
            asyncio.run(
                watch_loop(
                    orchestrator,
                    store,
                    ContextCapture(screens=screens),
                    interval=max(0.1, args.interval),
                    analyze=orchestrator.is_configured and not args.no_analyze,
                )
            )
        elif args.command == "task":
            asyncio.run(run_task(orchestrator, args.item, args.task_type, args.content))
        elif args.command == "items":
            asyncio.run(list_items(store, max(1, args.limit)))
        elif args.command == "session" and args.session_command == "create":
            asyncio.run(create_session(store, args.session_type, args.label))
        elif args.command == "session" and args.session_command == "add":
            asyncio.run(add_to_session(store, args.session_id, args.item_id))
        elif args.command == "session-summary":
            consolidator = SessionConsolidator(orchestrator.catalog, store)
            asyncio.run(run_session_summary(consolidator, args.session_id, args.json))
    except KeyboardInterrupt:
        print("\nStopped.")
    except FlowClipError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
