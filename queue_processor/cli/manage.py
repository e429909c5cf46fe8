"""Command-line entry point for running and operating the queue processor.

Usage::

    # Serve the HTTP API (and the worker when WORKER_ENABLED=true)
    python -m queue_processor.cli serve --port 8000

    # Reap expired locks and old processing states
    python -m queue_processor.cli cleanup

    # Show a document's processing state and lock
    python -m queue_processor.cli state --document-id doc-1

    # Ingest a document file through the broker and drain the worker
    python -m queue_processor.cli enqueue --file notes.txt --id doc-1
    python -m queue_processor.cli enqueue --file document.json

The ``state`` command is only meaningful with ``KV_BACKEND=sqlite``; the
memory backend starts empty in every process.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from queue_processor.config.loader import load_config
from queue_processor.config.settings import Settings
from queue_processor.dispatch.queues import DOCUMENT_INGESTION_QUEUE
from queue_processor.models.messages import Document, MessageType
from queue_processor.utils.logging import configure_logging


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _load_components(settings: Settings) -> dict[str, Any]:
    from queue_processor.main import build_components

    return build_components(settings, load_config(settings=settings))


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


def _handle_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    uvicorn.run(
        "queue_processor.main:app",
        host=args.host or settings.app_host,
        port=args.port or settings.app_port,
        reload=args.reload,
    )
    return 0


async def _handle_cleanup(settings: Settings) -> int:
    from queue_processor.main import close_components, start_components

    components = _load_components(settings)
    await start_components(components)
    try:
        result = await components["coordinator"].cleanup()
    finally:
        await close_components(components)
    _print_json(result.to_wire())
    return 0


async def _handle_state(args: argparse.Namespace, settings: Settings) -> int:
    from queue_processor.main import close_components, start_components

    components = _load_components(settings)
    await start_components(components)
    try:
        coordinator = components["coordinator"]
        state = await coordinator.get_state(args.document_id)
        lock = await coordinator.check_lock(args.document_id)
    finally:
        await close_components(components)

    if state is None and not lock.locked:
        print(f"No state recorded for {args.document_id}", file=sys.stderr)
        return 1
    _print_json({"state": state.to_wire() if state else None, "lock": lock.to_wire()})
    return 0


def _read_document(args: argparse.Namespace) -> Document:
    path = Path(args.file)
    raw = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        return Document.model_validate_json(raw)
    return Document(
        id=args.id or path.stem,
        text=raw,
        source=args.source,
        url=path.resolve().as_uri(),
    )


async def _handle_enqueue(args: argparse.Namespace, settings: Settings) -> int:
    from queue_processor.main import close_components, start_components

    try:
        document = _read_document(args)
    except (OSError, ValidationError) as exc:
        print(f"Cannot read document: {exc}", file=sys.stderr)
        return 2

    components = _load_components(settings)
    await start_components(components)
    try:
        body: dict[str, Any] = {
            "type": MessageType.DOCUMENT_INGESTION.value,
            "document": document.to_wire(),
            "options": {"forceReprocess": args.force},
        }
        if args.chunk_size:
            body["options"]["chunkSize"] = args.chunk_size
        message_id = await components["broker"].send(DOCUMENT_INGESTION_QUEUE, body)
        results = await components["worker"].drain()
        state = await components["coordinator"].get_state(document.id)
    finally:
        await close_components(components)

    _print_json(
        {
            "messageId": message_id,
            "batches": [r.to_wire() for r in results],
            "state": state.to_wire() if state else None,
        }
    )
    return 0 if all(r.failure_count == 0 for r in results) else 1


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m queue_processor.cli",
        description="Run and operate the document queue processor.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Queue processor commands")

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API with uvicorn")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: APP_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: APP_PORT)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    subparsers.add_parser("cleanup", help="Reap expired locks and old processing states")

    state_parser = subparsers.add_parser("state", help="Show a document's processing state and lock")
    state_parser.add_argument("--document-id", required=True, help="Document id to inspect")

    enqueue_parser = subparsers.add_parser(
        "enqueue",
        help="Send a document through the ingestion queue and drain the worker",
    )
    enqueue_parser.add_argument("--file", required=True, help="Text file, or .json Document")
    enqueue_parser.add_argument("--id", default=None, help="Document id (default: file stem)")
    enqueue_parser.add_argument("--source", default="cli", help="Source label (default: cli)")
    enqueue_parser.add_argument("--chunk-size", type=int, default=None, help="Words per chunk")
    enqueue_parser.add_argument("--force", action="store_true", help="Reprocess even if duplicate")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    settings = Settings()
    configure_logging(log_level=settings.log_level, json_output=(settings.app_env == "production"))

    if args.command == "serve":
        return _handle_serve(args, settings)
    if args.command == "cleanup":
        return asyncio.run(_handle_cleanup(settings))
    if args.command == "state":
        return asyncio.run(_handle_state(args, settings))
    if args.command == "enqueue":
        return asyncio.run(_handle_enqueue(args, settings))

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
