"""Command line interface for the agentsync utilities."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from .core.errors import AgentSyncError, ProtocolError
from .io.adapters import LocalThreadStore
from .protocol.codec import EventDecoder
from .protocol.verifier import verify_events


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect agent event streams and stored threads")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    verify_parser = subparsers.add_parser(
        "verify", help="decode an event stream and check it against the stream contract"
    )
    verify_parser.add_argument("file", help="Stream file to check, or '-' for stdin")
    verify_parser.add_argument(
        "--format",
        choices=["sse", "jsonl"],
        default="sse",
        help="Framing of the stream",
    )
    verify_parser.add_argument(
        "--no-run-framing",
        action="store_true",
        help="Accept a bare adapter turn without RUN_STARTED/RUN_FINISHED",
    )

    threads_parser = subparsers.add_parser("threads", help="inspect or delete persisted threads")
    threads_sub = threads_parser.add_subparsers(dest="action", required=True)

    list_parser = threads_sub.add_parser("list", help="list stored thread ids")
    show_parser = threads_sub.add_parser("show", help="print a thread as JSON")
    show_parser.add_argument("thread_id", help="Thread identifier")
    delete_parser = threads_sub.add_parser("delete", help="delete a stored thread")
    delete_parser.add_argument("thread_id", help="Thread identifier")
    for sub in (list_parser, show_parser, delete_parser):
        sub.add_argument(
            "--store",
            type=Path,
            required=True,
            help="Directory of the local thread store",
        )

    return parser


def _read_stream(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _handle_verify(args: argparse.Namespace) -> int:
    try:
        payload = _read_stream(args.file)
    except OSError as exc:
        sys.stderr.write(f"error: cannot read {args.file}: {exc}\n")
        return 2

    decoder = EventDecoder(args.format)
    try:
        events = decoder.feed(payload)
        events.extend(decoder.close())
        count = verify_events(events, require_run_framing=not args.no_run_framing)
    except ProtocolError as exc:
        sys.stderr.write(f"protocol error: {exc}\n")
        return 1
    print(f"ok: {count} events")
    return 0


async def _threads(args: argparse.Namespace) -> int:
    store = LocalThreadStore(args.store)
    if args.action == "list":
        for thread_id in await store.list_threads():
            print(thread_id)
        return 0
    if args.action == "show":
        record = await store.get(args.thread_id)
        print(record.model_dump_json(by_alias=True, exclude_none=True, indent=2))
        return 0
    if args.action == "delete":
        if await store.delete(args.thread_id):
            print(f"deleted {args.thread_id}")
            return 0
        sys.stderr.write(f"error: thread '{args.thread_id}' not found\n")
        return 1
    return 2


def _handle_threads(args: argparse.Namespace) -> int:
    try:
        return asyncio.run(_threads(args))
    except (AgentSyncError, ValueError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.command == "verify":
        return _handle_verify(args)
    if args.command == "threads":
        return _handle_threads(args)
    parser.error("no command provided")
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
