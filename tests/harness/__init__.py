"""Test harness utilities for adapters and runs."""

from .adapter_harness import (
    collect,
    collect_async,
    drain,
    event_types,
    make_request,
    run,
    run_to_end,
)

__all__ = [
    "collect",
    "collect_async",
    "drain",
    "event_types",
    "make_request",
    "run",
    "run_to_end",
]
