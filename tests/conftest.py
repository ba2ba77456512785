from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for path in (SRC, ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from tests.fixtures import openai_fake  # noqa: E402


@pytest.fixture(autouse=True)
def patch_openai_stream(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure OpenAI streaming uses deterministic fake fixtures."""

    monkeypatch.setattr(
        "agentsync.core.adapters.openai.create_openai_stream",
        openai_fake.create_openai_stream,
    )
