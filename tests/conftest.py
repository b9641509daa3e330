"""Shared fixtures and helpers for tests."""

import json
from collections import Counter
from pathlib import Path
from typing import Any

import pytest

from formschema.core.errors import LoadError
from formschema.core.source import Document, Source

_REPO_ROOT = Path(__file__).parent.parent

DRAFT_2020_12 = "https://json-schema.org/draft/2020-12/schema"


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# In-memory loader
# ---------------------------------------------------------------------------


class MemoryLoader:
    """Serve documents by location from a dict and count every load."""

    def __init__(self, docs: dict[str, Any] | None = None) -> None:
        self.docs: dict[str, bytes] = {}
        self.calls: Counter[str] = Counter()
        for location, payload in (docs or {}).items():
            self.add(location, payload)

    def add(self, location: str, payload: Any) -> None:
        if isinstance(payload, bytes):
            self.docs[location] = payload
        elif isinstance(payload, str):
            self.docs[location] = payload.encode("utf-8")
        else:
            self.docs[location] = json.dumps(payload).encode("utf-8")

    async def load(self, source: Source) -> Document:
        self.calls[source.location] += 1
        raw = self.docs.get(source.location)
        if raw is None:
            raise LoadError(f"missing document {source.location!r}")
        return Document(source, raw)


def schema_doc(**fields: Any) -> dict[str, Any]:
    """Build a 2020-12 schema payload."""
    return {"$schema": DRAFT_2020_12, **fields}


def to_bytes(payload: Any) -> bytes:
    return json.dumps(payload).encode("utf-8")


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_loader() -> MemoryLoader:
    return MemoryLoader()


@pytest.fixture
def schemas_dir(tmp_path: Path) -> Path:
    """Return a directory holding a root schema that references a sibling file."""
    root = tmp_path / "schemas"
    root.mkdir()
    (root / "root.json").write_text(
        json.dumps(
            schema_doc(
                type="object",
                properties={"name": {"$ref": "defs.json#/$defs/name"}},
            )
        ),
        encoding="utf-8",
    )
    (root / "defs.json").write_text(
        json.dumps(schema_doc(**{"$defs": {"name": {"type": "string", "minLength": 1}}})),
        encoding="utf-8",
    )
    return root
