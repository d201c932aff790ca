from pathlib import Path
from typing import Dict, List

import pytest

FIXTURES = Path(__file__).resolve().parent / "fixtures" / "metadata"

KIND_FILES = {
    "SYSTEM": "system.xml",
    "RESOURCE": "resource.xml",
    "CLASS": "class.xml",
    "TABLE": "table.xml",
    "LOOKUP": "lookup.xml",
    "LOOKUP_TYPE": "lookup_type.xml",
    "OBJECT": "object.xml",
}


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


class RecordingFetcher:
    """Fetcher double serving fixture documents and recording each request."""

    def __init__(self, sources: Dict[str, str]):
        self.sources = sources
        self.calls: List[str] = []

    def __call__(self, kind: str) -> str:
        self.calls.append(kind)
        return self.sources[kind]


@pytest.fixture
def sources() -> Dict[str, str]:
    return {kind: load_fixture(name) for kind, name in KIND_FILES.items()}


@pytest.fixture
def fetcher(sources) -> RecordingFetcher:
    return RecordingFetcher(sources)


@pytest.fixture
def metadata_fixture():
    """Return a loader reading a fixture document by file name."""
    return load_fixture
