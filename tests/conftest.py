from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from repeater.domain.models import BasicContent, Card, Provenance
from repeater.infrastructure.sqlite.card_store import SqliteCardStore

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    for var in ("REPEATER_DB_PATH", "REPEATER_POOL_SIZE", "REPEATER_DESIRED_RETENTION"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "cards.db"


@pytest_asyncio.fixture
async def store(db_path):
    store = await SqliteCardStore.open(db_path, pool_size=2)
    try:
        yield store
    finally:
        await store.close()


def _make_card(identity: str, question: str = "Q", line: int = 1) -> Card:
    return Card(
        identity=identity,
        content=BasicContent(question=question, answer="A"),
        provenance=Provenance(Path("deck.md"), start_line=line, end_line=line + 1),
    )


@pytest.fixture
def make_card():
    """Builds a basic card with a fixed identity."""
    return _make_card
