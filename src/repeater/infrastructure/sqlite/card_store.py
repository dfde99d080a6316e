"""
SQLite Card Store — Infrastructure adapter for the card repository port.

Implements CardRepository with aiosqlite over a bounded connection pool.
One table keyed by identity holds the review state of every card ever seen.
"""

import logging
from collections.abc import Collection, Iterable
from datetime import datetime, timedelta
from pathlib import Path

import aiosqlite

from repeater.application.scheduler import PerformanceModel
from repeater.domain.clock import as_utc, utcnow
from repeater.domain.constants import (
    DAY_FORMAT,
    DEFAULT_POOL_SIZE,
    UPCOMING_MONTH_DAYS,
    UPCOMING_WEEK_DAYS,
)
from repeater.domain.exceptions import CardNotFoundError, PersistenceError
from repeater.domain.models import (
    CollectionStats,
    Grade,
    NewState,
    ReviewedState,
    ReviewState,
    UpcomingCount,
)
from repeater.domain.ports import CardRepository
from repeater.infrastructure.sqlite.pool import ConnectionPool, persistence_errors

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS cards (
    card_hash TEXT PRIMARY KEY,
    added_at TEXT NOT NULL,
    last_reviewed_at TEXT,
    stability REAL,
    difficulty REAL,
    interval_raw REAL,
    interval_days INTEGER NOT NULL DEFAULT 0,
    due_date TEXT,
    review_count INTEGER NOT NULL DEFAULT 0
)
"""

INSERT_CARD = """
INSERT OR IGNORE INTO cards (
    card_hash,
    added_at,
    last_reviewed_at,
    stability,
    difficulty,
    interval_raw,
    interval_days,
    due_date,
    review_count
)
VALUES (?, ?, NULL, NULL, NULL, NULL, 0, NULL, 0)
"""

SELECT_STATE = """
SELECT last_reviewed_at, stability, difficulty, interval_raw, interval_days, due_date, review_count
FROM cards
WHERE card_hash = ?
"""

UPDATE_STATE = """
UPDATE cards
SET
    last_reviewed_at = ?,
    stability = ?,
    difficulty = ?,
    interval_raw = ?,
    interval_days = ?,
    due_date = ?,
    review_count = ?
WHERE card_hash = ?
"""


def to_db_time(dt: datetime) -> str:
    # Fixed-width UTC text, so string comparison in SQL is chronological.
    return as_utc(dt).isoformat(timespec="microseconds")


def from_db_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError:
        logger.debug(f"Unparseable timestamp in store: {value!r}")
        return None


def is_due(due_date: datetime | None, now: datetime) -> bool:
    # Never reviewed, or a due date that could not be read, means due now.
    return due_date is None or due_date <= now


class SqliteCardStore(CardRepository):
    """
    Durable per-card review state.

    Atomic writes run in a single transaction; reads borrow any free
    connection. Errors surface as PersistenceError and are never retried here.
    """

    def __init__(self, pool: ConnectionPool, model: PerformanceModel | None = None):
        """
        Args:
            pool: An open (or to-be-opened) connection pool.
            model: Performance model applied on every grade; default coefficients if omitted.
        """
        self._pool = pool
        self._model = model or PerformanceModel()

    @classmethod
    async def open(
        cls,
        db_path: Path,
        pool_size: int = DEFAULT_POOL_SIZE,
        model: PerformanceModel | None = None,
    ) -> "SqliteCardStore":
        """Open (creating if missing) the database at db_path."""
        store = cls(ConnectionPool(db_path, size=pool_size), model=model)
        await store.connect()
        return store

    async def connect(self) -> None:
        db_path = self._pool.db_path
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to create data directory: {e}") from e

        await self._pool.open()
        try:
            await self._ensure_schema()
        except BaseException:
            await self.close()
            raise

    async def close(self) -> None:
        await self._pool.close()

    async def __aenter__(self) -> "SqliteCardStore":
        if self._pool.closed:
            await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _ensure_schema(self) -> None:
        with persistence_errors("Creating schema"):
            async with self._pool.transaction() as conn:
                async with conn.execute(
                    "SELECT count(*) FROM sqlite_master WHERE type = 'table' AND name = ?",
                    ("cards",),
                ) as cursor:
                    (count,) = await cursor.fetchone()
                if count == 0:
                    await conn.execute(SCHEMA)
                    logger.info(f"Created card table in {self._pool.db_path}")

    # ---------- Insertion ----------

    async def ensure_card(self, identity: str, now: datetime | None = None) -> None:
        await self.ensure_cards_batch([identity], now=now)

    async def ensure_cards_batch(
        self, identities: Iterable[str], now: datetime | None = None
    ) -> None:
        added_at = to_db_time(now or utcnow())
        rows = [(identity, added_at) for identity in identities]
        if not rows:
            return

        with persistence_errors("Inserting cards"):
            async with self._pool.transaction() as conn:
                await conn.executemany(INSERT_CARD, rows)
        logger.debug(f"Ensured {len(rows)} cards")

    # ---------- State ----------

    async def card_exists(self, identity: str) -> bool:
        with persistence_errors("Looking up card"):
            async with self._pool.acquire() as conn:
                async with conn.execute(
                    "SELECT COUNT(1) FROM cards WHERE card_hash = ?", (identity,)
                ) as cursor:
                    (count,) = await cursor.fetchone()
        return count > 0

    async def get_state(self, identity: str) -> ReviewState:
        with persistence_errors("Reading card state"):
            async with self._pool.acquire() as conn:
                state = await self._fetch_state(conn, identity)
        if state is None:
            raise CardNotFoundError(identity)
        return state

    async def record_review(
        self, identity: str, grade: Grade, now: datetime | None = None
    ) -> bool:
        reviewed_at = as_utc(now) if now else utcnow()

        with persistence_errors("Recording review"):
            async with self._pool.transaction() as conn:
                prior = await self._fetch_state(conn, identity)
                if prior is None:
                    return False

                state = self._model.update(prior, grade, reviewed_at)
                cursor = await conn.execute(
                    UPDATE_STATE,
                    (
                        to_db_time(state.last_reviewed_at),
                        state.stability,
                        state.difficulty,
                        state.interval_raw,
                        state.interval_days,
                        to_db_time(state.due_date),
                        state.review_count,
                        identity,
                    ),
                )
                updated = cursor.rowcount > 0
                await cursor.close()

        logger.debug(
            f"Recorded {grade.label} for {identity[:12]}: "
            f"review #{state.review_count}, next in {state.interval_days}d"
        )
        return updated

    async def _fetch_state(
        self, conn: aiosqlite.Connection, identity: str
    ) -> ReviewState | None:
        async with conn.execute(SELECT_STATE, (identity,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_state(identity, row)

    def _row_to_state(self, identity: str, row: aiosqlite.Row) -> ReviewState:
        review_count = row["review_count"]
        if review_count == 0:
            return NewState()

        last_reviewed_at = from_db_time(row["last_reviewed_at"])
        due_date = from_db_time(row["due_date"])
        if last_reviewed_at is None or due_date is None or row["stability"] is None:
            raise PersistenceError(f"Card {identity} has reviews but incomplete state")

        return ReviewedState(
            last_reviewed_at=last_reviewed_at,
            stability=row["stability"],
            difficulty=row["difficulty"],
            interval_raw=row["interval_raw"],
            interval_days=row["interval_days"],
            due_date=due_date,
            review_count=review_count,
        )

    # ---------- Queries ----------

    async def due_set(
        self,
        candidate_identities: Collection[str],
        limit: int | None = None,
        new_limit: int | None = None,
        now: datetime | None = None,
    ) -> list[str]:
        if limit is not None and limit <= 0:
            return []
        now = as_utc(now) if now else utcnow()
        candidates = set(candidate_identities)

        due: list[str] = []
        new_taken = 0
        with persistence_errors("Querying due cards"):
            async with self._pool.acquire() as conn:
                async with conn.execute(
                    "SELECT card_hash, review_count, due_date FROM cards ORDER BY rowid"
                ) as cursor:
                    async for row in cursor:
                        identity = row["card_hash"]
                        if identity not in candidates:
                            continue
                        if not is_due(from_db_time(row["due_date"]), now):
                            continue

                        if row["review_count"] == 0:
                            if new_limit is not None and new_taken >= new_limit:
                                continue
                            new_taken += 1

                        due.append(identity)
                        if limit is not None and len(due) >= limit:
                            break
        return due

    async def collection_stats(
        self, candidate_identities: Collection[str], now: datetime | None = None
    ) -> CollectionStats:
        now = as_utc(now) if now else utcnow()
        week_horizon = now + timedelta(days=UPCOMING_WEEK_DAYS)
        month_horizon = now + timedelta(days=UPCOMING_MONTH_DAYS)

        candidates = set(candidate_identities)
        stats = CollectionStats(num_cards=len(candidates))
        upcoming_week: dict[str, int] = {}

        with persistence_errors("Computing collection stats"):
            async with self._pool.acquire() as conn:
                async with conn.execute(
                    "SELECT card_hash, review_count, due_date FROM cards"
                ) as cursor:
                    async for row in cursor:
                        stats.total_cards_in_store += 1
                        if row["card_hash"] not in candidates:
                            continue

                        if row["review_count"] == 0:
                            stats.new_cards += 1
                        else:
                            stats.reviewed_cards += 1

                        due_date = from_db_time(row["due_date"])
                        if is_due(due_date, now):
                            stats.due_cards += 1
                            if due_date is not None and due_date < now:
                                stats.overdue_cards += 1
                            continue

                        if due_date <= week_horizon:
                            day = due_date.strftime(DAY_FORMAT)
                            upcoming_week[day] = upcoming_week.get(day, 0) + 1
                        if due_date <= month_horizon:
                            stats.upcoming_month += 1

        stats.upcoming_week = [
            UpcomingCount(day=day, count=count) for day, count in sorted(upcoming_week.items())
        ]
        return stats

    async def all_identities(self) -> list[str]:
        with persistence_errors("Listing cards"):
            async with self._pool.acquire() as conn:
                async with conn.execute("SELECT card_hash FROM cards ORDER BY rowid") as cursor:
                    return [row["card_hash"] async for row in cursor]
