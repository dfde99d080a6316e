import asyncio
import sqlite3
from datetime import timedelta

import pytest

from repeater.application.drill import DrillSession
from repeater.application.scheduler import PerformanceModel, SchedulerParameters
from repeater.domain.exceptions import CardNotFoundError, PersistenceError
from repeater.domain.models import Grade, NewState, ReviewedState, UpcomingCount
from repeater.infrastructure.sqlite.card_store import SqliteCardStore, from_db_time, to_db_time

A, B, C, D, E, F = (ch * 64 for ch in "abcdef")


@pytest.mark.asyncio
async def test_open_creates_database_and_directory(db_path):
    assert not db_path.parent.exists()

    store = await SqliteCardStore.open(db_path)
    try:
        assert db_path.exists()
        assert await store.all_identities() == []
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_reopen_keeps_rows(db_path, now):
    async with await SqliteCardStore.open(db_path) as store:
        await store.ensure_card(A, now=now)
        await store.record_review(A, Grade.PASS, now=now)

    async with await SqliteCardStore.open(db_path) as store:
        state = await store.get_state(A)
        assert isinstance(state, ReviewedState)
        assert state.review_count == 1


@pytest.mark.asyncio
async def test_new_card_state(store, now):
    await store.ensure_card(A, now=now)

    assert await store.card_exists(A)
    assert not await store.card_exists(B)
    assert await store.get_state(A) == NewState()


@pytest.mark.asyncio
async def test_get_state_unknown_identity(store):
    with pytest.raises(CardNotFoundError) as exc_info:
        await store.get_state(A)
    assert exc_info.value.identity == A


@pytest.mark.asyncio
async def test_ensure_is_idempotent_for_reviewed_rows(store, now):
    await store.ensure_cards_batch([A, B], now=now)
    await store.record_review(A, Grade.PASS, now=now)
    before = await store.get_state(A)

    await store.ensure_cards_batch([A, B, A], now=now + timedelta(days=1))
    await store.ensure_card(A, now=now + timedelta(days=2))

    assert await store.get_state(A) == before
    assert await store.get_state(B) == NewState()
    assert await store.all_identities() == [A, B]


@pytest.mark.asyncio
async def test_ensure_batch_is_all_or_nothing(store, now):
    with pytest.raises(PersistenceError):
        await store.ensure_cards_batch([A, object()], now=now)

    assert not await store.card_exists(A)
    assert await store.all_identities() == []


@pytest.mark.asyncio
async def test_ensure_empty_batch(store):
    await store.ensure_cards_batch([])
    assert await store.all_identities() == []


@pytest.mark.asyncio
async def test_record_review_persists_model_output(store, now):
    await store.ensure_card(A, now=now)

    assert await store.record_review(A, Grade.PASS, now=now)
    state = await store.get_state(A)

    expected = PerformanceModel().update(NewState(), Grade.PASS, now)
    assert state == expected


@pytest.mark.asyncio
async def test_record_review_unknown_identity(store, now):
    assert await store.record_review(A, Grade.PASS, now=now) is False
    assert not await store.card_exists(A)


@pytest.mark.asyncio
async def test_concurrent_reviews_are_serialized(db_path, now):
    store = await SqliteCardStore.open(db_path, pool_size=3)
    try:
        await store.ensure_card(A, now=now)
        results = await asyncio.gather(
            *(store.record_review(A, Grade.PASS, now=now) for _ in range(6))
        )

        assert all(results)
        assert (await store.get_state(A)).review_count == 6
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_store_uses_configured_model(db_path, now):
    model = PerformanceModel(SchedulerParameters(minimum_interval=2))
    store = await SqliteCardStore.open(db_path, model=model)
    try:
        await store.ensure_card(A, now=now)
        await store.record_review(A, Grade.FAIL, now=now)
        assert (await store.get_state(A)).interval_days == 2
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_due_set_filters_candidates_and_includes_new(store, now):
    await store.ensure_cards_batch([A, B, C, D], now=now)
    await store.record_review(B, Grade.FAIL, now=now - timedelta(days=2))
    await store.record_review(C, Grade.PASS, now=now)

    due = await store.due_set({A, B, C}, now=now)

    assert due == [A, B]
    assert D not in due


@pytest.mark.asyncio
async def test_due_set_limits(store, now):
    await store.ensure_cards_batch([A, B, C, D], now=now)
    await store.record_review(A, Grade.FAIL, now=now - timedelta(days=1))
    candidates = [A, B, C, D]

    assert await store.due_set(candidates, limit=2, now=now) == [A, B]
    assert await store.due_set(candidates, new_limit=1, now=now) == [A, B]
    assert await store.due_set(candidates, new_limit=0, now=now) == [A]
    assert await store.due_set(candidates, limit=0, now=now) == []


@pytest.mark.asyncio
async def test_due_set_empty_candidates(store, now):
    await store.ensure_cards_batch([A, B], now=now)
    assert await store.due_set([], now=now) == []


@pytest.mark.asyncio
async def test_collection_stats(store, now):
    await store.ensure_cards_batch([A, B, C, D, E, F], now=now)
    await store.record_review(B, Grade.FAIL, now=now - timedelta(days=2))
    await store.record_review(C, Grade.PASS, now=now - timedelta(days=1))
    await store.record_review(D, Grade.PASS, now=now)
    await store.record_review(E, Grade.FAIL, now=now - timedelta(days=5))
    # Failed at now: interval 0, due exactly now but not overdue
    await store.record_review(F, Grade.FAIL, now=now)

    stats = await store.collection_stats([A, B, C, D, F], now=now)

    assert stats.total_cards_in_store == 6
    assert stats.num_cards == 5
    assert stats.new_cards == 1
    assert stats.reviewed_cards == 4
    assert stats.due_cards == 3
    assert stats.overdue_cards == 1
    assert stats.upcoming_week == [
        UpcomingCount(day="2024-03-03", count=1),
        UpcomingCount(day="2024-03-04", count=1),
    ]
    assert stats.due_next_week == 2
    assert stats.upcoming_month == 2
    assert await store.due_set([A, B, C, D, F], now=now) == [A, B, F]


@pytest.mark.asyncio
async def test_collection_stats_empty_candidates(store, now):
    await store.ensure_cards_batch([A, B], now=now)
    await store.record_review(A, Grade.PASS, now=now)

    stats = await store.collection_stats([], now=now)

    assert stats.total_cards_in_store == 2
    assert stats.num_cards == 0
    assert stats.new_cards == 0
    assert stats.reviewed_cards == 0
    assert stats.due_cards == 0
    assert stats.overdue_cards == 0
    assert stats.upcoming_week == []
    assert stats.upcoming_month == 0


@pytest.mark.asyncio
async def test_drill_session_against_store(store, make_card, now):
    a, b = make_card(A), make_card(B)
    await store.ensure_cards_batch([A, B], now=now)
    times = iter([now, now + timedelta(minutes=1), now + timedelta(minutes=2)])
    session = DrillSession(store, [a, b], clock=lambda: next(times))

    for grade in (Grade.FAIL, Grade.PASS, Grade.PASS):
        session.reveal()
        assert await session.grade(grade)

    assert session.is_complete
    assert (await store.get_state(A)).review_count == 2
    assert (await store.get_state(B)).review_count == 1


@pytest.mark.asyncio
async def test_operations_after_close_fail(db_path):
    store = await SqliteCardStore.open(db_path)
    await store.close()

    with pytest.raises(PersistenceError):
        await store.card_exists(A)


def test_db_time_round_trip_orders_chronologically(now):
    earlier, later = now, now + timedelta(microseconds=1)
    assert to_db_time(earlier) < to_db_time(later)
    assert from_db_time(to_db_time(now)) == now
    assert from_db_time(None) is None
    assert from_db_time("not a date") is None


@pytest.mark.asyncio
async def test_due_exactly_now_is_due_but_not_overdue(store, now):
    await store.ensure_cards_batch([A, B], now=now)
    await store.record_review(A, Grade.FAIL, now=now)
    await store.record_review(B, Grade.FAIL, now=now - timedelta(microseconds=1))

    assert (await store.get_state(A)).due_date == now
    assert await store.due_set([A, B], now=now) == [A, B]
    assert await store.due_set([A], now=now - timedelta(microseconds=1)) == []

    stats = await store.collection_stats([A, B], now=now)
    assert stats.due_cards == 2
    assert stats.overdue_cards == 1


@pytest.mark.asyncio
async def test_unreadable_due_date_counts_as_due_everywhere(store, db_path, now):
    await store.ensure_cards_batch([A, B], now=now)
    await store.record_review(A, Grade.PASS, now=now)
    await store.record_review(B, Grade.PASS, now=now)

    with sqlite3.connect(db_path) as conn:
        conn.execute("UPDATE cards SET due_date = 'garbage' WHERE card_hash = ?", (A,))
    conn.close()

    assert await store.due_set([A, B], now=now) == [A]
    stats = await store.collection_stats([A, B], now=now)
    assert stats.due_cards == 1
    assert stats.overdue_cards == 0


@pytest.mark.asyncio
async def test_cancelled_write_leaves_store_usable(db_path, now):
    store = await SqliteCardStore.open(db_path, pool_size=1)
    other = sqlite3.connect(db_path, isolation_level=None)
    try:
        await store.ensure_card(A, now=now)
        await store.record_review(A, Grade.PASS, now=now)

        other.execute("BEGIN IMMEDIATE")
        task = asyncio.create_task(store.ensure_card(B, now=now))
        await asyncio.sleep(0.3)
        task.cancel()
        other.rollback()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert not await store.card_exists(B)
        await store.ensure_card(C, now=now)
        assert await store.card_exists(C)
        assert await store.record_review(C, Grade.FAIL, now=now)

        state = await store.get_state(A)
        assert isinstance(state, ReviewedState)
        assert state.review_count == 1
    finally:
        other.close()
        await store.close()
