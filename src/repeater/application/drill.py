"""
Drill session: the turn-based state machine behind a study sitting.

Cards are shown one at a time. Each card is revealed, then graded; failed
cards go to a redo queue that becomes the active list once the current pass
is exhausted. The session completes when a pass ends with nothing to redo.
"""

import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from repeater.domain.clock import utcnow
from repeater.domain.exceptions import InvalidTransitionError
from repeater.domain.models import Card, Grade
from repeater.domain.ports import CardRepository

logger = logging.getLogger(__name__)


class DrillSession:
    """
    Sequences due cards and records grades through the store.

    The session only tracks presentation order. All durable state lives in
    the store, so abandoning a session keeps every grade already recorded.
    """

    def __init__(
        self,
        store: CardRepository,
        cards: Sequence[Card],
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            store: Where grades are recorded.
            cards: The due cards, in presentation order.
            clock: Source of review timestamps; defaults to the UTC wall clock.
        """
        self._store = store
        self._clock = clock or utcnow
        self._cards: list[Card] = list(cards)
        self._redo: list[Card] = []
        self._cursor = 0
        self._revealed = False
        self._last_grade: Grade | None = None
        self._grading = False
        self._passes = 1

    # ---------- Read accessors ----------

    @property
    def current_card(self) -> Card | None:
        if self.is_complete:
            return None
        return self._cards[self._cursor]

    @property
    def revealed(self) -> bool:
        return self._revealed

    @property
    def last_grade(self) -> Grade | None:
        return self._last_grade

    @property
    def is_complete(self) -> bool:
        return self._cursor >= len(self._cards) and not self._redo

    @property
    def position(self) -> int:
        """1-based index of the current card within the active pass."""
        return min(self._cursor + 1, len(self._cards))

    @property
    def pass_size(self) -> int:
        return len(self._cards)

    @property
    def redo_count(self) -> int:
        return len(self._redo)

    @property
    def passes(self) -> int:
        """Number of passes started so far, including the first."""
        return self._passes

    # ---------- Transitions ----------

    def reveal(self) -> None:
        """Show the answer of the current card. Revealing twice is a no-op."""
        if self.is_complete:
            raise InvalidTransitionError("Cannot reveal: the session is complete")
        self._revealed = True

    async def grade(self, grade: Grade) -> bool:
        """
        Record a grade for the revealed card and move to the next one.

        Returns:
            Whether the store had a row for the card. An unknown card is
            reported, not fatal: the session keeps going.

        Raises:
            InvalidTransitionError: The card is not revealed, the session is
                complete, or another grade is still being recorded.
        """
        if self._grading:
            raise InvalidTransitionError("Cannot grade: a grade is already in flight")
        if self.is_complete:
            raise InvalidTransitionError("Cannot grade: the session is complete")
        if not self._revealed:
            raise InvalidTransitionError("Cannot grade before the answer is revealed")

        card = self._cards[self._cursor]
        self._grading = True
        try:
            recorded = await self._store.record_review(card.identity, grade, now=self._clock())
        finally:
            self._grading = False

        if not recorded:
            logger.warning(
                f"Card {card.identity[:12]} from {card.provenance.file_path} "
                "is not in the store; grade not saved"
            )

        if grade is Grade.FAIL:
            self._redo.append(card)

        self._last_grade = grade
        self._cursor += 1
        self._revealed = False
        self._start_redo_pass_if_exhausted()
        return recorded

    def _start_redo_pass_if_exhausted(self) -> None:
        if self._cursor < len(self._cards) or not self._redo:
            return
        logger.debug(f"Pass {self._passes} done, redoing {len(self._redo)} cards")
        self._cards, self._redo = self._redo, []
        self._cursor = 0
        self._passes += 1
