"""
Domain models for cards and their review state.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class Grade(str, Enum):
    """
    Outcome of a single review.

    Binary on purpose: there is no partial credit. New members can be added
    here and mapped to a scheduler rating without touching the callers.
    """

    FAIL = "fail"
    PASS = "pass"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class ClozeRange:
    """
    Half-open character span of a bracketed deletion, brackets included.
    """

    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end <= self.start:
            raise ValueError(f"Invalid cloze range [{self.start}, {self.end})")


@dataclass(frozen=True)
class BasicContent:
    question: str
    answer: str


@dataclass(frozen=True)
class ClozeContent:
    """
    Cloze text plus the span that is hidden during a drill.

    hidden_range is None when the text carries no usable bracketed deletion yet.
    """

    text: str
    hidden_range: ClozeRange | None = None


CardContent = BasicContent | ClozeContent


@dataclass(frozen=True)
class Provenance:
    """Where a card came from. Informational only, never part of identity."""

    file_path: Path
    start_line: int = 0
    end_line: int = 0


@dataclass(frozen=True)
class Card:
    """
    A card derived from source text for this run.

    Attributes:
        identity: Content fingerprint, the card's permanent key.
        content: Basic question/answer or cloze.
        provenance: Originating file and line range.
    """

    identity: str
    content: CardContent
    provenance: Provenance = field(compare=False, default=Provenance(Path("")))


@dataclass(frozen=True)
class NewState:
    """A card that has never been reviewed."""

    @property
    def review_count(self) -> int:
        return 0


@dataclass(frozen=True)
class ReviewedState:
    """
    Scheduling state of a card with at least one review.

    Attributes:
        last_reviewed_at: When the latest grade was recorded (UTC).
        stability: Days until recall probability drops to the target retention.
        difficulty: Item hardness on the 1-10 scale.
        interval_raw: Continuous interval estimate in days.
        interval_days: interval_raw rounded and clamped.
        due_date: Next scheduled review.
        review_count: Number of recorded reviews, >= 1.
    """

    last_reviewed_at: datetime
    stability: float
    difficulty: float
    interval_raw: float
    interval_days: int
    due_date: datetime
    review_count: int


ReviewState = NewState | ReviewedState


@dataclass(frozen=True)
class UpcomingCount:
    day: str  # YYYY-MM-DD
    count: int


@dataclass
class CollectionStats:
    """
    Snapshot of the store relative to the currently loaded cards.

    total_cards_in_store counts every row; all other counters only consider
    candidate identities.
    """

    total_cards_in_store: int = 0
    num_cards: int = 0
    new_cards: int = 0
    reviewed_cards: int = 0
    due_cards: int = 0
    overdue_cards: int = 0
    upcoming_week: list[UpcomingCount] = field(default_factory=list)
    upcoming_month: int = 0

    @property
    def due_next_week(self) -> int:
        return sum(bucket.count for bucket in self.upcoming_week)
