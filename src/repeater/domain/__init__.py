# Domain Package
from .exceptions import (
    CardNotFoundError,
    InvalidTransitionError,
    MalformedContentError,
    PersistenceError,
    RepeaterError,
)
from .models import (
    BasicContent,
    Card,
    ClozeContent,
    ClozeRange,
    CollectionStats,
    Grade,
    NewState,
    Provenance,
    ReviewedState,
    ReviewState,
    UpcomingCount,
)
from .ports import CardRepository

__all__ = [
    "BasicContent",
    "Card",
    "CardNotFoundError",
    "CardRepository",
    "ClozeContent",
    "ClozeRange",
    "CollectionStats",
    "Grade",
    "InvalidTransitionError",
    "MalformedContentError",
    "NewState",
    "PersistenceError",
    "Provenance",
    "RepeaterError",
    "ReviewState",
    "ReviewedState",
    "UpcomingCount",
]
