"""Error taxonomy shared by every layer."""


class RepeaterError(Exception):
    """Base class for all repeater errors."""


class MalformedContentError(RepeaterError):
    """Card text normalized to nothing and therefore has no identity."""


class CardNotFoundError(RepeaterError):
    """An operation referenced an identity that was never inserted."""

    def __init__(self, identity: str):
        super().__init__(f"No card with identity {identity!r} in the store")
        self.identity = identity


class PersistenceError(RepeaterError):
    """The backing store failed (I/O, corruption, constraint violation)."""


class InvalidTransitionError(RepeaterError):
    """A drill session method was called in a state that forbids it."""
