"""
Building identity-keyed cards and registering them with the store.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime

from repeater.application.hashing import require_identity
from repeater.domain.exceptions import MalformedContentError
from repeater.domain.models import Card, CardContent, ClozeContent, Provenance
from repeater.domain.ports import CardRepository

logger = logging.getLogger(__name__)


def build_card(raw_text: str, content: CardContent, provenance: Provenance) -> Card:
    """
    Create a card whose identity is derived from its raw source block.

    Raises:
        MalformedContentError: The block has no identity (blank or all stopwords).
    """
    return Card(identity=require_identity(raw_text), content=content, provenance=provenance)


def build_cards(
    blocks: Iterable[tuple[str, CardContent, Provenance]],
) -> tuple[list[Card], list[Provenance]]:
    """
    Build cards from parsed source blocks, skipping blocks without an identity.

    Returns:
        The built cards and the provenance of every skipped block.
    """
    cards: list[Card] = []
    skipped: list[Provenance] = []
    for raw_text, content, provenance in blocks:
        try:
            cards.append(build_card(raw_text, content, provenance))
        except MalformedContentError as e:
            logger.warning(f"Skipping card at {provenance.file_path}:{provenance.start_line}: {e}")
            skipped.append(provenance)
    return cards, skipped


async def register_cards(
    store: CardRepository,
    cards: Iterable[Card],
    now: datetime | None = None,
) -> dict[str, Card]:
    """
    Make sure every card has a row in the store.

    Cards sharing an identity collapse to the first one seen. The insert is a
    single batch, so either all new rows land or none do.

    Returns:
        Mapping of identity -> card for the loaded set.
    """
    by_identity: dict[str, Card] = {}
    for card in cards:
        if card.identity in by_identity:
            first = by_identity[card.identity].provenance
            logger.debug(
                f"Duplicate card in {card.provenance.file_path}:{card.provenance.start_line} "
                f"matches {first.file_path}:{first.start_line}"
            )
            continue
        by_identity[card.identity] = card

    await store.ensure_cards_batch(list(by_identity), now=now)
    logger.info(f"Registered {len(by_identity)} cards")
    return by_identity


async def due_cards(
    store: CardRepository,
    cards_by_identity: Mapping[str, Card],
    limit: int | None = None,
    new_limit: int | None = None,
    now: datetime | None = None,
) -> list[Card]:
    """Resolve the store's due set back to the loaded cards, preserving its order."""
    identities = await store.due_set(
        cards_by_identity.keys(), limit=limit, new_limit=new_limit, now=now
    )
    return [cards_by_identity[identity] for identity in identities]


def cards_missing_cloze(cards: Iterable[Card]) -> list[Card]:
    """Cloze cards whose text has no bracketed deletion to hide."""
    return [
        card
        for card in cards
        if isinstance(card.content, ClozeContent) and card.content.hidden_range is None
    ]
