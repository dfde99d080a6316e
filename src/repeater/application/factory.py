"""
Card Store Factory
Centralizes wiring the configured store and performance model.
"""

from repeater.application.config import AppConfig
from repeater.application.scheduler import PerformanceModel
from repeater.infrastructure.sqlite.card_store import SqliteCardStore


async def open_card_store(config: AppConfig) -> SqliteCardStore:
    """
    Returns an open SqliteCardStore for the configured database.

    Raises:
        ValueError: The configured scheduler coefficients are invalid.
        PersistenceError: The database could not be opened.
    """
    model = PerformanceModel(config.scheduler_parameters())
    return await SqliteCardStore.open(config.db_path, pool_size=config.pool_size, model=model)
