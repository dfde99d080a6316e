# Infrastructure SQLite Package
from .card_store import SqliteCardStore
from .pool import ConnectionPool

__all__ = ["SqliteCardStore", "ConnectionPool"]
