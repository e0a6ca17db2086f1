"""Database package."""

from orderflow.database.base import (
    Catalog,
    CodeStore,
    OrderCriteria,
    OrderRepository,
    OrderSequence,
    UserDirectory,
)
from orderflow.database.mongodb import MongoDB, mongodb
from orderflow.database.storage import Storage, build_storage, memory_storage, mongo_storage

__all__ = [
    "Catalog",
    "CodeStore",
    "OrderCriteria",
    "OrderRepository",
    "OrderSequence",
    "UserDirectory",
    "MongoDB",
    "mongodb",
    "Storage",
    "build_storage",
    "memory_storage",
    "mongo_storage",
]
