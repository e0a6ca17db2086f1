"""Storage bundle wiring a backend to the services."""

import logging
from dataclasses import dataclass
from typing import Optional

from orderflow.config import Settings
from orderflow.database.base import Catalog, CodeStore, OrderRepository, OrderSequence, UserDirectory
from orderflow.database.memory import (
    MemoryCatalog,
    MemoryCodeStore,
    MemoryOrderRepository,
    MemorySequence,
    MemoryUserDirectory,
)
from orderflow.database.mongodb import (
    MongoCatalog,
    MongoCodeStore,
    MongoDB,
    MongoOrderRepository,
    MongoSequence,
    MongoUserDirectory,
    mongodb,
)

logger = logging.getLogger(__name__)


@dataclass
class Storage:
    """Collaborators backing one running application."""

    orders: OrderRepository
    sequence: OrderSequence
    catalog: Catalog
    users: UserDirectory
    codes: CodeStore
    mongo: Optional[MongoDB] = None

    async def connect(self) -> None:
        if self.mongo is not None:
            await self.mongo.connect()

    async def disconnect(self) -> None:
        if self.mongo is not None:
            await self.mongo.disconnect()

    @property
    def status(self) -> str:
        if self.mongo is None:
            return "memory"
        return "connected" if self.mongo.db is not None else "disconnected"


def memory_storage() -> Storage:
    """Build an in-process storage bundle."""
    return Storage(
        orders=MemoryOrderRepository(),
        sequence=MemorySequence(),
        catalog=MemoryCatalog(),
        users=MemoryUserDirectory(),
        codes=MemoryCodeStore(),
    )


def mongo_storage(mongo: MongoDB = mongodb) -> Storage:
    """Build a storage bundle backed by MongoDB."""
    return Storage(
        orders=MongoOrderRepository(mongo),
        sequence=MongoSequence(mongo),
        catalog=MongoCatalog(mongo),
        users=MongoUserDirectory(mongo),
        codes=MongoCodeStore(mongo),
        mongo=mongo,
    )


def build_storage(settings: Settings) -> Storage:
    """Select the storage backend named in settings."""
    if settings.storage_backend == "memory":
        logger.warning("Using in-memory storage; data is lost on restart")
        return memory_storage()
    return mongo_storage()
