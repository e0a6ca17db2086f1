"""MongoDB database connection and operations."""

import logging
from datetime import UTC, datetime
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from orderflow.config import get_settings
from orderflow.database.base import OrderCriteria
from orderflow.models.order import Order
from orderflow.models.otp import IssuanceRecord, OTPPurpose, PurposeStats, VerificationCode
from orderflow.models.product import Product
from orderflow.models.user import UserRecord

logger = logging.getLogger(__name__)
settings = get_settings()

# Newest first; codeId breaks ties between codes issued in the same instant
ISSUE_ORDER = [("createdAt", DESCENDING), ("codeId", DESCENDING)]


class MongoDB:
    """MongoDB connection manager."""

    def __init__(self) -> None:
        """Initialize MongoDB connection."""
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> None:
        """Connect to MongoDB."""
        try:
            self.client = AsyncIOMotorClient(
                settings.mongodb_url,
                maxPoolSize=settings.mongodb_max_pool_size,
                minPoolSize=settings.mongodb_min_pool_size,
                tz_aware=True,
            )
            self.db = self.client[settings.mongodb_database]

            # Test connection
            await self.client.admin.command("ping")
            logger.info("Connected to MongoDB: %s", settings.mongodb_database)

            # Create indexes
            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB: %s", e)
            raise

    async def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    def collection(self, name: str) -> AsyncIOMotorCollection:
        """Return a collection, failing if not connected."""
        if self.db is None:
            raise ConnectionError("Database not connected")
        return self.db[name]

    async def _create_indexes(self) -> None:
        """Create database indexes."""
        if self.db is None:
            return

        orders = self.db[settings.mongodb_order_collection]
        await orders.create_index("orderNumber", unique=True, name="orderNumber_unique")
        await orders.create_index(
            [("customerId", ASCENDING), ("createdAt", DESCENDING)], name="customer_created"
        )
        await orders.create_index([("storeId", ASCENDING), ("state", ASCENDING)], name="store_state")
        await orders.create_index(
            [("courierId", ASCENDING), ("state", ASCENDING)], name="courier_state"
        )

        await self.db[settings.mongodb_product_collection].create_index(
            "productId", unique=True, name="productId_unique"
        )
        await self.db[settings.mongodb_user_collection].create_index(
            "userId", unique=True, name="userId_unique"
        )

        codes = self.db[settings.mongodb_code_collection]
        await codes.create_index("codeId", unique=True, name="codeId_unique")
        await codes.create_index(
            [("phone", ASCENDING), ("purpose", ASCENDING), ("createdAt", DESCENDING)],
            name="phone_purpose_created",
        )

        issuances = self.db[settings.mongodb_issuance_collection]
        await issuances.create_index(
            [("phone", ASCENDING), ("purpose", ASCENDING), ("issuedAt", DESCENDING)],
            name="phone_purpose_issued",
        )
        await issuances.create_index(
            "issuedAt",
            expireAfterSeconds=settings.otp_rate_window_minutes * 60,
            name="issuedAt_ttl",
        )
        logger.info("MongoDB indexes created")


class MongoOrderRepository:
    """Orders collection."""

    def __init__(self, mongo: MongoDB) -> None:
        self.mongo = mongo

    @property
    def _orders(self) -> AsyncIOMotorCollection:
        return self.mongo.collection(settings.mongodb_order_collection)

    async def insert(self, order: Order) -> Order:
        try:
            await self._orders.insert_one(order.model_dump())
        except DuplicateKeyError:
            raise ValueError(f"Order '{order.orderNumber}' already exists")
        return order

    async def get(self, order_id: str) -> Optional[Order]:
        doc = await self._orders.find_one({"orderNumber": order_id}, {"_id": 0})
        return Order(**doc) if doc else None

    async def update_if(
        self, order_id: str, expected: dict[str, Any], changes: dict[str, Any]
    ) -> Optional[Order]:
        changes = {**changes, "updatedAt": datetime.now(UTC)}
        doc = await self._orders.find_one_and_update(
            {"orderNumber": order_id, **expected},
            {"$set": changes},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        return Order(**doc) if doc else None

    async def search(
        self, criteria: OrderCriteria, skip: int = 0, limit: int = 10
    ) -> tuple[list[Order], int]:
        query = self._build_query(criteria)
        cursor = (
            self._orders.find(query, {"_id": 0})
            .sort("createdAt", DESCENDING)
            .skip(skip)
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        total = await self._orders.count_documents(query)
        return [Order(**doc) for doc in docs], total

    @staticmethod
    def _build_query(criteria: OrderCriteria) -> dict[str, Any]:
        query: dict[str, Any] = {}
        if criteria.customer_id:
            query["customerId"] = criteria.customer_id
        if criteria.store_id:
            query["storeId"] = criteria.store_id
        if criteria.courier_id:
            query["courierId"] = criteria.courier_id
        if criteria.state:
            query["state"] = criteria.state.value
        if criteria.order_number:
            query["orderNumber"] = criteria.order_number
        if criteria.created_from or criteria.created_to:
            query["createdAt"] = {}
            if criteria.created_from:
                query["createdAt"]["$gte"] = criteria.created_from
            if criteria.created_to:
                query["createdAt"]["$lte"] = criteria.created_to
        if criteria.unclaimed:
            query["courierId"] = None
        return query


class MongoSequence:
    """Counters collection with one document per counter."""

    def __init__(self, mongo: MongoDB) -> None:
        self.mongo = mongo

    async def next_value(self, name: str) -> int:
        doc = await self.mongo.collection(settings.mongodb_counter_collection).find_one_and_update(
            {"_id": name},
            {"$inc": {"value": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["value"])


class MongoCatalog:
    """Products collection."""

    def __init__(self, mongo: MongoDB) -> None:
        self.mongo = mongo

    @property
    def _products(self) -> AsyncIOMotorCollection:
        return self.mongo.collection(settings.mongodb_product_collection)

    async def get_product(self, product_id: str) -> Optional[Product]:
        doc = await self._products.find_one({"productId": product_id}, {"_id": 0})
        return Product(**doc) if doc else None

    async def decrement_stock(self, product_id: str, quantity: int) -> Optional[Product]:
        doc = await self._products.find_one_and_update(
            {"productId": product_id, "available": True, "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity}},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        return Product(**doc) if doc else None

    async def increment_stock(self, product_id: str, quantity: int) -> None:
        result = await self._products.update_one(
            {"productId": product_id}, {"$inc": {"stock": quantity}}
        )
        if not result.matched_count:
            logger.warning("Cannot restock missing product %s", product_id)

    async def upsert_product(self, product: Product) -> None:
        await self._products.replace_one(
            {"productId": product.productId}, product.model_dump(), upsert=True
        )


class MongoUserDirectory:
    """Users collection."""

    def __init__(self, mongo: MongoDB) -> None:
        self.mongo = mongo

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        doc = await self.mongo.collection(settings.mongodb_user_collection).find_one(
            {"userId": user_id}, {"_id": 0}
        )
        return UserRecord(**doc) if doc else None

    async def upsert_user(self, user: UserRecord) -> None:
        await self.mongo.collection(settings.mongodb_user_collection).replace_one(
            {"userId": user.userId}, user.model_dump(), upsert=True
        )


class MongoCodeStore:
    """Verification codes and issuance log collections."""

    def __init__(self, mongo: MongoDB) -> None:
        self.mongo = mongo

    @property
    def _codes(self) -> AsyncIOMotorCollection:
        return self.mongo.collection(settings.mongodb_code_collection)

    @property
    def _issuances(self) -> AsyncIOMotorCollection:
        return self.mongo.collection(settings.mongodb_issuance_collection)

    async def insert(self, code: VerificationCode) -> None:
        await self._codes.insert_one(code.model_dump())

    async def log_issuance(self, record: IssuanceRecord) -> None:
        await self._issuances.insert_one(record.model_dump())

    async def issuances_since(
        self, phone: str, purpose: OTPPurpose, since: datetime
    ) -> list[datetime]:
        cursor = self._issuances.find(
            {"phone": phone, "purpose": purpose.value, "issuedAt": {"$gte": since}},
            {"_id": 0, "issuedAt": 1},
        ).sort("issuedAt", ASCENDING)
        return [doc["issuedAt"] async for doc in cursor]

    async def latest_issuance(self, phone: str, purpose: OTPPurpose) -> Optional[datetime]:
        doc = await self._issuances.find_one(
            {"phone": phone, "purpose": purpose.value},
            {"_id": 0, "issuedAt": 1},
            sort=[("issuedAt", DESCENDING)],
        )
        return doc["issuedAt"] if doc else None

    async def supersede(self, phone: str, purpose: OTPPurpose) -> int:
        newest = await self._codes.find_one(
            {"phone": phone, "purpose": purpose.value},
            {"_id": 0, "createdAt": 1, "codeId": 1},
            sort=ISSUE_ORDER,
        )
        if newest is None:
            return 0
        result = await self._codes.update_many(
            {
                "phone": phone,
                "purpose": purpose.value,
                "verified": False,
                "$or": [
                    {"createdAt": {"$lt": newest["createdAt"]}},
                    {"createdAt": newest["createdAt"], "codeId": {"$lt": newest["codeId"]}},
                ],
            },
            {"$set": {"verified": True}},
        )
        return result.modified_count

    async def find_live(
        self, phone: str, purpose: OTPPurpose, now: datetime
    ) -> Optional[VerificationCode]:
        doc = await self._codes.find_one(
            {
                "phone": phone,
                "purpose": purpose.value,
                "verified": False,
                "expiresAt": {"$gt": now},
            },
            {"_id": 0},
            sort=ISSUE_ORDER,
        )
        return VerificationCode(**doc) if doc else None

    async def increment_attempts(
        self, code_id: str, max_attempts: int, now: datetime
    ) -> Optional[VerificationCode]:
        doc = await self._codes.find_one_and_update(
            {
                "codeId": code_id,
                "verified": False,
                "expiresAt": {"$gt": now},
                "attempts": {"$lt": max_attempts},
            },
            {"$inc": {"attempts": 1}},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        return VerificationCode(**doc) if doc else None

    async def mark_verified(self, code_id: str) -> bool:
        result = await self._codes.update_one(
            {"codeId": code_id, "verified": False}, {"$set": {"verified": True}}
        )
        return result.modified_count == 1

    async def delete(self, code_id: str) -> None:
        await self._codes.delete_one({"codeId": code_id})
        await self._issuances.delete_one({"codeId": code_id})

    async def purge(self, now: datetime, max_attempts: int, log_cutoff: datetime) -> int:
        result = await self._codes.delete_many(
            {
                "$or": [
                    {"expiresAt": {"$lt": now}},
                    {"verified": True},
                    {"attempts": {"$gte": max_attempts}},
                ]
            }
        )
        await self._issuances.delete_many({"issuedAt": {"$lt": log_cutoff}})
        return result.deleted_count

    async def stats(
        self,
        now: datetime,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        purpose: Optional[OTPPurpose] = None,
    ) -> list[PurposeStats]:
        match: dict[str, Any] = {}
        if created_from or created_to:
            match["createdAt"] = {}
            if created_from:
                match["createdAt"]["$gte"] = created_from
            if created_to:
                match["createdAt"]["$lte"] = created_to
        if purpose:
            match["purpose"] = purpose.value

        pipeline: list[dict[str, Any]] = [
            {"$match": match},
            {
                "$group": {
                    "_id": "$purpose",
                    "total": {"$sum": 1},
                    "verified": {"$sum": {"$cond": ["$verified", 1, 0]}},
                    "expired": {"$sum": {"$cond": [{"$lt": ["$expiresAt", now]}, 1, 0]}},
                    "avg_attempts": {"$avg": "$attempts"},
                }
            }
        ]
        rows = await self._codes.aggregate(pipeline).to_list(length=None)
        return [
            PurposeStats(
                purpose=row["_id"],
                total=row["total"],
                verified=row["verified"],
                expired=row["expired"],
                avg_attempts=row["avg_attempts"] or 0.0,
            )
            for row in rows
        ]


# Global MongoDB instance
mongodb = MongoDB()
