"""Database initialization script."""

import asyncio
import logging

from orderflow.database.mongodb import MongoCatalog, MongoUserDirectory, mongodb
from orderflow.models.product import Product
from orderflow.models.user import ApprovalState, Role, UserRecord
from orderflow.utils.logger import setup_logging

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

SAMPLE_USERS = [
    UserRecord(
        userId="admin_001",
        name="Admin",
        email="admin@example.com",
        role=Role.ADMIN,
        approvalState=ApprovalState.APPROVED,
    ),
    UserRecord(
        userId="customer_001",
        name="Kai He",
        email="kai.he@example.com",
        phone="+1234567890",
        role=Role.CUSTOMER,
        approvalState=ApprovalState.APPROVED,
    ),
    UserRecord(
        userId="store_001",
        name="Corner Bakery",
        email="bakery@example.com",
        phone="+1234567891",
        role=Role.STORE,
        approvalState=ApprovalState.APPROVED,
    ),
    UserRecord(
        userId="courier_001",
        name="Bob Johnson",
        email="bob.johnson@example.com",
        phone="+1234567892",
        role=Role.COURIER,
        approvalState=ApprovalState.APPROVED,
    ),
]

SAMPLE_PRODUCTS = [
    Product(productId="prod_001", storeId="store_001", name="Sourdough loaf", price=6.5, stock=20, prepMinutes=10),
    Product(productId="prod_002", storeId="store_001", name="Croissant", price=2.5, stock=60, prepMinutes=5),
    Product(productId="prod_003", storeId="store_001", name="Birthday cake", price=32.0, stock=3, prepMinutes=45),
]


async def init_database():
    """Create indexes and load sample users and products."""
    try:
        logger.info("Initializing database...")

        # Connecting also creates the indexes
        await mongodb.connect()

        users = MongoUserDirectory(mongodb)
        for user in SAMPLE_USERS:
            await users.upsert_user(user)
            logger.info("Upserted user: %s (%s)", user.userId, user.role.value)

        catalog = MongoCatalog(mongodb)
        for product in SAMPLE_PRODUCTS:
            await catalog.upsert_product(product)
            logger.info("Upserted product: %s", product.productId)

        logger.info("Database initialization completed successfully")

    except Exception as e:
        logger.error("Error initializing database: %s", e)
        raise

    finally:
        await mongodb.disconnect()


if __name__ == "__main__":
    asyncio.run(init_database())
