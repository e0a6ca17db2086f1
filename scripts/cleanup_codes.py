"""Purge expired, consumed and exhausted verification codes.

Meant to run from a scheduler (cron, Kubernetes CronJob, ...).
"""

import asyncio
import logging

from orderflow.config import get_settings
from orderflow.database.mongodb import MongoCodeStore, mongodb
from orderflow.services.notifier import Notifier
from orderflow.services.otp_service import OTPService
from orderflow.utils.logger import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


async def cleanup_codes() -> int:
    settings = get_settings()
    await mongodb.connect()
    try:
        service = OTPService(MongoCodeStore(mongodb), Notifier.from_settings(settings), settings)
        return await service.cleanup()
    finally:
        await mongodb.disconnect()


if __name__ == "__main__":
    asyncio.run(cleanup_codes())
