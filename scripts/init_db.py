"""
Database initialization script for MemberPass

Run once (and after every deploy, it is idempotent) to create indexes
and the member id counter:
    python scripts/init_db.py
"""

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables
load_dotenv()

from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, get_counters_collection
from app.db.indexes import create_indexes

logger = get_logger("scripts.init_db")


async def main():
    setup_logging()
    await connect_to_mongo()
    try:
        await create_indexes()

        # Member ids start at 1; never reset an existing sequence
        counters = get_counters_collection()
        await counters.update_one(
            {"_id": "member_id"},
            {"$setOnInsert": {"seq": 0}},
            upsert=True,
        )
        counter = await counters.find_one({"_id": "member_id"})
        logger.info(f"✅ Member id counter at {counter['seq']}")
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main())
