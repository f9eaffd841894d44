"""
app/db/indexes.py

Purpose: Database index management

- Unique member keys (LINE user ID, numeric member ID)
- Index backing the stale registration sweep
"""

from app.db.mongo import get_members_collection
from app.core.logging import get_logger

logger = get_logger(__name__)


async def create_indexes():
    """
    Creates all necessary database indexes.
    This function is idempotent - safe to run multiple times.
    """
    try:
        members = get_members_collection()

        logger.info("Creating database indexes...")

        # One member per LINE user; also guards concurrent follow events
        await members.create_index("line_user_id", unique=True, name="line_user_id_unique")
        logger.debug("Created unique index on members.line_user_id")

        # Public member id (QR code resolution)
        await members.create_index("member_id", unique=True, name="member_id_unique")
        logger.debug("Created unique index on members.member_id")

        # Stale sweep: state in (...) and last_active_at < cutoff
        await members.create_index(
            [("state", 1), ("last_active_at", 1)],
            name="state_last_active_idx"
        )
        logger.debug("Created compound index on members.state + last_active_at")

        member_indexes = await members.index_information()
        logger.info(f"✅ Database indexes ready (members={len(member_indexes)})")

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise
