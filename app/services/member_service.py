"""
app/services/member_service.py

Purpose: Member data management (MongoDB)

- Lookup by LINE user ID and by public member ID
- Member creation with sequential numeric IDs
- Partial updates returning the stored member
- Stale registration queries for the sweep
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.exceptions import MemberStoreError, ResourceNotFoundError
from app.core.logging import get_logger
from app.db.mongo import get_counters_collection, get_members_collection
from app.flow.states import RegistrationStep
from app.models.member import Member, document_changes

logger = get_logger(__name__)

MEMBER_ID_COUNTER = "member_id"


class MongoMemberStore:
    """
    MemberStore backed by the `members` collection.

    Each call is a single atomic MongoDB operation; callers serialize
    read-decide-write cycles per member with MemberLockRegistry.
    """

    def __init__(self, members=None, counters=None):
        self._members = members
        self._counters = counters

    @property
    def members(self):
        return self._members if self._members is not None else get_members_collection()

    @property
    def counters(self):
        return self._counters if self._counters is not None else get_counters_collection()

    async def get_by_external_id(self, line_user_id: str) -> Optional[Member]:
        try:
            doc = await self.members.find_one({"line_user_id": line_user_id})
        except PyMongoError as e:
            raise MemberStoreError(f"Failed to load member: {e}") from e
        return Member.from_document(doc) if doc else None

    async def get_by_id(self, member_id: int) -> Optional[Member]:
        try:
            doc = await self.members.find_one({"member_id": member_id})
        except PyMongoError as e:
            raise MemberStoreError(f"Failed to load member {member_id}: {e}") from e
        return Member.from_document(doc) if doc else None

    async def _next_member_id(self) -> int:
        counter = await self.counters.find_one_and_update(
            {"_id": MEMBER_ID_COUNTER},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    async def insert(self, line_user_id: str, display_name: str) -> Member:
        """
        Creates a member in AWAITING_PHONE.

        A follow racing with another process for the same LINE user hits
        the unique index; the member that won is returned instead.
        """
        existing = await self.get_by_external_id(line_user_id)
        if existing:
            return existing

        try:
            member = Member(
                member_id=await self._next_member_id(),
                line_user_id=line_user_id,
                display_name=display_name or "",
            )
            await self.members.insert_one(member.to_document())
            logger.info(f"New member created: {member.member_id}")
            return member

        except DuplicateKeyError:
            logger.warning("Duplicate follow, returning existing member")
            existing = await self.get_by_external_id(line_user_id)
            if existing is None:
                raise MemberStoreError("Member insert conflicted but no member found")
            return existing
        except PyMongoError as e:
            raise MemberStoreError(f"Failed to create member: {e}") from e

    async def update(self, member_id: int, changes: Dict[str, Any]) -> Member:
        """
        Applies field changes (`state` as a MemberState) and returns the
        updated member.

        Raises:
            ResourceNotFoundError: If the member does not exist
            MemberStoreError: On database failure
        """
        try:
            doc = await self.members.find_one_and_update(
                {"member_id": member_id},
                {"$set": document_changes(changes)},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise MemberStoreError(f"Failed to update member {member_id}: {e}") from e

        if doc is None:
            raise ResourceNotFoundError(f"Member {member_id} not found")
        return Member.from_document(doc)

    async def find_stale(self, steps: Iterable[RegistrationStep], before: datetime) -> List[Member]:
        query = {
            "state": {"$in": [int(step) for step in steps]},
            "last_active_at": {"$lt": before},
        }
        try:
            docs = await self.members.find(query).to_list(length=None)
        except PyMongoError as e:
            raise MemberStoreError(f"Failed to query stale members: {e}") from e
        return [Member.from_document(doc) for doc in docs]
