"""Group membership reads used for voting eligibility and rule evaluation."""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import GroupMembershipSnapshot, VoterReference, voter_key
from ..models import Group as GroupRow
from ..models import GroupMembership as GroupMembershipRow


class GroupMembershipRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_membership_snapshot(self, group_ids: Iterable[UUID]) -> GroupMembershipSnapshot:
        """
        Point-in-time membership of the given groups.

        Every requested group is present in the result, with an empty set
        when it has no members.
        """
        group_ids = list(group_ids)
        members: dict[UUID, set[str]] = {group_id: set() for group_id in group_ids}
        if not group_ids:
            return {}

        result = await self._session.execute(
            select(
                GroupMembershipRow.group_id,
                GroupMembershipRow.entity_id,
                GroupMembershipRow.entity_type,
            ).where(GroupMembershipRow.group_id.in_(group_ids))
        )
        for group_id, entity_id, entity_type in result.all():
            members[group_id].add(voter_key(entity_id, entity_type))

        return {group_id: frozenset(keys) for group_id, keys in members.items()}

    async def get_entity_group_ids(self, entity: VoterReference) -> set[UUID]:
        result = await self._session.execute(
            select(GroupMembershipRow.group_id).where(
                GroupMembershipRow.entity_id == entity.entity_id,
                GroupMembershipRow.entity_type == entity.entity_type,
            )
        )
        return set(result.scalars().all())

    async def get_existing_group_ids(self, group_ids: Iterable[UUID]) -> set[UUID]:
        group_ids = list(group_ids)
        if not group_ids:
            return set()
        result = await self._session.execute(
            select(GroupRow.id).where(GroupRow.id.in_(group_ids))
        )
        return set(result.scalars().all())
