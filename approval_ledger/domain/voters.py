"""Voter identity: users and agents share one voting space."""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class EntityType(str, Enum):
    USER = "user"
    AGENT = "agent"


def voter_key(entity_id: UUID, entity_type: EntityType) -> str:
    """Normalized key used to deduplicate votes and match group members."""
    return f"{EntityType(entity_type).value}:{entity_id}"


@dataclass(frozen=True)
class VoterReference:
    entity_id: UUID
    entity_type: EntityType

    @property
    def key(self) -> str:
        return voter_key(self.entity_id, self.entity_type)

    def to_dict(self) -> dict:
        return {"entity_id": str(self.entity_id), "entity_type": self.entity_type.value}
