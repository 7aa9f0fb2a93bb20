"""Tunables shared by the approval services."""

from dataclasses import dataclass
from typing import Any

from ..domain import MAX_RULE_NESTING_DEPTH, VOTE_REASON_MAX_LENGTH


@dataclass
class EngineConfig:
    """Configuration for vote casting, workflow transitions and bulk cancellation."""

    # Deepest allowed And/Or nesting, root at depth 0
    max_rule_nesting_depth: int = MAX_RULE_NESTING_DEPTH

    vote_reason_max_length: int = VOTE_REASON_MAX_LENGTH

    # Re-read/re-evaluate/re-write cycles after a lost status write
    vote_transition_max_attempts: int = 3

    # Passes over the pending workflows of a template being deprecated
    cancel_workflows_max_attempts: int = 5

    # Used when the template sets no default of its own
    default_workflow_expires_in_hours: int = 24 * 30

    max_expires_in_hours: int = 24 * 365

    @classmethod
    def from_settings(cls, settings: Any) -> "EngineConfig":
        return cls(
            max_rule_nesting_depth=settings.max_rule_nesting_depth,
            vote_reason_max_length=settings.vote_reason_max_length,
            vote_transition_max_attempts=settings.vote_transition_max_attempts,
            cancel_workflows_max_attempts=settings.cancel_workflows_max_attempts,
            default_workflow_expires_in_hours=settings.default_workflow_expires_in_hours,
            max_expires_in_hours=settings.max_expires_in_hours,
        )


DEFAULT_CONFIG = EngineConfig()
