"""
Approval rules: a small boolean tree over group quorums.

Rules are plain tagged values (GroupRule, AndRule, OrRule). Validation happens
once, when a rule is built from raw JSON; evaluation is a pure recursive
function over already validated rules.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union
from uuid import UUID

from .errors import ApprovalRuleValidationError
from .votes import Vote, VoteType

MAX_RULE_NESTING_DEPTH = 2


class RuleType(str, Enum):
    GROUP_REQUIREMENT = "GROUP_REQUIREMENT"
    AND = "AND"
    OR = "OR"


class EvaluationResult(str, Enum):
    APPROVED = "APPROVED"
    PENDING = "PENDING"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class GroupRule:
    """At least ``min_count`` members of ``group_id`` approved for that group."""

    group_id: UUID
    min_count: int

    type = RuleType.GROUP_REQUIREMENT


@dataclass(frozen=True)
class AndRule:
    rules: tuple["ApprovalRule", ...]

    type = RuleType.AND


@dataclass(frozen=True)
class OrRule:
    rules: tuple["ApprovalRule", ...]

    type = RuleType.OR


ApprovalRule = Union[GroupRule, AndRule, OrRule]

# group id -> normalized voter keys of its members, read at evaluation time
GroupMembershipSnapshot = Mapping[UUID, frozenset[str]]


# =============================================================================
# CONSTRUCTION
# =============================================================================


class ApprovalRuleFactory:
    """Builds approval rules from raw (JSON-decoded) data."""

    @classmethod
    def validate(
        cls,
        data: Any,
        depth: int = 0,
        *,
        max_depth: int = MAX_RULE_NESTING_DEPTH,
    ) -> ApprovalRule:
        """
        Validate a raw rule tree and return the typed rule.

        The root sits at depth 0; any rule deeper than ``max_depth`` is
        rejected.

        Raises:
            ApprovalRuleValidationError: on the first malformed node
        """
        if depth > max_depth:
            raise ApprovalRuleValidationError("max_rule_nesting_exceeded")
        if isinstance(data, (GroupRule, AndRule, OrRule)):
            data = rule_to_dict(data)
        if not isinstance(data, Mapping):
            raise ApprovalRuleValidationError("malformed_content")

        rule_type = data.get("type")
        if rule_type == RuleType.GROUP_REQUIREMENT.value:
            return cls._validate_group_rule(data)
        if rule_type == RuleType.AND.value:
            return AndRule(rules=cls._validate_children(data, depth, max_depth, "and_rule_must_have_rules"))
        if rule_type == RuleType.OR.value:
            return OrRule(rules=cls._validate_children(data, depth, max_depth, "or_rule_must_have_rules"))
        raise ApprovalRuleValidationError("invalid_rule_type")

    @staticmethod
    def _validate_group_rule(data: Mapping[str, Any]) -> GroupRule:
        raw_group_id = data.get("group_id", data.get("groupId"))
        try:
            group_id = raw_group_id if isinstance(raw_group_id, UUID) else UUID(raw_group_id)
        except (TypeError, ValueError, AttributeError):
            raise ApprovalRuleValidationError("group_rule_invalid_group_id")

        min_count = data.get("min_count", data.get("minCount"))
        # bool is an int subclass, True must not pass as a count of 1
        if isinstance(min_count, bool) or not isinstance(min_count, int) or min_count < 1:
            raise ApprovalRuleValidationError("group_rule_invalid_min_count")

        return GroupRule(group_id=group_id, min_count=min_count)

    @classmethod
    def _validate_children(
        cls,
        data: Mapping[str, Any],
        depth: int,
        max_depth: int,
        empty_error: str,
    ) -> tuple[ApprovalRule, ...]:
        raw_rules = data.get("rules")
        if not isinstance(raw_rules, (list, tuple)) or not raw_rules:
            raise ApprovalRuleValidationError(empty_error)

        children: list[ApprovalRule] = []
        for raw in raw_rules:
            child = cls.validate(raw, depth + 1, max_depth=max_depth)
            if child not in children:
                children.append(child)
        return tuple(children)


def rule_to_dict(rule: ApprovalRule) -> dict:
    """Serialize a rule to its stored JSON shape."""
    if isinstance(rule, GroupRule):
        return {
            "type": rule.type.value,
            "group_id": str(rule.group_id),
            "min_count": rule.min_count,
        }
    return {"type": rule.type.value, "rules": [rule_to_dict(r) for r in rule.rules]}


def rule_group_ids(rule: ApprovalRule) -> list[UUID]:
    """All group ids referenced by a rule, in first-seen order."""
    if isinstance(rule, GroupRule):
        return [rule.group_id]
    group_ids: list[UUID] = []
    for child in rule.rules:
        for group_id in rule_group_ids(child):
            if group_id not in group_ids:
                group_ids.append(group_id)
    return group_ids


# =============================================================================
# EVALUATION
# =============================================================================


def evaluate(
    rule: ApprovalRule,
    consolidated_votes: Iterable[Vote],
    membership: GroupMembershipSnapshot,
) -> EvaluationResult:
    """
    Decide a workflow from its consolidated votes.

    A single VETO rejects regardless of the rule. Otherwise the rule tree is
    evaluated against the APPROVE votes; a satisfied root approves, anything
    else stays pending.
    """
    votes = list(consolidated_votes)
    if any(vote.type is VoteType.VETO for vote in votes):
        return EvaluationResult.REJECTED

    approvals = [vote for vote in votes if vote.type is VoteType.APPROVE]
    if is_rule_satisfied(rule, approvals, membership):
        return EvaluationResult.APPROVED
    return EvaluationResult.PENDING


def is_rule_satisfied(
    rule: ApprovalRule,
    approvals: list[Vote],
    membership: GroupMembershipSnapshot,
) -> bool:
    if isinstance(rule, GroupRule):
        return count_group_approvals(rule.group_id, approvals, membership) >= rule.min_count
    if isinstance(rule, AndRule):
        return all(is_rule_satisfied(child, approvals, membership) for child in rule.rules)
    if isinstance(rule, OrRule):
        return any(is_rule_satisfied(child, approvals, membership) for child in rule.rules)
    raise TypeError(f"Unsupported approval rule: {rule!r}")


def count_group_approvals(
    group_id: UUID,
    approvals: Iterable[Vote],
    membership: GroupMembershipSnapshot,
) -> int:
    """Distinct members of the group who approved on behalf of that group."""
    members = membership.get(group_id, frozenset())
    voters = {
        vote.voter.key
        for vote in approvals
        if vote.type is VoteType.APPROVE
        and group_id in vote.voted_for_groups
        and vote.voter.key in members
    }
    return len(voters)
