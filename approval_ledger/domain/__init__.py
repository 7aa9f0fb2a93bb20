"""Pure decision logic: votes, rules, workflow transitions and quotas.

Nothing in this package performs I/O. Group membership and time are passed in
explicitly so every function is a deterministic function of its inputs.
"""

from .errors import (
    ApprovalLedgerError,
    ApprovalRuleValidationError,
    AuthorizationError,
    CantVoteError,
    ConcurrencyError,
    DataInconsistencyError,
    GroupNotFoundError,
    InvalidStateError,
    MaxAttemptsExceededError,
    NotFoundError,
    NotWorkflowInitiatorError,
    QuotaAlreadyExistsError,
    QuotaNotFoundError,
    QuotaValidationError,
    TerminalStateError,
    ValidationError,
    VoteValidationError,
    WorkflowNotFoundError,
    WorkflowTemplateNotFoundError,
    WorkflowTemplateStateError,
    WorkflowValidationError,
)
from .quotas import (
    METRICS_BY_SCOPE,
    Quota,
    QuotaFactory,
    QuotaIdentifier,
    QuotaMetric,
    QuotaScope,
)
from .rules import (
    MAX_RULE_NESTING_DEPTH,
    AndRule,
    ApprovalRule,
    ApprovalRuleFactory,
    EvaluationResult,
    GroupMembershipSnapshot,
    GroupRule,
    OrRule,
    RuleType,
    evaluate,
    rule_group_ids,
    rule_to_dict,
)
from .templates import (
    WorkflowTemplate,
    WorkflowTemplateStatus,
    mark_template_as_deprecated,
    mark_template_for_deprecation,
)
from .voters import EntityType, VoterReference, voter_key
from .votes import VOTE_REASON_MAX_LENGTH, Vote, VoteFactory, VoteType, consolidate_votes
from .workflows import (
    TERMINAL_STATUSES,
    CantVoteReason,
    Workflow,
    WorkflowFactory,
    WorkflowStatus,
    cancel,
    cant_vote_reason,
    expire,
    transition,
    withdraw,
)

__all__ = [
    # Errors
    "ApprovalLedgerError",
    "ValidationError",
    "VoteValidationError",
    "ApprovalRuleValidationError",
    "WorkflowValidationError",
    "QuotaValidationError",
    "NotFoundError",
    "WorkflowNotFoundError",
    "WorkflowTemplateNotFoundError",
    "GroupNotFoundError",
    "QuotaNotFoundError",
    "AuthorizationError",
    "CantVoteError",
    "NotWorkflowInitiatorError",
    "ConcurrencyError",
    "MaxAttemptsExceededError",
    "InvalidStateError",
    "TerminalStateError",
    "WorkflowTemplateStateError",
    "QuotaAlreadyExistsError",
    "DataInconsistencyError",
    # Voters & votes
    "EntityType",
    "VoterReference",
    "voter_key",
    "VoteType",
    "Vote",
    "VoteFactory",
    "VOTE_REASON_MAX_LENGTH",
    "consolidate_votes",
    # Rules
    "RuleType",
    "GroupRule",
    "AndRule",
    "OrRule",
    "ApprovalRule",
    "ApprovalRuleFactory",
    "MAX_RULE_NESTING_DEPTH",
    "EvaluationResult",
    "GroupMembershipSnapshot",
    "evaluate",
    "rule_group_ids",
    "rule_to_dict",
    # Templates
    "WorkflowTemplate",
    "WorkflowTemplateStatus",
    "mark_template_for_deprecation",
    "mark_template_as_deprecated",
    # Workflows
    "WorkflowStatus",
    "TERMINAL_STATUSES",
    "CantVoteReason",
    "Workflow",
    "WorkflowFactory",
    "transition",
    "expire",
    "withdraw",
    "cancel",
    "cant_vote_reason",
    # Quotas
    "QuotaScope",
    "QuotaMetric",
    "METRICS_BY_SCOPE",
    "QuotaIdentifier",
    "Quota",
    "QuotaFactory",
]
