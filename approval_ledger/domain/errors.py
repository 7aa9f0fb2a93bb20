"""
Error taxonomy for the approval engine.

Every error carries a stable snake_case ``code``. Lower layers raise these
unchanged; only the HTTP boundary translates them into responses.
"""


# =============================================================================
# BASE
# =============================================================================


class ApprovalLedgerError(Exception):
    """Base exception for approval engine operations."""

    default_code = "unknown_error"

    def __init__(self, code: str | None = None, message: str | None = None):
        self.code = code or self.default_code
        super().__init__(message or self.code)


# =============================================================================
# (a) CLIENT VALIDATION
# =============================================================================


class ValidationError(ApprovalLedgerError):
    """Input is malformed. Recoverable by the caller, never retried."""


class VoteValidationError(ValidationError):
    pass


class ApprovalRuleValidationError(ValidationError):
    pass


class WorkflowValidationError(ValidationError):
    pass


class QuotaValidationError(ValidationError):
    pass


# =============================================================================
# (b) NOT FOUND
# =============================================================================


class NotFoundError(ApprovalLedgerError):
    """A referenced entity does not exist."""


class WorkflowNotFoundError(NotFoundError):
    default_code = "workflow_not_found"


class WorkflowTemplateNotFoundError(NotFoundError):
    default_code = "workflow_template_not_found"


class GroupNotFoundError(NotFoundError):
    default_code = "group_not_found"


class QuotaNotFoundError(NotFoundError):
    default_code = "quota_not_found"


# =============================================================================
# (c) AUTHORIZATION
# =============================================================================


class AuthorizationError(ApprovalLedgerError):
    """The requestor lacks standing for the action."""


class CantVoteError(AuthorizationError):
    """Raised with one of the CantVoteReason codes."""


class NotWorkflowInitiatorError(AuthorizationError):
    default_code = "not_workflow_initiator"


# =============================================================================
# (d) CONCURRENCY
# =============================================================================


class ConcurrencyError(ApprovalLedgerError):
    """Version mismatch on a guarded write. Retryable by re-reading."""

    default_code = "concurrency_error"


class MaxAttemptsExceededError(ConcurrencyError):
    """A bounded retry loop gave up."""

    default_code = "max_attempts_reach_for_cancelling_workflows"


# =============================================================================
# STATE
# =============================================================================


class InvalidStateError(ApprovalLedgerError):
    """Operation not allowed in the current state."""


class TerminalStateError(InvalidStateError):
    default_code = "workflow_in_terminal_state"


class WorkflowTemplateStateError(InvalidStateError):
    pass


class QuotaAlreadyExistsError(InvalidStateError):
    default_code = "quota_already_exists"


# =============================================================================
# (e) INTERNAL DATA INCONSISTENCY
# =============================================================================


class DataInconsistencyError(ApprovalLedgerError):
    """A stored value no longer passes validation."""

    default_code = "internal_data_inconsistency"
