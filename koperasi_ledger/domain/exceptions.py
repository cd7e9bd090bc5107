"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidAmountError(DomainException, ValueError):
    """Amount is not an exact two-digit decimal"""

    pass


# Precondition errors: raised before a transaction record exists


class PreconditionError(DomainException):
    """Request cannot be accepted; nothing is persisted"""

    pass


class NotFoundError(PreconditionError):
    """Referenced entity does not exist or is soft-deleted"""

    pass


class InactiveStaffError(PreconditionError):
    """Acting staff member is disabled"""

    pass


class InactiveMemberError(PreconditionError):
    """Owning member is not ACTIVE"""

    pass


class LoanNotApprovedError(PreconditionError):
    """Loan is not in APPROVED status"""

    pass


class InvalidTransactionError(PreconditionError):
    """Transaction request is malformed (amount, target, kind)"""

    pass


# Business rule violations: raised inside the state machine only and
# recorded as REJECTED transactions


class BusinessRuleViolation(DomainException):
    """Transaction failed a business rule at processing time"""

    pass


class MemberInactive(BusinessRuleViolation):
    def __init__(self) -> None:
        super().__init__("member inactive")


class InsufficientBalance(BusinessRuleViolation):
    def __init__(self) -> None:
        super().__init__("insufficient balance")


class LoanNotApproved(BusinessRuleViolation):
    def __init__(self) -> None:
        super().__init__("loan not approved")


class AlreadyDisbursed(BusinessRuleViolation):
    def __init__(self) -> None:
        super().__init__("already disbursed")


class AmountMismatch(BusinessRuleViolation):
    def __init__(self) -> None:
        super().__init__("amount mismatch")


class ExceedsOutstanding(BusinessRuleViolation):
    def __init__(self) -> None:
        super().__init__("exceeds outstanding")


class TargetMissing(BusinessRuleViolation):
    """Account or loan vanished between creation and processing"""

    pass


# Conflicts


class ConflictError(DomainException):
    """Operation collides with the current terminal state"""

    pass


class AlreadyProcessedError(ConflictError):
    """Transaction is no longer PENDING"""

    pass


class SnapshotFinalizedError(ConflictError):
    """Financial snapshot is FINAL and immutable"""

    pass


# Infrastructure


class StorageError(DomainException):
    """Store unavailable or atomic commit failed"""

    pass
