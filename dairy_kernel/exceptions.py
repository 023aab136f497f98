"""
Typed Exception Hierarchy for the Dairy Ledger Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from DairyLedgerError:

    DairyLedgerError (base)
    |
    +-- LedgerError
    |   +-- UnknownLedgerError
    |   +-- DuplicateLedgerNameError
    |   +-- LedgerInactiveError
    |   +-- LedgerReferencedError
    |
    +-- PostingError
    |   +-- UnbalancedVoucherError
    |   +-- EmptyVoucherError
    |   +-- InvalidAmountError
    |   +-- DuplicateVoucherNumberError
    |
    +-- VoucherError
    |   +-- VoucherNotFoundError
    |   +-- AlreadyCancelledError
    |   +-- AlreadyReversedError
    |
    +-- OutstandingError
    |   +-- DeductionExceedsOutstandingError
    |   +-- InvalidDeductionError
    |   +-- UnknownOutstandingCategoryError
    |   +-- WelfareAlreadyRecoveredError
    |   +-- InvalidWelfareAmountError
    |   +-- OutstandingAlreadyRecoveredError
    |   +-- RecoveryOutsideResolverError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentOutstandingConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- PeriodError
        +-- InvalidPeriodError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                            | When Raised
----------------|---------------------------------|--------------------------------------
Ledger          | UNKNOWN_LEDGER                  | Name or ID does not resolve
                | DUPLICATE_LEDGER_NAME           | Ledger name already registered
                | LEDGER_INACTIVE                 | Posting to a deactivated ledger
                | LEDGER_REFERENCED               | Structural change after postings
----------------|---------------------------------|--------------------------------------
Posting         | UNBALANCED_VOUCHER              | Dr total != Cr total beyond tolerance
                | EMPTY_VOUCHER                   | Voucher has no lines
                | INVALID_AMOUNT                  | Line amount zero or negative
                | DUPLICATE_VOUCHER_NUMBER        | Number already used for the type
----------------|---------------------------------|--------------------------------------
Voucher         | VOUCHER_NOT_FOUND               | Voucher ID does not exist
                | ALREADY_CANCELLED               | Cancelling a non-Active voucher
                | ALREADY_REVERSED                | Voucher already has a reversal
----------------|---------------------------------|--------------------------------------
Outstanding     | DEDUCTION_EXCEEDS_OUTSTANDING   | Requested > available for category
                | INVALID_DEDUCTION               | Negative deduction request
                | UNKNOWN_OUTSTANDING_CATEGORY    | Category not configured
                | WELFARE_ALREADY_RECOVERED       | Second welfare recovery in a month
                | INVALID_WELFARE_AMOUNT          | Welfare amount differs from policy
                | OUTSTANDING_ALREADY_RECOVERED   | Cancel/reverse of a recovered grant
                | RECOVERY_OUTSIDE_RESOLVER       | Recovery line posted directly
----------------|---------------------------------|--------------------------------------
Concurrency     | OUTSTANDING_CONFLICT            | Concurrent deduction for a farmer
----------------|---------------------------------|--------------------------------------
Immutability    | IMMUTABILITY_VIOLATION          | Modifying an append-only record
----------------|---------------------------------|--------------------------------------
Period          | INVALID_PERIOD                  | start > end, or unknown preset

A statement that does not balance is NOT an exception: the imbalance is a
field on the returned report so that an unbalanced book can still be shown.

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        outstanding.apply_payment_deductions(request)
    except DeductionExceedsOutstandingError as e:
        return {
            "error": e.code,
            "category": e.category,
            "requested": e.requested,
            "available": e.available,
        }
    except ConcurrencyError:
        # Already retried internally; ask the operator to try again.
        ...
"""


class DairyLedgerError(Exception):
    """
    Base exception for all dairy ledger errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "DAIRY_LEDGER_ERROR"


# Ledger-related exceptions


class LedgerError(DairyLedgerError):
    """Base exception for ledger registry errors."""

    code: str = "LEDGER_ERROR"


class UnknownLedgerError(LedgerError):
    """Ledger name or ID does not resolve to a registered ledger."""

    code: str = "UNKNOWN_LEDGER"

    def __init__(self, ledger_ref: str):
        self.ledger_ref = ledger_ref
        super().__init__(f"Ledger not found: {ledger_ref}")


class DuplicateLedgerNameError(LedgerError):
    """A ledger with this name is already registered."""

    code: str = "DUPLICATE_LEDGER_NAME"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Ledger name already registered: {name}")


class LedgerInactiveError(LedgerError):
    """Ledger is deactivated and cannot receive postings."""

    code: str = "LEDGER_INACTIVE"

    def __init__(self, ledger_id: str, name: str):
        self.ledger_id = ledger_id
        self.name = name
        super().__init__(f"Ledger '{name}' ({ledger_id}) is inactive")


class LedgerReferencedError(LedgerError):
    """Ledger has postings, so its structural fields are frozen."""

    code: str = "LEDGER_REFERENCED"

    def __init__(self, ledger_id: str, field: str):
        self.ledger_id = ledger_id
        self.field = field
        super().__init__(
            f"Ledger {ledger_id} is referenced by postings; "
            f"'{field}' cannot be changed"
        )


# Posting-related exceptions


class PostingError(DairyLedgerError):
    """Base exception for voucher posting errors."""

    code: str = "POSTING_ERROR"


class UnbalancedVoucherError(PostingError):
    """Voucher debits do not equal credits within tolerance."""

    code: str = "UNBALANCED_VOUCHER"

    def __init__(self, debits: str, credits: str, tolerance: str):
        self.debits = debits
        self.credits = credits
        self.tolerance = tolerance
        super().__init__(
            f"Unbalanced voucher: debits={debits}, credits={credits} "
            f"(tolerance {tolerance})"
        )


class EmptyVoucherError(PostingError):
    """Voucher has no posting lines."""

    code: str = "EMPTY_VOUCHER"

    def __init__(self, voucher_number: str):
        self.voucher_number = voucher_number
        super().__init__(f"Voucher {voucher_number} has no lines")


class InvalidAmountError(PostingError):
    """Posting line amount is zero or negative."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str, line_seq: int):
        self.amount = amount
        self.line_seq = line_seq
        super().__init__(
            f"Line {line_seq}: amount must be positive, got {amount}"
        )


class DuplicateVoucherNumberError(PostingError):
    """Voucher number already used for this voucher type."""

    code: str = "DUPLICATE_VOUCHER_NUMBER"

    def __init__(self, voucher_type: str, voucher_number: str):
        self.voucher_type = voucher_type
        self.voucher_number = voucher_number
        super().__init__(
            f"{voucher_type} voucher number already used: {voucher_number}"
        )


# Voucher lifecycle exceptions


class VoucherError(DairyLedgerError):
    """Base exception for voucher lifecycle errors."""

    code: str = "VOUCHER_ERROR"


class VoucherNotFoundError(VoucherError):
    """Voucher with given ID was not found."""

    code: str = "VOUCHER_NOT_FOUND"

    def __init__(self, voucher_id: str):
        self.voucher_id = voucher_id
        super().__init__(f"Voucher not found: {voucher_id}")


class AlreadyCancelledError(VoucherError):
    """Voucher is not Active and cannot be cancelled again."""

    code: str = "ALREADY_CANCELLED"

    def __init__(self, voucher_id: str, voucher_number: str):
        self.voucher_id = voucher_id
        self.voucher_number = voucher_number
        super().__init__(
            f"Voucher {voucher_number} ({voucher_id}) is already cancelled"
        )


class AlreadyReversedError(VoucherError):
    """Voucher already has a reversing voucher."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, voucher_id: str, reversal_id: str):
        self.voucher_id = voucher_id
        self.reversal_id = reversal_id
        super().__init__(
            f"Voucher {voucher_id} is already reversed by {reversal_id}"
        )


# Outstanding (advance recovery) exceptions


class OutstandingError(DairyLedgerError):
    """Base exception for farmer outstanding recovery errors."""

    code: str = "OUTSTANDING_ERROR"


class DeductionExceedsOutstandingError(OutstandingError):
    """Requested deduction is larger than the farmer's outstanding."""

    code: str = "DEDUCTION_EXCEEDS_OUTSTANDING"

    def __init__(
        self,
        farmer_id: str,
        category: str,
        requested: str,
        available: str,
    ):
        self.farmer_id = farmer_id
        self.category = category
        self.requested = requested
        self.available = available
        super().__init__(
            f"{category} deduction exceeds available balance for farmer "
            f"{farmer_id}: requested={requested}, available={available}"
        )


class InvalidDeductionError(OutstandingError):
    """Deduction amount is negative."""

    code: str = "INVALID_DEDUCTION"

    def __init__(self, category: str, amount: str):
        self.category = category
        self.amount = amount
        super().__init__(
            f"{category} deduction must not be negative, got {amount}"
        )


class UnknownOutstandingCategoryError(OutstandingError):
    """Outstanding category is not configured."""

    code: str = "UNKNOWN_OUTSTANDING_CATEGORY"

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Unknown outstanding category: {category}")


class WelfareAlreadyRecoveredError(OutstandingError):
    """Welfare recovery was already taken from this farmer this month."""

    code: str = "WELFARE_ALREADY_RECOVERED"

    def __init__(self, farmer_id: str, month: str):
        self.farmer_id = farmer_id
        self.month = month
        super().__init__(
            f"Welfare recovery already deducted for farmer {farmer_id} in {month}"
        )


class InvalidWelfareAmountError(OutstandingError):
    """Welfare recovery is fixed by policy; any other amount is refused."""

    code: str = "INVALID_WELFARE_AMOUNT"

    def __init__(self, farmer_id: str, amount: str, expected: str):
        self.farmer_id = farmer_id
        self.amount = amount
        self.expected = expected
        super().__init__(
            f"Welfare recovery for farmer {farmer_id} must be {expected}, got {amount}"
        )


class OutstandingAlreadyRecoveredError(OutstandingError):
    """
    Cancelling or reversing the voucher would take back more advance than
    the farmer still owes, because part of it has already been recovered.
    """

    code: str = "OUTSTANDING_ALREADY_RECOVERED"

    def __init__(
        self,
        farmer_id: str,
        category: str,
        removing: str,
        available: str,
    ):
        self.farmer_id = farmer_id
        self.category = category
        self.removing = removing
        self.available = available
        super().__init__(
            f"Cannot take back {removing} of {category} from farmer {farmer_id}: "
            f"only {available} is still outstanding"
        )


class RecoveryOutsideResolverError(OutstandingError):
    """A voucher tried to reduce a farmer's outstanding without the resolver."""

    code: str = "RECOVERY_OUTSIDE_RESOLVER"

    def __init__(self, farmer_id: str, category: str):
        self.farmer_id = farmer_id
        self.category = category
        super().__init__(
            f"{category} recovery for farmer {farmer_id} must go through "
            "apply_payment_deductions"
        )


# Concurrency exceptions


class ConcurrencyError(DairyLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentOutstandingConflictError(ConcurrencyError):
    """Another deduction for the same farmer committed first."""

    code: str = "OUTSTANDING_CONFLICT"

    def __init__(self, farmer_id: str, attempts: int):
        self.farmer_id = farmer_id
        self.attempts = attempts
        super().__init__(
            f"Concurrent outstanding update for farmer {farmer_id} "
            f"after {attempts} attempt(s)"
        )


# Immutability exceptions


class ImmutabilityError(DairyLedgerError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted modification of an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Period exceptions


class PeriodError(DairyLedgerError):
    """Base exception for date-window errors."""

    code: str = "PERIOD_ERROR"


class InvalidPeriodError(PeriodError):
    """Date window is inverted or the preset is unknown."""

    code: str = "INVALID_PERIOD"

    def __init__(self, start: str, end: str, reason: str = "start is after end"):
        self.start = start
        self.end = end
        self.reason = reason
        super().__init__(f"Invalid period {start}..{end}: {reason}")
