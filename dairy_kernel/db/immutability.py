"""
ORM-Level Immutability Enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity    | When Immutable                     | Allowed change
----------|------------------------------------|----------------------------------
Posting   | ALWAYS (from creation)             | none
Voucher   | ALWAYS (from creation)             | Active -> Cancelled, with
          |                                    | cancelled_at and the reason
Ledger    | Structural fields once referenced  | is_active, parent_group,
          | by any posting                     | category

Corrections are never edits: a wrong voucher is cancelled, or reversed by a
new voucher that points back at it.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

updated_at/updated_by_id are audit metadata and may always change.
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from dairy_kernel.domain.values import VoucherStatus
from dairy_kernel.exceptions import ImmutabilityViolationError
from dairy_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Fields the cancel transition is allowed to write
_VOUCHER_CANCEL_FIELDS = frozenset(
    {"status", "cancelled_at", "cancellation_reason"}
) | _AUDIT_FIELDS

# Frozen once any posting references the ledger
LEDGER_STRUCTURAL_FIELDS = frozenset(
    {"name", "ledger_type", "opening_balance", "opening_side"}
)


def _block(entity_type: str, entity_id, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.history.has_changes()
    ]


def _check_posting_immutability(mapper, connection, target):
    """Postings are append-only."""
    changed = [f for f in _changed_fields(target) if f not in _AUDIT_FIELDS]
    if changed:
        _block(
            "Posting",
            target.id,
            "UPDATE",
            f"Postings cannot be modified (fields {changed})",
            fields=changed,
        )


def _check_posting_delete(mapper, connection, target):
    _block("Posting", target.id, "DELETE", "Postings cannot be deleted")


def _check_voucher_immutability(mapper, connection, target):
    """
    Only the Active -> Cancelled transition may touch a stored voucher.

    The status history must show Active as the old value and Cancelled as
    the new one; any other field change is blocked.
    """
    changed = [f for f in _changed_fields(target) if f not in _AUDIT_FIELDS]
    if not changed:
        return

    status_history = get_history(target, "status")
    is_cancel_transition = (
        bool(status_history.deleted)
        and status_history.deleted[0] == VoucherStatus.ACTIVE
        and target.status == VoucherStatus.CANCELLED
    )
    illegal = [f for f in changed if f not in _VOUCHER_CANCEL_FIELDS]

    if not is_cancel_transition or illegal:
        _block(
            "Voucher",
            target.id,
            "UPDATE",
            f"Only Active -> Cancelled is allowed (fields {changed})",
            fields=changed,
        )


def _check_voucher_delete(mapper, connection, target):
    _block("Voucher", target.id, "DELETE", "Vouchers cannot be deleted; cancel instead")


def _ledger_has_postings(connection, ledger_id) -> bool:
    from dairy_kernel.models.voucher import Posting

    row = connection.execute(
        select(Posting.id).where(Posting.ledger_id == ledger_id).limit(1)
    ).first()
    return row is not None


def _check_ledger_structural_immutability(mapper, connection, target):
    changed = [
        f for f in LEDGER_STRUCTURAL_FIELDS if get_history(target, f).has_changes()
    ]
    if not changed:
        return
    if _ledger_has_postings(connection, target.id):
        _block(
            "Ledger",
            target.id,
            "UPDATE",
            f"Cannot modify {sorted(changed)} on a ledger referenced by postings",
            fields=sorted(changed),
        )


def _check_ledger_delete(mapper, connection, target):
    if _ledger_has_postings(connection, target.id):
        _block(
            "Ledger",
            target.id,
            "DELETE",
            "Ledgers with postings cannot be deleted; deactivate instead",
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after models are imported and before any database work.
    Registering twice is harmless.
    """
    from dairy_kernel.models.ledger import Ledger
    from dairy_kernel.models.voucher import Posting, Voucher

    for target, event_name, fn in _listener_table(Ledger, Voucher, Posting):
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only for tests that must bypass the rules on purpose.
    """
    from dairy_kernel.models.ledger import Ledger
    from dairy_kernel.models.voucher import Posting, Voucher

    for target, event_name, fn in _listener_table(Ledger, Voucher, Posting):
        _safe_remove_listener(target, event_name, fn)


def _listener_table(Ledger, Voucher, Posting):
    return (
        (Posting, "before_update", _check_posting_immutability),
        (Posting, "before_delete", _check_posting_delete),
        (Voucher, "before_update", _check_voucher_immutability),
        (Voucher, "before_delete", _check_voucher_delete),
        (Ledger, "before_update", _check_ledger_structural_immutability),
        (Ledger, "before_delete", _check_ledger_delete),
    )


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)
