"""
Config -> Kernel Bridges.

Functions that turn a LedgerConfiguration into kernel inputs.  They live
here because the kernel must never import dairy_config.

Usage:
    from dairy_config.bridges import build_recovery_policy, seed_chart

    config = get_active_config()
    with session_scope() as session:
        seed_chart(session, config)
    resolver = OutstandingResolver(get_session_factory(), build_recovery_policy(config))
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from dairy_config.schema import LedgerConfiguration
from dairy_kernel.domain.waterfall import RecoveryPolicy
from dairy_kernel.models.ledger import Ledger
from dairy_kernel.services.ledger_registry import LedgerRegistry


def build_recovery_policy(config: LedgerConfiguration) -> RecoveryPolicy:
    """RecoveryPolicy with the configured priority, ledgers and welfare amount."""
    settings = config.settings
    return RecoveryPolicy(
        priority=config.recovery_priority,
        advance_ledgers=config.advance_ledgers,
        welfare_ledger=settings.welfare_ledger,
        welfare_amount=settings.welfare_recovery_amount,
        max_conflict_retries=settings.max_conflict_retries,
    )


def seed_chart(session: Session, config: LedgerConfiguration) -> list[Ledger]:
    """
    Register every configured ledger that does not exist yet.

    Existing ledgers are left untouched, so seeding an established book
    is a no-op.
    """
    return LedgerRegistry(session).load_chart(config.ledgers)
