"""
LedgerRegistry -- named ledgers with type, category and natural side.

Responsibility:
    Registers ledgers, resolves them by name or ID, opens ledgers lazily for
    farmers and other linked parties, and seeds the chart of accounts from
    configuration.

Architecture position:
    Kernel > Services.  Called by VoucherService (resolution), the
    outstanding resolver (farmer ledgers) and application setup (chart).

Invariants enforced:
    - Ledger names are unique.
    - Ledgers are never deleted once posted to; deactivate instead.
    - name, type and opening balance are frozen once referenced
      (pre-checked here, enforced again by db/immutability.py).

Failure modes:
    - DuplicateLedgerNameError on a name clash.
    - UnknownLedgerError when a name or ID does not resolve.
    - LedgerReferencedError on a rename after postings exist.
"""

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from dairy_kernel.db.types import to_money
from dairy_kernel.domain.values import LedgerType, LinkedEntityType, Side, natural_side
from dairy_kernel.exceptions import (
    DuplicateLedgerNameError,
    LedgerReferencedError,
    UnknownLedgerError,
)
from dairy_kernel.logging_config import get_logger
from dairy_kernel.models.ledger import Ledger
from dairy_kernel.models.voucher import Posting
from dairy_kernel.services.base import BaseService

logger = get_logger("services.ledger_registry")


class LedgerRegistry(BaseService[Ledger]):
    """
    Write and lookup service for ledgers.

    Returned Ledger instances belong to the caller's session.
    """

    def register_ledger(
        self,
        name: str,
        ledger_type: LedgerType | str,
        category: str,
        *,
        parent_group: str | None = None,
        opening_balance: Decimal | int | str = Decimal("0"),
        opening_side: Side | str | None = None,
        linked_entity_type: LinkedEntityType | str | None = None,
        linked_entity_id: str | None = None,
        actor_id: UUID | None = None,
    ) -> Ledger:
        """
        Register a new ledger.

        ``opening_side`` defaults to the natural side of ``ledger_type``.

        Raises:
            DuplicateLedgerNameError: a ledger with this name exists.
            ValueError: negative opening balance.
        """
        ledger_type = LedgerType(ledger_type)
        opening_balance = to_money(opening_balance)
        if opening_balance < 0:
            raise ValueError(
                f"Opening balance must not be negative, got {opening_balance}; "
                "use opening_side for a credit balance"
            )

        name = name.strip()
        if self.find(name) is not None:
            raise DuplicateLedgerNameError(name)

        ledger = Ledger(
            name=name,
            ledger_type=ledger_type.value,
            category=category,
            parent_group=parent_group,
            opening_balance=opening_balance,
            opening_side=Side(opening_side or natural_side(ledger_type)).value,
            linked_entity_type=(
                LinkedEntityType(linked_entity_type).value
                if linked_entity_type is not None
                else None
            ),
            linked_entity_id=linked_entity_id,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(ledger)
        self.session.flush()

        logger.info(
            "ledger_registered",
            extra={
                "ledger_id": str(ledger.id),
                "ledger_name": ledger.name,
                "ledger_type": ledger.ledger_type,
                "category": ledger.category,
                "opening_balance": str(opening_balance),
                "opening_side": ledger.opening_side,
            },
        )
        return ledger

    def find(self, name: str) -> Ledger | None:
        return self.session.execute(
            select(Ledger).where(Ledger.name == name.strip())
        ).scalar_one_or_none()

    def resolve(self, name: str) -> Ledger:
        """
        Resolve a ledger by name.

        Raises:
            UnknownLedgerError: no ledger has this name.
        """
        ledger = self.find(name)
        if ledger is None:
            raise UnknownLedgerError(name)
        return ledger

    def get(self, ledger_id: UUID) -> Ledger:
        """
        Resolve a ledger by ID.

        Raises:
            UnknownLedgerError: no ledger has this ID.
        """
        ledger = self.session.get(Ledger, ledger_id)
        if ledger is None:
            raise UnknownLedgerError(str(ledger_id))
        return ledger

    def find_linked(
        self, entity_type: LinkedEntityType | str, entity_id: str
    ) -> Ledger | None:
        return self.session.execute(
            select(Ledger).where(
                Ledger.linked_entity_type == LinkedEntityType(entity_type).value,
                Ledger.linked_entity_id == entity_id,
            )
        ).scalar_one_or_none()

    def ensure_linked_ledger(
        self,
        entity_type: LinkedEntityType | str,
        entity_id: str,
        name: str,
        *,
        ledger_type: LedgerType | str = LedgerType.ASSET,
        category: str = "Party",
        parent_group: str | None = "Sundry Debtors",
        actor_id: UUID | None = None,
    ) -> Ledger:
        """
        Return the ledger opened for a party, creating it on first use.

        Idempotent: a second call with the same entity returns the same
        ledger regardless of ``name``.
        """
        existing = self.find_linked(entity_type, entity_id)
        if existing is not None:
            return existing
        return self.register_ledger(
            name,
            ledger_type,
            category,
            parent_group=parent_group,
            linked_entity_type=entity_type,
            linked_entity_id=entity_id,
            actor_id=actor_id,
        )

    def has_postings(self, ledger_id: UUID) -> bool:
        return (
            self.session.execute(
                select(Posting.id).where(Posting.ledger_id == ledger_id).limit(1)
            ).first()
            is not None
        )

    def rename(self, ledger_id: UUID, new_name: str) -> Ledger:
        """
        Rename a ledger that has never been posted to.

        Raises:
            LedgerReferencedError: the ledger already has postings.
            DuplicateLedgerNameError: new_name is taken.
        """
        ledger = self.get(ledger_id)
        if self.has_postings(ledger_id):
            raise LedgerReferencedError(str(ledger_id), "name")
        new_name = new_name.strip()
        if new_name == ledger.name:
            return ledger
        if self.find(new_name) is not None:
            raise DuplicateLedgerNameError(new_name)
        old_name = ledger.name
        ledger.name = new_name
        self.session.flush()
        logger.info(
            "ledger_renamed",
            extra={"ledger_id": str(ledger_id), "old_name": old_name, "new_name": new_name},
        )
        return ledger

    def deactivate(self, ledger_id: UUID) -> Ledger:
        """Stop a ledger from receiving new postings.  History is kept."""
        ledger = self.get(ledger_id)
        if ledger.is_active:
            ledger.is_active = False
            self.session.flush()
            logger.info("ledger_deactivated", extra={"ledger_id": str(ledger_id)})
        return ledger

    def reactivate(self, ledger_id: UUID) -> Ledger:
        ledger = self.get(ledger_id)
        if not ledger.is_active:
            ledger.is_active = True
            self.session.flush()
            logger.info("ledger_reactivated", extra={"ledger_id": str(ledger_id)})
        return ledger

    def list_ledgers(
        self,
        *,
        active_only: bool = False,
        ledger_type: LedgerType | str | None = None,
        category: str | None = None,
    ) -> list[Ledger]:
        query = select(Ledger).order_by(Ledger.name)
        if active_only:
            query = query.where(Ledger.is_active.is_(True))
        if ledger_type is not None:
            query = query.where(Ledger.ledger_type == LedgerType(ledger_type).value)
        if category is not None:
            query = query.where(Ledger.category == category)
        return list(self.session.execute(query).scalars())

    def load_chart(self, definitions: Iterable, actor_id: UUID | None = None) -> list[Ledger]:
        """
        Seed ledgers from chart definitions, skipping names already present.

        Each definition exposes name, ledger_type, category, parent_group,
        opening_balance and opening_side (see dairy_config.schema).
        Returns only the ledgers created by this call.
        """
        created = []
        for definition in definitions:
            if self.find(definition.name) is not None:
                continue
            created.append(
                self.register_ledger(
                    definition.name,
                    definition.ledger_type,
                    definition.category,
                    parent_group=definition.parent_group,
                    opening_balance=definition.opening_balance,
                    opening_side=definition.opening_side,
                    actor_id=actor_id,
                )
            )
        logger.info("chart_loaded", extra={"ledgers_created": len(created)})
        return created
