"""Credit ledger.

Users hold a credit balance that pays for premium templates. The ledger
keeps one balance row per user (``user_credits``), an append-only
transaction history (``credit_transactions``) and the set of purchased
templates (``purchased_templates``). Pricing rules live elsewhere; this
module only moves amounts and records them.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from formcraft.errors import InsufficientCreditsError, NotFoundError
from formcraft.logging import get_logger
from formcraft.models import parse_timestamp, utcnow
from formcraft.store import RecordStore, Tables, new_id
from formcraft.types import TransactionType

logger = get_logger(__name__)


@dataclass(frozen=True)
class CreditTransaction:
    id: str
    user_id: str
    amount: float
    transaction_type: TransactionType
    reference_id: Optional[str]
    description: Optional[str]
    created_at: datetime

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CreditTransaction":
        return cls(
            id=record["id"],
            user_id=record["user_id"],
            amount=record["amount"],
            transaction_type=TransactionType(record["transaction_type"]),
            reference_id=record.get("reference_id"),
            description=record.get("description"),
            created_at=parse_timestamp(record.get("created_at")) or utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "amount": self.amount,
            "transactionType": self.transaction_type.value,
            "referenceId": self.reference_id,
            "description": self.description,
            "createdAt": self.created_at.isoformat(),
        }


class CreditLedger:
    """Balance, debits and credits for user accounts.

    Balance changes and their transaction rows are written under one lock so
    concurrent debits in this process cannot overspend.

    Examples:
        >>> from formcraft.store import InMemoryStore
        >>> ledger = CreditLedger(InMemoryStore())
        >>> ledger.add_credits("user_1", 50)
        50
        >>> ledger.use_credits("user_1", 20, reference_id="tpl_1")
        30
    """

    def __init__(self, store: RecordStore, clock: Callable = utcnow):
        self.store = store
        self.clock = clock
        self._lock = threading.Lock()

    def _balance_row(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = self.store.find(Tables.USER_CREDITS, {"user_id": user_id}, limit=1)
        return rows[0] if rows else None

    def get_balance(self, user_id: str) -> float:
        """Current balance; 0 when the user has no ledger row yet."""
        row = self._balance_row(user_id)
        return row["amount"] if row else 0

    def initialize(self, user_id: str) -> Dict[str, Any]:
        """Return the user's balance row, creating it with 0 credits if needed."""
        with self._lock:
            return self._ensure_row(user_id)

    def _ensure_row(self, user_id: str) -> Dict[str, Any]:
        row = self._balance_row(user_id)
        if row is not None:
            return row
        now = self.clock().isoformat()
        return self.store.insert(Tables.USER_CREDITS, {
            "user_id": user_id,
            "amount": 0,
            "created_at": now,
            "updated_at": now,
        })

    def _apply(
        self,
        user_id: str,
        delta: float,
        transaction_type: TransactionType,
        reference_id: Optional[str],
        description: str,
    ) -> float:
        with self._lock:
            row = self._ensure_row(user_id)
            balance = row["amount"] + delta
            if balance < 0:
                raise InsufficientCreditsError(user_id, row["amount"], -delta)
            now = self.clock().isoformat()
            self.store.update(Tables.USER_CREDITS, row["id"], {"amount": balance, "updated_at": now})
            self.store.insert(Tables.CREDIT_TRANSACTIONS, {
                "id": new_id(),
                "user_id": user_id,
                "amount": delta,
                "transaction_type": transaction_type.value,
                "reference_id": reference_id,
                "description": description,
                "created_at": now,
            })
            return balance

    def add_credits(self, user_id: str, amount: float, description: Optional[str] = None) -> float:
        """Credit the account. Returns the new balance."""
        if amount <= 0:
            raise ValueError("Credit amount must be positive")
        return self._apply(user_id, amount, TransactionType.PURCHASE, None, description or "Credit purchase")

    def use_credits(
        self,
        user_id: str,
        amount: float,
        reference_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> float:
        """Debit the account. Returns the new balance.

        Raises:
            InsufficientCreditsError: If the balance does not cover amount
        """
        if amount <= 0:
            raise ValueError("Credit amount must be positive")
        return self._apply(user_id, -amount, TransactionType.USAGE, reference_id, description or "Credit usage")

    def list_transactions(self, user_id: str) -> List[CreditTransaction]:
        """Transaction history for user_id, newest first."""
        rows = self.store.find(
            Tables.CREDIT_TRANSACTIONS, {"user_id": user_id}, order_by="created_at", descending=True
        )
        return [CreditTransaction.from_record(r) for r in rows]

    def has_purchased(self, user_id: str, template_id: str) -> bool:
        """Whether user_id already owns template_id."""
        rows = self.store.find(
            Tables.PURCHASED_TEMPLATES, {"user_id": user_id, "template_id": template_id}, limit=1
        )
        return bool(rows)

    def purchase_template(self, user_id: str, template_id: str) -> bool:
        """Buy a premium template. Buying one already owned is a no-op.

        Returns:
            True when the user owns the template afterwards

        Raises:
            NotFoundError: If the template does not exist
            ValueError: If the template is not premium or has no price
            InsufficientCreditsError: If the balance does not cover the price
        """
        template = self.store.get(Tables.FORM_TEMPLATES, template_id)
        if template is None:
            raise NotFoundError("template", template_id)
        price = template.get("price") or 0
        if not template.get("is_premium") or price <= 0:
            raise ValueError("Template price must be positive")

        if self.has_purchased(user_id, template_id):
            logger.info("template already owned", user_id=user_id, template_id=template_id)
            return True

        self.use_credits(user_id, price, reference_id=template_id, description=f"Template purchase: {template['name']}")
        self.store.insert(Tables.PURCHASED_TEMPLATES, {
            "user_id": user_id,
            "template_id": template_id,
            "price_paid": price,
            "created_at": self.clock().isoformat(),
        })
        logger.info("template purchased", user_id=user_id, template_id=template_id, price=price)
        return True


__all__ = ["CreditLedger", "CreditTransaction"]
