"""Pricing reconciliation for matched books.

Decides whether an incoming quote for an existing book adds a new pricing
record, updates the one already stored for the same source, or changes
nothing.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..db.schemas import PricingAction
from ..db.sqlite import Database

logger = logging.getLogger(__name__)

# Fields whose change makes an UPDATE_PRICE
TRIGGER_FIELDS = ("rate", "discount", "stock")


@dataclass
class PricingDecision:
    """What to do with the pricing record of one (book, source) pair."""

    action: PricingAction
    message: str
    book_id: Optional[str] = None
    pricing_id: Optional[str] = None
    differences: dict[str, dict] = field(default_factory=dict)
    # Reported but never a reason to update
    notices: dict[str, dict] = field(default_factory=dict)

    def update_fields(self) -> dict:
        """Column values to write for an UPDATE_PRICE."""
        return {name: diff["new"] for name, diff in self.differences.items()}

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "message": self.message,
            "book_id": self.book_id,
            "pricing_id": self.pricing_id,
            "differences": self.differences,
            "notices": self.notices,
        }


class PricingReconciler:
    """Compares incoming pricing data against stored pricing records."""

    def __init__(self, db: Database):
        self.db = db

    def reconcile(self, tenant_id: str, book_id: str, pricing_data: dict) -> PricingDecision:
        """Classify incoming pricing for an existing book.

        Rate and discount are always compared (a missing discount counts as
        0). Stock is compared only when the incoming data carries it, and a
        missing incoming rate leaves the stored rate alone. A currency change
        is listed under ``notices`` only.

        Args:
            tenant_id: Tenant scope
            book_id: Matched book
            pricing_data: Normalized pricing bucket (source, rate, discount, ...)

        Returns:
            PricingDecision with the action and field-level differences
        """
        source = pricing_data.get("source")
        existing = self.db.find_pricing(tenant_id, book_id, source)

        if existing is None:
            return PricingDecision(
                action=PricingAction.ADD_PRICE,
                message="New pricing source for this duplicate book.",
                book_id=book_id,
            )

        incoming = {
            "rate": pricing_data.get("rate"),
            "discount": pricing_data.get("discount") or 0,
            "stock": pricing_data.get("stock"),
        }
        current = {
            "rate": existing.rate,
            "discount": existing.discount or 0,
            "stock": existing.stock,
        }

        differences = {}
        for name in TRIGGER_FIELDS:
            new = incoming[name]
            if new is None:
                continue
            if current[name] != new:
                differences[name] = {"old": current[name], "new": new}

        notices = {}
        currency = pricing_data.get("currency")
        if currency and existing.currency and currency != existing.currency:
            notices["currency"] = {"old": existing.currency, "new": currency}

        if differences:
            logger.debug(
                "Pricing for book %s from %r differs in %s",
                book_id, source, ", ".join(differences),
            )
            return PricingDecision(
                action=PricingAction.UPDATE_PRICE,
                message="Existing pricing source found with different values.",
                book_id=book_id,
                pricing_id=existing.id,
                differences=differences,
                notices=notices,
            )

        return PricingDecision(
            action=PricingAction.NO_CHANGE,
            message="Identical pricing already exists for this source.",
            book_id=book_id,
            pricing_id=existing.id,
            notices=notices,
        )
