"""Identity resolution against the existing catalog.

Finds the catalog entry an incoming row refers to and classifies the row:
1. ISBN (when present, decides the outcome on its own)
2. Other code (when there is no ISBN)
3. Title + publisher
4. Otherwise NEW

Business outcomes are returned as a Classification; datastore failures
propagate as exceptions.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..db.models import Book, Publisher
from ..db.schemas import MatchedBy, MatchStatus, PricingAction
from ..db.sqlite import Database
from .pricing import PricingDecision, PricingReconciler

logger = logging.getLogger(__name__)


@dataclass
class Classification:
    """Relationship of one incoming row to the catalog."""

    status: MatchStatus
    message: str
    matched_by: Optional[MatchedBy] = None
    existing_book: Optional[Book] = None
    publisher: Optional[Publisher] = None
    conflict_fields: dict[str, dict] = field(default_factory=dict)
    pricing: Optional[PricingDecision] = None

    @property
    def pricing_action(self) -> Optional[PricingAction]:
        """ADD_PRICE for NEW, the reconciler's action for DUPLICATE, None for CONFLICT."""
        if self.status == MatchStatus.NEW:
            return PricingAction.ADD_PRICE
        if self.pricing is not None:
            return self.pricing.action
        return None

    def to_dict(self) -> dict:
        existing = None
        if self.existing_book is not None:
            existing = {
                "id": self.existing_book.id,
                "title": self.existing_book.title,
                "isbn": self.existing_book.isbn,
                "other_code": self.existing_book.other_code,
            }
        return {
            "status": self.status.value,
            "message": self.message,
            "matched_by": self.matched_by.value if self.matched_by else None,
            "pricing_action": self.pricing_action.value if self.pricing_action else None,
            "existing_book": existing,
            "conflict_fields": self.conflict_fields,
            "pricing": self.pricing.to_dict() if self.pricing else None,
        }


def _same_title(existing: Optional[str], incoming: Optional[str]) -> bool:
    # A row without a title cannot disagree with the stored one
    if not incoming:
        return True
    return (existing or "").strip().casefold() == incoming.strip().casefold()


class IdentityResolver:
    """Classifies incoming rows as NEW, DUPLICATE or CONFLICT."""

    def __init__(self, db: Database, reconciler: Optional[PricingReconciler] = None):
        self.db = db
        self.reconciler = reconciler or PricingReconciler(db)

    def classify(
        self,
        tenant_id: str,
        book_data: dict,
        pricing_data: dict,
        publisher_data: Optional[dict] = None,
    ) -> Classification:
        """Classify one normalized row.

        Args:
            tenant_id: Tenant scope
            book_data: Normalized book bucket (title, isbn, other_code, ...)
            pricing_data: Normalized pricing bucket (source, rate, discount, ...)
            publisher_data: Normalized publisher bucket (publisher_name)

        Returns:
            Classification; DUPLICATE results carry the pricing decision
        """
        publisher_data = publisher_data or {}
        title = book_data.get("title")
        isbn = book_data.get("isbn")
        other_code = book_data.get("other_code")

        if isbn:
            existing = self.db.find_book_by_isbn(tenant_id, isbn)
            if existing is None:
                return self._new("No book with this ISBN. It can be added as a new entry.")
            return self._by_key(
                tenant_id, existing, title, pricing_data, MatchedBy.ISBN, "ISBN"
            )

        if other_code:
            existing = self.db.find_book_by_other_code(tenant_id, other_code)
            if existing is not None:
                return self._by_key(
                    tenant_id, existing, title, pricing_data, MatchedBy.OTHER_CODE, "Other Code"
                )

        publisher_name = publisher_data.get("publisher_name")
        publisher = None
        if publisher_name and title:
            publisher = self.db.get_publisher_by_name(tenant_id, publisher_name)

        if publisher is not None:
            existing = self.db.find_book_by_title(tenant_id, title, publisher.id)
            if existing is not None:
                if other_code and existing.other_code != other_code:
                    return Classification(
                        status=MatchStatus.CONFLICT,
                        message=(
                            "A book with this Title and Publisher already exists, "
                            "but with a different Other Code."
                        ),
                        matched_by=MatchedBy.TITLE_PUBLISHER,
                        existing_book=existing,
                        publisher=publisher,
                        conflict_fields={
                            "other_code": {"old": existing.other_code, "new": other_code}
                        },
                    )
                decision = self.reconciler.reconcile(tenant_id, existing.id, pricing_data)
                return Classification(
                    status=MatchStatus.DUPLICATE,
                    message=f"Duplicate book found by Title and Publisher. | {decision.message}",
                    matched_by=MatchedBy.TITLE_PUBLISHER,
                    existing_book=existing,
                    publisher=publisher,
                    pricing=decision,
                )

        result = self._new("No matching book found. It can be added as a new entry.")
        result.publisher = publisher
        return result

    def _by_key(
        self,
        tenant_id: str,
        existing: Book,
        title: Optional[str],
        pricing_data: dict,
        matched_by: MatchedBy,
        label: str,
    ) -> Classification:
        if not _same_title(existing.title, title):
            return Classification(
                status=MatchStatus.CONFLICT,
                message=f"A book with this {label} already exists but has a different title.",
                matched_by=matched_by,
                existing_book=existing,
                conflict_fields={"title": {"old": existing.title, "new": title}},
            )

        decision = self.reconciler.reconcile(tenant_id, existing.id, pricing_data)
        return Classification(
            status=MatchStatus.DUPLICATE,
            message=f"Duplicate book found by {label}. | {decision.message}",
            matched_by=matched_by,
            existing_book=existing,
            pricing=decision,
        )

    @staticmethod
    def _new(message: str) -> Classification:
        return Classification(status=MatchStatus.NEW, message=message)
