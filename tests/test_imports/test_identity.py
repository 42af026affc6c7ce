"""Tests for identity resolution."""

import pytest

from quotedesk.catalog.db.schemas import MatchedBy, MatchStatus, PricingAction
from quotedesk.catalog.db.sqlite import Database
from quotedesk.catalog.imports.identity import IdentityResolver

TENANT = "tenant-a"
ISBN = "9780306406157"
OTHER_ISBN = "9780743273565"


@pytest.fixture
def resolver(db: Database) -> IdentityResolver:
    """Create an identity resolver."""
    return IdentityResolver(db)


def pricing(rate: float = 10.0, source: str = "vendor-a") -> dict:
    return {"source": source, "rate": rate, "discount": 0, "currency": "USD"}


class TestEmptyCatalog:
    """With no books every row is NEW."""

    @pytest.mark.parametrize(
        "book_data,publisher_data",
        [
            ({"title": "Book A", "isbn": ISBN}, {}),
            ({"title": "Book A", "other_code": "X-1"}, {}),
            ({"title": "Book A"}, {"publisher_name": "Penguin"}),
            ({"title": "Book A"}, {}),
        ],
    )
    def test_everything_new(self, resolver, book_data, publisher_data):
        """Any combination of identifiers classifies as NEW."""
        result = resolver.classify(TENANT, book_data, pricing(), publisher_data)

        assert result.status == MatchStatus.NEW
        assert result.pricing_action == PricingAction.ADD_PRICE


class TestIsbnMatching:
    """Rule 1: ISBN."""

    def test_same_title_is_duplicate(self, resolver, make_book):
        """Same ISBN and title (any case) is a DUPLICATE."""
        book = make_book(title="Book A", isbn=ISBN)

        result = resolver.classify(TENANT, {"title": "BOOK a", "isbn": ISBN}, pricing())

        assert result.status == MatchStatus.DUPLICATE
        assert result.matched_by == MatchedBy.ISBN
        assert result.existing_book.id == book.id
        assert result.pricing_action == PricingAction.ADD_PRICE

    def test_different_title_is_conflict(self, resolver, make_book):
        """Same ISBN with another title is a CONFLICT, never a DUPLICATE."""
        make_book(title="Foo", isbn=ISBN)

        result = resolver.classify(TENANT, {"title": "Bar", "isbn": ISBN}, pricing())

        assert result.status == MatchStatus.CONFLICT
        assert result.conflict_fields == {"title": {"old": "Foo", "new": "Bar"}}
        assert result.pricing is None
        assert result.pricing_action is None

    def test_unknown_isbn_is_new_even_if_title_exists(self, resolver, make_book):
        """An unmatched ISBN decides NEW without looking further."""
        make_book(title="Book A", publisher="Penguin", other_code="X-1")

        result = resolver.classify(
            TENANT,
            {"title": "Book A", "isbn": OTHER_ISBN, "other_code": "X-1"},
            pricing(),
            {"publisher_name": "Penguin"},
        )

        assert result.status == MatchStatus.NEW

    def test_isbn_before_other_code(self, resolver, make_book):
        """ISBN is checked before the alternate code."""
        make_book(title="By ISBN", isbn=ISBN)
        make_book(title="By code", other_code="X-1")

        result = resolver.classify(
            TENANT, {"title": "By ISBN", "isbn": ISBN, "other_code": "X-1"}, pricing()
        )

        assert result.status == MatchStatus.DUPLICATE
        assert result.matched_by == MatchedBy.ISBN

    def test_tenant_scoped(self, resolver, make_book):
        """Books of other tenants are never matched."""
        make_book(title="Foo", isbn=ISBN, tenant_id="tenant-b")

        result = resolver.classify(TENANT, {"title": "Bar", "isbn": ISBN}, pricing())

        assert result.status == MatchStatus.NEW


class TestOtherCodeMatching:
    """Rule 2: alternate code."""

    def test_same_title_is_duplicate(self, resolver, make_book):
        """Same code and title is a DUPLICATE."""
        make_book(title="Book A", other_code="X-1")

        result = resolver.classify(TENANT, {"title": "book a", "other_code": "X-1"}, pricing())

        assert result.status == MatchStatus.DUPLICATE
        assert result.matched_by == MatchedBy.OTHER_CODE

    def test_different_title_is_conflict(self, resolver, make_book):
        """Same code with another title is a CONFLICT."""
        make_book(title="Book A", other_code="X-1")

        result = resolver.classify(TENANT, {"title": "Book B", "other_code": "X-1"}, pricing())

        assert result.status == MatchStatus.CONFLICT
        assert result.conflict_fields == {"title": {"old": "Book A", "new": "Book B"}}

    def test_unknown_code_falls_through(self, resolver, make_book):
        """An unmatched code continues with title and publisher."""
        make_book(title="Book A", publisher="Penguin", other_code="X-9")

        result = resolver.classify(
            TENANT,
            {"title": "Book A", "other_code": "X-1"},
            pricing(),
            {"publisher_name": "penguin"},
        )

        assert result.status == MatchStatus.CONFLICT
        assert result.matched_by == MatchedBy.TITLE_PUBLISHER
        assert result.conflict_fields == {"other_code": {"old": "X-9", "new": "X-1"}}


class TestTitlePublisherMatching:
    """Rule 3: title + publisher."""

    def test_duplicate(self, resolver, make_book):
        """Same title under the same publisher is a DUPLICATE."""
        book = make_book(title="Book A", publisher="Penguin Books")

        result = resolver.classify(
            TENANT, {"title": "BOOK A"}, pricing(), {"publisher_name": " penguin  books "}
        )

        assert result.status == MatchStatus.DUPLICATE
        assert result.matched_by == MatchedBy.TITLE_PUBLISHER
        assert result.existing_book.id == book.id

    def test_non_ascii_title_duplicate(self, resolver, make_book):
        """Re-importing a Cyrillic title under the same publisher is a DUPLICATE."""
        book = make_book(title="Война и мир", publisher="Penguin")

        result = resolver.classify(
            TENANT, {"title": "ВОЙНА И МИР"}, pricing(), {"publisher_name": "Penguin"}
        )

        assert result.status == MatchStatus.DUPLICATE
        assert result.existing_book.id == book.id

    def test_non_ascii_title_same_isbn_not_conflict(self, resolver, make_book):
        """Accented titles that differ only in case agree on the ISBN rule."""
        make_book(title="École des femmes", isbn=ISBN)

        result = resolver.classify(TENANT, {"title": "ÉCOLE DES FEMMES", "isbn": ISBN}, pricing())

        assert result.status == MatchStatus.DUPLICATE

    def test_other_publisher_is_new(self, resolver, make_book):
        """The same title under another publisher is NEW."""
        make_book(title="Book A", publisher="Penguin")
        result = resolver.classify(
            TENANT, {"title": "Book A"}, pricing(), {"publisher_name": "Harper"}
        )
        assert result.status == MatchStatus.NEW

    def test_without_publisher_is_new(self, resolver, make_book):
        """Title alone never matches."""
        make_book(title="Book A", publisher="Penguin")
        result = resolver.classify(TENANT, {"title": "Book A"}, pricing(), {})
        assert result.status == MatchStatus.NEW


class TestDuplicatePricing:
    """DUPLICATE results embed the pricing decision."""

    def test_same_price_no_change(self, resolver, make_book):
        """Identical pricing from the same source is NO_CHANGE."""
        make_book(title="Book A", isbn=ISBN, source="vendor-a", rate=10.0)

        result = resolver.classify(TENANT, {"title": "Book A", "isbn": ISBN}, pricing(10.0))

        assert result.pricing_action == PricingAction.NO_CHANGE
        assert "Identical pricing" in result.message

    def test_new_price_update(self, resolver, make_book):
        """A changed rate from the same source is UPDATE_PRICE."""
        make_book(title="Book A", isbn=ISBN, source="vendor-a", rate=10.0)

        result = resolver.classify(TENANT, {"title": "Book A", "isbn": ISBN}, pricing(20.0))

        assert result.pricing_action == PricingAction.UPDATE_PRICE
        assert result.pricing.differences == {"rate": {"old": 10.0, "new": 20.0}}

    def test_to_dict(self, resolver, make_book):
        """Classifications serialize to plain data."""
        make_book(title="Book A", isbn=ISBN, source="vendor-a", rate=10.0)

        data = resolver.classify(TENANT, {"title": "Book A", "isbn": ISBN}, pricing()).to_dict()

        assert data["status"] == "DUPLICATE"
        assert data["matched_by"] == "isbn"
        assert data["pricing_action"] == "NO_CHANGE"
        assert data["existing_book"]["isbn"] == ISBN
