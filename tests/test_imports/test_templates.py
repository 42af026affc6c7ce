"""Tests for import templates."""

import pytest

from quotedesk.catalog.db.schemas import ImportTemplateCreate, ImportTemplateUpdate
from quotedesk.catalog.db.sqlite import Database
from quotedesk.catalog.imports.errors import MappingError
from quotedesk.catalog.imports.headers import suggest_mapping
from quotedesk.catalog.imports.templates import TemplateManager, fingerprint, match_template

TENANT = "tenant-a"
HEADERS = ["ISBN", "Title", "Author", "Price", "Currency"]


@pytest.fixture
def manager(db: Database) -> TemplateManager:
    """Create a template manager."""
    return TemplateManager(db)


@pytest.fixture
def template(manager: TemplateManager):
    """A saved template built from the standard header row."""
    return manager.create_template(
        TENANT,
        ImportTemplateCreate(
            name="Vendor A price list",
            mapping=suggest_mapping(HEADERS).mapping,
            expected_headers=HEADERS,
        ),
    )


class TestFingerprint:
    """Tests for header fingerprints."""

    def test_case_and_whitespace_insensitive(self):
        """Case and surrounding whitespace do not change the fingerprint."""
        assert fingerprint(["Isbn", "Title"]) == fingerprint(["isbn ", "title"])

    def test_order_sensitive(self):
        """Reordering headers changes the fingerprint."""
        assert fingerprint(["ISBN", " Title "]) != fingerprint(["title", "isbn"])

    def test_blank_headers_ignored(self):
        """Blank headers do not contribute."""
        assert fingerprint(["ISBN", "", "Title"]) == fingerprint(["ISBN", "Title"])

    def test_internal_whitespace_collapsed(self):
        """Runs of spaces inside a header do not change the fingerprint."""
        assert fingerprint(["Book  Title", "ISBN"]) == fingerprint(["Book Title", "ISBN"])

    def test_sha1_hex(self):
        """The fingerprint is a 40 character hex digest."""
        value = fingerprint(HEADERS)
        assert len(value) == 40
        int(value, 16)


class TestMatchTemplate:
    """Tests for header set matching."""

    def test_all_expected_present(self):
        """Every expected header present is a match, regardless of case."""
        match = match_template(["isbn", " TITLE "], ["ISBN", "Title"])
        assert match.matched
        assert match.missing_headers == []

    def test_extra_headers_tolerated(self):
        """Extra file headers are reported but still match."""
        match = match_template(["ISBN", "Title", "Shelf"], ["ISBN", "Title"])
        assert match.matched
        assert match.extra_headers == ["Shelf"]

    def test_missing_header_fails(self):
        """A missing expected header prevents a match."""
        match = match_template(["ISBN"], ["ISBN", "Title"])
        assert not match.matched
        assert match.missing_headers == ["Title"]


class TestTemplateCRUD:
    """Tests for TemplateManager CRUD."""

    def test_create_template(self, template):
        """A created template stores its header fingerprint."""
        assert template.id is not None
        assert template.tenant_id == TENANT
        assert template.fingerprint == fingerprint(HEADERS)
        assert template.usage_count == 0
        assert template.last_used_at is None

    def test_get_template(self, manager: TemplateManager, template):
        """A template can be fetched by id."""
        fetched = manager.get_template(TENANT, template.id)
        assert fetched.name == "Vendor A price list"
        assert fetched.mapping == template.mapping
        assert manager.get_template(TENANT, "missing") is None

    def test_find_by_fingerprint(self, manager: TemplateManager, template):
        """Fingerprint lookup is tenant scoped."""
        assert manager.find_by_fingerprint(TENANT, fingerprint(HEADERS)).id == template.id
        assert manager.find_by_fingerprint("other-tenant", fingerprint(HEADERS)) is None

    def test_update_recomputes_fingerprint(self, manager: TemplateManager, template):
        """New expected headers change the fingerprint."""
        updated = manager.update_template(
            TENANT,
            template.id,
            ImportTemplateUpdate(name="Renamed", expected_headers=["Title", "Rate"]),
        )
        assert updated.name == "Renamed"
        assert updated.fingerprint == fingerprint(["Title", "Rate"])

    def test_update_missing_template(self, manager: TemplateManager):
        """Updating an unknown id returns None."""
        assert manager.update_template(TENANT, "missing", ImportTemplateUpdate(name="x")) is None

    def test_delete_template(self, manager: TemplateManager, template):
        """Deleted templates are gone."""
        assert manager.delete_template(TENANT, template.id)
        assert manager.get_template(TENANT, template.id) is None
        assert not manager.delete_template(TENANT, template.id)

    def test_other_tenant_cannot_see_template(self, manager: TemplateManager, template):
        """Templates of another tenant cannot be read, changed or deleted."""
        assert manager.get_template("other-tenant", template.id) is None
        assert manager.update_template(
            "other-tenant", template.id, ImportTemplateUpdate(name="Stolen")
        ) is None
        assert manager.record_usage("other-tenant", template.id) is None
        assert not manager.delete_template("other-tenant", template.id)

        kept = manager.get_template(TENANT, template.id)
        assert kept.name == "Vendor A price list"
        assert kept.usage_count == 0

    def test_record_usage(self, manager: TemplateManager, template):
        """Each recorded use bumps the counter and timestamp."""
        manager.record_usage(TENANT, template.id)
        used = manager.record_usage(TENANT, template.id)
        assert used.usage_count == 2
        assert used.last_used_at is not None

    def test_list_most_recently_used_first(self, manager: TemplateManager, template):
        """Used templates are listed before unused ones."""
        other = manager.create_template(
            TENANT,
            ImportTemplateCreate(
                name="Other", mapping={"Title": "title"}, expected_headers=["Title"]
            ),
        )
        manager.record_usage(TENANT, other.id)

        names = [t.name for t in manager.list_templates(TENANT)]
        assert names == ["Other", "Vendor A price list"]


class TestResolveTemplate:
    """Tests for choosing a template for an upload."""

    def test_resolve_by_fingerprint(self, manager: TemplateManager, template):
        """Identical headers resolve by fingerprint."""
        resolution = manager.resolve_template(TENANT, [h.lower() for h in HEADERS])
        assert resolution.template.id == template.id
        assert resolution.matched_by == "fingerprint"

    def test_resolve_by_header_set(self, manager: TemplateManager, template):
        """Reordered headers with extras resolve by header set."""
        headers = ["Currency", "Price", "Author", "Title", "ISBN", "Notes"]
        resolution = manager.resolve_template(TENANT, headers)

        assert resolution.template.id == template.id
        assert resolution.matched_by == "headers"
        assert resolution.match.extra_headers == ["Notes"]

    def test_mapping_uses_upload_spelling(self, manager: TemplateManager, template):
        """The applied mapping is keyed by the file's own headers."""
        headers = ["isbn", "title", "author", "price", "currency"]
        resolution = manager.resolve_template(TENANT, headers)
        assert resolution.mapping_for(headers) == {
            "isbn": "isbn",
            "title": "title",
            "author": "author",
            "price": "rate",
            "currency": "currency",
        }

    def test_resolve_fingerprint_ignores_inner_spacing(self, manager: TemplateManager):
        """Headers differing only in inner spacing resolve by fingerprint."""
        saved = manager.create_template(
            TENANT,
            ImportTemplateCreate(
                name="Spaced",
                mapping={"ISBN": "isbn", "Book Title": "title"},
                expected_headers=["ISBN", "Book Title"],
            ),
        )

        resolution = manager.resolve_template(TENANT, ["ISBN", "Book   Title"])

        assert resolution.template.id == saved.id
        assert resolution.matched_by == "fingerprint"
        assert resolution.mapping_for(["ISBN", "Book   Title"])["Book   Title"] == "title"

    def test_no_match(self, manager: TemplateManager, template):
        """Headers matching no template resolve to None."""
        assert manager.resolve_template(TENANT, ["Title", "Rate"]) is None

    def test_explicit_template(self, manager: TemplateManager, template):
        """An explicit template id is used when its headers are present."""
        resolution = manager.resolve_template(TENANT, HEADERS, template.id)
        assert resolution.matched_by == "id"

    def test_explicit_template_header_mismatch(self, manager: TemplateManager, template):
        """An explicit template whose headers are missing is an error."""
        with pytest.raises(MappingError, match="missing headers"):
            manager.resolve_template(TENANT, ["Title"], template.id)

    def test_explicit_template_other_tenant(self, manager: TemplateManager, template):
        """Templates of other tenants cannot be applied."""
        with pytest.raises(MappingError, match="not found"):
            manager.resolve_template("other-tenant", HEADERS, template.id)

    def test_suggestion_round_trip(self, manager: TemplateManager, template):
        """Dictionary mapping of a template's own headers equals its stored mapping."""
        resolution = manager.resolve_template(TENANT, template.expected_headers)
        assert suggest_mapping(template.expected_headers).mapping == resolution.template.mapping
