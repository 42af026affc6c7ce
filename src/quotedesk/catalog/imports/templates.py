"""Saved import templates.

A template stores a header -> field mapping together with the header row it
was built from. Uploads are matched to templates either by header
fingerprint (same headers, same order) or by header set (every expected
header present, extras tolerated).
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select

from ..db.models import ImportTemplate, utc_now
from ..db.schemas import (
    ImportTemplateCreate,
    ImportTemplateResponse,
    ImportTemplateUpdate,
)
from ..db.sqlite import Database
from .errors import MappingError

logger = logging.getLogger(__name__)


def _normalize_header(header) -> str:
    return " ".join(str(header).split()).lower()


def fingerprint(headers: list[str]) -> str:
    """SHA-1 hex digest of a header row.

    Headers are lower-cased with whitespace trimmed and collapsed, blanks
    dropped, and the rest joined with ``|`` in their original order.

    Example:
        >>> fingerprint(["Isbn", "Book Title"]) == fingerprint(["isbn ", "book  title"])
        True
        >>> fingerprint(["ISBN", "Title"]) == fingerprint(["Title", "ISBN"])
        False
    """
    parts = [_normalize_header(h) for h in headers if h is not None and str(h).strip()]
    return hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()


@dataclass
class TemplateMatch:
    """Outcome of comparing an upload's headers to a template."""

    matched: bool
    missing_headers: list[str] = field(default_factory=list)
    extra_headers: list[str] = field(default_factory=list)


def match_template(headers: list[str], expected_headers: list[str]) -> TemplateMatch:
    """Check that every expected header is present in the uploaded headers.

    Comparison ignores case and surrounding/repeated whitespace. Headers in
    the file that the template does not expect are reported, not rejected.
    """
    uploaded = {
        _normalize_header(h): str(h).strip()
        for h in headers
        if h is not None and str(h).strip()
    }
    expected = {_normalize_header(h) for h in expected_headers if h and str(h).strip()}

    missing = [h for h in expected_headers if _normalize_header(h) not in uploaded]
    extra = [original for norm, original in uploaded.items() if norm not in expected]
    return TemplateMatch(
        matched=bool(expected) and not missing,
        missing_headers=missing,
        extra_headers=extra,
    )


@dataclass
class TemplateResolution:
    """A template chosen for an upload and how its headers compared."""

    template: ImportTemplateResponse
    match: TemplateMatch
    matched_by: str  # id, fingerprint or headers

    def mapping_for(self, headers: list[str]) -> dict[str, str]:
        """Template mapping keyed by the upload's own header spelling."""
        by_norm = {_normalize_header(h): str(h).strip() for h in headers if h is not None}
        mapping = {}
        for header, target in self.template.mapping.items():
            actual = by_norm.get(_normalize_header(header))
            if actual is not None:
                mapping[actual] = target
        return mapping


class TemplateManager:
    """Manager for saved import templates."""

    def __init__(self, db: Database):
        """Initialize the template manager.

        Args:
            db: Database instance
        """
        self.db = db

    # ========================================================================
    # Template CRUD
    # ========================================================================

    def create_template(
        self, tenant_id: str, template_data: ImportTemplateCreate
    ) -> ImportTemplateResponse:
        """Save a new template.

        Args:
            tenant_id: Owning tenant
            template_data: Template creation data

        Returns:
            Created template response
        """
        with self.db.get_session() as session:
            template = ImportTemplate(
                tenant_id=tenant_id,
                name=template_data.name,
                description=template_data.description,
                fingerprint=fingerprint(template_data.expected_headers),
            )
            template.set_mapping(template_data.mapping)
            template.set_expected_headers(template_data.expected_headers)
            session.add(template)
            session.flush()

            logger.info("Created import template %r (%s)", template.name, template.id)
            return self._to_response(template)

    def get_template(
        self, tenant_id: str, template_id: str
    ) -> Optional[ImportTemplateResponse]:
        """Get a tenant's template by ID."""
        with self.db.get_session() as session:
            template = self._get_owned(session, tenant_id, template_id)
            if not template:
                return None
            return self._to_response(template)

    def find_by_fingerprint(
        self, tenant_id: str, header_fingerprint: str
    ) -> Optional[ImportTemplateResponse]:
        """Get the most recently used template with this header fingerprint."""
        with self.db.get_session() as session:
            stmt = (
                select(ImportTemplate)
                .where(
                    ImportTemplate.tenant_id == tenant_id,
                    ImportTemplate.fingerprint == header_fingerprint,
                )
                .order_by(*self._recent_first())
                .limit(1)
            )
            template = session.execute(stmt).scalars().first()
            if not template:
                return None
            return self._to_response(template)

    def list_templates(self, tenant_id: str) -> list[ImportTemplateResponse]:
        """Get all templates of a tenant, most recently used first."""
        with self.db.get_session() as session:
            stmt = (
                select(ImportTemplate)
                .where(ImportTemplate.tenant_id == tenant_id)
                .order_by(*self._recent_first())
            )
            return [self._to_response(t) for t in session.execute(stmt).scalars().all()]

    def update_template(
        self, tenant_id: str, template_id: str, update_data: ImportTemplateUpdate
    ) -> Optional[ImportTemplateResponse]:
        """Update a template. A new header row also changes its fingerprint.

        Args:
            tenant_id: Owning tenant
            template_id: Template ID
            update_data: Update data

        Returns:
            Updated template response or None
        """
        with self.db.get_session() as session:
            template = self._get_owned(session, tenant_id, template_id)
            if not template:
                return None

            if update_data.name is not None:
                template.name = update_data.name.strip()
            if update_data.description is not None:
                template.description = update_data.description
            if update_data.mapping is not None:
                template.set_mapping(update_data.mapping)
            if update_data.expected_headers is not None:
                template.set_expected_headers(update_data.expected_headers)
                template.fingerprint = fingerprint(update_data.expected_headers)

            session.flush()
            return self._to_response(template)

    def delete_template(self, tenant_id: str, template_id: str) -> bool:
        """Delete a tenant's template.

        Returns:
            True if deleted, False if the tenant has no such template
        """
        with self.db.get_session() as session:
            template = self._get_owned(session, tenant_id, template_id)
            if not template:
                return False
            session.delete(template)
            return True

    def record_usage(
        self, tenant_id: str, template_id: str
    ) -> Optional[ImportTemplateResponse]:
        """Count one import run against a template."""
        with self.db.get_session() as session:
            template = self._get_owned(session, tenant_id, template_id)
            if not template:
                return None
            template.usage_count = (template.usage_count or 0) + 1
            template.last_used_at = utc_now()
            session.flush()
            return self._to_response(template)

    # ========================================================================
    # Matching
    # ========================================================================

    def resolve_template(
        self,
        tenant_id: str,
        headers: list[str],
        template_id: Optional[str] = None,
    ) -> Optional[TemplateResolution]:
        """Pick the template to apply to an upload.

        An explicit template must exist in the tenant and match the headers,
        otherwise MappingError is raised. Without one, an exact fingerprint
        hit wins, then the first tenant template whose expected headers are
        all present.
        """
        if template_id:
            template = self.get_template(tenant_id, template_id)
            if template is None:
                raise MappingError(f"Import template not found: {template_id}")
            match = match_template(headers, template.expected_headers)
            if not match.matched:
                raise MappingError(
                    f"File is missing headers expected by template '{template.name}': "
                    f"{', '.join(match.missing_headers)}"
                )
            return TemplateResolution(template=template, match=match, matched_by="id")

        template = self.find_by_fingerprint(tenant_id, fingerprint(headers))
        if template:
            match = match_template(headers, template.expected_headers)
            return TemplateResolution(template=template, match=match, matched_by="fingerprint")

        for template in self.list_templates(tenant_id):
            match = match_template(headers, template.expected_headers)
            if match.matched:
                return TemplateResolution(template=template, match=match, matched_by="headers")

        return None

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _get_owned(session, tenant_id: str, template_id: str) -> Optional[ImportTemplate]:
        stmt = select(ImportTemplate).where(
            ImportTemplate.id == template_id,
            ImportTemplate.tenant_id == tenant_id,
        )
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def _recent_first() -> tuple:
        return (
            ImportTemplate.last_used_at.is_(None),
            ImportTemplate.last_used_at.desc(),
            ImportTemplate.created_at.desc(),
        )

    def _to_response(self, template: ImportTemplate) -> ImportTemplateResponse:
        """Convert template model to response."""
        return ImportTemplateResponse(
            id=template.id,
            tenant_id=template.tenant_id,
            name=template.name,
            description=template.description,
            mapping=template.get_mapping(),
            expected_headers=template.get_expected_headers(),
            fingerprint=template.fingerprint,
            usage_count=template.usage_count or 0,
            last_used_at=template.last_used_at,
            created_at=template.created_at,
        )
