"""
Supabase Database Client.

Provides a singleton instance of the Supabase client and the
Supabase-backed ``ExtractionStore``. Writes go through Postgres functions
(see ``migrations/``): ``create_extraction_with_decisions`` stores a result
with its audit decisions, and ``submit_supervisor_review`` applies a review
with its version check, each in one transaction.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client, create_client

from sessionsight.config import get_settings
from sessionsight.errors import ConcurrencyConflictError, ExtractionNotFoundError
from sessionsight.logging_config import get_logger
from sessionsight.schemas.result import ExtractionResult
from sessionsight.schemas.review import SupervisorReview

logger = get_logger(__name__)

EXTRACTIONS_TABLE = "extractions"
DECISIONS_TABLE = "risk_field_decisions"
REVIEWS_TABLE = "supervisor_reviews"

# SQLSTATE codes raised by submit_supervisor_review.
SQLSTATE_NOT_FOUND = "SS404"
SQLSTATE_VERSION_CONFLICT = "SS409"


class DatabaseClient:
    """Wrapper around the official Supabase Python client."""

    _instance: Optional[DatabaseClient] = None
    _client: Client

    def __new__(cls) -> DatabaseClient:
        """Singleton pattern to ensure only one client instance."""
        if cls._instance is None:
            instance = super().__new__(cls)
            settings = get_settings()

            if not settings.supabase_url or not settings.supabase_service_key:
                logger.warning(
                    "supabase_credentials_missing",
                    url=bool(settings.supabase_url),
                    key=bool(settings.supabase_service_key),
                )

            try:
                instance._client = create_client(settings.supabase_url, settings.supabase_service_key)
                logger.info("supabase_client_initialized", url=settings.supabase_url)
            except Exception as e:
                logger.error("supabase_client_init_failed", error=str(e))
                raise
            cls._instance = instance

        return cls._instance

    @property
    def client(self) -> Client:
        """Access the raw Supabase client."""
        return self._client


# Global accessor
def get_db() -> DatabaseClient:
    return DatabaseClient()


def _extraction_row(result: ExtractionResult) -> dict[str, Any]:
    return result.model_dump(mode="json", exclude={"risk_field_decisions"})


class SupabaseExtractionStore:
    """``ExtractionStore`` over the tables created by ``migrations/001_review_core.sql``."""

    def __init__(self, db: Optional[DatabaseClient] = None) -> None:
        self._db = db or get_db()

    @property
    def client(self) -> Client:
        return self._db.client

    async def create_extraction(self, result: ExtractionResult) -> ExtractionResult:
        params = {
            "p_extraction": _extraction_row(result),
            "p_decisions": [d.model_dump(mode="json") for d in result.risk_field_decisions],
        }
        try:
            self.client.rpc("create_extraction_with_decisions", params).execute()
        except Exception as e:
            logger.error("extraction_insert_error", extraction_id=str(result.id), error=str(e))
            raise

        logger.info(
            "extraction_persisted",
            extraction_id=str(result.id),
            session_id=result.session_id,
            decisions=len(result.risk_field_decisions),
        )
        return result

    async def get_extraction(self, extraction_id: UUID) -> Optional[ExtractionResult]:
        response = (
            self.client.table(EXTRACTIONS_TABLE)
            .select("*")
            .eq("id", str(extraction_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return self._hydrate(response.data[0])

    async def get_extraction_by_session(self, session_id: str) -> Optional[ExtractionResult]:
        response = (
            self.client.table(EXTRACTIONS_TABLE)
            .select("*")
            .eq("session_id", session_id)
            .order("extracted_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return self._hydrate(response.data[0])

    async def list_reviews(self, extraction_id: UUID) -> list[SupervisorReview]:
        response = (
            self.client.table(REVIEWS_TABLE)
            .select("*")
            .eq("extraction_id", str(extraction_id))
            .order("reviewed_at", desc=True)
            .execute()
        )
        return [SupervisorReview.model_validate(row) for row in response.data or []]

    async def apply_review(self, review: SupervisorReview, expected_version: int) -> ExtractionResult:
        params = {
            "p_review_id": str(review.id),
            "p_extraction_id": str(review.extraction_id),
            "p_action": review.action.value,
            "p_reviewer_name": review.reviewer_name,
            "p_notes": review.notes,
            "p_reviewed_at": review.reviewed_at.isoformat(),
            "p_expected_version": expected_version,
        }
        try:
            response = self.client.rpc("submit_supervisor_review", params).execute()
        except APIError as e:
            if e.code == SQLSTATE_NOT_FOUND:
                raise ExtractionNotFoundError(str(review.extraction_id)) from e
            if e.code == SQLSTATE_VERSION_CONFLICT:
                actual = int(e.details) if e.details and str(e.details).isdigit() else -1
                raise ConcurrencyConflictError(str(review.extraction_id), expected_version, actual) from e
            logger.error("apply_review_error", extraction_id=str(review.extraction_id), error=e.message)
            raise

        row = response.data[0] if isinstance(response.data, list) else response.data
        return self._hydrate(row)

    def _hydrate(self, row: dict[str, Any]) -> ExtractionResult:
        decisions = (
            self.client.table(DECISIONS_TABLE)
            .select("*")
            .eq("extraction_id", row["id"])
            .order("position")
            .execute()
        ).data or []
        return ExtractionResult.model_validate({**row, "risk_field_decisions": decisions})
