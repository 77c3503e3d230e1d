"""Python-first interface for discovery calls and seed documents."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from pensieve_index.api.contracts import (
    FandomElementsResponse,
    FandomListResponse,
    PathwayItemPayload,
    PathwayShareRequest,
    PathwayShareResponse,
    PathwayValidateRequest,
    PathwayValidateResponse,
    SeedDocument,
    SharedPathwayEnvelope,
    StoryDetailResponse,
    StorySearchFilters,
    StorySearchRequest,
    StorySearchResponse,
    ValidationRuleCreateRequest,
    ValidationRuleResponse,
    load_seed_json,
    save_seed_json,
)


@dataclass(frozen=True)
class AdminSession:
    """Admin token bound to one API base URL."""

    admin_token: str
    api_base_url: str


class DiscoveryApiClient:
    """Tiny typed API client for Python users."""

    def __init__(self, api_base_url: str = "http://127.0.0.1:8000") -> None:
        """Initialize client with an API base URL."""
        self._api_base_url = api_base_url.rstrip("/")

    @property
    def api_base_url(self) -> str:
        """Return normalized API base URL."""
        return self._api_base_url

    def admin_session(self, admin_token: str) -> AdminSession:
        return AdminSession(admin_token=admin_token, api_base_url=self._api_base_url)

    def list_fandoms(self) -> FandomListResponse:
        response = httpx.get(f"{self._api_base_url}/api/v1/discovery/fandoms", timeout=30.0)
        response.raise_for_status()
        return FandomListResponse.model_validate(response.json())

    def fandom_elements(self, fandom_id: str) -> FandomElementsResponse:
        """Fetch tags grouped by category and the plot-block tree for one fandom."""
        response = httpx.get(
            f"{self._api_base_url}/api/v1/discovery/fandoms/{fandom_id}/elements",
            timeout=30.0,
        )
        response.raise_for_status()
        return FandomElementsResponse.model_validate(response.json())

    def validate_pathway(
        self,
        *,
        fandom_id: str,
        pathway: Sequence[PathwayItemPayload],
        user_id: str | None = None,
    ) -> PathwayValidateResponse:
        """Validate a pathway and return analysis plus completion suggestions."""
        request = PathwayValidateRequest(
            fandom_id=fandom_id,
            pathway=list(pathway),
            user_id=user_id,
        )
        response = httpx.post(
            f"{self._api_base_url}/api/v1/discovery/pathways/validate",
            json=request.model_dump(mode="json", by_alias=True, exclude_none=True),
            timeout=30.0,
        )
        response.raise_for_status()
        return PathwayValidateResponse.model_validate(response.json())

    def search_stories(
        self,
        *,
        fandom_id: str,
        pathway: Sequence[PathwayItemPayload],
        filters: StorySearchFilters | None = None,
        limit: int = 20,
    ) -> StorySearchResponse:
        """Rank stories for a pathway; the response always carries a prompt."""
        request = StorySearchRequest(
            fandom_id=fandom_id,
            pathway=list(pathway),
            filters=filters or StorySearchFilters(),
            limit=limit,
        )
        response = httpx.post(
            f"{self._api_base_url}/api/v1/discovery/search/stories",
            json=request.model_dump(mode="json", by_alias=True, exclude_none=True),
            timeout=30.0,
        )
        response.raise_for_status()
        return StorySearchResponse.model_validate(response.json())

    def share_pathway(
        self,
        *,
        pathway: Sequence[PathwayItemPayload],
        fandom_id: str | None = None,
    ) -> PathwayShareResponse:
        request = PathwayShareRequest(fandom_id=fandom_id, pathway=list(pathway))
        response = httpx.post(
            f"{self._api_base_url}/api/v1/discovery/pathways/share",
            json=request.model_dump(mode="json", by_alias=True, exclude_none=True),
            timeout=30.0,
        )
        response.raise_for_status()
        return PathwayShareResponse.model_validate(response.json())

    def shared_pathway(self, pathway_id: str) -> SharedPathwayEnvelope:
        response = httpx.get(
            f"{self._api_base_url}/api/v1/discovery/pathways/{pathway_id}",
            timeout=30.0,
        )
        response.raise_for_status()
        return SharedPathwayEnvelope.model_validate(response.json())

    def story_detail(self, story_id: str) -> StoryDetailResponse:
        response = httpx.get(
            f"{self._api_base_url}/api/v1/discovery/stories/{story_id}",
            timeout=30.0,
        )
        response.raise_for_status()
        return StoryDetailResponse.model_validate(response.json())

    def create_validation_rule(
        self,
        *,
        session: AdminSession,
        rule: ValidationRuleCreateRequest,
    ) -> ValidationRuleResponse:
        """Create one validation rule through the admin surface."""
        response = httpx.post(
            f"{session.api_base_url}/api/v1/admin/validation-rules",
            json=rule.model_dump(mode="json", by_alias=True, exclude_none=True),
            headers={"Authorization": f"Bearer {session.admin_token}"},
            timeout=30.0,
        )
        response.raise_for_status()
        return ValidationRuleResponse.model_validate(response.json())

    def deactivate_validation_rule(
        self,
        *,
        session: AdminSession,
        rule_id: str,
    ) -> ValidationRuleResponse:
        response = httpx.post(
            f"{session.api_base_url}/api/v1/admin/validation-rules/{rule_id}/deactivate",
            headers={"Authorization": f"Bearer {session.admin_token}"},
            timeout=30.0,
        )
        response.raise_for_status()
        return ValidationRuleResponse.model_validate(response.json())


__all__ = [
    "AdminSession",
    "DiscoveryApiClient",
    "PathwayItemPayload",
    "SeedDocument",
    "load_seed_json",
    "save_seed_json",
]
