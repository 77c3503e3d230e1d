"""FastAPI application exposing pathway discovery and catalog administration."""

from __future__ import annotations

import hmac
import json
import logging
import os
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Literal

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from pensieve_index.adapters.sqlite_anomaly_store import SQLiteAnomalyStore, StoredAnomaly
from pensieve_index.adapters.sqlite_rule_store import SQLiteRuleStore
from pensieve_index.adapters.sqlite_story_store import SQLiteStoryStore
from pensieve_index.adapters.sqlite_taxonomy_store import SQLiteTaxonomyStore
from pensieve_index.api.catalog import CatalogWriteError, CatalogWriter
from pensieve_index.api.contracts import (
    ActivationResponse,
    AnomalyResponse,
    BlockedCombinationResponse,
    CompletionSuggestionResponse,
    DiscoveryStateResponse,
    ErrorResponse,
    ExecutionMetadataResponse,
    FandomCreateRequest,
    FandomElementsResponse,
    FandomElementsSectionResponse,
    FandomListResponse,
    FandomResponse,
    FandomSummaryResponse,
    PathwayAnalysisResponse,
    PathwayItemResponse,
    PathwayShareRequest,
    PathwayShareResponse,
    PathwayStateResponse,
    PathwayValidateRequest,
    PathwayValidateResponse,
    PathwayValidationResponse,
    PlotBlockCreateRequest,
    PlotBlockNodeResponse,
    PlotBlockParentRequest,
    PlotBlockResponse,
    PlotBlocksSectionResponse,
    PromptNoveltyResponse,
    ScoredStoryResponse,
    SearchAnalysisResponse,
    SearchPromptResponse,
    SearchQueryResponse,
    SearchResultsResponse,
    SearchSectionResponse,
    SharedPathwayEnvelope,
    SharedPathwayResponse,
    SharedPromptResponse,
    SharingResponse,
    SkippedRuleResponse,
    StoryCreateRequest,
    StoryDetailResponse,
    StoryMatchResponse,
    StoryMetadataResponse,
    StorySearchFilters,
    StorySearchRequest,
    StorySearchResponse,
    TagCategoryResponse,
    TagClassCreateRequest,
    TagClassResponse,
    TagClassRulesPayload,
    TagCreateRequest,
    TagResponse,
    TagsSectionResponse,
    TaxonomyRefResponse,
    TimestampMetadataResponse,
    ValidationIssueResponse,
    ValidationRuleCreateRequest,
    ValidationRuleResponse,
    to_pathway_items,
    utc_timestamp,
)
from pensieve_index.application.discovery import (
    DiscoveryService,
    FandomNotFoundError,
    StoryNotFoundError,
)
from pensieve_index.core.pathway_analysis import PathwayAnalysis
from pensieve_index.core.pathway_codec import PathwayDecodeError
from pensieve_index.core.pathway_validation import PathwayValidationResult, ValidationIssue
from pensieve_index.core.prompt_generation import CompletionSuggestion
from pensieve_index.core.relevance_scoring import ScoredStory, ScoreWeights
from pensieve_index.core.taxonomy import PlotTreeNode
from pensieve_index.domain.models import (
    Fandom,
    PathwayItem,
    PlotBlock,
    Story,
    StoryFilters,
    Tag,
    ValidationRule,
)

DEFAULT_DB_PATH = Path("work/local/pensieve_index.db")
NO_CACHE = "no-cache, no-store, must-revalidate"

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Simple health payload used by probes."""

    status: Literal["ok"] = "ok"
    service: str = "pensieve_index"


class ApiRootResponse(BaseModel):
    """Describes currently available API capabilities."""

    name: str = "pensieve_index"
    persistence: Literal["sqlite"] = "sqlite"
    endpoints: list[str] = Field(
        default_factory=lambda: [
            "/healthz",
            "/api/v1",
            "/api/v1/discovery/fandoms",
            "/api/v1/discovery/fandoms/{fandom_id}/elements",
            "/api/v1/discovery/pathways/validate",
            "/api/v1/discovery/pathways/share",
            "/api/v1/discovery/pathways/{pathway_id}",
            "/api/v1/discovery/search/stories",
            "/api/v1/discovery/stories/{story_id}",
            "/api/v1/admin/fandoms",
            "/api/v1/admin/tag-classes",
            "/api/v1/admin/tags",
            "/api/v1/admin/tags/{tag_id}/deactivate",
            "/api/v1/admin/plot-blocks",
            "/api/v1/admin/plot-blocks/{plot_block_id}/parent",
            "/api/v1/admin/plot-blocks/{plot_block_id}/deactivate",
            "/api/v1/admin/validation-rules",
            "/api/v1/admin/validation-rules/{rule_id}/deactivate",
            "/api/v1/admin/stories",
            "/api/v1/admin/stories/{story_id}/deactivate",
            "/api/v1/admin/anomalies",
        ]
    )


def _resolve_db_path(db_path: Path | None) -> Path:
    """Resolve DB path from explicit arg, env var, then default path."""
    if db_path is not None:
        return db_path
    env_value = os.environ.get("PENSIEVE_DB_PATH", "").strip()
    if env_value:
        return Path(env_value)
    return DEFAULT_DB_PATH


def _cors_origins() -> list[str]:
    raw = os.environ.get("PENSIEVE_CORS_ORIGINS", "").strip()
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    return ["http://127.0.0.1:5173", "http://localhost:5173"]


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def _float_env(name: str, default: float, *, minimum: float, maximum: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def _score_weights() -> ScoreWeights:
    defaults = ScoreWeights()
    return ScoreWeights(
        tag=_float_env("PENSIEVE_TAG_MATCH_WEIGHT", defaults.tag, minimum=0.01, maximum=100.0),
        plot_block=_float_env(
            "PENSIEVE_PLOT_BLOCK_MATCH_WEIGHT",
            defaults.plot_block,
            minimum=0.01,
            maximum=100.0,
        ),
    )


def _resolve_admin_token(admin_token: str | None) -> str:
    if admin_token is not None:
        return admin_token
    return os.environ.get("PENSIEVE_ADMIN_TOKEN", "").strip()


def _http_error(
    status_code: int,
    error: str,
    message: str,
    *,
    headers: dict[str, str] | None = None,
) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": error, "message": message},
        headers=headers,
    )


def _error_body(
    error: str, message: str, details: list[dict[str, Any]] | None = None
) -> dict[str, Any]:
    return ErrorResponse(error=error, message=message, details=details).model_dump(
        by_alias=True, exclude_none=True
    )


def _validation_details(exc: RequestValidationError) -> list[dict[str, Any]]:
    details: list[dict[str, Any]] = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.append(
            {
                "field": ".".join(location),
                "message": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
        )
    return details


def _validation_message(details: list[dict[str, Any]]) -> str:
    fields = {detail["field"].split(".")[0] for detail in details}
    if fields & {"fandomId", "pathway"}:
        return "fandomId and pathway array are required"
    if not details:
        return "Request body failed validation"
    first = details[0]
    prefix = f"{first['field']}: " if first["field"] else ""
    return f"{prefix}{first['message']}"


def _item_response(item: PathwayItem) -> PathwayItemResponse:
    return PathwayItemResponse(
        id=item.item_id,
        type=item.item_type,
        name=item.name,
        position=item.position,
        category=item.category,
        description=item.description,
    )


def _issue_response(issue: ValidationIssue, kind: str) -> ValidationIssueResponse:
    return ValidationIssueResponse.model_validate(
        {
            "type": kind,
            "rule": issue.rule,
            "message": issue.message,
            "severity": issue.severity,
            "code": issue.code,
            "rule_id": issue.rule_id,
            "item_ids": list(issue.item_ids),
            "fix": issue.fix,
        }
    )


def _validation_response(result: PathwayValidationResult) -> PathwayValidationResponse:
    return PathwayValidationResponse(
        is_valid=result.is_valid,
        errors=[_issue_response(issue, "error") for issue in result.errors],
        warnings=[_issue_response(issue, "warning") for issue in result.warnings],
        suggestions=[_issue_response(issue, "suggestion") for issue in result.suggestions],
        blocked_combinations=[
            BlockedCombinationResponse(
                rule=blocked.rule,
                message=blocked.message,
                rule_id=blocked.rule_id,
                item_ids=list(blocked.item_ids),
            )
            for blocked in result.blocked_combinations
        ],
        rules_evaluated=result.rules_evaluated,
        rules_skipped=[
            SkippedRuleResponse(
                rule_id=skipped.rule_id,
                rule_name=skipped.rule_name,
                reason=skipped.reason,
            )
            for skipped in result.rules_skipped
        ],
    )


def _analysis_response(analysis: PathwayAnalysis) -> PathwayAnalysisResponse:
    return PathwayAnalysisResponse(
        completeness=analysis.completeness,
        novelty_score=analysis.novelty_score,
        searchability=analysis.searchability,
        item_count=analysis.item_count,
        has_characters=analysis.has_characters,
        has_genre=analysis.has_genre,
        has_plot_elements=analysis.has_plot_elements,
    )


def _suggestion_responses(
    suggestions: Iterable[CompletionSuggestion],
) -> list[CompletionSuggestionResponse]:
    return [
        CompletionSuggestionResponse(
            id=suggestion.item_id,
            type=suggestion.item_type,
            name=suggestion.name,
            category=suggestion.category,
            dimension=suggestion.dimension,
            reason=suggestion.reason,
        )
        for suggestion in suggestions
    ]


def _performance_label(met: bool) -> Literal["met", "exceeded"]:
    return "met" if met else "exceeded"


def _fandom_response(fandom: Fandom) -> FandomResponse:
    return FandomResponse(id=fandom.fandom_id, name=fandom.name, description=fandom.description)


def _tag_response(tag: Tag) -> TagResponse:
    return TagResponse(
        id=tag.tag_id,
        name=tag.name,
        description=tag.description,
        category=tag.category,
        tag_class_id=tag.tag_class_id,
        requires=list(tag.requires),
        enhances=list(tag.enhances),
        is_active=tag.is_active,
    )


def _plot_block_response(block: PlotBlock) -> PlotBlockResponse:
    return PlotBlockResponse(
        id=block.plot_block_id,
        name=block.name,
        description=block.description,
        category=block.category,
        parent_id=block.parent_id,
        requires=list(block.requires),
        conflicts=list(block.conflicts),
        is_active=block.is_active,
    )


def _plot_node_response(node: PlotTreeNode) -> PlotBlockNodeResponse:
    block = node.block
    return PlotBlockNodeResponse(
        id=block.plot_block_id,
        name=block.name,
        description=block.description,
        category=block.category,
        parent_id=block.parent_id,
        requires=list(block.requires),
        conflicts=list(block.conflicts),
        is_active=block.is_active,
        depth=node.depth,
        children=[_plot_node_response(child) for child in node.children],
    )


def _story_metadata(story: Story) -> StoryMetadataResponse:
    return StoryMetadataResponse(
        word_count=story.word_count,
        status=story.status,
        rating=story.rating,
        language=story.language,
        last_updated=story.updated_at_utc,
    )


def _scored_story_response(scored: ScoredStory) -> ScoredStoryResponse:
    story = scored.story
    return ScoredStoryResponse(
        id=story.story_id,
        title=story.title,
        author=story.author,
        summary=story.summary,
        url=story.url,
        metadata=_story_metadata(story),
        match=StoryMatchResponse(
            relevance_score=scored.relevance_score,
            matched_tags=list(scored.matched_tags),
            matched_plot_blocks=list(scored.matched_plot_blocks),
        ),
    )


def _story_detail_response(story: Story) -> StoryDetailResponse:
    return StoryDetailResponse(
        id=story.story_id,
        fandom_id=story.fandom_id,
        title=story.title,
        author=story.author,
        summary=story.summary,
        url=story.url,
        metadata=_story_metadata(story),
        tags=[
            TaxonomyRefResponse(id=tag.tag_id, name=tag.name, category=tag.category)
            for tag in story.tags
        ],
        plot_blocks=[
            TaxonomyRefResponse(id=block.plot_block_id, name=block.name, category=block.category)
            for block in story.plot_blocks
        ],
    )


def _filters_echo(filters: StoryFilters) -> StorySearchFilters:
    return StorySearchFilters(
        min_word_count=filters.min_word_count,
        max_word_count=filters.max_word_count,
        status=list(filters.statuses),
        rating=list(filters.ratings),
        language=list(filters.languages),
    )


def _rule_response(rule: ValidationRule) -> ValidationRuleResponse:
    return ValidationRuleResponse(
        id=rule.rule_id,
        fandom_id=rule.fandom_id,
        name=rule.name,
        rule_type=rule.rule_type,
        priority=rule.priority,
        is_active=rule.is_active,
        description=rule.description,
        condition_count=len(rule.conditions),
        action_count=len(rule.actions),
    )


def _anomaly_response(anomaly: StoredAnomaly) -> AnomalyResponse:
    try:
        metadata = json.loads(anomaly.metadata_json)
    except json.JSONDecodeError:
        metadata = {}
    return AnomalyResponse(
        id=anomaly.anomaly_id,
        created_at_utc=anomaly.created_at_utc,
        scope=anomaly.scope,
        code=anomaly.code,
        severity=anomaly.severity,
        message=anomaly.message,
        fandom_id=anomaly.fandom_id,
        rule_id=anomaly.rule_id,
        metadata=metadata if isinstance(metadata, dict) else {},
    )


def create_app(db_path: Path | None = None, admin_token: str | None = None) -> FastAPI:
    """Create the API application."""
    effective_db_path = _resolve_db_path(db_path)
    effective_admin_token = _resolve_admin_token(admin_token)
    taxonomy_store = SQLiteTaxonomyStore(db_path=effective_db_path)
    rule_store = SQLiteRuleStore(db_path=effective_db_path)
    story_store = SQLiteStoryStore(db_path=effective_db_path)
    anomaly_store = SQLiteAnomalyStore(db_path=effective_db_path)
    anomaly_retention_days = _int_env(
        "PENSIEVE_ANOMALY_RETENTION_DAYS",
        30,
        minimum=1,
        maximum=3650,
    )
    anomaly_max_rows = _int_env(
        "PENSIEVE_ANOMALY_MAX_ROWS",
        10_000,
        minimum=100,
        maximum=2_000_000,
    )
    share_base_url = os.environ.get("PENSIEVE_SHARE_BASE_URL", "").strip().rstrip("/")
    service = DiscoveryService(
        taxonomy=taxonomy_store,
        rules=rule_store,
        stories=story_store,
        anomalies=anomaly_store,
        weights=_score_weights(),
    )
    catalog = CatalogWriter(
        taxonomy_store=taxonomy_store,
        rule_store=rule_store,
        story_store=story_store,
    )
    bearer = HTTPBearer(auto_error=False)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        removed = anomaly_store.prune_anomalies(
            retention_days=anomaly_retention_days,
            max_rows=anomaly_max_rows,
        )
        logger.info("anomaly.prune removed=%s", removed)
        yield

    app = FastAPI(
        title="Pensieve Index API",
        version="0.1.0",
        description=(
            "Pathway validation, relevance-ranked story discovery, and prompt "
            "generation over fandom taxonomies."
        ),
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=[
            {"name": "system", "description": "Service health and runtime metadata."},
            {"name": "api", "description": "API discovery and root-level capability listing."},
            {"name": "fandoms", "description": "Fandom listings and browsable taxonomy elements."},
            {
                "name": "pathways",
                "description": "Pathway validation, analysis, and shareable snapshots.",
            },
            {"name": "search", "description": "Relevance-ranked story search with prompts."},
            {"name": "stories", "description": "Story detail reads."},
            {"name": "admin", "description": "Token-gated catalog writes and anomaly reads."},
        ],
        swagger_ui_parameters={
            "displayRequestDuration": True,
            "defaultModelsExpandDepth": -1,
        },
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info(
        "api.start db_path=%s anomaly_retention_days=%s anomaly_max_rows=%s admin_enabled=%s",
        effective_db_path,
        anomaly_retention_days,
        anomaly_max_rows,
        bool(effective_admin_token),
    )

    def record_anomaly(
        *,
        scope: str,
        code: str,
        severity: str,
        message: str,
        metadata: dict[str, object] | None = None,
    ) -> None:
        """Persist anomaly breadcrumbs and mirror concise warning logs."""
        anomaly = anomaly_store.write_anomaly(
            scope=scope,
            code=code,
            severity=severity,
            message=message,
            metadata=metadata,
        )
        logger.warning(
            "anomaly.recorded id=%s scope=%s code=%s severity=%s message=%s",
            anomaly.anomaly_id,
            scope,
            code,
            severity,
            message,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = _validation_details(exc)
        logger.info(
            "api.invalid_request path=%s errors=%s", request.url.path, len(details)
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder(
                _error_body("Invalid request", _validation_message(details), details)
            ),
            headers={"Cache-Control": NO_CACHE},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail
        if isinstance(detail, dict) and "error" in detail:
            body = _error_body(str(detail["error"]), str(detail.get("message", "")))
        else:
            body = _error_body(str(detail), str(detail))
        headers = dict(exc.headers or {})
        headers.setdefault("Cache-Control", NO_CACHE)
        return JSONResponse(status_code=exc.status_code, content=body, headers=headers)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("api.unhandled_error path=%s", request.url.path)
        record_anomaly(
            scope="api",
            code="unhandled_exception",
            severity="error",
            message=f"{type(exc).__name__} on {request.method} {request.url.path}",
            metadata={"path": request.url.path, "method": request.method},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("Internal server error", "An unexpected error occurred."),
            headers={"Cache-Control": NO_CACHE},
        )

    def require_admin(
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    ) -> None:
        if not effective_admin_token:
            raise _http_error(
                status.HTTP_403_FORBIDDEN,
                "Admin writes disabled",
                "Set PENSIEVE_ADMIN_TOKEN to enable catalog administration.",
            )
        if credentials is None or not hmac.compare_digest(
            credentials.credentials.encode("utf-8"),
            effective_admin_token.encode("utf-8"),
        ):
            raise _http_error(
                status.HTTP_401_UNAUTHORIZED,
                "Unauthorized",
                "Missing or invalid admin bearer token.",
                headers={"WWW-Authenticate": "Bearer"},
            )

    def fandom_not_found(fandom_id: str) -> HTTPException:
        return _http_error(404, "Fandom not found", f"No active fandom with id {fandom_id}.")

    def catalog_error(exc: CatalogWriteError) -> HTTPException:
        status_code = 409 if exc.error == "Conflict" else 422
        return _http_error(status_code, exc.error, exc.message)

    @app.get("/healthz", response_model=HealthResponse, tags=["system"])
    def healthz() -> HealthResponse:
        return HealthResponse()

    @app.get("/api/v1", response_model=ApiRootResponse, tags=["api"])
    def api_v1_root() -> ApiRootResponse:
        return ApiRootResponse()

    @app.get("/api/v1/discovery/fandoms", response_model=FandomListResponse, tags=["fandoms"])
    def list_fandoms(response: Response) -> FandomListResponse:
        summaries = service.list_fandoms()
        response.headers["Cache-Control"] = "public, s-maxage=300, stale-while-revalidate=600"
        return FandomListResponse(
            fandoms=[
                FandomSummaryResponse(
                    id=summary.fandom.fandom_id,
                    name=summary.fandom.name,
                    description=summary.fandom.description,
                    tag_count=summary.tag_count,
                    plot_block_count=summary.plot_block_count,
                    story_count=summary.story_count,
                )
                for summary in summaries
            ],
            total=len(summaries),
        )

    @app.get(
        "/api/v1/discovery/fandoms/{fandom_id}/elements",
        response_model=FandomElementsResponse,
        tags=["fandoms"],
    )
    def fandom_elements(fandom_id: str, response: Response) -> FandomElementsResponse:
        try:
            elements = service.fandom_elements(fandom_id)
        except FandomNotFoundError as exc:
            raise fandom_not_found(fandom_id) from exc
        response.headers["Cache-Control"] = "public, s-maxage=600, stale-while-revalidate=1800"
        return FandomElementsResponse(
            fandom=_fandom_response(elements.fandom),
            elements=FandomElementsSectionResponse(
                tags=TagsSectionResponse(
                    by_category=[
                        TagCategoryResponse(
                            category=category,
                            tags=[_tag_response(tag) for tag in tags],
                        )
                        for category, tags in elements.tags_by_category
                    ],
                    total=elements.tag_count,
                ),
                plot_blocks=PlotBlocksSectionResponse(
                    tree=[_plot_node_response(node) for node in elements.plot_forest],
                    total=elements.plot_block_count,
                ),
            ),
            metadata=TimestampMetadataResponse(timestamp=utc_timestamp()),
        )

    @app.post(
        "/api/v1/discovery/pathways/validate",
        response_model=PathwayValidateResponse,
        tags=["pathways"],
    )
    def validate_pathway(
        payload: PathwayValidateRequest, response: Response
    ) -> PathwayValidateResponse:
        try:
            report = service.validate(
                to_pathway_items(payload.pathway),
                fandom_id=payload.fandom_id,
                user_id=payload.user_id,
            )
        except FandomNotFoundError as exc:
            raise fandom_not_found(payload.fandom_id) from exc
        performance = _performance_label(report.performance_met)
        response.headers["X-Execution-Time"] = str(report.execution_ms)
        response.headers["X-Performance-Target"] = performance
        response.headers["Cache-Control"] = NO_CACHE
        return PathwayValidateResponse(
            validation=_validation_response(report.validation),
            analysis=_analysis_response(report.analysis),
            suggestions=_suggestion_responses(report.suggestions),
            metadata=ExecutionMetadataResponse(
                fandom_id=report.fandom.fandom_id,
                pathway_length=len(report.items),
                execution_time=report.execution_ms,
                timestamp=utc_timestamp(),
                performance_target=performance,
            ),
        )

    @app.post(
        "/api/v1/discovery/search/stories",
        response_model=StorySearchResponse,
        tags=["search"],
    )
    def search_stories(payload: StorySearchRequest, response: Response) -> StorySearchResponse:
        try:
            report = service.search(
                to_pathway_items(payload.pathway),
                fandom_id=payload.fandom_id,
                filters=payload.filters.to_domain(),
                limit=payload.limit,
            )
        except FandomNotFoundError as exc:
            raise fandom_not_found(payload.fandom_id) from exc
        performance = _performance_label(report.performance_met)
        response.headers["X-Execution-Time"] = str(report.execution_ms)
        response.headers["X-Performance-Target"] = performance
        response.headers["Cache-Control"] = "public, s-maxage=60, stale-while-revalidate=300"
        return StorySearchResponse(
            search=SearchSectionResponse(
                query=SearchQueryResponse(
                    fandom=report.fandom.fandom_id,
                    pathway=[_item_response(item) for item in report.items],
                    filters=_filters_echo(report.filters),
                ),
                results=SearchResultsResponse(
                    stories=[_scored_story_response(scored) for scored in report.outcome.stories],
                    total=report.outcome.total,
                    has_more=report.outcome.has_more,
                ),
                prompt=SearchPromptResponse(
                    text=report.prompt.text,
                    novelty=PromptNoveltyResponse(
                        highlights=list(report.prompt.novelty_highlights),
                        suggestions=_suggestion_responses(report.prompt.completion_suggestions),
                    ),
                    reason=report.prompt_reason,
                ),
            ),
            analysis=SearchAnalysisResponse(
                pathway=PathwayStateResponse(
                    completeness=report.analysis.completeness,
                    novelty_score=report.analysis.novelty_score,
                    searchability=report.analysis.searchability,
                    is_valid=report.is_valid,
                ),
                discovery=DiscoveryStateResponse.model_validate(
                    {
                        "story_count": report.outcome.total,
                        "novelty_potential": report.novelty_potential,
                        "recommend_action": report.recommend_action,
                    }
                ),
            ),
            metadata=ExecutionMetadataResponse(
                fandom_id=report.fandom.fandom_id,
                pathway_length=len(report.items),
                execution_time=report.execution_ms,
                timestamp=utc_timestamp(),
                performance_target=performance,
            ),
        )

    @app.post(
        "/api/v1/discovery/pathways/share",
        response_model=PathwayShareResponse,
        tags=["pathways"],
        status_code=201,
    )
    def share_pathway(payload: PathwayShareRequest, request: Request) -> PathwayShareResponse:
        try:
            token = service.share(to_pathway_items(payload.pathway), fandom_id=payload.fandom_id)
        except FandomNotFoundError as exc:
            raise fandom_not_found(payload.fandom_id or "") from exc
        base_url = share_base_url or str(request.base_url).rstrip("/")
        return PathwayShareResponse(id=token, url=f"{base_url}/pathway/{token}")

    @app.get(
        "/api/v1/discovery/pathways/{pathway_id}",
        response_model=SharedPathwayEnvelope,
        tags=["pathways"],
    )
    def get_shared_pathway(
        pathway_id: str, request: Request, response: Response
    ) -> SharedPathwayEnvelope:
        try:
            report = service.shared_pathway(pathway_id)
        except PathwayDecodeError as exc:
            raise _http_error(
                404, "Pathway not found", "The pathway id could not be decoded."
            ) from exc
        base_url = share_base_url or str(request.base_url).rstrip("/")
        response.headers["Cache-Control"] = "public, s-maxage=3600, stale-while-revalidate=7200"
        return SharedPathwayEnvelope(
            pathway=SharedPathwayResponse(
                id=report.token,
                fandom_id=report.fandom.fandom_id if report.fandom is not None else None,
                items=[_item_response(item) for item in report.items],
                analysis=_analysis_response(report.analysis),
                validation=(
                    _validation_response(report.validation)
                    if report.validation is not None
                    else None
                ),
                prompt=SharedPromptResponse(
                    text=report.prompt.text,
                    generated=bool(report.prompt.text),
                    highlights=list(report.prompt.novelty_highlights),
                ),
            ),
            sharing=SharingResponse(
                url=f"{base_url}/pathway/{report.token}",
                encoded=report.token,
                shareable=True,
            ),
            metadata=TimestampMetadataResponse(timestamp=utc_timestamp()),
        )

    @app.get(
        "/api/v1/discovery/stories/{story_id}",
        response_model=StoryDetailResponse,
        tags=["stories"],
    )
    def get_story(story_id: str, response: Response) -> StoryDetailResponse:
        try:
            story = service.story_detail(story_id)
        except StoryNotFoundError as exc:
            raise _http_error(
                404, "Story not found", f"No active story with id {story_id}."
            ) from exc
        response.headers["Cache-Control"] = "public, s-maxage=1800, stale-while-revalidate=3600"
        return _story_detail_response(story)

    @app.post(
        "/api/v1/admin/fandoms",
        response_model=FandomResponse,
        tags=["admin"],
        status_code=201,
        dependencies=[Depends(require_admin)],
    )
    def create_fandom(payload: FandomCreateRequest) -> FandomResponse:
        try:
            return _fandom_response(catalog.create_fandom(payload))
        except CatalogWriteError as exc:
            raise catalog_error(exc) from exc

    @app.post(
        "/api/v1/admin/tag-classes",
        response_model=TagClassResponse,
        tags=["admin"],
        status_code=201,
        dependencies=[Depends(require_admin)],
    )
    def create_tag_class(payload: TagClassCreateRequest) -> TagClassResponse:
        try:
            tag_class = catalog.create_tag_class(payload)
        except CatalogWriteError as exc:
            raise catalog_error(exc) from exc
        return TagClassResponse(
            id=tag_class.tag_class_id,
            fandom_id=tag_class.fandom_id,
            name=tag_class.name,
            description=tag_class.description,
            validation_rules=TagClassRulesPayload.from_domain(tag_class.rules),
        )

    @app.post(
        "/api/v1/admin/tags",
        response_model=TagResponse,
        tags=["admin"],
        status_code=201,
        dependencies=[Depends(require_admin)],
    )
    def create_tag(payload: TagCreateRequest) -> TagResponse:
        try:
            return _tag_response(catalog.create_tag(payload))
        except CatalogWriteError as exc:
            raise catalog_error(exc) from exc

    @app.post(
        "/api/v1/admin/tags/{tag_id}/deactivate",
        response_model=ActivationResponse,
        tags=["admin"],
        dependencies=[Depends(require_admin)],
    )
    def deactivate_tag(tag_id: str) -> ActivationResponse:
        if not catalog.deactivate_tag(tag_id):
            raise _http_error(404, "Tag not found", f"No tag with id {tag_id}.")
        return ActivationResponse(id=tag_id, is_active=False)

    @app.post(
        "/api/v1/admin/plot-blocks",
        response_model=PlotBlockResponse,
        tags=["admin"],
        status_code=201,
        dependencies=[Depends(require_admin)],
    )
    def create_plot_block(payload: PlotBlockCreateRequest) -> PlotBlockResponse:
        try:
            return _plot_block_response(catalog.create_plot_block(payload))
        except CatalogWriteError as exc:
            raise catalog_error(exc) from exc

    @app.put(
        "/api/v1/admin/plot-blocks/{plot_block_id}/parent",
        response_model=PlotBlockResponse,
        tags=["admin"],
        dependencies=[Depends(require_admin)],
    )
    def move_plot_block(plot_block_id: str, payload: PlotBlockParentRequest) -> PlotBlockResponse:
        try:
            block = catalog.move_plot_block(
                plot_block_id=plot_block_id,
                parent_id=payload.parent_id,
            )
        except CatalogWriteError as exc:
            raise catalog_error(exc) from exc
        if block is None:
            raise _http_error(
                404, "Plot block not found", f"No plot block with id {plot_block_id}."
            )
        return _plot_block_response(block)

    @app.post(
        "/api/v1/admin/plot-blocks/{plot_block_id}/deactivate",
        response_model=ActivationResponse,
        tags=["admin"],
        dependencies=[Depends(require_admin)],
    )
    def deactivate_plot_block(plot_block_id: str) -> ActivationResponse:
        if not catalog.deactivate_plot_block(plot_block_id):
            raise _http_error(
                404, "Plot block not found", f"No plot block with id {plot_block_id}."
            )
        return ActivationResponse(id=plot_block_id, is_active=False)

    @app.post(
        "/api/v1/admin/validation-rules",
        response_model=ValidationRuleResponse,
        tags=["admin"],
        status_code=201,
        dependencies=[Depends(require_admin)],
    )
    def create_validation_rule(payload: ValidationRuleCreateRequest) -> ValidationRuleResponse:
        try:
            return _rule_response(catalog.create_rule(payload))
        except CatalogWriteError as exc:
            raise catalog_error(exc) from exc

    @app.post(
        "/api/v1/admin/validation-rules/{rule_id}/deactivate",
        response_model=ValidationRuleResponse,
        tags=["admin"],
        dependencies=[Depends(require_admin)],
    )
    def deactivate_validation_rule(rule_id: str) -> ValidationRuleResponse:
        rule = catalog.deactivate_rule(rule_id)
        if rule is None:
            raise _http_error(404, "Rule not found", f"No validation rule with id {rule_id}.")
        return _rule_response(rule)

    @app.post(
        "/api/v1/admin/stories",
        response_model=StoryDetailResponse,
        tags=["admin"],
        status_code=201,
        dependencies=[Depends(require_admin)],
    )
    def create_story(payload: StoryCreateRequest) -> StoryDetailResponse:
        try:
            return _story_detail_response(catalog.create_story(payload))
        except CatalogWriteError as exc:
            raise catalog_error(exc) from exc

    @app.post(
        "/api/v1/admin/stories/{story_id}/deactivate",
        response_model=ActivationResponse,
        tags=["admin"],
        dependencies=[Depends(require_admin)],
    )
    def deactivate_story(story_id: str) -> ActivationResponse:
        if not catalog.deactivate_story(story_id):
            raise _http_error(404, "Story not found", f"No story with id {story_id}.")
        return ActivationResponse(id=story_id, is_active=False)

    @app.get(
        "/api/v1/admin/anomalies",
        response_model=list[AnomalyResponse],
        tags=["admin"],
        dependencies=[Depends(require_admin)],
    )
    def list_anomalies(
        limit: int = Query(default=100, ge=1, le=1000),
        scope: str | None = Query(default=None, max_length=40),
        fandom_id: str | None = Query(default=None, alias="fandomId", max_length=120),
    ) -> list[AnomalyResponse]:
        return [
            _anomaly_response(anomaly)
            for anomaly in anomaly_store.list_recent(
                limit=limit,
                scope=scope,
                fandom_id=fandom_id,
            )
        ]

    return app


app = create_app()
