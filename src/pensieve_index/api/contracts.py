"""Typed contracts shared by API handlers, the seed loader, and Python clients."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from pensieve_index.domain.models import (
    Action,
    CategoryRestrictions,
    Condition,
    InstanceLimits,
    MutualExclusion,
    PathwayItem,
    RequiredContext,
    StoryFilters,
    TagClassRules,
)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,119}$")
MAX_PATHWAY_LENGTH = 200

MembershipConditionType = Literal["has_tag", "has_plot_block", "has_category"]
CountConditionType = Literal["tag_count", "plot_block_count", "item_count", "plot_block_depth"]
ConditionOperator = Literal[
    "equals", "greater_than", "less_than", "contains", "not_contains", "in", "not_in"
]
CountOperator = Literal["equals", "greater_than", "less_than", "in", "not_in"]
Severity = Literal["error", "warning", "info"]
RuleType = Literal["conditional_requirement", "exclusivity", "prerequisite", "custom"]


class ContractModel(BaseModel):
    """Base model config used by all API contracts; camelCase on the wire."""

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


def _coerce_identifier(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _validate_identifier(value: str, *, field_name: str) -> str:
    if not IDENTIFIER_PATTERN.match(value):
        raise ValueError(
            f"{field_name} must match `{IDENTIFIER_PATTERN.pattern}` "
            "(letters, digits, _ . : or -)."
        )
    return value


def _dedupe_ordered(values: Iterable[str]) -> list[str]:
    deduped: list[str] = []
    seen: set[str] = set()
    for value in values:
        normalized = value.strip()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        deduped.append(normalized)
    return deduped


class PathwayItemPayload(ContractModel):
    """Client-supplied pathway selection; missing fields are filled on conversion."""

    id: str | None = Field(default=None, max_length=200)
    type: Literal["tag", "plot_block"] = "tag"
    name: str = Field(default="", max_length=300)
    category: str | None = Field(default=None, max_length=120)
    position: int | None = Field(default=None, ge=0)
    description: str | None = Field(default=None, max_length=2000)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return _coerce_identifier(value)

    def to_domain(self, index: int) -> PathwayItem:
        return PathwayItem(
            item_id=self.id or f"item_{index}",
            item_type=self.type,
            name=self.name,
            position=self.position if self.position is not None else index,
            category=self.category or None,
            description=self.description or None,
        )


def to_pathway_items(items: Iterable[PathwayItemPayload]) -> list[PathwayItem]:
    return [item.to_domain(index) for index, item in enumerate(items)]


class FandomScopedRequest(ContractModel):
    fandom_id: str = Field(min_length=1, max_length=120)

    @field_validator("fandom_id", mode="before")
    @classmethod
    def _coerce_fandom_id(cls, value: Any) -> Any:
        return _coerce_identifier(value)


class PathwayValidateRequest(FandomScopedRequest):
    """Body of the pathway validation endpoint."""

    pathway: list[PathwayItemPayload] = Field(max_length=MAX_PATHWAY_LENGTH)
    user_id: str | None = Field(default=None, max_length=200)


class StorySearchFilters(ContractModel):
    """Hard filters; status, rating, and language accept one value or a list."""

    min_word_count: int | None = Field(default=None, ge=0)
    max_word_count: int | None = Field(default=None, ge=0)
    status: list[str] = Field(default_factory=list)
    rating: list[str] = Field(default_factory=list)
    language: list[str] = Field(default_factory=list)

    @field_validator("status", "rating", "language", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("status", "rating", "language")
    @classmethod
    def _normalize_values(cls, values: list[str]) -> list[str]:
        return _dedupe_ordered(values)

    @model_validator(mode="after")
    def _validate_range(self) -> StorySearchFilters:
        if (
            self.min_word_count is not None
            and self.max_word_count is not None
            and self.min_word_count > self.max_word_count
        ):
            raise ValueError("minWordCount must not exceed maxWordCount.")
        return self

    def to_domain(self) -> StoryFilters:
        return StoryFilters(
            min_word_count=self.min_word_count,
            max_word_count=self.max_word_count,
            statuses=tuple(self.status),
            ratings=tuple(self.rating),
            languages=tuple(self.language),
        )


class StorySearchRequest(FandomScopedRequest):
    """Body of the story search endpoint."""

    pathway: list[PathwayItemPayload] = Field(max_length=MAX_PATHWAY_LENGTH)
    filters: StorySearchFilters = Field(default_factory=StorySearchFilters)
    limit: int = Field(default=20, ge=1, le=100)


class PathwayShareRequest(ContractModel):
    fandom_id: str | None = Field(default=None, min_length=1, max_length=120)
    pathway: list[PathwayItemPayload] = Field(max_length=MAX_PATHWAY_LENGTH)

    @field_validator("fandom_id", mode="before")
    @classmethod
    def _coerce_fandom_id(cls, value: Any) -> Any:
        return _coerce_identifier(value)


# Rule payloads: one closed variant per condition family and action family.


class ConditionPayloadBase(ContractModel):
    logic_operator: Literal["AND", "OR"] = "AND"
    group_id: str | None = Field(default=None, max_length=120)
    is_negated: bool = False

    @model_validator(mode="before")
    @classmethod
    def _fold_single_target(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "target" not in data:
            return data
        folded = dict(data)
        target = folded.pop("target")
        if target is None:
            return folded
        targets = list(folded.get("targets") or [])
        folded["targets"] = [str(target), *targets]
        return folded


class MembershipConditionPayload(ConditionPayloadBase):
    """Presence test for tags, plot blocks, or categories."""

    type: MembershipConditionType
    operator: ConditionOperator = "contains"
    targets: list[str] = Field(default_factory=list, max_length=100)
    value: bool | int | float | str | list[str] | None = None

    @field_validator("targets")
    @classmethod
    def _normalize_targets(cls, values: list[str]) -> list[str]:
        return _dedupe_ordered(values)

    @model_validator(mode="after")
    def _validate_operands(self) -> MembershipConditionPayload:
        numeric = isinstance(self.value, (int, float)) and not isinstance(self.value, bool)
        if self.operator in {"greater_than", "less_than"}:
            if not self.targets:
                raise ValueError(f"{self.type} with {self.operator} needs targets.")
            if not numeric:
                raise ValueError(f"{self.type} with {self.operator} needs a numeric value.")
            return self
        has_value_targets = (isinstance(self.value, list) and bool(self.value)) or (
            isinstance(self.value, str) and bool(self.value.strip())
        )
        if not self.targets and not has_value_targets:
            raise ValueError(f"{self.type} condition needs at least one target.")
        return self

    def to_domain(self) -> Condition:
        value = tuple(self.value) if isinstance(self.value, list) else self.value
        return Condition(
            condition_type=self.type,
            targets=tuple(self.targets),
            operator=self.operator,
            value=value,
            logic_operator=self.logic_operator,
            group_id=self.group_id,
            is_negated=self.is_negated,
        )


class CountConditionPayload(ConditionPayloadBase):
    """Numeric comparison against item counts or plot-block depth."""

    type: CountConditionType
    operator: CountOperator = "equals"
    targets: list[str] = Field(default_factory=list, max_length=100)
    value: int | list[int]

    @model_validator(mode="after")
    def _validate_operands(self) -> CountConditionPayload:
        if self.operator in {"in", "not_in"}:
            if not isinstance(self.value, list) or not self.value:
                raise ValueError(f"{self.operator} needs a non-empty list value.")
        elif isinstance(self.value, list):
            raise ValueError(f"{self.operator} needs a single integer value.")
        return self

    def to_domain(self) -> Condition:
        value = (
            tuple(str(entry) for entry in self.value)
            if isinstance(self.value, list)
            else self.value
        )
        return Condition(
            condition_type=self.type,
            targets=tuple(_dedupe_ordered(self.targets)),
            operator=self.operator,
            value=value,
            logic_operator=self.logic_operator,
            group_id=self.group_id,
            is_negated=self.is_negated,
        )


ConditionPayload = Annotated[
    MembershipConditionPayload | CountConditionPayload,
    Field(discriminator="type"),
]


class TargetedActionPayload(ContractModel):
    """Require, forbid, or suggest specific taxonomy items."""

    type: Literal["require_tag", "forbid_tag", "suggest_tag", "require_plot_block"]
    severity: Severity = "error"
    message: str = Field(default="", max_length=1000)
    target_ids: list[str] = Field(default_factory=list, max_length=100)

    @field_validator("target_ids")
    @classmethod
    def _normalize_targets(cls, values: list[str]) -> list[str]:
        return _dedupe_ordered(values)

    @model_validator(mode="after")
    def _validate_targets(self) -> TargetedActionPayload:
        if self.type == "suggest_tag" and not self.target_ids:
            raise ValueError("suggest_tag actions need targetIds.")
        return self

    def to_domain(self) -> Action:
        severity = "info" if self.type == "suggest_tag" else self.severity
        return Action(
            action_type=self.type,
            severity=severity,
            message=self.message,
            target_ids=tuple(self.target_ids),
        )


class MessageActionPayload(ContractModel):
    type: Literal["show_message"]
    severity: Severity = "info"
    message: str = Field(min_length=1, max_length=1000)

    def to_domain(self) -> Action:
        return Action(action_type=self.type, severity=self.severity, message=self.message)


ActionPayload = Annotated[
    TargetedActionPayload | MessageActionPayload,
    Field(discriminator="type"),
]


class ValidationRuleCreateRequest(FandomScopedRequest):
    """Admin write for one validation rule; unknown condition/action types are rejected."""

    id: str | None = None
    name: str = Field(min_length=1, max_length=200)
    rule_type: RuleType = "custom"
    priority: int = Field(default=0, ge=0, le=10_000)
    description: str = Field(default="", max_length=2000)
    conditions: list[ConditionPayload] = Field(min_length=1, max_length=50)
    actions: list[ActionPayload] = Field(min_length=1, max_length=20)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str | None) -> str | None:
        return None if value is None else _validate_identifier(value, field_name="Rule id")


class MutualExclusionPayload(ContractModel):
    within_class: bool = False
    conflicting_tags: list[str] = Field(default_factory=list)
    conflicting_classes: list[str] = Field(default_factory=list)


class RequiredContextPayload(ContractModel):
    required_tags: list[str] = Field(default_factory=list)
    required_classes: list[str] = Field(default_factory=list)


class InstanceLimitsPayload(ContractModel):
    max_instances: int | None = Field(default=None, ge=0)
    min_instances: int | None = Field(default=None, ge=0)
    exact_instances: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _validate_limits(self) -> InstanceLimitsPayload:
        if (
            self.min_instances is not None
            and self.max_instances is not None
            and self.min_instances > self.max_instances
        ):
            raise ValueError("minInstances must not exceed maxInstances.")
        if self.exact_instances is not None and (
            self.min_instances is not None or self.max_instances is not None
        ):
            raise ValueError("exactInstances cannot be combined with min/max limits.")
        return self


class CategoryRestrictionsPayload(ContractModel):
    excluded_categories: list[str] = Field(default_factory=list)
    applicable_categories: list[str] = Field(default_factory=list)


class TagClassRulesPayload(ContractModel):
    mutual_exclusion: MutualExclusionPayload | None = None
    required_context: RequiredContextPayload | None = None
    instance_limits: InstanceLimitsPayload | None = None
    category_restrictions: CategoryRestrictionsPayload | None = None

    def to_domain(self) -> TagClassRules:
        exclusion = self.mutual_exclusion
        context = self.required_context
        limits = self.instance_limits
        restrictions = self.category_restrictions
        return TagClassRules(
            mutual_exclusion=(
                MutualExclusion(
                    within_class=exclusion.within_class,
                    conflicting_tags=tuple(_dedupe_ordered(exclusion.conflicting_tags)),
                    conflicting_classes=tuple(_dedupe_ordered(exclusion.conflicting_classes)),
                )
                if exclusion is not None
                else None
            ),
            required_context=(
                RequiredContext(
                    required_tags=tuple(_dedupe_ordered(context.required_tags)),
                    required_classes=tuple(_dedupe_ordered(context.required_classes)),
                )
                if context is not None
                else None
            ),
            instance_limits=(
                InstanceLimits(
                    max_instances=limits.max_instances,
                    min_instances=limits.min_instances,
                    exact_instances=limits.exact_instances,
                )
                if limits is not None
                else None
            ),
            category_restrictions=(
                CategoryRestrictions(
                    excluded_categories=tuple(_dedupe_ordered(restrictions.excluded_categories)),
                    applicable_categories=tuple(
                        _dedupe_ordered(restrictions.applicable_categories)
                    ),
                )
                if restrictions is not None
                else None
            ),
        )

    @classmethod
    def from_domain(cls, rules: TagClassRules) -> TagClassRulesPayload:
        return cls.model_validate(
            {
                "mutual_exclusion": _dataclass_dict(rules.mutual_exclusion),
                "required_context": _dataclass_dict(rules.required_context),
                "instance_limits": _dataclass_dict(rules.instance_limits),
                "category_restrictions": _dataclass_dict(rules.category_restrictions),
            }
        )


def _dataclass_dict(value: object | None) -> dict[str, object] | None:
    if value is None:
        return None
    return {
        key: list(entry) if isinstance(entry, tuple) else entry
        for key, entry in vars(value).items()
    }


class FandomCreateRequest(ContractModel):
    id: str | None = None
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=4000)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str | None) -> str | None:
        return None if value is None else _validate_identifier(value, field_name="Fandom id")


class TagClassCreateRequest(FandomScopedRequest):
    id: str | None = None
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    validation_rules: TagClassRulesPayload = Field(default_factory=TagClassRulesPayload)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str | None) -> str | None:
        return None if value is None else _validate_identifier(value, field_name="Tag class id")


class TagCreateRequest(FandomScopedRequest):
    id: str | None = None
    name: str = Field(min_length=1, max_length=200)
    category: str = Field(default="", max_length=120)
    tag_class_id: str | None = None
    requires: list[str] = Field(default_factory=list)
    enhances: list[str] = Field(default_factory=list)
    description: str = Field(default="", max_length=2000)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str | None) -> str | None:
        return None if value is None else _validate_identifier(value, field_name="Tag id")

    @field_validator("requires", "enhances")
    @classmethod
    def _normalize_relations(cls, values: list[str]) -> list[str]:
        return _dedupe_ordered(values)


class PlotBlockCreateRequest(FandomScopedRequest):
    id: str | None = None
    name: str = Field(min_length=1, max_length=200)
    parent_id: str | None = None
    requires: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    category: str = Field(default="", max_length=120)
    description: str = Field(default="", max_length=2000)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str | None) -> str | None:
        return None if value is None else _validate_identifier(value, field_name="Plot block id")

    @field_validator("requires", "conflicts")
    @classmethod
    def _normalize_relations(cls, values: list[str]) -> list[str]:
        return _dedupe_ordered(values)

    @model_validator(mode="after")
    def _validate_self_reference(self) -> PlotBlockCreateRequest:
        if self.id is not None and self.parent_id == self.id:
            raise ValueError("A plot block cannot be its own parent.")
        return self


class PlotBlockParentRequest(ContractModel):
    parent_id: str | None = None


class StoryCreateRequest(FandomScopedRequest):
    id: str | None = None
    title: str = Field(min_length=1, max_length=500)
    author: str = Field(default="", max_length=200)
    summary: str = Field(default="", max_length=10_000)
    url: str = Field(default="", max_length=2000)
    word_count: int = Field(default=0, ge=0)
    status: str = Field(default="complete", max_length=40)
    rating: str = Field(default="", max_length=40)
    language: str = Field(default="en", max_length=20)
    tag_ids: list[str] = Field(default_factory=list)
    plot_block_ids: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str | None) -> str | None:
        return None if value is None else _validate_identifier(value, field_name="Story id")

    @field_validator("tag_ids", "plot_block_ids")
    @classmethod
    def _normalize_ids(cls, values: list[str]) -> list[str]:
        return _dedupe_ordered(values)

    def updated_at_utc(self) -> str | None:
        if self.updated_at is None:
            return None
        stamp = self.updated_at
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=UTC)
        return stamp.astimezone(UTC).isoformat()


class SeedDocument(ContractModel):
    """Bulk taxonomy document; rows are applied in the listed order."""

    fandoms: list[FandomCreateRequest] = Field(default_factory=list)
    tag_classes: list[TagClassCreateRequest] = Field(default_factory=list)
    tags: list[TagCreateRequest] = Field(default_factory=list)
    plot_blocks: list[PlotBlockCreateRequest] = Field(default_factory=list)
    validation_rules: list[ValidationRuleCreateRequest] = Field(default_factory=list)
    stories: list[StoryCreateRequest] = Field(default_factory=list)


def load_seed_json(path: Path) -> SeedDocument:
    """Load and validate a seed document from disk."""
    return SeedDocument.model_validate_json(path.read_text(encoding="utf-8"))


def save_seed_json(path: Path, document: SeedDocument) -> None:
    """Save a seed document to disk with stable formatting."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        document.model_dump_json(indent=2, by_alias=True, exclude_none=True) + "\n",
        encoding="utf-8",
    )


# Responses.


class ErrorResponse(ContractModel):
    error: str
    message: str
    details: list[dict[str, Any]] | None = None


class PathwayItemResponse(ContractModel):
    id: str
    type: str
    name: str
    position: int
    category: str | None = None
    description: str | None = None


class ValidationIssueResponse(ContractModel):
    type: Literal["error", "warning", "suggestion"]
    rule: str
    message: str
    severity: str
    code: str
    rule_id: str | None = None
    item_ids: list[str] = Field(default_factory=list)
    fix: str | None = None


class BlockedCombinationResponse(ContractModel):
    type: Literal["blocked"] = "blocked"
    rule: str
    message: str
    rule_id: str | None = None
    item_ids: list[str] = Field(default_factory=list)


class SkippedRuleResponse(ContractModel):
    rule_id: str
    rule_name: str
    reason: str


class PathwayValidationResponse(ContractModel):
    is_valid: bool
    errors: list[ValidationIssueResponse]
    warnings: list[ValidationIssueResponse]
    suggestions: list[ValidationIssueResponse]
    blocked_combinations: list[BlockedCombinationResponse]
    rules_evaluated: int
    rules_skipped: list[SkippedRuleResponse]


class PathwayAnalysisResponse(ContractModel):
    completeness: float
    novelty_score: float
    searchability: float
    item_count: int
    has_characters: bool
    has_genre: bool
    has_plot_elements: bool


class CompletionSuggestionResponse(ContractModel):
    id: str
    type: str
    name: str
    category: str
    dimension: str
    reason: str


class ExecutionMetadataResponse(ContractModel):
    fandom_id: str | None = None
    pathway_length: int
    execution_time: float
    timestamp: str
    performance_target: Literal["met", "exceeded"]


class PathwayValidateResponse(ContractModel):
    validation: PathwayValidationResponse
    analysis: PathwayAnalysisResponse
    suggestions: list[CompletionSuggestionResponse]
    metadata: ExecutionMetadataResponse


class StoryMetadataResponse(ContractModel):
    word_count: int
    status: str
    rating: str
    language: str
    last_updated: str


class StoryMatchResponse(ContractModel):
    relevance_score: float
    matched_tags: list[str]
    matched_plot_blocks: list[str]


class ScoredStoryResponse(ContractModel):
    id: str
    title: str
    author: str
    summary: str
    url: str
    metadata: StoryMetadataResponse
    match: StoryMatchResponse


class SearchQueryResponse(ContractModel):
    fandom: str
    pathway: list[PathwayItemResponse]
    filters: StorySearchFilters


class SearchResultsResponse(ContractModel):
    stories: list[ScoredStoryResponse]
    total: int
    has_more: bool


class PromptNoveltyResponse(ContractModel):
    highlights: list[str]
    suggestions: list[CompletionSuggestionResponse]


class SearchPromptResponse(ContractModel):
    text: str
    novelty: PromptNoveltyResponse
    reason: str


class SearchSectionResponse(ContractModel):
    query: SearchQueryResponse
    results: SearchResultsResponse
    prompt: SearchPromptResponse


class PathwayStateResponse(ContractModel):
    completeness: float
    novelty_score: float
    searchability: float
    is_valid: bool


class DiscoveryStateResponse(ContractModel):
    story_count: int
    novelty_potential: Literal["high", "medium", "low"]
    recommend_action: Literal["explore_stories", "create_story"]


class SearchAnalysisResponse(ContractModel):
    pathway: PathwayStateResponse
    discovery: DiscoveryStateResponse


class StorySearchResponse(ContractModel):
    search: SearchSectionResponse
    analysis: SearchAnalysisResponse
    metadata: ExecutionMetadataResponse


class PathwayShareResponse(ContractModel):
    id: str
    url: str


class SharedPromptResponse(ContractModel):
    text: str
    generated: bool
    highlights: list[str]


class SharedPathwayResponse(ContractModel):
    id: str
    fandom_id: str | None
    items: list[PathwayItemResponse]
    analysis: PathwayAnalysisResponse
    validation: PathwayValidationResponse | None
    prompt: SharedPromptResponse


class SharingResponse(ContractModel):
    url: str
    encoded: str
    shareable: bool


class TimestampMetadataResponse(ContractModel):
    timestamp: str
    execution_time: float | None = None


class SharedPathwayEnvelope(ContractModel):
    pathway: SharedPathwayResponse
    sharing: SharingResponse
    metadata: TimestampMetadataResponse


class FandomResponse(ContractModel):
    id: str
    name: str
    description: str


class FandomSummaryResponse(FandomResponse):
    tag_count: int
    plot_block_count: int
    story_count: int


class FandomListResponse(ContractModel):
    fandoms: list[FandomSummaryResponse]
    total: int


class TagResponse(ContractModel):
    id: str
    name: str
    description: str
    category: str
    tag_class_id: str | None
    requires: list[str]
    enhances: list[str]
    is_active: bool


class TagCategoryResponse(ContractModel):
    category: str
    tags: list[TagResponse]


class TagsSectionResponse(ContractModel):
    by_category: list[TagCategoryResponse]
    total: int


class PlotBlockResponse(ContractModel):
    id: str
    name: str
    description: str
    category: str
    parent_id: str | None
    requires: list[str]
    conflicts: list[str]
    is_active: bool


class PlotBlockNodeResponse(PlotBlockResponse):
    depth: int
    children: list[PlotBlockNodeResponse] = Field(default_factory=list)


class PlotBlocksSectionResponse(ContractModel):
    tree: list[PlotBlockNodeResponse]
    total: int


class FandomElementsSectionResponse(ContractModel):
    tags: TagsSectionResponse
    plot_blocks: PlotBlocksSectionResponse


class FandomElementsResponse(ContractModel):
    fandom: FandomResponse
    elements: FandomElementsSectionResponse
    metadata: TimestampMetadataResponse


class TaxonomyRefResponse(ContractModel):
    id: str
    name: str
    category: str


class StoryDetailResponse(ContractModel):
    id: str
    fandom_id: str
    title: str
    author: str
    summary: str
    url: str
    metadata: StoryMetadataResponse
    tags: list[TaxonomyRefResponse]
    plot_blocks: list[TaxonomyRefResponse]


class TagClassResponse(ContractModel):
    id: str
    fandom_id: str
    name: str
    description: str
    validation_rules: TagClassRulesPayload


class ValidationRuleResponse(ContractModel):
    id: str
    fandom_id: str
    name: str
    rule_type: str
    priority: int
    is_active: bool
    description: str
    condition_count: int
    action_count: int


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat()


class ActivationResponse(ContractModel):
    id: str
    is_active: bool


class AnomalyResponse(ContractModel):
    id: str
    created_at_utc: str
    scope: str
    code: str
    severity: str
    message: str
    fandom_id: str | None
    rule_id: str | None
    metadata: dict[str, Any]
