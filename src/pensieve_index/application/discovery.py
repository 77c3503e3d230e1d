"""Discovery services composing validation, analysis, scoring, and prompts."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from pensieve_index.adapters.observability import (
    SEARCH_BUDGET_MS,
    VALIDATION_BUDGET_MS,
    LatencyBudget,
)
from pensieve_index.core.pathway_analysis import CorpusStats, PathwayAnalysis, analyze_pathway
from pensieve_index.core.pathway_codec import decode_pathway, encode_pathway
from pensieve_index.core.pathway_validation import (
    PathwayValidationResult,
    PathwayValidator,
    SkippedAction,
    SkippedRule,
)
from pensieve_index.core.prompt_generation import (
    CompletionSuggestion,
    GeneratedPrompt,
    completion_suggestions,
    generate_prompt,
)
from pensieve_index.core.relevance_scoring import (
    DEFAULT_LIMIT,
    ScoreWeights,
    SearchOutcome,
    StoryIndex,
    score_stories,
)
from pensieve_index.core.taxonomy import PlotTreeNode, TaxonomyIndex, build_plot_forest
from pensieve_index.domain.models import (
    Fandom,
    FandomTaxonomy,
    PathwayItem,
    Story,
    StoryFilters,
    Tag,
)
from pensieve_index.domain.ports import AnomalySink, RuleReader, StoryReader, TaxonomyReader

SUGGESTION_COMPLETENESS_THRESHOLD = 0.8
SUGGESTION_MAX_ITEMS = 10
FEW_STORIES_THRESHOLD = 3

logger = logging.getLogger(__name__)


class FandomNotFoundError(LookupError):
    pass


class StoryNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class FandomSummary:
    fandom: Fandom
    tag_count: int
    plot_block_count: int
    story_count: int


@dataclass(frozen=True)
class FandomElements:
    fandom: Fandom
    tags_by_category: tuple[tuple[str, tuple[Tag, ...]], ...]
    plot_forest: tuple[PlotTreeNode, ...]
    tag_count: int
    plot_block_count: int


@dataclass(frozen=True)
class ValidationReport:
    fandom: Fandom
    items: tuple[PathwayItem, ...]
    validation: PathwayValidationResult
    analysis: PathwayAnalysis
    suggestions: tuple[CompletionSuggestion, ...]
    execution_ms: float
    performance_met: bool


@dataclass(frozen=True)
class SearchReport:
    fandom: Fandom
    items: tuple[PathwayItem, ...]
    filters: StoryFilters
    outcome: SearchOutcome
    prompt: GeneratedPrompt
    analysis: PathwayAnalysis
    is_valid: bool
    execution_ms: float
    performance_met: bool

    @property
    def prompt_reason(self) -> str:
        if len(self.outcome.stories) < FEW_STORIES_THRESHOLD:
            return "Few matching stories found - high novelty potential"
        return "Good story selection available - prompt for inspiration"

    @property
    def novelty_potential(self) -> str:
        score = self.analysis.novelty_score
        if score > 0.7:
            return "high"
        if score > 0.4:
            return "medium"
        return "low"

    @property
    def recommend_action(self) -> str:
        if len(self.outcome.stories) >= FEW_STORIES_THRESHOLD:
            return "explore_stories"
        return "create_story"


@dataclass(frozen=True)
class SharedPathwayReport:
    token: str
    fandom: Fandom | None
    items: tuple[PathwayItem, ...]
    analysis: PathwayAnalysis
    validation: PathwayValidationResult | None
    prompt: GeneratedPrompt


class DiscoveryService:
    """Read-only discovery operations over injected taxonomy, rule, and story ports.

    Each call loads what it needs from the ports and keeps no state between
    requests.
    """

    def __init__(
        self,
        *,
        taxonomy: TaxonomyReader,
        rules: RuleReader,
        stories: StoryReader,
        anomalies: AnomalySink | None = None,
        weights: ScoreWeights | None = None,
    ) -> None:
        self._taxonomy = taxonomy
        self._rules = rules
        self._stories = stories
        self._anomalies = anomalies
        self._weights = weights or ScoreWeights()

    def _record_anomaly(
        self,
        *,
        scope: str,
        code: str,
        severity: str,
        message: str,
        metadata: dict[str, object] | None = None,
    ) -> None:
        logger.warning(
            "anomaly.recorded scope=%s code=%s severity=%s message=%s",
            scope,
            code,
            severity,
            message,
        )
        if self._anomalies is not None:
            self._anomalies.write_anomaly(
                scope=scope,
                code=code,
                severity=severity,
                message=message,
                metadata=metadata,
            )

    def load_taxonomy(self, fandom_id: str) -> FandomTaxonomy:
        fandom = self._taxonomy.get_fandom(fandom_id=fandom_id)
        if fandom is None:
            raise FandomNotFoundError(fandom_id)
        return FandomTaxonomy(
            fandom=fandom,
            tags=tuple(self._taxonomy.list_tags(fandom_id=fandom_id)),
            tag_classes=tuple(self._taxonomy.list_tag_classes(fandom_id=fandom_id)),
            plot_blocks=tuple(self._taxonomy.list_plot_blocks(fandom_id=fandom_id)),
        )

    def list_fandoms(self) -> list[FandomSummary]:
        summaries: list[FandomSummary] = []
        for fandom in self._taxonomy.list_fandoms():
            summaries.append(
                FandomSummary(
                    fandom=fandom,
                    tag_count=len(self._taxonomy.list_tags(fandom_id=fandom.fandom_id)),
                    plot_block_count=len(
                        self._taxonomy.list_plot_blocks(fandom_id=fandom.fandom_id)
                    ),
                    story_count=self._stories.count_stories(fandom_id=fandom.fandom_id),
                )
            )
        return summaries

    def fandom_elements(self, fandom_id: str) -> FandomElements:
        taxonomy = self.load_taxonomy(fandom_id)
        grouped: dict[str, list[Tag]] = {}
        for tag in taxonomy.tags:
            grouped.setdefault(tag.category or "uncategorized", []).append(tag)
        return FandomElements(
            fandom=taxonomy.fandom,
            tags_by_category=tuple(
                (category, tuple(sorted(tags, key=lambda tag: tag.name.casefold())))
                for category, tags in sorted(grouped.items())
            ),
            plot_forest=tuple(build_plot_forest(taxonomy.plot_blocks)),
            tag_count=len(taxonomy.tags),
            plot_block_count=len(taxonomy.plot_blocks),
        )

    def _validator(self, taxonomy: FandomTaxonomy) -> PathwayValidator:
        fandom_id = taxonomy.fandom.fandom_id

        def on_rule_skipped(skipped: SkippedRule) -> None:
            self._record_anomaly(
                scope="validation",
                code="rule_skipped",
                severity="warning",
                message=f"Rule {skipped.rule_name} skipped: {skipped.reason}",
                metadata={"fandom_id": fandom_id, "rule_id": skipped.rule_id},
            )

        def on_action_skipped(skipped: SkippedAction) -> None:
            self._record_anomaly(
                scope="validation",
                code="action_skipped",
                severity="warning",
                message=(
                    f"Rule {skipped.rule_name} action {skipped.action_type} skipped: "
                    "unsupported action type"
                ),
                metadata={"fandom_id": fandom_id, "rule_id": skipped.rule_id},
            )

        return PathwayValidator(
            taxonomy=taxonomy,
            rules=self._rules.list_active_rules(fandom_id=fandom_id),
            on_rule_skipped=on_rule_skipped,
            on_action_skipped=on_action_skipped,
        )

    def validate(
        self,
        pathway: Sequence[PathwayItem],
        *,
        fandom_id: str,
        user_id: str | None = None,
    ) -> ValidationReport:
        """Validate and analyze a pathway; suggest completions when it is thin."""
        budget = LatencyBudget(operation="pathway.validate", budget_ms=VALIDATION_BUDGET_MS)
        taxonomy = self.load_taxonomy(fandom_id)
        index = TaxonomyIndex(taxonomy)
        items = tuple(index.enrich(item) for item in pathway)
        validation = self._validator(taxonomy).validate(items, user_id=user_id)
        analysis = analyze_pathway(items)
        suggestions: tuple[CompletionSuggestion, ...] = ()
        if (
            analysis.completeness < SUGGESTION_COMPLETENESS_THRESHOLD
            and analysis.item_count < SUGGESTION_MAX_ITEMS
        ):
            suggestions = completion_suggestions(items, taxonomy)
        elapsed, met = budget.finish(fandom_id=fandom_id, items=len(items))
        logger.info(
            "discovery.validate fandom_id=%s items=%s valid=%s elapsed_ms=%s",
            fandom_id,
            len(items),
            validation.is_valid,
            elapsed,
        )
        return ValidationReport(
            fandom=taxonomy.fandom,
            items=items,
            validation=validation,
            analysis=analysis,
            suggestions=suggestions,
            execution_ms=elapsed,
            performance_met=met,
        )

    def _safe_prompt(
        self,
        items: Sequence[PathwayItem],
        *,
        taxonomy: FandomTaxonomy,
        story_index: StoryIndex | None,
    ) -> GeneratedPrompt:
        try:
            return generate_prompt(
                items,
                fandom_name=taxonomy.fandom.name,
                story_index=story_index,
                taxonomy=taxonomy,
            )
        except Exception as exc:
            logger.exception("prompt.failed fandom_id=%s", taxonomy.fandom.fandom_id)
            self._record_anomaly(
                scope="prompt",
                code="generation_failed",
                severity="error",
                message=f"{type(exc).__name__}: {exc}",
                metadata={"fandom_id": taxonomy.fandom.fandom_id, "items": len(items)},
            )
            return GeneratedPrompt(text="")

    def search(
        self,
        pathway: Sequence[PathwayItem],
        *,
        fandom_id: str,
        filters: StoryFilters | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> SearchReport:
        """Rank the fandom's stories for a pathway and always attach a prompt."""
        budget = LatencyBudget(operation="search.stories", budget_ms=SEARCH_BUDGET_MS)
        effective_filters = filters or StoryFilters()
        taxonomy = self.load_taxonomy(fandom_id)
        index = TaxonomyIndex(taxonomy)
        items = tuple(index.enrich(item) for item in pathway)
        story_index = StoryIndex(
            self._stories.list_candidates(fandom_id=fandom_id, filters=effective_filters)
        )
        outcome = score_stories(items, story_index, weights=self._weights, limit=limit)
        validation = self._validator(taxonomy).validate(items)
        analysis = analyze_pathway(
            items,
            stats=CorpusStats(corpus_size=outcome.corpus_size, full_matches=outcome.full_matches),
        )
        prompt = self._safe_prompt(items, taxonomy=taxonomy, story_index=story_index)
        elapsed, met = budget.finish(fandom_id=fandom_id, items=len(items))
        logger.info(
            "discovery.search fandom_id=%s items=%s total=%s returned=%s elapsed_ms=%s",
            fandom_id,
            len(items),
            outcome.total,
            len(outcome.stories),
            elapsed,
        )
        return SearchReport(
            fandom=taxonomy.fandom,
            items=items,
            filters=effective_filters,
            outcome=outcome,
            prompt=prompt,
            analysis=analysis,
            is_valid=validation.is_valid,
            execution_ms=elapsed,
            performance_met=met,
        )

    def share(self, pathway: Sequence[PathwayItem], *, fandom_id: str | None = None) -> str:
        if fandom_id is not None:
            self.load_taxonomy(fandom_id)
        return encode_pathway(pathway, fandom_id=fandom_id)

    def shared_pathway(self, token: str) -> SharedPathwayReport:
        """Decode a share id and re-run analysis; PathwayDecodeError propagates."""
        snapshot = decode_pathway(token)
        taxonomy: FandomTaxonomy | None = None
        if snapshot.fandom_id is not None:
            try:
                taxonomy = self.load_taxonomy(snapshot.fandom_id)
            except FandomNotFoundError:
                logger.info("pathway.shared_unknown_fandom fandom_id=%s", snapshot.fandom_id)

        items = snapshot.items
        validation: PathwayValidationResult | None = None
        if taxonomy is None:
            prompt = generate_prompt(items)
        else:
            index = TaxonomyIndex(taxonomy)
            items = tuple(index.enrich(item) for item in items)
            validation = self._validator(taxonomy).validate(items)
            prompt = self._safe_prompt(items, taxonomy=taxonomy, story_index=None)
        return SharedPathwayReport(
            token=token,
            fandom=taxonomy.fandom if taxonomy is not None else None,
            items=items,
            analysis=analyze_pathway(items),
            validation=validation,
            prompt=prompt,
        )

    def story_detail(self, story_id: str) -> Story:
        story = self._stories.get_story(story_id=story_id)
        if story is None:
            raise StoryNotFoundError(story_id)
        return story
