"""Catalog writes shared by admin endpoints and the seed loader."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from pensieve_index.adapters.sqlite_rule_store import SQLiteRuleStore
from pensieve_index.adapters.sqlite_story_store import SQLiteStoryStore
from pensieve_index.adapters.sqlite_taxonomy_store import (
    SQLiteTaxonomyStore,
    TaxonomyReferenceError,
)
from pensieve_index.api.contracts import (
    FandomCreateRequest,
    PlotBlockCreateRequest,
    SeedDocument,
    StoryCreateRequest,
    TagClassCreateRequest,
    TagCreateRequest,
    ValidationRuleCreateRequest,
)
from pensieve_index.core.taxonomy import PlotBlockCycleError
from pensieve_index.domain.models import (
    Fandom,
    PlotBlock,
    Story,
    Tag,
    TagClass,
    ValidationRule,
)

logger = logging.getLogger(__name__)


class CatalogWriteError(Exception):
    """Base error for rejected catalog writes."""

    error = "Invalid write"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CatalogConflictError(CatalogWriteError):
    error = "Conflict"


class CatalogReferenceError(CatalogWriteError):
    error = "Invalid reference"


@dataclass
class SeedSummary:
    fandoms: int = 0
    tag_classes: int = 0
    tags: int = 0
    plot_blocks: int = 0
    validation_rules: int = 0
    stories: int = 0
    skipped: list[str] = field(default_factory=list)


class CatalogWriter:
    """Apply validated write contracts to the SQLite stores."""

    def __init__(
        self,
        *,
        taxonomy_store: SQLiteTaxonomyStore,
        rule_store: SQLiteRuleStore,
        story_store: SQLiteStoryStore,
    ) -> None:
        self._taxonomy = taxonomy_store
        self._rules = rule_store
        self._stories = story_store

    @classmethod
    def for_db_path(cls, db_path: Path) -> CatalogWriter:
        return cls(
            taxonomy_store=SQLiteTaxonomyStore(db_path=db_path),
            rule_store=SQLiteRuleStore(db_path=db_path),
            story_store=SQLiteStoryStore(db_path=db_path),
        )

    def _require_fandom(self, fandom_id: str) -> None:
        if self._taxonomy.get_fandom(fandom_id=fandom_id) is None:
            raise CatalogReferenceError(f"Fandom {fandom_id} does not exist.")

    def create_fandom(self, payload: FandomCreateRequest) -> Fandom:
        fandom = self._taxonomy.create_fandom(
            name=payload.name,
            description=payload.description,
            fandom_id=payload.id,
        )
        if fandom is None:
            raise CatalogConflictError(f"Fandom {payload.id or payload.name} already exists.")
        logger.info("catalog.fandom_created fandom_id=%s", fandom.fandom_id)
        return fandom

    def create_tag_class(self, payload: TagClassCreateRequest) -> TagClass:
        try:
            tag_class = self._taxonomy.create_tag_class(
                fandom_id=payload.fandom_id,
                name=payload.name,
                rules=payload.validation_rules.to_domain(),
                description=payload.description,
                tag_class_id=payload.id,
            )
        except TaxonomyReferenceError as exc:
            raise CatalogReferenceError(str(exc)) from exc
        if tag_class is None:
            raise CatalogConflictError(
                f"Tag class {payload.name} already exists in fandom {payload.fandom_id}."
            )
        logger.info(
            "catalog.tag_class_created fandom_id=%s tag_class_id=%s",
            payload.fandom_id,
            tag_class.tag_class_id,
        )
        return tag_class

    def create_tag(self, payload: TagCreateRequest) -> Tag:
        try:
            tag = self._taxonomy.create_tag(
                fandom_id=payload.fandom_id,
                name=payload.name,
                category=payload.category,
                tag_class_id=payload.tag_class_id,
                requires=payload.requires,
                enhances=payload.enhances,
                description=payload.description,
                tag_id=payload.id,
            )
        except TaxonomyReferenceError as exc:
            raise CatalogReferenceError(str(exc)) from exc
        if tag is None:
            raise CatalogConflictError(
                f"Tag {payload.name} already exists in fandom {payload.fandom_id}."
            )
        logger.info("catalog.tag_created fandom_id=%s tag_id=%s", payload.fandom_id, tag.tag_id)
        return tag

    def create_plot_block(self, payload: PlotBlockCreateRequest) -> PlotBlock:
        try:
            block = self._taxonomy.create_plot_block(
                fandom_id=payload.fandom_id,
                name=payload.name,
                parent_id=payload.parent_id,
                requires=payload.requires,
                conflicts=payload.conflicts,
                category=payload.category,
                description=payload.description,
                plot_block_id=payload.id,
            )
        except TaxonomyReferenceError as exc:
            raise CatalogReferenceError(str(exc)) from exc
        if block is None:
            raise CatalogConflictError(
                f"Plot block {payload.name} already exists in fandom {payload.fandom_id}."
            )
        logger.info(
            "catalog.plot_block_created fandom_id=%s plot_block_id=%s",
            payload.fandom_id,
            block.plot_block_id,
        )
        return block

    def move_plot_block(self, *, plot_block_id: str, parent_id: str | None) -> PlotBlock | None:
        """Re-parent a plot block; returns None when it does not exist."""
        try:
            return self._taxonomy.set_plot_block_parent(
                plot_block_id=plot_block_id,
                parent_id=parent_id,
            )
        except TaxonomyReferenceError as exc:
            raise CatalogReferenceError(str(exc)) from exc
        except PlotBlockCycleError as exc:
            raise CatalogConflictError(str(exc)) from exc

    def create_rule(self, payload: ValidationRuleCreateRequest) -> ValidationRule:
        self._require_fandom(payload.fandom_id)
        rule = self._rules.create_rule(
            fandom_id=payload.fandom_id,
            name=payload.name,
            conditions=[condition.to_domain() for condition in payload.conditions],
            actions=[action.to_domain() for action in payload.actions],
            rule_type=payload.rule_type,
            priority=payload.priority,
            description=payload.description,
            rule_id=payload.id,
        )
        if rule is None:
            raise CatalogConflictError(f"Validation rule {payload.id} already exists.")
        logger.info(
            "catalog.rule_created fandom_id=%s rule_id=%s conditions=%s actions=%s",
            payload.fandom_id,
            rule.rule_id,
            len(rule.conditions),
            len(rule.actions),
        )
        return rule

    def deactivate_rule(self, rule_id: str) -> ValidationRule | None:
        return self._rules.set_rule_active(rule_id=rule_id, is_active=False)

    def deactivate_tag(self, tag_id: str) -> bool:
        return self._taxonomy.set_tag_active(tag_id=tag_id, is_active=False)

    def deactivate_plot_block(self, plot_block_id: str) -> bool:
        return self._taxonomy.set_plot_block_active(plot_block_id=plot_block_id, is_active=False)

    def deactivate_story(self, story_id: str) -> bool:
        return self._stories.set_story_active(story_id=story_id, is_active=False)

    def create_story(self, payload: StoryCreateRequest) -> Story:
        try:
            story = self._stories.create_story(
                fandom_id=payload.fandom_id,
                title=payload.title,
                author=payload.author,
                summary=payload.summary,
                url=payload.url,
                word_count=payload.word_count,
                status=payload.status,
                rating=payload.rating,
                language=payload.language,
                tag_ids=payload.tag_ids,
                plot_block_ids=payload.plot_block_ids,
                story_id=payload.id,
                updated_at_utc=payload.updated_at_utc(),
            )
        except TaxonomyReferenceError as exc:
            raise CatalogReferenceError(str(exc)) from exc
        if story is None:
            raise CatalogConflictError(f"Story {payload.id} already exists.")
        logger.info(
            "catalog.story_created fandom_id=%s story_id=%s", payload.fandom_id, story.story_id
        )
        return story

    def apply_seed(self, document: SeedDocument) -> SeedSummary:
        """Apply a seed document in dependency order; conflicting rows are skipped.

        Reference errors still propagate so a broken document fails loudly.
        """
        summary = SeedSummary()
        for payload in document.fandoms:
            self._seed_row(summary, "fandoms", lambda p=payload: self.create_fandom(p))
        for payload in document.tag_classes:
            self._seed_row(summary, "tag_classes", lambda p=payload: self.create_tag_class(p))
        for payload in document.tags:
            self._seed_row(summary, "tags", lambda p=payload: self.create_tag(p))
        for payload in document.plot_blocks:
            self._seed_row(summary, "plot_blocks", lambda p=payload: self.create_plot_block(p))
        for payload in document.validation_rules:
            self._seed_row(summary, "validation_rules", lambda p=payload: self.create_rule(p))
        for payload in document.stories:
            self._seed_row(summary, "stories", lambda p=payload: self.create_story(p))
        logger.info(
            "catalog.seed_applied fandoms=%s tags=%s plot_blocks=%s rules=%s stories=%s "
            "skipped=%s",
            summary.fandoms,
            summary.tags,
            summary.plot_blocks,
            summary.validation_rules,
            summary.stories,
            len(summary.skipped),
        )
        return summary

    @staticmethod
    def _seed_row(summary: SeedSummary, section: str, write: Callable[[], object]) -> None:
        try:
            write()
        except CatalogConflictError as exc:
            summary.skipped.append(f"{section}: {exc.message}")
            return
        setattr(summary, section, getattr(summary, section) + 1)
