"""Ports for taxonomy, rule, story, and anomaly persistence."""

from __future__ import annotations

from typing import Protocol

from pensieve_index.domain.models import (
    Fandom,
    PlotBlock,
    Story,
    StoryFilters,
    Tag,
    TagClass,
    ValidationRule,
)


class TaxonomyReader(Protocol):
    """Loads fandom-scoped reference data."""

    def get_fandom(self, *, fandom_id: str) -> Fandom | None:
        ...

    def list_fandoms(self) -> list[Fandom]:
        ...

    def list_tags(self, *, fandom_id: str) -> list[Tag]:
        ...

    def list_tag_classes(self, *, fandom_id: str) -> list[TagClass]:
        ...

    def list_plot_blocks(self, *, fandom_id: str) -> list[PlotBlock]:
        ...


class RuleReader(Protocol):
    """Loads active validation rules for a fandom."""

    def list_active_rules(self, *, fandom_id: str) -> list[ValidationRule]:
        ...


class StoryReader(Protocol):
    """Loads candidate stories with their taxonomy associations."""

    def list_candidates(self, *, fandom_id: str, filters: StoryFilters) -> list[Story]:
        ...

    def get_story(self, *, story_id: str) -> Story | None:
        ...

    def count_stories(self, *, fandom_id: str) -> int:
        ...


class AnomalySink(Protocol):
    """Receives durable warning/error breadcrumbs."""

    def write_anomaly(
        self,
        *,
        scope: str,
        code: str,
        severity: str,
        message: str,
        metadata: dict[str, object] | None = None,
    ) -> object:
        ...
