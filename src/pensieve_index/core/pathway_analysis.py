"""Derived pathway metrics: completeness, novelty, and searchability."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from pensieve_index.domain.models import PathwayItem

GENRE_MARKERS = ("genre",)
CHARACTER_MARKERS = ("character", "ship")
SEARCHABILITY_RAMP_ITEMS = 3
SEARCHABILITY_CEILING_ITEMS = 8
NOVELTY_DECAY = 0.8


@dataclass(frozen=True)
class StructuralIssue:
    code: str
    message: str
    severity: str
    item_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class StructuralValidation:
    is_valid: bool
    errors: tuple[StructuralIssue, ...] = ()
    warnings: tuple[StructuralIssue, ...] = ()


@dataclass(frozen=True)
class CorpusStats:
    """Story counts used to ground the novelty score.

    `full_matches` counts stories matching every pathway item.
    """

    corpus_size: int
    full_matches: int


@dataclass(frozen=True)
class PathwayAnalysis:
    completeness: float
    novelty_score: float
    searchability: float
    item_count: int
    has_genre: bool
    has_characters: bool
    has_plot_elements: bool
    validation: StructuralValidation


def _category_has(item: PathwayItem, markers: tuple[str, ...]) -> bool:
    category = (item.category or "").casefold()
    return any(marker in category for marker in markers)


def has_genre(items: Sequence[PathwayItem]) -> bool:
    return any(_category_has(item, GENRE_MARKERS) for item in items)


def has_characters(items: Sequence[PathwayItem]) -> bool:
    return any(_category_has(item, CHARACTER_MARKERS) for item in items)


def has_plot_elements(items: Sequence[PathwayItem]) -> bool:
    return any(item.is_plot_block for item in items)


def completeness_score(items: Sequence[PathwayItem]) -> float:
    """Three equally weighted dimensions: genre, character/ship, plot block."""
    present = sum((has_genre(items), has_characters(items), has_plot_elements(items)))
    return round(present / 3, 4)


def novelty_score(items: Sequence[PathwayItem], stats: CorpusStats | None = None) -> float:
    """Higher when fewer existing stories already cover the whole pathway.

    With corpus statistics this is the share of the fandom's stories that do
    not match every item. Without them, each extra item makes the combination
    rarer: `1 - 0.8 ** n`. Both readings rise with specificity.
    """
    if not items:
        return 0.0
    if stats is not None and stats.corpus_size > 0:
        matched = min(max(stats.full_matches, 0), stats.corpus_size)
        return round(1.0 - matched / stats.corpus_size, 4)
    return round(1.0 - NOVELTY_DECAY ** len(items), 4)


def searchability_score(item_count: int) -> float:
    """0 when empty, 1.0 from three to eight items, then decays toward 0."""
    if item_count <= 0:
        return 0.0
    if item_count < SEARCHABILITY_RAMP_ITEMS:
        return round(item_count / SEARCHABILITY_RAMP_ITEMS, 4)
    if item_count <= SEARCHABILITY_CEILING_ITEMS:
        return 1.0
    return round(SEARCHABILITY_CEILING_ITEMS / item_count, 4)


def validate_structure(items: Sequence[PathwayItem]) -> StructuralValidation:
    """Duplicate ids are errors; gaps in positions are warnings."""
    errors: list[StructuralIssue] = []
    warnings: list[StructuralIssue] = []
    seen: set[str] = set()
    for item in items:
        if item.item_id in seen:
            errors.append(
                StructuralIssue(
                    code="duplicate_item_id",
                    message=f"Item id {item.item_id} appears more than once.",
                    severity="error",
                    item_ids=(item.item_id,),
                )
            )
        seen.add(item.item_id)
    positions = sorted(item.position for item in items)
    if positions and positions != list(range(positions[0], positions[0] + len(positions))):
        warnings.append(
            StructuralIssue(
                code="position_gap",
                message="Pathway positions are not contiguous.",
                severity="warning",
            )
        )
    return StructuralValidation(
        is_valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
    )


def analyze_pathway(
    items: Sequence[PathwayItem],
    *,
    stats: CorpusStats | None = None,
) -> PathwayAnalysis:
    """Compute pathway metrics independently of rule validation."""
    return PathwayAnalysis(
        completeness=completeness_score(items),
        novelty_score=novelty_score(items, stats),
        searchability=searchability_score(len(items)),
        item_count=len(items),
        has_genre=has_genre(items),
        has_characters=has_characters(items),
        has_plot_elements=has_plot_elements(items),
        validation=validate_structure(items),
    )
