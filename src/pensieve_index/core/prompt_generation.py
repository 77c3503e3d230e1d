"""Template-based writing prompts with novelty and completion hints."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from pensieve_index.core.pathway_analysis import (
    CHARACTER_MARKERS,
    GENRE_MARKERS,
    has_characters,
    has_genre,
    has_plot_elements,
)
from pensieve_index.core.relevance_scoring import StoryIndex
from pensieve_index.core.taxonomy import item_keys, name_key
from pensieve_index.domain.models import (
    ITEM_TYPE_PLOT_BLOCK,
    ITEM_TYPE_TAG,
    FandomTaxonomy,
    PathwayItem,
)

MAX_HIGHLIGHTS = 5
MAX_SUGGESTIONS = 5
PER_DIMENSION_SUGGESTIONS = 2
RARE_COMBINATION_THRESHOLD = 1
COMPLETION_REASON = "Improves pathway completeness"


@dataclass(frozen=True)
class CompletionSuggestion:
    item_id: str
    item_type: str
    name: str
    category: str
    dimension: str
    reason: str = COMPLETION_REASON


@dataclass(frozen=True)
class GeneratedPrompt:
    text: str
    novelty_highlights: tuple[str, ...] = ()
    completion_suggestions: tuple[CompletionSuggestion, ...] = ()


def _label(item: PathwayItem) -> str:
    return item.name.strip() or item.item_id


def _join_names(names: Sequence[str]) -> str:
    if len(names) <= 1:
        return "".join(names)
    return f"{', '.join(names[:-1])} and {names[-1]}"


def prompt_text(
    items: Sequence[PathwayItem],
    *,
    fandom_name: str | None = None,
    highlights: Sequence[str] = (),
) -> str:
    """Render the deterministic narrative prompt for a pathway."""
    story = f"{fandom_name} story" if fandom_name else "story"
    if not items:
        return f"Create a new {story} with your favorite elements."

    tags = [_label(item) for item in items if not item.is_plot_block]
    plots = [_label(item) for item in items if item.is_plot_block]
    text = f"Write a {story}"
    if tags:
        text += f" featuring {_join_names(tags)}"
        if plots:
            text += f" with {_join_names(plots)}"
    else:
        text += f" involving {_join_names(plots)}"
    text += "."
    if highlights:
        text += f"\n\nNovel aspects to explore: {'; '.join(highlights)}."
    return text


def novelty_highlights(
    items: Sequence[PathwayItem],
    story_index: StoryIndex | None = None,
    *,
    limit: int = MAX_HIGHLIGHTS,
) -> tuple[str, ...]:
    """Adjacent item pairs that at most one indexed story already combines."""
    if len(items) == 1:
        only = items[0]
        count = story_index.count_matching_all(items) if story_index is not None else 0
        return (_label(only),) if count <= RARE_COMBINATION_THRESHOLD else ()

    highlights: list[str] = []
    for position, first in enumerate(items):
        for second in items[position + 1 : position + 3]:
            if item_keys(first) & item_keys(second):
                continue
            count = (
                story_index.count_matching_all([first, second])
                if story_index is not None
                else 0
            )
            if count <= RARE_COMBINATION_THRESHOLD:
                highlights.append(f"{_label(first)} + {_label(second)}")
            if len(highlights) >= limit:
                return tuple(highlights)
    return tuple(highlights)


def completion_suggestions(
    items: Sequence[PathwayItem],
    taxonomy: FandomTaxonomy | None,
    *,
    limit: int = MAX_SUGGESTIONS,
) -> tuple[CompletionSuggestion, ...]:
    """Taxonomy items that fill the pathway's missing completeness dimensions."""
    if taxonomy is None:
        return ()
    used: set[str] = set()
    for item in items:
        used |= item_keys(item)

    def unused(item_id: str, name: str) -> bool:
        return item_id not in used and name_key(name) not in used

    def tags_for(markers: tuple[str, ...], dimension: str) -> list[CompletionSuggestion]:
        candidates = sorted(
            (
                tag
                for tag in taxonomy.tags
                if tag.is_active
                and any(marker in tag.category.casefold() for marker in markers)
                and unused(tag.tag_id, tag.name)
            ),
            key=lambda tag: (name_key(tag.name), tag.tag_id),
        )
        return [
            CompletionSuggestion(
                item_id=tag.tag_id,
                item_type=ITEM_TYPE_TAG,
                name=tag.name,
                category=tag.category,
                dimension=dimension,
            )
            for tag in candidates[:PER_DIMENSION_SUGGESTIONS]
        ]

    suggestions: list[CompletionSuggestion] = []
    if not has_genre(items):
        suggestions.extend(tags_for(GENRE_MARKERS, "genre"))
    if not has_characters(items):
        suggestions.extend(tags_for(CHARACTER_MARKERS, "characters"))
    if not has_plot_elements(items):
        roots = sorted(
            (
                block
                for block in taxonomy.plot_blocks
                if block.is_active
                and block.parent_id is None
                and unused(block.plot_block_id, block.name)
            ),
            key=lambda block: (name_key(block.name), block.plot_block_id),
        )
        suggestions.extend(
            CompletionSuggestion(
                item_id=block.plot_block_id,
                item_type=ITEM_TYPE_PLOT_BLOCK,
                name=block.name,
                category=block.category or "plot",
                dimension="plot",
            )
            for block in roots[:PER_DIMENSION_SUGGESTIONS]
        )
    return tuple(suggestions[:limit])


def generate_prompt(
    items: Sequence[PathwayItem],
    *,
    fandom_name: str | None = None,
    story_index: StoryIndex | None = None,
    taxonomy: FandomTaxonomy | None = None,
) -> GeneratedPrompt:
    """Always returns a non-empty prompt, even for an empty pathway."""
    highlights = novelty_highlights(items, story_index)
    return GeneratedPrompt(
        text=prompt_text(items, fandom_name=fandom_name, highlights=highlights),
        novelty_highlights=highlights,
        completion_suggestions=completion_suggestions(items, taxonomy),
    )
