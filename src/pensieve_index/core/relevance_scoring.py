"""Rank candidate stories by weighted overlap with a pathway."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from pensieve_index.core.taxonomy import item_keys, name_key
from pensieve_index.domain.models import PathwayItem, Story

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass(frozen=True)
class ScoreWeights:
    """Per-item weights; plot blocks count 1.5x a tag by default."""

    tag: float = 1.0
    plot_block: float = 1.5

    def __post_init__(self) -> None:
        if self.tag <= 0 or self.plot_block <= 0:
            raise ValueError("Score weights must be positive.")

    def for_item(self, item: PathwayItem) -> float:
        return self.plot_block if item.is_plot_block else self.tag


@dataclass(frozen=True)
class ScoredStory:
    story: Story
    relevance_score: float
    matched_tags: tuple[str, ...] = ()
    matched_plot_blocks: tuple[str, ...] = ()


@dataclass(frozen=True)
class SearchOutcome:
    stories: tuple[ScoredStory, ...]
    total: int
    has_more: bool
    full_matches: int
    corpus_size: int


class StoryIndex:
    """Inverted index from tag/plot-block keys to story ids.

    Built once per request from stories whose associations were loaded in
    bulk, so scoring never rescans story rows.
    """

    def __init__(self, stories: Iterable[Story]) -> None:
        self._stories: dict[str, Story] = {}
        self._tag_postings: dict[str, set[str]] = {}
        self._plot_block_postings: dict[str, set[str]] = {}
        for story in stories:
            self._stories[story.story_id] = story
            for tag in story.tags:
                for key in (tag.tag_id, name_key(tag.name)):
                    self._tag_postings.setdefault(key, set()).add(story.story_id)
            for block in story.plot_blocks:
                for key in (block.plot_block_id, name_key(block.name)):
                    self._plot_block_postings.setdefault(key, set()).add(story.story_id)

    def __len__(self) -> int:
        return len(self._stories)

    def story(self, story_id: str) -> Story:
        return self._stories[story_id]

    def stories_matching(self, item: PathwayItem) -> set[str]:
        postings = self._plot_block_postings if item.is_plot_block else self._tag_postings
        matched: set[str] = set()
        for key in item_keys(item):
            matched |= postings.get(key, set())
        return matched

    def count_matching_all(self, items: Sequence[PathwayItem]) -> int:
        """Number of indexed stories matching every item."""
        if not items:
            return len(self._stories)
        remaining: set[str] | None = None
        for item in items:
            matched = self.stories_matching(item)
            remaining = matched if remaining is None else remaining & matched
            if not remaining:
                return 0
        return len(remaining or ())


def _label(item: PathwayItem) -> str:
    return item.name or item.item_id


def score_stories(
    pathway: Sequence[PathwayItem],
    index: StoryIndex,
    *,
    weights: ScoreWeights | None = None,
    limit: int = DEFAULT_LIMIT,
) -> SearchOutcome:
    """Score every indexed story and return the top `limit` matches.

    Relevance is matched weight over total pathway weight, so it lies in
    [0, 1] and a story covering a superset of another's matches never scores
    lower. Ties break on recency (newest first), then story id.
    """
    if limit < 1:
        raise ValueError("limit must be positive.")
    if not pathway:
        return SearchOutcome(
            stories=(), total=0, has_more=False, full_matches=0, corpus_size=len(index)
        )

    effective = weights or ScoreWeights()
    total_weight = sum(effective.for_item(item) for item in pathway)
    matched_weight: dict[str, float] = {}
    matched_tags: dict[str, list[str]] = {}
    matched_plot_blocks: dict[str, list[str]] = {}
    for item in pathway:
        weight = effective.for_item(item)
        bucket = matched_plot_blocks if item.is_plot_block else matched_tags
        for story_id in index.stories_matching(item):
            matched_weight[story_id] = matched_weight.get(story_id, 0.0) + weight
            bucket.setdefault(story_id, []).append(_label(item))

    scored = [
        ScoredStory(
            story=index.story(story_id),
            relevance_score=round(weight / total_weight, 4),
            matched_tags=tuple(dict.fromkeys(matched_tags.get(story_id, []))),
            matched_plot_blocks=tuple(dict.fromkeys(matched_plot_blocks.get(story_id, []))),
        )
        for story_id, weight in matched_weight.items()
        if weight > 0
    ]
    full_matches = sum(
        1 for weight in matched_weight.values() if weight >= total_weight - 1e-9
    )
    scored.sort(key=lambda entry: entry.story.story_id)
    scored.sort(key=lambda entry: entry.story.updated_at_utc, reverse=True)
    scored.sort(key=lambda entry: entry.relevance_score, reverse=True)
    bounded = min(limit, MAX_LIMIT)
    return SearchOutcome(
        stories=tuple(scored[:bounded]),
        total=len(scored),
        has_more=len(scored) > bounded,
        full_matches=full_matches,
        corpus_size=len(index),
    )
