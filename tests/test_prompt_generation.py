from __future__ import annotations

from pensieve_index.core.prompt_generation import (
    completion_suggestions,
    generate_prompt,
    novelty_highlights,
    prompt_text,
)
from pensieve_index.core.relevance_scoring import StoryIndex
from pensieve_index.domain.models import (
    Fandom,
    FandomTaxonomy,
    PathwayItem,
    PlotBlock,
    Story,
    Tag,
)

HARRY = Tag(tag_id="hp-harry", fandom_id="hp-1", name="Harry Potter", category="character")
GINNY = Tag(tag_id="hp-ginny", fandom_id="hp-1", name="Ginny Weasley", category="character")
HARRY_GINNY = Tag(tag_id="hp-harry-ginny", fandom_id="hp-1", name="Harry/Ginny", category="ship")


def _taxonomy() -> FandomTaxonomy:
    return FandomTaxonomy(
        fandom=Fandom(fandom_id="hp-1", name="Harry Potter"),
        tags=(
            HARRY,
            GINNY,
            HARRY_GINNY,
            Tag(tag_id="hp-fluff", fandom_id="hp-1", name="Fluff", category="genre"),
            Tag(tag_id="hp-angst", fandom_id="hp-1", name="Angst", category="genre"),
            Tag(
                tag_id="hp-crack",
                fandom_id="hp-1",
                name="Crack",
                category="genre",
                is_active=False,
            ),
        ),
        plot_blocks=(
            PlotBlock(plot_block_id="hp-time-travel", fandom_id="hp-1", name="Time Travel"),
            PlotBlock(
                plot_block_id="hp-time-turner",
                fandom_id="hp-1",
                name="Time-Turner Accident",
                parent_id="hp-time-travel",
            ),
            PlotBlock(plot_block_id="hp-horcrux", fandom_id="hp-1", name="Horcrux Hunt"),
        ),
    )


def _story_index() -> StoryIndex:
    return StoryIndex(
        [
            Story(story_id="s1", fandom_id="hp-1", title="One", tags=(HARRY, GINNY, HARRY_GINNY)),
            Story(story_id="s2", fandom_id="hp-1", title="Two", tags=(HARRY, HARRY_GINNY)),
            Story(story_id="s3", fandom_id="hp-1", title="Three", tags=(GINNY,)),
        ]
    )


def _tag_item(name: str, position: int) -> PathwayItem:
    return PathwayItem(item_id=f"client-{position}", name=name, position=position)


def _plot_item(name: str, position: int) -> PathwayItem:
    return PathwayItem(
        item_id=f"client-{position}", item_type="plot_block", name=name, position=position
    )


def test_empty_pathway_gets_fallback_prompt() -> None:
    assert (
        generate_prompt([], fandom_name="Harry Potter").text
        == "Create a new Harry Potter story with your favorite elements."
    )
    assert generate_prompt([]).text == "Create a new story with your favorite elements."


def test_prompt_names_tags_and_plot_blocks() -> None:
    items = [
        _tag_item("Harry Potter", 0),
        _tag_item("Harry/Ginny", 1),
        _plot_item("Horcrux Hunt", 2),
    ]
    assert prompt_text(items, fandom_name="Harry Potter") == (
        "Write a Harry Potter story featuring Harry Potter and Harry/Ginny with Horcrux Hunt."
    )
    assert prompt_text([_plot_item("Time Travel", 0)]) == "Write a story involving Time Travel."
    three = [_tag_item("Harry Potter", 0), _tag_item("Ginny Weasley", 1), _tag_item("Angst", 2)]
    assert prompt_text(three) == "Write a story featuring Harry Potter, Ginny Weasley and Angst."


def test_highlights_without_index_cover_nearby_pairs() -> None:
    items = [
        _tag_item("Harry Potter", 0),
        _tag_item("Harry/Ginny", 1),
        _plot_item("Horcrux Hunt", 2),
    ]
    prompt = generate_prompt(items, fandom_name="Harry Potter")
    assert prompt.novelty_highlights == (
        "Harry Potter + Harry/Ginny",
        "Harry Potter + Horcrux Hunt",
        "Harry/Ginny + Horcrux Hunt",
    )
    assert prompt.text.endswith(
        "\n\nNovel aspects to explore: Harry Potter + Harry/Ginny; "
        "Harry Potter + Horcrux Hunt; Harry/Ginny + Horcrux Hunt."
    )


def test_common_pairs_are_not_highlighted() -> None:
    items = [_tag_item("Harry Potter", 0), _tag_item("Harry/Ginny", 1)]
    assert novelty_highlights(items, _story_index()) == ()
    rare = [_tag_item("Ginny Weasley", 0), _tag_item("Harry Potter", 1)]
    assert novelty_highlights(rare, _story_index()) == ("Ginny Weasley + Harry Potter",)


def test_single_item_is_highlighted_when_rare() -> None:
    assert novelty_highlights([_tag_item("Draco Malfoy", 0)], _story_index()) == ("Draco Malfoy",)
    assert novelty_highlights([_tag_item("Ginny Weasley", 0)], _story_index()) == ()


def test_completion_suggestions_fill_missing_dimensions() -> None:
    harry = PathwayItem(item_id="hp-harry", name="Harry Potter", category="character")
    suggestions = completion_suggestions([harry], _taxonomy())
    assert [(entry.dimension, entry.name) for entry in suggestions] == [
        ("genre", "Angst"),
        ("genre", "Fluff"),
        ("plot", "Horcrux Hunt"),
        ("plot", "Time Travel"),
    ]
    assert suggestions[-1].item_type == "plot_block"
    assert suggestions[-1].category == "plot"
    assert all(entry.reason == "Improves pathway completeness" for entry in suggestions)


def test_completion_suggestions_are_capped_and_skip_used_items() -> None:
    assert len(completion_suggestions([], _taxonomy())) == 5
    used = completion_suggestions([_tag_item("Angst", 0)], _taxonomy())
    assert [entry.name for entry in used if entry.dimension == "characters"] == [
        "Ginny Weasley",
        "Harry Potter",
    ]
    assert "Angst" not in [entry.name for entry in used]
    assert completion_suggestions([], None) == ()
