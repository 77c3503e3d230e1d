from __future__ import annotations

import pytest

from pensieve_index.core.taxonomy import (
    PlotBlockCycleError,
    TaxonomyIndex,
    build_plot_forest,
    ensure_parent_link_is_acyclic,
    name_key,
)
from pensieve_index.domain.models import (
    Fandom,
    FandomTaxonomy,
    PathwayItem,
    PlotBlock,
    Tag,
    TagClass,
)


def _block(
    block_id: str,
    name: str,
    parent_id: str | None = None,
    *,
    requires: tuple[str, ...] = (),
    category: str = "",
) -> PlotBlock:
    return PlotBlock(
        plot_block_id=block_id,
        fandom_id="hp-1",
        name=name,
        parent_id=parent_id,
        requires=requires,
        category=category,
    )


def _taxonomy() -> FandomTaxonomy:
    return FandomTaxonomy(
        fandom=Fandom(fandom_id="hp-1", name="Harry Potter"),
        tags=(
            Tag(tag_id="hp-harry", fandom_id="hp-1", name="Harry Potter", category="character"),
            Tag(tag_id="hp-angst", fandom_id="hp-1", name="Angst", category="genre"),
        ),
        tag_classes=(TagClass(tag_class_id="hp-house", fandom_id="hp-1", name="Hogwarts House"),),
        plot_blocks=(
            _block("hp-time-travel", "Time Travel", category="plot"),
            _block("hp-time-turner", "Time-Turner Accident", "hp-time-travel"),
            _block("hp-stuck-1977", "Stuck in 1977", "hp-time-turner"),
            _block("hp-horcrux", "Horcrux Hunt"),
            _block("hp-post-war", "Post-War Reconstruction", requires=("Horcrux Hunt",)),
            _block("hp-epilogue", "Epilogue", requires=("hp-post-war",)),
        ),
    )


def test_name_key_ignores_case_and_whitespace() -> None:
    assert name_key("  Harry   Potter ") == name_key("harry potter")


def test_build_plot_forest_nests_children_and_sorts_roots() -> None:
    forest = build_plot_forest(_taxonomy().plot_blocks)
    assert [node.block.name for node in forest] == [
        "Epilogue",
        "Horcrux Hunt",
        "Post-War Reconstruction",
        "Time Travel",
    ]
    time_travel = forest[-1]
    assert time_travel.depth == 0
    assert [child.block.plot_block_id for child in time_travel.children] == ["hp-time-turner"]
    grandchild = time_travel.children[0].children[0]
    assert grandchild.block.plot_block_id == "hp-stuck-1977"
    assert grandchild.depth == 2


def test_build_plot_forest_promotes_orphans_to_roots() -> None:
    forest = build_plot_forest([_block("hp-orphan", "Orphaned Arc", "hp-missing")])
    assert [node.block.plot_block_id for node in forest] == ["hp-orphan"]
    assert forest[0].depth == 0


def test_ensure_parent_link_rejects_cycles() -> None:
    blocks = _taxonomy().plot_blocks
    with pytest.raises(PlotBlockCycleError):
        ensure_parent_link_is_acyclic(
            blocks, plot_block_id="hp-time-travel", parent_id="hp-stuck-1977"
        )
    with pytest.raises(PlotBlockCycleError):
        ensure_parent_link_is_acyclic(blocks, plot_block_id="hp-horcrux", parent_id="hp-horcrux")
    ensure_parent_link_is_acyclic(blocks, plot_block_id="hp-horcrux", parent_id="hp-time-travel")
    ensure_parent_link_is_acyclic(blocks, plot_block_id="hp-time-turner", parent_id=None)


def test_taxonomy_index_resolves_by_id_or_name() -> None:
    index = TaxonomyIndex(_taxonomy())
    by_name = PathwayItem(item_id="client-1", name="harry potter")
    by_id = PathwayItem(item_id="hp-harry")
    assert index.resolve_tag(by_name) is not None
    assert index.resolve_tag(by_id) is not None
    assert index.resolve_plot_block(by_id) is None
    assert index.find_tag_class("hogwarts house") is not None
    assert index.find_plot_block("Time Travel") is not None


def test_enrich_fills_missing_name_and_category() -> None:
    index = TaxonomyIndex(_taxonomy())
    tag = index.enrich(PathwayItem(item_id="hp-angst"))
    assert tag.name == "Angst"
    assert tag.category == "genre"

    block = index.enrich(PathwayItem(item_id="x", item_type="plot_block", name="Horcrux Hunt"))
    assert block.category == "plot"

    explicit = PathwayItem(item_id="hp-angst", name="Sad", category="mood")
    assert index.enrich(explicit) is explicit

    unknown = PathwayItem(item_id="nope", name="Unknown")
    assert index.enrich(unknown) == unknown


def test_plot_block_depth_and_prerequisite_chain() -> None:
    index = TaxonomyIndex(_taxonomy())
    assert index.plot_block_depth("hp-time-travel") == 0
    assert index.plot_block_depth("hp-stuck-1977") == 2
    assert index.plot_block_depth("hp-missing") == 0
    chain = index.prerequisite_chain("hp-epilogue")
    assert [block.plot_block_id for block in chain] == ["hp-post-war", "hp-horcrux"]
    assert index.prerequisite_chain("hp-horcrux") == []
