"""Fandom taxonomy lookups, plot-block forests, and hierarchy checks."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, replace

from pensieve_index.domain.models import (
    FandomTaxonomy,
    PathwayItem,
    PlotBlock,
    Tag,
    TagClass,
)

_WHITESPACE = re.compile(r"\s+")


def name_key(value: str) -> str:
    """Case- and whitespace-insensitive lookup key for taxonomy names."""
    return _WHITESPACE.sub(" ", value).strip().casefold()


def item_keys(item: PathwayItem) -> set[str]:
    """Keys a pathway item can be matched by: raw id and normalized name."""
    keys = {item.item_id}
    if item.name.strip():
        keys.add(name_key(item.name))
    return keys


class PlotBlockCycleError(ValueError):
    """Raised when a parent link would turn the plot-block forest into a graph."""


@dataclass(frozen=True)
class PlotTreeNode:
    block: PlotBlock
    depth: int
    children: tuple[PlotTreeNode, ...] = ()


def has_cycle(graph: dict[str, set[str]]) -> bool:
    temporary: set[str] = set()
    permanent: set[str] = set()

    def visit(node: str) -> bool:
        if node in permanent:
            return False
        if node in temporary:
            return True
        temporary.add(node)
        for dependency in graph.get(node, set()):
            if dependency in graph and visit(dependency):
                return True
        temporary.remove(node)
        permanent.add(node)
        return False

    return any(visit(node) for node in graph if node not in permanent)


def ensure_parent_link_is_acyclic(
    plot_blocks: Iterable[PlotBlock],
    *,
    plot_block_id: str,
    parent_id: str | None,
) -> None:
    """Reject a parent assignment that would create a cycle."""
    if parent_id is None:
        return
    graph: dict[str, set[str]] = {}
    for block in plot_blocks:
        graph[block.plot_block_id] = {block.parent_id} if block.parent_id else set()
    graph[plot_block_id] = {parent_id}
    if has_cycle(graph):
        raise PlotBlockCycleError(
            f"Plot block {plot_block_id} cannot use {parent_id} as parent: cycle detected."
        )


def build_plot_forest(plot_blocks: Iterable[PlotBlock]) -> list[PlotTreeNode]:
    """Nest plot blocks under their parents; orphans are promoted to roots."""
    blocks = sorted(plot_blocks, key=lambda block: (name_key(block.name), block.plot_block_id))
    known = {block.plot_block_id for block in blocks}
    children: dict[str | None, list[PlotBlock]] = {}
    for block in blocks:
        parent = block.parent_id if block.parent_id in known else None
        children.setdefault(parent, []).append(block)

    def build(block: PlotBlock, depth: int, trail: frozenset[str]) -> PlotTreeNode:
        nested = tuple(
            build(child, depth + 1, trail | {child.plot_block_id})
            for child in children.get(block.plot_block_id, [])
            if child.plot_block_id not in trail
        )
        return PlotTreeNode(block=block, depth=depth, children=nested)

    return [
        build(block, 0, frozenset({block.plot_block_id})) for block in children.get(None, [])
    ]


class TaxonomyIndex:
    """Id and name lookups over one fandom's taxonomy snapshot."""

    def __init__(self, taxonomy: FandomTaxonomy) -> None:
        self.taxonomy = taxonomy
        self.tags_by_id: dict[str, Tag] = {tag.tag_id: tag for tag in taxonomy.tags}
        self.tags_by_key: dict[str, Tag] = {}
        for tag in taxonomy.tags:
            self.tags_by_key.setdefault(name_key(tag.name), tag)
        self.tag_classes_by_id: dict[str, TagClass] = {
            tag_class.tag_class_id: tag_class for tag_class in taxonomy.tag_classes
        }
        self.tag_classes_by_key: dict[str, TagClass] = {
            name_key(tag_class.name): tag_class for tag_class in taxonomy.tag_classes
        }
        self.plot_blocks_by_id: dict[str, PlotBlock] = {
            block.plot_block_id: block for block in taxonomy.plot_blocks
        }
        self.plot_blocks_by_key: dict[str, PlotBlock] = {}
        for block in taxonomy.plot_blocks:
            self.plot_blocks_by_key.setdefault(name_key(block.name), block)
        self._depths: dict[str, int] | None = None

    def resolve_tag(self, item: PathwayItem) -> Tag | None:
        if item.is_plot_block:
            return None
        return self.tags_by_id.get(item.item_id) or self.tags_by_key.get(name_key(item.name))

    def resolve_plot_block(self, item: PathwayItem) -> PlotBlock | None:
        if not item.is_plot_block:
            return None
        return self.plot_blocks_by_id.get(item.item_id) or self.plot_blocks_by_key.get(
            name_key(item.name)
        )

    def enrich(self, item: PathwayItem) -> PathwayItem:
        """Fill a missing name or category from the matching taxonomy entry."""
        name = ""
        category = ""
        tag = self.resolve_tag(item)
        block = self.resolve_plot_block(item)
        if tag is not None:
            name, category = tag.name, tag.category
        elif block is not None:
            name, category = block.name, block.category or "plot"
        if (item.name or not name) and (item.category or not category):
            return item
        return replace(item, name=item.name or name, category=item.category or category or None)

    def find_tag(self, reference: str) -> Tag | None:
        return self.tags_by_id.get(reference) or self.tags_by_key.get(name_key(reference))

    def find_tag_class(self, reference: str) -> TagClass | None:
        return self.tag_classes_by_id.get(reference) or self.tag_classes_by_key.get(
            name_key(reference)
        )

    def find_plot_block(self, reference: str) -> PlotBlock | None:
        return self.plot_blocks_by_id.get(reference) or self.plot_blocks_by_key.get(
            name_key(reference)
        )

    def plot_block_depth(self, plot_block_id: str) -> int:
        """Depth of a block in its tree; roots are depth 0."""
        if self._depths is None:
            depths: dict[str, int] = {}

            def walk(nodes: Iterable[PlotTreeNode]) -> None:
                for node in nodes:
                    depths[node.block.plot_block_id] = node.depth
                    walk(node.children)

            walk(build_plot_forest(self.taxonomy.plot_blocks))
            self._depths = depths
        return self._depths.get(plot_block_id, 0)

    def prerequisite_chain(self, plot_block_id: str) -> list[PlotBlock]:
        """All plot blocks required by a block, followed transitively, nearest first."""
        chain: list[PlotBlock] = []
        seen = {plot_block_id}
        frontier = [plot_block_id]
        while frontier:
            current = self.plot_blocks_by_id.get(frontier.pop(0))
            if current is None:
                continue
            for reference in current.requires:
                required = self.find_plot_block(reference)
                if required is None or required.plot_block_id in seen:
                    continue
                seen.add(required.plot_block_id)
                chain.append(required)
                frontier.append(required.plot_block_id)
        return chain
