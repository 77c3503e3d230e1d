"""SQLite-backed persistence for fandoms, tags, tag classes, and plot blocks."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Sequence
from dataclasses import asdict
from pathlib import Path
from uuid import uuid4

from pensieve_index.core.taxonomy import ensure_parent_link_is_acyclic
from pensieve_index.domain.models import (
    CategoryRestrictions,
    Fandom,
    InstanceLimits,
    MutualExclusion,
    PlotBlock,
    RequiredContext,
    Tag,
    TagClass,
    TagClassRules,
)


class TaxonomyReferenceError(ValueError):
    """Raised when a write references a row that is missing or in another fandom."""


def _json_list(values: Sequence[str]) -> str:
    return json.dumps(list(values), ensure_ascii=False)


def _tuple_from_json(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    decoded = json.loads(raw)
    if not isinstance(decoded, list):
        return ()
    return tuple(str(value) for value in decoded)


def tag_class_rules_to_json(rules: TagClassRules) -> str:
    payload = {key: value for key, value in asdict(rules).items() if value is not None}
    return json.dumps(payload, ensure_ascii=False, sort_keys=True)


def tag_class_rules_from_json(raw: str | None) -> TagClassRules:
    payload = json.loads(raw) if raw else {}
    if not isinstance(payload, dict):
        return TagClassRules()

    def section(key: str) -> dict[str, object] | None:
        value = payload.get(key)
        return value if isinstance(value, dict) else None

    def strings(values: object) -> tuple[str, ...]:
        if not isinstance(values, list):
            return ()
        return tuple(str(value) for value in values)

    def optional_int(value: object) -> int | None:
        return value if isinstance(value, int) and not isinstance(value, bool) else None

    exclusion = section("mutual_exclusion")
    context = section("required_context")
    limits = section("instance_limits")
    restrictions = section("category_restrictions")
    return TagClassRules(
        mutual_exclusion=(
            MutualExclusion(
                within_class=bool(exclusion.get("within_class", False)),
                conflicting_tags=strings(exclusion.get("conflicting_tags")),
                conflicting_classes=strings(exclusion.get("conflicting_classes")),
            )
            if exclusion is not None
            else None
        ),
        required_context=(
            RequiredContext(
                required_tags=strings(context.get("required_tags")),
                required_classes=strings(context.get("required_classes")),
            )
            if context is not None
            else None
        ),
        instance_limits=(
            InstanceLimits(
                max_instances=optional_int(limits.get("max_instances")),
                min_instances=optional_int(limits.get("min_instances")),
                exact_instances=optional_int(limits.get("exact_instances")),
            )
            if limits is not None
            else None
        ),
        category_restrictions=(
            CategoryRestrictions(
                excluded_categories=strings(restrictions.get("excluded_categories")),
                applicable_categories=strings(restrictions.get("applicable_categories")),
            )
            if restrictions is not None
            else None
        ),
    )


class SQLiteTaxonomyStore:
    """Persist and query fandom taxonomy rows from one SQLite database."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self._db_path))
        connection.row_factory = sqlite3.Row
        return connection

    def _initialize_schema(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS fandoms (
                    fandom_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE,
                    description TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1
                )
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS tag_classes (
                    tag_class_id TEXT PRIMARY KEY,
                    fandom_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL,
                    rules_json TEXT NOT NULL,
                    UNIQUE (fandom_id, name),
                    FOREIGN KEY (fandom_id) REFERENCES fandoms(fandom_id)
                )
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS tags (
                    tag_id TEXT PRIMARY KEY,
                    fandom_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    tag_class_id TEXT,
                    requires_json TEXT NOT NULL,
                    enhances_json TEXT NOT NULL,
                    description TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    UNIQUE (fandom_id, name),
                    FOREIGN KEY (fandom_id) REFERENCES fandoms(fandom_id),
                    FOREIGN KEY (tag_class_id) REFERENCES tag_classes(tag_class_id)
                )
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS plot_blocks (
                    plot_block_id TEXT PRIMARY KEY,
                    fandom_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    parent_id TEXT,
                    requires_json TEXT NOT NULL,
                    conflicts_json TEXT NOT NULL,
                    category TEXT NOT NULL,
                    description TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    UNIQUE (fandom_id, name),
                    FOREIGN KEY (fandom_id) REFERENCES fandoms(fandom_id),
                    FOREIGN KEY (parent_id) REFERENCES plot_blocks(plot_block_id)
                )
                """
            )
            connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_tags_fandom ON tags(fandom_id, is_active)"
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_plot_blocks_fandom
                ON plot_blocks(fandom_id, is_active)
                """
            )

    def create_fandom(
        self,
        *,
        name: str,
        description: str = "",
        fandom_id: str | None = None,
    ) -> Fandom | None:
        fandom = Fandom(
            fandom_id=fandom_id or uuid4().hex,
            name=name,
            description=description,
        )
        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO fandoms (fandom_id, name, description, is_active)
                    VALUES (?, ?, ?, 1)
                    """,
                    (fandom.fandom_id, fandom.name, fandom.description),
                )
        except sqlite3.IntegrityError:
            return None
        return fandom

    def get_fandom(self, *, fandom_id: str) -> Fandom | None:
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT fandom_id, name, description, is_active
                FROM fandoms
                WHERE fandom_id = ? AND is_active = 1
                """,
                (fandom_id,),
            ).fetchone()
        if row is None:
            return None
        return self._fandom_from_row(row)

    def list_fandoms(self) -> list[Fandom]:
        with self._connect() as connection:
            rows = connection.execute(
                """
                SELECT fandom_id, name, description, is_active
                FROM fandoms
                WHERE is_active = 1
                ORDER BY name ASC
                """
            ).fetchall()
        return [self._fandom_from_row(row) for row in rows]

    def create_tag_class(
        self,
        *,
        fandom_id: str,
        name: str,
        rules: TagClassRules,
        description: str = "",
        tag_class_id: str | None = None,
    ) -> TagClass | None:
        """Create a tag class; returns None when the name is taken in the fandom."""
        self._require_fandom(fandom_id)
        tag_class = TagClass(
            tag_class_id=tag_class_id or uuid4().hex,
            fandom_id=fandom_id,
            name=name,
            description=description,
            rules=rules,
        )
        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO tag_classes (
                        tag_class_id, fandom_id, name, description, rules_json
                    )
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        tag_class.tag_class_id,
                        fandom_id,
                        name,
                        description,
                        tag_class_rules_to_json(rules),
                    ),
                )
        except sqlite3.IntegrityError:
            return None
        return tag_class

    def list_tag_classes(self, *, fandom_id: str) -> list[TagClass]:
        with self._connect() as connection:
            rows = connection.execute(
                """
                SELECT tag_class_id, fandom_id, name, description, rules_json
                FROM tag_classes
                WHERE fandom_id = ?
                ORDER BY name ASC
                """,
                (fandom_id,),
            ).fetchall()
        return [
            TagClass(
                tag_class_id=str(row["tag_class_id"]),
                fandom_id=str(row["fandom_id"]),
                name=str(row["name"]),
                description=str(row["description"]),
                rules=tag_class_rules_from_json(str(row["rules_json"])),
            )
            for row in rows
        ]

    def create_tag(
        self,
        *,
        fandom_id: str,
        name: str,
        category: str = "",
        tag_class_id: str | None = None,
        requires: Sequence[str] = (),
        enhances: Sequence[str] = (),
        description: str = "",
        tag_id: str | None = None,
    ) -> Tag | None:
        """Create a tag; returns None when the id or name is already used."""
        self._require_fandom(fandom_id)
        if tag_class_id is not None:
            with self._connect() as connection:
                owner = connection.execute(
                    "SELECT fandom_id FROM tag_classes WHERE tag_class_id = ?",
                    (tag_class_id,),
                ).fetchone()
            if owner is None or str(owner["fandom_id"]) != fandom_id:
                raise TaxonomyReferenceError(
                    f"Tag class {tag_class_id} does not exist in fandom {fandom_id}."
                )
        tag = Tag(
            tag_id=tag_id or uuid4().hex,
            fandom_id=fandom_id,
            name=name,
            category=category,
            tag_class_id=tag_class_id,
            requires=tuple(requires),
            enhances=tuple(enhances),
            description=description,
        )
        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO tags (
                        tag_id, fandom_id, name, category, tag_class_id,
                        requires_json, enhances_json, description, is_active
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1)
                    """,
                    (
                        tag.tag_id,
                        fandom_id,
                        name,
                        category,
                        tag_class_id,
                        _json_list(tag.requires),
                        _json_list(tag.enhances),
                        description,
                    ),
                )
        except sqlite3.IntegrityError:
            return None
        return tag

    def list_tags(self, *, fandom_id: str) -> list[Tag]:
        with self._connect() as connection:
            rows = connection.execute(
                """
                SELECT
                    tag_id, fandom_id, name, category, tag_class_id,
                    requires_json, enhances_json, description, is_active
                FROM tags
                WHERE fandom_id = ? AND is_active = 1
                ORDER BY category ASC, name ASC
                """,
                (fandom_id,),
            ).fetchall()
        return [self._tag_from_row(row) for row in rows]

    def set_tag_active(self, *, tag_id: str, is_active: bool) -> bool:
        with self._connect() as connection:
            updated = connection.execute(
                "UPDATE tags SET is_active = ? WHERE tag_id = ?",
                (1 if is_active else 0, tag_id),
            )
        return updated.rowcount > 0

    def create_plot_block(
        self,
        *,
        fandom_id: str,
        name: str,
        parent_id: str | None = None,
        requires: Sequence[str] = (),
        conflicts: Sequence[str] = (),
        category: str = "",
        description: str = "",
        plot_block_id: str | None = None,
    ) -> PlotBlock | None:
        """Create a plot block under an optional parent from the same fandom."""
        self._require_fandom(fandom_id)
        if parent_id is not None:
            self._require_plot_block_in_fandom(plot_block_id=parent_id, fandom_id=fandom_id)
        block = PlotBlock(
            plot_block_id=plot_block_id or uuid4().hex,
            fandom_id=fandom_id,
            name=name,
            parent_id=parent_id,
            requires=tuple(requires),
            conflicts=tuple(conflicts),
            category=category,
            description=description,
        )
        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO plot_blocks (
                        plot_block_id, fandom_id, name, parent_id, requires_json,
                        conflicts_json, category, description, is_active
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1)
                    """,
                    (
                        block.plot_block_id,
                        fandom_id,
                        name,
                        parent_id,
                        _json_list(block.requires),
                        _json_list(block.conflicts),
                        category,
                        description,
                    ),
                )
        except sqlite3.IntegrityError:
            return None
        return block

    def set_plot_block_parent(
        self,
        *,
        plot_block_id: str,
        parent_id: str | None,
    ) -> PlotBlock | None:
        """Move a plot block; raises PlotBlockCycleError if the forest would break."""
        with self._connect() as connection:
            row = connection.execute(
                "SELECT fandom_id FROM plot_blocks WHERE plot_block_id = ?",
                (plot_block_id,),
            ).fetchone()
        if row is None:
            return None
        fandom_id = str(row["fandom_id"])
        if parent_id is not None:
            self._require_plot_block_in_fandom(plot_block_id=parent_id, fandom_id=fandom_id)
        ensure_parent_link_is_acyclic(
            self._all_plot_blocks(fandom_id=fandom_id),
            plot_block_id=plot_block_id,
            parent_id=parent_id,
        )
        with self._connect() as connection:
            connection.execute(
                "UPDATE plot_blocks SET parent_id = ? WHERE plot_block_id = ?",
                (parent_id, plot_block_id),
            )
        return next(
            block
            for block in self._all_plot_blocks(fandom_id=fandom_id)
            if block.plot_block_id == plot_block_id
        )

    def set_plot_block_active(self, *, plot_block_id: str, is_active: bool) -> bool:
        with self._connect() as connection:
            updated = connection.execute(
                "UPDATE plot_blocks SET is_active = ? WHERE plot_block_id = ?",
                (1 if is_active else 0, plot_block_id),
            )
        return updated.rowcount > 0

    def list_plot_blocks(self, *, fandom_id: str) -> list[PlotBlock]:
        return [block for block in self._all_plot_blocks(fandom_id=fandom_id) if block.is_active]

    def _all_plot_blocks(self, *, fandom_id: str) -> list[PlotBlock]:
        with self._connect() as connection:
            rows = connection.execute(
                """
                SELECT
                    plot_block_id, fandom_id, name, parent_id, requires_json,
                    conflicts_json, category, description, is_active
                FROM plot_blocks
                WHERE fandom_id = ?
                ORDER BY name ASC
                """,
                (fandom_id,),
            ).fetchall()
        return [self._plot_block_from_row(row) for row in rows]

    def _require_fandom(self, fandom_id: str) -> None:
        with self._connect() as connection:
            row = connection.execute(
                "SELECT 1 FROM fandoms WHERE fandom_id = ?",
                (fandom_id,),
            ).fetchone()
        if row is None:
            raise TaxonomyReferenceError(f"Fandom {fandom_id} does not exist.")

    def _require_plot_block_in_fandom(self, *, plot_block_id: str, fandom_id: str) -> None:
        with self._connect() as connection:
            row = connection.execute(
                "SELECT fandom_id FROM plot_blocks WHERE plot_block_id = ?",
                (plot_block_id,),
            ).fetchone()
        if row is None or str(row["fandom_id"]) != fandom_id:
            raise TaxonomyReferenceError(
                f"Plot block {plot_block_id} does not exist in fandom {fandom_id}."
            )

    @staticmethod
    def _fandom_from_row(row: sqlite3.Row) -> Fandom:
        return Fandom(
            fandom_id=str(row["fandom_id"]),
            name=str(row["name"]),
            description=str(row["description"]),
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    def _tag_from_row(row: sqlite3.Row) -> Tag:
        tag_class_id = row["tag_class_id"]
        return Tag(
            tag_id=str(row["tag_id"]),
            fandom_id=str(row["fandom_id"]),
            name=str(row["name"]),
            category=str(row["category"]),
            tag_class_id=str(tag_class_id) if tag_class_id is not None else None,
            requires=_tuple_from_json(row["requires_json"]),
            enhances=_tuple_from_json(row["enhances_json"]),
            description=str(row["description"]),
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    def _plot_block_from_row(row: sqlite3.Row) -> PlotBlock:
        parent_id = row["parent_id"]
        return PlotBlock(
            plot_block_id=str(row["plot_block_id"]),
            fandom_id=str(row["fandom_id"]),
            name=str(row["name"]),
            parent_id=str(parent_id) if parent_id is not None else None,
            requires=_tuple_from_json(row["requires_json"]),
            conflicts=_tuple_from_json(row["conflicts_json"]),
            category=str(row["category"]),
            description=str(row["description"]),
            is_active=bool(row["is_active"]),
        )
