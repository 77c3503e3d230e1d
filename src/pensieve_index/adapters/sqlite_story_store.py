"""SQLite-backed story catalog with tag and plot-block join tables."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

from pensieve_index.adapters.sqlite_taxonomy_store import (
    SQLiteTaxonomyStore,
    TaxonomyReferenceError,
)
from pensieve_index.domain.models import PlotBlock, Story, StoryFilters, Tag

_STORY_COLUMNS = """
    s.story_id, s.fandom_id, s.title, s.author, s.summary, s.url, s.word_count,
    s.status, s.rating, s.language, s.updated_at_utc, s.is_active
"""


def _filter_clause(fandom_id: str, filters: StoryFilters) -> tuple[str, list[object]]:
    clauses = ["s.fandom_id = ?", "s.is_active = 1"]
    params: list[object] = [fandom_id]
    if filters.min_word_count is not None:
        clauses.append("s.word_count >= ?")
        params.append(filters.min_word_count)
    if filters.max_word_count is not None:
        clauses.append("s.word_count <= ?")
        params.append(filters.max_word_count)
    for column, values in (
        ("status", filters.statuses),
        ("rating", filters.ratings),
        ("language", filters.languages),
    ):
        if not values:
            continue
        placeholders = ", ".join("?" for _ in values)
        clauses.append(f"LOWER(s.{column}) IN ({placeholders})")
        params.extend(value.lower() for value in values)
    return " AND ".join(clauses), params


class SQLiteStoryStore:
    """Persist stories and answer candidate lookups for relevance scoring."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._taxonomy = SQLiteTaxonomyStore(db_path=db_path)
        self._initialize_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self._db_path))
        connection.row_factory = sqlite3.Row
        return connection

    def _initialize_schema(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS stories (
                    story_id TEXT PRIMARY KEY,
                    fandom_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    author TEXT NOT NULL,
                    summary TEXT NOT NULL,
                    url TEXT NOT NULL,
                    word_count INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    rating TEXT NOT NULL,
                    language TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    FOREIGN KEY (fandom_id) REFERENCES fandoms(fandom_id)
                )
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS story_tags (
                    story_id TEXT NOT NULL,
                    tag_id TEXT NOT NULL,
                    PRIMARY KEY (story_id, tag_id),
                    FOREIGN KEY (story_id) REFERENCES stories(story_id),
                    FOREIGN KEY (tag_id) REFERENCES tags(tag_id)
                )
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS story_plot_blocks (
                    story_id TEXT NOT NULL,
                    plot_block_id TEXT NOT NULL,
                    PRIMARY KEY (story_id, plot_block_id),
                    FOREIGN KEY (story_id) REFERENCES stories(story_id),
                    FOREIGN KEY (plot_block_id) REFERENCES plot_blocks(plot_block_id)
                )
                """
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_stories_fandom_updated
                ON stories(fandom_id, is_active, updated_at_utc DESC)
                """
            )
            connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_story_tags_tag ON story_tags(tag_id)"
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_story_plot_blocks_block
                ON story_plot_blocks(plot_block_id)
                """
            )

    def create_story(
        self,
        *,
        fandom_id: str,
        title: str,
        author: str = "",
        summary: str = "",
        url: str = "",
        word_count: int = 0,
        status: str = "complete",
        rating: str = "",
        language: str = "en",
        tag_ids: Sequence[str] = (),
        plot_block_ids: Sequence[str] = (),
        story_id: str | None = None,
        updated_at_utc: str | None = None,
    ) -> Story | None:
        """Create a story and its associations; returns None when the id exists."""
        if self._taxonomy.get_fandom(fandom_id=fandom_id) is None:
            raise TaxonomyReferenceError(f"Fandom {fandom_id} does not exist.")
        tags_by_id = {tag.tag_id: tag for tag in self._taxonomy.list_tags(fandom_id=fandom_id)}
        blocks_by_id = {
            block.plot_block_id: block
            for block in self._taxonomy.list_plot_blocks(fandom_id=fandom_id)
        }
        unknown = [tag_id for tag_id in tag_ids if tag_id not in tags_by_id] + [
            block_id for block_id in plot_block_ids if block_id not in blocks_by_id
        ]
        if unknown:
            raise TaxonomyReferenceError(
                f"Unknown tag or plot block ids for fandom {fandom_id}: {', '.join(unknown)}"
            )

        unique_tags = list(dict.fromkeys(tag_ids))
        unique_blocks = list(dict.fromkeys(plot_block_ids))
        story = Story(
            story_id=story_id or uuid4().hex,
            fandom_id=fandom_id,
            title=title,
            author=author,
            summary=summary,
            url=url,
            word_count=word_count,
            status=status,
            rating=rating,
            language=language,
            updated_at_utc=updated_at_utc or datetime.now(UTC).isoformat(),
            tags=tuple(tags_by_id[tag_id] for tag_id in unique_tags),
            plot_blocks=tuple(blocks_by_id[block_id] for block_id in unique_blocks),
        )
        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO stories (
                        story_id, fandom_id, title, author, summary, url, word_count,
                        status, rating, language, updated_at_utc, is_active
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
                    """,
                    (
                        story.story_id,
                        fandom_id,
                        title,
                        author,
                        summary,
                        url,
                        word_count,
                        status,
                        rating,
                        language,
                        story.updated_at_utc,
                    ),
                )
                connection.executemany(
                    "INSERT INTO story_tags (story_id, tag_id) VALUES (?, ?)",
                    [(story.story_id, tag_id) for tag_id in unique_tags],
                )
                connection.executemany(
                    "INSERT INTO story_plot_blocks (story_id, plot_block_id) VALUES (?, ?)",
                    [(story.story_id, block_id) for block_id in unique_blocks],
                )
        except sqlite3.IntegrityError:
            return None
        return story

    def set_story_active(self, *, story_id: str, is_active: bool) -> bool:
        with self._connect() as connection:
            updated = connection.execute(
                "UPDATE stories SET is_active = ? WHERE story_id = ?",
                (1 if is_active else 0, story_id),
            )
        return updated.rowcount > 0

    def get_story(self, *, story_id: str) -> Story | None:
        with self._connect() as connection:
            row = connection.execute(
                f"""
                SELECT {_STORY_COLUMNS}
                FROM stories AS s
                WHERE s.story_id = ? AND s.is_active = 1
                """,
                (story_id,),
            ).fetchone()
            if row is None:
                return None
            tags = self._tags_by_story(connection, "s.story_id = ?", [story_id])
            blocks = self._plot_blocks_by_story(connection, "s.story_id = ?", [story_id])
        return self._story_from_row(row, tags=tags, plot_blocks=blocks)

    def list_candidates(self, *, fandom_id: str, filters: StoryFilters) -> list[Story]:
        """Active stories passing hard filters, with associations loaded in bulk."""
        where, params = _filter_clause(fandom_id, filters)
        with self._connect() as connection:
            rows = connection.execute(
                f"""
                SELECT {_STORY_COLUMNS}
                FROM stories AS s
                WHERE {where}
                ORDER BY s.updated_at_utc DESC, s.story_id ASC
                """,
                params,
            ).fetchall()
            tags = self._tags_by_story(connection, where, params)
            blocks = self._plot_blocks_by_story(connection, where, params)
        return [self._story_from_row(row, tags=tags, plot_blocks=blocks) for row in rows]

    def count_stories(self, *, fandom_id: str) -> int:
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT COUNT(*) AS total
                FROM stories
                WHERE fandom_id = ? AND is_active = 1
                """,
                (fandom_id,),
            ).fetchone()
        assert row is not None
        return int(row["total"])

    @staticmethod
    def _tags_by_story(
        connection: sqlite3.Connection, where: str, params: Sequence[object]
    ) -> dict[str, list[Tag]]:
        rows = connection.execute(
            f"""
            SELECT st.story_id, t.tag_id, t.fandom_id, t.name, t.category, t.tag_class_id
            FROM story_tags AS st
            JOIN stories AS s ON s.story_id = st.story_id
            JOIN tags AS t ON t.tag_id = st.tag_id
            WHERE {where} AND t.is_active = 1
            ORDER BY t.name ASC
            """,
            list(params),
        ).fetchall()
        grouped: dict[str, list[Tag]] = {}
        for row in rows:
            tag_class_id = row["tag_class_id"]
            grouped.setdefault(str(row["story_id"]), []).append(
                Tag(
                    tag_id=str(row["tag_id"]),
                    fandom_id=str(row["fandom_id"]),
                    name=str(row["name"]),
                    category=str(row["category"]),
                    tag_class_id=str(tag_class_id) if tag_class_id is not None else None,
                )
            )
        return grouped

    @staticmethod
    def _plot_blocks_by_story(
        connection: sqlite3.Connection, where: str, params: Sequence[object]
    ) -> dict[str, list[PlotBlock]]:
        rows = connection.execute(
            f"""
            SELECT sp.story_id, p.plot_block_id, p.fandom_id, p.name, p.parent_id, p.category
            FROM story_plot_blocks AS sp
            JOIN stories AS s ON s.story_id = sp.story_id
            JOIN plot_blocks AS p ON p.plot_block_id = sp.plot_block_id
            WHERE {where} AND p.is_active = 1
            ORDER BY p.name ASC
            """,
            list(params),
        ).fetchall()
        grouped: dict[str, list[PlotBlock]] = {}
        for row in rows:
            parent_id = row["parent_id"]
            grouped.setdefault(str(row["story_id"]), []).append(
                PlotBlock(
                    plot_block_id=str(row["plot_block_id"]),
                    fandom_id=str(row["fandom_id"]),
                    name=str(row["name"]),
                    parent_id=str(parent_id) if parent_id is not None else None,
                    category=str(row["category"]),
                )
            )
        return grouped

    @staticmethod
    def _story_from_row(
        row: sqlite3.Row,
        *,
        tags: dict[str, list[Tag]],
        plot_blocks: dict[str, list[PlotBlock]],
    ) -> Story:
        story_id = str(row["story_id"])
        return Story(
            story_id=story_id,
            fandom_id=str(row["fandom_id"]),
            title=str(row["title"]),
            author=str(row["author"]),
            summary=str(row["summary"]),
            url=str(row["url"]),
            word_count=int(row["word_count"]),
            status=str(row["status"]),
            rating=str(row["rating"]),
            language=str(row["language"]),
            updated_at_utc=str(row["updated_at_utc"]),
            is_active=bool(row["is_active"]),
            tags=tuple(tags.get(story_id, [])),
            plot_blocks=tuple(plot_blocks.get(story_id, [])),
        )
