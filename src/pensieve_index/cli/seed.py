"""CLI for loading a taxonomy seed document into the SQLite catalog."""

from __future__ import annotations

import argparse
import os
from pathlib import Path

from pensieve_index.adapters.observability import configure_runtime_logging
from pensieve_index.api.catalog import CatalogReferenceError, CatalogWriter
from pensieve_index.api.contracts import load_seed_json

DEFAULT_DB_PATH = Path("work/local/pensieve_index.db")


def build_arg_parser() -> argparse.ArgumentParser:
    """Define CLI flags for seeding fandoms, taxonomy, rules, and stories."""
    parser = argparse.ArgumentParser(description="Load a Pensieve Index seed JSON document.")
    parser.add_argument("--input", required=True, help="Path to the seed JSON document.")
    parser.add_argument(
        "--db-path",
        default="",
        help="SQLite path (default: $PENSIEVE_DB_PATH or work/local/pensieve_index.db).",
    )
    return parser


def _db_path(raw: str) -> Path:
    if raw.strip():
        return Path(raw.strip())
    env_value = os.environ.get("PENSIEVE_DB_PATH", "").strip()
    return Path(env_value) if env_value else DEFAULT_DB_PATH


def main(argv: list[str] | None = None) -> None:
    """Validate the seed document, then apply it row by row."""
    configure_runtime_logging()
    parser = build_arg_parser()
    parsed = parser.parse_args(argv)

    input_path = Path(str(parsed.input))
    document = load_seed_json(input_path)
    writer = CatalogWriter.for_db_path(_db_path(str(parsed.db_path)))
    try:
        summary = writer.apply_seed(document)
    except CatalogReferenceError as exc:
        raise SystemExit(f"Seed failed: {exc.message}") from exc
    print(
        f"Seeded {input_path}: fandoms={summary.fandoms} tag_classes={summary.tag_classes} "
        f"tags={summary.tags} plot_blocks={summary.plot_blocks} "
        f"rules={summary.validation_rules} stories={summary.stories}"
    )
    for skipped in summary.skipped:
        print(f"Skipped {skipped}")


if __name__ == "__main__":
    main()
