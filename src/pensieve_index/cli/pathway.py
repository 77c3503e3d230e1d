"""CLI helpers for encoding and inspecting shareable pathway ids."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from pydantic import TypeAdapter

from pensieve_index.api.contracts import PathwayItemPayload, to_pathway_items
from pensieve_index.core.pathway_analysis import analyze_pathway
from pensieve_index.core.pathway_codec import (
    PathwayDecodeError,
    decode_pathway,
    encode_pathway,
    item_to_json,
)
from pensieve_index.core.prompt_generation import generate_prompt

_PATHWAY_ADAPTER = TypeAdapter(list[PathwayItemPayload])


def build_arg_parser() -> argparse.ArgumentParser:
    """Define encode/decode subcommands."""
    parser = argparse.ArgumentParser(description="Encode or decode shareable pathway ids.")
    subcommands = parser.add_subparsers(dest="command", required=True)

    encode = subcommands.add_parser("encode", help="Encode a pathway JSON array into an id.")
    encode.add_argument("--input", required=True, help="Path to a JSON array of pathway items.")
    encode.add_argument("--fandom-id", default="", help="Optional fandom id to embed.")

    decode = subcommands.add_parser("decode", help="Decode an id and print the analysis.")
    decode.add_argument("pathway_id", help="Shareable pathway id.")
    return parser


def _encode(input_path: Path, fandom_id: str) -> str:
    payloads = _PATHWAY_ADAPTER.validate_json(input_path.read_text(encoding="utf-8"))
    return encode_pathway(to_pathway_items(payloads), fandom_id=fandom_id or None)


def _decode(pathway_id: str) -> dict[str, object]:
    snapshot = decode_pathway(pathway_id)
    analysis = analyze_pathway(snapshot.items)
    return {
        "fandomId": snapshot.fandom_id,
        "pathway": [item_to_json(item) for item in snapshot.items],
        "analysis": {
            "completeness": analysis.completeness,
            "noveltyScore": analysis.novelty_score,
            "searchability": analysis.searchability,
            "itemCount": analysis.item_count,
        },
        "prompt": generate_prompt(snapshot.items).text,
    }


def main(argv: list[str] | None = None) -> None:
    parser = build_arg_parser()
    parsed = parser.parse_args(argv)
    if parsed.command == "encode":
        print(_encode(Path(str(parsed.input)), str(parsed.fandom_id).strip()))
        return
    try:
        decoded = _decode(str(parsed.pathway_id))
    except PathwayDecodeError as exc:
        raise SystemExit(f"Invalid pathway id: {exc}") from exc
    print(json.dumps(decoded, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
