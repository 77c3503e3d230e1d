from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from pensieve_index.adapters.sqlite_taxonomy_store import SQLiteTaxonomyStore
from pensieve_index.cli import api as api_cli
from pensieve_index.cli import pathway as pathway_cli
from pensieve_index.cli import seed as seed_cli

SEED_PATH = Path(__file__).parent / "fixtures" / "hp_seed.json"


def test_api_cli_calls_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, object]] = []

    def fake_run(app: str, host: str, port: int, reload: bool) -> None:
        calls.append({"app": app, "host": host, "port": port, "reload": reload})

    monkeypatch.setattr("pensieve_index.cli.api.configure_runtime_logging", lambda: None)
    monkeypatch.setattr("pensieve_index.cli.api.uvicorn.run", fake_run)
    api_cli.main(["--host", "0.0.0.0", "--port", "9000", "--reload"])

    assert calls == [
        {
            "app": "pensieve_index.api.app:app",
            "host": "0.0.0.0",
            "port": 9000,
            "reload": True,
        }
    ]


def test_api_cli_sets_db_path_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PENSIEVE_DB_PATH", "")
    monkeypatch.setattr("pensieve_index.cli.api.configure_runtime_logging", lambda: None)
    monkeypatch.setattr("pensieve_index.cli.api.uvicorn.run", lambda *args, **kwargs: None)
    api_cli.main(["--db-path", "work/local/custom.db"])
    assert os.environ["PENSIEVE_DB_PATH"] == "work/local/custom.db"


def test_api_cli_forwards_admin_and_share_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PENSIEVE_ADMIN_TOKEN", "PENSIEVE_SHARE_BASE_URL", "PENSIEVE_CORS_ORIGINS"):
        monkeypatch.setenv(name, "")
    monkeypatch.setattr("pensieve_index.cli.api.configure_runtime_logging", lambda: None)
    monkeypatch.setattr("pensieve_index.cli.api.uvicorn.run", lambda *args, **kwargs: None)
    api_cli.main(
        ["--admin-token", "letmein", "--share-base-url", "https://pensieve.example"]
    )
    assert os.environ["PENSIEVE_ADMIN_TOKEN"] == "letmein"
    assert os.environ["PENSIEVE_SHARE_BASE_URL"] == "https://pensieve.example"
    assert os.environ["PENSIEVE_CORS_ORIGINS"] == ""


def test_seed_cli_loads_fixture_and_skips_existing_rows(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    db_path = tmp_path / "pensieve.db"
    monkeypatch.setattr("pensieve_index.cli.seed.configure_runtime_logging", lambda: None)

    seed_cli.main(["--input", str(SEED_PATH), "--db-path", str(db_path)])
    first = capsys.readouterr().out
    assert "fandoms=2 tag_classes=1 tags=10 plot_blocks=4 rules=1 stories=4" in first
    assert "Skipped" not in first
    assert len(SQLiteTaxonomyStore(db_path=db_path).list_tags(fandom_id="hp-1")) == 9

    seed_cli.main(["--input", str(SEED_PATH), "--db-path", str(db_path)])
    second = capsys.readouterr().out
    assert "fandoms=0 tag_classes=0 tags=0 plot_blocks=0 rules=0 stories=0" in second
    assert "Skipped fandoms: Fandom hp-1 already exists." in second


def test_seed_cli_uses_db_path_env(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    db_path = tmp_path / "from-env.db"
    monkeypatch.setenv("PENSIEVE_DB_PATH", str(db_path))
    monkeypatch.setattr("pensieve_index.cli.seed.configure_runtime_logging", lambda: None)
    seed_cli.main(["--input", str(SEED_PATH)])
    assert "Seeded" in capsys.readouterr().out
    assert db_path.exists()


def test_seed_cli_fails_on_broken_reference(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    seed_path = tmp_path / "broken.json"
    seed_path.write_text(
        json.dumps({"tags": [{"fandomId": "missing", "name": "Orphan"}]}),
        encoding="utf-8",
    )
    monkeypatch.setattr("pensieve_index.cli.seed.configure_runtime_logging", lambda: None)
    with pytest.raises(SystemExit, match="Seed failed"):
        seed_cli.main(["--input", str(seed_path), "--db-path", str(tmp_path / "x.db")])


def test_pathway_cli_encodes_and_decodes(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    input_path = tmp_path / "pathway.json"
    input_path.write_text(
        json.dumps(
            [
                {"id": "hp-harry", "name": "Harry Potter", "category": "character"},
                {"id": "hp-time-travel", "type": "plot_block", "name": "Time Travel"},
            ]
        ),
        encoding="utf-8",
    )
    pathway_cli.main(["encode", "--input", str(input_path), "--fandom-id", "hp-1"])
    token = capsys.readouterr().out.strip()
    assert token

    pathway_cli.main(["decode", token])
    decoded = json.loads(capsys.readouterr().out)
    assert decoded["fandomId"] == "hp-1"
    assert [item["id"] for item in decoded["pathway"]] == ["hp-harry", "hp-time-travel"]
    assert decoded["analysis"]["itemCount"] == 2
    assert decoded["prompt"].startswith("Write a story featuring Harry Potter with Time Travel.")


def test_pathway_cli_rejects_invalid_id() -> None:
    with pytest.raises(SystemExit, match="Invalid pathway id"):
        pathway_cli.main(["decode", "%%%"])
