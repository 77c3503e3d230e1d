"""Serve the discovery API with uvicorn."""

from __future__ import annotations

import argparse
import logging
import os

import uvicorn

from pensieve_index.adapters.observability import configure_runtime_logging

APP_PATH = "pensieve_index.api.app:app"

# Flags forwarded to the app process; uvicorn --reload re-imports the app in a child.
ENV_FLAGS = {
    "db_path": "PENSIEVE_DB_PATH",
    "admin_token": "PENSIEVE_ADMIN_TOKEN",
    "cors_origins": "PENSIEVE_CORS_ORIGINS",
    "share_base_url": "PENSIEVE_SHARE_BASE_URL",
    "log_level": "PENSIEVE_LOG_LEVEL",
}

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve the Pensieve Index API.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument(
        "--db-path",
        default="",
        help="Catalog database (default: $PENSIEVE_DB_PATH or work/local/pensieve_index.db).",
    )
    parser.add_argument(
        "--admin-token",
        default="",
        help="Bearer token for /api/v1/admin writes; admin routes answer 403 without one.",
    )
    parser.add_argument("--cors-origins", default="", help="Comma-separated allowed origins.")
    parser.add_argument("--share-base-url", default="", help="Public origin for share links.")
    parser.add_argument("--log-level", default="", choices=["", "DEBUG", "INFO", "WARNING"])
    return parser


def main(argv: list[str] | None = None) -> None:
    parsed = build_arg_parser().parse_args(argv)
    for attribute, env_name in ENV_FLAGS.items():
        value = str(getattr(parsed, attribute)).strip()
        if value:
            os.environ[env_name] = value
    configure_runtime_logging()
    logger.info(
        "api.start host=%s port=%s reload=%s admin_enabled=%s",
        parsed.host,
        parsed.port,
        parsed.reload,
        bool(os.environ.get("PENSIEVE_ADMIN_TOKEN", "").strip()),
    )
    uvicorn.run(APP_PATH, host=str(parsed.host), port=int(parsed.port), reload=bool(parsed.reload))


if __name__ == "__main__":
    main()
