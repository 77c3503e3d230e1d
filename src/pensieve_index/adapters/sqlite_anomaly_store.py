"""SQLite anomaly sink for skipped rules and degraded discovery responses."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4


@dataclass(frozen=True)
class StoredAnomaly:
    """Persisted anomaly metadata."""

    anomaly_id: str
    created_at_utc: str
    scope: str
    code: str
    severity: str
    message: str
    fandom_id: str | None
    rule_id: str | None
    metadata_json: str


class SQLiteAnomalyStore:
    """Append-only anomaly records with retention and capacity pruning."""

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
                CREATE TABLE IF NOT EXISTS discovery_anomalies (
                    anomaly_id TEXT PRIMARY KEY,
                    created_at_utc TEXT NOT NULL,
                    scope TEXT NOT NULL,
                    code TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    message TEXT NOT NULL,
                    fandom_id TEXT,
                    rule_id TEXT,
                    metadata_json TEXT NOT NULL
                )
                """
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_discovery_anomalies_created
                ON discovery_anomalies(created_at_utc DESC)
                """
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_discovery_anomalies_rule
                ON discovery_anomalies(fandom_id, rule_id, created_at_utc DESC)
                """
            )

    def write_anomaly(
        self,
        *,
        scope: str,
        code: str,
        severity: str,
        message: str,
        metadata: dict[str, object] | None = None,
    ) -> StoredAnomaly:
        """Persist one anomaly; `fandom_id`/`rule_id` metadata keys get their own columns."""
        anomaly_id = uuid4().hex
        created_at_utc = datetime.now(UTC).isoformat()
        details = dict(metadata or {})
        fandom_id = details.get("fandom_id")
        rule_id = details.get("rule_id")
        payload = json.dumps(details, ensure_ascii=False, sort_keys=True)
        anomaly = StoredAnomaly(
            anomaly_id=anomaly_id,
            created_at_utc=created_at_utc,
            scope=scope,
            code=code,
            severity=severity,
            message=message,
            fandom_id=str(fandom_id) if fandom_id is not None else None,
            rule_id=str(rule_id) if rule_id is not None else None,
            metadata_json=payload,
        )
        with self._connect() as connection:
            connection.execute(
                """
                INSERT INTO discovery_anomalies (
                    anomaly_id, created_at_utc, scope, code, severity,
                    message, fandom_id, rule_id, metadata_json
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    anomaly.anomaly_id,
                    anomaly.created_at_utc,
                    scope,
                    code,
                    severity,
                    message,
                    anomaly.fandom_id,
                    anomaly.rule_id,
                    payload,
                ),
            )
        return anomaly

    def prune_anomalies(self, *, retention_days: int, max_rows: int) -> int:
        """Delete old records and keep total rows under max_rows."""
        if retention_days <= 0:
            raise ValueError("retention_days must be positive.")
        if max_rows <= 0:
            raise ValueError("max_rows must be positive.")

        cutoff = datetime.now(UTC) - timedelta(days=retention_days)
        with self._connect() as connection:
            removed = int(
                connection.execute(
                    "DELETE FROM discovery_anomalies WHERE created_at_utc < ?",
                    (cutoff.isoformat(),),
                ).rowcount
            )
            total = connection.execute(
                "SELECT COUNT(*) AS total FROM discovery_anomalies"
            ).fetchone()
            assert total is not None
            overflow = max(0, int(total["total"]) - max_rows)
            if overflow > 0:
                removed += int(
                    connection.execute(
                        """
                        DELETE FROM discovery_anomalies
                        WHERE anomaly_id IN (
                            SELECT anomaly_id
                            FROM discovery_anomalies
                            ORDER BY created_at_utc ASC
                            LIMIT ?
                        )
                        """,
                        (overflow,),
                    ).rowcount
                )
        return removed

    def list_recent(
        self,
        *,
        limit: int = 100,
        scope: str | None = None,
        fandom_id: str | None = None,
    ) -> list[StoredAnomaly]:
        """Fetch recent anomaly records, optionally narrowed by scope or fandom."""
        if limit <= 0:
            raise ValueError("limit must be positive.")
        clauses: list[str] = []
        params: list[object] = []
        if scope is not None:
            clauses.append("scope = ?")
            params.append(scope)
        if fandom_id is not None:
            clauses.append("fandom_id = ?")
            params.append(fandom_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as connection:
            rows = connection.execute(
                f"""
                SELECT
                    anomaly_id, created_at_utc, scope, code, severity,
                    message, fandom_id, rule_id, metadata_json
                FROM discovery_anomalies
                {where}
                ORDER BY created_at_utc DESC
                LIMIT ?
                """,
                (*params, limit),
            ).fetchall()
        return [
            StoredAnomaly(
                anomaly_id=str(row["anomaly_id"]),
                created_at_utc=str(row["created_at_utc"]),
                scope=str(row["scope"]),
                code=str(row["code"]),
                severity=str(row["severity"]),
                message=str(row["message"]),
                fandom_id=row["fandom_id"],
                rule_id=row["rule_id"],
                metadata_json=str(row["metadata_json"]),
            )
            for row in rows
        ]
