"""SQLite-backed persistence for per-fandom validation rules."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from pensieve_index.domain.models import Action, Condition, ConditionValue, ValidationRule

logger = logging.getLogger(__name__)

MALFORMED_CONDITION_TYPE = "malformed"


def condition_to_json(condition: Condition) -> dict[str, object]:
    value: object = list(condition.value) if isinstance(condition.value, tuple) else condition.value
    return {
        "condition_type": condition.condition_type,
        "targets": list(condition.targets),
        "operator": condition.operator,
        "value": value,
        "logic_operator": condition.logic_operator,
        "group_id": condition.group_id,
        "is_negated": condition.is_negated,
    }


def action_to_json(action: Action) -> dict[str, object]:
    return {
        "action_type": action.action_type,
        "severity": action.severity,
        "message": action.message,
        "target_ids": list(action.target_ids),
    }


def _condition_value(raw: Any) -> ConditionValue:
    if isinstance(raw, list):
        return tuple(str(value) for value in raw)
    if raw is None or isinstance(raw, (str, int, float, bool)):
        return raw
    return str(raw)


def condition_from_json(raw: Any) -> Condition:
    """Rebuild a condition; anything unreadable becomes an unevaluable condition."""
    if not isinstance(raw, dict):
        return Condition(condition_type=MALFORMED_CONDITION_TYPE)
    targets = raw.get("targets")
    if targets is None and raw.get("target") is not None:
        targets = [raw["target"]]
    group_id = raw.get("group_id")
    condition_type = raw.get("condition_type") or raw.get("type") or MALFORMED_CONDITION_TYPE
    return Condition(
        condition_type=str(condition_type),
        targets=tuple(str(target) for target in targets) if isinstance(targets, list) else (),
        operator=str(raw.get("operator") or "contains"),
        value=_condition_value(raw.get("value")),
        logic_operator=str(raw.get("logic_operator") or "AND"),
        group_id=str(group_id) if group_id is not None else None,
        is_negated=bool(raw.get("is_negated", False)),
    )


def action_from_json(raw: Any) -> Action | None:
    if not isinstance(raw, dict):
        return None
    targets = raw.get("target_ids")
    return Action(
        action_type=str(raw.get("action_type") or raw.get("type") or ""),
        severity=str(raw.get("severity") or "error"),
        message=str(raw.get("message") or ""),
        target_ids=tuple(str(target) for target in targets) if isinstance(targets, list) else (),
    )


class SQLiteRuleStore:
    """Persist validation rules with JSON condition and action payloads."""

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
                CREATE TABLE IF NOT EXISTS validation_rules (
                    rule_id TEXT PRIMARY KEY,
                    fandom_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    rule_type TEXT NOT NULL,
                    priority INTEGER NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    description TEXT NOT NULL,
                    conditions_json TEXT NOT NULL,
                    actions_json TEXT NOT NULL,
                    created_at_utc TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL
                )
                """
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_validation_rules_fandom_priority
                ON validation_rules(fandom_id, is_active, priority ASC)
                """
            )

    def create_rule(
        self,
        *,
        fandom_id: str,
        name: str,
        conditions: Sequence[Condition],
        actions: Sequence[Action],
        rule_type: str = "custom",
        priority: int = 0,
        description: str = "",
        rule_id: str | None = None,
    ) -> ValidationRule | None:
        """Persist one rule; returns None when the id already exists."""
        now = datetime.now(UTC).isoformat()
        rule = ValidationRule(
            rule_id=rule_id or uuid4().hex,
            fandom_id=fandom_id,
            name=name,
            rule_type=rule_type,
            priority=priority,
            conditions=tuple(conditions),
            actions=tuple(actions),
            description=description,
        )
        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO validation_rules (
                        rule_id, fandom_id, name, rule_type, priority, is_active,
                        description, conditions_json, actions_json,
                        created_at_utc, updated_at_utc
                    )
                    VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?, ?, ?)
                    """,
                    (
                        rule.rule_id,
                        fandom_id,
                        name,
                        rule_type,
                        priority,
                        description,
                        json.dumps([condition_to_json(c) for c in rule.conditions]),
                        json.dumps([action_to_json(a) for a in rule.actions]),
                        now,
                        now,
                    ),
                )
        except sqlite3.IntegrityError:
            return None
        return rule

    def get_rule(self, *, rule_id: str) -> ValidationRule | None:
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT
                    rule_id, fandom_id, name, rule_type, priority, is_active,
                    description, conditions_json, actions_json
                FROM validation_rules
                WHERE rule_id = ?
                """,
                (rule_id,),
            ).fetchone()
        if row is None:
            return None
        return self._rule_from_row(row)

    def list_active_rules(self, *, fandom_id: str) -> list[ValidationRule]:
        with self._connect() as connection:
            rows = connection.execute(
                """
                SELECT
                    rule_id, fandom_id, name, rule_type, priority, is_active,
                    description, conditions_json, actions_json
                FROM validation_rules
                WHERE fandom_id = ? AND is_active = 1
                ORDER BY priority ASC, rule_id ASC
                """,
                (fandom_id,),
            ).fetchall()
        return [self._rule_from_row(row) for row in rows]

    def set_rule_active(self, *, rule_id: str, is_active: bool) -> ValidationRule | None:
        with self._connect() as connection:
            updated = connection.execute(
                """
                UPDATE validation_rules
                SET is_active = ?, updated_at_utc = ?
                WHERE rule_id = ?
                """,
                (1 if is_active else 0, datetime.now(UTC).isoformat(), rule_id),
            )
        if updated.rowcount == 0:
            return None
        return self.get_rule(rule_id=rule_id)

    @staticmethod
    def _rule_from_row(row: sqlite3.Row) -> ValidationRule:
        rule_id = str(row["rule_id"])
        try:
            raw_conditions = json.loads(str(row["conditions_json"]))
            raw_actions = json.loads(str(row["actions_json"]))
        except json.JSONDecodeError:
            logger.warning("rule.payload_unreadable rule_id=%s", rule_id)
            raw_conditions, raw_actions = [None], []
        conditions = tuple(
            condition_from_json(raw)
            for raw in (raw_conditions if isinstance(raw_conditions, list) else [None])
        )
        actions = tuple(
            action
            for action in (
                action_from_json(raw)
                for raw in (raw_actions if isinstance(raw_actions, list) else [])
            )
            if action is not None
        )
        return ValidationRule(
            rule_id=rule_id,
            fandom_id=str(row["fandom_id"]),
            name=str(row["name"]),
            rule_type=str(row["rule_type"]),
            priority=int(row["priority"]),
            is_active=bool(row["is_active"]),
            conditions=conditions,
            actions=actions,
            description=str(row["description"]),
        )
