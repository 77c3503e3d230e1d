from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from pensieve_index.adapters.sqlite_rule_store import (
    MALFORMED_CONDITION_TYPE,
    SQLiteRuleStore,
    condition_from_json,
)
from pensieve_index.domain.models import Action, Condition


def _conditions() -> list[Condition]:
    return [
        Condition(condition_type="has_tag", targets=("Harry/Ginny",)),
        Condition(
            condition_type="item_count",
            operator="in",
            value=("2", "3"),
            logic_operator="OR",
            group_id="size",
            is_negated=True,
        ),
    ]


def test_rule_roundtrip_and_duplicate_ids(tmp_path: Path) -> None:
    store = SQLiteRuleStore(db_path=tmp_path / "rules.db")
    created = store.create_rule(
        fandom_id="hp-1",
        name="Harry has one canon romance",
        conditions=_conditions(),
        actions=[Action(action_type="forbid_tag", message="Pick one ship.")],
        rule_type="exclusivity",
        priority=10,
        rule_id="hp-rule-ship-conflict",
    )
    assert created is not None
    assert (
        store.create_rule(
            fandom_id="hp-1",
            name="Again",
            conditions=_conditions(),
            actions=[],
            rule_id="hp-rule-ship-conflict",
        )
        is None
    )

    loaded = store.get_rule(rule_id="hp-rule-ship-conflict")
    assert loaded == created
    assert store.get_rule(rule_id="missing") is None


def test_list_active_rules_orders_by_priority_and_skips_inactive(tmp_path: Path) -> None:
    store = SQLiteRuleStore(db_path=tmp_path / "rules.db")
    for rule_id, priority in (("b", 5), ("a", 5), ("z", 1)):
        store.create_rule(
            fandom_id="hp-1",
            name=rule_id.upper(),
            conditions=_conditions(),
            actions=[],
            priority=priority,
            rule_id=rule_id,
        )
    store.create_rule(
        fandom_id="pj-1", name="Other", conditions=_conditions(), actions=[], rule_id="pj"
    )
    assert [rule.rule_id for rule in store.list_active_rules(fandom_id="hp-1")] == ["z", "a", "b"]

    deactivated = store.set_rule_active(rule_id="a", is_active=False)
    assert deactivated is not None
    assert deactivated.is_active is False
    assert [rule.rule_id for rule in store.list_active_rules(fandom_id="hp-1")] == ["z", "b"]
    assert store.set_rule_active(rule_id="missing", is_active=False) is None


def test_unreadable_condition_rows_load_as_malformed(tmp_path: Path) -> None:
    db_path = tmp_path / "rules.db"
    store = SQLiteRuleStore(db_path=db_path)
    store.create_rule(
        fandom_id="hp-1", name="Legacy", conditions=_conditions(), actions=[], rule_id="legacy"
    )
    with sqlite3.connect(str(db_path)) as connection:
        connection.execute(
            "UPDATE validation_rules SET conditions_json = ?, actions_json = ? WHERE rule_id = ?",
            (json.dumps(["not-an-object"]), json.dumps([42]), "legacy"),
        )

    loaded = store.get_rule(rule_id="legacy")
    assert loaded is not None
    assert [condition.condition_type for condition in loaded.conditions] == [
        MALFORMED_CONDITION_TYPE
    ]
    assert loaded.actions == ()


def test_condition_from_json_accepts_single_target_shape() -> None:
    condition = condition_from_json({"type": "has_tag", "target": "hp-harry"})
    assert condition.condition_type == "has_tag"
    assert condition.targets == ("hp-harry",)
    assert condition.operator == "contains"
