from __future__ import annotations

import pytest

from pensieve_index.core.rule_expressions import (
    Constant,
    MembershipTest,
    PathwayFacts,
    RuleEvaluationError,
    Unevaluable,
    compile_condition,
    compile_conditions,
    compile_rules,
)
from pensieve_index.core.taxonomy import TaxonomyIndex
from pensieve_index.domain.models import (
    Condition,
    Fandom,
    FandomTaxonomy,
    PathwayItem,
    PlotBlock,
    Tag,
    ValidationRule,
)


def _index() -> TaxonomyIndex:
    return TaxonomyIndex(
        FandomTaxonomy(
            fandom=Fandom(fandom_id="hp-1", name="Harry Potter"),
            tags=(
                Tag(tag_id="hp-harry", fandom_id="hp-1", name="Harry Potter", category="character"),
                Tag(tag_id="hp-angst", fandom_id="hp-1", name="Angst", category="genre"),
            ),
            plot_blocks=(
                PlotBlock(plot_block_id="hp-time-travel", fandom_id="hp-1", name="Time Travel"),
                PlotBlock(
                    plot_block_id="hp-time-turner",
                    fandom_id="hp-1",
                    name="Time-Turner Accident",
                    parent_id="hp-time-travel",
                ),
            ),
        )
    )


def _facts(*items: PathwayItem) -> PathwayFacts:
    return PathwayFacts.from_items(items, _index())


HARRY = PathwayItem(item_id="hp-harry", name="Harry Potter", position=0)
ANGST = PathwayItem(item_id="hp-angst", position=1)
TURNER = PathwayItem(item_id="hp-time-turner", item_type="plot_block", position=2)


def test_facts_match_by_id_or_name() -> None:
    facts = _facts(HARRY, ANGST, TURNER)
    assert facts.contains("has_tag", "hp-harry")
    assert facts.contains("has_tag", "harry potter")
    assert facts.contains("has_tag", "Angst")
    assert facts.contains("has_category", "genre")
    assert facts.contains("has_plot_block", "Time-Turner Accident")
    assert not facts.contains("has_tag", "hp-time-turner")
    assert facts.tag_count == 2
    assert facts.plot_block_count == 1
    assert facts.item_count == 3


def test_empty_conditions_never_match() -> None:
    assert compile_conditions([]) == Constant(False)


def test_conditions_fold_left_to_right_with_logic_operators() -> None:
    expression = compile_conditions(
        [
            Condition(condition_type="has_tag", targets=("hp-harry",)),
            Condition(condition_type="has_tag", targets=("Hermione",), logic_operator="OR"),
            Condition(condition_type="has_tag", targets=("hp-angst",), logic_operator="AND"),
        ]
    )
    assert expression.evaluate(_facts(HARRY, ANGST))
    assert not expression.evaluate(_facts(HARRY))


def test_groups_combine_with_and() -> None:
    expression = compile_conditions(
        [
            Condition(condition_type="has_tag", targets=("hp-harry",), group_id="who"),
            Condition(
                condition_type="has_plot_block", targets=("hp-time-travel",), group_id="what"
            ),
            Condition(
                condition_type="has_plot_block",
                targets=("hp-time-turner",),
                logic_operator="OR",
                group_id="what",
            ),
        ]
    )
    assert expression.evaluate(_facts(HARRY, TURNER))
    assert not expression.evaluate(_facts(TURNER))


def test_negated_membership_condition() -> None:
    expression = compile_condition(
        Condition(condition_type="has_tag", targets=("hp-angst",), is_negated=True)
    )
    assert expression.evaluate(_facts(HARRY))
    assert not expression.evaluate(_facts(HARRY, ANGST))


def test_count_conditions_compare_numeric_values() -> None:
    facts = _facts(HARRY, ANGST, TURNER)
    assert compile_condition(
        Condition(condition_type="tag_count", operator="greater_than", value=1)
    ).evaluate(facts)
    assert compile_condition(
        Condition(condition_type="item_count", operator="in", value=("2", "3"))
    ).evaluate(facts)
    assert compile_condition(
        Condition(condition_type="plot_block_depth", operator="equals", value=1)
    ).evaluate(facts)
    assert not compile_condition(
        Condition(condition_type="plot_block_count", operator="less_than", value=1)
    ).evaluate(facts)


def test_membership_threshold_counts_present_targets() -> None:
    expression = compile_condition(
        Condition(
            condition_type="has_tag",
            targets=("hp-harry", "hp-angst", "Hermione"),
            operator="greater_than",
            value=1,
        )
    )
    assert expression.evaluate(_facts(HARRY, ANGST))
    assert not expression.evaluate(_facts(HARRY))


def test_membership_threshold_without_value_raises() -> None:
    expression = MembershipTest(
        condition_type="has_tag", operator="greater_than", targets=("hp-harry",)
    )
    with pytest.raises(RuleEvaluationError, match="needs a threshold"):
        expression.evaluate(_facts(HARRY))


@pytest.mark.parametrize(
    "condition",
    [
        Condition(condition_type="time_travel_era", targets=("1977",)),
        Condition(condition_type="has_tag", targets=("hp-harry",), operator="matches"),
        Condition(condition_type="has_tag"),
        Condition(condition_type="tag_count", operator="contains", value=2),
        Condition(condition_type="item_count", operator="equals", value="many"),
    ],
)
def test_unevaluable_conditions_raise_on_evaluation(condition: Condition) -> None:
    expression = compile_condition(condition)
    assert isinstance(expression, Unevaluable)
    with pytest.raises(RuleEvaluationError):
        expression.evaluate(_facts(HARRY))


def test_unknown_logic_operator_makes_rule_unevaluable() -> None:
    expression = compile_conditions(
        [
            Condition(condition_type="has_tag", targets=("hp-harry",)),
            Condition(condition_type="has_tag", targets=("hp-angst",), logic_operator="XOR"),
        ]
    )
    assert isinstance(expression, Unevaluable)


def test_compile_rules_orders_active_rules_by_priority_then_id() -> None:
    condition = (Condition(condition_type="has_tag", targets=("hp-harry",)),)
    rules = [
        ValidationRule(rule_id="b", fandom_id="hp-1", name="B", priority=5, conditions=condition),
        ValidationRule(rule_id="a", fandom_id="hp-1", name="A", priority=5, conditions=condition),
        ValidationRule(rule_id="z", fandom_id="hp-1", name="Z", priority=1, conditions=condition),
        ValidationRule(
            rule_id="off",
            fandom_id="hp-1",
            name="Off",
            priority=0,
            is_active=False,
            conditions=condition,
        ),
    ]
    compiled = compile_rules(rules)
    assert [entry.rule.rule_id for entry in compiled] == ["z", "a", "b"]
    assert all(entry.is_evaluable for entry in compiled)
