from __future__ import annotations

import logging

import pytest

from pensieve_index.core.pathway_validation import (
    PathwayValidator,
    SkippedAction,
    SkippedRule,
    validate_pathway,
)
from pensieve_index.domain.models import (
    Action,
    CategoryRestrictions,
    Condition,
    Fandom,
    FandomTaxonomy,
    InstanceLimits,
    MutualExclusion,
    PathwayItem,
    PlotBlock,
    RequiredContext,
    Tag,
    TagClass,
    TagClassRules,
    ValidationRule,
)

FANDOM = Fandom(fandom_id="hp-1", name="Harry Potter")


def _tag(
    tag_id: str,
    name: str,
    category: str,
    *,
    tag_class_id: str | None = None,
    requires: tuple[str, ...] = (),
) -> Tag:
    return Tag(
        tag_id=tag_id,
        fandom_id="hp-1",
        name=name,
        category=category,
        tag_class_id=tag_class_id,
        requires=requires,
    )


def _taxonomy(*tag_classes: TagClass) -> FandomTaxonomy:
    return FandomTaxonomy(
        fandom=FANDOM,
        tags=(
            _tag("hp-harry", "Harry Potter", "character"),
            _tag("hp-hermione", "Hermione Granger", "character"),
            _tag("hp-ginny", "Ginny Weasley", "character"),
            _tag("hp-harry-ginny", "Harry/Ginny", "ship", requires=("hp-ginny",)),
            _tag("hp-harry-hermione", "Harry/Hermione", "ship"),
            _tag("hp-gryffindor", "Gryffindor", "house", tag_class_id="hp-house"),
            _tag("hp-slytherin", "Slytherin", "house", tag_class_id="hp-house"),
            _tag("hp-auror", "Auror", "career", tag_class_id="hp-house"),
            _tag("hp-angst", "Angst", "genre"),
        ),
        tag_classes=tag_classes,
        plot_blocks=(
            PlotBlock(plot_block_id="hp-time-travel", fandom_id="hp-1", name="Time Travel"),
            PlotBlock(
                plot_block_id="hp-time-turner",
                fandom_id="hp-1",
                name="Time-Turner Accident",
                parent_id="hp-time-travel",
            ),
            PlotBlock(plot_block_id="hp-horcrux", fandom_id="hp-1", name="Horcrux Hunt"),
            PlotBlock(
                plot_block_id="hp-post-war",
                fandom_id="hp-1",
                name="Post-War Reconstruction",
                requires=("hp-horcrux",),
                conflicts=("hp-time-turner",),
            ),
        ),
    )


def _house_class(rules: TagClassRules) -> TagClass:
    return TagClass(tag_class_id="hp-house", fandom_id="hp-1", name="Hogwarts House", rules=rules)


def _ship_conflict_rule() -> ValidationRule:
    return ValidationRule(
        rule_id="hp-rule-ship-conflict",
        fandom_id="hp-1",
        name="Harry has one canon romance",
        rule_type="exclusivity",
        conditions=(
            Condition(condition_type="has_tag", targets=("Harry/Ginny",)),
            Condition(condition_type="has_tag", targets=("Harry/Hermione",)),
        ),
        actions=(Action(action_type="forbid_tag", severity="error"),),
    )


def _item(item_id: str, position: int, item_type: str = "tag", name: str = "") -> PathwayItem:
    return PathwayItem(item_id=item_id, item_type=item_type, name=name, position=position)


def test_conflicting_ships_produce_one_error_and_one_blocked_combination() -> None:
    pathway = [
        _item("client-a", 0, name="Harry/Ginny"),
        _item("client-b", 1, name="Harry/Hermione"),
    ]
    result = validate_pathway(pathway, taxonomy=_taxonomy(), rules=[_ship_conflict_rule()])

    assert result.is_valid is False
    assert len(result.errors) == 1
    assert result.errors[0].code == "exclusivity"
    assert result.errors[0].rule_id == "hp-rule-ship-conflict"
    assert len(result.blocked_combinations) == 1
    assert result.blocked_combinations[0].item_ids == ("client-a", "client-b")
    assert result.rules_evaluated == 1
    assert [issue.code for issue in result.suggestions] == ["tag_requires"]


def test_single_ship_is_valid() -> None:
    result = validate_pathway(
        [_item("hp-harry-ginny", 0), _item("hp-ginny", 1)],
        taxonomy=_taxonomy(),
        rules=[_ship_conflict_rule()],
    )
    assert result.is_valid is True
    assert result.errors == ()
    assert result.blocked_combinations == ()
    assert result.suggestions == ()


def test_validation_is_idempotent() -> None:
    validator = PathwayValidator(taxonomy=_taxonomy(), rules=[_ship_conflict_rule()])
    pathway = [_item("hp-harry-ginny", 0), _item("hp-harry-hermione", 1)]
    assert validator.validate(pathway) == validator.validate(pathway)


def test_within_class_exclusion_and_instance_limits() -> None:
    house = _house_class(
        TagClassRules(
            mutual_exclusion=MutualExclusion(within_class=True),
            instance_limits=InstanceLimits(max_instances=1),
        )
    )
    result = validate_pathway(
        [_item("hp-gryffindor", 0), _item("hp-slytherin", 1)],
        taxonomy=_taxonomy(house),
    )
    assert result.is_valid is False
    assert [issue.code for issue in result.errors] == ["mutual_exclusion", "instance_limits"]
    assert len(result.blocked_combinations) == 1
    assert result.blocked_combinations[0].rule == "mutual_exclusion"


def test_conflicting_tags_block_once_per_pair() -> None:
    house = _house_class(
        TagClassRules(mutual_exclusion=MutualExclusion(conflicting_tags=("Slytherin",)))
    )
    result = validate_pathway(
        [_item("hp-gryffindor", 0), _item("hp-slytherin", 1)],
        taxonomy=_taxonomy(house),
    )
    assert len(result.errors) == 1
    assert result.blocked_combinations[0].item_ids == ("hp-gryffindor", "hp-slytherin")


def test_min_and_exact_instance_limits() -> None:
    minimum = _house_class(TagClassRules(instance_limits=InstanceLimits(min_instances=2)))
    result = validate_pathway([_item("hp-gryffindor", 0)], taxonomy=_taxonomy(minimum))
    assert [issue.code for issue in result.errors] == ["instance_limits"]

    exact = _house_class(TagClassRules(instance_limits=InstanceLimits(exact_instances=1)))
    result = validate_pathway([_item("hp-gryffindor", 0)], taxonomy=_taxonomy(exact))
    assert result.is_valid is True


def test_required_context_needs_tag_and_class() -> None:
    house = _house_class(
        TagClassRules(
            required_context=RequiredContext(
                required_tags=("Harry Potter",),
                required_classes=("Blood Status",),
            )
        )
    )
    result = validate_pathway([_item("hp-gryffindor", 0)], taxonomy=_taxonomy(house))
    assert [issue.code for issue in result.errors] == ["required_context", "required_context"]
    assert result.errors[0].fix == "Add 'Harry Potter'."

    satisfied = validate_pathway(
        [_item("hp-gryffindor", 0), _item("hp-harry", 1)],
        taxonomy=_taxonomy(
            _house_class(
                TagClassRules(required_context=RequiredContext(required_tags=("hp-harry",)))
            )
        ),
    )
    assert satisfied.is_valid is True


def test_category_restrictions_reject_out_of_scope_tags() -> None:
    house = _house_class(
        TagClassRules(
            category_restrictions=CategoryRestrictions(applicable_categories=("house",))
        )
    )
    result = validate_pathway(
        [_item("hp-gryffindor", 0), _item("hp-auror", 1)],
        taxonomy=_taxonomy(house),
    )
    assert [issue.item_ids for issue in result.errors] == [("hp-auror",)]
    assert result.errors[0].code == "category_restrictions"


def test_plot_block_prerequisites_warn_and_conflicts_block() -> None:
    result = validate_pathway(
        [
            _item("hp-post-war", 0, item_type="plot_block"),
            _item("hp-time-turner", 1, item_type="plot_block"),
        ],
        taxonomy=_taxonomy(),
    )
    assert [issue.code for issue in result.warnings] == ["plot_block_requires"]
    assert "Horcrux Hunt" in result.warnings[0].message
    assert [issue.code for issue in result.errors] == ["plot_block_conflicts"]
    assert result.blocked_combinations[0].item_ids == ("hp-post-war", "hp-time-turner")


def test_duplicates_and_long_pathways_are_warnings() -> None:
    validator = PathwayValidator(taxonomy=_taxonomy(), max_items=2)
    result = validator.validate(
        [_item("hp-harry", 0), _item("client-x", 1, name="harry potter"), _item("hp-angst", 2)]
    )
    assert result.is_valid is True
    assert [issue.code for issue in result.warnings] == ["duplicate_item", "pathway_too_long"]
    assert result.warnings[0].item_ids == ("hp-harry", "client-x")


def test_unevaluable_rule_is_skipped_and_reported() -> None:
    skipped: list[SkippedRule] = []
    broken = ValidationRule(
        rule_id="hp-rule-broken",
        fandom_id="hp-1",
        name="Broken",
        conditions=(Condition(condition_type="wand_wood", targets=("holly",)),),
        actions=(Action(action_type="show_message", message="never"),),
    )
    validator = PathwayValidator(
        taxonomy=_taxonomy(),
        rules=[broken, _ship_conflict_rule()],
        on_rule_skipped=skipped.append,
    )
    result = validator.validate([_item("hp-harry", 0)])
    assert result.is_valid is True
    assert result.rules_evaluated == 1
    assert [entry.rule_id for entry in result.rules_skipped] == ["hp-rule-broken"]
    assert skipped == list(result.rules_skipped)
    assert "wand_wood" in skipped[0].reason


def test_rule_actions_route_by_type_and_severity(caplog: pytest.LogCaptureFixture) -> None:
    harry_present = (Condition(condition_type="has_tag", targets=("hp-harry",)),)
    rules = [
        ValidationRule(
            rule_id="r1",
            fandom_id="hp-1",
            name="Harry needs a genre",
            rule_type="conditional_requirement",
            conditions=harry_present,
            actions=(
                Action(action_type="require_tag", severity="warning", target_ids=("hp-angst",)),
                Action(action_type="suggest_tag", target_ids=("hp-hermione",)),
                Action(action_type="show_message", severity="info", message="Classic pick."),
                Action(action_type="teleport"),
            ),
        ),
        ValidationRule(
            rule_id="r2",
            fandom_id="other-fandom",
            name="Ignored",
            conditions=harry_present,
            actions=(Action(action_type="show_message", severity="error", message="no"),),
        ),
    ]
    with caplog.at_level(logging.WARNING, logger="pensieve_index.core.pathway_validation"):
        result = validate_pathway([_item("hp-harry", 0)], taxonomy=_taxonomy(), rules=rules)

    assert result.is_valid is True
    assert result.rules_evaluated == 1
    assert [issue.code for issue in result.warnings] == ["conditional_requirement"]
    assert result.warnings[0].fix == "Add 'Angst'."
    assert [issue.message for issue in result.suggestions] == [
        "Consider adding 'Hermione Granger'.",
        "Classic pick.",
    ]
    assert "rule.action_skipped" in caplog.text


def test_forbid_tag_with_targets_fires_only_when_target_present() -> None:
    rule = ValidationRule(
        rule_id="r-forbid",
        fandom_id="hp-1",
        name="No angst with time travel",
        conditions=(Condition(condition_type="has_plot_block", targets=("Time Travel",)),),
        actions=(Action(action_type="forbid_tag", target_ids=("hp-angst",)),),
    )
    calm = validate_pathway(
        [_item("hp-time-travel", 0, item_type="plot_block")],
        taxonomy=_taxonomy(),
        rules=[rule],
    )
    assert calm.is_valid is True

    result = validate_pathway(
        [_item("hp-time-travel", 0, item_type="plot_block"), _item("hp-angst", 1)],
        taxonomy=_taxonomy(),
        rules=[rule],
    )
    assert result.is_valid is False
    assert result.blocked_combinations[0].item_ids == ("hp-time-travel", "hp-angst")
    assert result.errors[0].fix == "Remove 'Angst'."


def test_empty_pathway_is_valid_even_with_active_rules() -> None:
    result = validate_pathway([], taxonomy=_taxonomy(), rules=[_ship_conflict_rule()])
    assert result.is_valid is True
    assert result.errors == ()
    assert result.blocked_combinations == ()
    assert result.rules_evaluated == 1


def test_every_forbid_action_reports_its_own_error() -> None:
    both_ships = (
        Condition(condition_type="has_tag", targets=("Harry/Ginny",)),
        Condition(condition_type="has_tag", targets=("Harry/Hermione",)),
    )
    rule = ValidationRule(
        rule_id="r-double",
        fandom_id="hp-1",
        name="Double trouble",
        conditions=both_ships,
        actions=(
            Action(action_type="forbid_tag", message="first"),
            Action(action_type="forbid_tag", message="second"),
        ),
    )
    pathway = [_item("hp-harry-ginny", 0), _item("hp-harry-hermione", 1)]
    result = validate_pathway(pathway, taxonomy=_taxonomy(), rules=[rule])
    assert [issue.message for issue in result.errors] == ["first", "second"]
    assert len(result.blocked_combinations) == 2

    twins = [
        ValidationRule(
            rule_id=rule_id,
            fandom_id="hp-1",
            name="Tone",
            conditions=both_ships,
            actions=(Action(action_type="forbid_tag", message=f"from {rule_id}"),),
        )
        for rule_id in ("r1", "r2")
    ]
    result = validate_pathway(pathway, taxonomy=_taxonomy(), rules=twins)
    assert [(issue.rule_id, issue.message) for issue in result.errors] == [
        ("r1", "from r1"),
        ("r2", "from r2"),
    ]


def test_unknown_action_type_is_reported_through_callback() -> None:
    skipped: list[SkippedAction] = []
    rule = ValidationRule(
        rule_id="r-highlight",
        fandom_id="hp-1",
        name="Highlight Harry",
        conditions=(Condition(condition_type="has_tag", targets=("hp-harry",)),),
        actions=(Action(action_type="highlight_tag"),),
    )
    validator = PathwayValidator(
        taxonomy=_taxonomy(), rules=[rule], on_action_skipped=skipped.append
    )
    result = validator.validate([_item("hp-harry", 0)])
    assert result.is_valid is True
    assert result.rules_skipped == ()
    assert skipped == [
        SkippedAction(
            rule_id="r-highlight",
            rule_name="Highlight Harry",
            action_type="highlight_tag",
        )
    ]
