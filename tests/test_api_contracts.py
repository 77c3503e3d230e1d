from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from pensieve_index.api.contracts import (
    CountConditionPayload,
    InstanceLimitsPayload,
    MembershipConditionPayload,
    MessageActionPayload,
    PathwayValidateRequest,
    PlotBlockCreateRequest,
    SeedDocument,
    StoryCreateRequest,
    StorySearchFilters,
    TagCreateRequest,
    TargetedActionPayload,
    ValidationRuleCreateRequest,
    load_seed_json,
    save_seed_json,
    to_pathway_items,
)
from pensieve_index.domain.models import InstanceLimits

SEED_PATH = Path(__file__).parent / "fixtures" / "hp_seed.json"


def test_pathway_request_coerces_numeric_ids_and_fills_positions() -> None:
    request = PathwayValidateRequest.model_validate(
        {
            "fandomId": 7,
            "pathway": [
                {"id": 42, "name": " Harry Potter "},
                {"type": "plot_block", "name": "Time Travel", "position": 5},
            ],
        }
    )
    assert request.fandom_id == "7"
    items = to_pathway_items(request.pathway)
    assert [item.item_id for item in items] == ["42", "item_1"]
    assert [item.position for item in items] == [0, 5]
    assert items[0].name == "Harry Potter"
    assert items[1].is_plot_block


def test_pathway_request_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        PathwayValidateRequest.model_validate(
            {"fandomId": "hp-1", "pathway": [], "sortBy": "kudos"}
        )


def test_search_filters_accept_single_values_and_dedupe() -> None:
    filters = StorySearchFilters.model_validate(
        {"status": "complete", "rating": ["T", " T ", "M"], "language": None}
    )
    assert filters.status == ["complete"]
    assert filters.rating == ["T", "M"]
    assert filters.language == []
    domain = filters.to_domain()
    assert domain.statuses == ("complete",)
    assert domain.ratings == ("T", "M")


def test_search_filters_reject_inverted_word_count_range() -> None:
    with pytest.raises(ValidationError, match="minWordCount must not exceed maxWordCount"):
        StorySearchFilters.model_validate({"minWordCount": 10_000, "maxWordCount": 500})


def test_rule_payload_dispatches_condition_and_action_variants() -> None:
    rule = ValidationRuleCreateRequest.model_validate(
        {
            "fandomId": "hp-1",
            "name": "Short ensemble",
            "conditions": [
                {"type": "has_tag", "targets": ["Harry Potter", "Harry Potter"]},
                {"type": "item_count", "operator": "in", "value": [2, 3], "logicOperator": "OR"},
            ],
            "actions": [
                {"type": "suggest_tag", "severity": "error", "targetIds": ["hp-fluff"]},
                {"type": "show_message", "message": "Small casts read quickly."},
            ],
        }
    )
    membership, count = rule.conditions
    assert isinstance(membership, MembershipConditionPayload)
    assert membership.targets == ["Harry Potter"]
    assert isinstance(count, CountConditionPayload)
    assert count.to_domain().value == ("2", "3")
    assert count.to_domain().logic_operator == "OR"

    suggest, message = rule.actions
    assert isinstance(suggest, TargetedActionPayload)
    assert suggest.to_domain().severity == "info"
    assert isinstance(message, MessageActionPayload)
    assert message.to_domain().action_type == "show_message"


@pytest.mark.parametrize(
    "condition",
    [
        {"type": "wand_wood", "targets": ["holly"]},
        {"type": "has_tag"},
        {"type": "tag_count", "operator": "greater_than", "value": [1, 2]},
        {"type": "item_count", "operator": "in", "value": 3},
        {"type": "has_tag", "operator": "greater_than", "targets": ["Angst"], "value": "many"},
    ],
)
def test_rule_payload_rejects_malformed_conditions(condition: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        ValidationRuleCreateRequest.model_validate(
            {
                "fandomId": "hp-1",
                "name": "Broken",
                "conditions": [condition],
                "actions": [{"type": "show_message", "message": "Never shown."}],
            }
        )


def test_condition_payload_folds_single_target_into_targets() -> None:
    condition = MembershipConditionPayload.model_validate(
        {"type": "has_tag", "target": "Harry/Ginny", "targets": ["Harry/Ginny", "Angst"]}
    )
    assert condition.targets == ["Harry/Ginny", "Angst"]
    assert condition.to_domain().targets == ("Harry/Ginny", "Angst")


def test_rule_payload_requires_targets_for_suggestions() -> None:
    with pytest.raises(ValidationError, match="suggest_tag actions need targetIds"):
        TargetedActionPayload.model_validate({"type": "suggest_tag"})


def test_instance_limits_reject_conflicting_bounds() -> None:
    with pytest.raises(ValidationError, match="minInstances must not exceed maxInstances"):
        InstanceLimitsPayload.model_validate({"minInstances": 3, "maxInstances": 1})
    with pytest.raises(ValidationError, match="exactInstances cannot be combined"):
        InstanceLimitsPayload.model_validate({"exactInstances": 1, "maxInstances": 2})


def test_identifier_fields_are_validated() -> None:
    with pytest.raises(ValidationError, match="Tag id must match"):
        TagCreateRequest.model_validate({"fandomId": "hp-1", "id": "bad id!", "name": "Bad"})
    tag = TagCreateRequest.model_validate(
        {"fandomId": "hp-1", "id": "hp-harry", "name": "Harry", "requires": ["a", "a", " "]}
    )
    assert tag.requires == ["a"]


def test_plot_block_cannot_parent_itself() -> None:
    with pytest.raises(ValidationError, match="cannot be its own parent"):
        PlotBlockCreateRequest.model_validate(
            {"fandomId": "hp-1", "id": "loop", "name": "Loop", "parentId": "loop"}
        )


def test_story_updated_at_is_normalized_to_utc() -> None:
    story = StoryCreateRequest.model_validate(
        {"fandomId": "hp-1", "title": "Late", "updatedAt": "2024-03-01T14:00:00+02:00"}
    )
    assert story.updated_at_utc() == "2024-03-01T12:00:00+00:00"
    naive = StoryCreateRequest.model_validate(
        {"fandomId": "hp-1", "title": "Naive", "updatedAt": "2024-03-01T12:00:00"}
    )
    assert naive.updated_at_utc() == "2024-03-01T12:00:00+00:00"
    assert StoryCreateRequest(fandom_id="hp-1", title="Undated").updated_at_utc() is None


def test_seed_document_loads_fixture_and_roundtrips(tmp_path: Path) -> None:
    document = load_seed_json(SEED_PATH)
    assert [fandom.id for fandom in document.fandoms] == ["hp-1", "pj-1"]
    [house] = document.tag_classes
    assert house.validation_rules.to_domain().instance_limits == InstanceLimits(max_instances=1)
    assert len(document.tags) == 10
    assert len(document.stories) == 4

    path = tmp_path / "seed" / "copy.json"
    save_seed_json(path, document)
    assert "tagClasses" in path.read_text(encoding="utf-8")
    assert load_seed_json(path) == document


def test_seed_document_rejects_unknown_sections() -> None:
    with pytest.raises(ValidationError):
        SeedDocument.model_validate({"fandoms": [], "characters": []})
