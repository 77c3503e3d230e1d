"""Core discovery domain models: taxonomy, rules, pathways, and stories."""

from __future__ import annotations

from dataclasses import dataclass, field

ITEM_TYPE_TAG = "tag"
ITEM_TYPE_PLOT_BLOCK = "plot_block"


@dataclass(frozen=True)
class Fandom:
    """Scoping namespace for a fictional universe's taxonomy and rules."""

    fandom_id: str
    name: str
    description: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class Tag:
    """Fandom-scoped tag; `requires`/`enhances` are soft directional relations."""

    tag_id: str
    fandom_id: str
    name: str
    category: str = ""
    tag_class_id: str | None = None
    requires: tuple[str, ...] = ()
    enhances: tuple[str, ...] = ()
    description: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class MutualExclusion:
    within_class: bool = False
    conflicting_tags: tuple[str, ...] = ()
    conflicting_classes: tuple[str, ...] = ()


@dataclass(frozen=True)
class RequiredContext:
    required_tags: tuple[str, ...] = ()
    required_classes: tuple[str, ...] = ()


@dataclass(frozen=True)
class InstanceLimits:
    max_instances: int | None = None
    min_instances: int | None = None
    exact_instances: int | None = None


@dataclass(frozen=True)
class CategoryRestrictions:
    excluded_categories: tuple[str, ...] = ()
    applicable_categories: tuple[str, ...] = ()


@dataclass(frozen=True)
class TagClassRules:
    """Constraint bundle shared by every tag in a class."""

    mutual_exclusion: MutualExclusion | None = None
    required_context: RequiredContext | None = None
    instance_limits: InstanceLimits | None = None
    category_restrictions: CategoryRestrictions | None = None


@dataclass(frozen=True)
class TagClass:
    """Named grouping of tags sharing validation constraints."""

    tag_class_id: str
    fandom_id: str
    name: str
    description: str = ""
    rules: TagClassRules = field(default_factory=TagClassRules)


@dataclass(frozen=True)
class PlotBlock:
    """Hierarchical narrative-event descriptor; blocks form a forest per fandom."""

    plot_block_id: str
    fandom_id: str
    name: str
    parent_id: str | None = None
    requires: tuple[str, ...] = ()
    conflicts: tuple[str, ...] = ()
    category: str = ""
    description: str = ""
    is_active: bool = True


ConditionValue = str | int | float | bool | tuple[str, ...] | None


@dataclass(frozen=True)
class Condition:
    """One leaf of a rule's condition tree.

    `condition_type` and `operator` stay plain strings so rows written before a
    schema change can still be loaded; the expression compiler decides whether
    they are evaluable.
    """

    condition_type: str
    targets: tuple[str, ...] = ()
    operator: str = "contains"
    value: ConditionValue = None
    logic_operator: str = "AND"
    group_id: str | None = None
    is_negated: bool = False


@dataclass(frozen=True)
class Action:
    """Outcome executed in order when a rule's condition tree holds."""

    action_type: str
    severity: str = "error"
    message: str = ""
    target_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationRule:
    """Per-fandom rule with ordered conditions and actions."""

    rule_id: str
    fandom_id: str
    name: str
    rule_type: str = "custom"
    priority: int = 0
    is_active: bool = True
    conditions: tuple[Condition, ...] = ()
    actions: tuple[Action, ...] = ()
    description: str = ""


@dataclass(frozen=True)
class PathwayItem:
    """One client-supplied selection in an ordered pathway."""

    item_id: str
    item_type: str = ITEM_TYPE_TAG
    name: str = ""
    position: int = 0
    category: str | None = None
    description: str | None = None

    @property
    def is_plot_block(self) -> bool:
        return self.item_type == ITEM_TYPE_PLOT_BLOCK


@dataclass(frozen=True)
class Story:
    """Indexed story with its tag and plot-block associations."""

    story_id: str
    fandom_id: str
    title: str
    author: str = ""
    summary: str = ""
    url: str = ""
    word_count: int = 0
    status: str = "complete"
    rating: str = ""
    language: str = "en"
    updated_at_utc: str = ""
    is_active: bool = True
    tags: tuple[Tag, ...] = ()
    plot_blocks: tuple[PlotBlock, ...] = ()


@dataclass(frozen=True)
class StoryFilters:
    """Hard filters applied before relevance scoring."""

    min_word_count: int | None = None
    max_word_count: int | None = None
    statuses: tuple[str, ...] = ()
    ratings: tuple[str, ...] = ()
    languages: tuple[str, ...] = ()


@dataclass(frozen=True)
class FandomTaxonomy:
    """Read-only snapshot of one fandom's taxonomy used during a request."""

    fandom: Fandom
    tags: tuple[Tag, ...] = ()
    tag_classes: tuple[TagClass, ...] = ()
    plot_blocks: tuple[PlotBlock, ...] = ()
