"""Domain models and ports for pathway discovery."""

from pensieve_index.domain.models import (
    Action,
    Condition,
    Fandom,
    FandomTaxonomy,
    PathwayItem,
    PlotBlock,
    Story,
    StoryFilters,
    Tag,
    TagClass,
    TagClassRules,
    ValidationRule,
)
from pensieve_index.domain.ports import AnomalySink, RuleReader, StoryReader, TaxonomyReader

__all__ = [
    "Action",
    "AnomalySink",
    "Condition",
    "Fandom",
    "FandomTaxonomy",
    "PathwayItem",
    "PlotBlock",
    "RuleReader",
    "Story",
    "StoryFilters",
    "StoryReader",
    "Tag",
    "TagClass",
    "TagClassRules",
    "TaxonomyReader",
    "ValidationRule",
]
