"""Validate user pathways against fandom taxonomy constraints and rules."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from pensieve_index.core.rule_expressions import (
    CompiledRule,
    PathwayFacts,
    RuleEvaluationError,
    compile_rules,
)
from pensieve_index.core.taxonomy import TaxonomyIndex, item_keys, name_key
from pensieve_index.domain.models import (
    Action,
    FandomTaxonomy,
    PathwayItem,
    PlotBlock,
    Tag,
    ValidationRule,
)

MAX_PATHWAY_ITEMS = 50

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationIssue:
    """One error, warning, or suggestion produced by validation."""

    code: str
    message: str
    severity: str
    rule: str
    rule_id: str | None = None
    item_ids: tuple[str, ...] = ()
    fix: str | None = None


@dataclass(frozen=True)
class BlockedCombination:
    rule: str
    message: str
    item_ids: tuple[str, ...] = ()
    rule_id: str | None = None


@dataclass(frozen=True)
class SkippedRule:
    rule_id: str
    rule_name: str
    reason: str


@dataclass(frozen=True)
class SkippedAction:
    rule_id: str
    rule_name: str
    action_type: str


@dataclass(frozen=True)
class PathwayValidationResult:
    is_valid: bool
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    suggestions: tuple[ValidationIssue, ...] = ()
    blocked_combinations: tuple[BlockedCombination, ...] = ()
    rules_evaluated: int = 0
    rules_skipped: tuple[SkippedRule, ...] = ()


@dataclass
class _Buckets:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    suggestions: list[ValidationIssue] = field(default_factory=list)
    blocked: list[BlockedCombination] = field(default_factory=list)
    blocked_keys: set[tuple[object, ...]] = field(default_factory=set)

    def add(self, issue: ValidationIssue) -> None:
        if issue.severity == "error":
            self.errors.append(issue)
        elif issue.severity == "warning":
            self.warnings.append(issue)
        else:
            self.suggestions.append(issue)

    def block(
        self, combination: BlockedCombination, key: tuple[object, ...] | None = None
    ) -> bool:
        if key is None:
            key = (combination.rule, frozenset(combination.item_ids))
        if key in self.blocked_keys:
            return False
        self.blocked_keys.add(key)
        self.blocked.append(combination)
        return True


def _quoted(names: Sequence[str]) -> str:
    return ", ".join(f"'{name}'" for name in names)


class PathwayValidator:
    """Evaluate pathways for one fandom.

    Rules are compiled once at construction; `validate` is a pure function of
    the pathway, so repeated calls with the same input give the same result.
    """

    def __init__(
        self,
        *,
        taxonomy: FandomTaxonomy,
        rules: Sequence[ValidationRule] = (),
        on_rule_skipped: Callable[[SkippedRule], None] | None = None,
        on_action_skipped: Callable[[SkippedAction], None] | None = None,
        max_items: int = MAX_PATHWAY_ITEMS,
    ) -> None:
        self._index = TaxonomyIndex(taxonomy)
        fandom_id = taxonomy.fandom.fandom_id
        self._rules = compile_rules([rule for rule in rules if rule.fandom_id == fandom_id])
        self._on_rule_skipped = on_rule_skipped
        self._on_action_skipped = on_action_skipped
        self._max_items = max_items

    @property
    def fandom_id(self) -> str:
        return self._index.taxonomy.fandom.fandom_id

    def validate(
        self,
        pathway: Sequence[PathwayItem],
        *,
        user_id: str | None = None,
    ) -> PathwayValidationResult:
        buckets = _Buckets()
        self._check_structure(pathway, buckets)
        tags = self._resolved_tags(pathway)
        plot_blocks = self._resolved_plot_blocks(pathway)
        self._check_tag_classes(tags, buckets)
        self._check_tag_requirements(tags, buckets)
        self._check_plot_blocks(plot_blocks, buckets)
        evaluated, skipped = self._apply_rules(pathway, buckets)

        result = PathwayValidationResult(
            is_valid=not buckets.errors,
            errors=tuple(buckets.errors),
            warnings=tuple(buckets.warnings),
            suggestions=tuple(buckets.suggestions),
            blocked_combinations=tuple(buckets.blocked),
            rules_evaluated=evaluated,
            rules_skipped=tuple(skipped),
        )
        logger.debug(
            "pathway.validate fandom_id=%s user_id=%s items=%s errors=%s warnings=%s skipped=%s",
            self.fandom_id,
            user_id,
            len(pathway),
            len(result.errors),
            len(result.warnings),
            len(result.rules_skipped),
        )
        return result

    def _resolved_tags(self, pathway: Sequence[PathwayItem]) -> list[tuple[PathwayItem, Tag]]:
        resolved: list[tuple[PathwayItem, Tag]] = []
        seen: set[str] = set()
        for item in pathway:
            tag = self._index.resolve_tag(item)
            if tag is None or tag.tag_id in seen:
                continue
            seen.add(tag.tag_id)
            resolved.append((item, tag))
        return resolved

    def _resolved_plot_blocks(
        self, pathway: Sequence[PathwayItem]
    ) -> list[tuple[PathwayItem, PlotBlock]]:
        resolved: list[tuple[PathwayItem, PlotBlock]] = []
        seen: set[str] = set()
        for item in pathway:
            block = self._index.resolve_plot_block(item)
            if block is None or block.plot_block_id in seen:
                continue
            seen.add(block.plot_block_id)
            resolved.append((item, block))
        return resolved

    def _check_structure(self, pathway: Sequence[PathwayItem], buckets: _Buckets) -> None:
        seen: dict[tuple[str, str], PathwayItem] = {}
        for item in pathway:
            resolved_id: str | None = None
            tag = self._index.resolve_tag(item)
            block = self._index.resolve_plot_block(item)
            if tag is not None:
                resolved_id = tag.tag_id
            elif block is not None:
                resolved_id = block.plot_block_id
            key = (item.item_type, resolved_id or item.item_id)
            first = seen.get(key)
            if first is None:
                seen[key] = item
                continue
            buckets.add(
                ValidationIssue(
                    code="duplicate_item",
                    message=f"'{item.name or item.item_id}' appears more than once in the pathway.",
                    severity="warning",
                    rule="duplicate_item",
                    item_ids=(first.item_id, item.item_id),
                    fix=f"Remove the repeated '{item.name or item.item_id}'.",
                )
            )
        if len(pathway) > self._max_items:
            buckets.add(
                ValidationIssue(
                    code="pathway_too_long",
                    message=(
                        f"Pathway has {len(pathway)} items; more than {self._max_items} "
                        "makes searches too narrow to be useful."
                    ),
                    severity="warning",
                    rule="pathway_length",
                )
            )

    def _check_tag_classes(
        self, tags: list[tuple[PathwayItem, Tag]], buckets: _Buckets
    ) -> None:
        present_tag_ids = {tag.tag_id for _, tag in tags}
        by_class: dict[str, list[tuple[PathwayItem, Tag]]] = {}
        for item, tag in tags:
            if tag.tag_class_id and tag.tag_class_id in self._index.tag_classes_by_id:
                by_class.setdefault(tag.tag_class_id, []).append((item, tag))

        for tag_class_id, members in by_class.items():
            tag_class = self._index.tag_classes_by_id[tag_class_id]
            rules = tag_class.rules
            names = [tag.name for _, tag in members]
            item_ids = tuple(item.item_id for item, _ in members)

            exclusion = rules.mutual_exclusion
            if exclusion is not None:
                if exclusion.within_class and len(members) > 1:
                    message = f"Only one '{tag_class.name}' tag can be selected: {_quoted(names)}."
                    self._blocking_error(
                        buckets,
                        rule="mutual_exclusion",
                        message=message,
                        item_ids=item_ids,
                        fix=f"Keep one of {_quoted(names)}.",
                    )
                for item, tag in members:
                    for reference in exclusion.conflicting_tags:
                        conflict = self._index.find_tag(reference)
                        if conflict is None or conflict.tag_id == tag.tag_id:
                            continue
                        if conflict.tag_id not in present_tag_ids:
                            continue
                        other = next(i for i, t in tags if t.tag_id == conflict.tag_id)
                        self._blocking_error(
                            buckets,
                            rule="mutual_exclusion",
                            message=f"'{tag.name}' conflicts with '{conflict.name}'.",
                            item_ids=tuple(sorted({item.item_id, other.item_id})),
                            fix=f"Remove '{tag.name}' or '{conflict.name}'.",
                        )
                for reference in exclusion.conflicting_classes:
                    other_class = self._index.find_tag_class(reference)
                    if other_class is None or other_class.tag_class_id not in by_class:
                        continue
                    if other_class.tag_class_id == tag_class_id:
                        continue
                    others = by_class[other_class.tag_class_id]
                    self._blocking_error(
                        buckets,
                        rule="mutual_exclusion",
                        message=(
                            f"'{tag_class.name}' tags cannot be combined with "
                            f"'{other_class.name}' tags."
                        ),
                        item_ids=tuple(
                            sorted(set(item_ids) | {item.item_id for item, _ in others})
                        ),
                        fix=f"Remove the '{tag_class.name}' or '{other_class.name}' tags.",
                    )

            limits = rules.instance_limits
            if limits is not None:
                count = len(members)
                if limits.max_instances is not None and count > limits.max_instances:
                    buckets.add(
                        ValidationIssue(
                            code="instance_limits",
                            message=(
                                f"At most {limits.max_instances} '{tag_class.name}' tags allowed; "
                                f"found {count}."
                            ),
                            severity="error",
                            rule="instance_limits",
                            item_ids=item_ids,
                        )
                    )
                if limits.min_instances is not None and count < limits.min_instances:
                    buckets.add(
                        ValidationIssue(
                            code="instance_limits",
                            message=(
                                f"At least {limits.min_instances} '{tag_class.name}' tags "
                                f"required; found {count}."
                            ),
                            severity="error",
                            rule="instance_limits",
                            item_ids=item_ids,
                        )
                    )
                if limits.exact_instances is not None and count != limits.exact_instances:
                    buckets.add(
                        ValidationIssue(
                            code="instance_limits",
                            message=(
                                f"Exactly {limits.exact_instances} '{tag_class.name}' tags "
                                f"required; found {count}."
                            ),
                            severity="error",
                            rule="instance_limits",
                            item_ids=item_ids,
                        )
                    )

            context = rules.required_context
            if context is not None:
                for reference in context.required_tags:
                    required = self._index.find_tag(reference)
                    if required is not None and required.tag_id in present_tag_ids:
                        continue
                    required_name = required.name if required is not None else reference
                    buckets.add(
                        ValidationIssue(
                            code="required_context",
                            message=f"'{tag_class.name}' tags require '{required_name}'.",
                            severity="error",
                            rule="required_context",
                            item_ids=item_ids,
                            fix=f"Add '{required_name}'.",
                        )
                    )
                for reference in context.required_classes:
                    required_class = self._index.find_tag_class(reference)
                    if required_class is not None and required_class.tag_class_id in by_class:
                        continue
                    class_name = required_class.name if required_class is not None else reference
                    buckets.add(
                        ValidationIssue(
                            code="required_context",
                            message=f"'{tag_class.name}' tags require a '{class_name}' tag.",
                            severity="error",
                            rule="required_context",
                            item_ids=item_ids,
                            fix=f"Add a '{class_name}' tag.",
                        )
                    )

            restrictions = rules.category_restrictions
            if restrictions is not None:
                excluded = {name_key(category) for category in restrictions.excluded_categories}
                applicable = {
                    name_key(category) for category in restrictions.applicable_categories
                }
                for item, tag in members:
                    category = name_key(tag.category)
                    if category in excluded or (applicable and category not in applicable):
                        buckets.add(
                            ValidationIssue(
                                code="category_restrictions",
                                message=(
                                    f"'{tag.name}' ({tag.category or 'uncategorized'}) is not "
                                    f"allowed in '{tag_class.name}'."
                                ),
                                severity="error",
                                rule="category_restrictions",
                                item_ids=(item.item_id,),
                            )
                        )

    def _check_tag_requirements(
        self, tags: list[tuple[PathwayItem, Tag]], buckets: _Buckets
    ) -> None:
        present = {tag.tag_id for _, tag in tags}
        for item, tag in tags:
            for reference in tag.requires:
                required = self._index.find_tag(reference)
                if required is None or required.tag_id in present:
                    continue
                buckets.suggestions.append(
                    ValidationIssue(
                        code="tag_requires",
                        message=f"'{tag.name}' usually goes with '{required.name}'.",
                        severity="info",
                        rule="tag_requires",
                        item_ids=(item.item_id,),
                        fix=f"Add '{required.name}'.",
                    )
                )

    def _check_plot_blocks(
        self, plot_blocks: list[tuple[PathwayItem, PlotBlock]], buckets: _Buckets
    ) -> None:
        present = {block.plot_block_id for _, block in plot_blocks}
        items_by_block = {block.plot_block_id: item for item, block in plot_blocks}
        for item, block in plot_blocks:
            for required in self._index.prerequisite_chain(block.plot_block_id):
                if required.plot_block_id in present:
                    continue
                buckets.add(
                    ValidationIssue(
                        code="plot_block_requires",
                        message=f"'{block.name}' depends on '{required.name}'.",
                        severity="warning",
                        rule="plot_block_requires",
                        item_ids=(item.item_id,),
                        fix=f"Add '{required.name}' before '{block.name}'.",
                    )
                )
            for reference in block.conflicts:
                conflict = self._index.find_plot_block(reference)
                if conflict is None or conflict.plot_block_id not in present:
                    continue
                if conflict.plot_block_id == block.plot_block_id:
                    continue
                pair = tuple(sorted({item.item_id, items_by_block[conflict.plot_block_id].item_id}))
                self._blocking_error(
                    buckets,
                    rule="plot_block_conflicts",
                    message=f"'{block.name}' conflicts with '{conflict.name}'.",
                    item_ids=pair,
                    fix=f"Remove '{block.name}' or '{conflict.name}'.",
                )

    def _blocking_error(
        self,
        buckets: _Buckets,
        *,
        rule: str,
        message: str,
        item_ids: tuple[str, ...],
        fix: str | None = None,
        severity: str = "error",
        rule_id: str | None = None,
        code: str | None = None,
        key: tuple[object, ...] | None = None,
    ) -> None:
        combination = BlockedCombination(
            rule=rule, message=message, item_ids=item_ids, rule_id=rule_id
        )
        if not buckets.block(combination, key):
            return
        buckets.add(
            ValidationIssue(
                code=code or rule,
                message=message,
                severity=severity,
                rule=rule,
                rule_id=rule_id,
                item_ids=item_ids,
                fix=fix,
            )
        )

    def _apply_rules(
        self, pathway: Sequence[PathwayItem], buckets: _Buckets
    ) -> tuple[int, list[SkippedRule]]:
        facts = PathwayFacts.from_items(pathway, self._index)
        evaluated = 0
        skipped: list[SkippedRule] = []
        for compiled in self._rules:
            rule = compiled.rule
            try:
                matched = compiled.matches(facts)
            except RuleEvaluationError as exc:
                skip = SkippedRule(rule_id=rule.rule_id, rule_name=rule.name, reason=str(exc))
                skipped.append(skip)
                logger.warning(
                    "rule.skipped fandom_id=%s rule_id=%s reason=%s",
                    rule.fandom_id,
                    rule.rule_id,
                    exc,
                )
                if self._on_rule_skipped is not None:
                    self._on_rule_skipped(skip)
                continue
            evaluated += 1
            if not matched:
                continue
            for index, action in enumerate(rule.actions):
                self._run_action(compiled, index, action, pathway, facts, buckets)
        return evaluated, skipped

    def _run_action(
        self,
        compiled: CompiledRule,
        index: int,
        action: Action,
        pathway: Sequence[PathwayItem],
        facts: PathwayFacts,
        buckets: _Buckets,
    ) -> None:
        rule = compiled.rule
        action_type = action.action_type.strip().lower()
        targets = action.target_ids
        severity = action.severity if action.severity in {"error", "warning", "info"} else "error"

        if action_type in {"require_tag", "require_plot_block"}:
            condition_type = "has_tag" if action_type == "require_tag" else "has_plot_block"
            if targets and any(facts.contains(condition_type, target) for target in targets):
                return
            message = action.message or f"{rule.name}: requires {_quoted(self._names(targets))}."
            buckets.add(
                ValidationIssue(
                    code=rule.rule_type,
                    message=message,
                    severity=severity,
                    rule=rule.name,
                    rule_id=rule.rule_id,
                    item_ids=self._matching_items(pathway, self._condition_targets(rule)),
                    fix=f"Add {_quoted(self._names(targets))}." if targets else None,
                )
            )
        elif action_type == "forbid_tag":
            present = [
                target
                for target in targets
                if facts.contains("has_tag", target) or facts.contains("has_plot_block", target)
            ]
            if targets and not present:
                return
            involved = self._matching_items(
                pathway, self._condition_targets(rule) + tuple(present)
            )
            message = action.message or f"{rule.name}: this combination is not allowed."
            self._blocking_error(
                buckets,
                rule=rule.name,
                message=message,
                item_ids=involved,
                severity=severity,
                rule_id=rule.rule_id,
                code=rule.rule_type,
                fix=f"Remove {_quoted(self._names(tuple(present)))}." if present else None,
                key=(rule.rule_id, index),
            )
        elif action_type == "suggest_tag":
            missing = [target for target in targets if not facts.contains("has_tag", target)]
            if targets and not missing:
                return
            message = action.message or f"Consider adding {_quoted(self._names(tuple(missing)))}."
            buckets.suggestions.append(
                ValidationIssue(
                    code=rule.rule_type,
                    message=message,
                    severity="info",
                    rule=rule.name,
                    rule_id=rule.rule_id,
                    fix=f"Add {_quoted(self._names(tuple(missing)))}." if missing else None,
                )
            )
        elif action_type == "show_message":
            buckets.add(
                ValidationIssue(
                    code=rule.rule_type,
                    message=action.message or rule.description or rule.name,
                    severity=severity,
                    rule=rule.name,
                    rule_id=rule.rule_id,
                    item_ids=self._matching_items(pathway, self._condition_targets(rule)),
                )
            )
        else:
            logger.warning(
                "rule.action_skipped fandom_id=%s rule_id=%s action_type=%s",
                rule.fandom_id,
                rule.rule_id,
                action.action_type,
            )
            if self._on_action_skipped is not None:
                self._on_action_skipped(
                    SkippedAction(
                        rule_id=rule.rule_id,
                        rule_name=rule.name,
                        action_type=action.action_type,
                    )
                )

    def _names(self, references: tuple[str, ...]) -> list[str]:
        names: list[str] = []
        for reference in references:
            tag = self._index.find_tag(reference)
            block = self._index.find_plot_block(reference) if tag is None else None
            if tag is not None:
                names.append(tag.name)
            elif block is not None:
                names.append(block.name)
            else:
                names.append(reference)
        return names

    @staticmethod
    def _condition_targets(rule: ValidationRule) -> tuple[str, ...]:
        targets: list[str] = []
        for condition in rule.conditions:
            targets.extend(condition.targets)
            if isinstance(condition.value, str) and condition.condition_type.startswith("has_"):
                targets.append(condition.value)
            elif isinstance(condition.value, tuple):
                targets.extend(condition.value)
        return tuple(targets)

    def _matching_items(
        self, pathway: Sequence[PathwayItem], references: tuple[str, ...]
    ) -> tuple[str, ...]:
        wanted: set[str] = set()
        for reference in references:
            wanted |= {reference, name_key(reference)}
            tag = self._index.find_tag(reference)
            if tag is not None:
                wanted |= {tag.tag_id, name_key(tag.name)}
            block = self._index.find_plot_block(reference)
            if block is not None:
                wanted |= {block.plot_block_id, name_key(block.name)}
        return tuple(
            dict.fromkeys(item.item_id for item in pathway if item_keys(item) & wanted)
        )


def validate_pathway(
    pathway: Sequence[PathwayItem],
    *,
    taxonomy: FandomTaxonomy,
    rules: Sequence[ValidationRule] = (),
    user_id: str | None = None,
) -> PathwayValidationResult:
    """One-shot validation helper for callers that do not reuse a validator."""
    return PathwayValidator(taxonomy=taxonomy, rules=rules).validate(pathway, user_id=user_id)
