"""Compile validation-rule conditions into boolean expression trees.

Conditions are grouped by ``group_id`` in order of first appearance. Inside a
group they fold left to right, each condition joining the running result with
its own ``logic_operator``; groups then combine with AND. A rule that holds an
unknown condition type or an operator that does not apply to its condition
type compiles to a single ``Unevaluable`` node, so callers can skip the rule
instead of guessing.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from pensieve_index.core.taxonomy import TaxonomyIndex, item_keys, name_key
from pensieve_index.domain.models import Condition, ConditionValue, PathwayItem, ValidationRule

MEMBERSHIP_CONDITION_TYPES = frozenset({"has_tag", "has_plot_block", "has_category"})
COUNT_CONDITION_TYPES = frozenset(
    {"tag_count", "plot_block_count", "item_count", "plot_block_depth"}
)
CONDITION_TYPES = MEMBERSHIP_CONDITION_TYPES | COUNT_CONDITION_TYPES
OPERATORS = frozenset(
    {"equals", "greater_than", "less_than", "contains", "not_contains", "in", "not_in"}
)
LOGIC_OPERATORS = frozenset({"AND", "OR"})


class RuleEvaluationError(RuntimeError):
    """Raised when a rule cannot be evaluated against any pathway."""


@dataclass(frozen=True)
class PathwayFacts:
    """Precomputed lookup sets for one pathway, shared by every rule."""

    tag_keys: frozenset[str]
    plot_block_keys: frozenset[str]
    category_keys: frozenset[str]
    tag_count: int
    plot_block_count: int
    item_count: int
    plot_block_depths: tuple[tuple[frozenset[str], int], ...] = ()

    @classmethod
    def from_items(
        cls,
        items: Sequence[PathwayItem],
        index: TaxonomyIndex | None = None,
    ) -> PathwayFacts:
        tag_keys: set[str] = set()
        plot_block_keys: set[str] = set()
        category_keys: set[str] = set()
        depths: list[tuple[frozenset[str], int]] = []
        tag_count = 0
        plot_block_count = 0
        for item in items:
            keys = item_keys(item)
            if item.category:
                category_keys.add(name_key(item.category))
            if item.is_plot_block:
                plot_block_count += 1
                block = index.resolve_plot_block(item) if index is not None else None
                depth = 0
                if block is not None and index is not None:
                    keys |= {block.plot_block_id, name_key(block.name)}
                    depth = index.plot_block_depth(block.plot_block_id)
                    if block.category:
                        category_keys.add(name_key(block.category))
                plot_block_keys |= keys
                depths.append((frozenset(keys), depth))
            else:
                tag_count += 1
                tag = index.resolve_tag(item) if index is not None else None
                if tag is not None:
                    keys |= {tag.tag_id, name_key(tag.name)}
                    if tag.category:
                        category_keys.add(name_key(tag.category))
                tag_keys |= keys
        return cls(
            tag_keys=frozenset(tag_keys),
            plot_block_keys=frozenset(plot_block_keys),
            category_keys=frozenset(category_keys),
            tag_count=tag_count,
            plot_block_count=plot_block_count,
            item_count=len(items),
            plot_block_depths=tuple(depths),
        )

    def keys_for(self, condition_type: str) -> frozenset[str]:
        if condition_type in {"has_tag", "tag_count"}:
            return self.tag_keys
        if condition_type in {"has_plot_block", "plot_block_count"}:
            return self.plot_block_keys
        if condition_type == "has_category":
            return self.category_keys
        return self.tag_keys | self.plot_block_keys

    def contains(self, condition_type: str, target: str) -> bool:
        keys = self.keys_for(condition_type)
        return target in keys or name_key(target) in keys

    def measure(self, condition_type: str, targets: tuple[str, ...]) -> int:
        if condition_type == "item_count":
            return self.item_count
        if condition_type == "plot_block_depth":
            relevant = [
                depth
                for keys, depth in self.plot_block_depths
                if not targets or any(t in keys or name_key(t) in keys for t in targets)
            ]
            return max(relevant, default=0)
        if not targets:
            return self.tag_count if condition_type == "tag_count" else self.plot_block_count
        return sum(1 for target in targets if self.contains(condition_type, target))


class Expression(Protocol):
    def evaluate(self, facts: PathwayFacts) -> bool:
        ...


@dataclass(frozen=True)
class Constant:
    value: bool

    def evaluate(self, facts: PathwayFacts) -> bool:
        return self.value


@dataclass(frozen=True)
class Unevaluable:
    reason: str

    def evaluate(self, facts: PathwayFacts) -> bool:
        raise RuleEvaluationError(self.reason)


@dataclass(frozen=True)
class Not:
    operand: Expression

    def evaluate(self, facts: PathwayFacts) -> bool:
        return not self.operand.evaluate(facts)


@dataclass(frozen=True)
class BinaryOp:
    operator: str
    left: Expression
    right: Expression

    def evaluate(self, facts: PathwayFacts) -> bool:
        if self.operator == "OR":
            return self.left.evaluate(facts) or self.right.evaluate(facts)
        return self.left.evaluate(facts) and self.right.evaluate(facts)


@dataclass(frozen=True)
class AllOf:
    operands: tuple[Expression, ...]

    def evaluate(self, facts: PathwayFacts) -> bool:
        return all(operand.evaluate(facts) for operand in self.operands)


@dataclass(frozen=True)
class MembershipTest:
    """Presence of tags, plot blocks, or categories in the pathway."""

    condition_type: str
    operator: str
    targets: tuple[str, ...]
    threshold: float | None = None
    expected: bool | None = None

    def evaluate(self, facts: PathwayFacts) -> bool:
        present = [target for target in self.targets if facts.contains(self.condition_type, target)]
        if self.operator in {"contains", "in"}:
            return bool(present)
        if self.operator in {"not_contains", "not_in"}:
            return not present
        if self.operator == "equals":
            if self.expected is not None:
                return bool(present) == self.expected
            return len(present) == len(self.targets)
        if self.threshold is None:
            raise RuleEvaluationError(f"{self.condition_type} {self.operator} needs a threshold")
        if self.operator == "greater_than":
            return len(present) > self.threshold
        return len(present) < self.threshold


@dataclass(frozen=True)
class CountTest:
    """Numeric comparison against a pathway measurement."""

    condition_type: str
    operator: str
    targets: tuple[str, ...]
    values: tuple[float, ...]

    def evaluate(self, facts: PathwayFacts) -> bool:
        measured = facts.measure(self.condition_type, self.targets)
        if self.operator == "in":
            return measured in self.values
        if self.operator == "not_in":
            return measured not in self.values
        threshold = self.values[0]
        if self.operator == "greater_than":
            return measured > threshold
        if self.operator == "less_than":
            return measured < threshold
        return measured == threshold


def _value_strings(value: ConditionValue) -> tuple[str, ...]:
    if value is None or isinstance(value, bool):
        return ()
    if isinstance(value, tuple):
        return tuple(str(entry).strip() for entry in value if str(entry).strip())
    text = str(value).strip()
    return (text,) if text else ()


def _value_numbers(value: ConditionValue) -> tuple[float, ...] | None:
    if value is None or isinstance(value, bool):
        return None
    raw = value if isinstance(value, tuple) else (value,)
    numbers: list[float] = []
    for entry in raw:
        try:
            numbers.append(float(entry))
        except (TypeError, ValueError):
            return None
    return tuple(numbers) or None


def compile_condition(condition: Condition) -> Expression:
    """Compile one condition into a leaf, or an Unevaluable node."""
    condition_type = condition.condition_type.strip().lower()
    operator = (condition.operator or "contains").strip().lower()
    if condition_type not in CONDITION_TYPES:
        return Unevaluable(f"unknown condition type {condition.condition_type!r}")
    if operator not in OPERATORS:
        return Unevaluable(f"unknown operator {condition.operator!r}")

    leaf: Expression
    if condition_type in MEMBERSHIP_CONDITION_TYPES:
        targets = condition.targets
        threshold: float | None = None
        expected: bool | None = None
        if operator in {"greater_than", "less_than"}:
            numbers = _value_numbers(condition.value)
            if numbers is None:
                return Unevaluable(f"{operator} on {condition_type} needs a numeric value")
            threshold = numbers[0]
        elif operator == "equals" and isinstance(condition.value, bool):
            expected = condition.value
        elif operator in {"in", "not_in"}:
            targets = targets + _value_strings(condition.value)
        elif not targets:
            targets = _value_strings(condition.value)
        if not targets:
            return Unevaluable(f"{condition_type} condition has no target")
        leaf = MembershipTest(
            condition_type=condition_type,
            operator=operator,
            targets=tuple(dict.fromkeys(targets)),
            threshold=threshold,
            expected=expected,
        )
    else:
        if operator in {"contains", "not_contains"}:
            return Unevaluable(f"{operator} does not apply to {condition_type}")
        values = _value_numbers(condition.value)
        if values is None:
            return Unevaluable(f"{condition_type} condition needs a numeric value")
        leaf = CountTest(
            condition_type=condition_type,
            operator=operator,
            targets=condition.targets,
            values=values,
        )
    return Not(leaf) if condition.is_negated else leaf


def compile_conditions(conditions: Sequence[Condition]) -> Expression:
    """Fold ordered conditions into one expression tree."""
    if not conditions:
        return Constant(False)
    groups: dict[str | None, list[Condition]] = {}
    for condition in conditions:
        groups.setdefault(condition.group_id, []).append(condition)

    compiled_groups: list[Expression] = []
    for members in groups.values():
        expression: Expression | None = None
        for condition in members:
            node = compile_condition(condition)
            if isinstance(node, Unevaluable):
                return node
            if expression is None:
                expression = node
                continue
            logic = (condition.logic_operator or "AND").strip().upper()
            if logic not in LOGIC_OPERATORS:
                return Unevaluable(f"unknown logic operator {condition.logic_operator!r}")
            expression = BinaryOp(operator=logic, left=expression, right=node)
        if expression is None:
            return Unevaluable("empty condition group")
        compiled_groups.append(expression)
    if len(compiled_groups) == 1:
        return compiled_groups[0]
    return AllOf(tuple(compiled_groups))


@dataclass(frozen=True)
class CompiledRule:
    rule: ValidationRule
    expression: Expression

    @property
    def is_evaluable(self) -> bool:
        return not isinstance(self.expression, Unevaluable)

    def matches(self, facts: PathwayFacts) -> bool:
        return self.expression.evaluate(facts)


def compile_rule(rule: ValidationRule) -> CompiledRule:
    return CompiledRule(rule=rule, expression=compile_conditions(rule.conditions))


def compile_rules(rules: Sequence[ValidationRule]) -> list[CompiledRule]:
    """Compile active rules in evaluation order: priority ascending, then id."""
    ordered = sorted(
        (rule for rule in rules if rule.is_active),
        key=lambda rule: (rule.priority, rule.rule_id),
    )
    return [compile_rule(rule) for rule in ordered]
