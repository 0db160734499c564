"""Rule engine for matching automation rules against domain events.

Rules are indexed by trigger type once, then every incoming DomainEvent is
mapped to its trigger signatures and checked against the rules registered
for them. Evaluation is pure: it returns the matching rules and leaves
executing their actions to the caller.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from types import MappingProxyType
from typing import Any

import structlog

from taskpilot.application.filter_predicates import FilterContext, evaluate_filters
from taskpilot.core.domain.automation_rule import AutomationRule, TriggerType
from taskpilot.core.domain.domain_event import DomainEvent, DomainEventType
from taskpilot.core.domain.task import TaskSnapshot
from taskpilot.core.utils.time import utc_now

logger = structlog.get_logger(__name__)

MAX_CASCADE_DEPTH = 5

CascadeLimitCallback = Callable[[DomainEvent], Any]


@dataclass(frozen=True)
class IndexedRule:
    """A rule together with its position in the original rule list."""

    position: int
    rule: AutomationRule


@dataclass(frozen=True)
class RuleIndex:
    """Immutable lookup from trigger type to the active rules listening for it."""

    by_trigger: Mapping[TriggerType, tuple[IndexedRule, ...]]

    def rules_for(self, trigger_type: TriggerType) -> tuple[IndexedRule, ...]:
        return self.by_trigger.get(trigger_type, ())

    def __len__(self) -> int:
        return sum(len(rules) for rules in self.by_trigger.values())


def build_rule_index(rules: Iterable[AutomationRule]) -> RuleIndex:
    """Group enabled, non-broken rules by trigger type, keeping list order."""
    grouped: dict[TriggerType, list[IndexedRule]] = {}
    for position, rule in enumerate(rules):
        if not rule.is_active:
            continue
        grouped.setdefault(rule.trigger.trigger_type, []).append(
            IndexedRule(position=position, rule=rule)
        )
    return RuleIndex(
        by_trigger=MappingProxyType({key: tuple(value) for key, value in grouped.items()})
    )


def _changed(event: DomainEvent, name: str) -> bool:
    return name in event.changes and event.changes[name] != event.previous_values.get(name)


def event_signatures(event: DomainEvent) -> list[TriggerType]:
    """Return every trigger type an event answers to.

    The lifecycle type always comes first. ``task.updated`` events also
    produce the derived transitions their changes describe.
    """
    if event.event_type == DomainEventType.SCHEDULE_FIRED:
        return []

    signatures = [TriggerType(event.event_type.value)]
    if event.event_type != DomainEventType.TASK_UPDATED:
        return signatures

    if _changed(event, "section_id"):
        if event.changes["section_id"] is not None:
            signatures.append(TriggerType.CARD_MOVED_INTO_SECTION)
        if event.previous_values.get("section_id") is not None:
            signatures.append(TriggerType.CARD_MOVED_OUT_OF_SECTION)

    if _changed(event, "completed"):
        new_value = event.changes["completed"]
        old_value = event.previous_values.get("completed")
        if new_value is True and old_value is False:
            signatures.append(TriggerType.CARD_MARKED_COMPLETE)
        elif new_value is False and old_value is True:
            signatures.append(TriggerType.CARD_MARKED_INCOMPLETE)

    return signatures


def _in_rule_scope(rule: AutomationRule, event: DomainEvent) -> bool:
    return rule.project_id is None or rule.project_id == event.scope_id


def _matches_section(
    rule: AutomationRule,
    signature: TriggerType,
    event: DomainEvent,
    task: TaskSnapshot | None,
) -> bool:
    """Check the trigger's section scope for the signature it matched through."""
    section_id = rule.trigger.section_id
    if section_id is None:
        return True
    if signature == TriggerType.CARD_MOVED_INTO_SECTION:
        return event.changes.get("section_id") == section_id
    if signature == TriggerType.CARD_MOVED_OUT_OF_SECTION:
        return event.previous_values.get("section_id") == section_id
    if task is not None and task.knows("section_id"):
        return task.section_id == section_id
    return event.changes.get("section_id") == section_id


def _order(matched: list[IndexedRule]) -> list[AutomationRule]:
    """Insertion order, unless a matched rule declares a priority."""
    if any(item.rule.priority is not None for item in matched):
        matched = sorted(
            matched, key=lambda item: (-(item.rule.priority or 0), item.position)
        )
    else:
        matched = sorted(matched, key=lambda item: item.position)
    return [item.rule for item in matched]


def evaluate_rules(
    event: DomainEvent,
    index: RuleIndex,
    *,
    now: datetime | None = None,
    task: TaskSnapshot | None = None,
    tz: tzinfo = UTC,
    max_depth: int = MAX_CASCADE_DEPTH,
    on_cascade_limit: CascadeLimitCallback | None = None,
) -> list[AutomationRule]:
    """Return the rules that should act on ``event``.

    Args:
        event: The event to match.
        index: Rule index from :func:`build_rule_index`.
        now: Reference instant for date filters (defaults to the current time).
        task: Full snapshot of the affected task, when the caller has one.
        tz: Timezone for calendar-day filters.
        max_depth: Events at or beyond this cascade depth match nothing.
        on_cascade_limit: Called with the event when the depth guard trips.

    Returns:
        Matching rules, each at most once, in insertion order or by
        descending priority when any of them declares one.

    Raises:
        UnknownFilterError: If a candidate rule uses an unknown filter kind.
        ConfigError: If a candidate rule's filter parameters are invalid.
    """
    if event.depth >= max_depth:
        logger.warning(
            "rule_engine.cascade_limit_exceeded",
            event_id=event.event_id,
            event_type=event.event_type.value,
            entity_id=event.entity_id,
            depth=event.depth,
            max_depth=max_depth,
            triggered_by_rule=event.triggered_by_rule,
        )
        if on_cascade_limit is not None:
            on_cascade_limit(event)
        return []

    signatures = event_signatures(event)
    if not signatures:
        return []

    context = FilterContext.from_event(event, now or utc_now(), task, tz=tz)
    matched: list[IndexedRule] = []
    seen: set[str] = set()

    for signature in signatures:
        for item in index.rules_for(signature):
            rule = item.rule
            if rule.rule_id in seen:
                continue
            if not _in_rule_scope(rule, event):
                continue
            if not _matches_section(rule, signature, event, context.task):
                continue
            if not evaluate_filters(rule.filters, context):
                continue
            seen.add(rule.rule_id)
            matched.append(item)
            logger.debug(
                "rule_engine.rule_matched",
                rule_id=rule.rule_id,
                rule_name=rule.name,
                trigger_type=signature.value,
                event_id=event.event_id,
                entity_id=event.entity_id,
                depth=event.depth,
            )

    return _order(matched)


class RuleEngine:
    """Owns a rule index and evaluates events against it.

    Counters are kept for observability; hosts can read them to see how
    often the cascade guard trips.
    """

    def __init__(
        self,
        rules: Iterable[AutomationRule] = (),
        *,
        max_depth: int = MAX_CASCADE_DEPTH,
        tz: tzinfo = UTC,
        on_cascade_limit: CascadeLimitCallback | None = None,
    ) -> None:
        self._max_depth = max_depth
        self._tz = tz
        self._on_cascade_limit = on_cascade_limit
        self._index = build_rule_index(rules)
        self.events_evaluated = 0
        self.cascade_limit_hits = 0

    @property
    def index(self) -> RuleIndex:
        return self._index

    @property
    def max_depth(self) -> int:
        return self._max_depth

    def rebuild(self, rules: Iterable[AutomationRule]) -> None:
        """Replace the index after the rule set changed."""
        self._index = build_rule_index(rules)
        logger.info("rule_engine.index_rebuilt", rule_count=len(self._index))

    def _cascade_limit_reached(self, event: DomainEvent) -> None:
        self.cascade_limit_hits += 1
        if self._on_cascade_limit is not None:
            self._on_cascade_limit(event)

    def evaluate(
        self,
        event: DomainEvent,
        *,
        now: datetime | None = None,
        task: TaskSnapshot | None = None,
    ) -> list[AutomationRule]:
        """Evaluate one event against the current index."""
        self.events_evaluated += 1
        return evaluate_rules(
            event,
            self._index,
            now=now,
            task=task,
            tz=self._tz,
            max_depth=self._max_depth,
            on_cascade_limit=self._cascade_limit_reached,
        )
