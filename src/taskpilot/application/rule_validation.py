"""Validation of automation rules before they are saved or enabled."""

from __future__ import annotations

from taskpilot.application.filter_predicates import FILTER_PREDICATE_MAP
from taskpilot.core.domain.automation_rule import (
    SECTION_SCOPED_TRIGGERS,
    AutomationRule,
    EventTrigger,
    ScheduleTrigger,
    Trigger,
)
from taskpilot.core.domain.errors import RuleValidationError, ScheduleConfigError
from taskpilot.core.domain.schedule import MIN_INTERVAL_MINUTES, OneTimeSchedule, validate_schedule
from taskpilot.core.utils.time import parse_iso_ms


def validate_one_time_re_enable(trigger: Trigger, enabled: bool, now_ms: int) -> str | None:
    """Refuse to enable a one-time rule whose fire time already passed.

    Returns:
        An error message, or None when the combination is fine.
    """
    if not enabled or not isinstance(trigger, ScheduleTrigger):
        return None
    if not isinstance(trigger.schedule, OneTimeSchedule):
        return None
    if parse_iso_ms(trigger.schedule.fire_at) < now_ms:
        return "Update the fire date to a future time before re-enabling this rule."
    return None


def validate_rule(
    rule: AutomationRule,
    *,
    now_ms: int | None = None,
    min_interval_minutes: int = MIN_INTERVAL_MINUTES,
) -> list[str]:
    """Collect every problem with ``rule``; an empty list means valid.

    Args:
        rule: Rule to check.
        now_ms: When given, one-time rules are also checked for a fire time
            in the past.
        min_interval_minutes: Smallest interval schedule accepted.
    """
    problems: list[str] = []
    trigger = rule.trigger

    if isinstance(trigger, ScheduleTrigger):
        try:
            validate_schedule(trigger.schedule, min_interval_minutes=min_interval_minutes)
        except ScheduleConfigError as exc:
            problems.append(exc.message)
        else:
            if now_ms is not None:
                re_enable_problem = validate_one_time_re_enable(trigger, rule.enabled, now_ms)
                if re_enable_problem:
                    problems.append(re_enable_problem)
    elif isinstance(trigger, EventTrigger):
        if trigger.trigger_type in SECTION_SCOPED_TRIGGERS and not trigger.section_id:
            problems.append(f"Trigger {trigger.trigger_type.value} requires a section")

    for spec in rule.filters:
        if spec.kind not in FILTER_PREDICATE_MAP:
            problems.append(f"Unknown filter kind: {spec.kind}")

    return problems


def ensure_valid_rule(
    rule: AutomationRule,
    *,
    now_ms: int | None = None,
    min_interval_minutes: int = MIN_INTERVAL_MINUTES,
) -> AutomationRule:
    """Return ``rule`` unchanged, or raise RuleValidationError listing its problems."""
    problems = validate_rule(rule, now_ms=now_ms, min_interval_minutes=min_interval_minutes)
    if problems:
        raise RuleValidationError(
            f"Rule {rule.rule_id} is invalid: {'; '.join(problems)}", problems=problems
        )
    return rule
