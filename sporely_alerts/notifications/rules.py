"""Rule evaluation with per-entity repeat suppression."""

from __future__ import annotations

import datetime
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sporely_alerts.notifications.contracts import RuleNotFoundError
from sporely_alerts.notifications.models import NotificationCategory, NotificationRule, NotificationType, apply_patch
from sporely_alerts.storage.kv_store import RULES_KEY, KeyValueStore, load_blob, save_blob
from sporely_alerts.utils.clock import utc_now

logger = logging.getLogger(__name__)

DEFAULT_RULES: tuple[NotificationRule, ...] = (
  NotificationRule(
    id="rule-culture-expiring",
    name="Culture Expiring",
    category=NotificationCategory.CULTURE_EXPIRING,
    threshold_days=7,
    notify_type=NotificationType.WARNING,
    repeat_interval_hours=24,
    description="Alert when a culture is within the threshold of its expiry date.",
  ),
  NotificationRule(
    id="rule-lc-age",
    name="Liquid Culture Age",
    category=NotificationCategory.LC_AGE,
    threshold_days=30,
    notify_type=NotificationType.WARNING,
    repeat_interval_hours=48,
    description="Alert when a liquid culture reaches the threshold age.",
  ),
  NotificationRule(
    id="rule-low-inventory", name="Low Inventory", category=NotificationCategory.LOW_INVENTORY, notify_type=NotificationType.WARNING, repeat_interval_hours=24, description="Alert when an inventory item drops to its reorder point."
  ),
  NotificationRule(
    id="rule-harvest-ready", name="Harvest Ready", category=NotificationCategory.HARVEST_READY, notify_type=NotificationType.SUCCESS, repeat_interval_hours=12, description="Alert when a grow is ready to harvest."
  ),
  NotificationRule(
    id="rule-contamination", name="Contamination Detected", category=NotificationCategory.CONTAMINATION, notify_type=NotificationType.ERROR, repeat_interval_hours=0, description="Alert on every contamination report."
  ),
  NotificationRule(
    id="rule-stage-transition", name="Stage Transition", category=NotificationCategory.STAGE_TRANSITION, notify_type=NotificationType.INFO, repeat_interval_hours=24, description="Alert when a grow moves to a new stage."
  ),
  NotificationRule(
    id="rule-slow-growth",
    name="Slow Growth",
    category=NotificationCategory.SLOW_GROWTH,
    threshold_days=14,
    notify_type=NotificationType.WARNING,
    repeat_interval_hours=72,
    description="Alert when a grow has stayed in one stage longer than the threshold.",
  ),
)

_AT_OR_BELOW = frozenset({NotificationCategory.CULTURE_EXPIRING, NotificationCategory.LOW_INVENTORY})
_AT_OR_ABOVE = frozenset({NotificationCategory.LC_AGE, NotificationCategory.SLOW_GROWTH})


@dataclass(frozen=True)
class FireDecision:
  """Result of evaluating one observation."""

  should_fire: bool
  severity: NotificationType | None = None
  rule_id: str | None = None
  reason: str | None = None


def condition_holds(rule: NotificationRule, observed_value: float | None) -> bool:
  """Apply the category comparator for ``rule`` to an observed value."""
  if rule.threshold_days is None or rule.category not in (_AT_OR_BELOW | _AT_OR_ABOVE):
    return True
  if observed_value is None:
    return False
  if rule.category in _AT_OR_BELOW:
    return observed_value <= rule.threshold_days
  return observed_value >= rule.threshold_days


class RuleEngine:
  """Holds the rule set and decides whether an observation fires.

  Last-fired timestamps live in a map keyed by ``(rule_id, entity_id)`` and are updated
  under a lock so two concurrent observations cannot both pass the repeat check.
  """

  def __init__(self, store: KeyValueStore, *, clock: Callable[[], datetime.datetime] | None = None) -> None:
    self._store = store
    self._clock = clock or utc_now
    self._lock = threading.Lock()
    self._last_fired: dict[tuple[str, str | None], datetime.datetime] = {}
    self._rules: list[NotificationRule] = self._load_rules()

  def _load_rules(self) -> list[NotificationRule]:
    stored: list[NotificationRule] = load_blob(self._store, RULES_KEY, list[NotificationRule], [])
    if not stored:
      return list(DEFAULT_RULES)

    # Rules added in newer releases are appended to an older persisted set.
    known_ids = {rule.id for rule in stored}
    missing = [rule for rule in DEFAULT_RULES if rule.id not in known_ids]
    if missing:
      logger.info("Adding default rules missing from persisted set: %s", ", ".join(rule.id for rule in missing))
    return stored + missing

  @property
  def rules(self) -> list[NotificationRule]:
    return list(self._rules)

  def get_rule(self, rule_id: str) -> NotificationRule:
    for rule in self._rules:
      if rule.id == rule_id:
        return rule
    raise RuleNotFoundError(rule_id)

  def rule_for_category(self, category: NotificationCategory) -> NotificationRule | None:
    """Return the first enabled rule for a category, if any."""
    for rule in self._rules:
      if rule.category == category and rule.is_enabled:
        return rule
    return None

  def update_rule(self, rule_id: str, patch: dict[str, Any]) -> NotificationRule:
    """Apply a partial update to one rule and persist the rule set."""
    current = self.get_rule(rule_id)
    updated = apply_patch(current, patch, immutable=frozenset({"id", "category"}))
    if updated.repeat_interval_hours < 0:
      raise ValueError("repeat_interval_hours must be zero or positive")

    self._rules = [updated if rule.id == rule_id else rule for rule in self._rules]
    save_blob(self._store, RULES_KEY, self._rules)
    logger.info("Rule updated id=%s fields=%s", rule_id, ",".join(sorted(patch)))
    return updated

  def reset_suppression(self) -> None:
    """Forget every last-fired timestamp."""
    with self._lock:
      self._last_fired.clear()

  def evaluate(self, category: NotificationCategory | str, observed_value: float | None = None, entity_id: str | None = None, now: datetime.datetime | None = None) -> FireDecision:
    """Decide whether an observation of ``category`` should produce a notification."""
    try:
      category = NotificationCategory(category)
    except ValueError:
      logger.warning("Unknown notification category=%s; treating as disabled", category)
      return FireDecision(should_fire=False, reason="unknown_category")

    rule = self.rule_for_category(category)
    if rule is None:
      return FireDecision(should_fire=False, reason="no_enabled_rule")

    if not condition_holds(rule, observed_value):
      return FireDecision(should_fire=False, severity=rule.notify_type, rule_id=rule.id, reason="condition_not_met")

    if now is None:
      now = self._clock()

    key = (rule.id, entity_id)
    with self._lock:
      last = self._last_fired.get(key)
      if rule.repeat_interval_hours > 0 and last is not None and now - last < datetime.timedelta(hours=rule.repeat_interval_hours):
        return FireDecision(should_fire=False, severity=rule.notify_type, rule_id=rule.id, reason="suppressed")
      self._last_fired[key] = now

    return FireDecision(should_fire=True, severity=rule.notify_type, rule_id=rule.id)
