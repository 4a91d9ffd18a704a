from __future__ import annotations

import datetime
from concurrent.futures import ThreadPoolExecutor

import msgspec
import pytest

from sporely_alerts.notifications.contracts import RuleNotFoundError
from sporely_alerts.notifications.models import NotificationCategory, NotificationRule, NotificationType
from sporely_alerts.notifications.rules import DEFAULT_RULES, RuleEngine
from sporely_alerts.storage.kv_store import RULES_KEY, InMemoryKeyValueStore

T0 = datetime.datetime(2024, 6, 1, 12, 0, tzinfo=datetime.UTC)


def test_default_rules_are_loaded(rule_engine):
  ids = [rule.id for rule in rule_engine.rules]
  assert ids == [rule.id for rule in DEFAULT_RULES]
  assert rule_engine.get_rule("rule-contamination").repeat_interval_hours == 0


def test_repeat_interval_suppresses_per_entity():
  engine = RuleEngine(InMemoryKeyValueStore())
  engine.update_rule("rule-harvest-ready", {"repeat_interval_hours": 24})
  category = NotificationCategory.HARVEST_READY

  assert engine.evaluate(category, None, "E", T0).should_fire is True

  suppressed = engine.evaluate(category, None, "E", T0 + datetime.timedelta(hours=1))
  assert suppressed.should_fire is False
  assert suppressed.reason == "suppressed"

  # De-duplication is keyed per entity, not per rule.
  assert engine.evaluate(category, None, "F", T0 + datetime.timedelta(hours=1)).should_fire is True

  assert engine.evaluate(category, None, "E", T0 + datetime.timedelta(hours=25)).should_fire is True


def test_contamination_fires_on_every_observation(rule_engine):
  for minute in range(5):
    decision = rule_engine.evaluate(NotificationCategory.CONTAMINATION, None, "grow-1", T0 + datetime.timedelta(minutes=minute))
    assert decision.should_fire is True
    assert decision.severity is NotificationType.ERROR


def test_threshold_comparators(rule_engine):
  # Expiry warnings fire at or below the threshold.
  assert rule_engine.evaluate(NotificationCategory.CULTURE_EXPIRING, 7, "c-1", T0).should_fire is True
  assert rule_engine.evaluate(NotificationCategory.CULTURE_EXPIRING, 8, "c-2", T0).should_fire is False
  # Age warnings fire at or above the threshold.
  assert rule_engine.evaluate(NotificationCategory.LC_AGE, 29, "lc-1", T0).should_fire is False
  assert rule_engine.evaluate(NotificationCategory.LC_AGE, 30, "lc-1", T0).should_fire is True
  # A thresholded rule without an observed value does not fire.
  assert rule_engine.evaluate(NotificationCategory.SLOW_GROWTH, None, "g-1", T0).should_fire is False


def test_unmet_condition_does_not_consume_repeat_window(rule_engine):
  assert rule_engine.evaluate(NotificationCategory.CULTURE_EXPIRING, 10, "c-1", T0).should_fire is False
  assert rule_engine.evaluate(NotificationCategory.CULTURE_EXPIRING, 5, "c-1", T0 + datetime.timedelta(minutes=1)).should_fire is True


def test_unknown_category_is_treated_as_disabled(rule_engine, caplog):
  decision = rule_engine.evaluate("mystery", 1, "x", T0)
  assert decision.should_fire is False
  assert decision.reason == "unknown_category"
  assert "Unknown notification category" in caplog.text


@pytest.mark.parametrize("patch", [{"enabled": False}, {"is_active": False}])
def test_disabled_rule_never_fires(rule_engine, patch):
  rule_engine.update_rule("rule-contamination", patch)
  decision = rule_engine.evaluate(NotificationCategory.CONTAMINATION, None, "g-1", T0)
  assert decision.should_fire is False
  assert decision.reason == "no_enabled_rule"


def test_update_rule_validates_and_persists(kv_store):
  engine = RuleEngine(kv_store)
  updated = engine.update_rule("rule-lc-age", {"threshold_days": 45, "notify_type": "error"})
  assert updated.threshold_days == 45
  assert updated.notify_type is NotificationType.ERROR

  reloaded = RuleEngine(kv_store)
  assert reloaded.get_rule("rule-lc-age").threshold_days == 45

  with pytest.raises(ValueError):
    engine.update_rule("rule-lc-age", {"colour": "red"})
  with pytest.raises(ValueError):
    engine.update_rule("rule-lc-age", {"category": "contamination"})
  with pytest.raises(ValueError):
    engine.update_rule("rule-lc-age", {"repeat_interval_hours": "soon"})
  with pytest.raises(RuleNotFoundError):
    engine.update_rule("rule-missing", {"enabled": False})


def test_missing_default_rules_are_appended_to_persisted_set():
  stored = [NotificationRule(id="rule-contamination", name="Contamination", category=NotificationCategory.CONTAMINATION, notify_type=NotificationType.ERROR, repeat_interval_hours=6)]
  store = InMemoryKeyValueStore({RULES_KEY: msgspec.json.encode(stored).decode()})

  engine = RuleEngine(store)

  assert engine.get_rule("rule-contamination").repeat_interval_hours == 6
  assert len(engine.rules) == len(DEFAULT_RULES)


def test_corrupt_rules_blob_falls_back_to_defaults():
  engine = RuleEngine(InMemoryKeyValueStore({RULES_KEY: "{not json"}))
  assert [rule.id for rule in engine.rules] == [rule.id for rule in DEFAULT_RULES]


def test_reset_suppression_allows_refire(rule_engine):
  assert rule_engine.evaluate(NotificationCategory.HARVEST_READY, None, "g-1", T0).should_fire is True
  assert rule_engine.evaluate(NotificationCategory.HARVEST_READY, None, "g-1", T0).should_fire is False
  rule_engine.reset_suppression()
  assert rule_engine.evaluate(NotificationCategory.HARVEST_READY, None, "g-1", T0).should_fire is True


def test_concurrent_observations_fire_once(rule_engine):
  with ThreadPoolExecutor(max_workers=8) as pool:
    decisions = list(pool.map(lambda _: rule_engine.evaluate(NotificationCategory.HARVEST_READY, None, "g-1", T0), range(32)))

  assert sum(decision.should_fire for decision in decisions) == 1
