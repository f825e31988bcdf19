from __future__ import annotations

from datetime import timedelta
import unittest

from soloist_engine.core import lifecycle
from soloist_engine.core.effects import EngineEvent
from soloist_engine.core.models import ItemKind
from soloist_engine.core.punishment import (
    apply_weekly_reset,
    chances_remaining,
    expire_penalties,
    get_exp_modifier,
    get_penalty_status,
)
from tests.helpers import END_OF_WEEK, NOW, WEEK_START, events_of, expect_ok, make_state, with_quest, with_task


def miss_tasks(state, count):
    events = []
    for i in range(count):
        state, task = with_task(state, f"Task {i}")
        t = expect_ok(lifecycle.mark_item_missed(state, ItemKind.TASK, task.id, NOW))
        events.extend(events_of(t))
        state = t.state
    return state, events


def miss_main_quest(state, title="Main"):
    state, quest = with_quest(state, title, is_main_quest=True)
    t = expect_ok(lifecycle.mark_item_missed(state, ItemKind.QUEST, quest.id, NOW))
    return t.state, events_of(t)


class TestExpModifier(unittest.TestCase):
    def test_modifier_levels(self) -> None:
        self.assertEqual(1.0, get_exp_modifier(make_state().punishment))
        self.assertEqual(0.75, get_exp_modifier(make_state(has_shadow_fatigue=True).punishment))
        self.assertEqual(0.5, get_exp_modifier(make_state(is_cursed=True).punishment))
        self.assertEqual(0.5, get_exp_modifier(make_state(is_cursed=True, has_shadow_fatigue=True).punishment))


class TestMissedDeadlineEscalation(unittest.TestCase):
    def test_first_miss_applies_shadow_fatigue(self) -> None:
        state, events = miss_tasks(make_state(), 1)
        p = state.punishment

        self.assertEqual(1, p.chance_counter)
        self.assertTrue(p.has_shadow_fatigue)
        self.assertEqual(END_OF_WEEK, p.shadow_fatigue_until)
        self.assertEqual(4, chances_remaining(p))
        self.assertIn(EngineEvent.DEADLINE_MISSED, events)
        self.assertIn(EngineEvent.SHADOW_FATIGUE_APPLIED, events)

    def test_fifth_miss_curses_until_end_of_week(self) -> None:
        state, events = miss_tasks(make_state(), 5)
        p = state.punishment

        self.assertTrue(p.is_cursed)
        self.assertEqual(END_OF_WEEK, p.cursed_until)
        self.assertFalse(p.has_shadow_fatigue)
        self.assertIsNone(p.shadow_fatigue_until)
        self.assertEqual(0.5, get_exp_modifier(p))
        self.assertEqual(1, events.count(EngineEvent.CURSE_APPLIED))

    def test_misses_beyond_five_keep_single_curse(self) -> None:
        state, events = miss_tasks(make_state(), 6)
        self.assertEqual(6, state.punishment.chance_counter)
        self.assertEqual(1, events.count(EngineEvent.CURSE_APPLIED))
        self.assertEqual(0, chances_remaining(state.punishment))

    def test_three_missed_main_quests_lock_side_quests(self) -> None:
        state = make_state()
        for i in range(3):
            state, events = miss_main_quest(state, f"Main {i}")
        p = state.punishment

        self.assertEqual(NOW + timedelta(days=7), p.locked_side_quests_until)
        self.assertEqual(0, p.missed_main_quest_streak)
        self.assertIn(EngineEvent.SIDE_QUESTS_LOCKED, events)
        self.assertTrue(get_penalty_status(p, NOW)["side_quests_locked"])

    def test_other_miss_breaks_main_quest_streak(self) -> None:
        state = make_state()
        state, _ = miss_main_quest(state, "Main 1")
        state, _ = miss_tasks(state, 1)
        state, _ = miss_main_quest(state, "Main 2")

        self.assertEqual(1, state.punishment.missed_main_quest_streak)
        self.assertIsNone(state.punishment.locked_side_quests_until)


class TestExpiry(unittest.TestCase):
    def test_curse_expiry_leaves_fatigue_tail(self) -> None:
        state = make_state(is_cursed=True, cursed_until=NOW - timedelta(minutes=1), chance_counter=5)

        t = expire_penalties(state, NOW)
        p = t.state.punishment

        self.assertFalse(p.is_cursed)
        self.assertIsNone(p.cursed_until)
        self.assertTrue(p.has_shadow_fatigue)
        self.assertEqual(END_OF_WEEK, p.shadow_fatigue_until)
        self.assertIn(EngineEvent.CURSE_LIFTED, events_of(t))
        self.assertTrue(state.punishment.is_cursed)

    def test_fatigue_clears_after_deadline(self) -> None:
        state = make_state(has_shadow_fatigue=True, shadow_fatigue_until=NOW - timedelta(minutes=1))
        p = expire_penalties(state, NOW).state.punishment
        self.assertFalse(p.has_shadow_fatigue)
        self.assertEqual(1.0, get_exp_modifier(p))

    def test_side_quest_lock_expires(self) -> None:
        state = make_state(locked_side_quests_until=NOW)
        t = expire_penalties(state, NOW)
        self.assertIsNone(t.state.punishment.locked_side_quests_until)
        self.assertIn(EngineEvent.SIDE_QUESTS_UNLOCKED, events_of(t))


class TestWeeklyReset(unittest.TestCase):
    def test_new_week_clears_penalties(self) -> None:
        state = make_state(
            chance_counter=5,
            is_cursed=True,
            cursed_until=END_OF_WEEK,
            last_redemption_date=NOW,
            last_weekly_reset=WEEK_START - timedelta(days=7),
        )

        t = apply_weekly_reset(state, NOW)
        p = t.state.punishment

        self.assertEqual(0, p.chance_counter)
        self.assertFalse(p.is_cursed)
        self.assertIsNone(p.last_redemption_date)
        self.assertEqual(WEEK_START, p.last_weekly_reset)
        self.assertIn(EngineEvent.WEEKLY_RESET, events_of(t))

    def test_same_week_does_nothing(self) -> None:
        state = make_state(chance_counter=3)
        t = apply_weekly_reset(state, NOW)
        self.assertEqual(3, t.state.punishment.chance_counter)
        self.assertEqual([], t.effects)

    def test_first_run_only_stamps_week(self) -> None:
        state = make_state(chance_counter=3, last_weekly_reset=None)
        t = apply_weekly_reset(state, NOW)
        self.assertEqual(3, t.state.punishment.chance_counter)
        self.assertEqual(WEEK_START, t.state.punishment.last_weekly_reset)


if __name__ == "__main__":
    unittest.main()
