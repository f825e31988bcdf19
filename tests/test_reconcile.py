from __future__ import annotations

from datetime import timedelta
import unittest

from soloist_engine.core.effects import EngineEvent
from soloist_engine.core.progression import update_daily_win
from soloist_engine.core.reconcile import reconcile
from tests.helpers import END_OF_WEEK, NOW, WEEK_START, events_of, make_state, with_task


class TestReconcile(unittest.TestCase):
    def test_nothing_due_returns_same_state(self) -> None:
        state = make_state()
        t = reconcile(state, NOW)
        self.assertIs(state, t.state)
        self.assertEqual([], t.effects)

    def test_first_run_stamps_week(self) -> None:
        state = make_state(last_weekly_reset=None)
        t = reconcile(state, NOW)
        self.assertIsNot(state, t.state)
        self.assertEqual(WEEK_START, t.state.punishment.last_weekly_reset)
        self.assertIs(t.state, reconcile(t.state, NOW).state)

    def test_expiry_and_missed_deadlines_in_one_pass(self) -> None:
        state = make_state(is_cursed=True, cursed_until=NOW - timedelta(hours=1), chance_counter=2)
        state, task = with_task(state, deadline=NOW - timedelta(minutes=30))

        t = reconcile(state, NOW)
        events = events_of(t)

        self.assertIn(EngineEvent.CURSE_LIFTED, events)
        self.assertIn(EngineEvent.DEADLINE_MISSED, events)
        self.assertFalse(t.state.punishment.is_cursed)
        self.assertEqual(3, t.state.punishment.chance_counter)
        self.assertTrue(t.state.tasks[0].missed)
        self.assertIs(t.state, reconcile(t.state, NOW).state)

    def test_weekly_reset_runs_before_deadline_sweep(self) -> None:
        next_week = NOW + timedelta(days=7)
        state = make_state(chance_counter=4, has_shadow_fatigue=True, shadow_fatigue_until=END_OF_WEEK)
        state, _ = with_task(state, deadline=next_week - timedelta(hours=1))

        t = reconcile(state, next_week)
        p = t.state.punishment

        self.assertEqual(1, p.chance_counter)
        self.assertEqual(WEEK_START + timedelta(days=7), p.last_weekly_reset)
        self.assertIn(EngineEvent.WEEKLY_RESET, events_of(t))

    def test_daily_wins_reset_next_day(self) -> None:
        state = make_state()
        update_daily_win(state.user, "physical", "x", 1.0, NOW)

        t = reconcile(state, NOW + timedelta(days=1))

        self.assertEqual(0, t.state.user.daily_wins["physical"].count)
        self.assertEqual(1, state.user.daily_wins["physical"].count)


if __name__ == "__main__":
    unittest.main()
