from __future__ import annotations

from datetime import timedelta
import unittest

from soloist_engine.core.calculations import exp_to_next_level
from soloist_engine.core.effects import (
    AwardExp,
    AwardGold,
    AwardStatExp,
    EngineEvent,
    RecordDailyWin,
    TouchStreak,
)
from soloist_engine.core.progression import (
    add_exp,
    add_stat_exp,
    apply_effects,
    check_reset_daily_wins,
    daily_win_category_for,
    demote_level,
    new_user,
    stat_for_category,
    update_daily_win,
    update_streak,
)
from tests.helpers import NOW, make_state


class TestExp(unittest.TestCase):
    def test_overflow_carries_through_several_levels(self) -> None:
        user = new_user()
        events = add_exp(user, 250)

        self.assertEqual(3, user.level)
        self.assertEqual(30, user.exp)
        self.assertEqual(144, user.exp_to_next_level)
        level_up = [e for e in events if e.event == EngineEvent.LEVEL_UP]
        self.assertEqual(1, len(level_up))
        self.assertEqual(2, level_up[0].data["levels_gained"])

    def test_rank_follows_level(self) -> None:
        user = new_user()
        user.level = 30
        user.exp_to_next_level = exp_to_next_level(30)

        events = add_exp(user, user.exp_to_next_level)

        self.assertEqual(31, user.level)
        self.assertEqual("E", user.rank)
        self.assertIn(EngineEvent.RANK_UP, [e.event for e in events])

    def test_zero_exp_is_ignored(self) -> None:
        user = new_user()
        self.assertEqual([], add_exp(user, 0))
        self.assertEqual(0, user.exp)

    def test_demote_level_resets_exp(self) -> None:
        user = new_user()
        user.level = 3
        user.exp = 50
        demote_level(user)
        self.assertEqual(2, user.level)
        self.assertEqual(0, user.exp)
        self.assertEqual(120, user.exp_to_next_level)

        user.level = 1
        demote_level(user)
        self.assertEqual(1, user.level)


class TestStats(unittest.TestCase):
    def test_stat_levels_every_hundred_exp(self) -> None:
        user = new_user()
        events = add_stat_exp(user, "cognitive", 150)
        self.assertEqual(2, user.stats.levels["cognitive"])
        self.assertEqual(50, user.stats.exp["cognitive"])
        self.assertEqual(EngineEvent.STAT_LEVEL_UP, events[0].event)

    def test_category_mapping(self) -> None:
        self.assertEqual("cognitive", stat_for_category("intelligence"))
        self.assertEqual("emotional", stat_for_category("mental"))
        self.assertEqual("social", stat_for_category("social"))
        self.assertEqual("intelligence", daily_win_category_for("cognitive"))
        self.assertEqual("physical", daily_win_category_for("physical"))


class TestDailyWins(unittest.TestCase):
    def test_one_win_per_category_per_day(self) -> None:
        user = new_user()
        first = update_daily_win(user, "physical", "a", 1.0, NOW)
        second = update_daily_win(user, "physical", "b", 1.0, NOW + timedelta(hours=1))

        self.assertEqual(EngineEvent.DAILY_WIN, first[0].event)
        self.assertEqual([], second)
        self.assertEqual("a", user.daily_wins["physical"].item_id)
        self.assertEqual(10, user.stats.exp["physical"])

    def test_win_bonus_scaled_by_modifier(self) -> None:
        user = new_user()
        update_daily_win(user, "intelligence", "a", 0.5, NOW)
        self.assertEqual(5, user.stats.exp["cognitive"])

    def test_wins_reset_on_new_day(self) -> None:
        user = new_user()
        update_daily_win(user, "spiritual", "a", 1.0, NOW)

        self.assertEqual([], check_reset_daily_wins(user, NOW + timedelta(hours=2)))
        events = check_reset_daily_wins(user, NOW + timedelta(days=1))

        self.assertEqual(EngineEvent.DAILY_WINS_RESET, events[0].event)
        self.assertEqual(0, user.daily_wins["spiritual"].count)


class TestStreak(unittest.TestCase):
    def test_consecutive_days_extend_streak(self) -> None:
        user = new_user()
        update_streak(user, NOW)
        update_streak(user, NOW + timedelta(hours=3))
        update_streak(user, NOW + timedelta(days=1))
        self.assertEqual(2, user.streak_days)

        update_streak(user, NOW + timedelta(days=4))
        self.assertEqual(1, user.streak_days)
        self.assertEqual(2, user.longest_streak)


class TestApplyEffects(unittest.TestCase):
    def test_effects_applied_to_copy(self) -> None:
        state = make_state()
        effects = [
            AwardExp(120, source_id="x"),
            AwardGold(48),
            AwardStatExp("physical", 60),
            RecordDailyWin("physical", "x", 1.0),
            TouchStreak(),
        ]

        t = apply_effects(state, effects, NOW)

        self.assertIsNot(state, t.state)
        self.assertEqual(1, state.user.level)
        self.assertEqual(2, t.state.user.level)
        self.assertEqual(20, t.state.user.exp)
        self.assertEqual(48, t.state.user.gold)
        self.assertEqual(70, t.state.user.stats.exp["physical"])
        self.assertEqual(1, t.state.user.streak_days)
        events = [n.event for n in t.notifications()]
        self.assertIn(EngineEvent.LEVEL_UP, events)
        self.assertIn(EngineEvent.DAILY_WIN, events)


if __name__ == "__main__":
    unittest.main()
