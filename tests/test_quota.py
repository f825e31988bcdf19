from __future__ import annotations

from datetime import timedelta
import unittest

from soloist_engine.core import lifecycle
from soloist_engine.core.effects import FailureCode, FailureKind
from soloist_engine.core.quota import QUEST_LIMITS, counts_toward_today, get_limits, get_quota_status
from soloist_engine.core.models import Rank
from tests.helpers import NOW, expect_ok, make_state, with_mission, with_quest


class TestQuestLimits(unittest.TestCase):
    def test_limits_table(self) -> None:
        self.assertEqual(2, get_limits("F").main_quests_per_day)
        self.assertEqual(6, get_limits(Rank.D).daily_quests_per_day)
        self.assertEqual(4, get_limits("C").missions_per_day)
        self.assertEqual(10, QUEST_LIMITS[Rank.SSS].daily_quests_per_day)

    def test_main_quest_quota_rejects_third_start(self) -> None:
        state = make_state()
        ids = []
        for i in range(3):
            state, quest = with_quest(state, f"Main {i}", is_main_quest=True)
            ids.append(quest.id)
        state = expect_ok(lifecycle.start_quest(state, ids[0], NOW)).state
        state = expect_ok(lifecycle.start_quest(state, ids[1], NOW)).state

        t = lifecycle.start_quest(state, ids[2], NOW)

        self.assertFalse(t.ok)
        self.assertEqual(FailureKind.REJECTED_BY_QUOTA, t.failure.kind)
        self.assertEqual(FailureCode.MAIN_QUEST_QUOTA, t.failure.code)
        self.assertIs(state, t.state)

    def test_side_quest_quota_rejects_third_start(self) -> None:
        state = make_state()
        ids = []
        for i in range(3):
            state, quest = with_quest(state, f"Side {i}")
            ids.append(quest.id)
        state = expect_ok(lifecycle.start_quest(state, ids[0], NOW)).state
        state = expect_ok(lifecycle.start_quest(state, ids[1], NOW)).state

        t = lifecycle.start_quest(state, ids[2], NOW)

        self.assertEqual(FailureKind.REJECTED_BY_QUOTA, t.failure.kind)
        self.assertEqual(FailureCode.SIDE_QUEST_QUOTA, t.failure.code)

    def test_main_and_side_quotas_are_separate(self) -> None:
        state = make_state()
        for i in range(2):
            state, main = with_quest(state, f"Main {i}", is_main_quest=True)
            state = expect_ok(lifecycle.start_quest(state, main.id, NOW)).state
        for i in range(2):
            state, side = with_quest(state, f"Side {i}")
            state = expect_ok(lifecycle.start_quest(state, side.id, NOW)).state

        status = get_quota_status(state, NOW)
        self.assertEqual(2, status["main"]["used"])
        self.assertEqual(2, status["side"]["used"])
        self.assertEqual(0, status["side"]["remaining"])

    def test_quota_resets_next_day(self) -> None:
        state = make_state()
        ids = []
        for i in range(3):
            state, quest = with_quest(state, f"Main {i}", is_main_quest=True)
            ids.append(quest.id)
        state = expect_ok(lifecycle.start_quest(state, ids[0], NOW)).state
        state = expect_ok(lifecycle.start_quest(state, ids[1], NOW)).state

        t = lifecycle.start_quest(state, ids[2], NOW + timedelta(days=1))
        self.assertTrue(t.ok)

    def test_higher_rank_has_higher_limit(self) -> None:
        state = make_state()
        state.user.rank = "D"
        ids = []
        for i in range(3):
            state, quest = with_quest(state, f"Main {i}", is_main_quest=True)
            ids.append(quest.id)
        for quest_id in ids:
            state = expect_ok(lifecycle.start_quest(state, quest_id, NOW)).state
        self.assertEqual(3, get_quota_status(state, NOW)["main"]["used"])

    def test_daily_quests_are_exempt(self) -> None:
        state = make_state()
        for i in range(7):
            state, quest = with_quest(state, f"Daily {i}", is_daily=True)
            state = expect_ok(lifecycle.start_quest(state, quest.id, NOW)).state
        self.assertEqual(7, sum(1 for q in state.quests if q.started))

    def test_locked_side_quests_cannot_start(self) -> None:
        state = make_state(locked_side_quests_until=NOW + timedelta(days=1))
        state, quest = with_quest(state, "Side")

        t = lifecycle.start_quest(state, quest.id, NOW)

        self.assertEqual(FailureCode.SIDE_QUESTS_LOCKED, t.failure.code)
        self.assertEqual(FailureKind.REJECTED_BY_QUOTA, t.failure.kind)

    def test_completion_without_start_takes_a_slot(self) -> None:
        state = make_state()
        ids = []
        for i in range(3):
            state, quest = with_quest(state, f"Main {i}", is_main_quest=True)
            ids.append(quest.id)
        state = expect_ok(lifecycle.start_quest(state, ids[0], NOW)).state
        state = expect_ok(lifecycle.start_quest(state, ids[1], NOW)).state

        rejected = lifecycle.complete_quest(state, ids[2], NOW)
        self.assertEqual(FailureCode.MAIN_QUEST_QUOTA, rejected.failure.code)

        self.assertTrue(lifecycle.complete_quest(state, ids[0], NOW).ok)


class TestMissionLimits(unittest.TestCase):
    def test_fourth_mission_rejected_for_rank_f(self) -> None:
        state = make_state()
        ids = []
        for i in range(4):
            state, mission = with_mission(state, f"Mission {i}")
            ids.append(mission.id)
        for mission_id in ids[:3]:
            state = expect_ok(lifecycle.start_mission(state, mission_id, NOW)).state

        t = lifecycle.start_mission(state, ids[3], NOW)

        self.assertEqual(FailureCode.MISSION_QUOTA, t.failure.code)
        status = get_quota_status(state, NOW)
        self.assertEqual(3, status["missions"]["used"])
        self.assertEqual(0, status["missions"]["remaining"])


class TestCountsTowardToday(unittest.TestCase):
    def test_started_yesterday_does_not_count(self) -> None:
        state = make_state()
        state, quest = with_quest(state, "Main", is_main_quest=True)
        started = expect_ok(lifecycle.start_quest(state, quest.id, NOW - timedelta(days=1))).result
        self.assertFalse(counts_toward_today(started, NOW))
        self.assertTrue(counts_toward_today(started, NOW - timedelta(days=1)))


if __name__ == "__main__":
    unittest.main()
