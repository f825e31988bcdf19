from __future__ import annotations

import unittest

from soloist_engine.core.calculations import (
    apply_exp_modifier,
    base_exp_for_difficulty,
    exp_to_next_level,
    gold_for_exp,
    missed_deadline_reward,
    rank_exp_bonus,
    rank_from_level,
    rank_index,
    subtask_reward,
)
from soloist_engine.core.models import Difficulty, Rank


class TestLevelCurve(unittest.TestCase):
    def test_exp_to_next_level_grows_by_twenty_percent(self) -> None:
        self.assertEqual(100, exp_to_next_level(1))
        self.assertEqual(120, exp_to_next_level(2))
        self.assertEqual(144, exp_to_next_level(3))
        self.assertEqual(172, exp_to_next_level(4))

    def test_curve_and_ranks_are_monotonic(self) -> None:
        for level in range(1, 500):
            with self.subTest(level=level):
                self.assertLess(exp_to_next_level(level), exp_to_next_level(level + 1))
                self.assertLessEqual(rank_index(rank_from_level(level)), rank_index(rank_from_level(level + 1)))

    def test_levels_below_one_use_first_level(self) -> None:
        self.assertEqual(100, exp_to_next_level(0))
        self.assertEqual(100, exp_to_next_level(-3))


class TestRanks(unittest.TestCase):
    def test_rank_thresholds(self) -> None:
        cases = {
            1: Rank.F,
            30: Rank.F,
            31: Rank.E,
            61: Rank.D,
            91: Rank.C,
            121: Rank.B,
            151: Rank.A,
            181: Rank.S,
            271: Rank.SS,
            361: Rank.SSS,
            999: Rank.SSS,
        }
        for level, rank in cases.items():
            with self.subTest(level=level):
                self.assertEqual(rank, rank_from_level(level))

    def test_rank_bonus_and_order(self) -> None:
        self.assertEqual(1.0, rank_exp_bonus("F"))
        self.assertEqual(1.1, rank_exp_bonus(Rank.E))
        self.assertEqual(1.8, rank_exp_bonus("SSS"))
        self.assertLess(rank_index("F"), rank_index("SS"))


class TestRewards(unittest.TestCase):
    def test_base_exp_by_difficulty(self) -> None:
        self.assertEqual(5, base_exp_for_difficulty(Difficulty.EASY))
        self.assertEqual(10, base_exp_for_difficulty("medium"))
        self.assertEqual(10, base_exp_for_difficulty("normal"))
        self.assertEqual(20, base_exp_for_difficulty("hard"))
        self.assertEqual(50, base_exp_for_difficulty("boss"))

    def test_modifier_rounds_down(self) -> None:
        self.assertEqual(11, apply_exp_modifier(10, 1.1))
        self.assertEqual(11, apply_exp_modifier(15, 0.75))
        self.assertEqual(3, apply_exp_modifier(7, 0.5))
        self.assertEqual(0, apply_exp_modifier(0, 1.8))

    def test_missed_deadline_pays_half(self) -> None:
        self.assertEqual(7, missed_deadline_reward(15))
        self.assertEqual(10, missed_deadline_reward(20))

    def test_subtask_reward_is_quarter_of_parent(self) -> None:
        self.assertEqual(12, subtask_reward(50))
        self.assertEqual(0, subtask_reward(3))

    def test_gold_for_full_five_exp_chunks(self) -> None:
        self.assertEqual(4, gold_for_exp(12))
        self.assertEqual(0, gold_for_exp(4))
        self.assertEqual(0, gold_for_exp(0))
        self.assertEqual(20, gold_for_exp(50))


if __name__ == "__main__":
    unittest.main()
