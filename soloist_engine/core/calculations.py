# core/calculations.py

"""
Чистые функции расчета прогрессии: кривая уровней, ранги, бонусы, награды.
Состояния не хранят.
"""

import math
from typing import Union

from .models import Difficulty, Rank

# Уровень, начиная с которого действует ранг (включительно)
RANK_THRESHOLDS = [
    (361, Rank.SSS),
    (271, Rank.SS),
    (181, Rank.S),
    (151, Rank.A),
    (121, Rank.B),
    (91, Rank.C),
    (61, Rank.D),
    (31, Rank.E),
    (1, Rank.F),
]

RANK_ORDER = [Rank.F, Rank.E, Rank.D, Rank.C, Rank.B, Rank.A, Rank.S, Rank.SS, Rank.SSS]

RANK_EXP_BONUS = {
    Rank.F: 1.0,
    Rank.E: 1.1,
    Rank.D: 1.2,
    Rank.C: 1.3,
    Rank.B: 1.4,
    Rank.A: 1.5,
    Rank.S: 1.6,
    Rank.SS: 1.7,
    Rank.SSS: 1.8,
}

BASE_EXP_BY_DIFFICULTY = {
    Difficulty.EASY: 5,
    Difficulty.MEDIUM: 10,
    Difficulty.NORMAL: 10,
    Difficulty.HARD: 20,
    Difficulty.BOSS: 50,
}

MISSED_DEADLINE_RATE = 0.5
GOLD_PER_EXP_CHUNK = 2
EXP_PER_GOLD_CHUNK = 5
SUBTASK_REWARD_DIVISOR = 4

def _as_rank(rank: Union[Rank, str]) -> Rank:
    return rank if isinstance(rank, Rank) else Rank(rank)

def _as_difficulty(difficulty: Union[Difficulty, str]) -> Difficulty:
    return difficulty if isinstance(difficulty, Difficulty) else Difficulty(difficulty)

def exp_to_next_level(level: int) -> int:
    """floor(100 × 1.2^(level-1)); уровни меньше 1 считаются первым"""
    level = max(1, int(level))
    return math.floor(round(100 * 1.2 ** (level - 1), 6))

def rank_from_level(level: int) -> Rank:
    for threshold, rank in RANK_THRESHOLDS:
        if level >= threshold:
            return rank
    return Rank.F

def rank_index(rank: Union[Rank, str]) -> int:
    return RANK_ORDER.index(_as_rank(rank))

def rank_exp_bonus(rank: Union[Rank, str]) -> float:
    return RANK_EXP_BONUS[_as_rank(rank)]

def base_exp_for_difficulty(difficulty: Union[Difficulty, str]) -> int:
    return BASE_EXP_BY_DIFFICULTY[_as_difficulty(difficulty)]

def apply_exp_modifier(base: int, modifier: float) -> int:
    """Применение множителя с округлением вниз"""
    # round() убирает хвосты float (10 × 1.1 = 11.000000000000002)
    return max(0, math.floor(round(base * modifier, 9)))

def missed_deadline_reward(exp_reward: int) -> int:
    return math.floor(exp_reward * MISSED_DEADLINE_RATE)

def subtask_reward(parent_exp_reward: int) -> int:
    return parent_exp_reward // SUBTASK_REWARD_DIVISOR

def gold_for_exp(exp: int) -> int:
    """2 золота за каждые полные 5 EXP"""
    if exp <= 0:
        return 0
    return (exp // EXP_PER_GOLD_CHUNK) * GOLD_PER_EXP_CHUNK
