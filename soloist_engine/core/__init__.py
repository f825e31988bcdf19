# core/__init__.py

"""
Ядро движка: модели, расчеты и чистые редьюсеры состояния.
"""

from .models import (
    Difficulty, DailyWinCategory, Stat, Rank, ItemKind, ValidationError,
    Task, Quest, Mission, User, PunishmentState, EngineState,
    RewardJournalEntry, WeeklyRewardEntry, ShopItem, ShopItemType,
)
from .effects import Failure, FailureKind, FailureCode, EngineEvent, Transition
from .punishment import RecoveryChallenge, get_exp_modifier
from .reconcile import reconcile

__all__ = [
    'Difficulty',
    'DailyWinCategory',
    'Stat',
    'Rank',
    'ItemKind',
    'ValidationError',
    'Task',
    'Quest',
    'Mission',
    'User',
    'PunishmentState',
    'EngineState',
    'RewardJournalEntry',
    'WeeklyRewardEntry',
    'ShopItem',
    'ShopItemType',
    'Failure',
    'FailureKind',
    'FailureCode',
    'EngineEvent',
    'Transition',
    'RecoveryChallenge',
    'get_exp_modifier',
    'reconcile',
]
