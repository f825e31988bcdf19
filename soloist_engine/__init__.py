"""
Soloist Engine v4.0

Движок прогрессии и штрафов для геймифицированного трекера продуктивности:
EXP и уровни, ранги, лимиты квестов, теневая усталость, проклятие и искупление,
журнал наград.
"""

__version__ = "4.0.1"

from .config import EngineConfig, get_config, reset_config
from .core import (
    Difficulty, DailyWinCategory, Stat, Rank, ItemKind, ValidationError,
    Task, Quest, Mission, User, PunishmentState, EngineState,
    Failure, FailureKind, FailureCode, EngineEvent, Transition,
    RecoveryChallenge, get_exp_modifier, reconcile,
)
from .services import (
    EngineService, OperationResult, NotificationService, ServiceManager,
    StaticCatalog, PersistenceError,
)

__all__ = [
    '__version__',
    'EngineConfig',
    'get_config',
    'reset_config',
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
    'Failure',
    'FailureKind',
    'FailureCode',
    'EngineEvent',
    'Transition',
    'RecoveryChallenge',
    'get_exp_modifier',
    'reconcile',
    'EngineService',
    'OperationResult',
    'NotificationService',
    'ServiceManager',
    'StaticCatalog',
    'PersistenceError',
]
