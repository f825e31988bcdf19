# core/effects.py

"""
Результаты редьюсеров: список эффектов для оркестратора и структурированные отказы.

Редьюсер никогда не бросает исключение при недопустимом действии. Он возвращает
Transition с Failure и исходным (неизмененным) состоянием.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import EngineState

class FailureKind(Enum):
    """Классы отказов"""
    REJECTED_BY_QUOTA = "rejected_by_quota"
    INVALID_TRANSITION = "invalid_transition"
    REDEMPTION_UNAVAILABLE = "redemption_unavailable"

class FailureCode(Enum):
    """Конкретные причины отказа"""
    NOT_FOUND = "not_found"
    ALREADY_STARTED = "already_started"
    ALREADY_COMPLETED = "already_completed"
    NOT_STARTABLE = "not_startable"
    SUBTASKS_INCOMPLETE = "subtasks_incomplete"
    MISSION_STEPS_INCOMPLETE = "mission_steps_incomplete"
    INVALID_STEP = "invalid_step"
    INVALID_INPUT = "invalid_input"
    MAIN_QUEST_QUOTA = "main_quest_quota"
    SIDE_QUEST_QUOTA = "side_quest_quota"
    MISSION_QUOTA = "mission_quota"
    SIDE_QUESTS_LOCKED = "side_quests_locked"
    NOT_CURSED = "not_cursed"
    RECOVERY_PENDING = "recovery_pending"
    REDEMPTION_USED = "redemption_used"
    NO_PENDING_RECOVERY = "no_pending_recovery"
    REWARD_NOT_EARNED = "reward_not_earned"
    FUTURE_DATE = "future_date"
    INSUFFICIENT_GOLD = "insufficient_gold"
    ALREADY_PURCHASED = "already_purchased"

class EngineEvent(Enum):
    """События для коллаборатора уведомлений"""
    EXP_AWARDED = "exp_awarded"
    LEVEL_UP = "level_up"
    RANK_UP = "rank_up"
    STAT_LEVEL_UP = "stat_level_up"
    GOLD_AWARDED = "gold_awarded"
    DAILY_WIN = "daily_win"
    ITEM_COMPLETED = "item_completed"
    DEADLINE_MISSED = "deadline_missed"
    SIDE_QUESTS_LOCKED = "side_quests_locked"
    SIDE_QUESTS_UNLOCKED = "side_quests_unlocked"
    CURSE_APPLIED = "curse_applied"
    CURSE_LIFTED = "curse_lifted"
    SHADOW_FATIGUE_APPLIED = "shadow_fatigue_applied"
    SHADOW_FATIGUE_CLEARED = "shadow_fatigue_cleared"
    QUOTA_REJECTED = "quota_rejected"
    REDEMPTION_STARTED = "redemption_started"
    REDEMPTION_SUCCEEDED = "redemption_succeeded"
    REDEMPTION_FAILED = "redemption_failed"
    REDEMPTION_ABANDONED = "redemption_abandoned"
    WEEKLY_RESET = "weekly_reset"
    DAILY_WINS_RESET = "daily_wins_reset"
    REWARD_CLAIMED = "reward_claimed"
    ITEM_PURCHASED = "item_purchased"

# ===== EFFECTS =====

@dataclass(frozen=True)
class Effect:
    """Базовый эффект"""

@dataclass(frozen=True)
class AwardExp(Effect):
    amount: int
    source_id: Optional[str] = None

@dataclass(frozen=True)
class AwardGold(Effect):
    amount: int

@dataclass(frozen=True)
class AwardStatExp(Effect):
    stat: str
    amount: int

@dataclass(frozen=True)
class SpendGold(Effect):
    amount: int

@dataclass(frozen=True)
class BoostStat(Effect):
    """Прямое повышение уровня атрибута (покупка в магазине)"""
    stat: str
    levels: int = 1

@dataclass(frozen=True)
class RecordDailyWin(Effect):
    """Отметить ежедневную победу; modifier масштабирует бонус атрибута"""
    category: str
    item_id: str
    modifier: float = 1.0

@dataclass(frozen=True)
class TouchStreak(Effect):
    """Активность пользователя (серия дней)"""

@dataclass(frozen=True)
class Notify(Effect):
    event: EngineEvent
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

# ===== RESULTS =====

@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    code: FailureCode
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind.value, "code": self.code.value, "message": self.message}

@dataclass
class Transition:
    """Результат редьюсера"""
    state: "EngineState"
    effects: List[Effect] = field(default_factory=list)
    failure: Optional[Failure] = None
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def notifications(self) -> List[Notify]:
        return [e for e in self.effects if isinstance(e, Notify)]

def fail(state: "EngineState", kind: FailureKind, code: FailureCode, message: str) -> Transition:
    return Transition(state=state, failure=Failure(kind, code, message))

def invalid(state: "EngineState", code: FailureCode, message: str) -> Transition:
    return fail(state, FailureKind.INVALID_TRANSITION, code, message)

def notify(event: EngineEvent, message: str, **data) -> Notify:
    return Notify(event=event, message=message, data=data)
