# core/quota.py

"""
Лимиты квестов и миссий по рангу.

Квест считается использованным сегодня, если он начат сегодня (started_at,
при отсутствии created_at) или выполнен сегодня. Ежедневные и
восстановительные квесты лимитами не ограничены.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from .effects import Failure, FailureCode, FailureKind
from .models import EngineState, Mission, Quest, Rank
from .punishment import are_side_quests_locked
from ..utils.datetime_utils import end_of_day, is_within, start_of_day

@dataclass(frozen=True)
class QuestLimits:
    main_quests_per_day: int
    side_quests_per_day: int
    daily_quests_per_day: int
    missions_per_day: int

QUEST_LIMITS = {
    Rank.F: QuestLimits(2, 2, 5, 3),
    Rank.E: QuestLimits(2, 2, 5, 3),
    Rank.D: QuestLimits(3, 3, 6, 3),
    Rank.C: QuestLimits(3, 3, 6, 4),
    Rank.B: QuestLimits(4, 4, 7, 4),
    Rank.A: QuestLimits(4, 4, 7, 4),
    Rank.S: QuestLimits(5, 5, 8, 5),
    Rank.SS: QuestLimits(5, 5, 8, 5),
    Rank.SSS: QuestLimits(5, 5, 10, 5),
}

BUCKET_MAIN = "main"
BUCKET_SIDE = "side"
BUCKET_DAILY = "daily"
BUCKET_RECOVERY = "recovery"

def get_limits(rank) -> QuestLimits:
    return QUEST_LIMITS[rank if isinstance(rank, Rank) else Rank(rank)]

def quest_bucket(quest: Quest) -> str:
    if quest.is_recovery_quest:
        return BUCKET_RECOVERY
    if quest.is_daily:
        return BUCKET_DAILY
    if quest.is_main_quest:
        return BUCKET_MAIN
    return BUCKET_SIDE

def is_quota_exempt(quest: Quest) -> bool:
    return quest_bucket(quest) in (BUCKET_DAILY, BUCKET_RECOVERY)

def counts_toward_today(item, now: datetime) -> bool:
    """Начат или выполнен в текущий календарный день"""
    day_start, day_end = start_of_day(now), end_of_day(now)
    if getattr(item, "started", False):
        started_at = getattr(item, "started_at", None) or item.created_at
        if is_within(started_at, day_start, day_end):
            return True
    return item.completed and is_within(item.completed_at, day_start, day_end)

def _count_used(items: Iterable, now: datetime, exclude_id: Optional[str] = None) -> int:
    return sum(1 for item in items if item.id != exclude_id and counts_toward_today(item, now))

def count_quests_used_today(state: EngineState, bucket: str, now: datetime,
                            exclude_id: Optional[str] = None) -> int:
    quests = [q for q in state.quests if quest_bucket(q) == bucket]
    return _count_used(quests, now, exclude_id)

def count_missions_used_today(state: EngineState, now: datetime, exclude_id: Optional[str] = None) -> int:
    return _count_used(state.missions, now, exclude_id)

def _quota_failure(code: FailureCode, message: str) -> Failure:
    return Failure(FailureKind.REJECTED_BY_QUOTA, code, message)

def check_quest_start(state: EngineState, quest: Quest, now: datetime) -> Optional[Failure]:
    """None, если квест можно начать; иначе причина отказа"""
    if is_quota_exempt(quest):
        return None

    bucket = quest_bucket(quest)
    if bucket == BUCKET_SIDE and are_side_quests_locked(state.punishment, now):
        until = state.punishment.locked_side_quests_until
        return _quota_failure(
            FailureCode.SIDE_QUESTS_LOCKED,
            f"Побочные квесты заблокированы до {until:%d.%m.%Y %H:%M}",
        )

    limits = get_limits(state.user.rank)
    used = count_quests_used_today(state, bucket, now, exclude_id=quest.id)
    if bucket == BUCKET_MAIN and used >= limits.main_quests_per_day:
        return _quota_failure(
            FailureCode.MAIN_QUEST_QUOTA,
            f"Лимит основных квестов на сегодня исчерпан ({used}/{limits.main_quests_per_day}) для ранга {state.user.rank}",
        )
    if bucket == BUCKET_SIDE and used >= limits.side_quests_per_day:
        return _quota_failure(
            FailureCode.SIDE_QUEST_QUOTA,
            f"Лимит побочных квестов на сегодня исчерпан ({used}/{limits.side_quests_per_day}) для ранга {state.user.rank}",
        )
    return None

def check_quest_completion(state: EngineState, quest: Quest, now: datetime) -> Optional[Failure]:
    if is_quota_exempt(quest):
        return None
    if quest_bucket(quest) == BUCKET_SIDE and are_side_quests_locked(state.punishment, now):
        return check_quest_start(state, quest, now)
    # уже занял слот сегодня
    if counts_toward_today(quest, now):
        return None
    return check_quest_start(state, quest, now)

def check_mission_start(state: EngineState, mission: Mission, now: datetime) -> Optional[Failure]:
    limits = get_limits(state.user.rank)
    used = count_missions_used_today(state, now, exclude_id=mission.id)
    if used >= limits.missions_per_day:
        return _quota_failure(
            FailureCode.MISSION_QUOTA,
            f"Лимит миссий на сегодня исчерпан ({used}/{limits.missions_per_day}) для ранга {state.user.rank}",
        )
    return None

def check_mission_completion(state: EngineState, mission: Mission, now: datetime) -> Optional[Failure]:
    if counts_toward_today(mission, now):
        return None
    return check_mission_start(state, mission, now)

def get_quota_status(state: EngineState, now: datetime) -> Dict[str, Any]:
    """Использовано / лимит / остаток по каждой категории на сегодня"""
    limits = get_limits(state.user.rank)
    buckets = {
        BUCKET_MAIN: (count_quests_used_today(state, BUCKET_MAIN, now), limits.main_quests_per_day),
        BUCKET_SIDE: (count_quests_used_today(state, BUCKET_SIDE, now), limits.side_quests_per_day),
        BUCKET_DAILY: (count_quests_used_today(state, BUCKET_DAILY, now), limits.daily_quests_per_day),
        "missions": (count_missions_used_today(state, now), limits.missions_per_day),
    }
    status: Dict[str, Any] = {
        name: {"used": used, "limit": limit, "remaining": max(0, limit - used)}
        for name, (used, limit) in buckets.items()
    }
    status["rank"] = state.user.rank
    status["side_quests_locked"] = are_side_quests_locked(state.punishment, now)
    return status
