#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Soloist Engine v4.0 - Reward Journal
Оценка выполнения дня и недели и журнал пользовательских наград

is_* и get_*_details только читают состояние. set_* и claim_* ведут записи
журнала и возвращают Transition, как остальные редьюсеры.

Версия: 4.0.1
Дата: 2025-06-12
"""

import copy
import math
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .effects import EngineEvent, FailureCode, Transition, invalid, notify
from .lifecycle import get_tasks_for_date
from .models import EngineState, RewardJournalEntry, WeeklyRewardEntry, new_id
from ..utils.datetime_utils import end_of_day, is_same_day, is_within, start_of_day, start_of_week

logger = logging.getLogger(__name__)

DAILY_QUESTS_PER_DAY = 5
MISSIONS_PER_DAY = 3

WEEKLY_REQUIREMENTS = {
    "daily_quests": 30,
    "main_quests": 5,
    "side_quests": 5,
    "missions": 18,
}

def reduced_requirements() -> Dict[str, int]:
    """Облегченный режим: половина каждого требования с округлением вверх"""
    return {name: math.ceil(value / 2) for name, value in WEEKLY_REQUIREMENTS.items()}

def _completed_between(items, start: datetime, end: datetime) -> List:
    return [i for i in items if i.completed and is_within(i.completed_at, start, end)]

def _week_bounds(week_start: datetime):
    start = start_of_week(week_start)
    end = end_of_day(start + timedelta(days=6))
    return start, end

# ===== DAILY =====

def get_daily_completion_details(state: EngineState, day: datetime) -> Dict[str, Any]:
    start, end = start_of_day(day), end_of_day(day)
    tasks = get_tasks_for_date(state, day)
    daily_quests = _completed_between([q for q in state.quests if q.is_daily], start, end)
    missions = _completed_between(state.missions, start, end)

    tasks_done = sum(1 for t in tasks if t.completed)
    return {
        "date": start,
        "tasks_total": len(tasks),
        "tasks_completed": tasks_done,
        "all_tasks_completed": tasks_done == len(tasks),
        "daily_quests_completed": len(daily_quests),
        "daily_quests_required": DAILY_QUESTS_PER_DAY,
        "missions_completed": len(missions),
        "missions_required": MISSIONS_PER_DAY,
    }

def is_daily_complete(state: EngineState, day: datetime) -> bool:
    details = get_daily_completion_details(state, day)
    return (
        details["all_tasks_completed"]
        and details["daily_quests_completed"] >= DAILY_QUESTS_PER_DAY
        and details["missions_completed"] >= MISSIONS_PER_DAY
    )

# ===== WEEKLY =====

def has_weekly_planner_tasks(state: EngineState, week_start: datetime) -> bool:
    start, end = _week_bounds(week_start)
    return any(t.is_weekly_planner_task and is_within(t.task_date, start, end) for t in state.tasks)

def get_weekly_completion_details(state: EngineState, week_start: datetime,
                                  reduced: Optional[bool] = None) -> Dict[str, Any]:
    start, end = _week_bounds(week_start)
    if reduced is None:
        reduced = has_weekly_planner_tasks(state, start)
    required = reduced_requirements() if reduced else dict(WEEKLY_REQUIREMENTS)

    open_tasks = [t for t in state.tasks if t.deadline is None and is_within(t.task_date, start, end)]
    quests = _completed_between(state.quests, start, end)
    counts = {
        "daily_quests": sum(1 for q in quests if q.is_daily),
        "main_quests": sum(1 for q in quests if q.is_main_quest),
        "side_quests": sum(1 for q in quests if q.is_side_quest),
        "missions": len(_completed_between(state.missions, start, end)),
    }
    met = {name: counts[name] >= required[name] for name in required}
    tasks_done = sum(1 for t in open_tasks if t.completed)

    return {
        "week_start": start,
        "week_end": end,
        "reduced": reduced,
        "tasks_total": len(open_tasks),
        "tasks_completed": tasks_done,
        "all_tasks_completed": tasks_done == len(open_tasks),
        "counts": counts,
        "required": required,
        "met": met,
    }

def is_weekly_complete(state: EngineState, week_start: datetime, reduced: Optional[bool] = None) -> bool:
    details = get_weekly_completion_details(state, week_start, reduced)
    return details["all_tasks_completed"] and all(details["met"].values())

# ===== JOURNAL ENTRIES =====

def _find_daily_entry(state: EngineState, day: datetime) -> Optional[RewardJournalEntry]:
    for entry in state.reward_journal:
        if is_same_day(entry.date, day):
            return entry
    return None

def _find_weekly_entry(state: EngineState, week_start: datetime) -> Optional[WeeklyRewardEntry]:
    start = start_of_week(week_start)
    for entry in state.weekly_rewards:
        if entry.week_start == start:
            return entry
    return None

def set_daily_reward(state: EngineState, day: datetime, reward: str) -> Transition:
    reward = (reward or "").strip()
    if not reward:
        return invalid(state, FailureCode.INVALID_INPUT, "Награда не может быть пустой")
    existing = _find_daily_entry(state, day)
    if existing is not None and existing.claimed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Награда за этот день уже получена")

    new_state = copy.deepcopy(state)
    entry = _find_daily_entry(new_state, day)
    if entry is None:
        entry = RewardJournalEntry(id=new_id(), date=start_of_day(day))
        new_state.reward_journal.append(entry)
    entry.custom_reward = reward
    return Transition(state=new_state, result=entry)

def claim_daily_reward(state: EngineState, day: datetime, now: datetime) -> Transition:
    """Получить награду дня; повторное получение ничего не меняет"""
    if start_of_day(day) > now:
        return invalid(state, FailureCode.FUTURE_DATE, "Нельзя получить награду за будущий день")
    existing = _find_daily_entry(state, day)
    if existing is not None and existing.claimed:
        return Transition(state=state, result=existing)
    if not is_daily_complete(state, day):
        return invalid(state, FailureCode.REWARD_NOT_EARNED, "Требования дня не выполнены")

    new_state = copy.deepcopy(state)
    entry = _find_daily_entry(new_state, day)
    if entry is None:
        entry = RewardJournalEntry(id=new_id(), date=start_of_day(day))
        new_state.reward_journal.append(entry)
    entry.completed = True
    entry.claimed = True
    entry.claimed_at = now
    logger.info(f"🎁 Получена награда дня {day:%Y-%m-%d}")
    return Transition(
        state=new_state,
        effects=[notify(EngineEvent.REWARD_CLAIMED, f"Награда дня: {entry.custom_reward or 'получена'}",
                        period="daily", entry_id=entry.id)],
        result=entry,
    )

def set_weekly_reward(state: EngineState, week_start: datetime, reward: str) -> Transition:
    reward = (reward or "").strip()
    if not reward:
        return invalid(state, FailureCode.INVALID_INPUT, "Награда не может быть пустой")
    existing = _find_weekly_entry(state, week_start)
    if existing is not None and existing.claimed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Награда за эту неделю уже получена")

    new_state = copy.deepcopy(state)
    entry = _find_weekly_entry(new_state, week_start)
    if entry is None:
        start, end = _week_bounds(week_start)
        entry = WeeklyRewardEntry(id=new_id(), week_start=start, week_end=end)
        new_state.weekly_rewards.append(entry)
    entry.custom_reward = reward
    return Transition(state=new_state, result=entry)

def claim_weekly_reward(state: EngineState, week_start: datetime, now: datetime,
                        reduced: Optional[bool] = None) -> Transition:
    start, end = _week_bounds(week_start)
    if start > now:
        return invalid(state, FailureCode.FUTURE_DATE, "Нельзя получить награду за будущую неделю")
    existing = _find_weekly_entry(state, start)
    if existing is not None and existing.claimed:
        return Transition(state=state, result=existing)
    if not is_weekly_complete(state, start, reduced):
        return invalid(state, FailureCode.REWARD_NOT_EARNED, "Требования недели не выполнены")

    new_state = copy.deepcopy(state)
    entry = _find_weekly_entry(new_state, start)
    if entry is None:
        entry = WeeklyRewardEntry(id=new_id(), week_start=start, week_end=end)
        new_state.weekly_rewards.append(entry)
    entry.completed = True
    entry.claimed = True
    entry.claimed_at = now
    logger.info(f"🏆 Получена награда недели {start:%Y-%m-%d}")
    return Transition(
        state=new_state,
        effects=[notify(EngineEvent.REWARD_CLAIMED, f"Награда недели: {entry.custom_reward or 'получена'}",
                        period="weekly", entry_id=entry.id)],
        result=entry,
    )

def get_reward_journal_stats(state: EngineState, now: datetime) -> Dict[str, Any]:
    """Всего, получено, текущая и лучшая серия, итоги последних 7 дней"""
    journal = state.reward_journal
    claimed_days = sorted({e.date.date() for e in journal if e.claimed})

    longest = 0
    run = 0
    previous = None
    for day in claimed_days:
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        longest = max(longest, run)
        previous = day

    current = 0
    cursor = now.date()
    claimed_set = set(claimed_days)
    if cursor not in claimed_set:
        cursor -= timedelta(days=1)
    while cursor in claimed_set:
        current += 1
        cursor -= timedelta(days=1)

    week_ago = start_of_day(now) - timedelta(days=7)
    recent = [e for e in journal if e.date >= week_ago]
    return {
        "total_entries": len(journal),
        "claimed_rewards": sum(1 for e in journal if e.claimed),
        "current_streak": current,
        "longest_streak": longest,
        "weekly_earned": sum(1 for e in recent if e.claimed),
        "weekly_missed": sum(1 for e in recent if not e.claimed and e.custom_reward),
    }
