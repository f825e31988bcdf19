#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Soloist Engine v4.0 - Entity Lifecycle
Редьюсеры задач, квестов и миссий: создание, старт, выполнение, пропуск, удаление

Каждый редьюсер получает (state, ..., now) и возвращает Transition. Награды не
начисляются напрямую: редьюсер кладет в effects AwardExp / AwardGold /
AwardStatExp / RecordDailyWin, а оркестратор применяет их одной операцией.
При отказе возвращается исходный объект состояния без изменений.

Версия: 4.0.1
Дата: 2025-06-12
"""

import copy
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from .calculations import (
    apply_exp_modifier, base_exp_for_difficulty, gold_for_exp, missed_deadline_reward,
    rank_exp_bonus, subtask_reward,
)
from .effects import (
    AwardExp, AwardGold, AwardStatExp, Effect, EngineEvent, FailureCode, RecordDailyWin,
    TouchStreak, Transition, invalid, notify,
)
from .models import (
    Difficulty, DailyWinCategory, EngineState, ItemKind, Mission, Quest, Task,
    ValidationError, WorkItem,
)
from .progression import stat_for_category
from .punishment import apply_missed_deadline_penalty, get_exp_modifier, update_redemption
from .quota import check_mission_completion, check_mission_start, check_quest_completion, check_quest_start
from ..utils.datetime_utils import is_same_day

logger = logging.getLogger(__name__)

QUEST_STAT_BONUS = 10
SUBTASK_STAT_BONUS = 8
MISSION_RELEASE_HOURS = 24

# ===== HELPERS =====

def _copy(state: EngineState) -> EngineState:
    return copy.deepcopy(state)

def _not_found(state: EngineState, kind: ItemKind, item_id: str) -> Transition:
    return invalid(state, FailureCode.NOT_FOUND, f"{kind.value} {item_id} не найден")

def _invalid_input(state: EngineState, error: ValidationError) -> Transition:
    return invalid(state, FailureCode.INVALID_INPUT, str(error))

def _reward_effects(item: WorkItem, reward: int, modifier: float, stat_amount: int) -> List[Effect]:
    effects: List[Effect] = []
    if reward > 0:
        effects.append(AwardExp(reward, source_id=item.id))
        effects.append(AwardGold(gold_for_exp(reward)))
    if stat_amount > 0:
        effects.append(AwardStatExp(stat_for_category(item.category), stat_amount))
    effects.append(RecordDailyWin(item.category, item.id, modifier))
    effects.append(TouchStreak())
    return effects

def _finish(state: EngineState, item: WorkItem, now: datetime, penalize: bool = True):
    """
    Отмечает элемент выполненным и считает награду.

    Путь пропущенного дедлайна: missed=True, штраф до расчета награды (один раз),
    50% от exp_reward без общего модификатора. Иначе exp_reward × модификатор
    штрафа × бонус ранга. Возвращает (награда, список уведомлений).
    """
    events: List[Effect] = []
    overdue = item.deadline is not None and now > item.deadline
    if overdue or item.missed:
        if not item.missed:
            item.missed = True
            if penalize:
                events.extend(apply_missed_deadline_penalty(state.punishment, item, now))
        reward = missed_deadline_reward(item.exp_reward)
    else:
        modifier = get_exp_modifier(state.punishment) * rank_exp_bonus(state.user.rank)
        reward = apply_exp_modifier(item.exp_reward, modifier)

    item.completed = True
    item.completed_at = now
    events.append(notify(
        EngineEvent.ITEM_COMPLETED, f"Выполнено: {item.title} (+{reward} EXP)",
        item_id=item.id, kind=item.kind.value, exp=reward, missed=item.missed,
    ))
    return reward, events

# ===== CREATE =====

def create_task(state: EngineState, title: str, now: datetime, *, description: str = "",
                category: str = DailyWinCategory.PHYSICAL.value,
                difficulty: str = Difficulty.MEDIUM.value,
                deadline: Optional[datetime] = None,
                scheduled_for: Optional[datetime] = None,
                is_weekly_planner_task: bool = False) -> Transition:
    """Новая задача; награда фиксируется по сложности на момент создания"""
    try:
        task = Task.create(
            title, now,
            description=description,
            category=category,
            difficulty=difficulty,
            exp_reward=base_exp_for_difficulty(difficulty),
            deadline=deadline,
            scheduled_for=scheduled_for,
            is_weekly_planner_task=is_weekly_planner_task,
        )
    except (ValidationError, ValueError) as e:
        return _invalid_input(state, e)

    new_state = _copy(state)
    new_state.tasks.append(task)
    logger.debug(f"📝 Создана задача {task.id}: {task.title}")
    return Transition(state=new_state, result=task)

def create_quest(state: EngineState, title: str, now: datetime, *, description: str = "",
                 category: str = DailyWinCategory.PHYSICAL.value,
                 difficulty: str = Difficulty.MEDIUM.value,
                 exp_reward: Optional[int] = None,
                 deadline: Optional[datetime] = None,
                 is_main_quest: bool = False,
                 is_daily: bool = False,
                 tasks: Sequence[str] = ()) -> Transition:
    """Новый квест; подзадачи получают четверть награды квеста"""
    try:
        reward = base_exp_for_difficulty(difficulty) if exp_reward is None else exp_reward
        quest = Quest.create(
            title, now,
            description=description,
            category=category,
            difficulty=difficulty,
            exp_reward=reward,
            deadline=deadline,
            is_main_quest=is_main_quest,
            is_daily=is_daily,
        )
        quest.tasks = [
            Task.create(name, now, category=quest.category, difficulty=quest.difficulty,
                        exp_reward=subtask_reward(quest.exp_reward))
            for name in tasks
        ]
    except (ValidationError, ValueError) as e:
        return _invalid_input(state, e)

    new_state = _copy(state)
    new_state.quests.append(quest)
    logger.debug(f"🗺️ Создан квест {quest.id}: {quest.title}")
    return Transition(state=new_state, result=quest)

def add_quest_task(state: EngineState, quest_id: str, title: str, now: datetime,
                   deadline: Optional[datetime] = None) -> Transition:
    quest = state.find_quest(quest_id)
    if quest is None:
        return _not_found(state, ItemKind.QUEST, quest_id)
    if quest.completed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Квест уже выполнен")

    reward = 0 if quest.is_recovery_quest else subtask_reward(quest.exp_reward)
    try:
        task = Task.create(title, now, category=quest.category, difficulty=quest.difficulty,
                           exp_reward=reward, deadline=deadline)
    except (ValidationError, ValueError) as e:
        return _invalid_input(state, e)

    new_state = _copy(state)
    new_state.find_quest(quest_id).tasks.append(task)
    return Transition(state=new_state, result=task)

def create_mission(state: EngineState, title: str, now: datetime, *, description: str = "",
                   category: str = DailyWinCategory.PHYSICAL.value,
                   difficulty: str = Difficulty.MEDIUM.value,
                   exp_reward: Optional[int] = None,
                   deadline: Optional[datetime] = None,
                   rank: Optional[str] = None,
                   day: int = 1,
                   count: Optional[int] = None,
                   task_names: Sequence[str] = ()) -> Transition:
    try:
        reward = base_exp_for_difficulty(difficulty) if exp_reward is None else exp_reward
        mission = Mission.create(
            title, now,
            description=description,
            category=category,
            difficulty=difficulty,
            exp_reward=reward,
            deadline=deadline,
            rank=rank or state.user.rank,
            day=day,
            count=count if count is not None else max(1, len(task_names)),
            task_names=list(task_names),
        )
    except (ValidationError, ValueError) as e:
        return _invalid_input(state, e)

    new_state = _copy(state)
    new_state.missions.append(mission)
    logger.debug(f"🎯 Создана миссия {mission.id}: {mission.title}")
    return Transition(state=new_state, result=mission)

# ===== START =====

def start_quest(state: EngineState, quest_id: str, now: datetime) -> Transition:
    quest = state.find_quest(quest_id)
    if quest is None:
        return _not_found(state, ItemKind.QUEST, quest_id)
    if quest.completed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Квест уже выполнен")
    if quest.started:
        return invalid(state, FailureCode.ALREADY_STARTED, "Квест уже начат")

    failure = check_quest_start(state, quest, now)
    if failure is not None:
        logger.info(f"🚫 Старт квеста {quest_id} отклонен: {failure.message}")
        return Transition(state=state, failure=failure)

    new_state = _copy(state)
    target = new_state.find_quest(quest_id)
    target.started = True
    target.started_at = now
    return Transition(state=new_state, result=target)

def start_mission(state: EngineState, mission_id: str, now: datetime) -> Transition:
    mission = state.find(ItemKind.MISSION, mission_id)
    if mission is None:
        return _not_found(state, ItemKind.MISSION, mission_id)
    if mission.completed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Миссия уже выполнена")
    if mission.started:
        return invalid(state, FailureCode.ALREADY_STARTED, "Миссия уже начата")

    failure = check_mission_start(state, mission, now)
    if failure is not None:
        logger.info(f"🚫 Старт миссии {mission_id} отклонен: {failure.message}")
        return Transition(state=state, failure=failure)

    new_state = _copy(state)
    target = new_state.find(ItemKind.MISSION, mission_id)
    target.started = True
    target.started_at = now
    return Transition(state=new_state, result=target)

# ===== COMPLETE =====

def complete_task(state: EngineState, task_id: str, now: datetime) -> Transition:
    task = state.find(ItemKind.TASK, task_id)
    if task is None:
        return _not_found(state, ItemKind.TASK, task_id)
    if task.completed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Задача уже выполнена")

    new_state = _copy(state)
    target = new_state.find(ItemKind.TASK, task_id)
    reward, events = _finish(new_state, target, now)
    modifier = get_exp_modifier(new_state.punishment)
    effects = events + _reward_effects(target, reward, modifier, reward // 2)
    return Transition(state=new_state, effects=effects, result=reward)

def complete_quest_task(state: EngineState, quest_id: str, task_id: str, now: datetime) -> Transition:
    """Подзадача квеста; подзадачи восстановительных квестов EXP не дают"""
    quest = state.find_quest(quest_id)
    if quest is None:
        return _not_found(state, ItemKind.QUEST, quest_id)
    if quest.completed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Квест уже выполнен")
    task = quest.find_task(task_id)
    if task is None:
        return _not_found(state, ItemKind.TASK, task_id)
    if task.completed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Подзадача уже выполнена")

    new_state = _copy(state)
    target_quest = new_state.find_quest(quest_id)
    target = target_quest.find_task(task_id)

    if target_quest.is_recovery_quest:
        target.completed = True
        target.completed_at = now
        return Transition(state=new_state, effects=[notify(
            EngineEvent.ITEM_COMPLETED, f"Шаг искупления выполнен: {target.title}",
            item_id=target.id, kind=ItemKind.TASK.value, exp=0, missed=False,
        )], result=0)

    reward, events = _finish(new_state, target, now)
    modifier = get_exp_modifier(new_state.punishment)
    effects = events + _reward_effects(target, reward, modifier, SUBTASK_STAT_BONUS)
    return Transition(state=new_state, effects=effects, result=reward)

def complete_quest(state: EngineState, quest_id: str, now: datetime) -> Transition:
    quest = state.find_quest(quest_id)
    if quest is None:
        return _not_found(state, ItemKind.QUEST, quest_id)
    if quest.completed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Квест уже выполнен")
    if not quest.all_tasks_completed:
        done = sum(1 for t in quest.tasks if t.completed)
        return invalid(state, FailureCode.SUBTASKS_INCOMPLETE,
                       f"Сначала выполните все подзадачи ({done}/{len(quest.tasks)})")

    failure = check_quest_completion(state, quest, now)
    if failure is not None:
        logger.info(f"🚫 Выполнение квеста {quest_id} отклонено: {failure.message}")
        return Transition(state=state, failure=failure)

    new_state = _copy(state)
    target = new_state.find_quest(quest_id)
    reward, events = _finish(new_state, target, now, penalize=not target.is_recovery_quest)
    modifier = get_exp_modifier(new_state.punishment)
    effects = events + _reward_effects(target, reward, modifier, QUEST_STAT_BONUS)

    if target.is_recovery_quest:
        effects.extend(update_redemption(new_state, now))
    return Transition(state=new_state, effects=effects, result=reward)

def complete_mission_step(state: EngineState, mission_id: str, index: int, now: datetime) -> Transition:
    mission = state.find(ItemKind.MISSION, mission_id)
    if mission is None:
        return _not_found(state, ItemKind.MISSION, mission_id)
    if mission.completed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Миссия уже выполнена")
    if not 0 <= index < mission.count:
        return invalid(state, FailureCode.INVALID_STEP, f"Шаг {index} вне диапазона 0..{mission.count - 1}")
    if index in mission.completed_task_indices:
        return invalid(state, FailureCode.ALREADY_COMPLETED, f"Шаг {index} уже выполнен")

    new_state = _copy(state)
    target = new_state.find(ItemKind.MISSION, mission_id)
    target.completed_task_indices.append(index)
    return Transition(state=new_state, result=len(target.completed_task_indices))

def complete_mission(state: EngineState, mission_id: str, now: datetime) -> Transition:
    mission = state.find(ItemKind.MISSION, mission_id)
    if mission is None:
        return _not_found(state, ItemKind.MISSION, mission_id)
    if mission.completed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, "Миссия уже выполнена")
    if not mission.all_steps_completed:
        return invalid(state, FailureCode.MISSION_STEPS_INCOMPLETE,
                       f"Выполнено шагов {len(set(mission.completed_task_indices))}/{mission.count}")

    failure = check_mission_completion(state, mission, now)
    if failure is not None:
        logger.info(f"🚫 Выполнение миссии {mission_id} отклонено: {failure.message}")
        return Transition(state=state, failure=failure)

    new_state = _copy(state)
    target = new_state.find(ItemKind.MISSION, mission_id)
    reward, events = _finish(new_state, target, now)
    modifier = get_exp_modifier(new_state.punishment)
    effects = events + _reward_effects(target, reward, modifier, reward // 2)
    return Transition(state=new_state, effects=effects, result=reward)

# ===== MISSED =====

def _mark_missed(state: EngineState, item: WorkItem, now: datetime) -> List[Effect]:
    item.missed = True
    if isinstance(item, Quest) and item.is_recovery_quest:
        # исход восстановительных квестов решает искупление, шанс не тратится
        return []
    return list(apply_missed_deadline_penalty(state.punishment, item, now))

def mark_item_missed(state: EngineState, kind: ItemKind, item_id: str, now: datetime) -> Transition:
    """Явная отметка пропуска; повторный вызов ничего не меняет"""
    item = state.find(kind, item_id)
    if item is None:
        return _not_found(state, kind, item_id)
    if item.completed:
        return invalid(state, FailureCode.ALREADY_COMPLETED, f"{kind.value} уже выполнен")
    if item.missed:
        return Transition(state=state, result=False)

    new_state = _copy(state)
    effects = _mark_missed(new_state, new_state.find(kind, item_id), now)
    return Transition(state=new_state, effects=effects, result=True)

def _overdue_items(state: EngineState, now: datetime):
    return [
        (kind, item.id)
        for kind in (ItemKind.TASK, ItemKind.QUEST, ItemKind.MISSION)
        for item in state.collection(kind)
        if not item.missed and item.is_overdue(now)
    ]

def update_missed_deadlines(state: EngineState, now: datetime) -> List[Effect]:
    """То же, что sweep_missed_deadlines, но над рабочей копией на месте"""
    overdue = _overdue_items(state, now)
    effects: List[Effect] = []
    for kind, item_id in overdue:
        effects.extend(_mark_missed(state, state.find(kind, item_id), now))
    if overdue:
        logger.info(f"⏰ Сверка дедлайнов: пропущено {len(overdue)}")
    return effects

def sweep_missed_deadlines(state: EngineState, now: datetime) -> Transition:
    """Пометить все невыполненные элементы с истекшим дедлайном; идемпотентно"""
    overdue = _overdue_items(state, now)
    if not overdue:
        return Transition(state=state, result=[])

    new_state = _copy(state)
    effects = update_missed_deadlines(new_state, now)
    return Transition(state=new_state, effects=effects, result=[item_id for _, item_id in overdue])

# ===== DELETE =====

def _delete(state: EngineState, kind: ItemKind, item_id: str) -> Transition:
    if state.find(kind, item_id) is None:
        return _not_found(state, kind, item_id)
    new_state = _copy(state)
    collection = new_state.collection(kind)
    collection[:] = [item for item in collection if item.id != item_id]
    logger.debug(f"🗑️ Удален {kind.value} {item_id}")
    return Transition(state=new_state, result=item_id)

def delete_task(state: EngineState, task_id: str) -> Transition:
    return _delete(state, ItemKind.TASK, task_id)

def delete_quest(state: EngineState, quest_id: str) -> Transition:
    """Квест активной пачки искупления удалить нельзя, только прервать искупление"""
    p = state.punishment
    if p.has_pending_recovery and quest_id in (p.active_recovery_quest_ids or []):
        return invalid(state, FailureCode.RECOVERY_PENDING,
                       "Квест входит в активное искупление, используйте abandon_redemption")
    return _delete(state, ItemKind.QUEST, quest_id)

def delete_mission(state: EngineState, mission_id: str) -> Transition:
    return _delete(state, ItemKind.MISSION, mission_id)

# ===== SELECTORS =====

def get_tasks_for_date(state: EngineState, day: datetime) -> List[Task]:
    return [task for task in state.tasks if is_same_day(task.task_date, day)]

def get_completed_tasks_for_date(state: EngineState, day: datetime) -> List[Task]:
    return [task for task in get_tasks_for_date(state, day) if task.completed]

def get_incomplete_tasks_for_date(state: EngineState, day: datetime) -> List[Task]:
    return [task for task in get_tasks_for_date(state, day) if not task.completed]

def has_completed_mission_today(state: EngineState, now: datetime) -> bool:
    return any(m.completed and is_same_day(m.completed_at, now) for m in state.missions)

def _last_mission_completion(state: EngineState) -> Optional[datetime]:
    times = [m.completed_at for m in state.missions if m.completed and m.completed_at is not None]
    return max(times) if times else None

def get_next_mission_release(state: EngineState) -> Optional[datetime]:
    """Момент выпуска следующей миссии: последнее выполнение + 24 часа; None без выполненных миссий"""
    last = _last_mission_completion(state)
    if last is None:
        return None
    return last + timedelta(hours=MISSION_RELEASE_HOURS)

def has_completed_mission_recently(state: EngineState, now: datetime,
                                   hours: int = MISSION_RELEASE_HOURS) -> bool:
    """Была ли миссия выполнена за последние hours часов"""
    last = _last_mission_completion(state)
    return last is not None and now - last < timedelta(hours=hours)

def get_mission_stats(state: EngineState, now: datetime) -> Dict[str, Any]:
    """Всего, выполнено, сегодня, серия дней подряд с выполненной миссией"""
    completed_days = {m.completed_at.date() for m in state.missions if m.completed and m.completed_at}
    streak = 0
    cursor = now.date()
    if cursor not in completed_days:
        cursor -= timedelta(days=1)
    while cursor in completed_days:
        streak += 1
        cursor -= timedelta(days=1)
    return {
        "total": len(state.missions),
        "completed": sum(1 for m in state.missions if m.completed),
        "completed_today": sum(
            1 for m in state.missions if m.completed and is_same_day(m.completed_at, now)
        ),
        "streak": streak,
        "next_release": get_next_mission_release(state),
    }
