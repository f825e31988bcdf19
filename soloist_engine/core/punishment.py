#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Soloist Engine v4.0 - Penalty State Machine
Штрафы за пропущенные дедлайны, теневая усталость, проклятие и искупление

Цепочка состояний: чисто -> теневая усталость -> проклятие -> (искупление)
чисто с остаточной усталостью. Блокировка побочных квестов идет отдельным флагом.

Функции update_* и apply_missed_deadline_penalty работают над рабочей копией на месте;
публичные редьюсеры копируют состояние и возвращают Transition.

Версия: 4.0.1
Дата: 2025-06-12
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from .calculations import base_exp_for_difficulty
from .effects import (
    Failure, FailureCode, FailureKind, Notify, EngineEvent, Transition, fail, notify,
)
from .models import (
    Difficulty, EngineState, Quest, PunishmentState, Task, WorkItem, DailyWinCategory,
)
from .progression import demote_level
from ..utils.datetime_utils import end_of_day, end_of_week, start_of_week

logger = logging.getLogger(__name__)

MAX_CHANCES = 5
MAIN_QUEST_MISS_LIMIT = 3
SIDE_QUEST_LOCK_DAYS = 7

CURSED_MODIFIER = 0.5
FATIGUE_MODIFIER = 0.75
NORMAL_MODIFIER = 1.0

@dataclass(frozen=True)
class RecoveryChallenge:
    """Шаблон восстановительного квеста"""
    title: str
    description: str
    category: str = DailyWinCategory.PHYSICAL.value
    difficulty: str = Difficulty.MEDIUM.value
    tasks: Sequence[str] = field(default_factory=tuple)

# ===== MODIFIER =====

def get_exp_modifier(punishment: PunishmentState) -> float:
    """0.5 при проклятии (независимо от усталости), 0.75 при усталости, иначе 1.0"""
    if punishment.is_cursed:
        return CURSED_MODIFIER
    if punishment.has_shadow_fatigue:
        return FATIGUE_MODIFIER
    return NORMAL_MODIFIER

def chances_remaining(punishment: PunishmentState) -> int:
    return max(0, MAX_CHANCES - punishment.chance_counter)

def are_side_quests_locked(punishment: PunishmentState, now: datetime) -> bool:
    until = punishment.locked_side_quests_until
    return until is not None and until > now

# ===== MISSED DEADLINE =====

def apply_missed_deadline_penalty(punishment: PunishmentState, item: WorkItem, now: datetime) -> List[Notify]:
    """Эскалация штрафа за один пропущенный дедлайн (изменяет punishment на месте)"""
    punishment.chance_counter += 1
    events = [notify(
        EngineEvent.DEADLINE_MISSED,
        f"Дедлайн пропущен: {item.title}. Шансы: {chances_remaining(punishment)}/{MAX_CHANCES}",
        item_id=item.id, kind=item.kind.value, chance_counter=punishment.chance_counter,
    )]
    logger.info(f"⏰ Пропущен дедлайн {item.kind.value} {item.id}, счетчик шансов {punishment.chance_counter}")

    if isinstance(item, Quest) and item.is_main_quest:
        punishment.missed_main_quest_streak += 1
        if punishment.missed_main_quest_streak >= MAIN_QUEST_MISS_LIMIT:
            punishment.locked_side_quests_until = now + timedelta(days=SIDE_QUEST_LOCK_DAYS)
            punishment.missed_main_quest_streak = 0
            logger.warning("🔒 Побочные квесты заблокированы на 7 дней")
            events.append(notify(
                EngineEvent.SIDE_QUESTS_LOCKED,
                "Три основных квеста подряд пропущены: побочные квесты заблокированы на 7 дней",
                until=punishment.locked_side_quests_until.isoformat(),
            ))
    else:
        punishment.missed_main_quest_streak = 0

    if punishment.chance_counter >= MAX_CHANCES:
        if not punishment.is_cursed:
            punishment.is_cursed = True
            punishment.cursed_until = end_of_week(now)
            punishment.has_shadow_fatigue = False
            punishment.shadow_fatigue_until = None
            logger.warning(f"💀 Наложено проклятие до {punishment.cursed_until}")
            events.append(notify(
                EngineEvent.CURSE_APPLIED, "Шансы исчерпаны: проклятие, EXP x0.5 до конца недели",
                until=punishment.cursed_until.isoformat(),
            ))
    else:
        punishment.has_shadow_fatigue = True
        punishment.shadow_fatigue_until = end_of_week(now)
        events.append(notify(
            EngineEvent.SHADOW_FATIGUE_APPLIED, "Теневая усталость: EXP x0.75 до конца недели",
            until=punishment.shadow_fatigue_until.isoformat(),
        ))
    return events

# ===== TIME-BASED TRANSITIONS =====

def update_penalty_expiry(state: EngineState, now: datetime) -> List[Notify]:
    p = state.punishment
    events: List[Notify] = []

    if p.is_cursed and p.cursed_until is not None and now > p.cursed_until:
        p.is_cursed = False
        p.cursed_until = None
        # после проклятия остается хвост усталости
        p.has_shadow_fatigue = True
        p.shadow_fatigue_until = end_of_week(now)
        logger.info("✨ Проклятие истекло, теневая усталость до конца недели")
        events.append(notify(EngineEvent.CURSE_LIFTED, "Проклятие истекло", reason="expired"))

    if p.has_shadow_fatigue and p.shadow_fatigue_until is not None and now > p.shadow_fatigue_until:
        p.has_shadow_fatigue = False
        p.shadow_fatigue_until = None
        events.append(notify(EngineEvent.SHADOW_FATIGUE_CLEARED, "Теневая усталость прошла"))

    if p.locked_side_quests_until is not None and now >= p.locked_side_quests_until:
        p.locked_side_quests_until = None
        events.append(notify(EngineEvent.SIDE_QUESTS_UNLOCKED, "Побочные квесты снова доступны"))

    return events

def update_weekly_reset(state: EngineState, now: datetime) -> List[Notify]:
    """Один раз за неделю (с воскресенья): шансы, проклятие, усталость, попытка искупления"""
    p = state.punishment
    week_start = start_of_week(now)
    if p.last_weekly_reset is None:
        p.last_weekly_reset = week_start
        return []
    if p.last_weekly_reset >= week_start:
        return []

    p.chance_counter = 0
    p.is_cursed = False
    p.cursed_until = None
    p.has_shadow_fatigue = False
    p.shadow_fatigue_until = None
    p.last_redemption_date = None
    p.has_pending_recovery = False
    p.active_recovery_quest_ids = None
    p.last_weekly_reset = week_start
    logger.info(f"🔄 Еженедельный сброс штрафов ({week_start:%Y-%m-%d})")
    return [notify(EngineEvent.WEEKLY_RESET, "Новая неделя: шансы восстановлены", week_start=week_start.isoformat())]

def _copy(state: EngineState) -> EngineState:
    return copy.deepcopy(state)

def expire_penalties(state: EngineState, now: datetime) -> Transition:
    new_state = _copy(state)
    return Transition(state=new_state, effects=list(update_penalty_expiry(new_state, now)))

def apply_weekly_reset(state: EngineState, now: datetime) -> Transition:
    new_state = _copy(state)
    return Transition(state=new_state, effects=list(update_weekly_reset(new_state, now)))

# ===== REDEMPTION =====

def redemption_block_reason(punishment: PunishmentState) -> Optional[Failure]:
    if not punishment.is_cursed:
        return Failure(FailureKind.REDEMPTION_UNAVAILABLE, FailureCode.NOT_CURSED,
                       "Проклятия нет, искупление не требуется")
    if punishment.has_pending_recovery:
        return Failure(FailureKind.REDEMPTION_UNAVAILABLE, FailureCode.RECOVERY_PENDING,
                       "Восстановительные квесты уже выполняются")
    if punishment.last_redemption_date is not None:
        return Failure(FailureKind.REDEMPTION_UNAVAILABLE, FailureCode.REDEMPTION_USED,
                       "Попытка искупления на этой неделе уже использована")
    return None

def can_use_redemption(punishment: PunishmentState) -> bool:
    return redemption_block_reason(punishment) is None

def _build_recovery_quest(challenge: RecoveryChallenge, now: datetime) -> Quest:
    deadline = end_of_day(now)
    tasks = [
        Task.create(name, now, category=challenge.category, difficulty=challenge.difficulty,
                    exp_reward=0, deadline=deadline)
        for name in challenge.tasks
    ]
    return Quest.create(
        challenge.title, now,
        description=challenge.description,
        category=challenge.category,
        difficulty=challenge.difficulty,
        exp_reward=base_exp_for_difficulty(challenge.difficulty),
        deadline=deadline,
        started=True,
        started_at=now,
        is_recovery_quest=True,
        tasks=tasks,
    )

def start_redemption(state: EngineState, challenges: Sequence[RecoveryChallenge], now: datetime) -> Transition:
    """Создает пачку восстановительных квестов с дедлайном до конца дня"""
    reason = redemption_block_reason(state.punishment)
    if reason is not None:
        return Transition(state=state, failure=reason)
    if not challenges:
        return fail(state, FailureKind.REDEMPTION_UNAVAILABLE, FailureCode.INVALID_INPUT,
                    "Каталог испытаний искупления пуст")

    new_state = _copy(state)
    quests = [_build_recovery_quest(c, now) for c in challenges]
    new_state.quests.extend(quests)

    p = new_state.punishment
    p.active_recovery_quest_ids = [q.id for q in quests]
    p.has_pending_recovery = True
    p.last_redemption_date = now

    logger.info(f"🛡️ Начато искупление: {len(quests)} восстановительных квестов")
    return Transition(
        state=new_state,
        effects=[notify(
            EngineEvent.REDEMPTION_STARTED,
            f"Искупление начато: выполните {len(quests)} испытания до конца дня",
            quest_ids=list(p.active_recovery_quest_ids),
        )],
        result=list(p.active_recovery_quest_ids),
    )

def _redemption_success(p: PunishmentState, now: datetime) -> List[Notify]:
    p.is_cursed = False
    p.cursed_until = None
    p.chance_counter = max(0, p.chance_counter - 1)
    p.has_shadow_fatigue = True
    p.shadow_fatigue_until = end_of_week(now)
    p.has_pending_recovery = False
    p.active_recovery_quest_ids = None
    logger.info("✅ Искупление успешно, проклятие снято")
    return [
        notify(EngineEvent.REDEMPTION_SUCCEEDED, "Искупление успешно!", chance_counter=p.chance_counter),
        notify(EngineEvent.CURSE_LIFTED, "Проклятие снято", reason="redemption"),
    ]

def update_redemption(state: EngineState, now: datetime) -> List[Notify]:
    p = state.punishment
    if not p.has_pending_recovery:
        return []

    ids = p.active_recovery_quest_ids or []
    quests = [q for q in (state.find_quest(i) for i in ids) if q is not None]
    if not ids or len(quests) < len(ids):
        # неполная пачка не может снять проклятие
        logger.warning(f"⚠️ Восстановительных квестов не найдено: {len(ids) - len(quests)}, ожидание искупления снято")
        p.has_pending_recovery = False
        p.active_recovery_quest_ids = None
        return [notify(EngineEvent.REDEMPTION_ABANDONED, "Искупление прервано")]

    incomplete = [q for q in quests if not q.completed]
    if not incomplete and not any(q.missed for q in quests):
        return _redemption_success(p, now)

    deadline_passed = any(q.deadline is not None and now > q.deadline for q in incomplete)
    if not (deadline_passed or any(q.missed for q in quests)):
        return []

    for quest in incomplete:
        quest.completed = True
        quest.missed = True
        quest.completed_at = now
    p.has_pending_recovery = False
    p.active_recovery_quest_ids = None
    logger.warning("❌ Искупление провалено: дедлайн восстановительных квестов истек")
    return [notify(EngineEvent.REDEMPTION_FAILED, "Искупление провалено, проклятие остается",
                   quest_ids=[q.id for q in quests])]

def resolve_redemption(state: EngineState, now: datetime) -> Transition:
    """Успех, если вся пачка выполнена в срок; автопровал, если дедлайн прошел"""
    new_state = _copy(state)
    return Transition(state=new_state, effects=list(update_redemption(new_state, now)))

def attempt_redemption(state: EngineState, success: bool, now: datetime) -> Transition:
    """Ручной исход искупления: успех снимает проклятие, провал понижает уровень"""
    reason = redemption_block_reason(state.punishment)
    if reason is not None:
        return Transition(state=state, failure=reason)

    new_state = _copy(state)
    p = new_state.punishment
    p.last_redemption_date = now

    if success:
        return Transition(state=new_state, effects=list(_redemption_success(p, now)))

    old_level = new_state.user.level
    demote_level(new_state.user)
    logger.warning(f"⬇️ Провал искупления: уровень {old_level} → {new_state.user.level}")
    return Transition(state=new_state, effects=[notify(
        EngineEvent.REDEMPTION_FAILED, "Искупление провалено: уровень понижен",
        old_level=old_level, new_level=new_state.user.level,
    )])

def abandon_redemption(state: EngineState, now: datetime) -> Transition:
    """Отказ от текущей пачки; проклятие остается, попытка недели израсходована"""
    if not state.punishment.has_pending_recovery:
        return fail(state, FailureKind.REDEMPTION_UNAVAILABLE, FailureCode.NO_PENDING_RECOVERY,
                    "Нет активного искупления")
    new_state = _copy(state)
    p = new_state.punishment
    p.has_pending_recovery = False
    p.active_recovery_quest_ids = None
    logger.info(f"🏳️ Искупление прервано пользователем ({now:%Y-%m-%d %H:%M})")
    return Transition(state=new_state, effects=[notify(EngineEvent.REDEMPTION_ABANDONED, "Искупление прервано")])

# ===== STATUS =====

def get_penalty_status(punishment: PunishmentState, now: datetime) -> Dict[str, Any]:
    return {
        "exp_modifier": get_exp_modifier(punishment),
        "chance_counter": punishment.chance_counter,
        "chances_remaining": chances_remaining(punishment),
        "is_cursed": punishment.is_cursed,
        "cursed_until": punishment.cursed_until,
        "has_shadow_fatigue": punishment.has_shadow_fatigue,
        "shadow_fatigue_until": punishment.shadow_fatigue_until,
        "side_quests_locked": are_side_quests_locked(punishment, now),
        "locked_side_quests_until": punishment.locked_side_quests_until,
        "missed_main_quest_streak": punishment.missed_main_quest_streak,
        "can_use_redemption": can_use_redemption(punishment),
        "has_pending_recovery": punishment.has_pending_recovery,
    }
