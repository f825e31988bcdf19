# core/progression.py

"""
Прогрессия пользователя: EXP и уровни, золото, атрибуты, ежедневные победы, серии.

Функции add_*, update_*, spend_gold, boost_stat и demote_level изменяют User на месте и
возвращают список уведомлений. Их вызывают только над рабочей копией состояния
(apply_effects делает копию сама).
"""

import copy
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from .calculations import exp_to_next_level, rank_from_level, rank_index
from .effects import (
    AwardExp, AwardGold, AwardStatExp, BoostStat, Effect, EngineEvent, Notify, RecordDailyWin,
    SpendGold, TouchStreak, Transition, notify,
)
from .models import DailyWinCategory, EngineState, Stat, STAT_EXP_PER_LEVEL, User

logger = logging.getLogger(__name__)

DAILY_WIN_STAT_EXP = 10

# Категория ежедневной победы -> атрибут
CATEGORY_TO_STAT = {
    DailyWinCategory.MENTAL.value: Stat.EMOTIONAL.value,
    DailyWinCategory.PHYSICAL.value: Stat.PHYSICAL.value,
    DailyWinCategory.SPIRITUAL.value: Stat.SPIRITUAL.value,
    DailyWinCategory.INTELLIGENCE.value: Stat.COGNITIVE.value,
}

# Атрибут -> категория ежедневной победы
STAT_TO_CATEGORY = {
    Stat.PHYSICAL.value: DailyWinCategory.PHYSICAL.value,
    Stat.COGNITIVE.value: DailyWinCategory.INTELLIGENCE.value,
    Stat.EMOTIONAL.value: DailyWinCategory.MENTAL.value,
    Stat.SPIRITUAL.value: DailyWinCategory.SPIRITUAL.value,
    Stat.SOCIAL.value: DailyWinCategory.MENTAL.value,
}

def stat_for_category(category: str) -> str:
    """Атрибут, который прокачивает элемент данной категории"""
    if category in CATEGORY_TO_STAT:
        return CATEGORY_TO_STAT[category]
    return Stat(category).value

def daily_win_category_for(category: str) -> str:
    if category in CATEGORY_TO_STAT:
        return category
    return STAT_TO_CATEGORY[Stat(category).value]

# ===== EXP / LEVEL =====

def add_exp(user: User, amount: int) -> List[Notify]:
    """Начисление EXP с переносом остатка через любое число уровней"""
    if amount <= 0:
        return []

    events: List[Notify] = []
    old_level = user.level
    old_rank = user.rank

    user.exp += amount
    user.exp_to_next_level = exp_to_next_level(user.level)
    while user.exp >= user.exp_to_next_level:
        user.exp -= user.exp_to_next_level
        user.level += 1
        user.exp_to_next_level = exp_to_next_level(user.level)

    user.rank = rank_from_level(user.level).value

    events.append(notify(EngineEvent.EXP_AWARDED, f"+{amount} EXP", amount=amount))
    if user.level > old_level:
        logger.info(f"🎉 Новый уровень: {old_level} → {user.level}")
        events.append(notify(
            EngineEvent.LEVEL_UP, f"Уровень {user.level}!",
            old_level=old_level, new_level=user.level, levels_gained=user.level - old_level,
        ))
    if rank_index(user.rank) > rank_index(old_rank):
        logger.info(f"🏅 Новый ранг: {old_rank} → {user.rank}")
        events.append(notify(EngineEvent.RANK_UP, f"Ранг {user.rank}!", old_rank=old_rank, new_rank=user.rank))
    return events

def add_gold(user: User, amount: int) -> List[Notify]:
    if amount <= 0:
        return []
    user.gold += amount
    return [notify(EngineEvent.GOLD_AWARDED, f"+{amount} золота", amount=amount)]

def spend_gold(user: User, amount: int) -> None:
    """Списание золота; достаточность проверяет редьюсер"""
    if amount > 0:
        user.gold = max(0, user.gold - amount)

def add_stat_exp(user: User, stat: str, amount: int) -> List[Notify]:
    """Атрибуты качаются независимо, 100 EXP на уровень"""
    if amount <= 0:
        return []
    stat = Stat(stat).value
    stats = user.stats
    stats.exp[stat] = stats.exp.get(stat, 0) + amount
    levels_gained = 0
    while stats.exp[stat] >= STAT_EXP_PER_LEVEL:
        stats.exp[stat] -= STAT_EXP_PER_LEVEL
        stats.levels[stat] = stats.levels.get(stat, 1) + 1
        levels_gained += 1
    if levels_gained:
        return [notify(
            EngineEvent.STAT_LEVEL_UP, f"{stat}: уровень {stats.levels[stat]}",
            stat=stat, level=stats.levels[stat],
        )]
    return []

def boost_stat(user: User, stat: str, levels: int = 1) -> List[Notify]:
    """Повышение уровня атрибута без изменения EXP внутри уровня"""
    if levels <= 0:
        return []
    stat = Stat(stat).value
    user.stats.levels[stat] = user.stats.levels.get(stat, 1) + levels
    logger.info(f"💪 Атрибут {stat} повышен до {user.stats.levels[stat]}")
    return [notify(
        EngineEvent.STAT_LEVEL_UP, f"{stat}: уровень {user.stats.levels[stat]}",
        stat=stat, level=user.stats.levels[stat],
    )]

def demote_level(user: User) -> None:
    """Понижение уровня на 1 (не ниже 1) и обнуление EXP"""
    user.level = max(1, user.level - 1)
    user.exp = 0
    user.exp_to_next_level = exp_to_next_level(user.level)
    user.rank = rank_from_level(user.level).value

# ===== DAILY WINS =====

def update_daily_win(user: User, category: str, item_id: str, modifier: float, now: datetime) -> List[Notify]:
    """Одна победа на категорию в день; первая дает floor(10 × modifier) EXP атрибута"""
    category = daily_win_category_for(category)
    progress = user.daily_wins[category]
    if progress.count > 0 and progress.last_updated is not None and progress.last_updated.date() == now.date():
        return []

    progress.count = 1
    progress.item_id = item_id
    progress.last_updated = now

    events = [notify(EngineEvent.DAILY_WIN, f"Победа дня: {category}", category=category, item_id=item_id)]
    bonus = int(DAILY_WIN_STAT_EXP * modifier)
    events.extend(add_stat_exp(user, CATEGORY_TO_STAT[category], bonus))
    return events

def check_reset_daily_wins(user: User, now: datetime) -> List[Notify]:
    """Сброс побед, если какая-то из них относится к другому дню"""
    stale = any(
        p.last_updated is not None and p.last_updated.date() != now.date()
        for p in user.daily_wins.values()
    )
    if not stale:
        return []
    for progress in user.daily_wins.values():
        progress.count = 0
        progress.item_id = None
        progress.last_updated = None
    return [notify(EngineEvent.DAILY_WINS_RESET, "Ежедневные победы сброшены")]

# ===== STREAK =====

def update_streak(user: User, now: datetime) -> None:
    last = user.last_active
    today = now.date()
    if last is not None and last.date() == today:
        return
    if last is not None and last.date() == today - timedelta(days=1):
        user.streak_days += 1
    else:
        user.streak_days = 1
    user.longest_streak = max(user.longest_streak, user.streak_days)
    user.last_active = now

# ===== EFFECT APPLICATION =====

def apply_effects(state: EngineState, effects: Sequence[Effect], now: datetime,
                  copy_state: bool = True) -> Transition:
    """
    Применение эффектов редьюсера к пользователю одной операцией.

    Notify-эффекты переносятся в результат как есть, к ним добавляются события
    прогрессии (уровень, ранг, атрибуты).
    """
    new_state = copy.deepcopy(state) if copy_state else state
    user = new_state.user
    out: List[Effect] = []

    for effect in effects:
        if isinstance(effect, AwardExp):
            out.extend(add_exp(user, effect.amount))
        elif isinstance(effect, AwardGold):
            out.extend(add_gold(user, effect.amount))
        elif isinstance(effect, AwardStatExp):
            out.extend(add_stat_exp(user, effect.stat, effect.amount))
        elif isinstance(effect, SpendGold):
            spend_gold(user, effect.amount)
        elif isinstance(effect, BoostStat):
            out.extend(boost_stat(user, effect.stat, effect.levels))
        elif isinstance(effect, RecordDailyWin):
            out.extend(update_daily_win(user, effect.category, effect.item_id, effect.modifier, now))
        elif isinstance(effect, TouchStreak):
            update_streak(user, now)
        elif isinstance(effect, Notify):
            out.append(effect)
        else:
            logger.warning(f"⚠️ Неизвестный эффект: {effect!r}")

    return Transition(state=new_state, effects=out)

def new_user(name: Optional[str] = None) -> User:
    user = User(name=name or "Hunter")
    user.exp_to_next_level = exp_to_next_level(user.level)
    return user
