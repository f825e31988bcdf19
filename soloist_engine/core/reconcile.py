# core/reconcile.py

"""
Единая точка временных переходов. Вызывается перед любым чтением или
изменением состояния; время передается явно.

Порядок: недельный сброс, истечение штрафов, исход искупления, пропущенные
дедлайны, сброс ежедневных побед.
"""

import copy
import logging
from datetime import datetime
from typing import List

from .effects import Effect, Transition
from .lifecycle import update_missed_deadlines
from .models import EngineState
from .progression import check_reset_daily_wins
from .punishment import update_penalty_expiry, update_redemption, update_weekly_reset

logger = logging.getLogger(__name__)

def reconcile(state: EngineState, now: datetime) -> Transition:
    """Если ничего не изменилось, возвращается тот же объект состояния"""
    new_state = copy.deepcopy(state)
    effects: List[Effect] = []

    effects.extend(update_weekly_reset(new_state, now))
    effects.extend(update_penalty_expiry(new_state, now))
    effects.extend(update_redemption(new_state, now))
    effects.extend(update_missed_deadlines(new_state, now))
    effects.extend(check_reset_daily_wins(new_state.user, now))

    if not effects and new_state.to_dict() == state.to_dict():
        return Transition(state=state)

    if effects:
        logger.debug(f"🔁 Сверка состояния на {now:%Y-%m-%d %H:%M}: событий {len(effects)}")
    return Transition(state=new_state, effects=effects)
