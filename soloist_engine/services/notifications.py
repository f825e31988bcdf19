"""
Сервис уведомлений движка
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from ..core.effects import EngineEvent, Notify

logger = logging.getLogger(__name__)

# События, которые пишутся в лог на уровне INFO; остальные в DEBUG
_INFO_EVENTS = {
    EngineEvent.LEVEL_UP,
    EngineEvent.RANK_UP,
    EngineEvent.CURSE_APPLIED,
    EngineEvent.CURSE_LIFTED,
    EngineEvent.QUOTA_REJECTED,
    EngineEvent.REDEMPTION_STARTED,
    EngineEvent.REDEMPTION_SUCCEEDED,
    EngineEvent.REDEMPTION_FAILED,
    EngineEvent.SIDE_QUESTS_LOCKED,
    EngineEvent.WEEKLY_RESET,
}

_EVENT_EMOJI = {
    EngineEvent.EXP_AWARDED: "✨",
    EngineEvent.LEVEL_UP: "🎉",
    EngineEvent.RANK_UP: "🏅",
    EngineEvent.CURSE_APPLIED: "💀",
    EngineEvent.CURSE_LIFTED: "🌅",
    EngineEvent.SHADOW_FATIGUE_APPLIED: "🌑",
    EngineEvent.QUOTA_REJECTED: "🚫",
    EngineEvent.DEADLINE_MISSED: "⏰",
    EngineEvent.REDEMPTION_SUCCEEDED: "✅",
    EngineEvent.REDEMPTION_FAILED: "❌",
    EngineEvent.SIDE_QUESTS_LOCKED: "🔒",
    EngineEvent.ITEM_PURCHASED: "🛒",
}

@dataclass
class Notification:
    """Запись об отправленном уведомлении"""
    event: EngineEvent
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.value,
            "message": self.message,
            "data": dict(self.data),
            "created_at": self.created_at.isoformat(),
        }

Listener = Callable[[Notification], Any]

class NotificationService:
    """Рассылка событий движка подписчикам (тосты, лог, UI)"""

    def __init__(self, history_size: int = 200):
        self._listeners: List[Listener] = []
        self.history: Deque[Notification] = deque(maxlen=history_size)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Подписка; возвращает функцию отписки"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, event: EngineEvent, message: str, data: Optional[Dict[str, Any]] = None,
               now: Optional[datetime] = None) -> Notification:
        notification = Notification(event=event, message=message, data=dict(data or {}),
                                    created_at=now or datetime.now())
        self.history.append(notification)

        emoji = _EVENT_EMOJI.get(event, "🔔")
        level = logging.INFO if event in _INFO_EVENTS else logging.DEBUG
        logger.log(level, f"{emoji} [{event.value}] {message}")

        # уведомления не влияют на ход операции
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception as e:
                logger.error(f"❌ Ошибка подписчика уведомлений: {e}")
        return notification

    def dispatch(self, effects: List[Notify], now: Optional[datetime] = None) -> List[Notification]:
        return [self.notify(e.event, e.message, e.data, now) for e in effects]

    def get_recent(self, limit: int = 20, event: Optional[EngineEvent] = None) -> List[Notification]:
        items = [n for n in self.history if event is None or n.event == event]
        return items[-limit:]

    def clear(self):
        self.history.clear()
