#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Soloist Engine v4.0 - Core Data Models
Модели данных движка прогрессии с валидацией и сериализацией

Версия: 4.0.1
Дата: 2025-06-12
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional, Any, ClassVar
from dataclasses import dataclass, field
from enum import Enum
import logging

from ..utils.datetime_utils import to_iso, from_iso

logger = logging.getLogger(__name__)

STATE_SCHEMA_VERSION = 1
STAT_EXP_PER_LEVEL = 100

# ===== ENUMS =====

class Difficulty(Enum):
    """Сложность задачи (определяет базовый EXP)"""
    EASY = "easy"
    MEDIUM = "medium"
    NORMAL = "normal"
    HARD = "hard"
    BOSS = "boss"

class DailyWinCategory(Enum):
    """Категории ежедневных побед"""
    MENTAL = "mental"
    PHYSICAL = "physical"
    SPIRITUAL = "spiritual"
    INTELLIGENCE = "intelligence"

class Stat(Enum):
    """Атрибуты персонажа"""
    PHYSICAL = "physical"
    COGNITIVE = "cognitive"
    EMOTIONAL = "emotional"
    SPIRITUAL = "spiritual"
    SOCIAL = "social"

class Rank(Enum):
    """Ранги (по возрастанию)"""
    F = "F"
    E = "E"
    D = "D"
    C = "C"
    B = "B"
    A = "A"
    S = "S"
    SS = "SS"
    SSS = "SSS"

class ItemKind(Enum):
    """Тип рабочего элемента"""
    TASK = "task"
    QUEST = "quest"
    MISSION = "mission"

class ShopItemType(Enum):
    """Тип товара магазина"""
    REWARD = "reward"
    BOOST = "boost"
    COSMETIC = "cosmetic"

# Категория элемента: категория ежедневной победы или атрибут
ITEM_CATEGORIES = {c.value for c in DailyWinCategory} | {s.value for s in Stat}

# ===== VALIDATION HELPERS =====

class ValidationError(Exception):
    """Ошибка валидации данных"""
    pass

def validate_text(text: str, min_length: int = 1, max_length: int = 1000, field_name: str = "text") -> str:
    """Валидация текстовых полей"""
    if not isinstance(text, str):
        raise ValidationError(f"{field_name} должен быть строкой")

    text = text.strip()
    if len(text) < min_length:
        raise ValidationError(f"{field_name} должен содержать минимум {min_length} символов")

    if len(text) > max_length:
        raise ValidationError(f"{field_name} должен содержать максимум {max_length} символов")

    return text

def validate_enum_value(value: str, enum_class: type, field_name: str = "value") -> str:
    """Валидация значений enum"""
    if isinstance(value, enum_class):
        return value.value
    try:
        enum_class(value)
        return value
    except ValueError:
        valid_values = [e.value for e in enum_class]
        raise ValidationError(f"{field_name} должен быть одним из: {valid_values}")

def validate_category(value: str) -> str:
    if isinstance(value, Enum):
        value = value.value
    if value not in ITEM_CATEGORIES:
        raise ValidationError(f"category должен быть одним из: {sorted(ITEM_CATEGORIES)}")
    return value

def new_id() -> str:
    return str(uuid.uuid4())

# ===== WORK ITEMS =====

@dataclass
class WorkItem:
    """Общая часть задач, квестов и миссий"""
    id: str
    title: str
    description: str = ""
    category: str = DailyWinCategory.PHYSICAL.value
    difficulty: str = Difficulty.MEDIUM.value
    exp_reward: int = 0
    completed: bool = False
    completed_at: Optional[datetime] = None
    missed: bool = False
    deadline: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.now)

    kind: ClassVar[ItemKind] = ItemKind.TASK

    def __post_init__(self):
        """Валидация после создания объекта"""
        if not self.id:
            raise ValidationError("id не может быть пустым")
        self.title = validate_text(self.title, min_length=1, max_length=200, field_name="title")
        self.description = validate_text(self.description or "", min_length=0, max_length=2000,
                                         field_name="description")
        self.category = validate_category(self.category)
        self.difficulty = validate_enum_value(self.difficulty, Difficulty, "difficulty")

        if not isinstance(self.exp_reward, int) or isinstance(self.exp_reward, bool) or self.exp_reward < 0:
            raise ValidationError("exp_reward должен быть неотрицательным целым числом")

    # ===== PROPERTIES =====

    def is_overdue(self, now: datetime) -> bool:
        """Дедлайн прошел, а элемент не выполнен"""
        return not self.completed and self.deadline is not None and now > self.deadline

    def _base_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "difficulty": self.difficulty,
            "exp_reward": self.exp_reward,
            "completed": self.completed,
            "completed_at": to_iso(self.completed_at),
            "missed": self.missed,
            "deadline": to_iso(self.deadline),
            "created_at": to_iso(self.created_at),
        }

    @staticmethod
    def _base_kwargs(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": data["id"],
            "title": data["title"],
            "description": data.get("description") or "",
            "category": data.get("category", DailyWinCategory.PHYSICAL.value),
            "difficulty": data.get("difficulty", Difficulty.MEDIUM.value),
            "exp_reward": int(data.get("exp_reward", 0)),
            "completed": bool(data.get("completed", False)),
            "completed_at": from_iso(data.get("completed_at")),
            "missed": bool(data.get("missed", False)),
            "deadline": from_iso(data.get("deadline")),
            "created_at": from_iso(data.get("created_at")) or datetime.now(),
        }

@dataclass
class Task(WorkItem):
    """Задача (самостоятельная или подзадача квеста)"""
    scheduled_for: Optional[datetime] = None
    is_weekly_planner_task: bool = False

    kind: ClassVar[ItemKind] = ItemKind.TASK

    @property
    def task_date(self) -> datetime:
        """Дата, к которой относится задача"""
        return self.scheduled_for or self.created_at

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data["scheduled_for"] = to_iso(self.scheduled_for)
        data["is_weekly_planner_task"] = self.is_weekly_planner_task
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            scheduled_for=from_iso(data.get("scheduled_for")),
            is_weekly_planner_task=bool(data.get("is_weekly_planner_task", False)),
            **cls._base_kwargs(data),
        )

    @classmethod
    def create(cls, title: str, now: datetime, **kwargs) -> "Task":
        """Создание новой задачи"""
        return cls(id=new_id(), title=title, created_at=now, **kwargs)

@dataclass
class Quest(WorkItem):
    """Квест: основной, побочный, ежедневный или восстановительный"""
    started: bool = False
    started_at: Optional[datetime] = None
    is_main_quest: bool = False
    is_daily: bool = False
    is_recovery_quest: bool = False
    tasks: List[Task] = field(default_factory=list)

    kind: ClassVar[ItemKind] = ItemKind.QUEST

    def __post_init__(self):
        super().__post_init__()
        if self.is_main_quest and self.is_daily:
            raise ValidationError("квест не может быть одновременно основным и ежедневным")

    @property
    def is_side_quest(self) -> bool:
        return not (self.is_main_quest or self.is_daily or self.is_recovery_quest)

    @property
    def all_tasks_completed(self) -> bool:
        return all(task.completed for task in self.tasks)

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update({
            "started": self.started,
            "started_at": to_iso(self.started_at),
            "is_main_quest": self.is_main_quest,
            "is_daily": self.is_daily,
            "is_recovery_quest": self.is_recovery_quest,
            "tasks": [task.to_dict() for task in self.tasks],
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Quest":
        return cls(
            started=bool(data.get("started", False)),
            started_at=from_iso(data.get("started_at")),
            is_main_quest=bool(data.get("is_main_quest", False)),
            is_daily=bool(data.get("is_daily", False)),
            is_recovery_quest=bool(data.get("is_recovery_quest", False)),
            tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
            **cls._base_kwargs(data),
        )

    @classmethod
    def create(cls, title: str, now: datetime, **kwargs) -> "Quest":
        """Создание нового квеста"""
        return cls(id=new_id(), title=title, created_at=now, **kwargs)

@dataclass
class Mission(WorkItem):
    """Миссия ранга с чек-листом шагов"""
    started: bool = False
    started_at: Optional[datetime] = None
    rank: str = Rank.F.value
    day: int = 1
    count: int = 1
    task_names: List[str] = field(default_factory=list)
    completed_task_indices: List[int] = field(default_factory=list)

    kind: ClassVar[ItemKind] = ItemKind.MISSION

    def __post_init__(self):
        super().__post_init__()
        self.rank = validate_enum_value(self.rank, Rank, "rank")
        if not isinstance(self.count, int) or self.count < 1:
            raise ValidationError("count должен быть положительным числом")
        if not isinstance(self.day, int) or self.day < 1:
            raise ValidationError("day должен быть положительным числом")

    @property
    def all_steps_completed(self) -> bool:
        return self.count <= 1 or len(set(self.completed_task_indices)) >= self.count

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update({
            "started": self.started,
            "started_at": to_iso(self.started_at),
            "rank": self.rank,
            "day": self.day,
            "count": self.count,
            "task_names": list(self.task_names),
            "completed_task_indices": sorted(self.completed_task_indices),
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Mission":
        return cls(
            started=bool(data.get("started", False)),
            started_at=from_iso(data.get("started_at")),
            rank=data.get("rank", Rank.F.value),
            day=int(data.get("day", 1)),
            count=int(data.get("count", 1)),
            task_names=list(data.get("task_names", [])),
            completed_task_indices=[int(i) for i in data.get("completed_task_indices", [])],
            **cls._base_kwargs(data),
        )

    @classmethod
    def create(cls, title: str, now: datetime, **kwargs) -> "Mission":
        """Создание новой миссии"""
        return cls(id=new_id(), title=title, created_at=now, **kwargs)

# ===== USER =====

@dataclass
class CharacterStats:
    """Уровни атрибутов и EXP внутри текущего уровня атрибута"""
    levels: Dict[str, int] = field(default_factory=lambda: {s.value: 1 for s in Stat})
    exp: Dict[str, int] = field(default_factory=lambda: {s.value: 0 for s in Stat})

    def __post_init__(self):
        for stat in Stat:
            self.levels.setdefault(stat.value, 1)
            self.exp.setdefault(stat.value, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {"levels": dict(self.levels), "exp": dict(self.exp)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CharacterStats":
        return cls(
            levels={k: int(v) for k, v in (data.get("levels") or {}).items()},
            exp={k: int(v) for k, v in (data.get("exp") or {}).items()},
        )

@dataclass
class DailyWinProgress:
    """Прогресс ежедневной победы по одной категории"""
    count: int = 0
    item_id: Optional[str] = None
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "item_id": self.item_id, "last_updated": to_iso(self.last_updated)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyWinProgress":
        return cls(
            count=int(data.get("count", 0)),
            item_id=data.get("item_id"),
            last_updated=from_iso(data.get("last_updated")),
        )

@dataclass
class User:
    """Персонаж: уровень, EXP, ранг, золото, атрибуты, серии"""
    name: str = "Hunter"
    level: int = 1
    exp: int = 0
    exp_to_next_level: int = 100
    rank: str = Rank.F.value
    gold: int = 0
    stats: CharacterStats = field(default_factory=CharacterStats)
    daily_wins: Dict[str, DailyWinProgress] = field(
        default_factory=lambda: {c.value: DailyWinProgress() for c in DailyWinCategory}
    )
    streak_days: int = 0
    longest_streak: int = 0
    last_active: Optional[datetime] = None

    def __post_init__(self):
        if not isinstance(self.level, int) or self.level < 1:
            raise ValidationError("level должен быть не меньше 1")
        if self.exp < 0:
            raise ValidationError("exp не может быть отрицательным")
        self.rank = validate_enum_value(self.rank, Rank, "rank")
        for category in DailyWinCategory:
            self.daily_wins.setdefault(category.value, DailyWinProgress())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "level": self.level,
            "exp": self.exp,
            "exp_to_next_level": self.exp_to_next_level,
            "rank": self.rank,
            "gold": self.gold,
            "stats": self.stats.to_dict(),
            "daily_wins": {k: v.to_dict() for k, v in self.daily_wins.items()},
            "streak_days": self.streak_days,
            "longest_streak": self.longest_streak,
            "last_active": to_iso(self.last_active),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            name=data.get("name", "Hunter"),
            level=int(data.get("level", 1)),
            exp=int(data.get("exp", 0)),
            exp_to_next_level=int(data.get("exp_to_next_level", 100)),
            rank=data.get("rank", Rank.F.value),
            gold=int(data.get("gold", 0)),
            stats=CharacterStats.from_dict(data.get("stats") or {}),
            daily_wins={k: DailyWinProgress.from_dict(v) for k, v in (data.get("daily_wins") or {}).items()},
            streak_days=int(data.get("streak_days", 0)),
            longest_streak=int(data.get("longest_streak", 0)),
            last_active=from_iso(data.get("last_active")),
        )

# ===== PUNISHMENT =====

@dataclass
class PunishmentState:
    """Состояние штрафов: шансы, усталость, проклятие, блокировка, искупление"""
    chance_counter: int = 0
    is_cursed: bool = False
    cursed_until: Optional[datetime] = None
    has_shadow_fatigue: bool = False
    shadow_fatigue_until: Optional[datetime] = None
    locked_side_quests_until: Optional[datetime] = None
    missed_main_quest_streak: int = 0
    last_redemption_date: Optional[datetime] = None
    has_pending_recovery: bool = False
    active_recovery_quest_ids: Optional[List[str]] = None
    last_weekly_reset: Optional[datetime] = None

    def __post_init__(self):
        if self.chance_counter < 0:
            raise ValidationError("chance_counter не может быть отрицательным")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chance_counter": self.chance_counter,
            "is_cursed": self.is_cursed,
            "cursed_until": to_iso(self.cursed_until),
            "has_shadow_fatigue": self.has_shadow_fatigue,
            "shadow_fatigue_until": to_iso(self.shadow_fatigue_until),
            "locked_side_quests_until": to_iso(self.locked_side_quests_until),
            "missed_main_quest_streak": self.missed_main_quest_streak,
            "last_redemption_date": to_iso(self.last_redemption_date),
            "has_pending_recovery": self.has_pending_recovery,
            "active_recovery_quest_ids": list(self.active_recovery_quest_ids)
            if self.active_recovery_quest_ids is not None else None,
            "last_weekly_reset": to_iso(self.last_weekly_reset),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PunishmentState":
        ids = data.get("active_recovery_quest_ids")
        return cls(
            chance_counter=int(data.get("chance_counter", 0)),
            is_cursed=bool(data.get("is_cursed", False)),
            cursed_until=from_iso(data.get("cursed_until")),
            has_shadow_fatigue=bool(data.get("has_shadow_fatigue", False)),
            shadow_fatigue_until=from_iso(data.get("shadow_fatigue_until")),
            locked_side_quests_until=from_iso(data.get("locked_side_quests_until")),
            missed_main_quest_streak=int(data.get("missed_main_quest_streak", 0)),
            last_redemption_date=from_iso(data.get("last_redemption_date")),
            has_pending_recovery=bool(data.get("has_pending_recovery", False)),
            active_recovery_quest_ids=list(ids) if ids is not None else None,
            last_weekly_reset=from_iso(data.get("last_weekly_reset")),
        )

# ===== REWARD JOURNAL =====

@dataclass
class RewardJournalEntry:
    """Награда дня, назначенная пользователем"""
    id: str
    date: datetime
    custom_reward: str = ""
    completed: bool = False
    claimed: bool = False
    claimed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": to_iso(self.date),
            "custom_reward": self.custom_reward,
            "completed": self.completed,
            "claimed": self.claimed,
            "claimed_at": to_iso(self.claimed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RewardJournalEntry":
        return cls(
            id=data["id"],
            date=from_iso(data["date"]),
            custom_reward=data.get("custom_reward", ""),
            completed=bool(data.get("completed", False)),
            claimed=bool(data.get("claimed", False)),
            claimed_at=from_iso(data.get("claimed_at")),
        )

@dataclass
class WeeklyRewardEntry:
    """Награда недели"""
    id: str
    week_start: datetime
    week_end: datetime
    custom_reward: str = ""
    completed: bool = False
    claimed: bool = False
    claimed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "week_start": to_iso(self.week_start),
            "week_end": to_iso(self.week_end),
            "custom_reward": self.custom_reward,
            "completed": self.completed,
            "claimed": self.claimed,
            "claimed_at": to_iso(self.claimed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeeklyRewardEntry":
        return cls(
            id=data["id"],
            week_start=from_iso(data["week_start"]),
            week_end=from_iso(data["week_end"]),
            custom_reward=data.get("custom_reward", ""),
            completed=bool(data.get("completed", False)),
            claimed=bool(data.get("claimed", False)),
            claimed_at=from_iso(data.get("claimed_at")),
        )

# ===== SHOP =====

@dataclass
class ShopItem:
    """Товар магазина; boost повышает уровень атрибута stat на 1"""
    id: str
    name: str
    cost: int
    type: str = ShopItemType.REWARD.value
    description: str = ""
    stat: Optional[str] = None
    purchased: bool = False
    purchased_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.id:
            raise ValidationError("id не может быть пустым")
        self.name = validate_text(self.name, min_length=1, max_length=100, field_name="name")
        self.description = (self.description or "").strip()
        self.type = validate_enum_value(self.type, ShopItemType, "type")
        if not isinstance(self.cost, int) or self.cost < 0:
            raise ValidationError("cost должен быть неотрицательным целым")
        if self.stat is not None:
            self.stat = validate_enum_value(self.stat, Stat, "stat")
        if self.type == ShopItemType.BOOST.value and self.stat is None:
            raise ValidationError("для boost нужен атрибут stat")

    @classmethod
    def create(cls, name: str, cost: int, **kwargs) -> "ShopItem":
        return cls(id=new_id(), name=name, cost=cost, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "cost": self.cost,
            "type": self.type,
            "description": self.description,
            "stat": self.stat,
            "purchased": self.purchased,
            "purchased_at": to_iso(self.purchased_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShopItem":
        return cls(
            id=data["id"],
            name=data["name"],
            cost=int(data.get("cost", 0)),
            type=data.get("type", ShopItemType.REWARD.value),
            description=data.get("description") or "",
            stat=data.get("stat"),
            purchased=bool(data.get("purchased", False)),
            purchased_at=from_iso(data.get("purchased_at")),
        )

# ===== ENGINE STATE =====

@dataclass
class EngineState:
    """Полный снимок состояния движка, передается в каждый редьюсер явно"""
    version: int = 0
    user: User = field(default_factory=User)
    punishment: PunishmentState = field(default_factory=PunishmentState)
    tasks: List[Task] = field(default_factory=list)
    quests: List[Quest] = field(default_factory=list)
    missions: List[Mission] = field(default_factory=list)
    reward_journal: List[RewardJournalEntry] = field(default_factory=list)
    weekly_rewards: List[WeeklyRewardEntry] = field(default_factory=list)
    shop_items: List[ShopItem] = field(default_factory=list)

    def collection(self, kind: ItemKind) -> List[WorkItem]:
        if kind == ItemKind.TASK:
            return self.tasks
        if kind == ItemKind.QUEST:
            return self.quests
        return self.missions

    def find(self, kind: ItemKind, item_id: str) -> Optional[WorkItem]:
        for item in self.collection(kind):
            if item.id == item_id:
                return item
        return None

    def find_quest(self, quest_id: str) -> Optional[Quest]:
        return self.find(ItemKind.QUEST, quest_id)

    def snapshot_dict(self) -> Dict[str, Any]:
        """Синглтоны (пользователь, штрафы, журнал, магазин) без коллекций"""
        return {
            "schema": STATE_SCHEMA_VERSION,
            "version": self.version,
            "user": self.user.to_dict(),
            "punishment": self.punishment.to_dict(),
            "reward_journal": [e.to_dict() for e in self.reward_journal],
            "weekly_rewards": [e.to_dict() for e in self.weekly_rewards],
            "shop_items": [i.to_dict() for i in self.shop_items],
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.snapshot_dict()
        data.update({
            "tasks": [t.to_dict() for t in self.tasks],
            "quests": [q.to_dict() for q in self.quests],
            "missions": [m.to_dict() for m in self.missions],
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineState":
        return cls(
            version=int(data.get("version", 0)),
            user=User.from_dict(data.get("user") or {}),
            punishment=PunishmentState.from_dict(data.get("punishment") or {}),
            tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
            quests=[Quest.from_dict(q) for q in data.get("quests", [])],
            missions=[Mission.from_dict(m) for m in data.get("missions", [])],
            reward_journal=[RewardJournalEntry.from_dict(e) for e in data.get("reward_journal", [])],
            weekly_rewards=[WeeklyRewardEntry.from_dict(e) for e in data.get("weekly_rewards", [])],
            shop_items=[ShopItem.from_dict(i) for i in data.get("shop_items", [])],
        )
