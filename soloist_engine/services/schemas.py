# services/schemas.py

"""
Pydantic-схемы для записей, прочитанных из хранилища.

Хранилище внешнее и может вернуть что угодно, поэтому каждая запись
проверяется перед превращением в модели ядра. Невалидные записи
пропускаются с предупреждением в логе.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.models import (
    Difficulty, EngineState, ITEM_CATEGORIES, Mission, PunishmentState, Quest, Rank, Task, User,
    RewardJournalEntry, ShopItem, ShopItemType, Stat, WeeklyRewardEntry,
    ValidationError as ModelValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore")

class WorkItemRecord(_Record):
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    category: str = "physical"
    difficulty: str = Difficulty.MEDIUM.value
    exp_reward: int = Field(0, ge=0)
    completed: bool = False
    completed_at: Optional[datetime] = None
    missed: bool = False
    deadline: Optional[datetime] = None
    created_at: datetime

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        if v not in ITEM_CATEGORIES:
            raise ValueError(f"неизвестная категория: {v}")
        return v

    @field_validator("difficulty")
    @classmethod
    def validate_difficulty(cls, v):
        Difficulty(v)
        return v

    @field_validator("description", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or ""

class TaskRecord(WorkItemRecord):
    scheduled_for: Optional[datetime] = None
    is_weekly_planner_task: bool = False

class QuestRecord(WorkItemRecord):
    started: bool = False
    started_at: Optional[datetime] = None
    is_main_quest: bool = False
    is_daily: bool = False
    is_recovery_quest: bool = False
    tasks: List[TaskRecord] = Field(default_factory=list)

class MissionRecord(WorkItemRecord):
    started: bool = False
    started_at: Optional[datetime] = None
    rank: str = Rank.F.value
    day: int = Field(1, ge=1)
    count: int = Field(1, ge=1)
    task_names: List[str] = Field(default_factory=list)
    completed_task_indices: List[int] = Field(default_factory=list)

    @field_validator("rank")
    @classmethod
    def validate_rank(cls, v):
        Rank(v)
        return v

class UserRecord(_Record):
    name: str = "Hunter"
    level: int = Field(1, ge=1)
    exp: int = Field(0, ge=0)
    exp_to_next_level: int = Field(100, ge=1)
    rank: str = Rank.F.value
    gold: int = Field(0, ge=0)
    stats: Dict[str, Any] = Field(default_factory=dict)
    daily_wins: Dict[str, Any] = Field(default_factory=dict)
    streak_days: int = Field(0, ge=0)
    longest_streak: int = Field(0, ge=0)
    last_active: Optional[datetime] = None

    @field_validator("rank")
    @classmethod
    def validate_rank(cls, v):
        Rank(v)
        return v

class PunishmentRecord(_Record):
    chance_counter: int = Field(0, ge=0)
    is_cursed: bool = False
    cursed_until: Optional[datetime] = None
    has_shadow_fatigue: bool = False
    shadow_fatigue_until: Optional[datetime] = None
    locked_side_quests_until: Optional[datetime] = None
    missed_main_quest_streak: int = Field(0, ge=0)
    last_redemption_date: Optional[datetime] = None
    has_pending_recovery: bool = False
    active_recovery_quest_ids: Optional[List[str]] = None
    last_weekly_reset: Optional[datetime] = None

class RewardJournalRecord(_Record):
    id: str = Field(..., min_length=1)
    date: datetime
    custom_reward: str = ""
    completed: bool = False
    claimed: bool = False
    claimed_at: Optional[datetime] = None

class WeeklyRewardRecord(_Record):
    id: str = Field(..., min_length=1)
    week_start: datetime
    week_end: datetime
    custom_reward: str = ""
    completed: bool = False
    claimed: bool = False
    claimed_at: Optional[datetime] = None

class ShopItemRecord(_Record):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    cost: int = Field(0, ge=0)
    type: str = ShopItemType.REWARD.value
    description: str = ""
    stat: Optional[str] = None
    purchased: bool = False
    purchased_at: Optional[datetime] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        ShopItemType(v)
        return v

    @field_validator("stat")
    @classmethod
    def validate_stat(cls, v):
        if v is not None:
            Stat(v)
        return v

    @field_validator("description", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or ""

class SnapshotRecord(_Record):
    version: int = Field(0, ge=0)
    user: UserRecord = Field(default_factory=UserRecord)
    punishment: PunishmentRecord = Field(default_factory=PunishmentRecord)
    reward_journal: List[Dict[str, Any]] = Field(default_factory=list)
    weekly_rewards: List[Dict[str, Any]] = Field(default_factory=list)
    shop_items: List[Dict[str, Any]] = Field(default_factory=list)

# ===== PARSING =====

def _parse(data: Any, schema: Type[BaseModel], factory: Callable[[Dict[str, Any]], T], label: str) -> Optional[T]:
    try:
        record = schema.model_validate(data)
        return factory(record.model_dump())
    except (ValidationError, ModelValidationError, ValueError, TypeError) as e:
        item_id = data.get("id") if isinstance(data, dict) else None
        logger.warning(f"⚠️ Пропущена невалидная запись {label} {item_id or ''}: {e}")
        return None

def parse_records(records: Iterable[Any], schema: Type[BaseModel],
                  factory: Callable[[Dict[str, Any]], T], label: str) -> List[T]:
    parsed = []
    for data in records or []:
        item = _parse(data, schema, factory, label)
        if item is not None:
            parsed.append(item)
    return parsed

def parse_tasks(records: Iterable[Any]) -> List[Task]:
    return parse_records(records, TaskRecord, Task.from_dict, "task")

def parse_quests(records: Iterable[Any]) -> List[Quest]:
    return parse_records(records, QuestRecord, Quest.from_dict, "quest")

def parse_missions(records: Iterable[Any]) -> List[Mission]:
    return parse_records(records, MissionRecord, Mission.from_dict, "mission")

def parse_snapshot(data: Any) -> Optional[EngineState]:
    """Синглтоны состояния; None, если снимок отсутствует или невалиден"""
    if not data:
        return None
    try:
        record = SnapshotRecord.model_validate(data)
        dumped = record.model_dump()
        return EngineState(
            version=dumped["version"],
            user=User.from_dict(dumped["user"]),
            punishment=PunishmentState.from_dict(dumped["punishment"]),
            reward_journal=parse_records(dumped["reward_journal"], RewardJournalRecord,
                                         RewardJournalEntry.from_dict, "reward_journal"),
            weekly_rewards=parse_records(dumped["weekly_rewards"], WeeklyRewardRecord,
                                         WeeklyRewardEntry.from_dict, "weekly_reward"),
            shop_items=parse_records(dumped["shop_items"], ShopItemRecord, ShopItem.from_dict, "shop_item"),
        )
    except (ValidationError, ModelValidationError, ValueError, TypeError) as e:
        logger.error(f"❌ Снимок состояния невалиден, используются значения по умолчанию: {e}")
        return None
