# services/catalog.py

"""
Статический каталог контента: предопределенные квесты, миссии по рангу и дню,
испытания искупления, товары магазина. Только чтение.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..core.calculations import RANK_ORDER, rank_index
from ..core.models import DailyWinCategory, Difficulty, Rank, ShopItemType, Stat
from ..core.punishment import RecoveryChallenge

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class QuestTemplate:
    id: str
    title: str
    description: str
    category: str
    difficulty: str
    exp_reward: int
    is_main_quest: bool = False
    is_daily: bool = False
    tasks: Sequence[str] = field(default_factory=tuple)

@dataclass(frozen=True)
class MissionTemplate:
    id: str
    title: str
    description: str
    rank: str
    day: int
    exp_reward: int
    category: str = DailyWinCategory.PHYSICAL.value
    difficulty: str = Difficulty.NORMAL.value
    task_names: Sequence[str] = field(default_factory=tuple)

    @property
    def count(self) -> int:
        return max(1, len(self.task_names))

@dataclass(frozen=True)
class ShopItemTemplate:
    id: str
    name: str
    description: str
    cost: int
    type: str = ShopItemType.REWARD.value
    stat: Optional[str] = None

# ===== CONTENT =====

MAIN_QUESTS = (
    QuestTemplate(
        id="mq-first-steps",
        title="Complete Your First Main Quest",
        description="Finish three focused work sessions to prove your resolve.",
        category=DailyWinCategory.INTELLIGENCE.value,
        difficulty=Difficulty.HARD.value,
        exp_reward=50,
        is_main_quest=True,
        tasks=("Plan the session", "Work 45 minutes without distractions", "Review what you did"),
    ),
    QuestTemplate(
        id="mq-body-foundation",
        title="Build the Foundation",
        description="Establish a basic training routine for the week.",
        category=DailyWinCategory.PHYSICAL.value,
        difficulty=Difficulty.HARD.value,
        exp_reward=40,
        is_main_quest=True,
        tasks=("Write a training plan", "Complete the first workout"),
    ),
)

SIDE_QUESTS = (
    QuestTemplate(
        id="sq-read-chapter",
        title="Read a Chapter",
        description="Read one chapter of a non-fiction book.",
        category=Stat.COGNITIVE.value,
        difficulty=Difficulty.MEDIUM.value,
        exp_reward=20,
    ),
    QuestTemplate(
        id="sq-call-friend",
        title="Reach Out",
        description="Call or meet a friend you have not talked to this month.",
        category=Stat.SOCIAL.value,
        difficulty=Difficulty.EASY.value,
        exp_reward=10,
    ),
)

DAILY_QUESTS = (
    QuestTemplate(
        id="dq-meditation",
        title="Daily Meditation",
        description="Meditate for at least 10 minutes.",
        category=DailyWinCategory.SPIRITUAL.value,
        difficulty=Difficulty.EASY.value,
        exp_reward=15,
        is_daily=True,
    ),
)

MISSIONS = (
    MissionTemplate(
        id="m-f-1", title="Awakening", description="Wake up before 7:00 and make your bed.",
        rank=Rank.F.value, day=1, exp_reward=10,
    ),
    MissionTemplate(
        id="m-f-2", title="First Drill", description="Push-ups, squats and a short run.",
        rank=Rank.F.value, day=2, exp_reward=20,
        task_names=("20 push-ups", "30 squats", "1 km run"),
    ),
    MissionTemplate(
        id="m-e-1", title="Focused Mind", description="Two deep work blocks without the phone.",
        rank=Rank.E.value, day=1, exp_reward=30, category=DailyWinCategory.INTELLIGENCE.value,
        task_names=("Deep work block 1", "Deep work block 2"),
    ),
    MissionTemplate(
        id="m-d-1", title="Iron Routine", description="Keep the full morning routine.",
        rank=Rank.D.value, day=1, exp_reward=40, difficulty=Difficulty.HARD.value,
        task_names=("Cold water", "Stretching", "Journaling", "Healthy breakfast"),
    ),
)

REDEMPTION_CHALLENGES = (
    RecoveryChallenge(
        title="Take a cold shower",
        description="Endure a cold shower for at least 2 minutes.",
        category=DailyWinCategory.PHYSICAL.value,
        difficulty=Difficulty.MEDIUM.value,
        tasks=("Cold shower, 2 minutes",),
    ),
    RecoveryChallenge(
        title="Complete 10,000 steps",
        description="Walk at least 10,000 steps today.",
        category=DailyWinCategory.PHYSICAL.value,
        difficulty=Difficulty.MEDIUM.value,
        tasks=("Walk 10,000 steps",),
    ),
    RecoveryChallenge(
        title="Full digital detox for 4 hours",
        description="No phone, no social media, no screens for 4 hours.",
        category=DailyWinCategory.MENTAL.value,
        difficulty=Difficulty.HARD.value,
        tasks=("Put the phone away", "Stay offline for 4 hours"),
    ),
    RecoveryChallenge(
        title="Complete 3 delayed tasks today",
        description="Finish three tasks you have been putting off.",
        category=DailyWinCategory.INTELLIGENCE.value,
        difficulty=Difficulty.HARD.value,
        tasks=("Delayed task 1", "Delayed task 2", "Delayed task 3"),
    ),
)

SHOP_ITEMS = (
    ShopItemTemplate(
        id="shop-meditation-guide",
        name="Meditation Guide",
        description="Unlock advanced meditation techniques.",
        cost=200,
    ),
    ShopItemTemplate(
        id="shop-fitness-program",
        name="Fitness Program",
        description="A structured plan that raises your physical attribute.",
        cost=350,
        type=ShopItemType.BOOST.value,
        stat=Stat.PHYSICAL.value,
    ),
    ShopItemTemplate(
        id="shop-scholars-tome",
        name="Scholar's Tome",
        description="Ancient knowledge that raises your cognitive attribute.",
        cost=500,
        type=ShopItemType.BOOST.value,
        stat=Stat.COGNITIVE.value,
    ),
)

class StaticCatalog:
    """Каталог контента в памяти"""

    def __init__(self, main_quests: Sequence[QuestTemplate] = MAIN_QUESTS,
                 side_quests: Sequence[QuestTemplate] = SIDE_QUESTS,
                 daily_quests: Sequence[QuestTemplate] = DAILY_QUESTS,
                 missions: Sequence[MissionTemplate] = MISSIONS,
                 redemption_challenges: Sequence[RecoveryChallenge] = REDEMPTION_CHALLENGES,
                 shop_items: Sequence[ShopItemTemplate] = SHOP_ITEMS):
        self._main_quests = tuple(main_quests)
        self._side_quests = tuple(side_quests)
        self._daily_quests = tuple(daily_quests)
        self._missions = tuple(missions)
        self._challenges = tuple(redemption_challenges)
        self._shop_items = tuple(shop_items)
        self._quests_by_id: Dict[str, QuestTemplate] = {
            q.id: q for q in self._main_quests + self._side_quests + self._daily_quests
        }

    def get_main_quests(self) -> List[QuestTemplate]:
        return list(self._main_quests)

    def get_side_quests(self) -> List[QuestTemplate]:
        return list(self._side_quests)

    def get_daily_quests(self) -> List[QuestTemplate]:
        return list(self._daily_quests)

    def get_quest(self, quest_id: str) -> Optional[QuestTemplate]:
        return self._quests_by_id.get(quest_id)

    def get_quests_by_category(self, category: str) -> List[QuestTemplate]:
        return [q for q in self._quests_by_id.values() if q.category == category]

    def get_missions(self, rank: str, day: Optional[int] = None) -> List[MissionTemplate]:
        """Миссии ранга (и дня, если указан)"""
        return [m for m in self._missions if m.rank == rank and (day is None or m.day == day)]

    def get_mission(self, mission_id: str) -> Optional[MissionTemplate]:
        for mission in self._missions:
            if mission.id == mission_id:
                return mission
        return None

    def get_missions_by_day(self, day: int) -> List[MissionTemplate]:
        return [m for m in self._missions if m.day == day]

    def get_upcoming_missions(self, rank: str) -> List[MissionTemplate]:
        """Миссии более высоких рангов (превью)"""
        current = rank_index(rank)
        return [m for m in self._missions if rank_index(m.rank) > current]

    def get_redemption_challenges(self) -> List[RecoveryChallenge]:
        return list(self._challenges)

    def get_shop_items(self) -> List[ShopItemTemplate]:
        return list(self._shop_items)

    @staticmethod
    def ranks() -> List[str]:
        return [r.value for r in RANK_ORDER]

# Глобальный каталог по умолчанию
_default_catalog: Optional[StaticCatalog] = None

def get_catalog() -> StaticCatalog:
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = StaticCatalog()
        logger.debug("📚 Каталог контента загружен")
    return _default_catalog
