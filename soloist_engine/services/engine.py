#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Soloist Engine v4.0 - Engine Service
Оркестратор: владеет текущим EngineState и проводит через него все операции

Порядок каждой операции:
1. reconcile(now): недельный сброс, истечение штрафов, искупление, дедлайны
2. редьюсер операции
3. применение эффектов (EXP, золото, атрибуты, победы дня, серия)
4. рассылка уведомлений, увеличение version
5. сохранение в фоне (ошибки хранилища только логируются)

Версия: 4.0.1
Дата: 2025-06-12
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from ..config import EngineConfig, get_config
from ..core import lifecycle, punishment, reward_journal, shop
from ..core.effects import EngineEvent, Failure, FailureCode, FailureKind, Transition
from ..core.models import EngineState, ItemKind
from ..core.progression import apply_effects, new_user
from ..core.quota import get_quota_status
from ..core.reconcile import reconcile
from ..utils.datetime_utils import now_in_zone
from ..utils.decorators import retry_on_exception
from .catalog import StaticCatalog, get_catalog
from .data_service import COLLECTIONS, InMemoryDataService, PersistenceError
from .notifications import Notification, NotificationService
from .schemas import parse_missions, parse_quests, parse_snapshot, parse_tasks

logger = logging.getLogger(__name__)

Reducer = Callable[[EngineState, datetime], Transition]

@dataclass
class OperationResult:
    """Итог операции движка"""
    ok: bool
    result: Any = None
    failure: Optional[Failure] = None
    notifications: List[Notification] = field(default_factory=list)

    @property
    def code(self) -> Optional[FailureCode]:
        return self.failure.code if self.failure else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "failure": self.failure.to_dict() if self.failure else None,
            "notifications": [n.to_dict() for n in self.notifications],
        }

def _unchanged(state: EngineState, now: datetime) -> Transition:
    return Transition(state=state)

class EngineService:
    """
    Движок прогрессии и штрафов

    Один писатель: операции синхронны и применяются по одной. Асинхронны
    только загрузка (initialize) и сохранение (flush и фоновые задачи).
    """

    def __init__(self, config: Optional[EngineConfig] = None, data_service=None,
                 notifier: Optional[NotificationService] = None,
                 catalog: Optional[StaticCatalog] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.config = config or get_config()
        self.data_service = data_service if data_service is not None else InMemoryDataService()
        self.notifier = notifier or NotificationService(self.config.notification_history)
        self.catalog = catalog or get_catalog()
        self._clock = clock or partial(now_in_zone, self.config.timezone)

        self._state = EngineState(user=new_user())
        self._persisted: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in COLLECTIONS}
        self._persisted_snapshot: Optional[Dict[str, Any]] = None

        self.initialized = False
        # после неудачной загрузки движок работает только в памяти
        self.offline = False
        self._dirty = False
        self._save_lock: Optional[asyncio.Lock] = None
        self._pending_saves: Set[asyncio.Task] = set()

        self.save_failures = 0
        self.last_save_error: Optional[str] = None

    # ===== ИНИЦИАЛИЗАЦИЯ =====

    async def initialize(self) -> bool:
        """Загрузка снимка и коллекций; True, если хранилище доступно"""
        try:
            snapshot = await self.data_service.snapshot.load()
            records = {name: await getattr(self.data_service, name).load_all() for name in COLLECTIONS}
        except Exception as e:
            logger.error(f"❌ Ошибка загрузки состояния: {e}. Движок работает только в памяти")
            self._state = self._fresh_state()
            self.offline = True
            self.initialized = True
            return False

        loaded = parse_snapshot(snapshot)
        state = loaded
        if state is None:
            logger.info("📂 Снимок состояния не найден, создается новый пользователь")
            state = self._fresh_state()
        state.tasks = parse_tasks(records["tasks"])
        state.quests = parse_quests(records["quests"])
        state.missions = parse_missions(records["missions"])

        self._state = state
        self._persisted = {
            name: {item.id: item.to_dict() for item in getattr(state, name)} for name in COLLECTIONS
        }
        self._persisted_snapshot = state.snapshot_dict() if loaded is not None else None
        self.offline = False
        self.initialized = True
        logger.info(
            f"✅ Движок инициализирован: задач {len(state.tasks)}, квестов {len(state.quests)}, "
            f"миссий {len(state.missions)}, уровень {state.user.level} ({state.user.rank})"
        )
        return True

    def _fresh_state(self) -> EngineState:
        state = EngineState(user=new_user())
        state.shop_items = shop.items_from_templates(self.catalog.get_shop_items())
        return state

    # ===== ВРЕМЯ =====

    def now(self) -> datetime:
        return self._clock()

    def _resolve_now(self, now: Optional[datetime]) -> datetime:
        return now if now is not None else self.now()

    # ===== ЯДРО ОПЕРАЦИЙ =====

    def _execute(self, operation: str, reducer: Reducer, now: Optional[datetime] = None) -> OperationResult:
        now = self._resolve_now(now)
        current = self._state

        reconciled = reconcile(current, now)
        transition = reducer(reconciled.state, now)

        effects = list(reconciled.effects)
        state = reconciled.state
        if transition.ok:
            effects.extend(transition.effects)
            state = transition.state

        changed = state is not current
        pending = []
        if effects:
            # при неизмененном состоянии эффекты состоят только из уведомлений
            applied = apply_effects(state, effects, now, copy_state=not changed)
            pending = applied.notifications()
            if changed:
                state = applied.state

        if changed:
            state.version = current.version + 1
            self._state = state
            self._schedule_save()

        notifications = self.notifier.dispatch(pending, now)

        failure = transition.failure
        if failure is not None:
            if failure.kind == FailureKind.REJECTED_BY_QUOTA:
                notifications.append(self.notifier.notify(
                    EngineEvent.QUOTA_REJECTED, failure.message,
                    {"code": failure.code.value, "operation": operation}, now,
                ))
            logger.debug(f"⚠️ {operation}: отказ {failure.code.value}: {failure.message}")

        return OperationResult(
            ok=failure is None,
            result=transition.result,
            failure=failure,
            notifications=notifications,
        )

    def reconcile(self, now: Optional[datetime] = None) -> OperationResult:
        """Применить все накопившиеся временные переходы"""
        return self._execute("reconcile", _unchanged, now)

    def _current(self, now: Optional[datetime]) -> EngineState:
        self.reconcile(now)
        return self._state

    # ===== ЗАДАЧИ, КВЕСТЫ, МИССИИ =====

    def create_task(self, title: str, now: Optional[datetime] = None, **kwargs) -> OperationResult:
        return self._execute("create_task", lambda s, n: lifecycle.create_task(s, title, n, **kwargs), now)

    def create_quest(self, title: str, now: Optional[datetime] = None, **kwargs) -> OperationResult:
        return self._execute("create_quest", lambda s, n: lifecycle.create_quest(s, title, n, **kwargs), now)

    def add_quest_task(self, quest_id: str, title: str, now: Optional[datetime] = None,
                       deadline: Optional[datetime] = None) -> OperationResult:
        return self._execute(
            "add_quest_task", lambda s, n: lifecycle.add_quest_task(s, quest_id, title, n, deadline), now,
        )

    def create_mission(self, title: str, now: Optional[datetime] = None, **kwargs) -> OperationResult:
        return self._execute("create_mission", lambda s, n: lifecycle.create_mission(s, title, n, **kwargs), now)

    def accept_catalog_quest(self, template_id: str, now: Optional[datetime] = None,
                             deadline: Optional[datetime] = None) -> OperationResult:
        """Квест из каталога контента"""
        template = self.catalog.get_quest(template_id)
        if template is None:
            return OperationResult(ok=False, failure=Failure(
                FailureKind.INVALID_TRANSITION, FailureCode.NOT_FOUND, f"Шаблон квеста {template_id} не найден",
            ))
        return self.create_quest(
            template.title, now,
            description=template.description,
            category=template.category,
            difficulty=template.difficulty,
            exp_reward=template.exp_reward,
            deadline=deadline,
            is_main_quest=template.is_main_quest,
            is_daily=template.is_daily,
            tasks=list(template.tasks),
        )

    def accept_catalog_mission(self, template_id: str, now: Optional[datetime] = None,
                               deadline: Optional[datetime] = None) -> OperationResult:
        template = self.catalog.get_mission(template_id)
        if template is None:
            return OperationResult(ok=False, failure=Failure(
                FailureKind.INVALID_TRANSITION, FailureCode.NOT_FOUND, f"Шаблон миссии {template_id} не найден",
            ))
        return self.create_mission(
            template.title, now,
            description=template.description,
            category=template.category,
            difficulty=template.difficulty,
            exp_reward=template.exp_reward,
            deadline=deadline,
            rank=template.rank,
            day=template.day,
            count=template.count,
            task_names=list(template.task_names),
        )

    def start_quest(self, quest_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("start_quest", lambda s, n: lifecycle.start_quest(s, quest_id, n), now)

    def start_mission(self, mission_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("start_mission", lambda s, n: lifecycle.start_mission(s, mission_id, n), now)

    def complete_task(self, task_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("complete_task", lambda s, n: lifecycle.complete_task(s, task_id, n), now)

    def complete_quest_task(self, quest_id: str, task_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute(
            "complete_quest_task", lambda s, n: lifecycle.complete_quest_task(s, quest_id, task_id, n), now,
        )

    def complete_quest(self, quest_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("complete_quest", lambda s, n: lifecycle.complete_quest(s, quest_id, n), now)

    def complete_mission_step(self, mission_id: str, index: int, now: Optional[datetime] = None) -> OperationResult:
        return self._execute(
            "complete_mission_step", lambda s, n: lifecycle.complete_mission_step(s, mission_id, index, n), now,
        )

    def complete_mission(self, mission_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("complete_mission", lambda s, n: lifecycle.complete_mission(s, mission_id, n), now)

    def mark_missed(self, kind: ItemKind, item_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("mark_missed", lambda s, n: lifecycle.mark_item_missed(s, ItemKind(kind), item_id, n), now)

    def sweep_missed_deadlines(self, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("sweep_missed_deadlines", lifecycle.sweep_missed_deadlines, now)

    def delete_task(self, task_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("delete_task", lambda s, n: lifecycle.delete_task(s, task_id), now)

    def delete_quest(self, quest_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("delete_quest", lambda s, n: lifecycle.delete_quest(s, quest_id), now)

    def delete_mission(self, mission_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("delete_mission", lambda s, n: lifecycle.delete_mission(s, mission_id), now)

    # ===== ИСКУПЛЕНИЕ =====

    def start_redemption(self, now: Optional[datetime] = None,
                         challenges: Optional[Sequence[punishment.RecoveryChallenge]] = None) -> OperationResult:
        """Пачка восстановительных квестов из каталога испытаний"""
        challenges = list(challenges) if challenges is not None else self.catalog.get_redemption_challenges()
        return self._execute(
            "start_redemption", lambda s, n: punishment.start_redemption(s, challenges, n), now,
        )

    def attempt_redemption(self, success: bool, now: Optional[datetime] = None) -> OperationResult:
        return self._execute(
            "attempt_redemption", lambda s, n: punishment.attempt_redemption(s, success, n), now,
        )

    def abandon_redemption(self, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("abandon_redemption", punishment.abandon_redemption, now)

    # ===== ЖУРНАЛ НАГРАД =====

    def set_daily_reward(self, day: datetime, reward: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute(
            "set_daily_reward", lambda s, n: reward_journal.set_daily_reward(s, day, reward), now,
        )

    def claim_daily_reward(self, day: datetime, now: Optional[datetime] = None) -> OperationResult:
        return self._execute(
            "claim_daily_reward", lambda s, n: reward_journal.claim_daily_reward(s, day, n), now,
        )

    def set_weekly_reward(self, week_start: datetime, reward: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute(
            "set_weekly_reward", lambda s, n: reward_journal.set_weekly_reward(s, week_start, reward), now,
        )

    def claim_weekly_reward(self, week_start: datetime, now: Optional[datetime] = None,
                            reduced: Optional[bool] = None) -> OperationResult:
        return self._execute(
            "claim_weekly_reward",
            lambda s, n: reward_journal.claim_weekly_reward(s, week_start, n, reduced), now,
        )

    # ===== МАГАЗИН =====

    def add_shop_item(self, name: str, cost: int, now: Optional[datetime] = None, **kwargs) -> OperationResult:
        return self._execute("add_shop_item", lambda s, n: shop.add_shop_item(s, name, cost, **kwargs), now)

    def stock_shop(self, now: Optional[datetime] = None) -> OperationResult:
        """Добавить товары каталога, которых еще нет в магазине"""
        templates = self.catalog.get_shop_items()
        return self._execute("stock_shop", lambda s, n: shop.stock_shop(s, templates), now)

    def purchase_item(self, item_id: str, now: Optional[datetime] = None) -> OperationResult:
        return self._execute("purchase_item", lambda s, n: shop.purchase_item(s, item_id, n), now)

    # ===== ЧТЕНИЕ =====

    def get_state(self, now: Optional[datetime] = None) -> EngineState:
        """Копия текущего состояния после сверки"""
        return copy.deepcopy(self._current(now))

    def get_user(self, now: Optional[datetime] = None):
        return copy.deepcopy(self._current(now).user)

    def get_shop_items(self, available_only: bool = False, now: Optional[datetime] = None):
        return copy.deepcopy(shop.get_shop_items(self._current(now), available_only))

    def get_exp_modifier(self, now: Optional[datetime] = None) -> float:
        return punishment.get_exp_modifier(self._current(now).punishment)

    def get_quota_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = self._resolve_now(now)
        return get_quota_status(self._current(now), now)

    def get_penalty_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = self._resolve_now(now)
        return punishment.get_penalty_status(self._current(now).punishment, now)

    def can_use_redemption(self, now: Optional[datetime] = None) -> bool:
        return punishment.can_use_redemption(self._current(now).punishment)

    def get_tasks_for_date(self, day: datetime, now: Optional[datetime] = None):
        return copy.deepcopy(lifecycle.get_tasks_for_date(self._current(now), day))

    def get_mission_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = self._resolve_now(now)
        return lifecycle.get_mission_stats(self._current(now), now)

    def get_next_mission_release(self, now: Optional[datetime] = None) -> Optional[datetime]:
        return lifecycle.get_next_mission_release(self._current(now))

    def has_completed_mission_recently(self, hours: int = lifecycle.MISSION_RELEASE_HOURS,
                                       now: Optional[datetime] = None) -> bool:
        now = self._resolve_now(now)
        return lifecycle.has_completed_mission_recently(self._current(now), now, hours)

    def get_daily_completion(self, day: datetime, now: Optional[datetime] = None) -> Dict[str, Any]:
        return reward_journal.get_daily_completion_details(self._current(now), day)

    def is_daily_complete(self, day: datetime, now: Optional[datetime] = None) -> bool:
        return reward_journal.is_daily_complete(self._current(now), day)

    def get_weekly_completion(self, week_start: datetime, now: Optional[datetime] = None,
                              reduced: Optional[bool] = None) -> Dict[str, Any]:
        return reward_journal.get_weekly_completion_details(self._current(now), week_start, reduced)

    def is_weekly_complete(self, week_start: datetime, now: Optional[datetime] = None,
                           reduced: Optional[bool] = None) -> bool:
        return reward_journal.is_weekly_complete(self._current(now), week_start, reduced)

    def get_reward_journal_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = self._resolve_now(now)
        return reward_journal.get_reward_journal_stats(self._current(now), now)

    # ===== СОХРАНЕНИЕ =====

    def _schedule_save(self):
        if self.offline:
            return
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # вне цикла событий изменения сохранит flush()
            return
        task = loop.create_task(self._save())
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _save(self) -> bool:
        if self._save_lock is None:
            self._save_lock = asyncio.Lock()
        async with self._save_lock:
            if not self._dirty:
                return True
            self._dirty = False
            write = retry_on_exception(
                retries=self.config.persistence.save_retries,
                delay=self.config.persistence.retry_delay,
                error_cls=PersistenceError,
            )(self._write_state)
            try:
                await write(self._state)
            except PersistenceError as e:
                # локальное состояние не откатывается, повтор при следующем сохранении
                self._dirty = True
                self.save_failures += 1
                self.last_save_error = str(e)
                logger.error(f"❌ Ошибка сохранения состояния: {e}. Изменения остаются в памяти")
                return False
            self.last_save_error = None
            return True

    async def _write_state(self, state: EngineState):
        """Разница коллекций уходит в create/update/delete, синглтон в save"""
        for name in COLLECTIONS:
            repository = getattr(self.data_service, name)
            persisted = self._persisted[name]
            current = {item.id: item.to_dict() for item in getattr(state, name)}

            for item_id, record in current.items():
                if item_id not in persisted:
                    await repository.create(record)
                elif persisted[item_id] != record:
                    await repository.update(item_id, record)
                persisted[item_id] = record

            for item_id in [i for i in persisted if i not in current]:
                await repository.delete(item_id)
                del persisted[item_id]

        snapshot = state.snapshot_dict()
        if snapshot != self._persisted_snapshot:
            await self.data_service.snapshot.save(snapshot)
            self._persisted_snapshot = snapshot
        logger.debug(f"💾 Состояние v{state.version} сохранено")

    async def flush(self) -> bool:
        """Дождаться фоновых сохранений и записать оставшиеся изменения"""
        if self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)
        if self.offline:
            return False
        if self._dirty:
            return await self._save()
        return self.last_save_error is None

    async def close(self):
        await self.flush()
        self.data_service.close()
        logger.info("🛑 EngineService закрыт")

    def health_check(self) -> Dict[str, Any]:
        if not self.initialized:
            status = "error"
        elif self.offline or self.last_save_error:
            status = "warning"
        else:
            status = "healthy"
        return {
            "status": status,
            "offline": self.offline,
            "version": self._state.version,
            "pending_saves": len(self._pending_saves),
            "save_failures": self.save_failures,
            "last_save_error": self.last_save_error,
        }
