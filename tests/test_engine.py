from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from tempfile import TemporaryDirectory
import unittest

from soloist_engine.core.effects import EngineEvent, FailureCode, FailureKind
from soloist_engine.core.models import ItemKind
from soloist_engine.services.data_service import (
    DataService,
    InMemoryDataService,
    InMemoryEntityRepository,
    InMemorySnapshotRepository,
    PersistenceError,
)
from soloist_engine.services.engine import EngineService
from soloist_engine.services.notifications import NotificationService
from tests.helpers import END_OF_WEEK, NOW, FixedClock, make_config


class FailingRepository(InMemoryEntityRepository):
    async def create(self, record):
        raise PersistenceError("disk full")


class FailingSnapshot(InMemorySnapshotRepository):
    async def load(self):
        raise PersistenceError("connection refused")


class EngineTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.clock = FixedClock(NOW)
        self.data = InMemoryDataService()
        self.engine = await self.make_engine(self.data)

    async def make_engine(self, data) -> EngineService:
        engine = EngineService(config=make_config(), data_service=data, clock=self.clock)
        await engine.initialize()
        return engine

    def events(self, result) -> list:
        return [n.event for n in result.notifications]


class TestEngineInitialization(EngineTestCase):
    async def test_empty_storage_starts_fresh_user(self) -> None:
        self.assertTrue(self.engine.initialized)
        self.assertFalse(self.engine.offline)
        user = self.engine.get_user()
        self.assertEqual(1, user.level)
        self.assertEqual("F", user.rank)

    async def test_failed_load_switches_to_memory_mode(self) -> None:
        data = InMemoryDataService()
        data.snapshot = FailingSnapshot()

        with self.assertLogs("soloist_engine.services.engine", level="ERROR"):
            engine = EngineService(config=make_config(), data_service=data, clock=self.clock)
            loaded = await engine.initialize()

        self.assertFalse(loaded)
        self.assertTrue(engine.offline)
        result = engine.create_task("Still works")
        self.assertTrue(result.ok)
        self.assertFalse(await engine.flush())
        self.assertEqual([], await data.tasks.load_all())

    async def test_state_reloaded_from_storage(self) -> None:
        task_id = self.engine.create_task("Run").result.id
        self.engine.complete_task(task_id)
        self.assertTrue(await self.engine.flush())

        reloaded = await self.make_engine(self.data)

        state = reloaded.get_state()
        self.assertEqual(10, state.user.exp)
        self.assertEqual(4, state.user.gold)
        self.assertTrue(state.find(ItemKind.TASK, task_id).completed)


class TestEngineOperations(EngineTestCase):
    async def test_completion_applies_effects_and_notifies(self) -> None:
        task_id = self.engine.create_task("Run", category="intelligence").result.id
        version = self.engine.get_state().version

        result = self.engine.complete_task(task_id)

        self.assertTrue(result.ok)
        self.assertEqual(10, result.result)
        state = self.engine.get_state()
        self.assertEqual(10, state.user.exp)
        self.assertEqual(4, state.user.gold)
        self.assertEqual(5 + 10, state.user.stats.exp["cognitive"])
        self.assertEqual(1, state.user.streak_days)
        self.assertEqual(version + 1, state.version)
        events = self.events(result)
        self.assertIn(EngineEvent.ITEM_COMPLETED, events)
        self.assertIn(EngineEvent.EXP_AWARDED, events)
        self.assertIn(EngineEvent.DAILY_WIN, events)

    async def test_double_completion_awards_once(self) -> None:
        task_id = self.engine.create_task("Run").result.id
        self.engine.complete_task(task_id)

        second = self.engine.complete_task(task_id)

        self.assertFalse(second.ok)
        self.assertEqual(FailureCode.ALREADY_COMPLETED, second.code)
        self.assertEqual(10, self.engine.get_user().exp)

    async def test_level_up_notification(self) -> None:
        quest_id = self.engine.create_quest("Boss", difficulty="boss", exp_reward=120).result.id
        result = self.engine.complete_quest(quest_id)
        self.assertIn(EngineEvent.LEVEL_UP, self.events(result))
        self.assertEqual(2, self.engine.get_user().level)

    async def test_quota_rejection_is_notified(self) -> None:
        received = []
        self.engine.notifier.subscribe(received.append)
        ids = [self.engine.create_quest(f"Main {i}", is_main_quest=True).result.id for i in range(3)]
        self.engine.start_quest(ids[0])
        self.engine.start_quest(ids[1])

        result = self.engine.start_quest(ids[2])

        self.assertFalse(result.ok)
        self.assertEqual(FailureKind.REJECTED_BY_QUOTA, result.failure.kind)
        self.assertIn(EngineEvent.QUOTA_REJECTED, self.events(result))
        self.assertEqual(EngineEvent.QUOTA_REJECTED, received[-1].event)
        self.assertEqual("main_quest_quota", received[-1].data["code"])

    async def test_broken_listener_does_not_break_operation(self) -> None:
        def broken(notification):
            raise RuntimeError("ui crashed")

        self.engine.notifier.subscribe(broken)
        task_id = self.engine.create_task("Run").result.id

        with self.assertLogs("soloist_engine.services.notifications", level="ERROR"):
            result = self.engine.complete_task(task_id)

        self.assertTrue(result.ok)
        self.assertEqual(10, self.engine.get_user().exp)

    async def test_reconcile_before_reads(self) -> None:
        self.engine.create_task("Due soon", deadline=NOW + timedelta(hours=1))

        status = self.engine.get_penalty_status(now=NOW + timedelta(hours=2))

        self.assertEqual(1, status["chance_counter"])
        self.assertTrue(status["has_shadow_fatigue"])
        self.assertEqual(0.75, self.engine.get_exp_modifier(now=NOW + timedelta(hours=2)))

    async def test_catalog_quest_and_mission(self) -> None:
        quest = self.engine.accept_catalog_quest("mq-first-steps").result
        self.assertTrue(quest.is_main_quest)
        self.assertEqual(50, quest.exp_reward)
        self.assertEqual(3, len(quest.tasks))

        mission = self.engine.accept_catalog_mission("m-f-2").result
        self.assertEqual(3, mission.count)

        missing = self.engine.accept_catalog_quest("nope")
        self.assertEqual(FailureCode.NOT_FOUND, missing.code)

    async def test_redemption_flow_through_engine(self) -> None:
        for i in range(5):
            task_id = self.engine.create_task(f"Task {i}").result.id
            self.engine.mark_missed(ItemKind.TASK, task_id)
        self.assertTrue(self.engine.get_penalty_status()["is_cursed"])
        self.assertTrue(self.engine.can_use_redemption())

        started = self.engine.start_redemption()

        self.assertTrue(started.ok)
        self.assertEqual(4, len(started.result))
        self.assertIn(EngineEvent.REDEMPTION_STARTED, self.events(started))
        self.assertFalse(self.engine.start_redemption().ok)

        abandoned = self.engine.abandon_redemption()
        self.assertTrue(abandoned.ok)
        self.assertEqual(END_OF_WEEK, self.engine.get_penalty_status()["cursed_until"])

    async def test_daily_reward_claim(self) -> None:
        self.engine.set_daily_reward(NOW, "Ice cream")
        rejected = self.engine.claim_daily_reward(NOW)
        self.assertEqual(FailureCode.REWARD_NOT_EARNED, rejected.code)

        stats = self.engine.get_reward_journal_stats()
        self.assertEqual(1, stats["total_entries"])
        self.assertEqual(0, stats["claimed_rewards"])

    async def test_quota_status(self) -> None:
        quest_id = self.engine.create_quest("Main", is_main_quest=True).result.id
        self.engine.start_quest(quest_id)
        status = self.engine.get_quota_status()
        self.assertEqual(1, status["main"]["used"])
        self.assertEqual(1, status["main"]["remaining"])

    async def test_get_state_returns_copy(self) -> None:
        state = self.engine.get_state()
        state.user.gold = 999
        self.assertEqual(0, self.engine.get_user().gold)

    async def test_ten_medium_tasks_reach_level_two(self) -> None:
        for i in range(10):
            task_id = self.engine.create_task(f"Task {i}", difficulty="medium").result.id
            self.assertEqual(10, self.engine.complete_task(task_id).result)

        user = self.engine.get_user()
        self.assertEqual(2, user.level)
        self.assertEqual(0, user.exp)
        self.assertEqual(120, user.exp_to_next_level)

    async def test_recovery_quest_cannot_be_deleted(self) -> None:
        for i in range(5):
            task_id = self.engine.create_task(f"Task {i}").result.id
            self.engine.mark_missed(ItemKind.TASK, task_id)
        quest_ids = self.engine.start_redemption().result

        result = self.engine.delete_quest(quest_ids[0])

        self.assertEqual(FailureCode.RECOVERY_PENDING, result.code)
        self.assertEqual(4, len(self.engine.get_state().quests))

    async def test_shop_purchase(self) -> None:
        self.assertEqual(3, len(self.engine.get_shop_items()))
        rejected = self.engine.purchase_item("shop-fitness-program")
        self.assertEqual(FailureCode.INSUFFICIENT_GOLD, rejected.code)

        self.engine._state.user.gold = 400
        result = self.engine.purchase_item("shop-fitness-program")

        self.assertTrue(result.ok)
        self.assertIn(EngineEvent.ITEM_PURCHASED, self.events(result))
        user = self.engine.get_user()
        self.assertEqual(50, user.gold)
        self.assertEqual(2, user.stats.levels["physical"])
        self.assertEqual(2, len(self.engine.get_shop_items(available_only=True)))

    async def test_custom_shop_item(self) -> None:
        item = self.engine.add_shop_item("Movie night", 40).result
        self.assertEqual(4, len(self.engine.get_shop_items()))
        self.assertEqual([], self.engine.stock_shop().result)
        self.assertFalse(self.engine.purchase_item(item.id).ok)

    async def test_next_mission_release(self) -> None:
        self.assertIsNone(self.engine.get_next_mission_release())
        mission_id = self.engine.create_mission("Push-ups").result.id
        self.engine.complete_mission(mission_id)

        self.assertEqual(NOW + timedelta(hours=24), self.engine.get_next_mission_release())
        self.assertTrue(self.engine.has_completed_mission_recently())
        self.assertEqual(NOW + timedelta(hours=24), self.engine.get_mission_stats()["next_release"])
        self.assertFalse(self.engine.has_completed_mission_recently(now=NOW + timedelta(hours=25)))


class TestEnginePersistence(EngineTestCase):
    async def test_changes_are_saved_in_background(self) -> None:
        task_id = self.engine.create_task("Run").result.id
        self.engine.complete_task(task_id)

        self.assertTrue(await self.engine.flush())

        records = await self.data.tasks.load_all()
        self.assertEqual(1, len(records))
        self.assertTrue(records[0]["completed"])
        snapshot = await self.data.snapshot.load()
        self.assertEqual(10, snapshot["user"]["exp"])

    async def test_shop_items_saved_with_snapshot(self) -> None:
        self.engine._state.user.gold = 300
        self.engine.purchase_item("shop-meditation-guide")
        await self.engine.flush()

        snapshot = await self.data.snapshot.load()
        purchased = [item["id"] for item in snapshot["shop_items"] if item["purchased"]]
        self.assertEqual(["shop-meditation-guide"], purchased)

        reloaded = await self.make_engine(self.data)
        self.assertEqual(100, reloaded.get_user().gold)
        self.assertEqual(2, len(reloaded.get_shop_items(available_only=True)))

    async def test_deletions_are_saved(self) -> None:
        task_id = self.engine.create_task("Run").result.id
        await self.engine.flush()
        self.engine.delete_task(task_id)
        await self.engine.flush()
        self.assertEqual([], await self.data.tasks.load_all())

    async def test_save_failure_keeps_local_state(self) -> None:
        self.data.tasks = FailingRepository()

        with self.assertLogs("soloist_engine.services.engine", level="ERROR"):
            result = self.engine.create_task("Run")
            saved = await self.engine.flush()

        self.assertTrue(result.ok)
        self.assertFalse(saved)
        self.assertEqual(1, len(self.engine.get_state().tasks))
        self.assertGreaterEqual(self.engine.save_failures, 1)
        self.assertEqual("warning", self.engine.health_check()["status"])

    async def test_json_storage_end_to_end(self) -> None:
        with TemporaryDirectory() as tmp:
            config = make_config(Path(tmp))
            engine = EngineService(config=config, data_service=DataService(config.persistence), clock=self.clock)
            await engine.initialize()
            quest_id = engine.create_quest("Quest", tasks=["Step"]).result.id
            await engine.close()

            reopened = EngineService(config=config, data_service=DataService(config.persistence), clock=self.clock)
            self.assertTrue(await reopened.initialize())
            quest = reopened.get_state().find_quest(quest_id)
            self.assertEqual("Step", quest.tasks[0].title)


class TestNotificationHistory(unittest.TestCase):
    def test_history_is_bounded(self) -> None:
        notifier = NotificationService(history_size=2)
        for i in range(3):
            notifier.notify(EngineEvent.EXP_AWARDED, f"+{i}")
        self.assertEqual(["+1", "+2"], [n.message for n in notifier.history])

    def test_unsubscribe(self) -> None:
        notifier = NotificationService()
        received = []
        unsubscribe = notifier.subscribe(received.append)
        notifier.notify(EngineEvent.LEVEL_UP, "up")
        unsubscribe()
        notifier.notify(EngineEvent.LEVEL_UP, "up again")
        self.assertEqual(1, len(received))
        self.assertEqual(2, len(notifier.get_recent(event=EngineEvent.LEVEL_UP)))


if __name__ == "__main__":
    unittest.main()
