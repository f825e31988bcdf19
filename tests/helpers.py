from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from soloist_engine.config import EngineConfig, LoggingSettings, PersistenceConfig
from soloist_engine.core import lifecycle
from soloist_engine.core.effects import Effect, Transition
from soloist_engine.core.models import EngineState, Mission, Quest, Task
from soloist_engine.core.progression import new_user

# Среда; неделя началась в воскресенье 2025-06-08
NOW = datetime(2025, 6, 11, 10, 0)
WEEK_START = datetime(2025, 6, 8)
END_OF_WEEK = datetime(2025, 6, 15, 23, 59, 59, 999999)
END_OF_TODAY = datetime(2025, 6, 11, 23, 59, 59, 999999)


def make_state(**punishment) -> EngineState:
    state = EngineState(user=new_user("Tester"))
    state.punishment.last_weekly_reset = WEEK_START
    for key, value in punishment.items():
        setattr(state.punishment, key, value)
    return state


def expect_ok(transition: Transition) -> Transition:
    if not transition.ok:
        raise AssertionError(f"unexpected failure: {transition.failure}")
    return transition


def with_task(state: EngineState, title: str = "Task", now: datetime = NOW, **kwargs) -> tuple[EngineState, Task]:
    t = expect_ok(lifecycle.create_task(state, title, now, **kwargs))
    return t.state, t.result


def with_quest(state: EngineState, title: str = "Quest", now: datetime = NOW, **kwargs) -> tuple[EngineState, Quest]:
    t = expect_ok(lifecycle.create_quest(state, title, now, **kwargs))
    return t.state, t.result


def with_mission(state: EngineState, title: str = "Mission", now: datetime = NOW,
                 **kwargs) -> tuple[EngineState, Mission]:
    t = expect_ok(lifecycle.create_mission(state, title, now, **kwargs))
    return t.state, t.result


def effects_of(transition: Transition, effect_type: type) -> list[Effect]:
    return [e for e in transition.effects if isinstance(e, effect_type)]


def events_of(transition: Transition) -> list:
    return [n.event for n in transition.notifications()]


def make_config(data_dir: Optional[Path] = None) -> EngineConfig:
    if data_dir is None:
        persistence = PersistenceConfig(enabled=False, retry_delay=0.0)
    else:
        persistence = PersistenceConfig(
            data_dir=data_dir,
            backup_dir=data_dir / "backups",
            max_backups=3,
            save_retries=2,
            retry_delay=0.0,
        )
    return EngineConfig(persistence=persistence, logs=LoggingSettings(to_file=False))


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now
