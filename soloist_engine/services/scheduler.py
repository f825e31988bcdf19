# services/scheduler.py

"""
Периодическая сверка движка через APScheduler. Движок от планировщика не
зависит: без него сверка выполняется перед каждой операцией.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import SchedulerConfig
from ..utils.datetime_utils import get_timezone

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "engine_reconcile"
MIDNIGHT_JOB_ID = "engine_midnight_reset"

class EngineScheduler:
    """Интервальная сверка и ежедневный запуск в 00:00 по зоне движка"""

    def __init__(self, engine, config: Optional[SchedulerConfig] = None, timezone: Optional[str] = None):
        self.engine = engine
        self.config = config or SchedulerConfig()
        self.scheduler = AsyncIOScheduler(timezone=get_timezone(timezone or engine.config.timezone))
        self._configured = False
        self._stopping = False

    def run_reconcile(self):
        """Задача планировщика; ошибки не должны останавливать планировщик"""
        try:
            result = self.engine.reconcile()
        except Exception as e:
            logger.error(f"❌ Ошибка плановой сверки: {e}")
            return None
        if result.notifications:
            logger.info(f"🔁 Плановая сверка: событий {len(result.notifications)}")
        return result

    def configure(self):
        if self._configured:
            return
        self.scheduler.add_job(
            self.run_reconcile, 'interval',
            minutes=self.config.reconcile_interval_minutes,
            id=RECONCILE_JOB_ID, replace_existing=True,
        )
        if self.config.midnight_job:
            self.scheduler.add_job(
                self.run_reconcile, 'cron', hour=0, minute=0,
                id=MIDNIGHT_JOB_ID, replace_existing=True,
            )
        self._configured = True

    def start(self):
        """Запуск; требует работающего цикла событий"""
        self.configure()
        if not self.scheduler.running:
            self.scheduler.start()
            self._stopping = False
            logger.info(f"⏱️ Планировщик запущен: сверка каждые {self.config.reconcile_interval_minutes} мин")

    @property
    def is_running(self) -> bool:
        return self.scheduler.running and not self._stopping

    def shutdown(self):
        """
        Остановка без ожидания задач; повторный вызов ничего не делает.

        AsyncIOScheduler завершается на следующей итерации цикла событий,
        до этого scheduler.running остается True.
        """
        if self._stopping or not self.scheduler.running:
            return
        self._stopping = True
        self.scheduler.shutdown(wait=False)
        logger.info("🛑 Планировщик остановлен")

    def get_jobs(self):
        return self.scheduler.get_jobs()
