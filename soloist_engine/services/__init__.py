# services/__init__.py

"""
Модуль сервисов Soloist Engine v4.0

Хранилище, уведомления, каталог контента, оркестратор движка и планировщик.
"""

import logging
from typing import Optional

from ..config import EngineConfig, get_config
from .catalog import StaticCatalog, get_catalog
from .data_service import (
    DataService, InMemoryDataService, PersistenceError, RecordNotFoundError,
    initialize_data_service, close_data_service,
)
from .engine import EngineService, OperationResult
from .notifications import Notification, NotificationService
from .scheduler import EngineScheduler

logger = logging.getLogger(__name__)

class ServiceManager:
    """
    Менеджер сервисов движка

    Обеспечивает:
    - Инициализацию сервисов в нужном порядке
    - Корректное закрытие в обратном порядке
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or get_config()
        self.data_service = None
        self.notifier: Optional[NotificationService] = None
        self.engine: Optional[EngineService] = None
        self.scheduler: Optional[EngineScheduler] = None
        self.initialized = False

    async def initialize_services(self, clock=None) -> bool:
        """Инициализация всех сервисов"""
        try:
            logger.info("🔧 Инициализация сервисов Soloist Engine...")

            # 1. Хранилище
            logger.info("📂 Инициализация хранилища...")
            self.data_service = initialize_data_service(self.config.persistence)

            # 2. Уведомления и движок (зависит от хранилища)
            self.notifier = NotificationService(self.config.notification_history)
            self.engine = EngineService(
                config=self.config,
                data_service=self.data_service,
                notifier=self.notifier,
                catalog=get_catalog(),
                clock=clock,
            )
            logger.info("⚙️ Загрузка состояния движка...")
            await self.engine.initialize()

            # 3. Планировщик (необязательный)
            if self.config.scheduler.enabled:
                self.scheduler = EngineScheduler(self.engine, self.config.scheduler, self.config.timezone)
                self.scheduler.start()

            self.initialized = True
            logger.info("✅ Все сервисы инициализированы успешно!")
            return True

        except Exception as e:
            logger.error(f"❌ Ошибка инициализации сервисов: {e}")
            await self.close_services()
            return False

    def health_check(self) -> dict:
        """Проверка состояния всех сервисов"""
        health = {
            "status": "healthy",
            "services": {},
        }

        if isinstance(self.data_service, DataService):
            metrics = self.data_service.get_service_metrics()
            health["services"]["data_service"] = {
                "status": "warning" if metrics["failed_operations"] else "healthy",
                "metrics": metrics,
            }
        elif self.data_service is not None:
            health["services"]["data_service"] = {"status": "healthy", "mode": "memory"}

        if self.engine:
            health["services"]["engine"] = self.engine.health_check()

        if self.scheduler:
            health["services"]["scheduler"] = {
                "status": "healthy" if self.scheduler.is_running else "warning",
                "jobs": len(self.scheduler.get_jobs()),
            }

        service_statuses = [s.get("status", "unknown") for s in health["services"].values()]
        if "error" in service_statuses:
            health["status"] = "error"
        elif "warning" in service_statuses:
            health["status"] = "warning"

        return health

    async def close_services(self):
        """Закрытие всех сервисов"""
        logger.info("🛑 Закрытие сервисов...")

        # в обратном порядке инициализации
        if self.scheduler:
            self.scheduler.shutdown()
            self.scheduler = None

        if self.engine:
            try:
                await self.engine.flush()
            except Exception as e:
                logger.error(f"❌ Ошибка сохранения при закрытии: {e}")
            self.engine = None

        if self.data_service is not None:
            close_data_service()
            self.data_service = None

        self.initialized = False
        logger.info("✅ Все сервисы закрыты")

    async def __aenter__(self):
        await self.initialize_services()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_services()

# Глобальный экземпляр менеджера сервисов
_service_manager: Optional[ServiceManager] = None

def get_service_manager() -> ServiceManager:
    """Получить глобальный менеджер сервисов"""
    global _service_manager
    if _service_manager is None:
        _service_manager = ServiceManager()
    return _service_manager

async def initialize_all_services(config: Optional[EngineConfig] = None) -> bool:
    global _service_manager
    _service_manager = ServiceManager(config)
    return await _service_manager.initialize_services()

async def close_all_services():
    global _service_manager
    if _service_manager is not None:
        await _service_manager.close_services()
        _service_manager = None

__all__ = [
    'ServiceManager',
    'get_service_manager',
    'initialize_all_services',
    'close_all_services',
    'DataService',
    'InMemoryDataService',
    'PersistenceError',
    'RecordNotFoundError',
    'EngineService',
    'OperationResult',
    'EngineScheduler',
    'Notification',
    'NotificationService',
    'StaticCatalog',
    'get_catalog',
]
