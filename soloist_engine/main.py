#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Soloist Engine v4.0 - Entry point
Фоновый процесс движка: загрузка состояния, плановая сверка, сохранение при выходе

Версия: 4.0.1
Дата: 2025-06-12
"""

import asyncio
import logging
import signal
import sys

from .config import get_config
from .services import ServiceManager
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)

# ===== ГЛАВНАЯ ФУНКЦИЯ =====

async def main() -> int:
    """Запуск сервисов и ожидание сигнала остановки"""
    config = get_config()
    setup_logging(config)

    # без планировщика процессу нечего делать между операциями
    config.scheduler.enabled = True

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except NotImplementedError:
            # Windows: остается KeyboardInterrupt
            pass

    manager = ServiceManager(config)
    if not await manager.initialize_services():
        logger.error("❌ Не удалось запустить движок")
        return 1

    health = manager.health_check()
    logger.info(f"🚀 Soloist Engine запущен ({config.environment.value}), статус: {health['status']}")
    status = manager.engine.get_penalty_status()
    logger.info(
        f"📊 Модификатор EXP x{status['exp_modifier']}, "
        f"осталось шансов: {status['chances_remaining']}"
    )

    try:
        await stop_event.wait()
        logger.info("📢 Получен сигнал остановки, завершение работы...")
    finally:
        await manager.close_services()
    return 0

def run():
    """Точка входа консольного скрипта"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("👋 Движок остановлен пользователем")
    except Exception as e:
        logger.error(f"💥 Фатальная ошибка: {e}")
        sys.exit(1)

# ===== ТОЧКА ВХОДА =====

if __name__ == "__main__":
    run()
