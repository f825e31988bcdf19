#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Soloist Engine v4.0 - Configuration
Конфигурация движка прогрессии из переменных окружения

Версия: 4.0.1
Дата: 2025-06-12
"""

import os
import sys
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum

import pytz

class Environment(Enum):
    """Среды выполнения"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"

class LogLevel(Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

def _env_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).lower() == 'true'

@dataclass
class PersistenceConfig:
    """Конфигурация хранилища"""
    data_dir: Path = Path("data")
    data_file: str = "engine_state.json"
    backup_dir: Path = Path("backups")
    max_backups: int = 10
    enabled: bool = True
    save_retries: int = 3
    retry_delay: float = 0.5

    @property
    def path(self) -> Path:
        return self.data_dir / self.data_file

@dataclass
class SchedulerConfig:
    """Конфигурация периодической сверки"""
    enabled: bool = False
    reconcile_interval_minutes: int = 15
    midnight_job: bool = True

@dataclass
class LoggingSettings:
    """Конфигурация логирования"""
    level: LogLevel = LogLevel.INFO
    to_file: bool = True
    log_dir: Path = Path("logs")
    format: str = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

@dataclass
class EngineConfig:
    """Главный класс конфигурации"""
    environment: Environment = Environment.DEVELOPMENT
    timezone: str = "UTC"
    notification_history: int = 200
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logs: LoggingSettings = field(default_factory=LoggingSettings)

    def __post_init__(self):
        self._validate_config()

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Загрузка конфигурации из переменных окружения"""
        persistence = PersistenceConfig(
            data_dir=Path(os.getenv('DATA_DIR', 'data')),
            data_file=os.getenv('DATA_FILE', 'engine_state.json'),
            backup_dir=Path(os.getenv('BACKUP_DIR', 'backups')),
            max_backups=int(os.getenv('MAX_BACKUPS', 10)),
            enabled=_env_bool('PERSISTENCE_ENABLED', 'true'),
            save_retries=int(os.getenv('SAVE_RETRIES', 3)),
            retry_delay=float(os.getenv('SAVE_RETRY_DELAY', 0.5)),
        )
        scheduler = SchedulerConfig(
            enabled=_env_bool('SCHEDULER_ENABLED', 'false'),
            reconcile_interval_minutes=int(os.getenv('RECONCILE_INTERVAL_MINUTES', 15)),
            midnight_job=_env_bool('MIDNIGHT_JOB', 'true'),
        )
        logging_settings = LoggingSettings(
            level=LogLevel(os.getenv('LOG_LEVEL', 'INFO').upper()),
            to_file=_env_bool('LOG_TO_FILE', 'true'),
            log_dir=Path(os.getenv('LOG_DIR', 'logs')),
            format=os.getenv('LOG_FORMAT', '%(asctime)s [%(levelname)s] %(name)s: %(message)s'),
        )
        return cls(
            environment=Environment(os.getenv('ENVIRONMENT', 'development')),
            timezone=os.getenv('ENGINE_TIMEZONE', 'UTC'),
            notification_history=int(os.getenv('NOTIFICATION_HISTORY', 200)),
            persistence=persistence,
            scheduler=scheduler,
            logs=logging_settings,
        )

    def _validate_config(self):
        """Валидация конфигурации"""
        errors = []

        if self.timezone not in pytz.all_timezones_set:
            errors.append(f"Неизвестная временная зона: {self.timezone}")

        if self.persistence.max_backups < 0:
            errors.append("MAX_BACKUPS не может быть отрицательным")

        if self.persistence.save_retries < 1:
            errors.append("SAVE_RETRIES должен быть не меньше 1")

        if self.scheduler.reconcile_interval_minutes <= 0:
            errors.append("RECONCILE_INTERVAL_MINUTES должен быть положительным")

        if self.notification_history <= 0:
            errors.append("NOTIFICATION_HISTORY должен быть положительным")

        if errors:
            raise ValueError("Ошибки конфигурации:\n" + "\n".join(f"• {error}" for error in errors))

    def ensure_directories(self):
        """Создание необходимых директорий"""
        directories = [self.persistence.data_dir, self.persistence.backup_dir]
        if self.logs.to_file:
            directories.append(self.logs.log_dir)
        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    def get_logging_config(self) -> Dict[str, Any]:
        """Конфигурация для logging.config.dictConfig"""
        handlers = ['console']
        if self.logs.to_file:
            handlers.append('file')

        config: Dict[str, Any] = {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'default': {
                    'format': self.logs.format,
                    'datefmt': '%Y-%m-%d %H:%M:%S'
                }
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'level': self.logs.level.value,
                    'formatter': 'default',
                    'stream': sys.stdout
                }
            },
            'loggers': {
                'soloist_engine': {
                    'level': self.logs.level.value,
                    'handlers': handlers,
                    'propagate': False
                },
                'apscheduler': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                }
            }
        }

        if self.logs.to_file:
            config['handlers']['file'] = {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': self.logs.level.value,
                'formatter': 'default',
                'filename': str(self.logs.log_dir / f"engine_{self.environment.value}.log"),
                'maxBytes': 10485760,  # 10MB
                'backupCount': 5,
                'encoding': 'utf-8'
            }

        return config

    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация конфигурации в словарь"""
        return {
            'environment': self.environment.value,
            'timezone': self.timezone,
            'persistence': {
                'path': str(self.persistence.path),
                'backup_dir': str(self.persistence.backup_dir),
                'max_backups': self.persistence.max_backups,
                'enabled': self.persistence.enabled,
            },
            'scheduler': {
                'enabled': self.scheduler.enabled,
                'reconcile_interval_minutes': self.scheduler.reconcile_interval_minutes,
            },
            'log_level': self.logs.level.value,
        }

# Глобальный экземпляр создается лениво, чтобы импорт не читал окружение
_config: Optional[EngineConfig] = None

def get_config() -> EngineConfig:
    """Получить глобальную конфигурацию"""
    global _config
    if _config is None:
        _config = EngineConfig.from_env()
        logging.getLogger(__name__).debug(f"⚙️ Конфигурация загружена: {_config.to_dict()}")
    return _config

def reset_config():
    """Сбросить глобальную конфигурацию (используется в тестах)"""
    global _config
    _config = None

__all__ = [
    'EngineConfig',
    'Environment',
    'LogLevel',
    'PersistenceConfig',
    'SchedulerConfig',
    'LoggingSettings',
    'get_config',
    'reset_config',
]
