# services/data_service.py

"""
Коллаборатор хранения.

Для каждого типа элементов: load_all / create / update / delete, для
синглтона (пользователь, штрафы, журнал): load / save. Движок не знает, что
за хранилищем: память, JSON-файл или удаленный API.
"""

import asyncio
import copy
import json
import logging
import shutil
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import PersistenceConfig
from ..core.models import new_id

logger = logging.getLogger(__name__)

COLLECTIONS = ("tasks", "quests", "missions")

# ===== ERRORS =====

class PersistenceError(Exception):
    """Ошибка хранилища"""
    pass

class RecordNotFoundError(PersistenceError):
    """Запись не найдена"""
    pass

# ===== CONTRACTS =====

class EntityRepository(ABC):
    """Хранилище одной коллекции элементов"""

    @abstractmethod
    async def load_all(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def update(self, item_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def delete(self, item_id: str) -> None:
        ...

class SnapshotRepository(ABC):
    """Хранилище синглтона состояния"""

    @abstractmethod
    async def load(self) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def save(self, snapshot: Dict[str, Any]) -> None:
        ...

# ===== IN-MEMORY =====

class InMemoryEntityRepository(EntityRepository):
    def __init__(self, records: Optional[List[Dict[str, Any]]] = None):
        self._records: Dict[str, Dict[str, Any]] = {}
        for record in records or []:
            self._records[record["id"]] = copy.deepcopy(record)

    async def load_all(self) -> List[Dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._records.values()]

    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        record = copy.deepcopy(record)
        record.setdefault("id", new_id())
        self._records[record["id"]] = record
        return copy.deepcopy(record)

    async def update(self, item_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        if item_id not in self._records:
            raise RecordNotFoundError(f"Запись {item_id} не найдена")
        self._records[item_id].update(copy.deepcopy(partial))
        return copy.deepcopy(self._records[item_id])

    async def delete(self, item_id: str) -> None:
        self._records.pop(item_id, None)

class InMemorySnapshotRepository(SnapshotRepository):
    def __init__(self, snapshot: Optional[Dict[str, Any]] = None):
        self._snapshot = copy.deepcopy(snapshot)

    async def load(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._snapshot)

    async def save(self, snapshot: Dict[str, Any]) -> None:
        self._snapshot = copy.deepcopy(snapshot)

class InMemoryDataService:
    """Набор репозиториев в памяти (тесты, офлайн-режим)"""

    def __init__(self):
        self.tasks = InMemoryEntityRepository()
        self.quests = InMemoryEntityRepository()
        self.missions = InMemoryEntityRepository()
        self.snapshot = InMemorySnapshotRepository()

    def close(self):
        pass

# ===== JSON FILE =====

class _JsonCollection(EntityRepository):
    def __init__(self, service: "DataService", name: str):
        self._service = service
        self._name = name

    async def load_all(self) -> List[Dict[str, Any]]:
        data = await self._service.run(self._service.read_collection, self._name)
        return list(data.values())

    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return await self._service.run(self._service.write_record, self._name, record, False)

    async def update(self, item_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        return await self._service.run(self._service.write_record, self._name, dict(partial, id=item_id), True)

    async def delete(self, item_id: str) -> None:
        await self._service.run(self._service.delete_record, self._name, item_id)

class _JsonSnapshot(SnapshotRepository):
    def __init__(self, service: "DataService"):
        self._service = service

    async def load(self) -> Optional[Dict[str, Any]]:
        return await self._service.run(self._service.read_snapshot)

    async def save(self, snapshot: Dict[str, Any]) -> None:
        await self._service.run(self._service.write_snapshot, snapshot)

class DataService:
    """
    Хранилище состояния в одном JSON-файле

    Возможности:
    - Атомарное сохранение через временный файл
    - Бэкап перед каждой перезаписью, ротация старых бэкапов
    - Поврежденный файл переносится в бэкапы, работа продолжается с пустой базой
    - Файловые операции выполняются в executor, чтобы не блокировать цикл событий
    """

    def __init__(self, config: Optional[PersistenceConfig] = None):
        self.config = config or PersistenceConfig()
        self.data_file = self.config.path
        self.backup_dir = self.config.backup_dir

        self._document: Optional[Dict[str, Any]] = None
        self._lock = threading.RLock()

        self.last_save_time: Optional[float] = None
        self.total_operations = 0
        self.failed_operations = 0

        self.tasks = _JsonCollection(self, "tasks")
        self.quests = _JsonCollection(self, "quests")
        self.missions = _JsonCollection(self, "missions")
        self.snapshot = _JsonSnapshot(self)

    async def run(self, func, *args):
        """Выполнить файловую операцию в executor"""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except PersistenceError:
            self.failed_operations += 1
            raise
        except (OSError, TypeError, ValueError) as e:
            self.failed_operations += 1
            raise PersistenceError(f"Ошибка хранилища: {e}") from e

    # ===== ЗАГРУЗКА =====

    @staticmethod
    def _empty_document() -> Dict[str, Any]:
        return {"snapshot": None, "tasks": {}, "quests": {}, "missions": {}}

    def _ensure_loaded(self) -> Dict[str, Any]:
        with self._lock:
            if self._document is None:
                self._document = self._load_from_disk()
            return self._document

    def _load_from_disk(self) -> Dict[str, Any]:
        if not self.data_file.exists():
            logger.info("📂 Файл данных не найден, начинаем с пустой базы")
            return self._empty_document()

        try:
            with open(self.data_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"❌ Ошибка парсинга JSON: {e}")
            self._move_corrupted()
            return self._empty_document()

        if not isinstance(data, dict):
            logger.warning("⚠️ Неверный формат файла данных")
            return self._empty_document()

        document = self._empty_document()
        document["snapshot"] = data.get("snapshot")
        for name in COLLECTIONS:
            records = data.get(name) or {}
            if isinstance(records, list):
                records = {r.get("id"): r for r in records if isinstance(r, dict) and r.get("id")}
            document[name] = records if isinstance(records, dict) else {}
        logger.info(
            f"📂 Загружено из {self.data_file}: "
            + ", ".join(f"{name}={len(document[name])}" for name in COLLECTIONS)
        )
        return document

    def _move_corrupted(self):
        """Поврежденный файл переносится в каталог бэкапов"""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        backup_name = f"corrupted_backup_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.json"
        backup_path = self.backup_dir / backup_name
        self.data_file.replace(backup_path)
        logger.warning(f"🔄 Поврежденный файл перемещен в {backup_path}")

    # ===== ОПЕРАЦИИ (синхронные, вызываются через run) =====

    def read_collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            self.total_operations += 1
            return copy.deepcopy(self._ensure_loaded()[name])

    def read_snapshot(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            self.total_operations += 1
            return copy.deepcopy(self._ensure_loaded()["snapshot"])

    def write_record(self, name: str, record: Dict[str, Any], must_exist: bool) -> Dict[str, Any]:
        with self._lock:
            document = self._ensure_loaded()
            collection = document[name]
            record = copy.deepcopy(record)
            if must_exist:
                item_id = record["id"]
                if item_id not in collection:
                    raise RecordNotFoundError(f"Запись {name}/{item_id} не найдена")
                collection[item_id].update(record)
                stored = collection[item_id]
            else:
                record.setdefault("id", new_id())
                collection[record["id"]] = record
                stored = record
            self._save_to_disk()
            return copy.deepcopy(stored)

    def delete_record(self, name: str, item_id: str) -> None:
        with self._lock:
            document = self._ensure_loaded()
            if document[name].pop(item_id, None) is not None:
                self._save_to_disk()

    def write_snapshot(self, snapshot: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_loaded()["snapshot"] = copy.deepcopy(snapshot)
            self._save_to_disk()

    # ===== СОХРАНЕНИЕ НА ДИСК =====

    def _save_to_disk(self):
        """Атомарная запись через временный файл с бэкапом предыдущей версии"""
        start_time = time.time()
        self.data_file.parent.mkdir(parents=True, exist_ok=True)

        if self.data_file.exists() and self.config.max_backups > 0:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            backup_name = f"backup_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.json"
            shutil.copy2(self.data_file, self.backup_dir / backup_name)
            self.cleanup_old_backups()

        temp_file = self.data_file.with_suffix('.tmp')
        with open(temp_file, 'w', encoding='utf-8') as f:
            json.dump(self._document, f, ensure_ascii=False, indent=2, default=str)
        temp_file.replace(self.data_file)

        self.last_save_time = time.time()
        self.total_operations += 1
        logger.debug(f"💾 Данные сохранены за {self.last_save_time - start_time:.3f}с")

    def cleanup_old_backups(self, keep_count: Optional[int] = None):
        keep_count = self.config.max_backups if keep_count is None else keep_count
        backups = sorted(self.backup_dir.glob("backup_*.json"), key=lambda p: p.name)
        for backup in (backups[:-keep_count] if keep_count > 0 else backups):
            try:
                backup.unlink()
            except OSError as e:
                logger.error(f"❌ Ошибка удаления бэкапа {backup}: {e}")

    def list_backups(self) -> List[Path]:
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob("*.json"))

    def get_service_metrics(self) -> Dict[str, Any]:
        return {
            "data_file": str(self.data_file),
            "total_operations": self.total_operations,
            "failed_operations": self.failed_operations,
            "last_save_time": self.last_save_time,
            "backups_count": len(self.list_backups()),
        }

    def close(self):
        with self._lock:
            self._document = None
        logger.info("🛑 DataService закрыт")

# ===== ГЛОБАЛЬНЫЙ ЭКЗЕМПЛЯР =====

_global_data_service = None

def get_data_service():
    """Получить глобальный экземпляр хранилища"""
    global _global_data_service
    if _global_data_service is None:
        _global_data_service = DataService()
    return _global_data_service

def initialize_data_service(config: Optional[PersistenceConfig] = None):
    """Файловое хранилище или хранилище в памяти, если сохранение выключено"""
    global _global_data_service
    if config is not None and not config.enabled:
        _global_data_service = InMemoryDataService()
    else:
        _global_data_service = DataService(config)
    return _global_data_service

def close_data_service():
    global _global_data_service
    if _global_data_service:
        _global_data_service.close()
        _global_data_service = None
