#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Snapshot Store
Версионированный снимок состояния с merge-семантикой и резервными копиями

Версия: 1.0.0
Дата: 2025-07-02
"""

import copy
import gzip
import json
import shutil
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import BaseModel, Field, ValidationError as SchemaValidationError, field_validator

from config import config
from utils.datetime_utils import to_minutes, weekday_index

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 2

# ===== EXCEPTIONS =====

class SnapshotStoreError(Exception):
    """Базовое исключение хранилища снимков"""
    pass

class SnapshotCorruptionError(SnapshotStoreError):
    """Файл снимка повреждён"""
    pass

class SnapshotSchemaError(SnapshotStoreError):
    """Снимок не соответствует схеме"""
    pass

# ===== SCHEMA =====

class ActiveSessionSnapshot(BaseModel):
    """Активная сессия: фокус или просмотр"""
    kind: Literal["focus", "watch"]
    data: Dict[str, Any]

class ProfileSnapshot(BaseModel):
    name: Optional[str] = None
    skills: List[Dict[str, Any]] = Field(default_factory=list)

class PlannerSnapshot(BaseModel):
    """Схема снимка. Все поля явные, active_session необязателен"""
    version: int = SNAPSHOT_VERSION
    saved_at: Optional[str] = None
    profile: ProfileSnapshot = Field(default_factory=ProfileSnapshot)
    schedule: List[Dict[str, Any]] = Field(default_factory=list)
    free_slots: List[Dict[str, Any]] = Field(default_factory=list)
    ledger: List[Dict[str, Any]] = Field(default_factory=list)
    active_session: Optional[ActiveSessionSnapshot] = None

    @field_validator('version')
    @classmethod
    def validate_version(cls, v):
        if v != SNAPSHOT_VERSION:
            raise ValueError(f'Неподдерживаемая версия снимка: {v}')
        return v

SNAPSHOT_FIELDS = frozenset(PlannerSnapshot.model_fields.keys()) - {"version", "saved_at"}

def empty_snapshot() -> Dict[str, Any]:
    return PlannerSnapshot().model_dump()

def apply_update(current: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Идемпотентное применение частичного обновления

    Меняются только переданные поля; active_session=None явно очищает сессию.
    Неизвестные ключи игнорируются с предупреждением.
    """
    merged = copy.deepcopy(current)
    for key, value in update.items():
        if key not in SNAPSHOT_FIELDS:
            logger.warning(f"Ignoring unknown snapshot field: {key}")
            continue
        merged[key] = copy.deepcopy(value)

    try:
        return PlannerSnapshot.model_validate(merged).model_dump()
    except SchemaValidationError as e:
        raise SnapshotSchemaError(f"Invalid snapshot update: {e}")

# ===== MIGRATIONS =====

class SnapshotMigration:
    """Миграции формата снимка"""

    VERSION_KEY = "version"
    CURRENT_VERSION = SNAPSHOT_VERSION

    @classmethod
    def get_version(cls, data: Dict[str, Any]) -> int:
        """Снимок без версии - старый формат браузерного хранилища (v1)"""
        try:
            return int(data.get(cls.VERSION_KEY, 1))
        except (TypeError, ValueError):
            raise SnapshotSchemaError(f"Invalid snapshot version: {data.get(cls.VERSION_KEY)!r}")

    @classmethod
    def needs_migration(cls, data: Dict[str, Any]) -> bool:
        return cls.get_version(data) != cls.CURRENT_VERSION

    @classmethod
    def migrate(cls, data: Dict[str, Any], default_day: int = 0) -> Dict[str, Any]:
        current_version = cls.get_version(data)
        logger.info(f"Migrating snapshot from version {current_version} to {cls.CURRENT_VERSION}")

        if current_version == 1:
            data = cls._migrate_from_v1(data, default_day)
        elif current_version > cls.CURRENT_VERSION:
            raise SnapshotSchemaError(f"Snapshot version {current_version} is newer than supported")

        data[cls.VERSION_KEY] = cls.CURRENT_VERSION
        return data

    @classmethod
    def _migrate_from_v1(cls, data: Dict[str, Any], default_day: int) -> Dict[str, Any]:
        """v1: {profile, schedule[{from, to, status}], freeSlots, progress}"""
        entries = data.get("schedule") or []
        profile = data.get("profile") or {}
        if not isinstance(entries, list) or not isinstance(profile, dict):
            raise SnapshotSchemaError("Legacy snapshot has malformed schedule or profile")

        schedule = []
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning(f"Dropping legacy schedule entry {entry!r}: not an object")
                continue
            if entry.get("status", "Busy") != "Busy":
                continue  # свободные окна теперь только вычисляются
            try:
                day = weekday_index(entry.get("day", default_day))
                schedule.append({
                    "id": entry.get("id"),
                    "day": default_day if day is None else day,
                    "from_minute": to_minutes(entry["from"]),
                    "to_minute": to_minutes(entry["to"]),
                    "label": entry.get("label")
                })
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Dropping legacy schedule entry {entry!r}: {e}")

        if data.get("progress"):
            logger.info("Legacy progress percentages dropped, progress is derived from the ledger now")

        return {
            "profile": {
                "name": profile.get("name"),
                "skills": profile.get("skills", [])
            },
            "schedule": schedule,
            "free_slots": [],
            "ledger": data.get("ledger", []),
            "active_session": None
        }

# ===== BACKUPS =====

class BackupManager:
    """Менеджер резервных копий"""

    def __init__(self, backup_dir: Path, max_backups: int = 10):
        self.backup_dir = Path(backup_dir)
        self.max_backups = max_backups

    def create_backup(self, source_file: Path, compressed: bool = True) -> Optional[Path]:
        """Создать резервную копию"""
        try:
            if not source_file.exists():
                logger.warning(f"Source file {source_file} does not exist for backup")
                return None

            self.backup_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
            backup_name = f"backup_{timestamp}.json"

            if compressed:
                backup_name += ".gz"
                backup_path = self.backup_dir / backup_name

                with open(source_file, 'rb') as f_in:
                    with gzip.open(backup_path, 'wb') as f_out:
                        f_out.writelines(f_in)
            else:
                backup_path = self.backup_dir / backup_name
                shutil.copy2(source_file, backup_path)

            logger.info(f"Backup created: {backup_path}")
            self._cleanup_old_backups()
            return backup_path

        except OSError as e:
            logger.error(f"Failed to create backup: {e}")
            return None

    def read_backup(self, backup_path: Path) -> Dict[str, Any]:
        """Прочитать содержимое резервной копии"""
        if backup_path.name.endswith('.gz'):
            with gzip.open(backup_path, 'rt', encoding='utf-8') as f:
                return json.load(f)
        with open(backup_path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def list_backups(self) -> List[Path]:
        """Резервные копии, новые первыми"""
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob("backup_*.json*"), key=lambda p: p.name, reverse=True)

    def _cleanup_old_backups(self) -> None:
        """Удалить старые резервные копии"""
        for backup in self.list_backups()[self.max_backups:]:
            try:
                backup.unlink()
                logger.info(f"Removed old backup: {backup}")
            except OSError as e:
                logger.error(f"Failed to remove old backup {backup}: {e}")

# ===== STORE =====

class SnapshotStore:
    """JSON-хранилище снимка

    В памяти всегда лежит полный объединённый снимок; при ошибке записи он
    остаётся авторитетным, и следующая удачная запись сохраняет всё сразу.
    """

    def __init__(self, path: Optional[Path] = None, backup_dir: Optional[Path] = None,
                 max_backups: Optional[int] = None, default_day: int = 0):
        self.path = Path(path or config.storage.path)
        self.backup_manager = BackupManager(
            backup_dir or config.storage.backup_dir,
            config.storage.max_backups if max_backups is None else max_backups
        )
        self.default_day = default_day
        self.file_lock = threading.RLock()
        self.scheduler: Optional[AsyncIOScheduler] = None

        self._current: Dict[str, Any] = empty_snapshot()
        self.dirty = False
        self.save_count = 0
        self.error_count = 0
        self.last_save: Optional[str] = None

    # ===== LOAD =====

    def load_snapshot(self) -> Dict[str, Any]:
        """Загрузить снимок с диска; отсутствующий файл - пустой снимок"""
        with self.file_lock:
            if not self.path.exists():
                logger.info("Snapshot file does not exist, starting with empty state")
                self._current = empty_snapshot()
                return copy.deepcopy(self._current)

            try:
                self._current = self._prepare(self._read_file(self.path))
            except SnapshotStoreError as e:
                logger.error(f"Snapshot file is unusable: {e}")
                self._current = self._recover_from_backups()
                self.dirty = True
            logger.info(
                f"Snapshot loaded: {len(self._current['schedule'])} intervals, "
                f"{len(self._current['ledger'])} ledger records"
            )
            return copy.deepcopy(self._current)

    def _read_file(self, path: Path) -> Dict[str, Any]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise SnapshotCorruptionError(str(e))
        return data

    def _prepare(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Миграция и проверка схемы"""
        if not isinstance(data, dict):
            raise SnapshotCorruptionError("Snapshot root must be an object")
        if SnapshotMigration.needs_migration(data):
            data = SnapshotMigration.migrate(data, self.default_day)
            try:
                prepared = PlannerSnapshot.model_validate(data).model_dump()
            except SchemaValidationError as e:
                raise SnapshotSchemaError(f"Migrated snapshot does not match schema: {e}")
            self.backup_manager.create_backup(self.path)
            try:
                self._write_sync(prepared)
            except OSError as e:
                logger.error(f"Failed to write migrated snapshot: {e}")
                self.dirty = True
            return prepared

        try:
            return PlannerSnapshot.model_validate(data).model_dump()
        except SchemaValidationError as e:
            raise SnapshotSchemaError(f"Snapshot does not match schema: {e}")

    def _recover_from_backups(self) -> Dict[str, Any]:
        """Попытка восстановления из резервных копий, иначе пустой снимок

        Каждая копия проходит ту же миграцию и проверку схемы, что и основной файл.
        """
        logger.warning("Attempting to recover snapshot from backups...")

        for backup in self.backup_manager.list_backups():
            try:
                data = self._prepare(self.backup_manager.read_backup(backup))
                logger.info(f"Successfully restored from backup: {backup.name}")
                return data
            except (OSError, ValueError, SnapshotStoreError) as e:
                logger.warning(f"Failed to restore from backup {backup.name}: {e}")

        logger.warning("Could not restore from any backup, starting with empty state")
        return empty_snapshot()

    # ===== SAVE =====

    @property
    def current(self) -> Dict[str, Any]:
        return copy.deepcopy(self._current)

    def save_snapshot(self, update: Dict[str, Any]) -> bool:
        """Слить частичное обновление и записать на диск

        Returns:
            True при успешной записи; False если данные остались только в памяти
        """
        with self.file_lock:
            self._current = apply_update(self._current, update)
            self.dirty = True

            try:
                self._write_sync(self._current)
            except OSError as e:
                self.error_count += 1
                logger.error(f"Snapshot write failed, keeping state in memory: {e}")
                return False

            self.dirty = False
            return True

    def _write_sync(self, data: Dict[str, Any]) -> None:
        """Атомарная запись через временный файл"""
        with self.file_lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = dict(data)
            payload["saved_at"] = datetime.now().isoformat()
            temp_file = self.path.with_suffix('.tmp')

            try:
                with open(temp_file, 'w', encoding='utf-8') as f:
                    json.dump(payload, f, ensure_ascii=False, indent=2)
                temp_file.replace(self.path)
            except OSError:
                if temp_file.exists():
                    temp_file.unlink()
                raise

            self.save_count += 1
            self.last_save = payload["saved_at"]

    # ===== BACKUPS & SCHEDULER =====

    def create_backup(self, compressed: bool = True) -> Optional[Path]:
        with self.file_lock:
            return self.backup_manager.create_backup(self.path, compressed)

    async def _periodic_backup(self) -> None:
        """Периодическое резервное копирование"""
        if self.dirty:
            self.save_snapshot({})
        self.create_backup()

    def start_scheduler(self) -> None:
        """Запуск автоматического резервного копирования (нужен работающий event loop)"""
        if not config.storage.auto_backup or self.scheduler:
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._periodic_backup,
            IntervalTrigger(hours=config.storage.backup_interval_hours),
            id='periodic_backup',
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Snapshot backup scheduler started")

    def get_stats(self) -> Dict[str, Any]:
        return {
            'path': str(self.path),
            'save_count': self.save_count,
            'error_count': self.error_count,
            'last_save': self.last_save,
            'dirty': self.dirty,
            'backups': len(self.backup_manager.list_backups()),
            'scheduler_running': bool(self.scheduler and self.scheduler.running)
        }

    def shutdown(self) -> None:
        """Корректное завершение работы"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.scheduler = None
        if self.dirty:
            self.save_snapshot({})
        logger.info("Snapshot store shutdown completed")

# ===== EXPORT =====

__all__ = [
    'SNAPSHOT_VERSION',
    'SnapshotStoreError',
    'SnapshotCorruptionError',
    'SnapshotSchemaError',
    'ActiveSessionSnapshot',
    'ProfileSnapshot',
    'PlannerSnapshot',
    'SNAPSHOT_FIELDS',
    'empty_snapshot',
    'apply_update',
    'SnapshotMigration',
    'BackupManager',
    'SnapshotStore'
]
