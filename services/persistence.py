import asyncio
import copy
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

import httpx

from cloud_api.manager import SupabaseManager
from database.manager import DatabaseManager
from database.store import COLLECTIONS
from .reconciliation import ids_to_delete

logger = logging.getLogger(__name__)

# Таблицы с составным ключом: удаления в облако не распространяются
COMPOSITE_KEYS = {c.table: c.key for c in COLLECTIONS if len(c.key) > 1}


class PersistenceGateway:
    """Загрузка и сохранение коллекций: облако (если есть) + локальный кэш"""

    def __init__(self, db: DatabaseManager, remote: Optional[SupabaseManager] = None):
        self.db = db
        self.remote = remote
        self._versions: Dict[str, int] = defaultdict(int)
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def cloud_enabled(self) -> bool:
        return self.remote is not None and self.remote.is_enabled

    async def load(self, table: str, fallback_seed: Sequence[Dict]) -> List[Dict]:
        """Облако -> локальный кэш -> начальные данные"""
        if self.cloud_enabled:
            try:
                rows = await self.remote.select(table)
                if rows:
                    logger.info(f"Загружено из облака {table}: {len(rows)} записей")
                    return rows
                logger.info(f"В облаке нет данных {table}, пробуем локальный кэш")
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Ошибка загрузки {table} из облака, пробуем локальный кэш: {e}")

        rows = self.db.load_snapshot(table)
        if rows is not None:
            logger.info(f"Загружено из локального кэша {table}: {len(rows)} записей")
            return rows

        logger.info(f"Нет сохранённых данных {table}, используем начальные")
        return copy.deepcopy(list(fallback_seed))

    async def save(self, table: str, rows: Sequence[Dict]) -> bool:
        """Сохранение коллекции целиком.

        Локальный снимок пишется сразу, до любого ожидания. Затем, если облако
        настроено, выполняется синхронизация. Синхронизации одной таблицы идут
        по очереди; устаревшая (уже есть более новое сохранение) пропускается.
        Возвращает True, если облако успешно синхронизировано этим вызовом.
        """
        snapshot = copy.deepcopy(list(rows))
        self.db.save_snapshot(table, snapshot)

        if not self.cloud_enabled:
            return False

        self._versions[table] += 1
        version = self._versions[table]
        lock = self._locks.setdefault(table, asyncio.Lock())

        async with lock:
            if version != self._versions[table]:
                logger.info(f"Сохранение {table} v{version} устарело, пропускаем синхронизацию")
                return False

            try:
                await self._sync_remote(table, snapshot)
                return True
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Ошибка синхронизации {table}: {e}")
                return False

    async def _sync_remote(self, table: str, rows: List[Dict]):
        key = COMPOSITE_KEYS.get(table, ('id',))

        if rows:
            await self.remote.upsert(table, rows, on_conflict=key)

        if table in COMPOSITE_KEYS:
            return

        remote_ids = await self.remote.select_ids(table)
        stale_ids = ids_to_delete(remote_ids, rows)
        if stale_ids:
            await self.remote.delete_in(table, stale_ids)
            logger.info(f"Удалено из облака {table}: {len(stale_ids)} записей")
