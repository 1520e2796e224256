import logging
from typing import Dict, Iterable, List, Optional, Sequence

import httpx

from config import SUPABASE_URL, SUPABASE_KEY, REMOTE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def _in_filter(values: Iterable) -> str:
    """Фильтр PostgREST вида in.("a","b")"""
    quoted = []
    for value in values:
        text = str(value).replace('\\', '\\\\').replace('"', '\\"')
        quoted.append(f'"{text}"')
    return f"in.({','.join(quoted)})"


class SupabaseManager:
    """Клиент облачного хранилища (REST API Supabase / PostgREST)"""

    def __init__(self, url: str = SUPABASE_URL, key: str = SUPABASE_KEY,
                 client: Optional[httpx.AsyncClient] = None):
        self.url = (url or '').rstrip('/')
        self.key = key or ''
        self._client = client

        if self.is_enabled:
            logger.info("Облачное хранилище настроено")
        else:
            logger.warning("Supabase не настроен, бот работает в офлайн-режиме (локальный кэш)")

    @property
    def is_enabled(self) -> bool:
        return bool(self.url and self.key)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.url}/rest/v1",
                headers={
                    'apikey': self.key,
                    'Authorization': f"Bearer {self.key}",
                },
                timeout=REMOTE_TIMEOUT_SECONDS,
            )
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def select(self, table: str, columns: str = '*') -> List[Dict]:
        """Чтение всех строк таблицы"""
        response = await self.client.get(f"/{table}", params={'select': columns})
        response.raise_for_status()
        rows = response.json()
        if not isinstance(rows, list):
            raise ValueError(f"Неожиданный ответ для таблицы {table}: {rows!r}")
        return rows

    async def select_ids(self, table: str, column: str = 'id') -> List:
        rows = await self.select(table, column)
        return [row[column] for row in rows if column in row]

    async def upsert(self, table: str, rows: List[Dict], on_conflict: Sequence[str] = ('id',)):
        """Пакетная вставка-или-обновление по ключу"""
        response = await self.client.post(
            f"/{table}",
            params={'on_conflict': ','.join(on_conflict)},
            json=rows,
            headers={'Prefer': 'resolution=merge-duplicates,return=minimal'},
        )
        response.raise_for_status()
        logger.debug(f"Upsert {table}: {len(rows)} записей")

    async def delete_in(self, table: str, values: Iterable, column: str = 'id'):
        """Удаление строк, у которых column входит в values"""
        response = await self.client.delete(f"/{table}", params={column: _in_filter(values)})
        response.raise_for_status()
