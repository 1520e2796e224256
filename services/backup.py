import logging
from datetime import datetime
from typing import Dict, List

from database.store import COLLECTIONS, EntityStore

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"


class BackupImportError(Exception):
    """Резервная копия не может быть применена"""


def export_backup(store: EntityStore) -> Dict:
    """Снимок всех коллекций"""
    return {
        'version': BACKUP_VERSION,
        'timestamp': datetime.now().isoformat(),
        'data': {collection.table: store.rows(collection) for collection in COLLECTIONS},
    }


def parse_backup(payload) -> Dict[str, List]:
    """Разбор копии целиком: либо все коллекции, либо BackupImportError"""
    if not isinstance(payload, dict) or not isinstance(payload.get('data'), dict):
        raise BackupImportError("нет раздела data")

    data = payload['data']
    parsed = {}
    for collection in COLLECTIONS:
        rows = data.get(collection.table)
        if not isinstance(rows, list):
            raise BackupImportError(f"нет коллекции {collection.table}")
        try:
            parsed[collection.attr] = [collection.model.from_dict(row) for row in rows]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise BackupImportError(f"повреждена коллекция {collection.table}: {e}") from e

    logger.info(f"Резервная копия {payload.get('version', '?')} от {payload.get('timestamp', '?')} разобрана")
    return parsed
