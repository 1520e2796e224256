import json
import sqlite3
import logging
from typing import List, Dict, Optional

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Локальный кэш: по одному снимку на коллекцию (полная замена при записи)"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.init_db()

    def init_db(self):
        """Инициализация базы данных"""
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS snapshots (
                    name TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            conn.commit()
            logger.info("Локальный кэш инициализирован")

        except sqlite3.Error as e:
            logger.error(f"Ошибка инициализации БД: {e}")
            raise
        finally:
            conn.close()

    def save_snapshot(self, name: str, rows: List[Dict]) -> bool:
        """Сохранение снимка коллекции целиком"""
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO snapshots (name, payload, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(name) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
            ''', (name, json.dumps(rows, ensure_ascii=False)))

            conn.commit()
            logger.debug(f"Локальный снимок {name}: {len(rows)} записей")
            return True

        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"Ошибка сохранения локального снимка {name}: {e}")
            return False
        finally:
            conn.close()

    def load_snapshot(self, name: str) -> Optional[List[Dict]]:
        """Чтение снимка; None, если его нет или он повреждён"""
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.cursor()
            cursor.execute('SELECT payload FROM snapshots WHERE name = ?', (name,))
            row = cursor.fetchone()
            if row is None:
                return None

            data = json.loads(row[0])
            if not isinstance(data, list):
                logger.error(f"Локальный снимок {name} имеет неверный формат")
                return None
            return data

        except (sqlite3.Error, ValueError) as e:
            logger.error(f"Ошибка чтения локального снимка {name}: {e}")
            return None
        finally:
            conn.close()
