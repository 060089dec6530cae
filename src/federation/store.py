"""
YAML table store.

Each table lives in ``<data_dir>/<table>.yaml`` as ``{table: [row, ...], next_id: n}``.
Rows are dicts with an integer ``id``. Writes go through a single FileLock
on the data directory, so read-modify-write sections are serialized across
requests and processes.
"""
import logging
import os
from contextlib import contextmanager
from datetime import datetime

import yaml
from filelock import FileLock

logger = logging.getLogger(__name__)

TABLES = (
    'regions',
    'disciplines',
    'users',
    'competitions',
    'teams',
    'team_members',
    'applications',
    'competition_results',
    'team_join_requests',
)

# Archive name of each table file, as used by backups
TABLE_FILES = {f'{table}.yaml': table for table in TABLES}

DEFAULT_REGIONS = [
    'Moscow',
    'Saint Petersburg',
    'Novosibirsk Oblast',
    'Sverdlovsk Oblast',
    'Republic of Tatarstan',
]

DEFAULT_DISCIPLINES = [
    'Product programming',
    'Security programming',
    'Algorithmic programming',
    'Robotics programming',
    'UAV programming',
]

LOCK_TIMEOUT = 10


def now_iso():
    return datetime.now().astimezone().isoformat()


class Store:
    """Tables of dict rows persisted as YAML files."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=LOCK_TIMEOUT)

    def _path(self, table: str) -> str:
        if table not in TABLES:
            raise KeyError(f'Unknown table: {table}')
        return os.path.join(self.data_dir, f'{table}.yaml')

    @contextmanager
    def transaction(self):
        """Hold the data lock for a read-modify-write section (reentrant)."""
        with self._lock:
            yield self

    def _read(self, table: str) -> dict:
        path = self._path(table)
        if not os.path.exists(path):
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning(f'Failed to parse {path}: {e}')
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, table: str) -> list:
        rows = self._read(table).get(table)
        return rows if isinstance(rows, list) else []

    def _next_id(self, table: str, rows: list) -> int:
        """Next free id. The stored counter only grows, ids of deleted rows stay retired."""
        stored = self._read(table).get('next_id')
        highest = max((r.get('id', 0) for r in rows), default=0) + 1
        return max(stored if isinstance(stored, int) else 0, highest)

    def save(self, table: str, rows: list, next_id=None):
        with self._lock:
            if next_id is None:
                next_id = self._next_id(table, rows)
            with open(self._path(table), 'w', encoding='utf-8') as f:
                yaml.dump({table: rows, 'next_id': next_id}, f, default_flow_style=False,
                          allow_unicode=True, sort_keys=False)

    def get(self, table: str, row_id):
        if row_id is None:
            return None
        return next((r for r in self.load(table) if r.get('id') == row_id), None)

    def find(self, table: str, **criteria) -> list:
        return [r for r in self.load(table)
                if all(r.get(k) == v for k, v in criteria.items())]

    def find_one(self, table: str, **criteria):
        matches = self.find(table, **criteria)
        return matches[0] if matches else None

    def find_in(self, table: str, field: str, values) -> list:
        values = set(values)
        if not values:
            return []
        return [r for r in self.load(table) if r.get(field) in values]

    def insert(self, table: str, row: dict) -> dict:
        return self.insert_many(table, [row])[0]

    def insert_many(self, table: str, rows: list) -> list:
        with self._lock:
            existing = self.load(table)
            next_id = self._next_id(table, existing)
            created = []
            for row in rows:
                new_row = {'id': next_id, **{k: v for k, v in row.items() if k != 'id'}}
                next_id += 1
                existing.append(new_row)
                created.append(new_row)
            self.save(table, existing, next_id)
        return created

    def update(self, table: str, row_id, **changes):
        """Apply changes to one row. Returns the updated row or None."""
        with self._lock:
            rows = self.load(table)
            for row in rows:
                if row.get('id') == row_id:
                    row.update(changes)
                    self.save(table, rows)
                    return row
        return None

    def delete(self, table: str, row_id) -> bool:
        return self.delete_where(table, lambda r: r.get('id') == row_id) > 0

    def delete_where(self, table: str, predicate) -> int:
        """Delete rows matching predicate. Returns the number removed."""
        with self._lock:
            rows = self.load(table)
            kept = [r for r in rows if not predicate(r)]
            removed = len(rows) - len(kept)
            if removed:
                self.save(table, kept)
        return removed

    def seed_reference_data(self):
        """Create default regions and disciplines when their tables are empty."""
        with self._lock:
            if not self.load('regions'):
                self.insert_many('regions', [{'name': n} for n in DEFAULT_REGIONS])
                logger.info(f'Seeded {len(DEFAULT_REGIONS)} regions')
            if not self.load('disciplines'):
                self.insert_many('disciplines', [{'name': n} for n in DEFAULT_DISCIPLINES])
                logger.info(f'Seeded {len(DEFAULT_DISCIPLINES)} disciplines')

    def table_files(self) -> list:
        """Names of the table files present in the data directory."""
        return [name for name in TABLE_FILES if os.path.exists(os.path.join(self.data_dir, name))]

    def name_lookup(self, table: str) -> dict:
        """Map id -> name for a reference table."""
        return {r['id']: r.get('name', '') for r in self.load(table)}
