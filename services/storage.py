"""Storage adapters for the cached Pokédex.

Every adapter keeps Pokémon keyed and ordered by their National Dex number and
exposes the same small set of operations, so the catalog cache never needs to
know whether it is talking to SQLite or to a JSON file.
"""
import json
import logging
import os
import sqlite3
import tempfile
import threading
from typing import Callable, Iterable, List

from .errors import DuplicateKeyError, StorageUnavailable
from .models import CatalogItem

logger = logging.getLogger(__name__)

SQLITE_PREFIX = 'sqlite:///'

SCHEMA = """
CREATE TABLE IF NOT EXISTS pokemon (
    dex_number INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    sprite_url TEXT NOT NULL
)
"""


class StorageAdapter:
    """Interface shared by every store."""

    def count(self) -> int:
        raise NotImplementedError

    def find_all(self, descending: bool = False) -> List[CatalogItem]:
        raise NotImplementedError

    def insert_many(self, items: Iterable[CatalogItem], skip_duplicates: bool = True) -> int:
        """Insert items keyed by id and return how many rows were newly written.
        With skip_duplicates, ids already present are left untouched; otherwise
        the first duplicate raises DuplicateKeyError and nothing is written.
        """
        raise NotImplementedError

    def delete_where_id_greater_than(self, threshold: int) -> int:
        raise NotImplementedError


def sqlite_path_from_url(url: str) -> str:
    """Accept 'sqlite:///relative.db', 'sqlite:////abs.db' or a bare path."""
    url = (url or '').strip()
    if url.startswith(SQLITE_PREFIX):
        path = url[len(SQLITE_PREFIX):]
    elif '://' in url:
        raise StorageUnavailable(f"Unsupported database url: {url.split('://', 1)[0]}://")
    else:
        path = url
    if not path or path == ':memory:':
        raise StorageUnavailable('An on-disk SQLite path is required')
    return path


class SqlStorage(StorageAdapter):
    """SQLite table keyed by dex number. One connection and transaction per call."""

    def __init__(self, database_url: str, timeout: float = 10.0):
        self.path = sqlite_path_from_url(database_url)
        self.timeout = timeout
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"Cannot open SQLite database at {self.path}: {e}") from e
        self._run(lambda c: c.execute(SCHEMA))

    def _connect(self):
        try:
            return sqlite3.connect(self.path, timeout=self.timeout)
        except sqlite3.Error as e:
            raise StorageUnavailable(str(e)) from e

    def _run(self, fn):
        conn = self._connect()
        try:
            with conn:
                return fn(conn)
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            raise StorageUnavailable(f"SQLite error on {self.path}: {e}") from e
        finally:
            conn.close()

    def count(self) -> int:
        return self._run(lambda c: c.execute('SELECT COUNT(*) FROM pokemon').fetchone()[0])

    def find_all(self, descending: bool = False) -> List[CatalogItem]:
        order = 'DESC' if descending else 'ASC'
        rows = self._run(lambda c: c.execute(
            f'SELECT dex_number, name, sprite_url FROM pokemon ORDER BY dex_number {order}'
        ).fetchall())
        return [CatalogItem(id=r[0], name=r[1], sprite_url=r[2]) for r in rows]

    def insert_many(self, items, skip_duplicates=True) -> int:
        rows = [(item.id, item.name, item.sprite_url) for item in items]
        if not rows:
            return 0
        verb = 'INSERT OR IGNORE' if skip_duplicates else 'INSERT'
        sql = f'{verb} INTO pokemon (dex_number, name, sprite_url) VALUES (?, ?, ?)'

        def write(conn):
            inserted = 0
            for row in rows:
                try:
                    inserted += conn.execute(sql, row).rowcount
                except sqlite3.IntegrityError as e:
                    raise DuplicateKeyError(row[0]) from e
            return inserted

        return self._run(write)

    def delete_where_id_greater_than(self, threshold: int) -> int:
        return self._run(lambda c: c.execute(
            'DELETE FROM pokemon WHERE dex_number > ?', (int(threshold),)
        ).rowcount)


class JsonFileStorage(StorageAdapter):
    """Array of {id, name, spriteUrl} objects in one file, rewritten whole on every change."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> List[CatalogItem]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except OSError as e:
            raise StorageUnavailable(f"Cannot read {self.path}: {e}") from e
        except ValueError:
            logger.warning("Ignoring unreadable Pokédex cache file %s", self.path)
            return []
        items = []
        for entry in data if isinstance(data, list) else []:
            try:
                items.append(CatalogItem.from_dict(entry))
            except (KeyError, TypeError, ValueError):
                continue
        items.sort(key=lambda x: x.id)
        return items

    def _save(self, items: List[CatalogItem]):
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.pokemon-', suffix='.json')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump([item.to_dict() for item in items], f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StorageUnavailable(f"Cannot write {self.path}: {e}") from e

    def count(self) -> int:
        with self._lock:
            return len(self._load())

    def find_all(self, descending: bool = False) -> List[CatalogItem]:
        with self._lock:
            items = self._load()
        return list(reversed(items)) if descending else items

    def insert_many(self, items, skip_duplicates=True) -> int:
        incoming = list(items)
        if not incoming:
            return 0
        with self._lock:
            current = self._load()
            by_id = {item.id: item for item in current}
            inserted = 0
            for item in incoming:
                if item.id in by_id:
                    if skip_duplicates:
                        continue
                    raise DuplicateKeyError(item.id)
                by_id[item.id] = item
                inserted += 1
            if inserted:
                self._save(sorted(by_id.values(), key=lambda x: x.id))
            return inserted

    def delete_where_id_greater_than(self, threshold: int) -> int:
        with self._lock:
            current = self._load()
            kept = [item for item in current if item.id <= threshold]
            removed = len(current) - len(kept)
            if removed:
                self._save(kept)
            return removed


class FallbackStorage(StorageAdapter):
    """Use the primary store when it opens, the fallback store otherwise.

    The store is chosen once: after the first failure of the primary, at open
    or mid-operation, every later call goes to the fallback so the cached
    prefix never ends up split across two stores. The switch is logged once.
    """

    def __init__(self, primary_factory: Callable[[], StorageAdapter], fallback: StorageAdapter):
        self._primary_factory = primary_factory
        self._primary = None
        self.fallback = fallback
        self._lock = threading.Lock()
        self._degraded = False

    def _switch_to_fallback(self, error):
        with self._lock:
            if self._degraded:
                return
            self._degraded = True
            self._primary = None
        logger.warning(
            "Database is not available (%s). Falling back to JSON storage at %s.",
            error, getattr(self.fallback, 'path', self.fallback),
        )

    @property
    def degraded(self) -> bool:
        return self._degraded

    def _primary_or_none(self):
        if self._degraded:
            return None
        if self._primary is not None:
            return self._primary
        with self._lock:
            if self._degraded or self._primary is not None:
                return self._primary
            try:
                self._primary = self._primary_factory()
                return self._primary
            except StorageUnavailable as e:
                error = e
        self._switch_to_fallback(error)
        return None

    @property
    def active(self) -> StorageAdapter:
        return self._primary_or_none() or self.fallback

    def _call(self, name, *args, **kwargs):
        primary = self._primary_or_none()
        if primary is not None:
            try:
                return getattr(primary, name)(*args, **kwargs)
            except StorageUnavailable as e:
                self._switch_to_fallback(e)
        return getattr(self.fallback, name)(*args, **kwargs)

    def count(self):
        return self._call('count')

    def find_all(self, descending=False):
        return self._call('find_all', descending=descending)

    def insert_many(self, items, skip_duplicates=True):
        return self._call('insert_many', list(items), skip_duplicates=skip_duplicates)

    def delete_where_id_greater_than(self, threshold):
        return self._call('delete_where_id_greater_than', threshold)


def open_storage(settings) -> StorageAdapter:
    """Build the configured store: SQLite first, JSON file when the database is unreachable."""
    return FallbackStorage(
        lambda: SqlStorage(settings.database_url),
        JsonFileStorage(settings.json_path),
    )
