"""Mirror the PokeAPI species list into local storage.

The cache always holds a dense prefix of the catalog (ids 1..count). Reads seed
it when empty and nudge a background backfill that keeps fetching batches until
the prefix reaches the target, min(upstream size, configured maximum). A failed
backfill leaves the prefix where it was, and the next run resumes from there.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

from .core import (
    BATCH_SIZE,
    DEFAULT_PAGE_LIMIT,
    INITIAL_BATCH_SIZE,
    PAGE_POLICIES,
    PAGE_POLICY_CACHE,
    PAGE_POLICY_UPSTREAM,
)
from .errors import UpstreamError
from .models import CatalogItem, CatalogPage
from .pokeapi import PokeApiClient
from .storage import StorageAdapter, open_storage

logger = logging.getLogger(__name__)


class CatalogCache:
    def __init__(self, storage: StorageAdapter, client: PokeApiClient,
                 max_catalog_size: Optional[int] = None,
                 batch_size: int = BATCH_SIZE,
                 initial_batch_size: int = INITIAL_BATCH_SIZE,
                 page_policy: str = PAGE_POLICY_CACHE,
                 executor: Optional[ThreadPoolExecutor] = None):
        if page_policy not in PAGE_POLICIES:
            raise ValueError(f"Unknown page policy: {page_policy!r}")
        if batch_size <= 0 or initial_batch_size <= 0:
            raise ValueError('Batch sizes must be positive')
        self.storage = storage
        self.client = client
        self.max_catalog_size = max_catalog_size
        self.batch_size = batch_size
        self.initial_batch_size = initial_batch_size
        self.page_policy = page_policy
        # Single worker: backfills are sequential anyway, see schedule_backfill
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix='pokedex-backfill')
        self._backfill_running = threading.Lock()
        self.warmup_scheduled = False

    @classmethod
    def from_settings(cls, settings) -> 'CatalogCache':
        client = PokeApiClient(base_url=settings.pokeapi_base, timeout=settings.request_timeout)
        return cls(
            storage=open_storage(settings),
            client=client,
            max_catalog_size=settings.max_catalog_size,
            batch_size=settings.batch_size,
            initial_batch_size=settings.initial_batch_size,
            page_policy=settings.page_policy,
        )

    # --- helpers ---

    def target(self) -> int:
        """Number of items the cache should end up holding."""
        size = self.client.get_catalog_size()
        if self.max_catalog_size is None:
            return size
        return min(size, self.max_catalog_size)

    def _target_or_none(self) -> Optional[int]:
        try:
            return self.target()
        except UpstreamError as e:
            logger.warning("Could not determine Pokédex size: %s", e)
            return None

    def _fetch_items(self, limit: int, offset: int) -> List[CatalogItem]:
        entries = self.client.get_page(limit, offset)
        return [
            CatalogItem(id=offset + idx + 1, name=entry['name'], sprite_url=self.client.sprite_url(offset + idx + 1))
            for idx, entry in enumerate(entries[:limit])
        ]

    def _dense_count(self) -> int:
        """Length of the gap-free prefix; anything stored after a gap is dropped."""
        count = self.storage.count()
        if count == 0:
            return 0
        ids = [item.id for item in self.storage.find_all()]
        prefix = 0
        for expected, pid in enumerate(ids, start=1):
            if pid != expected:
                break
            prefix = expected
        if prefix < len(ids):
            removed = self.storage.delete_where_id_greater_than(prefix)
            logger.warning("Gap after Pokémon #%d in cache, trimmed %d entries", prefix, removed)
        return prefix

    # --- seeding and backfill ---

    def ensure_initial_seed(self, initial_batch_size: Optional[int] = None) -> int:
        """Make sure the first batch is stored. Returns how many rows were written.
        Raises UpstreamError when PokeAPI cannot be reached and the seed is missing.
        """
        batch = self.initial_batch_size if initial_batch_size is None else initial_batch_size
        count = self.storage.count()
        if count >= batch:
            return 0
        wanted = min(batch, self.target())
        if count >= wanted:
            return 0
        items = self._fetch_items(wanted, 0)
        inserted = self.storage.insert_many(items, skip_duplicates=True)
        logger.info("Seeded Pokédex cache with %d of %d entries", inserted, wanted)
        return inserted

    def seed_for_read(self, initial_batch_size=None):
        """Seed before a read. Only an empty cache turns a failure into an error."""
        try:
            self.ensure_initial_seed(initial_batch_size)
        except UpstreamError:
            if self.storage.count() == 0:
                raise
            logger.warning("Seeding skipped, PokeAPI unavailable; serving cached entries", exc_info=True)

    def _run_backfill(self) -> int:
        target = self.target()
        count = self.storage.count()
        if count > target:
            removed = self.storage.delete_where_id_greater_than(target)
            logger.info("Trimmed %d cached entries above target %d", removed, target)
        count = self._dense_count()
        while count < target:
            limit = min(self.batch_size, target - count)
            items = self._fetch_items(limit, count)
            if not items:
                logger.warning("PokeAPI returned no species at offset %d, stopping backfill", count)
                break
            self.storage.insert_many(items, skip_duplicates=True)
            new_count = self._dense_count()
            if new_count == count:
                break
            if new_count < count:
                logger.warning("Cached prefix shrank from %d to %d, refilling", count, new_count)
            count = new_count
            logger.info("Backfilled Pokédex cache to %d/%d", count, target)
        return count

    def backfill(self) -> Optional[int]:
        """Fill the cache up to the target. Never raises.
        Returns the cached count afterwards, or None when the run failed.
        """
        try:
            return self._run_backfill()
        except UpstreamError as e:
            logger.warning("Backfill stopped, will resume on next request: %s", e)
        except Exception:
            logger.exception("Backfill failed")
        return None

    def _backfill_task(self):
        try:
            return self.backfill()
        finally:
            self._backfill_running.release()

    def schedule_backfill(self) -> Optional[Future]:
        """Start a backfill in the background unless one is already running."""
        if not self._backfill_running.acquire(blocking=False):
            return None
        try:
            return self.executor.submit(self._backfill_task)
        except RuntimeError:
            # Executor already shut down
            self._backfill_running.release()
            return None

    def shutdown(self, wait: bool = False):
        self.executor.shutdown(wait=wait)

    # --- reads ---

    def list_all(self) -> List[CatalogItem]:
        self.seed_for_read()
        self.schedule_backfill()
        return self.storage.find_all()

    def list_page(self, limit: int = DEFAULT_PAGE_LIMIT, offset: int = 0) -> CatalogPage:
        limit = max(0, int(limit))
        offset = max(0, int(offset))
        if self.page_policy == PAGE_POLICY_UPSTREAM:
            return self._page_from_upstream(limit, offset)
        return self._page_from_cache(limit, offset)

    def _page_from_upstream(self, limit, offset) -> CatalogPage:
        total = self._target_or_none()
        if not total:
            return CatalogPage.empty(0)
        safe_limit = max(0, min(limit, total - offset))
        if safe_limit <= 0:
            return CatalogPage.empty(total)
        items = self._fetch_items(safe_limit, offset)
        return CatalogPage.build(items, offset, total)

    def _page_from_cache(self, limit, offset) -> CatalogPage:
        self.seed_for_read()
        self.schedule_backfill()
        count = self.storage.count()
        target = self._target_or_none()
        total = target if target is not None else count
        safe_limit = max(0, min(limit, total - offset))
        if safe_limit <= 0:
            return CatalogPage.empty(total)
        end = offset + safe_limit
        cached = [item for item in self.storage.find_all() if offset < item.id <= end]
        if len(cached) == safe_limit:
            return CatalogPage.build(cached, offset, total)

        # Cache miss: read the window through from PokeAPI
        try:
            items = self._fetch_items(safe_limit, offset)
        except UpstreamError as e:
            logger.warning("Serving partial page at offset %d from cache: %s", offset, e)
            return CatalogPage.build(cached, offset, total)
        if items and offset <= count:
            self.storage.insert_many(items, skip_duplicates=True)
        return CatalogPage.build(items, offset, total)
