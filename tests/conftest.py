from concurrent.futures import Future

import pytest

from services.catalog import CatalogCache
from services.errors import StorageUnavailable, UpstreamError
from services.pokeapi import sprite_url_for
from services.storage import JsonFileStorage, SqlStorage


class FakePokeApi:
    """In-memory stand-in for PokeApiClient that records every listing call."""

    def __init__(self, size=151, fail_size=False):
        self.size = size
        self.fail_size = fail_size
        self.page_calls = []
        self.size_calls = 0
        self.fail_after = None  # fail every get_page call once this many have succeeded

    def get_catalog_size(self):
        self.size_calls += 1
        if self.fail_size:
            raise UpstreamError('species count unavailable')
        return self.size

    def get_page(self, limit, offset):
        if self.fail_after is not None and len(self.page_calls) >= self.fail_after:
            raise UpstreamError('PokeAPI is down')
        self.page_calls.append((limit, offset))
        end = min(offset + limit, self.size)
        return [{'name': f'mon-{n}'} for n in range(offset + 1, end + 1)]

    def sprite_url(self, dex_number):
        return sprite_url_for(dex_number)


class SyncExecutor:
    """Runs submitted work inline so background backfills are deterministic in tests."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        future.set_result(fn(*args, **kwargs))
        return future

    def shutdown(self, wait=True):
        pass


class IdleExecutor(SyncExecutor):
    """Accepts work and never runs it, for tests that must not see backfill progress."""

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        return Future()


@pytest.fixture
def upstream():
    return FakePokeApi()


@pytest.fixture(params=['sqlite', 'json'])
def storage(request, tmp_path):
    if request.param == 'sqlite':
        return SqlStorage(f"sqlite:///{tmp_path / 'pokedex.db'}")
    return JsonFileStorage(str(tmp_path / 'pokemon.json'))


@pytest.fixture
def make_catalog(storage, upstream):
    def factory(**kwargs):
        kwargs.setdefault('executor', SyncExecutor())
        kwargs.setdefault('initial_batch_size', 50)
        return CatalogCache(storage=storage, client=upstream, **kwargs)
    return factory


class FlakySqlStorage(SqlStorage):
    """SQLite store whose n-th insert_many call reports the database as gone."""

    def __init__(self, database_url, fail_on_insert):
        super().__init__(database_url)
        self.fail_on_insert = fail_on_insert
        self.insert_calls = 0

    def insert_many(self, items, skip_duplicates=True):
        self.insert_calls += 1
        if self.insert_calls == self.fail_on_insert:
            raise StorageUnavailable('database went away')
        return super().insert_many(items, skip_duplicates=skip_duplicates)
