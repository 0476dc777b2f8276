import pytest

from services.core import BATCH_SIZE, DEFAULT_DATABASE_URL, PAGE_POLICY_CACHE, Settings


def test_defaults_when_unset():
    settings = Settings.from_env({})
    assert settings.max_catalog_size is None
    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.page_policy == PAGE_POLICY_CACHE
    assert settings.batch_size == BATCH_SIZE
    assert settings.initial_batch_size == 50


def test_values_from_environment():
    settings = Settings.from_env({
        'POKEDEX_LIMIT': '151',
        'DATABASE_URL': 'sqlite:////var/lib/pokedex.db',
        'POKEDEX_PAGE_POLICY': 'Upstream',
        'POKEDEX_BATCH_SIZE': '100',
        'POKEAPI_BASE': 'http://localhost:8000/api/v2/',
        'POKEAPI_TIMEOUT': '2.5',
        'LOG_LEVEL': 'debug',
    })
    assert settings.max_catalog_size == 151
    assert settings.database_url == 'sqlite:////var/lib/pokedex.db'
    assert settings.page_policy == 'upstream'
    assert settings.batch_size == 100
    assert settings.pokeapi_base == 'http://localhost:8000/api/v2'
    assert settings.request_timeout == 2.5
    assert settings.log_level == 'DEBUG'


def test_invalid_values_fall_back():
    settings = Settings.from_env({
        'POKEDEX_LIMIT': 'Infinity',
        'POKEDEX_PAGE_POLICY': 'sideways',
        'POKEDEX_BATCH_SIZE': '-5',
        'POKEAPI_TIMEOUT': 'soon',
    })
    assert settings.max_catalog_size is None
    assert settings.page_policy == PAGE_POLICY_CACHE
    assert settings.batch_size == BATCH_SIZE
    assert settings.request_timeout == 10


@pytest.mark.parametrize('raw', ['inf', '-inf', 'nan', '0', '-1'])
def test_timeout_must_be_finite_and_positive(raw):
    assert Settings.from_env({'POKEAPI_TIMEOUT': raw}).request_timeout == 10
