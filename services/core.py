import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional

# Constants
POKEAPI_BASE = 'https://pokeapi.co/api/v2'
SPRITE_URL_TEMPLATE = 'https://raw.githubusercontent.com/PokeAPI/sprites/master/sprites/pokemon/{id}.png'

DEFAULT_DATABASE_URL = 'sqlite:///data/pokedex.db'
DEFAULT_JSON_PATH = 'data/pokemon.json'

# Backfill batch size, kept modest to be polite to PokeAPI
BATCH_SIZE = 200
INITIAL_BATCH_SIZE = 50
DEFAULT_PAGE_LIMIT = 30
REQUEST_TIMEOUT = 10

PAGE_POLICY_CACHE = 'cache'
PAGE_POLICY_UPSTREAM = 'upstream'
PAGE_POLICIES = {PAGE_POLICY_CACHE, PAGE_POLICY_UPSTREAM}


def _positive_int(raw, default):
    """Parse a positive integer from an env value, returning default when unset or invalid."""
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class Settings:
    """Process configuration, resolved once from the environment."""

    max_catalog_size: Optional[int] = None  # None means unlimited
    database_url: str = DEFAULT_DATABASE_URL
    json_path: str = DEFAULT_JSON_PATH
    page_policy: str = PAGE_POLICY_CACHE
    batch_size: int = BATCH_SIZE
    initial_batch_size: int = INITIAL_BATCH_SIZE
    pokeapi_base: str = POKEAPI_BASE
    request_timeout: float = REQUEST_TIMEOUT
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        env = os.environ if environ is None else environ
        policy = (env.get('POKEDEX_PAGE_POLICY') or '').strip().lower()
        if policy not in PAGE_POLICIES:
            policy = PAGE_POLICY_CACHE
        try:
            timeout = float(env.get('POKEAPI_TIMEOUT') or REQUEST_TIMEOUT)
        except ValueError:
            timeout = REQUEST_TIMEOUT
        if not math.isfinite(timeout) or timeout <= 0:
            timeout = REQUEST_TIMEOUT
        return cls(
            max_catalog_size=_positive_int(env.get('POKEDEX_LIMIT'), None),
            database_url=(env.get('DATABASE_URL') or '').strip() or DEFAULT_DATABASE_URL,
            json_path=(env.get('POKEDEX_JSON_PATH') or '').strip() or DEFAULT_JSON_PATH,
            page_policy=policy,
            batch_size=_positive_int(env.get('POKEDEX_BATCH_SIZE'), BATCH_SIZE),
            initial_batch_size=_positive_int(env.get('POKEDEX_INITIAL_BATCH'), INITIAL_BATCH_SIZE),
            pokeapi_base=(env.get('POKEAPI_BASE') or '').strip().rstrip('/') or POKEAPI_BASE,
            request_timeout=timeout,
            log_level=(env.get('LOG_LEVEL') or 'INFO').strip().upper(),
        )
