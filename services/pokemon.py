import math

from .core import DEFAULT_PAGE_LIMIT


def _as_int(value, default):
    """Coerce request input to a non-negative int; non-finite or garbage -> default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(0, int(number))


def list_pokemon(catalog):
    """All currently cached Pokémon, seeding the cache first if it is empty."""
    return catalog.list_all()


def list_pokemon_page(catalog, limit=None, offset=None):
    return catalog.list_page(
        limit=_as_int(limit, DEFAULT_PAGE_LIMIT),
        offset=_as_int(offset, 0),
    )


def get_all_pokemon(catalog, initial_batch_size=None):
    """Seed the first batch synchronously, kick off the backfill, return what is cached."""
    catalog.seed_for_read(initial_batch_size)
    catalog.schedule_backfill()
    return catalog.storage.find_all()
