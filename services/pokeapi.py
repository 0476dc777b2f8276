import logging
import threading
from typing import Dict, List, Optional

import requests

from .core import POKEAPI_BASE, REQUEST_TIMEOUT, SPRITE_URL_TEMPLATE
from .errors import UpstreamError

logger = logging.getLogger(__name__)


def sprite_url_for(dex_number: int) -> str:
    return SPRITE_URL_TEMPLATE.format(id=int(dex_number))


class PokeApiClient:
    """Thin PokeAPI client for the species listing.
    Uses pokemon-species rather than /pokemon so alternate forms without
    sprites never show up. Does not retry; callers decide what a failure means.
    """

    def __init__(self, base_url: str = POKEAPI_BASE, timeout: float = REQUEST_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self._catalog_size = None
        self._size_lock = threading.Lock()

    def _get_json(self, path: str, params: Dict[str, int]):
        url = f"{self.base_url}/{path}"
        try:
            r = self.session.get(url, params=params, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except requests.RequestException as e:
            raise UpstreamError(f"PokeAPI request to {url} failed: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"PokeAPI returned invalid JSON for {url}") from e

    def get_catalog_size(self) -> int:
        """Total species count, fetched once per client and never refreshed."""
        if self._catalog_size is not None:
            return self._catalog_size
        with self._size_lock:
            if self._catalog_size is None:
                data = self._get_json('pokemon-species', {'limit': 1})
                count = data.get('count') if isinstance(data, dict) else None
                if not isinstance(count, int) or isinstance(count, bool) or count < 0:
                    raise UpstreamError('PokeAPI species listing has no usable count')
                logger.info("PokeAPI reports %d species", count)
                self._catalog_size = count
        return self._catalog_size

    def get_page(self, limit: int, offset: int) -> List[Dict[str, str]]:
        """Return [{'name': ...}] for species offset+1 .. offset+limit."""
        data = self._get_json('pokemon-species', {'limit': int(limit), 'offset': int(offset)})
        results = data.get('results') if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise UpstreamError('PokeAPI species listing has no results array')
        page = []
        for entry in results:
            name = entry.get('name') if isinstance(entry, dict) else None
            if not isinstance(name, str) or not name:
                raise UpstreamError('PokeAPI species listing contains an entry without a name')
            page.append({'name': name})
        return page

    def sprite_url(self, dex_number: int) -> str:
        return sprite_url_for(dex_number)
