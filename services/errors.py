class PokedexError(Exception):
    """Base class for catalog cache errors."""


class StorageUnavailable(PokedexError):
    """The backing store could not be opened or stopped answering."""


class UpstreamError(PokedexError):
    """PokeAPI failed: network error, timeout, non-2xx status or malformed payload."""


class DuplicateKeyError(PokedexError):
    """An insert without skip_duplicates hit an id that is already stored."""

    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__(f"Pokémon #{item_id} is already stored")
