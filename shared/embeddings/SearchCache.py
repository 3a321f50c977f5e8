import json
from typing import Callable

from pydantic import BaseModel

from shared.helper.HelperConfig import HelperConfig
from shared.helper.clock import now_ms
from shared.models.search import CacheEntry, SearchResult

FINGERPRINT_VALUES = 10


class SearchCache:
    """Time and size bounded memo of query -> results.

    TTL (minutes) and maximum size are read from the engine configuration on
    every call. A maximum size of 0 disables caching.
    """

    def __init__(self, helper_config: HelperConfig, clock: Callable[[], int] = now_ms) -> None:
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def make_key(query_embedding: list[float], options: BaseModel | dict | None = None) -> str:
        """Fingerprint of the first embedding values and the search options."""
        head = ",".join(repr(float(v)) for v in query_embedding[:FINGERPRINT_VALUES])
        if isinstance(options, BaseModel):
            options = options.model_dump(mode="json")
        return f"{head}|{json.dumps(options or {}, sort_keys=True)}"

    def _ttl_ms(self) -> float:
        return self._helper_config.get_embedding_config().search_cache_ttl * 60 * 1000

    def get(self, key: str) -> list[SearchResult] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self._ttl_ms():
            del self._entries[key]
            return None
        self.logging.debug("Search cache hit.")
        return list(entry.results)

    def set(self, key: str, results: list[SearchResult]) -> None:
        max_size = self._helper_config.get_embedding_config().search_cache_max_size
        if max_size <= 0:
            return
        self._entries.pop(key, None)
        self.clean()
        while len(self._entries) >= max_size:
            oldest = min(self._entries, key=lambda k: self._entries[k].timestamp)
            del self._entries[oldest]
        self._entries[key] = CacheEntry(results=list(results), timestamp=self._clock())

    def clean(self) -> int:
        """Drop expired entries. Returns the number removed."""
        ttl = self._ttl_ms()
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if now - entry.timestamp >= ttl]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    @property
    def size(self) -> int:
        return len(self._entries)
