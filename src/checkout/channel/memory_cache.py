"""In-memory cache adapter: records invalidated keys."""

from checkout.channel.cache_port import CachePort


class InMemoryCacheAdapter(CachePort):
    def __init__(self):
        self.invalidated: list[set[str]] = []
        self.should_succeed = True

    def configure(self, should_succeed: bool = True):
        self.should_succeed = should_succeed

    def invalidate(self, keys: set[str]) -> None:
        if not self.should_succeed:
            raise ConnectionError("Cache backend unavailable")
        self.invalidated.append(set(keys))

    @property
    def invalidated_keys(self) -> set[str]:
        return set().union(*self.invalidated) if self.invalidated else set()

    def reset(self):
        self.invalidated.clear()
        self.should_succeed = True
