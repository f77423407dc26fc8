"""Channel adapter registry: the outbound side effects of the pipeline.

Provides singleton access to the email and cache adapters. Fake/in-memory
adapters are used by default; production adapters are plugged in with
set_email_channel() / set_cache() at application start-up.
"""

from checkout.channel.cache_port import CachePort
from checkout.channel.email_port import EmailPort

_email_channel: EmailPort | None = None
_cache: CachePort | None = None


def get_email_channel() -> EmailPort:
    global _email_channel
    if _email_channel is None:
        from checkout.channel.fake_email import FakeEmailAdapter

        _email_channel = FakeEmailAdapter()
    return _email_channel


def set_email_channel(channel: EmailPort) -> None:
    global _email_channel
    _email_channel = channel


def get_cache() -> CachePort:
    global _cache
    if _cache is None:
        from checkout.channel.memory_cache import InMemoryCacheAdapter

        _cache = InMemoryCacheAdapter()
    return _cache


def set_cache(cache: CachePort) -> None:
    global _cache
    _cache = cache


def reset_channels():
    """Reset all channel singletons (useful for testing)."""
    global _email_channel, _cache
    _email_channel = None
    _cache = None
