import asyncio
from collections import OrderedDict
from collections.abc import Hashable
from functools import wraps
from typing import Any


def lru_acache(maxsize: int = 128):
    """
    Memoize an async factory, keeping at most `maxsize` results.

    Results are scoped to the running event loop: an SDK client built in one loop is never handed to another one.

    The decorated function exposes `cache_values()` and `cache_clear()`, to release the cached clients on shutdown.
    """

    def decorator(func):
        entries: OrderedDict[Hashable, Any] = OrderedDict()

        @wraps(func)
        async def wrapper(*args, **kwargs):
            key = _key(args, kwargs)
            if key in entries:
                entries.move_to_end(key)
                return entries[key]

            value = await func(*args, **kwargs)
            entries[key] = value
            while len(entries) > maxsize:
                entries.popitem(last=False)  # Least recently used first
            return value

        wrapper.cache_clear = entries.clear  # pyright: ignore
        wrapper.cache_values = lambda: list(entries.values())  # pyright: ignore
        return wrapper

    return decorator


def _key(args: tuple, kwargs: dict) -> Hashable:
    return (
        id(asyncio.get_running_loop()),
        args,
        tuple(sorted(kwargs.items())),
    )
