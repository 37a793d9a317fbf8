from __future__ import annotations

from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any


def status_tuple[T](
    fn: Callable[..., Coroutine[Any, Any, T]],
) -> Callable[..., Coroutine[Any, Any, tuple[bool, T | str]]]:
    """Wrap a read-only async adapter method as ``(True, result)`` / ``(False, error)``.

    Mutating lifecycle calls return typed result models instead and do not use this.
    """

    @wraps(fn)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> tuple[bool, T | str]:
        try:
            return True, await fn(self, *args, **kwargs)
        except Exception as exc:  # noqa: BLE001
            self.logger.error(f"{self.name}.{fn.__name__} failed: {exc}")
            return False, str(exc)

    return wrapper  # type: ignore[return-value]
