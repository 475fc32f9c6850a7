"""
Test helper functions for common testing operations
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine


async def wait_for_condition(
    condition: Callable[[], Awaitable[bool]],
    timeout: float = 5.0,
    interval: float = 0.02,
) -> bool:
    """Wait for an async condition to become true with timeout"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if await condition():
            return True
        await asyncio.sleep(interval)
    return False


def make_session(name: str, max_age: Optional[float] = 20000, **cookie: Any) -> Dict[str, Any]:
    """Build a session payload with the given cookie settings"""
    cookie_data: Dict[str, Any] = dict(cookie)
    if max_age is not None:
        cookie_data["maxAge"] = max_age
    return {"cookie": cookie_data, "name": name}


async def raw_row_count(engine: AsyncEngine, table_name: str = "sessions") -> int:
    """Count physical rows, expired or not, bypassing the store"""
    async with engine.connect() as conn:
        result = await conn.execute(text(f"SELECT COUNT(*) FROM {table_name}"))
        return int(result.scalar() or 0)


class CallbackRecorder:
    """Collects ``callback(error, result)`` invocations"""

    def __init__(self):
        self.calls = []

    def __call__(self, error, result):
        self.calls.append((error, result))
