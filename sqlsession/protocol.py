"""The contract a session middleware expects from its backing store."""

from typing import Any, List, Optional, Protocol, runtime_checkable

from sqlsession.core.callbacks import SessionCallback
from sqlsession.core.payload import SessionPayload


@runtime_checkable
class SessionStoreProtocol(Protocol):
    """
    Server-side session storage used by a session middleware.

    Every operation is awaitable and additionally reports to an optional
    ``callback(error, result)``. A missing session is a ``None`` result,
    never an error.
    """

    async def get(
        self, sid: str, *, callback: Optional[SessionCallback] = None
    ) -> Optional[SessionPayload]:
        ...

    async def set(
        self, sid: str, session: SessionPayload, *, callback: Optional[SessionCallback] = None
    ) -> Any:
        ...

    async def touch(
        self, sid: str, session: SessionPayload, *, callback: Optional[SessionCallback] = None
    ) -> Any:
        ...

    async def destroy(self, sid: str, *, callback: Optional[SessionCallback] = None) -> int:
        ...

    async def length(self, *, callback: Optional[SessionCallback] = None) -> int:
        ...

    async def clear(self, *, callback: Optional[SessionCallback] = None) -> int:
        ...

    async def all(self, *, callback: Optional[SessionCallback] = None) -> List[SessionPayload]:
        ...
