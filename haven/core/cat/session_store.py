"""
Session store interface and an in-memory implementation.

Sessions are persisted as JSON snapshots validated by
``haven.schemas.CATSessionSnapshot``. Every ``get`` returns a freshly built
CATSession, so callers never share mutable state with the store and a
session is only changed by saving it.
"""
import logging
import threading
from dataclasses import asdict
from typing import Dict, Protocol, runtime_checkable

from pydantic import ValidationError

from haven.core.cat.errors import CATError, SessionNotFoundError
from haven.core.cat.session import CATSession, Response
from haven.schemas.cat_session import CATSessionSnapshot

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionStore(Protocol):
    """Persistence for CAT sessions with read-your-writes consistency."""

    def get(self, session_id: str) -> CATSession:
        ...

    def save(self, session: CATSession) -> None:
        ...


def session_to_snapshot(session: CATSession) -> CATSessionSnapshot:
    """Convert a CATSession to its validated snapshot."""
    return CATSessionSnapshot.model_validate(asdict(session))


def snapshot_to_session(snapshot: CATSessionSnapshot) -> CATSession:
    """Rebuild a CATSession from a snapshot."""
    data = snapshot.model_dump(exclude={"responses"})
    responses = [Response(**r.model_dump()) for r in snapshot.responses]
    return CATSession(responses=responses, **data)


class InMemorySessionStore:
    """Dict-backed session store holding JSON snapshots."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshots: Dict[str, str] = {}

    def get(self, session_id: str) -> CATSession:
        with self._lock:
            payload = self._snapshots.get(session_id)
        if payload is None:
            raise SessionNotFoundError(
                "Session not found", context={"session_id": session_id}
            )
        return snapshot_to_session(CATSessionSnapshot.model_validate_json(payload))

    def save(self, session: CATSession) -> None:
        try:
            payload = session_to_snapshot(session).model_dump_json()
        except ValidationError as e:
            raise CATError(
                "Session failed validation",
                original_error=e,
                context={"session_id": session.session_id},
            ) from e
        with self._lock:
            self._snapshots[session.session_id] = payload
        logger.debug(
            f"Saved session {session.session_id} "
            f"({len(session.responses)} responses, status={session.status.value})"
        )

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._snapshots

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)
