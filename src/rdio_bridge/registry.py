"""Registry of in-progress calls keyed by call identity."""

from __future__ import annotations

import logging
from threading import Lock

from .models import CallIdentity, CallSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns the audio buffer for every call that has not yet been released.

    ``append`` and ``finalize`` share one lock so a session is either still
    receiving frames or already handed off, never both. An append that lands
    after its session was finalized opens a fresh session for the same
    identity.
    """

    def __init__(self) -> None:
        """Create an empty registry."""
        self._sessions: dict[CallIdentity, CallSession] = {}
        self._lock = Lock()

    def append(self, identity: CallIdentity, payload: bytes, channel: str) -> None:
        """Append *payload* to the session for *identity*, creating it when absent."""
        with self._lock:
            session = self._sessions.get(identity)
            created = session is None
            if session is None:
                session = CallSession(identity=identity, channel=channel)
                self._sessions[identity] = session
            session.append(payload, channel)
        if created:
            logger.info(
                "Call started for srcId %s, dstId %s on channel %s",
                identity.source_id,
                identity.destination_id,
                channel,
            )

    def finalize(self, identity: CallIdentity) -> CallSession | None:
        """Remove and return the session for *identity*, or ``None`` when not tracked.

        The returned session is stamped with the time it ended.
        """
        with self._lock:
            session = self._sessions.pop(identity, None)
            if session is not None:
                session.close()
            return session

    def drain(self) -> list[CallSession]:
        """Remove and return every tracked session, oldest first."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            for session in sessions:
                session.close()
        return sorted(sessions, key=lambda session: session.started_at)

    def active_identities(self) -> tuple[CallIdentity, ...]:
        """Return the identities of calls currently receiving audio."""
        with self._lock:
            return tuple(self._sessions)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
