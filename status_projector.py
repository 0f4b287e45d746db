"""
StatusProjector: session state -> status surface

project() is pure: the same SessionState + AuthChallenge always give the same
StatusSnapshot. publish() is the only place that talks to the status surface,
and it never raises; the bridge keeps working while the surface is down.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Tuple

import config
from auth_detector import AuthChallenge
from logger import setup_logger
from session_state import SessionPhase, SessionState


logger = setup_logger(__name__, config.LOG_FILE, config.LOG_LEVEL)


class PostKind(str, Enum):
    CONTROL = "control"   # persistent controller post
    AUTH = "auth"         # sign-in prompt for the operator, removed once cleared


@dataclass(frozen=True)
class StatusSnapshot:
    text: str
    phase: SessionPhase
    should_join: bool
    reconnect_attempts: int
    max_reconnect_attempts: int
    world_label: str
    position: Tuple[float, float, float]
    username: Optional[str] = None
    challenge: Optional[AuthChallenge] = None

    @property
    def connected(self) -> bool:
        return self.phase == SessionPhase.CONNECTED

    @property
    def auth_required(self) -> bool:
        return self.challenge is not None and self.challenge.complete

    @property
    def reconnecting(self) -> bool:
        return self.should_join and self.reconnect_attempts > 0 and not self.connected

    def coordinates(self) -> Dict[str, float]:
        x, y, z = self.position
        return {"x": x, "y": y, "z": z}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "phase": self.phase.value,
            "connected": self.connected,
            "should_join": self.should_join,
            "reconnect_attempts": self.reconnect_attempts,
            "max_reconnect_attempts": self.max_reconnect_attempts,
            "world": self.world_label,
            "coordinates": self.coordinates(),
            "username": self.username,
            "auth_required": self.auth_required,
            "verification_url": self.challenge.verification_url if self.challenge else None,
            "user_code": self.challenge.user_code if self.challenge else None,
        }


class StatusSurface(Protocol):
    """
    Where snapshots end up (a Discord channel in production).
    Implementations should swallow their own failures; create returns None
    when nothing could be posted.
    """

    async def create_status_post(self, snapshot: StatusSnapshot, kind: PostKind) -> Any:
        ...

    async def update_status_post(self, post: Any, snapshot: StatusSnapshot, kind: PostKind) -> None:
        ...

    async def delete_status_post(self, post: Any) -> None:
        ...


def status_text(state: SessionState, challenge: Optional[AuthChallenge]) -> str:
    """Status line, highest precedence first."""
    if challenge is not None:
        return "awaiting authentication"
    if state.phase == SessionPhase.CONNECTED:
        return f"connected as {state.username or 'Unknown'}"
    if state.should_join:
        if state.reconnect_attempts > 0:
            return f"reconnecting attempt {state.reconnect_attempts}/{state.max_reconnect_attempts}"
        return "connecting"
    return "disconnected"


class StatusProjector:
    def __init__(self, surface: Optional[StatusSurface] = None) -> None:
        self.surface = surface
        self.control_post: Any = None
        self.auth_post: Any = None
        self.last_published: Optional[StatusSnapshot] = None
        self._auth_rendered: Optional[AuthChallenge] = None

    @staticmethod
    def project(state: SessionState, challenge: Optional[AuthChallenge]) -> StatusSnapshot:
        return StatusSnapshot(
            text=status_text(state, challenge),
            phase=state.phase,
            should_join=state.should_join,
            reconnect_attempts=state.reconnect_attempts,
            max_reconnect_attempts=state.max_reconnect_attempts,
            world_label=state.world_label,
            position=tuple(state.position),
            username=state.username,
            challenge=challenge,
        )

    async def publish(self, snapshot: StatusSnapshot, force: bool = False) -> bool:
        """
        Push a snapshot. Returns False when it equals the last published one
        (nothing to do). Surface errors are logged, never raised.
        """
        if not force and snapshot == self.last_published:
            return False
        self.last_published = snapshot
        logger.debug(f"[STATUS] {snapshot.text}")

        if self.surface is None:
            return True

        await self._publish_control(snapshot)
        await self._publish_auth(snapshot)
        return True

    async def _publish_control(self, snapshot: StatusSnapshot) -> None:
        try:
            if self.control_post is None:
                self.control_post = await self.surface.create_status_post(snapshot, PostKind.CONTROL)
            else:
                await self.surface.update_status_post(self.control_post, snapshot, PostKind.CONTROL)
        except Exception as e:
            logger.error(f"[STATUS] Failed to publish control post: {e}")

    async def _publish_auth(self, snapshot: StatusSnapshot) -> None:
        challenge = snapshot.challenge
        try:
            if challenge is not None:
                if self.auth_post is None:
                    self.auth_post = await self.surface.create_status_post(snapshot, PostKind.AUTH)
                elif challenge != self._auth_rendered:
                    await self.surface.update_status_post(self.auth_post, snapshot, PostKind.AUTH)
                self._auth_rendered = challenge
            elif self.auth_post is not None:
                post, self.auth_post = self.auth_post, None
                self._auth_rendered = None
                await self.surface.delete_status_post(post)
                logger.info("[AUTH] Authentication prompt cleaned up")
        except Exception as e:
            logger.error(f"[STATUS] Failed to publish auth post: {e}")
