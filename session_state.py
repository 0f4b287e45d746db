"""
Session state value types.

SessionState is owned by SessionSupervisor; everything else only reads the
immutable snapshots derived from it.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


UNKNOWN_WORLD = "Unknown"
ORIGIN: Tuple[float, float, float] = (0.0, 0.0, 0.0)


class SessionPhase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


# Phases in which a new connection attempt must not be started.
ACTIVE_PHASES = frozenset({SessionPhase.CONNECTING, SessionPhase.CONNECTED})


@dataclass
class SessionState:
    max_reconnect_attempts: int
    phase: SessionPhase = SessionPhase.IDLE
    should_join: bool = False
    reconnect_attempts: int = 0
    world_label: str = UNKNOWN_WORLD
    position: Tuple[float, float, float] = ORIGIN
    username: Optional[str] = None
    # Identity of the operator behind the current join request
    operator: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.phase in ACTIVE_PHASES

    @property
    def budget_exhausted(self) -> bool:
        # The initial connect counts against the budget: max N means N connects
        # per join, so N-1 retries.
        return self.reconnect_attempts + 1 >= self.max_reconnect_attempts

    def reset_location(self) -> None:
        self.world_label = UNKNOWN_WORLD
        self.position = ORIGIN
