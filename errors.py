"""
Bridge error taxonomy.

Session lifecycle failures never show up here: SessionSupervisor turns them
into state transitions. These are the errors a caller of IntentGate can see.
"""


class BridgeError(RuntimeError):
    pass


class InvalidIntentError(BridgeError):
    """The intent was rejected before touching session state."""


class NotConnectedError(InvalidIntentError):
    """Send requested while the game session is not connected."""

    def __init__(self, message: str = "Bot is not connected to the Minecraft server") -> None:
        super().__init__(message)


class GateClosedError(BridgeError):
    pass
