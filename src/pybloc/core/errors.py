"""Custom exception hierarchy for the state-container framework."""


class BlocError(Exception):
    """Base exception for all pybloc errors."""


# --- Configuration ---
class ConfigError(BlocError):
    """Invalid or missing configuration."""


# --- Lifecycle ---
class ContainerClosedError(BlocError):
    """Operation attempted on a closed container or router."""


class NoEventLoopError(BlocError):
    """Event added with no running event loop to dispatch it."""


# --- Dispatch ---
class UnhandledEventError(BlocError):
    """No handler is registered for the event's kind."""

    def __init__(self, kind: object, owner: str = ""):
        self.kind = kind
        self.owner = owner
        where = f" on {owner}" if owner else ""
        super().__init__(f"No handler registered for event kind {kind!r}{where}")


class EventQueueFullError(BlocError):
    """Event channel reached its configured capacity."""


class HandlerError(BlocError):
    """A registered handler raised while processing an event."""

    def __init__(self, kind: object, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Handler for {kind!r} failed: {reason}")


# --- Adapters ---
class ProviderNotFoundError(BlocError):
    """No container of the requested type is provided in this context."""
