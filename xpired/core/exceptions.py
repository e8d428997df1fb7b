"""
Domain exceptions for document reminder scheduling and delivery.

Used to distinguish caller mistakes (rejected synchronously) from background
failures (handled by the dispatcher and never surfaced to a request).
"""


class XpiredError(Exception):
    """Base class for all service errors."""


class ValidationError(XpiredError):
    """Raised for an unknown timezone, a malformed date or a negative lead time.

    Surfaced to the caller at schedule-computation time; never defaulted.
    """


class NotFoundError(XpiredError):
    """Raised when a document, user, binding or interval does not exist."""


class ForbiddenError(XpiredError):
    """Raised when a caller acts on a document owned by someone else."""


class TransportError(XpiredError):
    """Raised by an email/SMS transport when a send fails or times out."""

    def __init__(self, channel: str, message: str, response: dict | None = None):
        super().__init__(f"{channel}: {message}")
        self.channel = channel
        self.response = response or {}


class QueueError(XpiredError):
    """Raised when the durable task store cannot be reached or updated."""


class PersistenceError(QueueError):
    """Raised by the executor when the reminder tables are unreachable.

    Treated as retryable by the dispatcher.
    """


class InvalidTransitionError(XpiredError):
    """Raised when a scheduled task is moved along an edge the state machine does not have."""

    def __init__(self, state, event):
        super().__init__(f"no transition from {state.value!r} on {event.value!r}")
        self.state = state
        self.event = event
