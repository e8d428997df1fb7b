"""
Lifecycle of a scheduled task, independent of the storage substrate.

    pending --lease--> in_flight --ack--> delivered
                       in_flight --fail_retryable / lease_expired--> failed_retryable
                       in_flight --fail_terminal--> failed_terminal
    failed_retryable --retry--> pending
    failed_retryable --exhausted--> failed_terminal
"""
from enum import Enum
from typing import Dict, Tuple

from xpired.core.exceptions import InvalidTransitionError


class TaskState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DELIVERED = "delivered"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_TERMINAL = "failed_terminal"


class TaskEvent(str, Enum):
    LEASE = "lease"
    ACK = "ack"
    FAIL_RETRYABLE = "fail_retryable"
    FAIL_TERMINAL = "fail_terminal"
    LEASE_EXPIRED = "lease_expired"
    RETRY = "retry"
    EXHAUSTED = "exhausted"


TRANSITIONS: Dict[Tuple[TaskState, TaskEvent], TaskState] = {
    (TaskState.PENDING, TaskEvent.LEASE): TaskState.IN_FLIGHT,
    (TaskState.IN_FLIGHT, TaskEvent.ACK): TaskState.DELIVERED,
    (TaskState.IN_FLIGHT, TaskEvent.FAIL_RETRYABLE): TaskState.FAILED_RETRYABLE,
    (TaskState.IN_FLIGHT, TaskEvent.LEASE_EXPIRED): TaskState.FAILED_RETRYABLE,
    (TaskState.IN_FLIGHT, TaskEvent.FAIL_TERMINAL): TaskState.FAILED_TERMINAL,
    (TaskState.FAILED_RETRYABLE, TaskEvent.RETRY): TaskState.PENDING,
    (TaskState.FAILED_RETRYABLE, TaskEvent.EXHAUSTED): TaskState.FAILED_TERMINAL,
}

TERMINAL_STATES = frozenset({TaskState.DELIVERED, TaskState.FAILED_TERMINAL})


def transition(state: TaskState, event: TaskEvent) -> TaskState:
    try:
        return TRANSITIONS[(TaskState(state), TaskEvent(event))]
    except KeyError:
        raise InvalidTransitionError(TaskState(state), TaskEvent(event)) from None


def settle_failure(attempts: int, max_attempts: int) -> TaskState:
    """Where a failed-retryable task lands: back to pending, or terminal once attempts run out."""
    event = TaskEvent.RETRY if attempts < max_attempts else TaskEvent.EXHAUSTED
    return transition(TaskState.FAILED_RETRYABLE, event)


def fail(state: TaskState, *, retryable: bool, attempts: int, max_attempts: int) -> TaskState:
    """Apply a failure to an in-flight task and settle it."""
    if not retryable:
        return transition(state, TaskEvent.FAIL_TERMINAL)
    transition(state, TaskEvent.FAIL_RETRYABLE)
    return settle_failure(attempts, max_attempts)


def expire_lease(state: TaskState, *, attempts: int, max_attempts: int) -> TaskState:
    """A lease ran out without ack: treat as a retryable failure."""
    transition(state, TaskEvent.LEASE_EXPIRED)
    return settle_failure(attempts, max_attempts)
