"""Refresh cycle state machine implementation."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class RefreshState(Enum):
    """Refresh cycle states.

    State transitions:
        IDLE -> REFRESH_PENDING: First caller needing a renewal starts one
        REFRESH_PENDING -> REFRESH_SUCCEEDED: New credentials persisted
        REFRESH_PENDING -> REFRESH_FAILED: Renewal rejected, session cleared
        REFRESH_PENDING -> IDLE: Renewal task cancelled before completing
        REFRESH_SUCCEEDED/REFRESH_FAILED -> IDLE: In-flight slot cleared
    """

    IDLE = auto()
    REFRESH_PENDING = auto()
    REFRESH_SUCCEEDED = auto()
    REFRESH_FAILED = auto()


class RefreshStateError(Exception):
    """Raised when an invalid refresh state transition is attempted."""

    def __init__(self, from_state: RefreshState, to_state: RefreshState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid refresh state transition: {from_state.name} -> {to_state.name}"
        )


class RefreshStateMachine:
    """State machine for one client's refresh cycles.

    Enforces valid state transitions so a second renewal can never start
    while one is pending.
    """

    VALID_TRANSITIONS: ClassVar[dict[RefreshState, set[RefreshState]]] = {
        RefreshState.IDLE: {RefreshState.REFRESH_PENDING},
        RefreshState.REFRESH_PENDING: {
            RefreshState.REFRESH_SUCCEEDED,
            RefreshState.REFRESH_FAILED,
            RefreshState.IDLE,
        },
        RefreshState.REFRESH_SUCCEEDED: {RefreshState.IDLE},
        RefreshState.REFRESH_FAILED: {RefreshState.IDLE},
    }

    def __init__(self) -> None:
        """Initialize the state machine in IDLE state."""
        self._state = RefreshState.IDLE
        self._log = logger.bind(component="auth", subcomponent="refresh_state")

    @property
    def state(self) -> RefreshState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: RefreshState) -> bool:
        """Check if a transition to the given state is valid.

        Args:
            to_state: The target state.

        Returns:
            True if the transition is valid, False otherwise.
        """
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: RefreshState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            RefreshStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise RefreshStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "refresh_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_idle(self) -> bool:
        """Check if no refresh is underway."""
        return self._state == RefreshState.IDLE

    def is_pending(self) -> bool:
        """Check if a refresh is underway."""
        return self._state == RefreshState.REFRESH_PENDING
