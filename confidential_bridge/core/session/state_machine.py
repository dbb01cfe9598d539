"""
Session State Machine

Manages state transitions of a bridge session with validation and
transition history.
"""

import logging
from typing import Any, Callable, Coroutine, Dict, FrozenSet, List, Optional, Set

from ..errors import InvalidTransitionError
from .models import (
    STEADY_STATES,
    ErrorKind,
    SessionContext,
    SessionState,
    StateTransition,
    StateTransitionTrigger,
)

TransitionCallback = Callable[[StateTransition, SessionContext], Coroutine[Any, Any, None]]

# Every in-flight state may fall back to whichever steady state it started from
_FALLBACK: FrozenSet[SessionState] = STEADY_STATES | {SessionState.ERROR}
_ACTION_ENTRY: FrozenSet[SessionState] = frozenset({
    SessionState.MINTING,
    SessionState.APPROVING,
    SessionState.ENCRYPTING,
    SessionState.DECRYPTING,
    SessionState.DECRYPTED,  # Zero handle, no oracle round-trip
})


class SessionStateMachine:
    """
    Manages bridge session state transitions.

    Features:
    - Validates transitions against allowed transition map
    - Tracks state history
    - Remembers the last steady state so failed actions can fall back to it
    """

    TRANSITIONS: Dict[SessionState, Set[SessionState]] = {
        SessionState.IDLE: set(_ACTION_ENTRY),
        SessionState.MINTED: set(_ACTION_ENTRY),
        SessionState.WRAPPED: set(_ACTION_ENTRY),
        SessionState.MINTING: {SessionState.MINTED} | _FALLBACK,
        SessionState.APPROVING: {SessionState.WRAPPING} | _FALLBACK,
        SessionState.WRAPPING: {SessionState.WRAPPED} | _FALLBACK,
        SessionState.ENCRYPTING: {SessionState.UNWRAPPING} | _FALLBACK,
        SessionState.UNWRAPPING: {SessionState.AWAITING_ORACLE} | _FALLBACK,
        SessionState.AWAITING_ORACLE: {SessionState.WRAPPED, SessionState.ERROR},
        SessionState.DECRYPTING: {SessionState.DECRYPTED} | _FALLBACK,
        SessionState.DECRYPTED: set(STEADY_STATES),  # Resume
        SessionState.ERROR: set(STEADY_STATES),      # Reset
    }

    def __init__(
        self,
        context: SessionContext,
        logger: Optional[logging.Logger] = None,
    ):
        self.context = context
        self.logger = logger or logging.getLogger(__name__)
        self._transition_callbacks: List[TransitionCallback] = []

    @property
    def current_state(self) -> SessionState:
        return self.context.current_state

    @property
    def is_steady(self) -> bool:
        return self.context.is_steady

    def can_transition_to(self, to_state: SessionState) -> bool:
        """Check if transition to given state is valid."""
        return to_state in self.TRANSITIONS.get(self.current_state, set())

    def get_allowed_transitions(self) -> Set[SessionState]:
        return self.TRANSITIONS.get(self.current_state, set())

    async def transition_to(
        self,
        to_state: SessionState,
        trigger: StateTransitionTrigger = StateTransitionTrigger.AUTOMATIC,
        reason: Optional[str] = None,
        error_code: Optional[str] = None,
    ) -> StateTransition:
        """
        Transition to a new state.

        Raises:
            InvalidTransitionError: If transition is not allowed
        """
        from_state = self.current_state

        if not self.can_transition_to(to_state):
            raise InvalidTransitionError(
                from_state=from_state,
                to_state=to_state,
                message=f"Invalid transition from {from_state.value} to {to_state.value}. "
                        f"Allowed: {sorted(s.value for s in self.get_allowed_transitions())}",
            )

        transition = StateTransition(
            from_state=from_state,
            to_state=to_state,
            trigger=trigger,
            reason=reason,
            error_code=error_code,
        )

        self.context.current_state = to_state
        self.context.state_entered_at = transition.timestamp
        self.context.state_history.append(transition)
        if to_state in STEADY_STATES:
            self.context.last_steady_state = to_state

        self.logger.info(
            f"Session {self.context.holder}/{self.context.asset}: {from_state.value} -> {to_state.value}"
            f"{f' ({reason})' if reason else ''}"
        )

        for callback in self._transition_callbacks:
            try:
                await callback(transition, self.context)
            except Exception as e:
                self.logger.error(f"Transition callback error: {e}")

        return transition

    async def begin(self, to_state: SessionState, reason: Optional[str] = None) -> StateTransition:
        """Enter the first in-flight state of a user action."""
        return await self.transition_to(to_state, StateTransitionTrigger.USER_ACTION, reason)

    async def revert(self, to_state: SessionState, reason: str, error_code: Optional[str] = None) -> StateTransition:
        """Fall back to the steady state the failed action started from."""
        self.context.recoverable = True
        return await self.transition_to(to_state, StateTransitionTrigger.ERROR, reason, error_code)

    async def fail(
        self,
        kind: ErrorKind,
        error_message: str,
        error_code: Optional[str] = None,
        recoverable: bool = False,
    ) -> StateTransition:
        """Transition to the error state."""
        self.context.error_kind = kind
        self.context.error_message = error_message
        self.context.error_code = error_code
        self.context.recoverable = recoverable
        return await self.transition_to(
            SessionState.ERROR,
            trigger=StateTransitionTrigger.ERROR,
            reason=kind.value,
            error_code=error_code,
        )

    async def resume(self) -> Optional[StateTransition]:
        """Leave Decrypted for the last steady state."""
        if self.current_state != SessionState.DECRYPTED:
            return None
        return await self.transition_to(
            self.context.last_steady_state,
            trigger=StateTransitionTrigger.AUTOMATIC,
            reason="Resumed after decryption",
        )

    async def reset(self, to_state: SessionState) -> StateTransition:
        """Leave Error for the steady state matching freshly observed balances."""
        if self.current_state != SessionState.ERROR:
            raise InvalidTransitionError(
                from_state=self.current_state,
                to_state=to_state,
                message="Can only reset from the error state",
            )

        self.context.error_kind = None
        self.context.error_message = None
        self.context.error_code = None
        self.context.recoverable = True

        return await self.transition_to(
            to_state,
            trigger=StateTransitionTrigger.RECOVERY,
            reason="Reset after balance refresh",
        )

    def register_transition_callback(self, callback: TransitionCallback) -> None:
        """Register a callback to be called on any transition."""
        self._transition_callbacks.append(callback)
