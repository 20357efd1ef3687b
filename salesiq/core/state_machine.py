"""
SalesIQ — Pipeline State Machine

Enforces the lifecycle: IDLE → UPLOADING → ANALYZING → SUCCESS, with ERROR
reachable from every working state and reset back to IDLE.
All state transitions go through this module so illegitimate states
are impossible and every transition is logged.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, List, NamedTuple, Optional, Set

logger = logging.getLogger("salesiq.state")


class AppState(str, Enum):
    """Strict pipeline lifecycle states."""
    IDLE = "idle"              # Waiting for a file
    UPLOADING = "uploading"    # Encoding + duration read (or cache lookup)
    ANALYZING = "analyzing"    # Remote analysis in flight
    SUCCESS = "success"        # A result is bound to the dashboard
    ERROR = "error"            # Attempt failed; message shown


# Legal state transitions
_TRANSITIONS: Dict[AppState, Set[AppState]] = {
    AppState.IDLE:      {AppState.UPLOADING},
    AppState.UPLOADING: {AppState.ANALYZING, AppState.SUCCESS, AppState.ERROR},
    AppState.ANALYZING: {AppState.SUCCESS, AppState.ERROR},
    AppState.SUCCESS:   {AppState.IDLE, AppState.ERROR},
    AppState.ERROR:     {AppState.IDLE, AppState.UPLOADING},
}

# States from which a new file (or history entry) may be accepted
ACCEPTS_INPUT: Set[AppState] = {AppState.IDLE, AppState.ERROR}


class Transition(NamedTuple):
    source: AppState
    target: AppState
    reason: str = ""


class AppStateMachine:
    """
    Enforces legal state transitions and notifies listeners.

    Usage:
        sm = AppStateMachine(on_transition=my_callback)
        sm.transition(AppState.UPLOADING)      # OK
        sm.transition(AppState.ANALYZING)      # OK
        sm.transition(AppState.IDLE)           # illegal from ANALYZING → raises
    """

    def __init__(
        self,
        on_transition: Optional[Callable[[AppState, AppState, str], None]] = None,
    ) -> None:
        self._state = AppState.IDLE
        self._on_transition = on_transition
        self._history: List[Transition] = []

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def history(self) -> List[Transition]:
        return list(self._history)

    @property
    def accepts_input(self) -> bool:
        return self._state in ACCEPTS_INPUT

    def transition(self, target: AppState, reason: str = "") -> None:
        """Move to `target`. Re-entering the current state does nothing."""
        source = self._state
        if target == source:
            return

        if target not in _TRANSITIONS[source]:
            raise ValueError(
                f"Cannot go from {source.value} to {target.value}"
                + (f" ({reason})" if reason else "")
            )

        self._state = target
        self._history.append(Transition(source, target, reason))
        logger.info(f"STATE: {source.value} → {target.value}" + (f" ({reason})" if reason else ""))

        if self._on_transition is None:
            return
        try:
            self._on_transition(source, target, reason)
        except Exception as e:
            # A listener never blocks the pipeline
            logger.error(f"Listener failed on {source.value} → {target.value}: {e}")

    def reset(self) -> None:
        """Return to IDLE from SUCCESS or ERROR."""
        if self._state != AppState.IDLE:
            self.transition(AppState.IDLE, reason="reset")
