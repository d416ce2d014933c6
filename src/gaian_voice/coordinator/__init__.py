"""
Coordinator module: the turn-taking state machine.
"""

from gaian_voice.coordinator.modes import Mode, RequestHandle, RequestKind
from gaian_voice.coordinator.turn_coordinator import CoordinatorConfig, TurnCoordinator, ViewState

__all__ = [
    "CoordinatorConfig",
    "Mode",
    "RequestHandle",
    "RequestKind",
    "TurnCoordinator",
    "ViewState",
]
