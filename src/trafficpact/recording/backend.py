"""TrafficBackend ABC: the capability-execution boundary.

A backend intercepts HTTP traffic for the duration of a test. In record
mode it captures every interaction; in replay mode it serves the given
interactions and blocks every other outbound call. Concrete backends
live outside this package.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from trafficpact.recording.models import Interaction


class TrafficBackend(ABC):
    """Abstract interception backend driven by the lifecycle controller."""

    @abstractmethod
    def start_recording(self) -> None:
        """Begin capturing live traffic."""
        ...

    @abstractmethod
    def stop_recording(self) -> list[Interaction]:
        """Stop capturing and return the captured interactions in call order."""
        ...

    @abstractmethod
    def load_mocks(self, interactions: list[Interaction]) -> None:
        """Serve ``interactions`` for matching outbound calls."""
        ...

    @abstractmethod
    def disable_net_connect(self) -> None:
        ...

    @abstractmethod
    def enable_net_connect(self) -> None:
        ...

    @abstractmethod
    def restore(self) -> None:
        """Clear recorder and mocks, returning to pass-through."""
        ...
