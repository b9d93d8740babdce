"""Exception hierarchy for the gateway."""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all gateway errors."""


class ConfigurationError(GatewayError):
    """Fatal configuration problem detected before any backend is contacted."""


class BackendConnectionError(GatewayError):
    """Could not open a session to a backend.

    For remote backends both transport attempts are kept so neither cause is lost.
    """

    def __init__(self, backend: str, message: str, causes: tuple[BaseException, ...] = ()):
        super().__init__(message)
        self.backend = backend
        self.causes = causes


class CapabilityEnumerationError(GatewayError):
    """Listing one capability kind on a backend failed."""


class InvocationError(GatewayError):
    """A forwarded tool, prompt or resource call failed on the backend."""


class ModerationCallError(GatewayError):
    """The external classifier could not produce a verdict."""

    status_code: int | None = None

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
