from __future__ import annotations


class DegenerateGeometry(ValueError):
    """Raised when a joint angle cannot be computed (coincident or non-finite points)."""


class EngineFinalizedError(RuntimeError):
    """A frame was pushed into an engine after finalize()."""


class SessionNotActiveError(RuntimeError):
    """No counting session is running."""
