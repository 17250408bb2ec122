"""Custom exception hierarchy for the music library client.

This module provides a structured exception hierarchy for consistent
error handling across the client, the engine and the proxy.
"""


class CloudPlayerError(Exception):
    """Base exception for all client errors."""

    pass


class AuthError(CloudPlayerError):
    """Missing, invalid or expired credential. Callers must re-authenticate."""

    pass


class NetworkError(CloudPlayerError):
    """Transient transport or server failure."""

    pass


class NotFoundError(NetworkError):
    """The requested file reference does not resolve on the proxy."""

    pass


class LoadError(CloudPlayerError):
    """Audio fetch or decode failure for a specific track."""

    pass


class PlaybackError(CloudPlayerError):
    """The sink refused to start playback."""

    pass


class ValidationError(CloudPlayerError):
    """A manifest is missing its album mapping or track sequence."""

    pass


class SinkError(CloudPlayerError):
    """Errors reported by a media sink (decode failure, state change refused)."""

    pass


class ConfigurationError(CloudPlayerError):
    """Errors related to configuration."""

    pass
