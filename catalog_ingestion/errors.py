"""Exception hierarchy for the ingestion system."""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(IngestionError):
    """A required configuration value is missing or malformed.

    Raised at startup; the affected provider is never scheduled.
    """


class FetchError(IngestionError):
    """A paginated pull from an upstream API failed or ran past its deadline."""


class TransformError(IngestionError):
    """A transformer raised while mapping an instance to an entity."""


class HookError(IngestionError):
    """The cross-collection hook raised or returned something unusable."""


class SinkError(IngestionError):
    """The catalog sink rejected a mutation."""


class UseBeforeConnectError(IngestionError):
    """A cycle was requested before a sink was connected."""


class ControllerStateError(IngestionError):
    """A controller was driven through an invalid state transition."""
