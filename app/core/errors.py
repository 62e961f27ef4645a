"""Error taxonomy for the sync and aggregation jobs.

Remote-side errors (``ConfigError``, ``AuthConfigError``,
``TransientRemoteError``) live next to the HTTP client in
``testrail_client`` and are re-exported here.
"""

from testrail_client import AuthConfigError, ConfigError, TransientRemoteError

__all__ = [
    "AggregationSourceError",
    "AuthConfigError",
    "ConfigError",
    "FatalSyncError",
    "PartialSyncError",
    "PersistenceError",
    "TransientRemoteError",
]


class PartialSyncError(Exception):
    """A single project/suite/section could not be fetched; the walk continues."""

    def __init__(self, node_type: str, node_id: int, cause: Exception):
        super().__init__(f"{node_type} {node_id}: {cause}")
        self.node_type = node_type
        self.node_id = node_id
        self.cause = cause

    def to_dict(self) -> dict:
        return {"node_type": self.node_type, "node_id": self.node_id, "error": str(self.cause)}


class FatalSyncError(Exception):
    """The top-level project list could not be fetched; the cycle is aborted."""


class AggregationSourceError(Exception):
    """An optional aggregation source (the Jira epic) failed."""


class PersistenceError(Exception):
    """A write to a local store failed."""
