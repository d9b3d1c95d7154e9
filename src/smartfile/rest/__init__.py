"""REST layer — HTTP client, task poller, authenticators, wire records."""

from smartfile.rest.auth import (
    Authenticator,
    BasicAuthenticator,
    NoAuth,
    SessionAuthenticator,
    SupportsSession,
)
from smartfile.rest.client import REMOVE_ENDPOINT, Client
from smartfile.rest.paths import basename, dirname, encode_path, normalize_path
from smartfile.rest.poller import OperationPoller
from smartfile.rest.policy import (
    DeleteOutcome,
    PollPolicy,
    classify_delete_outcome,
    is_replayable,
    retry_after_seconds,
)
from smartfile.rest.types import ListingPage, PathInfo, TaskResult, TaskStatus

__all__ = [
    "REMOVE_ENDPOINT",
    "Authenticator",
    "BasicAuthenticator",
    "Client",
    "DeleteOutcome",
    "ListingPage",
    "NoAuth",
    "OperationPoller",
    "PathInfo",
    "PollPolicy",
    "SessionAuthenticator",
    "SupportsSession",
    "TaskResult",
    "TaskStatus",
    "basename",
    "classify_delete_outcome",
    "dirname",
    "encode_path",
    "is_replayable",
    "normalize_path",
    "retry_after_seconds",
]
