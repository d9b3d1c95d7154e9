"""SmartFile: an asyncio client and filesystem layer for the SmartFile API.

Authenticated REST access, server-side task polling, throttling, and a
cached, descriptor-based filesystem on top.
"""

__version__ = "0.1.0"

from smartfile._smartfile import SmartFile
from smartfile.config import ClientConfig
from smartfile.exceptions import (
    BadDescriptorError,
    DecodeError,
    InvalidArgumentError,
    LocalIOError,
    OperationError,
    OperationFailedError,
    OperationTimeoutError,
    PartialFailureError,
    PathNotFoundError,
    RateLimitError,
    ResponseError,
    SmartFileError,
    TaskProtocolError,
    TransportError,
    UnsupportedModeError,
)
from smartfile.fs.filesystem import AsyncFileSystem
from smartfile.keys import Keys
from smartfile.metrics import InMemoryMetrics, MetricsRecorder, NullMetrics
from smartfile.rest.auth import BasicAuthenticator, NoAuth, SessionAuthenticator
from smartfile.rest.client import Client
from smartfile.rest.policy import PollPolicy
from smartfile.rest.types import PathInfo, TaskResult, TaskStatus

__all__ = [
    "AsyncFileSystem",
    "BadDescriptorError",
    "BasicAuthenticator",
    "Client",
    "ClientConfig",
    "DecodeError",
    "InMemoryMetrics",
    "InvalidArgumentError",
    "Keys",
    "LocalIOError",
    "MetricsRecorder",
    "NoAuth",
    "NullMetrics",
    "OperationError",
    "OperationFailedError",
    "OperationTimeoutError",
    "PartialFailureError",
    "PathInfo",
    "PathNotFoundError",
    "PollPolicy",
    "RateLimitError",
    "ResponseError",
    "SessionAuthenticator",
    "SmartFile",
    "SmartFileError",
    "TaskProtocolError",
    "TaskResult",
    "TaskStatus",
    "TransportError",
    "UnsupportedModeError",
    "__version__",
]
