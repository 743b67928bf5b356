"""RabbitMQ transport: connection, RPC client, retry ladder, error trace, worker."""

from __future__ import annotations

from .client import RpcClient
from .connection import RabbitMQConnectionManager
from .error_trace import ErrorTraceSink
from .publisher import CommandPublisher
from .retry_controller import RetryController
from .worker import CommandWorker, ResourceCommandWorker

__all__ = [
    "CommandPublisher",
    "CommandWorker",
    "ErrorTraceSink",
    "RabbitMQConnectionManager",
    "ResourceCommandWorker",
    "RetryController",
    "RpcClient",
]
