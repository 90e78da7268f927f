"""Upload transports (direct, proxy, chunked) and their selector."""
from .base import CancellationToken, RetryPolicy, UploadTransport
from .chunked import ChunkedTransport
from .direct import DirectTransport
from .proxy import ProxyTransport
from .selector import UploadStrategySelector, select_strategy

__all__ = [
    "CancellationToken",
    "RetryPolicy",
    "UploadTransport",
    "ChunkedTransport",
    "DirectTransport",
    "ProxyTransport",
    "UploadStrategySelector",
    "select_strategy",
]
