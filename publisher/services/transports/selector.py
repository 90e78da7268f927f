"""Transport selection by media kind and size."""
from typing import Dict, Optional

from ...models import MediaAsset, MediaKind, PublishConfig, UploadStrategy, MIB
from ...protocols import IUploadTransport
from .base import RetryPolicy
from .chunked import ChunkedTransport
from .direct import DirectTransport
from .proxy import ProxyTransport

CHUNKED_THRESHOLD = 50 * MIB


def select_strategy(kind: MediaKind, size_bytes: int, chunked_threshold: int = CHUNKED_THRESHOLD) -> UploadStrategy:
    """
    Pick the transfer protocol.

    image -> direct; video above the threshold -> chunked; other video -> proxy.
    """
    if kind == MediaKind.IMAGE:
        return UploadStrategy.DIRECT
    if size_bytes > chunked_threshold:
        return UploadStrategy.CHUNKED
    return UploadStrategy.PROXY


class UploadStrategySelector:
    """Maps a media asset to one configured transport instance."""

    def __init__(self, transports: Dict[UploadStrategy, IUploadTransport], config: Optional[PublishConfig] = None):
        self._transports = transports
        self._config = config or PublishConfig()

    @classmethod
    def build(cls, api, config: Optional[PublishConfig] = None) -> "UploadStrategySelector":
        config = config or PublishConfig()
        retry = RetryPolicy.from_config(config)
        return cls(
            {
                UploadStrategy.DIRECT: DirectTransport(api, config, retry),
                UploadStrategy.PROXY: ProxyTransport(api, config, retry),
                UploadStrategy.CHUNKED: ChunkedTransport(api, config, retry),
            },
            config,
        )

    def strategy_for(self, asset: MediaAsset) -> UploadStrategy:
        return select_strategy(asset.kind, asset.size_bytes, self._config.chunked_threshold)

    def transport(self, strategy: UploadStrategy) -> IUploadTransport:
        return self._transports[strategy]

    def select(self, asset: MediaAsset) -> IUploadTransport:
        return self.transport(self.strategy_for(asset))
