"""Upstream access: AUR RPC client and the concurrent fetcher."""

from .fetcher import UpstreamFetcher, snapshot_from_record
from .rpc import AurRpcClient, make_http_client

__all__ = ["AurRpcClient", "UpstreamFetcher", "make_http_client", "snapshot_from_record"]
