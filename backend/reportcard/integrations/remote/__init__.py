from .http_store import HTTPRemoteStore

__all__ = [
    "HTTPRemoteStore"
]
