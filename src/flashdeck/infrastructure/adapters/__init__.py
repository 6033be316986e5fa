# Infrastructure Adapters Package
from .file_store import FileCardStore
from .http_store import HttpCardStore
from .json_quota_store import JsonQuotaStore
from .memory import InMemoryCardStore, InMemoryQuotaStore

__all__ = [
    "FileCardStore",
    "HttpCardStore",
    "JsonQuotaStore",
    "InMemoryCardStore",
    "InMemoryQuotaStore",
]
