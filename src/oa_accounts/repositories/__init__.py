"""Account, pool and pool runtime repositories."""

from .base import AccountRepository, PoolRepository, PoolRuntimeRepository
from .json_file import (
    JsonAccountRepository,
    JsonPoolRepository,
    JsonPoolRuntimeRepository,
)


__all__ = [
    "AccountRepository",
    "PoolRepository",
    "PoolRuntimeRepository",
    "JsonAccountRepository",
    "JsonPoolRepository",
    "JsonPoolRuntimeRepository",
]
