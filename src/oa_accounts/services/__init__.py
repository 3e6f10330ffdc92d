"""Application services."""

from .credentials import CredentialService
from .opencode_sync import OpencodeAuthSync
from .pool import PoolService
from .session_continuity import SessionContinuityService
from .token_freshness import TokenFreshnessManager
from .usage import UsageClient, UsageFetcher, UsageFetchReport


__all__ = [
    "CredentialService",
    "OpencodeAuthSync",
    "PoolService",
    "SessionContinuityService",
    "TokenFreshnessManager",
    "UsageClient",
    "UsageFetchReport",
    "UsageFetcher",
]
