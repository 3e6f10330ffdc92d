"""Wiring from settings to repositories, secret backends and services."""

from dataclasses import dataclass

from oa_accounts.auth import DeviceFlowClient, OAuthClient
from oa_accounts.config import SecretBackend, Settings, StorageSettings, get_settings
from oa_accounts.repositories import (
    AccountRepository,
    JsonAccountRepository,
    JsonPoolRepository,
    JsonPoolRuntimeRepository,
    PoolRepository,
    PoolRuntimeRepository,
)
from oa_accounts.secrets import (
    ChainSecretStore,
    FileSecretStore,
    KeyringSecretStore,
    PassSecretStore,
    SecretStore,
)
from oa_accounts.services import (
    CredentialService,
    OpencodeAuthSync,
    PoolService,
    SessionContinuityService,
    TokenFreshnessManager,
    UsageClient,
    UsageFetcher,
)


def build_secret_store(storage: StorageSettings) -> SecretStore:
    """Primary backend chained with the file backend as fallback."""
    fallback = FileSecretStore(storage.secrets_path)
    if storage.secret_backend == SecretBackend.FILE:
        return fallback
    if storage.secret_backend == SecretBackend.PASS:
        primary: SecretStore = PassSecretStore()
    else:
        primary = KeyringSecretStore(storage.keyring_service)
    return ChainSecretStore(primary, fallback)


@dataclass
class AppContext:
    settings: Settings
    accounts: AccountRepository
    pools: PoolRepository
    runtimes: PoolRuntimeRepository
    secrets: SecretStore
    oauth_client: OAuthClient
    credentials: CredentialService
    freshness: TokenFreshnessManager
    pool_service: PoolService
    continuity: SessionContinuityService
    opencode: OpencodeAuthSync

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        storage = settings.storage
        accounts = JsonAccountRepository(storage.accounts_path)
        pools = JsonPoolRepository(storage.pools_path)
        runtimes = JsonPoolRuntimeRepository(storage.runtime_path)
        secrets = build_secret_store(storage)
        oauth_client = OAuthClient(settings.auth)
        return cls(
            settings=settings,
            accounts=accounts,
            pools=pools,
            runtimes=runtimes,
            secrets=secrets,
            oauth_client=oauth_client,
            credentials=CredentialService(accounts, secrets),
            freshness=TokenFreshnessManager(
                accounts,
                secrets,
                oauth_client,
                refresh_skew=settings.auth.refresh_skew,
            ),
            pool_service=PoolService(pools, accounts),
            continuity=SessionContinuityService(runtimes),
            opencode=OpencodeAuthSync(accounts, secrets, storage.opencode_auth_file),
        )

    def usage_fetcher(self) -> UsageFetcher:
        usage = self.settings.usage
        return UsageFetcher(
            UsageClient(usage),
            self.freshness,
            self.credentials,
            max_concurrency=usage.max_concurrency,
            cache_ttl=usage.cache_ttl,
        )

    def device_flow(self) -> DeviceFlowClient:
        return DeviceFlowClient(self.settings.auth)


_context: AppContext | None = None


def get_context() -> AppContext:
    """Return the process-wide context, building it on first use."""
    global _context
    if _context is None:
        _context = AppContext.from_settings(get_settings())
    return _context


def reset_context() -> None:
    global _context
    _context = None
