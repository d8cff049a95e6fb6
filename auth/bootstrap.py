"""Wiring of the auth subsystem.

create_auth_components() assembles everything from already-built clients;
build_from_vault() builds those clients from Vault secrets first.
"""

import logging
from dataclasses import dataclass

import httpx

from auth.adapter import AuthAdapter
from auth.bindings import GoTrueBinding, LocalBinding
from auth.config import AuthConfig
from auth.continuation import SessionContinuationGate
from auth.database import IdentityDatabase
from auth.email_codes import EmailCodeService
from auth.pending_identity import PendingIdentityStore
from auth.registration import RegistrationFlow
from auth.resend_limiter import VerificationResendLimiter
from auth.security_logger import SecurityLogger
from auth.session import SessionManager
from auth.storage import KeyValueStore, ValkeyStore
from auth.two_factor import TwoFactorOrchestrator
from auth.two_factor_store import TwoFactorDatabase
from auth.types import IdentityProvider
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url, get_email_config, get_gotrue_config, get_valkey_url
from utils.timezone import Clock, now_utc

logger = logging.getLogger(__name__)


@dataclass
class AuthComponents:
    adapter: AuthAdapter
    two_factor: TwoFactorOrchestrator
    resend_limiter: VerificationResendLimiter
    pending_identities: PendingIdentityStore
    registration: RegistrationFlow
    gate: SessionContinuationGate
    gotrue: GoTrueBinding
    local: LocalBinding

    async def aclose(self) -> None:
        await self.gotrue.aclose()


def create_auth_components(
    config: AuthConfig,
    postgres: PostgresClient,
    store: KeyValueStore,
    email_client: EmailGatewayClient,
    gotrue_url: str,
    gotrue_anon_key: str,
    http: httpx.AsyncClient | None = None,
    clock: Clock = now_utc,
) -> AuthComponents:
    """Assemble the subsystem. Both bindings are always built; config picks between them."""
    security_logger = SecurityLogger(postgres)

    gotrue = GoTrueBinding(
        base_url=gotrue_url,
        anon_key=gotrue_anon_key,
        redirect_url=config.app_base_url,
        http=http,
        clock=clock,
    )
    local = LocalBinding(
        identity_db=IdentityDatabase(postgres),
        session_manager=SessionManager(store, config, clock=clock),
        email_client=email_client,
        store=store,
        config=config,
        clock=clock,
    )
    adapter = AuthAdapter(
        {IdentityProvider.GOTRUE: gotrue, IdentityProvider.LOCAL: local},
        config,
        security_logger,
    )

    pending = PendingIdentityStore(store, config, clock=clock)
    gate = SessionContinuationGate(adapter, pending, security_logger)
    orchestrator = TwoFactorOrchestrator(
        adapter=adapter,
        store=TwoFactorDatabase(postgres, clock=clock),
        email_codes=EmailCodeService(store, email_client, config, clock=clock),
        gate=gate,
        pending_identities=pending,
        security_logger=security_logger,
        config=config,
        clock=clock,
    )

    logger.info(f"Auth components ready (default binding: {config.identity_provider.value})")
    return AuthComponents(
        adapter=adapter,
        two_factor=orchestrator,
        resend_limiter=VerificationResendLimiter(store, config, clock=clock),
        pending_identities=pending,
        registration=RegistrationFlow(adapter, pending),
        gate=gate,
        gotrue=gotrue,
        local=local,
    )


def build_from_vault(config: AuthConfig | None = None) -> AuthComponents:
    """Build clients from Vault secrets and wire the subsystem. Fails fast on missing secrets."""
    config = config or AuthConfig()
    email_config = get_email_config()
    gotrue_config = get_gotrue_config()

    return create_auth_components(
        config=config,
        postgres=PostgresClient(get_database_url()),
        store=ValkeyStore.from_url(get_valkey_url()),
        email_client=EmailGatewayClient(
            gateway_url=email_config["gateway_url"],
            api_key=email_config["api_key"],
            hmac_secret=email_config["hmac_secret"],
        ),
        gotrue_url=gotrue_config["url"],
        gotrue_anon_key=gotrue_config["anon_key"],
    )
