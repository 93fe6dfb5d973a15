"""
Integration Hub registry.

Turns "tenant X wants its integrations" into ready-to-call adapters:
- Loads connected rows, decrypts credentials, instantiates the adapter class
  for each provider id
- Isolates per-record failures (bad ciphertext, unknown provider, broken
  credential shape) so the other integrations still load
- Applies the acting agent's allow-list (``config["integration_ids"]``)
- Owns every write of the integrations row, including refreshed OAuth tokens

Allow-list semantics:
    key absent           -> every connected integration
    empty list           -> none
    non-empty list       -> exactly those integration ids
    any other value      -> ignored (treated as absent)
"""
from __future__ import annotations
from typing import Any
import logging

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from hub.config import HubSettings
from hub.integrations.adapter_base import (
    AdapterDeps,
    ConnectionTestResult,
    IntegrationAdapter,
    IntegrationRecord,
    IntegrationStatus,
)
from hub.integrations.agents import AgentDirectory, AgentExecutor, SqlAgentDirectory
from hub.integrations.cipher import CredentialCipher
from hub.integrations.errors import (
    IntegrationError,
    IntegrationNotFoundError,
    IntegrationNotPermitted,
)
from hub.integrations.oauth_manager import OAuthAdapter
from hub.integrations.providers import get_adapter_class, normalize_provider
from hub.integrations.repository import IntegrationRepository
from hub.integrations.usage import SqlUsageTracker, UsageTracker

logger = logging.getLogger(__name__)

ALLOW_LIST_KEY = "integration_ids"


class IntegrationRegistry:
    """Request-scoped factory for adapter instances.

    Usage::

        registry = IntegrationRegistry(session, settings, executor=engine)
        adapters = await registry.get_integration_map(tenant_id, agent_id)
        await adapters["email"].execute_action("send_email", {...})
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: HubSettings,
        cipher: CredentialCipher | None = None,
        usage: UsageTracker | None = None,
        agents: AgentDirectory | None = None,
        executor: AgentExecutor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.cipher = cipher or CredentialCipher(settings.encryption_key)
        self.integrations = IntegrationRepository(session)
        self.deps = AdapterDeps(
            settings=settings,
            usage=usage or SqlUsageTracker(session),
            agents=agents or SqlAgentDirectory(session),
            executor=executor,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Instantiation
    # ------------------------------------------------------------------

    def _to_record(self, row: dict[str, Any]) -> IntegrationRecord:
        credentials = self.cipher.safe_decrypt(row.get("credentials")) or {}
        if not isinstance(credentials, dict):
            raise IntegrationError(
                "Stored credentials are not an object", provider=row.get("provider")
            )
        return IntegrationRecord(
            id=row["id"],
            tenant_id=row["tenant_id"],
            provider=normalize_provider(row["provider"]),
            type=row.get("type") or "",
            status=row.get("status") or IntegrationStatus.CONNECTED.value,
            credentials=credentials,
            config=row.get("config") or {},
            webhook_url=row.get("webhook_url"),
            name=row.get("name"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def build_adapter(self, row: dict[str, Any]) -> IntegrationAdapter:
        """Decrypt one row and construct its adapter (raises on any failure)."""
        record = self._to_record(row)
        adapter = get_adapter_class(record.provider)(record, self.deps)
        if isinstance(adapter, OAuthAdapter):
            adapter.on_token_refresh = self._persist_tokens
        return adapter

    async def _persist_tokens(self, record: IntegrationRecord, credentials: dict[str, Any]) -> None:
        """Write refreshed OAuth tokens back to the row, re-encrypted."""
        await self.integrations.save_credentials(record.id, self.cipher.encrypt(credentials))
        logger.info("Persisted refreshed %s tokens for integration %s", record.provider, record.id)

    async def _load_adapters(self, tenant_id: str, provider: str | None = None) -> list[IntegrationAdapter]:
        rows = await self.integrations.list_for_tenant(
            tenant_id, status=IntegrationStatus.CONNECTED.value
        )
        wanted = normalize_provider(provider) if provider else None
        adapters: list[IntegrationAdapter] = []
        for row in rows:
            if wanted and normalize_provider(row["provider"]) != wanted:
                continue
            try:
                adapters.append(self.build_adapter(row))
            except Exception as exc:
                # One broken row must not hide the tenant's other integrations
                logger.warning(
                    "Skipping integration %s (%s) for tenant %s: %s",
                    row["id"], row["provider"], tenant_id, exc,
                )
        return adapters

    # ------------------------------------------------------------------
    # Allow-list
    # ------------------------------------------------------------------

    async def _allowed_ids(self, tenant_id: str, agent_id: str | None) -> set[str] | None:
        """None means unrestricted."""
        if agent_id is None:
            return None
        agent = await self.deps.agents.get_agent(agent_id, tenant_id)
        if agent is None:
            logger.warning("Agent %s not found for tenant %s; no integrations allowed", agent_id, tenant_id)
            return set()
        allowed = (agent.get("config") or {}).get(ALLOW_LIST_KEY)
        if allowed is None:
            return None
        if not isinstance(allowed, list):
            logger.warning("Agent %s has a malformed %s; ignoring it", agent_id, ALLOW_LIST_KEY)
            return None
        return {str(i) for i in allowed}

    @staticmethod
    def _filter_allowed(adapters: list[IntegrationAdapter], allowed: set[str] | None) -> list[IntegrationAdapter]:
        if allowed is None:
            return adapters
        return [a for a in adapters if a.integration_id in allowed]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_tenant_adapters(
        self,
        tenant_id: str,
        provider: str | None = None,
        agent_id: str | None = None,
    ) -> list[IntegrationAdapter]:
        """Every loadable connected adapter, newest first (several per provider allowed)."""
        adapters = await self._load_adapters(tenant_id, provider)
        return self._filter_allowed(adapters, await self._allowed_ids(tenant_id, agent_id))

    async def get_integration_map(
        self, tenant_id: str, agent_id: str | None = None
    ) -> dict[str, IntegrationAdapter]:
        """Provider id -> adapter; the most recently updated row wins per provider."""
        integration_map: dict[str, IntegrationAdapter] = {}
        for adapter in await self.get_tenant_adapters(tenant_id, agent_id=agent_id):
            integration_map.setdefault(adapter.provider, adapter)
        logger.debug(
            "Loaded %d integrations for tenant %s (agent=%s)", len(integration_map), tenant_id, agent_id
        )
        return integration_map

    async def get_integration_by_provider(self, provider: str, tenant_id: str) -> IntegrationAdapter | None:
        adapters = await self._load_adapters(tenant_id, provider)
        return adapters[0] if adapters else None

    async def get_integration_instance(
        self, integration_id: str, tenant_id: str | None = None
    ) -> IntegrationAdapter | None:
        """Adapter for one connected row; ``tenant_id=None`` is the unscoped inbound-webhook lookup."""
        if tenant_id is None:
            row = await self.integrations.get_by_id(integration_id)
        else:
            row = await self.integrations.get(integration_id, tenant_id)
        if row is None or row["status"] != IntegrationStatus.CONNECTED.value:
            return None
        return self.build_adapter(row)

    async def require_adapter(
        self, tenant_id: str, provider: str, agent_id: str | None = None
    ) -> IntegrationAdapter:
        """Adapter the agent may use for *provider*, or a descriptive error."""
        adapters = await self._load_adapters(tenant_id, provider)
        if not adapters:
            raise IntegrationError(f"No connected {provider} integration", provider=provider)
        allowed = self._filter_allowed(adapters, await self._allowed_ids(tenant_id, agent_id))
        if not allowed:
            raise IntegrationNotPermitted(
                f"This agent is not permitted to use the {provider} integration", provider=provider
            )
        return allowed[0]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def redact(row: dict[str, Any]) -> dict[str, Any]:
        """Row as shown to the dashboard; credentials never leave the server."""
        public = {k: v for k, v in row.items() if k != "credentials"}
        public["has_credentials"] = bool(row.get("credentials"))
        try:
            public["capabilities"] = get_adapter_class(row["provider"]).get_capabilities()
        except IntegrationError:
            public["capabilities"] = []
        return public

    async def _get_row(self, integration_id: str, tenant_id: str) -> dict[str, Any]:
        row = await self.integrations.get(integration_id, tenant_id)
        if row is None:
            raise IntegrationNotFoundError(integration_id)
        return row

    async def list_integrations(self, tenant_id: str) -> list[dict[str, Any]]:
        return [self.redact(r) for r in await self.integrations.list_for_tenant(tenant_id)]

    async def connect(
        self,
        tenant_id: str,
        provider: str,
        credentials: dict[str, Any],
        config: dict[str, Any] | None = None,
        name: str | None = None,
        webhook_url: str | None = None,
    ) -> dict[str, Any]:
        """Validate credentials with the provider's adapter, encrypt, store."""
        provider = normalize_provider(provider)
        cls = get_adapter_class(provider)
        candidate = cls(
            IntegrationRecord(
                id="", tenant_id=tenant_id, provider=provider, credentials=credentials, config=config or {}
            ),
            self.deps,
        )
        await candidate.authenticate(credentials)

        row = await self.integrations.create(
            tenant_id,
            {
                "provider": provider,
                "type": cls.integration_type.value,
                "status": IntegrationStatus.CONNECTED.value,
                "name": name,
                "credentials": self.cipher.encrypt(credentials),
                "config": config or {},
                "webhook_url": webhook_url,
            },
        )
        logger.info("Connected %s integration %s for tenant %s", provider, row["id"], tenant_id)
        return self.redact(row)

    async def update_integration(
        self,
        integration_id: str,
        tenant_id: str,
        credentials: dict[str, Any] | None = None,
        config: dict[str, Any] | None = None,
        name: str | None = None,
    ) -> dict[str, Any]:
        """Reconfigure a row; new credentials are merged, re-validated and re-encrypted."""
        row = await self._get_row(integration_id, tenant_id)
        changes: dict[str, Any] = {}
        if credentials is not None:
            record = self._to_record(row)
            merged = {**record.credentials, **credentials}
            record.credentials = merged
            if config is not None:
                record.config = config
            await get_adapter_class(record.provider)(record, self.deps).authenticate(merged)
            changes["credentials"] = self.cipher.encrypt(merged)
            changes["status"] = IntegrationStatus.CONNECTED.value
            changes["last_error"] = None
        if config is not None:
            changes["config"] = config
        if name is not None:
            changes["name"] = name
        if not changes:
            return self.redact(row)
        updated = await self.integrations.update(integration_id, tenant_id, changes)
        return self.redact(updated)

    async def test_integration(self, integration_id: str, tenant_id: str) -> ConnectionTestResult:
        """Run the adapter's connection test and record the outcome on the row."""
        row = await self._get_row(integration_id, tenant_id)
        try:
            adapter = self.build_adapter(row)
            result = await adapter.test_connection()
        except IntegrationError as exc:
            result = ConnectionTestResult.failed(str(exc))

        if result.success:
            await self.integrations.set_status(integration_id, tenant_id, IntegrationStatus.CONNECTED.value)
        else:
            await self.integrations.set_status(
                integration_id, tenant_id, IntegrationStatus.ERROR.value, result.error
            )
        return result

    async def disconnect(self, integration_id: str, tenant_id: str) -> dict[str, Any]:
        await self._get_row(integration_id, tenant_id)
        row = await self.integrations.set_status(
            integration_id, tenant_id, IntegrationStatus.DISCONNECTED.value
        )
        logger.info("Disconnected integration %s for tenant %s", integration_id, tenant_id)
        return self.redact(row)

    async def delete(self, integration_id: str, tenant_id: str) -> None:
        if not await self.integrations.delete(integration_id, tenant_id):
            raise IntegrationNotFoundError(integration_id)
        logger.info("Deleted integration %s for tenant %s", integration_id, tenant_id)

    async def complete_oauth(self, provider: str, tenant_id: str, code: str) -> dict[str, Any]:
        """Exchange a callback code and connect, or reconnect the newest existing row."""
        provider = normalize_provider(provider)
        cls = get_adapter_class(provider)
        if not issubclass(cls, OAuthAdapter):
            raise IntegrationError(f"{provider} does not use OAuth", provider=provider)
        credentials = await cls.exchange_code_for_token(code, self.settings, self.deps.transport)

        existing = await self.integrations.list_for_tenant(tenant_id, provider=provider)
        if not existing:
            return await self.connect(tenant_id, provider, credentials)

        row = existing[0]
        updated = await self.integrations.update(
            row["id"],
            tenant_id,
            {
                "credentials": self.cipher.encrypt(credentials),
                "status": IntegrationStatus.CONNECTED.value,
                "last_error": None,
            },
        )
        logger.info("Reconnected %s integration %s for tenant %s", provider, row["id"], tenant_id)
        return self.redact(updated)
