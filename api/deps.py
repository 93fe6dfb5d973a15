"""FastAPI dependencies shared by the integration routers."""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from hub.config import HubSettings
from hub.database import get_session
from hub.integrations.agents import HttpAgentExecutor, SqlAgentDirectory
from hub.integrations.registry import IntegrationRegistry


@lru_cache
def get_settings() -> HubSettings:
    """Process-wide settings, read from the environment once."""
    return HubSettings.from_env()


def get_registry(
    session: AsyncSession = Depends(get_session),
    settings: HubSettings = Depends(get_settings),
) -> IntegrationRegistry:
    """FastAPI dependency for a request-scoped IntegrationRegistry."""
    executor = HttpAgentExecutor(settings.agent_runtime_url) if settings.agent_runtime_url else None
    return IntegrationRegistry(session, settings, executor=executor)


def get_agent_directory(
    session: AsyncSession = Depends(get_session),
) -> SqlAgentDirectory:
    return SqlAgentDirectory(session)
