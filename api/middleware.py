"""Tenant resolution middleware.

Every integration row, agent and usage event is tenant-scoped. The tenant for
a dashboard request comes from the X-Tenant-ID header, or from the first
subdomain label (acme.hub.example.com -> "acme"). It is kept in a ContextVar
so routes and the registry read it with get_current_tenant().

Inbound provider webhooks carry no tenant; their routes resolve the tenant
from the integration row or target agent instead.
"""

from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

DEFAULT_TENANT = "default"
TENANT_HEADER = "X-Tenant-ID"

_current_tenant: ContextVar[str] = ContextVar("current_tenant", default=DEFAULT_TENANT)


def get_current_tenant() -> str:
    """Tenant id of the request being served."""
    return _current_tenant.get()


def tenant_from_host(host: str) -> str | None:
    hostname = host.split(":", 1)[0]
    labels = hostname.split(".")
    if len(labels) > 2 and labels[0] != "www":
        return labels[0]
    return None


class TenantMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        tenant_id = request.headers.get(TENANT_HEADER) or tenant_from_host(
            request.headers.get("host", "")
        )
        token = _current_tenant.set(tenant_id or DEFAULT_TENANT)
        try:
            return await call_next(request)
        finally:
            _current_tenant.reset(token)
