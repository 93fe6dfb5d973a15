"""Stripe v1 adapter (payments, customers, subscriptions, refunds).

Stripe takes application/x-www-form-urlencoded bodies with bracketed keys for
nested objects; amounts are passed to the actions in major units and sent as
integer cents.
"""
from __future__ import annotations
from typing import Any

from hub.integrations.adapter_base import (
    AuthType,
    ConfigField,
    ConfigSchema,
    ConnectionTestResult,
    IntegrationAdapter,
    IntegrationType,
    require_params,
)
from hub.integrations.errors import AuthenticationError, IntegrationError


def flatten_form(data: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """Encode nested dicts/lists the way Stripe expects: metadata[k], items[0][price]."""
    out: dict[str, str] = {}
    for key, value in data.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            out.update(flatten_form(value, name))
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                if isinstance(item, dict):
                    out.update(flatten_form(item, f"{name}[{i}]"))
                else:
                    out[f"{name}[{i}]"] = _scalar(item)
        else:
            out[name] = _scalar(value)
    return out


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_cents(amount: Any) -> int:
    return int(round(float(amount) * 100))


class StripeAdapter(IntegrationAdapter):
    provider = "stripe"
    integration_type = IntegrationType.PAYMENT
    auth_type = AuthType.API_KEY
    base_url = "https://api.stripe.com/v1"
    actions = {
        "create_payment": "create_payment",
        "create_customer": "create_customer",
        "create_subscription": "create_subscription",
        "get_payment": "get_payment",
        "refund_payment": "refund_payment",
    }

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(
            type=AuthType.API_KEY,
            auth_url="https://dashboard.stripe.com/apikeys",
            fields=[
                ConfigField(
                    key="secret_key",
                    label="Secret Key",
                    type="password",
                    required=True,
                    description="Your Stripe secret key (sk_test_... or sk_live_...)",
                    placeholder="sk_test_...",
                ),
                ConfigField(
                    key="publishable_key",
                    label="Publishable Key",
                    type="password",
                    description="Your Stripe publishable key (pk_test_... or pk_live_...)",
                    placeholder="pk_test_...",
                ),
            ],
        )

    async def _auth_headers(self) -> dict[str, str]:
        key = self.credentials.get("secret_key")
        return {"Authorization": f"Bearer {key}"} if key else {}

    async def _post_form(self, path: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", path, data=flatten_form(data))

    async def authenticate(self, credentials: dict[str, Any]) -> None:
        key = credentials.get("secret_key")
        if not key:
            raise AuthenticationError("Stripe secret key is required", provider=self.provider)
        try:
            await self._request("GET", "/account", headers={"Authorization": f"Bearer {key}"})
        except IntegrationError as exc:
            raise AuthenticationError(
                "Failed to authenticate with Stripe. Check your secret key.", provider=self.provider
            ) from exc

    async def test_connection(self) -> ConnectionTestResult:
        if not self.credentials.get("secret_key"):
            return ConnectionTestResult.failed("Stripe secret key is not configured")
        try:
            account = await self._request("GET", "/account")
        except IntegrationError as exc:
            return ConnectionTestResult.failed(str(exc))
        return ConnectionTestResult.ok(f"Connected to Stripe account {(account or {}).get('id')}")

    # --- Actions ---

    async def create_payment(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "create_payment", params, "amount")
        return await self._post_form(
            "/payment_intents",
            {
                "amount": to_cents(params["amount"]),
                "currency": params.get("currency") or "usd",
                "customer": params.get("customer_id"),
                "metadata": params.get("metadata") or {},
                "automatic_payment_methods": {"enabled": True},
            },
        )

    async def create_customer(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "create_customer", params, "email")
        return await self._post_form(
            "/customers",
            {
                "email": params["email"],
                "name": params.get("name"),
                "metadata": params.get("metadata") or {},
            },
        )

    async def create_subscription(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "create_subscription", params, "customer_id", "price_id")
        return await self._post_form(
            "/subscriptions",
            {
                "customer": params["customer_id"],
                "items": [{"price": params["price_id"]}],
                "metadata": params.get("metadata") or {},
            },
        )

    async def get_payment(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "get_payment", params, "payment_id")
        return await self._request("GET", f"/payment_intents/{params['payment_id']}")

    async def refund_payment(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "refund_payment", params, "payment_id")
        data: dict[str, Any] = {"payment_intent": params["payment_id"]}
        if params.get("amount"):
            data["amount"] = to_cents(params["amount"])
        return await self._post_form("/refunds", data)
