"""
Midtrans Gateway
Snap token creation and authoritative transaction status lookups
"""

import logging

import httpx

from ..config import MIDTRANS_IS_PRODUCTION, MIDTRANS_SERVER_KEY
from ..errors import GatewayUnavailable
from .interfaces import CustomerDetails, GatewayTransaction

logger = logging.getLogger(__name__)

if MIDTRANS_IS_PRODUCTION:
    MIDTRANS_SNAP_URL = "https://app.midtrans.com/snap/v1"
    MIDTRANS_API_URL = "https://api.midtrans.com/v2"
else:
    MIDTRANS_SNAP_URL = "https://app.sandbox.midtrans.com/snap/v1"
    MIDTRANS_API_URL = "https://api.sandbox.midtrans.com/v2"


class MidtransGateway:
    def __init__(
        self,
        server_key: str = MIDTRANS_SERVER_KEY,
        snap_url: str = MIDTRANS_SNAP_URL,
        api_url: str = MIDTRANS_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.server_key = server_key
        self.snap_url = snap_url
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        # Midtrans uses HTTP basic auth with the server key as username
        return httpx.AsyncClient(
            timeout=self.timeout,
            auth=(self.server_key, ""),
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            transport=self.transport,
        )

    def _ensure_configured(self) -> None:
        if not self.server_key:
            raise GatewayUnavailable("Payment gateway is not configured")

    async def create_transaction_token(self, transaction_id: str, amount: int, customer: CustomerDetails) -> str:
        self._ensure_configured()
        body = {
            "transaction_details": {"order_id": transaction_id, "gross_amount": amount},
            "customer_details": {
                "first_name": customer.first_name,
                "last_name": customer.last_name,
                "email": customer.email,
                "phone": customer.phone,
            },
        }
        try:
            async with self._client() as http_client:
                response = await http_client.post(f"{self.snap_url}/transactions", json=body)
        except httpx.HTTPError as e:
            logger.error(f"❌ Midtrans Snap request failed for {transaction_id}: {e}")
            raise GatewayUnavailable("Failed to reach payment gateway") from e

        if response.status_code not in (200, 201):
            logger.error(f"❌ Midtrans Snap error for {transaction_id}: {response.status_code} {response.text}")
            raise GatewayUnavailable("Failed to create payment transaction")

        token = response.json().get("token")
        if not token:
            raise GatewayUnavailable("Payment gateway returned no token")
        logger.info(f"✅ Snap token created for {transaction_id} (amount {amount})")
        return token

    async def verify_transaction(self, transaction_id: str) -> GatewayTransaction:
        self._ensure_configured()
        try:
            async with self._client() as http_client:
                response = await http_client.get(f"{self.api_url}/{transaction_id}/status")
        except httpx.HTTPError as e:
            logger.error(f"❌ Midtrans status lookup failed for {transaction_id}: {e}")
            raise GatewayUnavailable("Failed to reach payment gateway") from e

        if response.status_code >= 500:
            raise GatewayUnavailable(f"Payment gateway returned {response.status_code}")

        data = response.json()
        return GatewayTransaction(
            order_id=str(data.get("order_id", "")),
            gross_amount=str(data.get("gross_amount", "")),
            status_code=str(data.get("status_code", "")),
            transaction_status=str(data.get("transaction_status", "")),
            fraud_status=data.get("fraud_status"),
        )
