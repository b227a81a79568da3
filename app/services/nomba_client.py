import logging
import threading
import time
from typing import Any, Dict, Optional
from uuid import uuid4

import requests

from app.config import settings

logger = logging.getLogger(__name__)


class NombaError(Exception):
    """Raised when the gateway cannot issue an access token."""


def _error_message(data: Any, default: str) -> str:
    if isinstance(data, dict):
        return data.get("description") or data.get("message") or data.get("error") or default
    return default


def format_amount(amount: float) -> str:
    """Nomba expects naira as a decimal string, e.g. 4000 -> "4000.00"."""
    return f"{float(amount):.2f}"


def generate_order_reference() -> str:
    timestamp = int(time.time() * 1000)
    return f"BOOK_{timestamp}_{uuid4().hex[:12]}".upper()


class NombaClient:
    """
    Thin wrapper around the Nomba checkout API.

    create_checkout_order and verify_transaction never raise: every
    failure comes back as {"success": False, "error": "..."}.
    """

    def __init__(self, http: Optional[requests.Session] = None, clock=time.monotonic):
        self.http = http or requests.Session()
        self.clock = clock
        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self._token_lock = threading.Lock()

    @property
    def base_url(self) -> str:
        return settings.nomba_base_url.rstrip("/")

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "AccountId": settings.nomba_account_id or "",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _cached_token(self) -> Optional[str]:
        if self._access_token and self.clock() < self._token_expires_at:
            return self._access_token
        return None

    def invalidate_token(self):
        with self._token_lock:
            self._access_token = None
            self._token_expires_at = 0.0

    def _check_token_rejected(self, response):
        # a revoked token is dropped before its ttl runs out
        if response.status_code == 401:
            logger.warning("Nomba rejected the cached access token, dropping it")
            self.invalidate_token()

    def get_access_token(self) -> str:
        token = self._cached_token()
        if token:
            return token

        # callers that miss the cache together wait for a single refill
        with self._token_lock:
            token = self._cached_token()
            if token:
                logger.debug("Nomba token refreshed by a concurrent caller")
                return token

            token = self._issue_token()
            self._access_token = token
            self._token_expires_at = self.clock() + settings.nomba_token_ttl_seconds
            return token

    def _issue_token(self) -> str:
        if not settings.nomba_client_id or not settings.nomba_private_key:
            raise NombaError("Nomba credentials not configured (NOMBA_CLIENT_ID / NOMBA_PRIVATE_KEY)")
        if not settings.nomba_account_id:
            raise NombaError("NOMBA_ACCOUNT_ID not configured")

        logger.info("Requesting Nomba access token")
        try:
            response = self.http.post(
                f"{self.base_url}/auth/token/issue",
                json={
                    "grant_type": "client_credentials",
                    "client_id": settings.nomba_client_id,
                    "client_secret": settings.nomba_private_key,
                },
                headers=self._headers(),
                timeout=settings.nomba_timeout_seconds,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise NombaError(f"Failed to authenticate with Nomba: {e}") from e

        if response.status_code >= 400:
            raise NombaError(
                f"Failed to authenticate with Nomba: {_error_message(data, 'token request rejected')}"
            )

        # token is normally under data.data, some API versions return it at the root
        inner = data.get("data") if isinstance(data, dict) else None
        token = (inner or {}).get("access_token") if isinstance(inner, dict) else None
        token = token or (data.get("access_token") if isinstance(data, dict) else None)
        if not token:
            raise NombaError("No access_token in Nomba token response")

        logger.info("Nomba access token obtained")
        return token

    def create_checkout_order(
        self,
        order_reference: str,
        amount: float,
        customer_email: str,
        callback_url: str,
        return_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body = {
            "order": {
                "orderReference": order_reference,
                "customerEmail": customer_email,
                "amount": format_amount(amount),
                "currency": "NGN",
                "callbackUrl": callback_url,
                "returnUrl": return_url or callback_url,
                "accountId": settings.nomba_account_id,
            }
        }
        if metadata:
            body["order"]["metadata"] = metadata

        try:
            token = self.get_access_token()
            logger.info(f"Creating Nomba checkout order {order_reference} for {body['order']['amount']} NGN")
            response = self.http.post(
                f"{self.base_url}/checkout/order",
                json=body,
                headers=self._headers(token),
                timeout=settings.nomba_timeout_seconds,
            )
            data = response.json()
        except (NombaError, requests.RequestException, ValueError) as e:
            logger.error(f"Nomba checkout error for {order_reference}: {e}")
            return {"success": False, "error": str(e)}

        if response.status_code >= 400:
            self._check_token_rejected(response)
            error = _error_message(data, "Failed to create checkout order")
            logger.error(f"Nomba checkout failed ({response.status_code}): {error}")
            return {"success": False, "error": error, "response_data": data}

        response_data = data.get("data") if isinstance(data, dict) and isinstance(data.get("data"), dict) else data
        return {
            "success": True,
            "data": response_data,
            "full_response": data,
        }

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        """Look up a checkout by order reference. Interpreting the payload is the caller's job."""
        try:
            token = self.get_access_token()
            logger.info(f"Verifying Nomba transaction {reference}")
            response = self.http.get(
                f"{self.base_url}/checkout/transaction",
                params={
                    "idType": "ORDER_REFERENCE",
                    "id": reference,
                    "accountId": settings.nomba_account_id,
                },
                headers=self._headers(token),
                timeout=settings.nomba_timeout_seconds,
            )
            data = response.json()
        except (NombaError, requests.RequestException, ValueError) as e:
            logger.error(f"Nomba verification error for {reference}: {e}")
            return {"success": False, "error": str(e)}

        logger.info(f"Nomba verification response status: {response.status_code}")

        if response.status_code >= 400:
            self._check_token_rejected(response)
            error = _error_message(data, "Failed to verify transaction")
            logger.warning(f"Nomba verification failed for {reference}: {error}")
            return {"success": False, "error": error, "full_response": data}

        return {"success": True, "data": data}


nomba_client = NombaClient()


def get_payment_gateway() -> NombaClient:
    return nomba_client
