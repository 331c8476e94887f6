"""
PromptPix API client
Async httpx wrapper over the user and credit endpoints
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.credits.exceptions import InsufficientCreditsError, ThrottledError

logger = logging.getLogger(__name__)


class APIRequestError(Exception):
    """Non-2xx response that has no more specific mapping"""

    def __init__(self, status_code: int, message: str, details: Optional[dict] = None):
        self.status_code = status_code
        self.message = message
        self.details = details or {}
        super().__init__(f"{status_code}: {message}")


class PromptPixClient:
    """
    Usage:
        async with PromptPixClient("http://localhost:5001") as client:
            await client.login("user@example.com", "password123")
            status = await client.credit_status()
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "PromptPixClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = await self._client.request(method, path, headers=self._headers(), **kwargs)

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_success:
            return body

        message = body.get("message") or body.get("detail") or response.reason_phrase
        details = body.get("details") or {}

        if response.status_code == 429:
            retry_after_ms = details.get("retry_after_ms")
            if retry_after_ms is None:
                retry_after_ms = int(float(response.headers.get("Retry-After", "1")) * 1000)
            raise ThrottledError(retry_after_ms)

        if response.status_code == 400 and "required_credits" in details:
            raise InsufficientCreditsError(
                details["required_credits"],
                details.get("available_credits", 0),
                details.get("user_id"),
            )

        logger.warning(f"{method} {path} failed with {response.status_code}: {message}")
        raise APIRequestError(response.status_code, str(message), details)

    async def signup(self, email: str, password: str, display_name: str) -> dict:
        body = await self._request(
            "POST", "/api/auth/signup",
            json={"email": email, "password": password, "displayName": display_name},
        )
        self.token = body["token"]
        return body["data"]["user"]

    async def login(self, email: str, password: str) -> dict:
        body = await self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = body["token"]
        return body["data"]["user"]

    async def get_me(self) -> dict:
        return (await self._request("GET", "/api/users/me"))["data"]["user"]

    async def update_me(self, fields: Dict[str, Any]) -> dict:
        return (await self._request("PATCH", "/api/users/updateMe", json=fields))["data"]["user"]

    async def add_credits(self, amount: int, description: Optional[str] = None) -> dict:
        payload = {"amount": amount}
        if description is not None:
            payload["description"] = description
        return (await self._request("POST", "/api/users/addCredits", json=payload))["data"]["user"]

    async def use_credits(self, amount: int, operation: Optional[str] = None) -> dict:
        payload = {"amount": amount}
        if operation is not None:
            payload["operation"] = operation
        return (await self._request("POST", "/api/users/useCredits", json=payload))["data"]["user"]

    async def credit_history(self, limit: int = 50) -> List[dict]:
        body = await self._request("GET", "/api/users/creditHistory", params={"limit": limit})
        return body["data"]["history"]

    async def dashboard(self) -> dict:
        return (await self._request("GET", "/api/users/dashboard"))["data"]

    async def credit_status(self) -> dict:
        return (await self._request("GET", "/api/users/creditStatus"))["data"]
