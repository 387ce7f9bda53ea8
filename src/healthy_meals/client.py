"""
TokenClient SDK: sync client for the Healthy Meals token endpoints.

Used by front-ends and scripts to read a user's balance, check whether a
paid action is affordable, and consume tokens.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx


@dataclass
class ClientBalance:
    """Balance info returned by the SDK."""

    tokens_balance: int = 0
    total_generations_used: int = 0


@dataclass
class ClientValidationResult:
    """Result of validate() call."""

    can_generate: bool
    remaining_tokens: int = 0
    cost_per_generation: int = 0
    code: str = ""
    message: str = ""


@dataclass
class ClientUseResult:
    """Result of use() call."""

    success: bool
    balance: Optional[ClientBalance] = None
    code: str = ""
    message: str = ""


class TokenClient:
    """
    Synchronous HTTP client for the Healthy Meals token API.

    Authenticates with the user's identity-provider access token.
    """

    def __init__(
        self,
        server_url: str = "http://localhost:8080",
        access_token: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 3,
        retry_backoff_base: float = 0.5,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.access_token = access_token
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        headers = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._http = httpx.Client(
            base_url=self.server_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Central HTTP method with retry and structured error handling.

        Retries on timeouts, transport errors, 5xx and 429. Other 4xx
        responses are returned as-is when they carry a JSON error body.

        Returns parsed JSON on success, or structured error dict on failure.
        """
        last_error = None
        for attempt in range(self.max_retries):
            try:
                resp = getattr(self._http, method)(path, **kwargs)
                if resp.status_code >= 500 or resp.status_code == 429:
                    last_error = f"HTTP {resp.status_code}"
                    if attempt < self.max_retries - 1:
                        time.sleep(self.retry_backoff_base * (2 ** attempt))
                        continue
                    return {
                        "error": f"Server error: {resp.status_code}",
                        "code": "SERVER_ERROR",
                    }
                if resp.status_code >= 400:
                    return self._client_error(resp)
                return resp.json()
            except httpx.TimeoutException:
                last_error = "timeout"
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_backoff_base * (2 ** attempt))
                    continue
            except httpx.HTTPError as e:
                last_error = str(e)
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_backoff_base * (2 ** attempt))
                    continue
            except json.JSONDecodeError:
                return {"error": "Invalid JSON response", "code": "JSON_ERROR"}

        return {"error": f"All {self.max_retries} retries exhausted: {last_error}", "code": "CONNECTION_ERROR"}

    @staticmethod
    def _client_error(resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and "error" in data:
            return {"error": data["error"], "code": data.get("code", "CLIENT_ERROR")}
        if resp.status_code == 401:
            return {"error": "Not authenticated", "code": "UNAUTHENTICATED"}
        return {"error": f"Client error: {resp.status_code}", "code": "CLIENT_ERROR"}

    @staticmethod
    def _parse_balance(data: dict) -> ClientBalance:
        return ClientBalance(
            tokens_balance=data.get("tokens_balance", 0),
            total_generations_used=data.get("total_generations_used", 0),
        )

    # ── Balance ──

    def get_balance(self) -> Optional[ClientBalance]:
        """Fetch the balance, creating the ledger record on first contact.

        Returns None when the server could not be reached or refused the call.
        """
        data = self._request("get", "/tokens")
        if "error" in data:
            return None
        return self._parse_balance(data)

    # ── Validation ──

    def validate(self, usage_type: str = "recipe_generation") -> ClientValidationResult:
        """Check whether the balance covers one unit of ``usage_type``."""
        data = self._request(
            "post", "/tokens", json={"action": "validate", "usageType": usage_type},
        )
        if "error" in data:
            return ClientValidationResult(
                can_generate=False, code=data.get("code", "ERROR"),
                message=data.get("error", ""),
            )
        return ClientValidationResult(
            can_generate=data.get("can_generate", False),
            remaining_tokens=data.get("remaining_tokens", 0),
            cost_per_generation=data.get("cost_per_generation", 0),
        )

    # ── Consumption ──

    def use(self, usage_type: str = "recipe_generation") -> ClientUseResult:
        """Consume tokens for one unit of ``usage_type``."""
        data = self._request(
            "post", "/tokens", json={"action": "use", "usageType": usage_type},
        )
        if "error" in data:
            return ClientUseResult(
                success=False, code=data.get("code", "ERROR"),
                message=data.get("error", ""),
            )
        balance = None
        if data.get("balance"):
            balance = self._parse_balance(data["balance"])
        return ClientUseResult(success=data.get("success", False), balance=balance)

    # ── Lifecycle ──

    def close(self) -> None:
        """Close the HTTP client."""
        self._http.close()
