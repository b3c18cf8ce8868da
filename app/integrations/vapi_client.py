"""
Synchronous client for the Vapi REST API.

Retry policy: up to `settings.vapi_max_retries` attempts. 429 waits for the
Retry-After header (seconds) when present, otherwise `retry_delay * attempt`.
5xx responses and transport errors are retried with the same linear backoff.
Any other 4xx raises VapiError immediately.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterator, List, Optional

import httpx

from app.config.settings import settings
from app.core.errors import VapiError

logger = logging.getLogger(__name__)


class VapiClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key if api_key is not None else settings.vapi_api_key
        if not self.api_key:
            raise VapiError("Vapi API key is not configured")
        self.max_retries = max(1, max_retries if max_retries is not None else settings.vapi_max_retries)
        self.retry_delay = retry_delay if retry_delay is not None else settings.vapi_retry_delay_sec
        self._sleep = sleep
        self._http = httpx.Client(
            base_url=(base_url or settings.vapi_base_url).rstrip("/"),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout if timeout is not None else settings.vapi_timeout_sec,
            transport=transport,
        )

    def close(self):
        self._http.close()

    def _backoff(self, attempt: int, retry_after: Optional[str] = None) -> float:
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return self.retry_delay * attempt

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        last_error: Optional[VapiError] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self._http.request(method, path, json=json, params=params)
            except httpx.HTTPError as e:
                last_error = VapiError(f"Vapi request failed: {e}")
                logger.warning(f"Vapi {method} {path} transport error (attempt {attempt}/{self.max_retries}): {e}")
                if attempt < self.max_retries:
                    self._sleep(self._backoff(attempt))
                continue

            if response.status_code == 429:
                last_error = VapiError("Vapi rate limit exceeded", vapi_status=429, body=_safe_json(response))
                logger.warning(f"Vapi rate limited on {method} {path} (attempt {attempt}/{self.max_retries})")
                if attempt < self.max_retries:
                    self._sleep(self._backoff(attempt, response.headers.get("retry-after")))
                continue

            if response.status_code >= 500:
                last_error = VapiError(
                    f"Vapi server error {response.status_code}",
                    vapi_status=response.status_code,
                    body=_safe_json(response),
                )
                logger.warning(f"Vapi {method} {path} returned {response.status_code} (attempt {attempt}/{self.max_retries})")
                if attempt < self.max_retries:
                    self._sleep(self._backoff(attempt))
                continue

            if response.status_code >= 400:
                body = _safe_json(response)
                message = body.get("message") if isinstance(body, dict) else None
                if isinstance(message, list):
                    message = "; ".join(str(m) for m in message)
                raise VapiError(
                    f"Vapi API error: {message or response.reason_phrase}",
                    vapi_status=response.status_code,
                    body=body,
                )

            if method == "DELETE":
                return None
            if not response.content:
                return {}
            return response.json()

        raise last_error or VapiError("Vapi request failed")

    # Assistants

    def create_assistant(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/assistant", json=payload)

    def get_assistant(self, assistant_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/assistant/{assistant_id}")

    def list_assistants(self, limit: int = 100) -> List[Dict[str, Any]]:
        return self._request("GET", "/assistant", params={"limit": limit}) or []

    def update_assistant(self, assistant_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", f"/assistant/{assistant_id}", json=payload)

    def delete_assistant(self, assistant_id: str) -> None:
        self._request("DELETE", f"/assistant/{assistant_id}")

    # Phone numbers

    def create_phone_number(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/phone-number", json=payload)

    def get_phone_number(self, phone_number_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/phone-number/{phone_number_id}")

    def update_phone_number(self, phone_number_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", f"/phone-number/{phone_number_id}", json=payload)

    def delete_phone_number(self, phone_number_id: str) -> None:
        self._request("DELETE", f"/phone-number/{phone_number_id}")

    # Calls

    def list_calls(
        self,
        assistant_id: Optional[str] = None,
        created_at_gt: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"limit": limit}
        if assistant_id:
            params["assistantId"] = assistant_id
        if created_at_gt:
            params["createdAtGt"] = created_at_gt
        return self._request("GET", "/call", params=params) or []

    def get_call(self, call_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/call/{call_id}")


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


def get_vapi_client() -> Iterator[Optional[VapiClient]]:
    """FastAPI dependency; yields None when no API key is configured.

    Services raise VAPI_ERROR only on the paths that actually call Vapi, so
    read-only routes keep working without a key.
    """
    if not settings.vapi_configured:
        yield None
        return
    client = VapiClient()
    try:
        yield client
    finally:
        client.close()
