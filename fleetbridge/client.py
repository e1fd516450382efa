"""Thin Fleetio REST client shared by every remote step."""

from typing import Any, Dict, List, Optional

import requests

from .config import FleetioConfig
from .errors import ExternalApiError
from .logger import get_logger

logger = get_logger()


def records_of(payload: Any) -> List[Dict[str, Any]]:
    """Return the list of records from a Fleetio list response.

    v1 endpoints answer either with a bare list or with an object
    holding `records` (cursor paging) or `data`.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        return payload.get("records") or payload.get("data") or []
    return []


class FleetioClient:
    """
    Fleetio API client.

    Every call carries the configured per-call timeout. There is no retry:
    a non-success status or transport failure is raised immediately as
    ExternalApiError tagged with the saga step that issued it.
    """

    def __init__(self, config: FleetioConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Token {config.api_token}",
            "Account-Token": config.account_token,
        }

    def v1(self, method: str, path: str, step: str, **kwargs) -> Any:
        return self._request(method, f"{self.config.base_v1}{path}", step, **kwargs)

    def v2(self, method: str, path: str, step: str, **kwargs) -> Any:
        return self._request(method, f"{self.config.base_v2}{path}", step, **kwargs)

    def upload(self, url: str, params: Dict[str, str], data: bytes, step: str,
               content_type: str = "application/pdf") -> Any:
        """POST raw bytes to the signed storage endpoint (no Fleetio auth headers)."""
        return self._send(
            "POST", url, step,
            params=params,
            data=data,
            headers={"Content-Type": content_type},
        )

    def _request(
        self,
        method: str,
        url: str,
        step: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        merged = {**(headers or {}), **self.headers}
        return self._send(method, url, step, params=params, json=json, headers=merged)

    def _send(self, method: str, url: str, step: str, **kwargs) -> Any:
        logger.record_api_call()
        logger.debug("Fleetio request", step=step, method=method, url=url)
        try:
            resp = self.session.request(method, url, timeout=self.config.timeout, **kwargs)
        except requests.exceptions.Timeout:
            logger.warning("Fleetio request timed out", step=step, url=url)
            raise ExternalApiError(step, None, f"Timed out after {self.config.timeout}s: {method} {url}")
        except requests.exceptions.RequestException as e:
            logger.error("Fleetio request error", step=step, url=url, error=str(e))
            raise ExternalApiError(step, None, str(e))

        if not resp.ok:
            body = resp.text or ""
            logger.error("Fleetio request failed", step=step, url=url, status=resp.status_code)
            raise ExternalApiError(
                step,
                resp.status_code,
                body,
                message=f"[{step}] {method} {url} failed: {resp.status_code} {body[:500]}",
            )

        content_type = resp.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return resp.json()
            except ValueError:
                return None
        return resp.text
