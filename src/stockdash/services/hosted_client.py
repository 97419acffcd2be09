"""Thin client for the hosted PostgREST/GoTrue-style backend."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

import requests

from stockdash.domain.errors import HostedBackendError

log = logging.getLogger("stockdash.hosted")


class HostedClient:
    def __init__(self, url: str, api_key: str, timeout: float = 15.0, session: Optional[requests.Session] = None):
        if not url or not api_key:
            raise HostedBackendError("Hosted backend URL and API key are required.")
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.access_token: Optional[str] = None

    def _headers(self, prefer: Optional[str] = None) -> dict:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(self, method: str, path: str, *, params=None, json=None, prefer: Optional[str] = None):
        try:
            r = self.session.request(
                method,
                f"{self.url}{path}",
                params=params,
                json=json,
                headers=self._headers(prefer),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            log.warning("hosted_request_failed method=%s path=%s error=%s", method, path, exc)
            raise HostedBackendError(f"Hosted backend unreachable: {exc}") from exc
        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = None
            detail = (body.get("message") if isinstance(body, dict) else None) or r.text
            log.warning("hosted_http_error method=%s path=%s status=%s", method, path, r.status_code)
            raise HostedBackendError(f"{method} {path} failed: {detail}", status_code=r.status_code)
        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError as exc:
            raise HostedBackendError(f"{method} {path} returned invalid JSON.", status_code=r.status_code) from exc

    @staticmethod
    def _filters(filters: dict) -> dict:
        return {key: f"eq.{value}" for key, value in filters.items()}

    def sign_in(self, email: str, password: str) -> dict:
        data = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        token = (data or {}).get("access_token")
        if not token:
            raise HostedBackendError("Sign-in response did not include an access token.")
        self.access_token = token
        log.info("hosted_sign_in email=%s", email)
        return data

    def sign_out(self) -> None:
        self.access_token = None

    def select(self, table: str, order: Optional[str] = None, **filters) -> list[dict]:
        params = {"select": "*", **self._filters(filters)}
        if order:
            params["order"] = order
        return list(self._request("GET", f"/rest/v1/{table}", params=params) or [])

    def insert(self, table: str, rows: dict | Iterable[dict], upsert: bool = False) -> list[dict]:
        payload = rows if isinstance(rows, dict) else list(rows)
        prefer = "return=representation"
        if upsert:
            prefer = "resolution=merge-duplicates," + prefer
        return list(self._request("POST", f"/rest/v1/{table}", json=payload, prefer=prefer) or [])

    def update(self, table: str, changes: dict, **filters) -> list[dict]:
        if not filters:
            raise HostedBackendError("Refusing to update without a filter.")
        return list(
            self._request("PATCH", f"/rest/v1/{table}", params=self._filters(filters), json=changes, prefer="return=representation")
            or []
        )

    def delete(self, table: str, **filters) -> None:
        if not filters:
            raise HostedBackendError("Refusing to delete without a filter.")
        self._request("DELETE", f"/rest/v1/{table}", params=self._filters(filters))
