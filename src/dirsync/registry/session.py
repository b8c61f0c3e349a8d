"""Shared ``requests`` session handling for the HTTP registry clients."""

from __future__ import annotations

import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)

TOKEN_HEADER = "x-molgenis-token"


class DirectorySession:
    """Thin wrapper over :class:`requests.Session` that never raises on remote failure.

    ``request_json`` returns the decoded body, ``{}`` for an empty 2xx body,
    or ``None`` when the call failed for any reason (network error, timeout,
    non-2xx status or undecodable JSON).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("Accept", "application/json")

    def set_token(self, token: str) -> None:
        self.session.headers[TOKEN_HEADER] = token

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request_json(self, method: str, path: str, **kwargs: Any) -> Any | None:
        url = self.url(path)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            return None

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("%s %s returned invalid JSON: %s", method, url, exc)
            return None

    def close(self) -> None:
        self.session.close()
