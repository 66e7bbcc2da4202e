from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from core.errors import NetworkUnreachable, ServerError, SubmissionTimeout


class SubmissionClient:
    """Thin JSON client for the results server. Transport failures surface as typed SubmissionErrors."""

    def __init__(self, base_url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.http.request(method, url, json=payload, timeout=self.timeout)
        except requests.Timeout as exc:
            raise SubmissionTimeout(f"{method} {url} timed out after {self.timeout}s") from exc
        except requests.ConnectionError as exc:
            raise NetworkUnreachable(f"{method} {url} unreachable: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            raise ServerError(
                f"{method} {url} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError:
            return {}

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")

    def save(self, rows_text: str) -> Dict[str, Any]:
        return self._request("POST", "/save", {"data": rows_text})

    def save_attention_checks(self, participant_id: str, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request("POST", "/save-attention", {"participantId": participant_id, "data": rows})

    def save_bonus(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/save-bonus", payload)
