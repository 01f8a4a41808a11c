"""HTTP client powered by urllib for the Stellar build service."""

from __future__ import annotations

import json
import time
from collections.abc import Iterator
from http.client import HTTPResponse
from typing import Any, cast
from urllib import error, parse, request

from stellar_client import __version__
from stellar_client.sdk.models import BuildLogs, BuildStartRequest, BuildStatus


class ServerError(RuntimeError):
    """Raised when the service answers with an error status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Server error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class StellarClient:
    """Minimal HTTP client that talks to the build service REST API."""

    def __init__(self, *, base_url: str, timeout: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def close(self) -> None:  # pragma: no cover - kept for API symmetry
        return None

    def start_build(self, request_obj: BuildStartRequest) -> str:
        payload = self._json_request("POST", "/builds", json_body=request_obj.to_payload())
        return str(payload["build_id"])

    def list_builds(self) -> list[str]:
        payload = self._json_request("GET", "/builds")
        return [str(item) for item in payload or []]

    def get_status(self, build_id: str) -> BuildStatus:
        payload = self._json_request("GET", f"/builds/{parse.quote(build_id)}")
        return BuildStatus.from_dict(payload)

    def get_logs(self, build_id: str, cursor: int = 0) -> BuildLogs:
        payload = self._json_request(
            "GET",
            f"/builds/{parse.quote(build_id)}/logs",
            params={"cursor": str(cursor)},
        )
        return BuildLogs.from_dict(payload)

    def cancel_build(self, build_id: str) -> bool:
        try:
            self._json_request("POST", f"/builds/{parse.quote(build_id)}/cancel")
        except ServerError as exc:
            if exc.status_code == 409:
                return False
            raise
        return True

    def forget_build(self, build_id: str) -> None:
        self._json_request("DELETE", f"/builds/{parse.quote(build_id)}")

    def follow_logs(
        self,
        build_id: str,
        *,
        cursor: int = 0,
        poll_interval: float = 0.5,
    ) -> Iterator[str]:
        """Yield log lines until the build reaches a terminal status.

        The logs endpoint never reaps the process, so the status endpoint is
        polled between reads to move the build out of ``running``.
        """

        while True:
            page = self.get_logs(build_id, cursor)
            yield from page.lines
            cursor = page.next_cursor
            if page.finished:
                return
            if not self.get_status(build_id).is_terminal:
                time.sleep(poll_interval)

    def _json_request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        with self._open(method, path, params=params, json_body=json_body) as resp:
            data = resp.read()
            if not data:
                return {}
            return json.loads(data.decode())

    def _open(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> HTTPResponse:
        url = f"{self._base_url}{path}"
        if params:
            url = f"{url}?{parse.urlencode(params)}"
        headers = {
            "User-Agent": f"stellar-client/{__version__}",
            "Accept": "application/json",
        }
        data = None
        if json_body is not None:
            data = json.dumps(json_body).encode()
            headers["Content-Type"] = "application/json"
        req = request.Request(url, data=data, headers=headers, method=method)
        try:
            return cast(HTTPResponse, request.urlopen(req, timeout=self._timeout))
        except error.HTTPError as exc:
            raise ServerError(exc.code, _error_detail(exc)) from exc


def _error_detail(exc: error.HTTPError) -> str:
    body = exc.read().decode(errors="replace")
    try:
        detail = json.loads(body).get("detail")
    except (ValueError, AttributeError):
        detail = None
    if isinstance(detail, str) and detail:
        return detail
    return body or str(exc.reason)
