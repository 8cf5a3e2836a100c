"""
Thin HTTP collaborator for the X API v2.

Maps operation identifiers to routes and returns decoded JSON bodies.
Nothing here knows about cost or budgets; callers go through GuardedClient.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from xc_cli.core.errors import XApiError

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.x.com/2"
DEFAULT_TIMEOUT = 30


@dataclass(frozen=True)
class Route:
    """HTTP method and path template of one operation."""
    method: str
    path: str


ROUTES: Dict[str, Route] = {
    "posts.searchRecent": Route("GET", "/tweets/search/recent"),
    "posts.searchAll": Route("GET", "/tweets/search/all"),
    "posts.create": Route("POST", "/tweets"),
    "users.getMe": Route("GET", "/users/me"),
    "users.getByUsername": Route("GET", "/users/by/username/{username}"),
    "users.getPosts": Route("GET", "/users/{user_id}/tweets"),
    "users.getTimeline": Route("GET", "/users/{user_id}/timelines/reverse_chronological"),
    "users.likePost": Route("POST", "/users/{user_id}/likes"),
    "users.unlikePost": Route("DELETE", "/users/{user_id}/likes/{tweet_id}"),
    "usage.get": Route("GET", "/usage/tweets"),
    "media.upload": Route("POST", "/media/upload"),
    "media.initializeUpload": Route("POST", "/media/upload/initialize"),
    "media.appendUpload": Route("POST", "/media/upload/{media_id}/append"),
    "media.finalizeUpload": Route("POST", "/media/upload/{media_id}/finalize"),
    "media.getUploadStatus": Route("GET", "/media/upload"),
}


class XApi:
    """Authenticated requests session against the X API."""

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if not token:
            raise ValueError("token is required and cannot be empty")
        self.base_url = (base_url or os.getenv("XC_API_BASE_URL") or API_BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self._headers = {"Authorization": f"Bearer {token}"}

    def request(
        self,
        operation_id: str,
        *,
        path_params: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Perform one operation.

        Args:
            operation_id: Operation identifier such as "users.getMe"
            path_params: Values for the route's path placeholders
            params: Query string parameters
            json: JSON request body
            data: Form fields (multipart when combined with files)
            files: Multipart file parts

        Returns:
            Decoded response body ({} for empty bodies)

        Raises:
            ValueError: If the operation is unknown
            XApiError: On transport failure or non-2xx status
        """
        route = ROUTES.get(operation_id)
        if route is None:
            raise ValueError(f"Unknown operation: {operation_id}")

        url = self.base_url + route.path.format(**(path_params or {}))
        logger.debug("%s %s (%s)", route.method, url, operation_id)
        try:
            resp = self.session.request(
                route.method,
                url,
                headers=self._headers,
                params=params,
                json=json,
                data=data,
                files=files,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise XApiError(f"{operation_id} request failed: {e}") from e

        if not resp.ok:
            raise XApiError(
                f"{operation_id} failed: HTTP {resp.status_code} {_error_detail(resp)}".rstrip(),
                status=resp.status_code,
            )

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise XApiError(f"{operation_id} returned invalid JSON", status=resp.status_code) from e


def _error_detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        if body.get("detail"):
            return str(body["detail"])
        errors = body.get("errors") or []
        messages = [e.get("message") or e.get("detail") for e in errors if isinstance(e, dict)]
        if any(messages):
            return "; ".join(m for m in messages if m)
        if body.get("title"):
            return str(body["title"])
    return str(body)[:200]
