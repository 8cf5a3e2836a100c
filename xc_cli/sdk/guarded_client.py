"""
Budget-checked, cost-logged X API client.

Every API call goes through GuardedClient.call, which consults the budget
before dispatch and appends a usage record once the call is admitted.
Records reflect admitted attempts, not confirmed successes: a call that
fails after admission is still logged.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from xc_cli.core.budget import BudgetEnforcer
from xc_cli.core.pricing import CostTable
from xc_cli.core.spend import Clock
from xc_cli.storage.ledger import UsageLedger
from xc_cli.storage.models import UsageRecord
from .x_api import XApi

logger = logging.getLogger(__name__)

TWEET_FIELDS = ["created_at", "public_metrics", "author_id"]
EXPANSIONS = ["author_id"]
USER_FIELDS = ["name", "username"]


@dataclass
class AccountingContext:
    """Ledger and budget handles threaded through every call."""
    ledger: UsageLedger
    enforcer: BudgetEnforcer
    cost_table: CostTable
    clock: Clock


class GuardedClient:
    """X API client wrapper that enforces the budget and records usage."""

    def __init__(self, api: XApi, context: AccountingContext):
        self.api = api
        self.context = context
        self.posts = PostsResource(self)
        self.users = UsersResource(self)
        self.media = MediaResource(self)
        self.usage = UsageResource(self)

    def call(self, namespace: str, operation: str, **request: Any) -> Dict[str, Any]:
        """Perform one operation with budget enforcement and usage logging.

        Args:
            namespace: Resource group such as "posts"
            operation: Operation name such as "create"
            **request: Keyword arguments for XApi.request

        Returns:
            Decoded API response

        Raises:
            BudgetExceeded: If the budget blocks the call (nothing is dispatched)
            UserCancelled: If the operator declines the call (nothing is dispatched)
            XApiError: If the admitted call fails (the attempt is still logged)
        """
        operation_id = f"{namespace}.{operation}"
        self.context.enforcer.check(operation_id)
        try:
            return self.api.request(operation_id, **request)
        finally:
            self._record(operation_id)

    def _record(self, operation_id: str) -> None:
        table = self.context.cost_table
        record = UsageRecord(
            timestamp=self.context.clock(),
            operation_id=operation_id,
            http_method=table.method_of(operation_id),
            estimated_cost=table.estimate(operation_id),
        )
        self.context.ledger.append(record)
        logger.debug("Logged %s ($%s)", operation_id, record.estimated_cost)


def _fields(values: Sequence[str]) -> str:
    return ",".join(values)


def _field_params(max_results: Optional[int]) -> Dict[str, Any]:
    params = {
        "tweet.fields": _fields(TWEET_FIELDS),
        "expansions": _fields(EXPANSIONS),
        "user.fields": _fields(USER_FIELDS),
    }
    if max_results is not None:
        params["max_results"] = max_results
    return params


class _Resource:
    namespace = ""

    def __init__(self, client: GuardedClient):
        self._client = client

    def _call(self, operation: str, **request: Any) -> Dict[str, Any]:
        return self._client.call(self.namespace, operation, **request)


class PostsResource(_Resource):
    namespace = "posts"

    def search_recent(self, query: str, max_results: int = 10) -> Dict[str, Any]:
        return self._call("searchRecent", params={"query": query, **_field_params(max_results)})

    def search_all(self, query: str, max_results: int = 10) -> Dict[str, Any]:
        return self._call("searchAll", params={"query": query, **_field_params(max_results)})

    def create(
        self,
        text: str,
        reply_to: Optional[str] = None,
        quote_id: Optional[str] = None,
        media_ids: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"text": text}
        if reply_to:
            body["reply"] = {"in_reply_to_tweet_id": reply_to}
        if quote_id:
            body["quote_tweet_id"] = quote_id
        if media_ids:
            body["media"] = {"media_ids": list(media_ids)}
        return self._call("create", json=body)


class UsersResource(_Resource):
    namespace = "users"

    def get_me(self, user_fields: Sequence[str] = USER_FIELDS) -> Dict[str, Any]:
        return self._call("getMe", params={"user.fields": _fields(user_fields)})

    def get_by_username(self, username: str, user_fields: Sequence[str] = USER_FIELDS) -> Dict[str, Any]:
        return self._call(
            "getByUsername",
            path_params={"username": username},
            params={"user.fields": _fields(user_fields)},
        )

    def get_posts(self, user_id: str, max_results: int = 20) -> Dict[str, Any]:
        return self._call("getPosts", path_params={"user_id": user_id}, params=_field_params(max_results))

    def get_timeline(self, user_id: str, max_results: int = 20) -> Dict[str, Any]:
        return self._call("getTimeline", path_params={"user_id": user_id}, params=_field_params(max_results))

    def like_post(self, user_id: str, tweet_id: str) -> Dict[str, Any]:
        return self._call("likePost", path_params={"user_id": user_id}, json={"tweet_id": tweet_id})

    def unlike_post(self, user_id: str, tweet_id: str) -> Dict[str, Any]:
        return self._call("unlikePost", path_params={"user_id": user_id, "tweet_id": tweet_id})


class MediaResource(_Resource):
    namespace = "media"

    def upload(self, media_b64: str, media_type: str, media_category: str) -> Dict[str, Any]:
        return self._call(
            "upload",
            json={"media": media_b64, "media_type": media_type, "media_category": media_category},
        )

    def initialize_upload(self, media_type: str, media_category: str, total_bytes: int) -> Dict[str, Any]:
        return self._call(
            "initializeUpload",
            json={
                "media_type": media_type,
                "media_category": media_category,
                "total_bytes": total_bytes,
            },
        )

    def append_upload(self, media_id: str, segment_index: int, chunk: bytes, filename: str) -> Dict[str, Any]:
        return self._call(
            "appendUpload",
            path_params={"media_id": media_id},
            data={"segment_index": str(segment_index)},
            files={"media": (filename, chunk)},
        )

    def finalize_upload(self, media_id: str) -> Dict[str, Any]:
        return self._call("finalizeUpload", path_params={"media_id": media_id})

    def get_upload_status(self, media_id: str) -> Dict[str, Any]:
        return self._call("getUploadStatus", params={"command": "STATUS", "media_id": media_id})


class UsageResource(_Resource):
    namespace = "usage"

    def get(self) -> Dict[str, Any]:
        return self._call("get")
