"""
Unit tests for SDK wrapper.

Tests the budget-checked client, the HTTP collaborator and token resolution.
"""

import shutil
import tempfile
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import requests

from xc_cli.config.loader import AccountConfig, AppPaths, AuthCredential, ConfigStore
from xc_cli.core.budget import BudgetEnforcer
from xc_cli.core.errors import AuthError, BudgetExceeded, XApiError
from xc_cli.core.pricing import COST_TABLE
from xc_cli.sdk import AccountingContext, GuardedClient, build_accounting_context, get_client
from xc_cli.sdk.auth import refresh_access_token, resolve_access_token
from xc_cli.sdk.factory import resolve_authenticated_user_id, resolve_user_id
from xc_cli.sdk.x_api import XApi
from xc_cli.storage.budget_store import InMemoryBudgetStore
from xc_cli.storage.ledger import InMemoryUsageLedger
from xc_cli.storage.models import BudgetAction, BudgetPolicy, HttpMethod, UsageRecord

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_client(api, policy=None, records=None):
    ledger = InMemoryUsageLedger(records)
    enforcer = BudgetEnforcer(
        store=InMemoryBudgetStore(policy),
        ledger=ledger,
        clock=lambda: NOW,
        confirm=Mock(return_value=False),
        warn=Mock(),
    )
    context = AccountingContext(ledger=ledger, enforcer=enforcer, cost_table=COST_TABLE, clock=lambda: NOW)
    return GuardedClient(api, context), ledger


def ok_response(body=None, status=200):
    resp = Mock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body
    return resp


class TestGuardedClient:
    """Test budget enforcement and usage logging around calls."""

    def test_admitted_call_is_logged(self):
        """Test one record per admitted call."""
        api = Mock()
        api.request.return_value = {"data": [{"id": "1"}]}
        client, ledger = make_client(api)

        result = client.posts.search_recent("python", max_results=10)

        assert result == {"data": [{"id": "1"}]}
        assert ledger.records == [
            UsageRecord(NOW, "posts.searchRecent", HttpMethod.GET, Decimal("0.01"))
        ]
        args, kwargs = api.request.call_args
        assert args == ("posts.searchRecent",)
        assert kwargs["params"]["query"] == "python"
        assert kwargs["params"]["max_results"] == 10

    def test_blocked_call_is_not_dispatched_or_logged(self):
        """Test a blocked call never reaches the API."""
        api = Mock()
        policy = BudgetPolicy(daily_limit=Decimal("2.00"), action=BudgetAction.BLOCK)
        spent = UsageRecord(NOW, "posts.searchAll", HttpMethod.GET, Decimal("1.99"))
        client, ledger = make_client(api, policy, [spent])

        with pytest.raises(BudgetExceeded):
            client.posts.search_all("python")

        api.request.assert_not_called()
        assert ledger.records == [spent]

    def test_failed_call_is_still_logged(self):
        """Test admitted attempts are recorded even when the API errors."""
        api = Mock()
        api.request.side_effect = XApiError("posts.create failed: HTTP 403", status=403)
        client, ledger = make_client(api)

        with pytest.raises(XApiError, match="HTTP 403"):
            client.posts.create("hello")

        assert len(ledger.records) == 1
        assert ledger.records[0].operation_id == "posts.create"
        assert ledger.records[0].http_method == HttpMethod.POST

    def test_unknown_operation_uses_default_cost(self):
        api = Mock()
        api.request.return_value = {}
        client, ledger = make_client(api)

        client.call("spaces", "search", params={"query": "x"})

        assert ledger.records[0].estimated_cost == Decimal("0.005")
        assert ledger.records[0].http_method == HttpMethod.GET

    def test_create_body(self):
        """Test reply, quote and media fields."""
        api = Mock()
        api.request.return_value = {"data": {"id": "9"}}
        client, _ = make_client(api)

        client.posts.create("hi", reply_to="1", quote_id="2", media_ids=["m1", "m2"])

        assert api.request.call_args[1]["json"] == {
            "text": "hi",
            "reply": {"in_reply_to_tweet_id": "1"},
            "quote_tweet_id": "2",
            "media": {"media_ids": ["m1", "m2"]},
        }

    def test_append_upload_is_multipart(self):
        api = Mock()
        api.request.return_value = {}
        client, _ = make_client(api)

        client.media.append_upload("77", 3, b"abc", "clip.mp4")

        args, kwargs = api.request.call_args
        assert args == ("media.appendUpload",)
        assert kwargs["path_params"] == {"media_id": "77"}
        assert kwargs["data"] == {"segment_index": "3"}
        assert kwargs["files"] == {"media": ("clip.mp4", b"abc")}


class TestXApi:
    """Test the HTTP collaborator."""

    def setup_method(self):
        self.session = Mock()
        self.api = XApi("TOKEN", base_url="https://api.example.test/2/", session=self.session)

    def test_empty_token_rejected(self):
        with pytest.raises(ValueError, match="token is required"):
            XApi("")

    def test_path_params_and_auth_header(self):
        """Test the route is expanded and the token is sent."""
        self.session.request.return_value = ok_response({"data": {"id": "12"}})

        result = self.api.request("users.getByUsername", path_params={"username": "jack"})

        assert result == {"data": {"id": "12"}}
        args, kwargs = self.session.request.call_args
        assert args == ("GET", "https://api.example.test/2/users/by/username/jack")
        assert kwargs["headers"] == {"Authorization": "Bearer TOKEN"}

    def test_delete_route(self):
        self.session.request.return_value = ok_response({"data": {"liked": False}})
        self.api.request("users.unlikePost", path_params={"user_id": "1", "tweet_id": "2"})
        args, _ = self.session.request.call_args
        assert args == ("DELETE", "https://api.example.test/2/users/1/likes/2")

    def test_unknown_operation(self):
        with pytest.raises(ValueError, match="Unknown operation"):
            self.api.request("spaces.search")
        self.session.request.assert_not_called()

    def test_http_error(self):
        """Test non-2xx responses raise XApiError with the status."""
        self.session.request.return_value = ok_response({"title": "Too Many Requests"}, status=429)

        with pytest.raises(XApiError, match="HTTP 429 Too Many Requests") as exc_info:
            self.api.request("posts.searchRecent", params={"query": "x"})
        assert exc_info.value.status == 429

    def test_transport_error(self):
        self.session.request.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(XApiError, match="request failed"):
            self.api.request("users.getMe")

    def test_empty_body(self):
        self.session.request.return_value = ok_response(None, status=204)
        assert self.api.request("media.finalizeUpload", path_params={"media_id": "1"}) == {}


class TestAuth:
    """Test access token resolution and refresh."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.env = patch.dict("os.environ", {"XDG_CONFIG_HOME": str(Path(self.temp_dir) / "legacy")})
        self.env.start()
        self.store = ConfigStore(AppPaths(Path(self.temp_dir) / "xc"))

    def teardown_method(self):
        """Clean up test environment."""
        self.env.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def oauth_account(self, expires_at, refresh_token="rt", client_id="cid"):
        return AccountConfig(
            name="default",
            auth=AuthCredential(
                type="oauth2",
                access_token="old-access",
                refresh_token=refresh_token,
                expires_at=expires_at,
                client_id=client_id,
            ),
            user_id="42",
        )

    def test_no_account(self):
        with pytest.raises(AuthError, match="No account configured"):
            resolve_access_token(self.store)

    def test_bearer(self):
        self.store.set_account("default", AccountConfig("default", AuthCredential("bearer", bearer_token="B")))
        assert resolve_access_token(self.store) == "B"

    def test_valid_oauth_token_not_refreshed(self):
        """Test tokens outside the refresh margin are used as is."""
        self.store.set_account("default", self.oauth_account(expires_at=1_000_000))
        session = Mock()

        token = resolve_access_token(self.store, session=session, now_ms=lambda: 1_000_000 - 60_001)

        assert token == "old-access"
        session.post.assert_not_called()

    def test_expiring_token_refreshed_and_persisted(self):
        """Test refresh within 60s of expiry."""
        self.store.set_account("default", self.oauth_account(expires_at=1_000_000))
        session = Mock()
        session.post.return_value = ok_response(
            {"access_token": "new-access", "refresh_token": "new-rt", "expires_in": 7200}
        )

        token = resolve_access_token(self.store, session=session, now_ms=lambda: 950_000)

        assert token == "new-access"
        saved = self.store.get_account()
        assert saved.auth.access_token == "new-access"
        assert saved.auth.refresh_token == "new-rt"
        assert saved.auth.expires_at == 950_000 + 7_200_000
        assert saved.user_id == "42"
        assert session.post.call_args[1]["data"]["grant_type"] == "refresh_token"

    def test_expired_without_refresh_token(self):
        self.store.set_account("default", self.oauth_account(expires_at=0, refresh_token=None))
        with pytest.raises(AuthError, match="no refresh token"):
            resolve_access_token(self.store, now_ms=lambda: 10)

    @pytest.mark.parametrize("body", [{"token_type": "bearer"}, ["access_token"], "not a dict"])
    def test_refresh_unexpected_body(self, body):
        """Test a 200 response without an access token is an auth error."""
        session = Mock()
        session.post.return_value = ok_response(body)
        with pytest.raises(AuthError, match="unexpected response"):
            refresh_access_token("cid", "rt", session=session)

    def test_refresh_invalid_json(self):
        session = Mock()
        resp = ok_response({})
        resp.json.side_effect = ValueError("Expecting value")
        session.post.return_value = resp
        with pytest.raises(AuthError, match="unexpected response"):
            refresh_access_token("cid", "rt", session=session)

    def test_refresh_rejected(self):
        session = Mock()
        session.post.return_value = ok_response({"error": "invalid_grant"}, status=400)
        with pytest.raises(AuthError, match="HTTP 400"):
            refresh_access_token("cid", "rt", session=session)


class TestUserResolution:
    """Test user id lookups through the guarded client."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.env = patch.dict("os.environ", {"XDG_CONFIG_HOME": str(Path(self.temp_dir) / "legacy")})
        self.env.start()
        self.store = ConfigStore(AppPaths(Path(self.temp_dir) / "xc"))
        self.store.set_account("default", AccountConfig("default", AuthCredential("bearer", bearer_token="B")))

    def teardown_method(self):
        """Clean up test environment."""
        self.env.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_authenticated_user_cached(self):
        """Test the user id is fetched once and then read from the store."""
        api = Mock()
        api.request.return_value = {"data": {"id": "42", "username": "me"}}
        client, ledger = make_client(api)

        assert resolve_authenticated_user_id(client, self.store) == "42"
        assert resolve_authenticated_user_id(client, self.store) == "42"

        assert api.request.call_count == 1
        assert len(ledger.records) == 1
        assert self.store.get_account().username == "me"

    def test_unknown_username(self):
        api = Mock()
        api.request.return_value = {"errors": [{"detail": "Could not find user"}]}
        client, _ = make_client(api)
        with pytest.raises(XApiError, match="User @ghost not found"):
            resolve_user_id(client, "@ghost")


class TestFactory:
    """Test wiring from the config directory."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.paths = AppPaths(Path(self.temp_dir))

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_context_uses_pricing_overrides(self):
        self.paths.pricing_file.write_text(
            "operations:\n  posts.searchRecent:\n    cost: 0.5\n", encoding="utf-8"
        )
        context = build_accounting_context(self.paths, clock=lambda: NOW)

        assert context.cost_table.estimate("posts.searchRecent") == Decimal("0.5")
        assert context.enforcer.cost_table is context.cost_table
        assert context.ledger.path == self.paths.usage_log

    def test_get_client_for_bearer_account(self):
        store = ConfigStore(self.paths)
        store.set_account("default", AccountConfig("default", AuthCredential("bearer", bearer_token="B")))

        client = get_client(paths=self.paths)

        assert isinstance(client, GuardedClient)
        assert client.api._headers == {"Authorization": "Bearer B"}
