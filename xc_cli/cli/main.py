"""
CLI interface for xc.

Provides command-line access to the X API with cost tracking and budget
enforcement on every call.
"""

import json
import sys
import time
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, List, Optional

import typer
from dotenv import find_dotenv, load_dotenv
from rich.console import Console
from rich.markup import escape

from xc_cli.config.loader import (
    AccountConfig,
    AuthCredential,
    ConfigStore,
    default_paths,
)
from xc_cli.core.budget import budget_status
from xc_cli.core.errors import XcError
from xc_cli.core.media import MediaUploader, inspect_media
from xc_cli.core.spend import daily_breakdown, format_cost_footer, spend_summary, system_clock
from xc_cli.logging_setup import setup_logging
from xc_cli.sdk.factory import get_client, resolve_authenticated_user_id, resolve_user_id
from xc_cli.storage.budget_store import JsonBudgetStore
from xc_cli.storage.ledger import JsonlUsageLedger
from xc_cli.storage.models import BudgetAction, BudgetPolicy

app = typer.Typer(help="CLI client for the X API v2")
auth_app = typer.Typer(help="Manage authentication")
budget_app = typer.Typer(help="Manage API cost budget")
cost_app = typer.Typer(help="Show API cost summary")
media_app = typer.Typer(help="Media upload operations")
app.add_typer(auth_app, name="auth")
app.add_typer(budget_app, name="budget")
app.add_typer(cost_app, name="cost")
app.add_typer(media_app, name="media")

console = Console()
err_console = Console(stderr=True)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

ACCOUNT_OPTION = typer.Option(None, "--account", help="Account to use")
JSON_OPTION = typer.Option(False, "--json", help="Output raw JSON")


@contextmanager
def _handle_errors():
    """Report xc errors on stderr and exit with the failure code."""
    try:
        yield
    except (XcError, FileNotFoundError) as e:
        err_console.print(f"[red]Error:[/] {escape(str(e))}", soft_wrap=True)
        sys.exit(EXIT_CODE_FAIL)


def _print_cost_footer() -> None:
    records = JsonlUsageLedger(default_paths().usage_log).load_all()
    footer = format_cost_footer(records, system_clock())
    if footer:
        err_console.print(f"\n{footer}", highlight=False)


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _money(amount: Decimal, places: int = 2) -> str:
    return f"${amount:.{places}f}"


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    quiet: bool = typer.Option(False, "--quiet", help="Suppress cost footer"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """xc - X API client with cost tracking."""
    load_dotenv(find_dotenv(usecwd=True))
    setup_logging("DEBUG" if verbose else None)
    if ctx.invoked_subcommand is None:
        console.print("xc - Use --help to see available commands")
        return
    if not quiet:
        ctx.call_on_close(_print_cost_footer)


# ---- auth ----

@auth_app.command("token")
def auth_token(
    bearer_token: str = typer.Argument(..., help="App-only Bearer token"),
    account: str = typer.Option("default", "--account", help="Account name"),
):
    """Set a Bearer token for app-only auth."""
    with _handle_errors():
        store = ConfigStore()
        store.set_account(
            account,
            AccountConfig(name=account, auth=AuthCredential(type="bearer", bearer_token=bearer_token)),
        )
        console.print(f"[green]✓[/] Bearer token saved (account: {account})")
        console.print(f"  Config: {store.path}")


@auth_app.command("import")
def auth_import(
    access_token: str = typer.Option(..., "--access-token", help="OAuth 2.0 access token"),
    refresh_token: Optional[str] = typer.Option(None, "--refresh-token", help="OAuth 2.0 refresh token"),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", envvar="XC_CLIENT_ID", help="OAuth 2.0 Client ID (or set XC_CLIENT_ID)"
    ),
    expires_in: int = typer.Option(7200, "--expires-in", help="Seconds until the access token expires"),
    account: str = typer.Option("default", "--account", help="Account name"),
):
    """Store OAuth 2.0 user tokens obtained elsewhere."""
    with _handle_errors():
        store = ConfigStore()
        credential = AuthCredential(
            type="oauth2",
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=int(time.time() * 1000) + expires_in * 1000,
            client_id=client_id,
        )
        store.set_account(account, AccountConfig(name=account, auth=credential))
        console.print(f"[green]✓[/] OAuth 2.0 credentials saved (account: {account})")
        if not (refresh_token and client_id):
            console.print("  Note: without --refresh-token and --client-id the token cannot be refreshed.")


@auth_app.command("status")
def auth_status():
    """Show current auth status."""
    with _handle_errors():
        config = ConfigStore().load()
        if not config.accounts:
            console.print("No accounts configured.\n")
            console.print("Get started:")
            console.print("  xc auth token <TOKEN>              # Bearer token (read only)")
            console.print("  xc auth import --access-token ...  # OAuth 2.0 (read + write)")
            return

        now_ms = int(time.time() * 1000)
        console.print(f"Accounts ({len(config.accounts)}):\n")
        for name, acc in config.accounts.items():
            marker = " (default)" if name == config.default_account else ""
            username = f"@{acc.username}" if acc.username else "unknown"
            kind = "OAuth 2.0" if acc.auth.type == "oauth2" else "Bearer"
            status = "✓"
            if acc.auth.type == "oauth2" and acc.auth.expires_at:
                remaining = acc.auth.expires_at - now_ms
                if remaining <= 0:
                    status = "⟳ expired (has refresh)" if acc.auth.refresh_token else "✗ expired"
                else:
                    hours, rest = divmod(remaining, 3_600_000)
                    status = f"✓ {hours}h{rest // 60_000}m remaining"
            console.print(f"  {name}{marker}")
            console.print(f"    User: {username}")
            console.print(f"    Auth: {kind} - {status}\n")


@auth_app.command("switch")
def auth_switch(account: str = typer.Argument(..., help="Account to make default")):
    """Switch default account."""
    with _handle_errors():
        store = ConfigStore()
        store.set_default_account(account)
        console.print(f"[green]✓[/] Switched to {account}")


@auth_app.command("logout")
def auth_logout(
    account: Optional[str] = typer.Option(None, "--account", help="Account to remove (default: current)"),
):
    """Remove an account."""
    with _handle_errors():
        removed = ConfigStore().remove_account(account)
        console.print(f'[green]✓[/] Removed account "{removed}"')


# ---- read/write commands ----

def _print_user(data: Dict[str, Any]) -> None:
    console.print(f"@{data.get('username')} ({data.get('name')})", highlight=False)
    if data.get("description"):
        console.print(f"  {escape(data['description'])}")
    if data.get("location"):
        console.print(f"  {escape(data['location'])}")
    m = data.get("public_metrics") or {}
    if m:
        console.print(
            f"  {m.get('followers_count', 0):,} followers · "
            f"{m.get('following_count', 0):,} following · "
            f"{m.get('tweet_count', 0):,} posts"
        )
    if data.get("created_at"):
        console.print(f"  Joined {str(data['created_at'])[:10]}")


def _print_posts(result: Dict[str, Any]) -> int:
    posts: List[Dict[str, Any]] = result.get("data") or []
    users = {u.get("id"): u for u in (result.get("includes") or {}).get("users", [])}
    for i, post in enumerate(posts):
        if i:
            console.print()
        author = users.get(post.get("author_id"))
        if author:
            console.print(f"@{author.get('username')} ({escape(str(author.get('name')))})")
        text = escape(post.get("text", "")).replace("\n", "\n  ")
        console.print(f"  {text}")
        m = post.get("public_metrics") or {}
        parts = [
            f"{m[key]} {label}"
            for key, label in (
                ("like_count", "likes"),
                ("retweet_count", "RTs"),
                ("reply_count", "replies"),
                ("quote_count", "quotes"),
            )
            if m.get(key)
        ]
        if parts:
            console.print("  " + " · ".join(parts))
        meta = []
        if post.get("created_at"):
            meta.append(str(post["created_at"]))
        if post.get("id"):
            meta.append(f"id:{post['id']}")
        if meta:
            console.print("  " + " · ".join(meta), highlight=False)
    return len(posts)


@app.command()
def whoami(account: Optional[str] = ACCOUNT_OPTION, json_output: bool = JSON_OPTION):
    """Show the authenticated user."""
    with _handle_errors():
        client = get_client(account)
        result = client.users.get_me(
            user_fields=["created_at", "description", "public_metrics", "verified", "location", "url"]
        )
        if json_output:
            _echo_json(result)
            return
        data = result.get("data")
        if not data:
            raise XcError("Could not fetch user info.")
        _print_user(data)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    archive: bool = typer.Option(False, "--archive", help="Search full archive instead of recent"),
    limit: int = typer.Option(10, "--limit", help="Max results (10-100, or 10-500 for archive)"),
    account: Optional[str] = ACCOUNT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Search posts (recent 7 days, or full archive with --archive)."""
    with _handle_errors():
        client = get_client(account)
        if archive:
            result = client.posts.search_all(query, max_results=limit)
        else:
            result = client.posts.search_recent(query, max_results=limit)
        if json_output:
            _echo_json(result)
            return
        if not result.get("data"):
            console.print("No results found.")
            return
        shown = _print_posts(result)
        count = (result.get("meta") or {}).get("result_count", shown)
        console.print(f"\n- {count} result{'s' if count != 1 else ''}")


@app.command()
def post(
    text: str = typer.Argument(..., help="Post text"),
    reply: Optional[str] = typer.Option(None, "--reply", help="Reply to a post by ID"),
    quote: Optional[str] = typer.Option(None, "--quote", help="Quote a post by ID"),
    media: Optional[List[str]] = typer.Option(None, "--media", help="Attach a media file (repeatable)"),
    account: Optional[str] = ACCOUNT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Create a post."""
    with _handle_errors():
        # Every attachment is validated before any token refresh or upload
        sessions = [inspect_media(p) for p in media or []]
        client = get_client(account)
        uploader = MediaUploader(client, on_progress=_report_progress)
        media_ids = [uploader.upload_session(s) for s in sessions]
        result = client.posts.create(text, reply_to=reply, quote_id=quote, media_ids=media_ids)
        if json_output:
            _echo_json(result)
            return
        data = result.get("data") or {}
        if data.get("id"):
            console.print(f"Posted (id: {data['id']})")
            if data.get("text"):
                console.print(f"  {escape(data['text'])}")
        else:
            console.print("Post created.")


@app.command()
def user(
    username: str = typer.Argument(..., help="@username to look up"),
    account: Optional[str] = ACCOUNT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Look up a user by @username."""
    with _handle_errors():
        clean = username.lstrip("@")
        client = get_client(account)
        result = client.users.get_by_username(
            clean, user_fields=["created_at", "description", "public_metrics"]
        )
        if json_output:
            _echo_json(result)
            return
        data = result.get("data")
        if not data:
            raise XcError(f"User @{clean} not found.")
        _print_user(data)


@app.command()
def timeline(
    username: Optional[str] = typer.Argument(None, help="Show this user's posts instead of home"),
    limit: int = typer.Option(20, "--limit", help="Max results (1-100)"),
    account: Optional[str] = ACCOUNT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """View home timeline, or a user's posts with @username argument."""
    with _handle_errors():
        client = get_client(account)
        if username:
            result = client.users.get_posts(resolve_user_id(client, username), max_results=limit)
        else:
            my_id = resolve_authenticated_user_id(client, ConfigStore(), account)
            result = client.users.get_timeline(my_id, max_results=limit)
        if json_output:
            _echo_json(result)
            return
        if not result.get("data"):
            console.print("No posts found.")
            return
        console.print(f"Posts from @{username.lstrip('@')}:\n" if username else "Home timeline:\n")
        _print_posts(result)


@app.command()
def like(
    post_id: str = typer.Argument(..., help="Post ID"),
    account: Optional[str] = ACCOUNT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Like a post."""
    with _handle_errors():
        client = get_client(account)
        user_id = resolve_authenticated_user_id(client, ConfigStore(), account)
        result = client.users.like_post(user_id, post_id)
        if json_output:
            _echo_json(result)
            return
        console.print(f"Liked post {post_id}")


@app.command()
def unlike(
    post_id: str = typer.Argument(..., help="Post ID"),
    account: Optional[str] = ACCOUNT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Unlike a post."""
    with _handle_errors():
        client = get_client(account)
        user_id = resolve_authenticated_user_id(client, ConfigStore(), account)
        result = client.users.unlike_post(user_id, post_id)
        if json_output:
            _echo_json(result)
            return
        console.print(f"Unliked post {post_id}")


@app.command()
def usage(account: Optional[str] = ACCOUNT_OPTION, json_output: bool = JSON_OPTION):
    """Show API usage stats reported by X."""
    with _handle_errors():
        result = get_client(account).usage.get()
        if json_output:
            _echo_json(result)
            return
        data = result.get("data")
        if not data:
            console.print("No usage data available.")
            return
        if data.get("cap_reset_day"):
            console.print(f"Cap resets on day {data['cap_reset_day']} of each month\n")
        days = (data.get("daily_project_usage") or {}).get("usage") or []
        if not days:
            console.print("No daily usage data available.")
            return
        console.print("Daily post usage:\n")
        for day in days:
            console.print(f"  {str(day.get('date', ''))[:10]}: {int(day.get('usage', 0)):,} posts")


# ---- media ----

def _report_progress(sent: int, total: int) -> None:
    err_console.print(f"Uploading... {round(sent * 100 / total)}%")


@media_app.command("upload")
def media_upload(
    file: str = typer.Argument(..., help="Image, GIF or video file"),
    account: Optional[str] = ACCOUNT_OPTION,
    json_output: bool = JSON_OPTION,
):
    """Upload media and return media_id."""
    with _handle_errors():
        session = inspect_media(file)
        client = get_client(account)
        media_id = MediaUploader(client, on_progress=_report_progress).upload_session(session)
        if json_output:
            _echo_json({"mediaId": media_id})
            return
        console.print(f"Uploaded: media_id={media_id}")


# ---- cost ----

@cost_app.callback(invoke_without_command=True)
def cost(
    ctx: typer.Context,
    daily: bool = typer.Option(False, "--daily", help="Show daily breakdown"),
    json_output: bool = JSON_OPTION,
):
    """Show API cost summary."""
    if ctx.invoked_subcommand is not None:
        return
    records = JsonlUsageLedger(default_paths().usage_log).load_all()
    if not records:
        console.print("No API usage recorded yet.")
        return

    summary = spend_summary(records, system_clock())
    if json_output:
        _echo_json(summary.to_dict())
        return

    if daily:
        console.print("Daily cost breakdown:\n")
        for day, total in daily_breakdown(records):
            console.print(f"  {day.isoformat()}  {_money(total)}", highlight=False)
        return

    console.print("API cost summary:\n")
    console.print(f"  Last hour:    {_money(summary.last_hour)}", highlight=False)
    console.print(f"  Last 24h:     {_money(summary.last_day)}", highlight=False)
    console.print(f"  Last 7 days:  {_money(summary.last_week)}", highlight=False)
    console.print(f"  Last 30 days: {_money(summary.last_month)}", highlight=False)
    console.print(f"\n  Total requests: {summary.total_requests}")


@cost_app.command("log")
def cost_log(
    limit: int = typer.Option(20, "--limit", help="Show last N entries"),
    json_output: bool = JSON_OPTION,
):
    """Show raw request log."""
    recent = JsonlUsageLedger(default_paths().usage_log).tail(limit)
    if json_output:
        _echo_json([r.to_json_dict() for r in recent])
        return
    if not recent:
        console.print("No API requests logged yet.")
        return
    console.print(f"Recent API requests (last {len(recent)}):\n")
    for r in recent:
        ts = r.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        console.print(
            f"  {ts}  {r.http_method.value:<6} {r.operation_id}  {_money(r.estimated_cost, 3)}",
            highlight=False,
        )


# ---- budget ----

@budget_app.command("set")
def budget_set(
    daily: float = typer.Option(..., "--daily", help="Daily budget in dollars"),
    action: str = typer.Option("warn", "--action", help="Action when exceeded: block, warn, confirm"),
):
    """Set daily budget limit."""
    if daily <= 0:
        err_console.print("[red]Error:[/] --daily must be a positive number.")
        sys.exit(EXIT_CODE_FAIL)
    try:
        budget_action = BudgetAction(action.lower())
    except ValueError:
        err_console.print("[red]Error:[/] --action must be block, warn, or confirm.")
        sys.exit(EXIT_CODE_FAIL)

    limit = Decimal(str(daily))
    JsonBudgetStore(default_paths().budget_file).set_policy(
        BudgetPolicy(daily_limit=limit, action=budget_action)
    )
    console.print(f"Budget set: {_money(limit)}/day (action: {budget_action.value})", highlight=False)


@budget_app.command("show")
def budget_show():
    """Show current budget and today's spend."""
    with _handle_errors():
        paths = default_paths()
        policy = JsonBudgetStore(paths.budget_file).get_policy()
        records = JsonlUsageLedger(paths.usage_log).load_all()
        status = budget_status(policy, records, system_clock())
        if status is None:
            console.print("No budget configured.\n")
            console.print("Set one with: xc budget set --daily 2.00")
            return

        console.print("Budget:\n")
        console.print(f"  Daily limit: {_money(status.daily_limit)}", highlight=False)
        console.print(
            f"  Today spent: {_money(status.today_spend)} ({status.percent_used:.0f}%)",
            highlight=False,
        )
        console.print(f"  Remaining:   {_money(status.remaining)}", highlight=False)
        console.print(f"  Action:      {status.action.value}")


@budget_app.command("reset")
def budget_reset():
    """Remove budget configuration."""
    JsonBudgetStore(default_paths().budget_file).clear_policy()
    console.print("Budget configuration removed.")


if __name__ == "__main__":
    app()
