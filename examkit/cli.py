"""
ExamKit Admin CLI - examkitctl
Click-based moderation tool talking to the ExamKit HTTP API.
"""

import json
from typing import Any, Optional

import click
import requests


# ============================================
# CLI Configuration
# ============================================

class Context:
    """CLI context for global settings."""

    def __init__(self):
        self.api_url: str = "http://localhost:8000"
        self.token: Optional[str] = None
        self.output_format: str = "table"
        self.quiet: bool = False
        self.timeout: float = 10.0


pass_context = click.make_pass_decorator(Context, ensure=True)


def setup_api_client(ctx: Context) -> requests.Session:
    """Create API client with auth headers."""
    session = requests.Session()
    session.headers.update({"Content-Type": "application/json"})
    if ctx.token:
        session.headers.update({"Authorization": f"Bearer {ctx.token}"})
    return session


def api_call(ctx: Context, method: str, path: str, **kwargs) -> Any:
    """Call the API and return the decoded JSON body."""
    session = setup_api_client(ctx)
    url = f"{ctx.api_url.rstrip('/')}/api/v1{path}"
    try:
        response = session.request(method, url, timeout=ctx.timeout, **kwargs)
    except requests.RequestException as e:
        raise click.ClickException(str(e)) from e

    if response.status_code >= 400:
        try:
            body = response.json()
            detail = body.get("detail") or body.get("error") or response.text
            for item in body.get("errors", []):
                detail += f"\n  - {item}"
        except ValueError:
            detail = response.text
        raise click.ClickException(f"{response.status_code}: {detail}")
    return response.json()


def emit_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


# ============================================
# Base Commands
# ============================================

@click.group()
@click.option(
    "--api-url",
    default="http://localhost:8000",
    help="Base URL of the ExamKit server",
    envvar="EXAMKIT_API_URL",
)
@click.option(
    "--token",
    help="Bearer token issued by the identity provider",
    envvar="EXAMKIT_TOKEN",
)
@click.option(
    "--output",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.option(
    "--quiet",
    is_flag=True,
    help="Suppress output except errors",
)
@click.pass_context
def cli(
    ctx: click.Context,
    api_url: str,
    token: Optional[str],
    output: str,
    quiet: bool,
):
    """ExamKit Admin CLI"""
    obj = ctx.ensure_object(Context)
    obj.api_url = api_url
    obj.token = token
    obj.output_format = output
    obj.quiet = quiet


@cli.command("health")
@pass_context
def health(ctx: Context):
    """Show service health"""
    result = api_call(ctx, "GET", "/health")

    if ctx.output_format == "json":
        emit_json(result)
        return
    click.echo(f"Status:  {result.get('status')}")
    click.echo(f"Version: {result.get('version')}")
    for name, check in result.get("checks", {}).items():
        latency = check.get("latency_ms")
        suffix = f" ({latency} ms)" if latency is not None else ""
        click.echo(f"  {name:<10} {check.get('status')}{suffix}")


# ============================================
# Domain Commands
# ============================================

@cli.group()
def domain():
    """Subject domain commands"""


@domain.command("list")
@pass_context
def domain_list(ctx: Context):
    """List active domains"""
    domains = api_call(ctx, "GET", "/domains")["domains"]

    if ctx.output_format == "json":
        emit_json(domains)
        return
    click.echo(f"{'Name':<25} {'Display Name':<30} {'Review':<8} {'Pass %'}")
    click.echo("-" * 75)
    for d in domains:
        config = d.get("config", {})
        click.echo(
            f"{d.get('name', ''):<25} "
            f"{d.get('display_name', '')[:30]:<30} "
            f"{'Yes' if config.get('require_review', True) else 'No':<8} "
            f"{config.get('default_pass_percentage', '')}"
        )


# ============================================
# Test Moderation Commands
# ============================================

@cli.group()
def test():
    """Test moderation commands"""


@test.command("pending")
@click.option("--domain-id", help="Only tests in this domain")
@pass_context
def test_pending(ctx: Context, domain_id: Optional[str]):
    """List tests waiting for review"""
    params = {"domainId": domain_id} if domain_id else None
    tests = api_call(ctx, "GET", "/admin/tests/review", params=params)["tests"]

    if ctx.output_format == "json":
        emit_json(tests)
        return
    if not tests:
        click.echo("No tests awaiting review")
        return
    click.echo(f"{'ID':<38} {'Title':<35} {'Questions':<10} {'Submitted'}")
    click.echo("-" * 100)
    for t in tests:
        click.echo(
            f"{t.get('id', ''):<38} "
            f"{t.get('title', '')[:35]:<35} "
            f"{t.get('total_questions', 0):<10} "
            f"{t.get('created_at', '')[:19]}"
        )


@test.command("show")
@click.argument("test_id")
@pass_context
def test_show(ctx: Context, test_id: str):
    """Show a test with its questions"""
    t = api_call(ctx, "GET", f"/tests/{test_id}", params={"includeQuestions": "true"})

    if ctx.output_format == "json":
        emit_json(t)
        return
    click.echo(f"{t.get('title')}  [{t.get('status')}]")
    click.echo(f"Pass mark: {t.get('pass_percentage')}%  "
               f"Time limit: {t.get('time_limit_minutes') or 'none'} min")
    if t.get("submission_note"):
        click.echo(f"Note: {t['submission_note']}")
    for number, question in enumerate(t.get("questions", []), start=1):
        click.echo(f"\n{number}. {question.get('stem')}  ({question.get('points')} pts)")
        for option in question.get("options", []):
            marker = "*" if option.get("is_correct") else " "
            click.echo(f"   [{marker}] {option.get('label')}")


def _review(ctx: Context, test_id: str, action: str, note: Optional[str]) -> None:
    result = api_call(
        ctx,
        "POST",
        f"/admin/tests/{test_id}/review",
        json={"action": action, "reviewNote": note},
    )
    if ctx.output_format == "json":
        emit_json(result)
    elif not ctx.quiet:
        click.echo(f"Test {test_id} is now {result.get('status')}")


@test.command("approve")
@click.argument("test_id")
@click.option("--note", help="Review note for the author")
@pass_context
def test_approve(ctx: Context, test_id: str, note: Optional[str]):
    """Approve and publish a pending test"""
    _review(ctx, test_id, "approve", note)


@test.command("reject")
@click.argument("test_id")
@click.option("--note", required=True, help="Reason given to the author")
@pass_context
def test_reject(ctx: Context, test_id: str, note: str):
    """Reject a pending test"""
    _review(ctx, test_id, "reject", note)


@test.command("archive")
@click.argument("test_id")
@click.option("--force", is_flag=True, help="Skip confirmation")
@pass_context
def test_archive(ctx: Context, test_id: str, force: bool):
    """Archive a published test"""
    if not force and not click.confirm(f"Archive test {test_id}?"):
        return

    result = api_call(ctx, "POST", f"/admin/tests/{test_id}/archive")
    if ctx.output_format == "json":
        emit_json(result)
    elif not ctx.quiet:
        click.echo(f"Test {test_id} archived")


# ============================================
# Main Entry Point
# ============================================

if __name__ == "__main__":
    cli()
