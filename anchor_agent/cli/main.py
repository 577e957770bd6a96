"""Command-line client for a running anchor-agent server."""

from __future__ import annotations

import json
from typing import Any

import click

from anchor_agent.cli.client import AnchorClient


def _format_table(rows: list[dict], columns: list[str]) -> str:
    """Simple table formatter."""
    if not rows:
        return "No results."
    widths = {c: len(c) for c in columns}
    for row in rows:
        for c in columns:
            widths[c] = max(widths[c], len(str(row.get(c, ""))))

    header = "  ".join(c.upper().ljust(widths[c]) for c in columns)
    separator = "  ".join("-" * widths[c] for c in columns)
    lines = [header, separator]
    for row in rows:
        lines.append("  ".join(str(row.get(c, "")).ljust(widths[c]) for c in columns))
    return "\n".join(lines)


@click.group()
@click.option("--api", default="http://localhost:3001", envvar="ANCHOR_API", help="API base URL")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def cli(ctx: click.Context, api: str, output_format: str) -> None:
    """anchor: browse personas and chats, or send a turn."""
    ctx.obj = AnchorClient(base_url=api)
    ctx.meta["output_format"] = output_format


def _output(ctx: click.Context, data: Any, columns: list[str] | None = None) -> None:
    fmt = ctx.meta.get("output_format", "table")
    if fmt == "table" and isinstance(data, list) and columns:
        click.echo(_format_table(data, columns))
    else:
        click.echo(json.dumps(data, indent=2, default=str))


def _fail(error: RuntimeError) -> None:
    raise click.ClickException(str(error))


@cli.command()
@click.pass_context
def personas(ctx: click.Context) -> None:
    """List personas."""
    client: AnchorClient = ctx.obj
    try:
        data = client.list_personas()
    except RuntimeError as e:
        _fail(e)
    _output(ctx, data, ["id", "name", "voice_name", "tone"])


@cli.command()
@click.pass_context
def locations(ctx: click.Context) -> None:
    """List supported news locations."""
    client: AnchorClient = ctx.obj
    try:
        data = client.list_locations()
    except RuntimeError as e:
        _fail(e)
    _output(ctx, [{"location": loc} for loc in data], ["location"])


# --- Chat commands ---


@cli.group()
def chats() -> None:
    """Browse and delete stored chats."""


@chats.command("list")
@click.argument("uid")
@click.pass_context
def chats_list(ctx: click.Context, uid: str) -> None:
    """List a user's chats, newest first."""
    client: AnchorClient = ctx.obj
    try:
        data = client.list_chats(uid)
    except RuntimeError as e:
        _fail(e)
    rows = [
        {**chat, "persona": (chat.get("persona") or {}).get("name", "")} for chat in data
    ]
    _output(ctx, rows, ["id", "title", "messageCount", "persona", "updated_at"])


@chats.command("show")
@click.argument("uid")
@click.argument("chat_id")
@click.pass_context
def chats_show(ctx: click.Context, uid: str, chat_id: str) -> None:
    """Print a chat's message history."""
    client: AnchorClient = ctx.obj
    try:
        chat = client.get_chat(uid, chat_id)
    except RuntimeError as e:
        _fail(e)

    if ctx.meta.get("output_format") == "json":
        _output(ctx, chat)
        return

    persona = (chat.get("persona") or {}).get("name", "unknown")
    click.echo(f"{chat.get('title')}  ({len(chat.get('messages', []))} messages, persona: {persona})")
    for message in chat.get("messages", []):
        speaker = message.get("persona") or "You"
        media = " [audio]" if message.get("audioUrl") else ""
        media += " [video]" if message.get("videoUrl") else ""
        click.echo(f"  {message.get('timestamp', '')}  {speaker}: {message.get('content', '')}{media}")


@chats.command("delete")
@click.argument("uid")
@click.argument("chat_id")
@click.pass_context
def chats_delete(ctx: click.Context, uid: str, chat_id: str) -> None:
    """Delete a chat."""
    client: AnchorClient = ctx.obj
    try:
        client.delete_chat(uid, chat_id)
    except RuntimeError as e:
        _fail(e)
    click.echo(f"Deleted chat '{chat_id}'")


# --- Profiles ---


@cli.command()
@click.argument("uid")
@click.pass_context
def profile(ctx: click.Context, uid: str) -> None:
    """Show a user's saved profile."""
    client: AnchorClient = ctx.obj
    try:
        data = client.get_profile(uid)
    except RuntimeError as e:
        _fail(e)
    _output(ctx, data)


# --- Turns ---


@cli.command()
@click.argument("uid")
@click.argument("message")
@click.option("--persona-id", default=None)
@click.option("--persona-name", default=None)
@click.option("--chat-id", default=None, help="Continue an existing chat")
@click.option("--location", "locations", multiple=True, help="News location (repeatable)")
@click.option("--video", is_flag=True, default=False, help="Also generate a talking-head video")
@click.pass_context
def say(
    ctx: click.Context,
    uid: str,
    message: str,
    persona_id: str | None,
    persona_name: str | None,
    chat_id: str | None,
    locations: tuple[str, ...],
    video: bool,
) -> None:
    """Send one chat turn and print the reply."""
    client: AnchorClient = ctx.obj
    data: dict[str, Any] = {
        "uid": uid,
        "message": message,
        "locations": list(locations),
        "videoEnabled": video,
    }
    if persona_id:
        data["personaId"] = persona_id
    if persona_name:
        data["personaName"] = persona_name
    if chat_id:
        data["chatId"] = chat_id

    try:
        result = client.send_text(data)
    except RuntimeError as e:
        _fail(e)

    if ctx.meta.get("output_format") == "json":
        _output(ctx, result)
        return
    click.echo(result.get("responseText", ""))
    click.echo(f"  Chat: {result.get('chatId')}")
    if result.get("audioUrl"):
        click.echo(f"  Audio: {result['audioUrl']}")
    if result.get("videoUrl"):
        click.echo(f"  Video: {result['videoUrl']}")


@cli.command()
@click.argument("key")
@click.pass_context
def sign(ctx: click.Context, key: str) -> None:
    """Print a fresh signed URL for a stored media key."""
    client: AnchorClient = ctx.obj
    try:
        click.echo(client.sign(key))
    except RuntimeError as e:
        _fail(e)


if __name__ == "__main__":
    cli()
