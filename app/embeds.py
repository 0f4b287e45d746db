"""
Discord embed rendering for status snapshots.

Presentation only: everything shown here comes from a StatusSnapshot.
"""

from __future__ import annotations

import datetime
from typing import Optional

import discord

import config
from status_projector import StatusSnapshot


COLOR_CONNECTED = discord.Colour(0x00FF00)
COLOR_DISCONNECTED = discord.Colour(0xFF0000)
COLOR_AUTH = discord.Colour(0xFF9900)

_STATUS_ICONS = {
    "awaiting authentication": "⏳",
    "connecting": "⏳",
    "disconnected": "❌",
}


def format_coords(snapshot: StatusSnapshot) -> str:
    x, y, z = snapshot.position
    return f"X: {round(x)}, Y: {round(y)}, Z: {round(z)}"


def status_line(snapshot: StatusSnapshot) -> str:
    text = snapshot.text
    if snapshot.connected:
        icon = "✅"
    elif snapshot.reconnecting and snapshot.challenge is None:
        icon = "🔄"
    else:
        icon = _STATUS_ICONS.get(text, "ℹ️")
    return f"{icon} {text[:1].upper()}{text[1:]}"


def _server_label() -> str:
    return f"{config.MC_HOST}:{config.MC_PORT}"


def build_control_embed(snapshot: StatusSnapshot) -> discord.Embed:
    embed = discord.Embed(
        title="🎮 Minecraft Bot Controller",
        colour=COLOR_CONNECTED if snapshot.connected else COLOR_DISCONNECTED,
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="🖥️ Server", value=_server_label(), inline=True)
    embed.add_field(name="📦 Version", value=config.MC_VERSION, inline=True)
    embed.add_field(name="🔐 Auth", value=config.MC_AUTH, inline=True)
    embed.add_field(name="🔗 Status", value=status_line(snapshot), inline=False)
    if getattr(config, "WEB_SERVER_ENABLED", False):
        embed.add_field(name="🌐 Web Server", value=f"Running on port {config.WEB_SERVER_PORT}", inline=False)

    if snapshot.connected:
        embed.add_field(name="🌍 World", value=snapshot.world_label, inline=True)
        embed.add_field(name="📍 Coordinates", value=format_coords(snapshot), inline=True)
        embed.add_field(name="👤 Username", value=snapshot.username or "Unknown", inline=True)

    if snapshot.reconnecting:
        embed.add_field(
            name="🔄 Auto-Reconnect",
            value=f"Attempt {snapshot.reconnect_attempts}/{snapshot.max_reconnect_attempts}",
            inline=False,
        )

    if snapshot.auth_required:
        url = snapshot.challenge.verification_url
        embed.add_field(
            name="🔑 Microsoft Authentication Required",
            value=f"Please visit: [{url}]({url})\nAnd enter code: `{snapshot.challenge.user_code}`",
            inline=False,
        )

    embed.set_footer(text=f"{config.JOIN_EMOJI} Join Server | {config.LEAVE_EMOJI} Leave Server")
    return embed


def build_auth_embed(snapshot: StatusSnapshot) -> discord.Embed:
    challenge = snapshot.challenge
    operator: Optional[str] = challenge.operator if challenge else None
    url = (challenge.verification_url if challenge else None) or config.AUTH_DEFAULT_URL

    embed = discord.Embed(
        title="🔐 Microsoft Authentication Required",
        description=f"{operator or 'Operator'}, please authenticate to connect the Minecraft bot.",
        colour=COLOR_AUTH,
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="🔗 Authentication Link", value=f"[Click here to authenticate]({url})", inline=False)
    if challenge and challenge.user_code:
        embed.add_field(name="🔑 Authentication Code", value=f"**{challenge.user_code}**", inline=False)
        embed.add_field(
            name="📝 Instructions",
            value="1. Click the link above\n2. Enter the code\n3. Complete authentication",
            inline=False,
        )
    else:
        embed.add_field(name="⏳ Status", value="Waiting for authentication code...", inline=False)
    return embed


def build_status_embed(snapshot: StatusSnapshot, discord_connected: bool = True) -> discord.Embed:
    embed = discord.Embed(
        title="🤖 Bot Status",
        colour=COLOR_CONNECTED if snapshot.connected else COLOR_DISCONNECTED,
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="🎮 Minecraft", value=status_line(snapshot), inline=True)
    embed.add_field(name="💬 Discord", value="✅ Connected" if discord_connected else "❌ Disconnected", inline=True)
    if getattr(config, "WEB_SERVER_ENABLED", False):
        embed.add_field(name="🌐 Web Server", value=f"✅ Running on port {config.WEB_SERVER_PORT}", inline=True)

    if snapshot.connected:
        embed.add_field(name="👤 Username", value=snapshot.username or "Unknown", inline=True)
        embed.add_field(name="🌍 World", value=snapshot.world_label, inline=True)
        embed.add_field(name="📍 Position", value=format_coords(snapshot), inline=True)
    return embed
