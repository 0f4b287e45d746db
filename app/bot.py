import asyncio
import sys
from typing import Any, Optional

import aiohttp
import discord
import uvicorn
from discord import app_commands
from discord.ext import commands

import config
from logger import quiet_library_loggers, setup_logger
from errors import BridgeError, InvalidIntentError
from status_projector import PostKind, StatusSnapshot
from status_api.protocol import DiscordInfo
from status_api.server import create_app
from app.controller import BridgeController
from app.embeds import build_auth_embed, build_control_embed, build_status_embed


logger = setup_logger(__name__, config.LOG_FILE, config.LOG_LEVEL)


class DiscordStatusSurface:
    """
    StatusSurface backed by the configured Discord channel.
    Posts are discord.Message objects; every failure is logged and swallowed.
    """

    def __init__(self, bot: commands.Bot, channel_id: int):
        self.bot = bot
        self.channel_id = int(channel_id)
        self._channel: Optional[discord.abc.Messageable] = None

    async def _get_channel(self) -> Optional[discord.abc.Messageable]:
        if self._channel is not None:
            return self._channel
        channel = self.bot.get_channel(self.channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(self.channel_id)
        self._channel = channel
        return channel

    @staticmethod
    def _render(snapshot: StatusSnapshot, kind: PostKind) -> discord.Embed:
        if kind == PostKind.AUTH:
            return build_auth_embed(snapshot)
        return build_control_embed(snapshot)

    async def create_status_post(self, snapshot: StatusSnapshot, kind: PostKind) -> Any:
        try:
            channel = await self._get_channel()
            if channel is None:
                logger.error(f"[STATUS] Channel {self.channel_id} not found")
                return None

            content = None
            if kind == PostKind.AUTH and snapshot.challenge and snapshot.challenge.operator:
                content = snapshot.challenge.operator
            message = await channel.send(content=content, embed=self._render(snapshot, kind))

            if kind == PostKind.CONTROL:
                await message.add_reaction(config.JOIN_EMOJI)
                await message.add_reaction(config.LEAVE_EMOJI)
                logger.info("[STATUS] Control post created")
            return message
        except (discord.HTTPException, aiohttp.ClientError) as e:
            logger.error(f"[STATUS] Failed to create {kind.value} post: {e}")
        except Exception as e:
            logger.error(f"[STATUS] Unexpected error creating {kind.value} post: {e}")
        return None

    async def update_status_post(self, post: Any, snapshot: StatusSnapshot, kind: PostKind) -> None:
        if post is None:
            return
        try:
            await post.edit(embed=self._render(snapshot, kind))
        except (discord.HTTPException, aiohttp.ClientError) as e:
            logger.error(f"[STATUS] Failed to update {kind.value} post: {e}")
        except Exception as e:
            logger.error(f"[STATUS] Unexpected error updating {kind.value} post: {e}")

    async def delete_status_post(self, post: Any) -> None:
        if post is None:
            return
        try:
            await post.delete()
        except discord.NotFound:
            logger.debug("[STATUS] Post already deleted")
        except (discord.HTTPException, aiohttp.ClientError) as e:
            logger.error(f"[STATUS] Failed to delete post: {e}")
        except Exception as e:
            logger.error(f"[STATUS] Unexpected error deleting post: {e}")


class BotRuntime:
    """
    Discord bot + web server wiring (infrastructure layer).
    Builds the application layer (BridgeController) and connects events to it.
    """

    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.reactions = True

        self.bot = commands.Bot(command_prefix=config.COMMAND_PREFIX, intents=intents)
        self.surface = DiscordStatusSurface(self.bot, config.DISCORD_CHANNEL_ID)
        self.controller = BridgeController(surface=self.surface)

        # Web server (status API) on the bot loop
        self.web_server: Optional[uvicorn.Server] = None
        self._web_task: Optional[asyncio.Task] = None
        self._started = False

        self._register_handlers()
        self._register_commands()

    # ---------------------------
    # Discord events
    # ---------------------------
    def _register_handlers(self):
        @self.bot.event
        async def on_ready():
            logger.info(f"Bot started: {self.bot.user}")
            quiet_library_loggers()

            # on_ready fires again after a gateway reconnect
            if self._started:
                return
            self._started = True

            try:
                synced = await self.bot.tree.sync()
                logger.info(f"Synced {len(synced)} slash commands")
            except discord.HTTPException as e:
                logger.error(f"Failed to sync slash commands: {e}")

            await self.controller.start()

            if getattr(config, "WEB_SERVER_ENABLED", True):
                self._start_web_server()

        @self.bot.event
        async def on_reaction_add(reaction: discord.Reaction, user: discord.abc.User):
            if user.bot:
                return
            post = self.controller.control_post
            if post is None or reaction.message.id != post.id:
                return

            emoji = str(reaction.emoji)
            try:
                if emoji == config.JOIN_EMOJI:
                    logger.info(f"{user} requested join")
                    await self.controller.join(user.mention)
                elif emoji == config.LEAVE_EMOJI:
                    logger.info(f"{user} requested leave")
                    await self.controller.leave()
            except BridgeError as e:
                logger.error(f"Reaction handling failed: {e}")
            finally:
                try:
                    await reaction.remove(user)
                except discord.HTTPException as e:
                    logger.debug(f"Could not remove reaction: {e}")

    # ---------------------------
    # Slash commands
    # ---------------------------
    def _in_bridge_channel(self, interaction: discord.Interaction) -> bool:
        return interaction.channel_id == config.DISCORD_CHANNEL_ID

    async def _refuse_channel(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(
            "❌ This command can only be used in the designated channel!", ephemeral=True
        )

    def _register_commands(self):
        tree = self.bot.tree

        @tree.command(name="message", description="Send a message to Minecraft chat")
        @app_commands.describe(text="The message to send")
        async def message(interaction: discord.Interaction, text: str):
            if not self._in_bridge_channel(interaction):
                return await self._refuse_channel(interaction)
            try:
                await self.controller.send(text)
            except InvalidIntentError as e:
                return await interaction.response.send_message(f"❌ {e}", ephemeral=True)
            except BridgeError as e:
                logger.error(f"/message failed: {e}")
                return await interaction.response.send_message("❌ Failed to send message!", ephemeral=True)
            await interaction.response.send_message(f"✅ Message sent to Minecraft: `{text}`", ephemeral=True)

        @tree.command(name="status", description="Show bot status")
        async def status(interaction: discord.Interaction):
            if not self._in_bridge_channel(interaction):
                return await self._refuse_channel(interaction)
            embed = build_status_embed(self.controller.snapshot(), discord_connected=self.bot.is_ready())
            await interaction.response.send_message(embed=embed)

        @tree.command(name="connect", description="Connect the bot to the Minecraft server")
        async def connect(interaction: discord.Interaction):
            if not self._in_bridge_channel(interaction):
                return await self._refuse_channel(interaction)
            if self.controller.snapshot().connected:
                return await interaction.response.send_message(
                    "✅ Bot is already connected to the Minecraft server!", ephemeral=True
                )
            try:
                started = await self.controller.join(interaction.user.mention)
            except BridgeError as e:
                logger.error(f"/connect failed: {e}")
                return await interaction.response.send_message("❌ Failed to connect!", ephemeral=True)
            reply = (
                "🔄 Attempting to connect to the Minecraft server..."
                if started
                else "⏳ A connection attempt is already in progress."
            )
            await interaction.response.send_message(reply, ephemeral=True)

        @tree.command(name="disconnect", description="Disconnect the bot from the Minecraft server")
        async def disconnect(interaction: discord.Interaction):
            if not self._in_bridge_channel(interaction):
                return await self._refuse_channel(interaction)
            snap = self.controller.snapshot()
            if not snap.connected and not snap.should_join:
                return await interaction.response.send_message(
                    "❌ Bot is not connected to the Minecraft server!", ephemeral=True
                )
            try:
                await self.controller.leave()
            except BridgeError as e:
                logger.error(f"/disconnect failed: {e}")
                return await interaction.response.send_message("❌ Failed to disconnect!", ephemeral=True)
            await interaction.response.send_message(
                "✅ Bot disconnected from the Minecraft server!", ephemeral=True
            )

    # ---------------------------
    # Web server
    # ---------------------------
    def _discord_info(self) -> DiscordInfo:
        return DiscordInfo(
            connected=self.bot.is_ready(),
            username=str(self.bot.user) if self.bot.user else None,
            guilds=len(self.bot.guilds),
        )

    def _start_web_server(self) -> None:
        if self._web_task is not None and not self._web_task.done():
            return
        app = create_app(self.controller, discord_info=self._discord_info)
        server_config = uvicorn.Config(
            app,
            host=config.WEB_SERVER_HOST,
            port=config.WEB_SERVER_PORT,
            log_level="warning",
        )
        self.web_server = uvicorn.Server(server_config)
        # discord.py owns signal handling
        self.web_server.install_signal_handlers = lambda: None
        self._web_task = asyncio.create_task(self.web_server.serve())
        logger.info(f"[WEB] Web server running on http://{config.WEB_SERVER_HOST}:{config.WEB_SERVER_PORT}")

    async def _stop_web_server(self) -> None:
        if self.web_server is None or self._web_task is None:
            return
        self.web_server.should_exit = True
        try:
            await asyncio.wait_for(self._web_task, timeout=5.0)
        except asyncio.TimeoutError:
            self._web_task.cancel()
        self._web_task = None

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def _run_async(self, token: str) -> None:
        async with self.bot:
            try:
                await self.bot.start(token)
            finally:
                logger.info("Shutting down...")
                await self.controller.stop()
                await self._stop_web_server()

    def run(self):
        token = config.DISCORD_TOKEN
        if not token:
            logger.error("DISCORD_BOT_TOKEN not found")
            sys.exit(1)
        if not config.DISCORD_CHANNEL_ID:
            logger.error("DISCORD_CHANNEL_ID not found")
            sys.exit(1)

        try:
            asyncio.run(self._run_async(token))
        except KeyboardInterrupt:
            pass


def run_bot():
    runtime = BotRuntime()
    runtime.run()
