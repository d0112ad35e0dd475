import asyncio
import logging
from collections import OrderedDict
from typing import Callable, Optional
import discord
from discord import app_commands
from discord.ext import commands
from inline_translate.settings import (
    TRANSLATE_DB_PATH,
    DATASTORE_NAMESPACE,
    TRANSLATE_PROVIDER,
    TRANSLATE_REACTION,
)
from inline_translate.db import DataStore
from inline_translate.core.models import ChatMessage, OutgoingDraft
from inline_translate.core.plugin import (
    Annotation,
    CallbackRegistry,
    HostRegistries,
    TranslatePlugin,
    describe_translation,
)
from inline_translate.core.tooltip import TooltipTimer
from inline_translate.core.translator import TranslationError

log = logging.getLogger(__name__)

# Messages kept around so annotations can be rendered as replies
MAX_KNOWN_MESSAGES = 500
TOOLTIP_TEXT = "Auto Translate enabled"
WARNING_REACTION = "\N{WARNING SIGN}"
MAX_MESSAGE_LENGTH = 2000


def to_chat_message(message: discord.Message) -> ChatMessage:
    return ChatMessage(
        id=str(message.id),
        channel_id=str(message.channel.id),
        author_id=str(message.author.id),
        content=message.content or "",
    )


class DiscordSession:
    """The bot's view of "current user" and "current channel"."""

    def __init__(self, cog: "TranslationCog"):
        self.cog = cog
        self.current_channel: Optional[str] = None

    def current_user_id(self) -> Optional[str]:
        user = self.cog.bot.user
        return str(user.id) if user else None

    def current_channel_id(self) -> Optional[str]:
        return self.current_channel

    async def channel_history(self, channel_id: str, limit: int) -> list[ChatMessage]:
        channel = self.cog.bot.get_channel(int(channel_id))
        if channel is None:
            return []
        messages = []
        # history() yields newest first
        async for msg in channel.history(limit=limit):
            self.cog.remember(msg)
            messages.append(to_chat_message(msg))
        return messages


class ContextMenuRegistry:
    """Message context menu entries on the bot's command tree."""

    def __init__(self, cog: "TranslationCog"):
        self.cog = cog
        self.menus: dict[str, app_commands.ContextMenu] = {}

    def add(self, key: str, callback: Callable):
        cog = self.cog

        async def translate_message_menu(interaction: discord.Interaction, message: discord.Message):
            await cog.handle_translate_interaction(interaction, message, callback)

        menu = app_commands.ContextMenu(name="Translate", callback=translate_message_menu)
        self.cog.bot.tree.add_command(menu)
        self.menus[key] = menu

    def remove(self, key: str):
        menu = self.menus.pop(key, None)
        if menu is None:
            return
        try:
            self.cog.bot.tree.remove_command(menu.name, type=menu.type)
        except Exception as e:
            log.error(f"Failed to remove context menu {menu.name}: {e}")


class ChatBarRegistry:
    """The chat-bar button, as a slash command."""

    def __init__(self, cog: "TranslationCog", name: str = "translate-auto"):
        self.cog = cog
        self.name = name
        self.commands: dict[str, app_commands.Command] = {}

    def add(self, key: str, callback: Callable):
        async def toggle_auto_translate(interaction: discord.Interaction):
            enabled = await callback()
            state = "enabled" if enabled else "disabled"
            await interaction.response.send_message(
                f"Translate on send is now **{state}**.", ephemeral=True
            )

        command = app_commands.Command(
            name=self.name,
            description="Toggle translating your messages before they are sent",
            callback=toggle_auto_translate,
        )
        self.cog.bot.tree.add_command(command)
        self.commands[key] = command

    def remove(self, key: str):
        command = self.commands.pop(key, None)
        if command is None:
            return
        try:
            self.cog.bot.tree.remove_command(command.name)
        except Exception as e:
            log.error(f"Failed to remove command {command.name}: {e}")


class TranslationCog(commands.Cog):
    """Hosts the Translate plugin on a discord.py bot."""

    def __init__(self, bot):
        self.bot = bot
        self.session = DiscordSession(self)
        self.known_messages: OrderedDict[str, discord.Message] = OrderedDict()
        self.annotation_replies: dict[str, discord.Message] = {}
        self.render_locks: dict[str, asyncio.Lock] = {}

        # Hover button (reaction), accessory and pre-send are in-process callback lists
        self.popover = CallbackRegistry()
        self.accessories = CallbackRegistry()
        self.pre_send = CallbackRegistry()
        self.registries = HostRegistries(
            chat_bar=ChatBarRegistry(self),
            popover=self.popover,
            context_menu=ContextMenuRegistry(self),
            accessories=self.accessories,
            pre_send=self.pre_send,
        )

        tooltip = TooltipTimer(on_change=self._on_tooltip_change)
        self.plugin = TranslatePlugin.create(
            http_session=bot.http_session,
            datastore=DataStore(TRANSLATE_DB_PATH, DATASTORE_NAMESPACE),
            session=self.session,
            registries=self.registries,
            provider=TRANSLATE_PROVIDER,
            tooltip=tooltip,
        )

    async def cog_load(self):
        await self.plugin.load_settings()
        self.plugin.activate()
        self.plugin.annotations.subscribe(self._on_annotation_change)

    async def cog_unload(self):
        self.plugin.annotations.unsubscribe(self._on_annotation_change)
        self.plugin.deactivate()

    def remember(self, message: discord.Message):
        key = str(message.id)
        self.known_messages[key] = message
        self.known_messages.move_to_end(key)
        while len(self.known_messages) > MAX_KNOWN_MESSAGES:
            forgotten, _ = self.known_messages.popitem(last=False)
            lock = self.render_locks.get(forgotten)
            if lock is not None and not lock.locked():
                del self.render_locks[forgotten]

    # --- Rendering ---

    def _on_tooltip_change(self, visible: bool):
        activity = discord.CustomActivity(name=TOOLTIP_TEXT) if visible else None
        self.bot.loop.create_task(self.bot.change_presence(activity=activity))

    def _on_annotation_change(self, message_id: str, result):
        for renderer in list(self.accessories.callbacks.values()):
            annotation = renderer(message_id) if result is not None else None
            self.bot.loop.create_task(self.render_annotation(message_id, annotation))

    async def render_annotation(self, message_id: str, annotation: Optional[Annotation]):
        """Show an annotation as a reply under its message, editing an earlier one in place.

        Renders for one message run one at a time, in the order they were scheduled.
        """
        lock = self.render_locks.setdefault(message_id, asyncio.Lock())
        async with lock:
            await self._render_annotation(message_id, annotation)

    async def _render_annotation(self, message_id: str, annotation: Optional[Annotation]):
        message = self.known_messages.get(message_id)
        existing = self.annotation_replies.get(message_id)
        try:
            if annotation is None:
                if existing is not None:
                    del self.annotation_replies[message_id]
                    await existing.delete()
                return

            if message is None:
                log.debug(f"Message {message_id} is no longer known, not rendering its translation")
                return

            embed = discord.Embed(description=annotation.text[:4096], color=discord.Color.blurple())
            embed.set_footer(text=annotation.footer)
            if existing is not None:
                await existing.edit(embed=embed)
            else:
                self.annotation_replies[message_id] = await message.reply(
                    embed=embed, mention_author=False
                )
        except discord.NotFound:
            log.debug(f"Message {message_id} is gone, dropping its translation")
            self.annotation_replies.pop(message_id, None)
        except discord.HTTPException as e:
            log.error(f"Error rendering translation for message {message_id}: {e}")

    # --- Manual translate ---

    async def handle_translate_interaction(self, interaction: discord.Interaction, message: discord.Message, callback):
        """Context menu entry: translate one message and report back privately."""
        if not message.content:
            await interaction.response.send_message("No text to translate.", ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        self.remember(message)
        try:
            result = await callback(str(message.id), message.content)
        except TranslationError as e:
            log.error(f"Error translating message {message.id}: {e}")
            await interaction.followup.send(f"❌ Translation failed: {e}", ephemeral=True)
            return
        await interaction.followup.send(f"✅ {describe_translation(result)}", ephemeral=True)

    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent):
        """Hover button: reacting with the translate emoji translates the message."""
        if str(payload.emoji) != TRANSLATE_REACTION:
            return
        if self.bot.user and payload.user_id == self.bot.user.id:
            return

        channel = self.bot.get_channel(payload.channel_id)
        if channel is None:
            return
        try:
            message = await channel.fetch_message(payload.message_id)
        except discord.HTTPException as e:
            log.error(f"Could not fetch message {payload.message_id}: {e}")
            return
        if not message.content:
            return

        self.remember(message)
        for callback in list(self.popover.callbacks.values()):
            try:
                await callback(str(message.id), message.content)
            except TranslationError as e:
                log.error(f"Error translating message {message.id}: {e}")
                try:
                    await message.add_reaction(WARNING_REACTION)
                except discord.HTTPException:
                    log.debug(f"Could not flag failed translation on message {message.id}")

    @commands.Cog.listener()
    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent):
        """Taking the translate emoji back off a message dismisses its translation."""
        if str(payload.emoji) != TRANSLATE_REACTION:
            return
        if self.bot.user and payload.user_id == self.bot.user.id:
            return
        message_id = str(payload.message_id)
        if message_id in self.plugin.annotations:
            self.plugin.dismiss(message_id)

    # --- Host events ---

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        self.remember(message)
        await self.plugin.on_message_create(str(message.channel.id), to_chat_message(message))

    async def select_channel(self, channel_id):
        self.session.current_channel = str(channel_id)
        return await self.plugin.on_channel_select(self.session.current_channel)

    async def send_message(self, channel, content: str):
        """Send through the pre-send listeners, which may rewrite the text.

        A rewrite that no longer fits in one Discord message is dropped and the
        text goes out as written. Returns the sent message and whether that happened.
        """
        draft = OutgoingDraft(channel_id=str(channel.id), content=content)
        for listener in list(self.pre_send.callbacks.values()):
            await listener(draft)
        too_long = len(draft.content) > MAX_MESSAGE_LENGTH
        if too_long:
            log.warning(
                f"Translated message for channel {draft.channel_id} is {len(draft.content)} characters, sending it untranslated"
            )
            draft.content = content
        return await channel.send(draft.content), too_long

    # --- Slash Commands ---

    @app_commands.command(name="translate-channel", description="Toggle auto-translating received messages in this channel")
    async def translate_channel(self, interaction: discord.Interaction):
        enabled = await self.plugin.toggle_channel(interaction.channel_id)
        state = "enabled" if enabled else "disabled"
        await interaction.response.send_message(
            f"Auto-translate is now **{state}** for this channel.", ephemeral=True
        )

    @app_commands.command(name="translate-focus", description="Make this the active channel and translate recent messages")
    async def translate_focus(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        result = await self.select_channel(interaction.channel_id)
        if result is None or result.status == "failed":
            await interaction.followup.send("Channel selected. Some messages could not be translated.", ephemeral=True)
        elif result.status == "translated":
            await interaction.followup.send(f"Channel selected. Translated {result.translated} recent messages.", ephemeral=True)
        else:
            await interaction.followup.send("Channel selected.", ephemeral=True)

    @app_commands.command(name="say", description="Send a message, translated if translate on send is enabled")
    @app_commands.describe(text="The message to send")
    async def say(self, interaction: discord.Interaction, text: app_commands.Range[str, 1, MAX_MESSAGE_LENGTH]):
        if interaction.channel is None:
            await interaction.response.send_message("This command only works in text channels.", ephemeral=True)
            return
        await interaction.response.defer(ephemeral=True)
        try:
            _, too_long = await self.send_message(interaction.channel, text)
        except discord.HTTPException as e:
            log.error(f"Error sending message to channel {interaction.channel_id}: {e}")
            await interaction.followup.send(f"❌ Could not send the message: {e}", ephemeral=True)
            return
        if too_long:
            await interaction.followup.send(
                f"Sent untranslated, the translation was longer than {MAX_MESSAGE_LENGTH} characters.", ephemeral=True
            )
        else:
            await interaction.followup.send("Sent.", ephemeral=True)
