import asyncio
import aiohttp
import logging
import discord
from discord.ext import commands
from ..settings import DISCORD_TOKEN, GUILD_ID
from .translation_cog import TranslationCog

log = logging.getLogger(__name__)


class TranslateBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(command_prefix="/", intents=intents)
        self.http_session = None

    async def setup_hook(self):
        self.http_session = aiohttp.ClientSession()
        # Load Cogs
        await self.add_cog(TranslationCog(self))

        # Sync tree
        if GUILD_ID:
            guild = discord.Object(id=GUILD_ID)
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            log.info(f"Synced {len(synced)} commands to guild {GUILD_ID}")
        else:
            synced = await self.tree.sync()
            log.info(f"Synced {len(synced)} global commands")

    async def close(self):
        await super().close()
        if self.http_session is not None:
            await self.http_session.close()

    async def on_ready(self):
        # pyrefly: ignore [missing-attribute]
        log.info(f"Logged in as {self.user} (ID: {self.user.id})")
        log.info("------")


async def _async_main():
    bot = TranslateBot()
    async with bot:
        # pyrefly: ignore [bad-argument-type]
        await bot.start(DISCORD_TOKEN)


def main():
    discord.utils.setup_logging()
    try:
        asyncio.run(_async_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
