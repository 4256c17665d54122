# bot.py – Main entry point of the role keeper
# -----------------------------------------------------------------------------
#  • Builds the shared board states (speedrun.com + CM) and the database.
#  • Loads every cog in EXTENSIONS, logging the stack trace on failure.
#  • Syncs slash commands: instantly on DEBUG_GUILD_ID if set, otherwise
#    globally (Discord may take up to 1h to propagate).
#  • Starts the periodic CM aggregate refresh and, if HEALTH_PORT is set, the
#    health endpoint.
# -----------------------------------------------------------------------------

from __future__ import annotations

import asyncio
import contextlib
import signal
import traceback

import discord
import uvicorn
from discord.ext import commands

from rolekeeper.config import settings
from rolekeeper.health import create_app
from rolekeeper.logging_config import get_logger, setup_logging
from rolekeeper.state import BotState

###############################################################################
# Logging --------------------------------------------------------------------
###############################################################################
setup_logging(level=settings.LOG_LEVEL)
log = get_logger("rolekeeper.bot")

###############################################################################
# Bot & intents --------------------------------------------------------------
###############################################################################
intents = discord.Intents.default()
intents.guilds = True
intents.members = True  # required to list guild members for role sync

bot = commands.Bot(command_prefix="/", intents=intents)

###############################################################################
# Extensions -----------------------------------------------------------------
###############################################################################
EXTENSIONS: list[str] = [
    "rolekeeper.cogs.badges",
]


async def load_all_extensions() -> None:
    """Load each extension, logging the stack trace if one fails."""
    for ext in EXTENSIONS:
        try:
            await bot.load_extension(ext)
            log.info("✅ Loaded extension %s", ext)
        except (ImportError, commands.ExtensionError) as e:
            log.error("❌ Failed to load extension %s: %s\n%s", ext, e, traceback.format_exc())
            raise

###############################################################################
# Events ---------------------------------------------------------------------
###############################################################################
@bot.event
async def on_ready():
    log.info("Bot ready: %s (ID %s)", bot.user, bot.user.id)

    if settings.DEBUG_GUILD_ID:
        guild = discord.Object(id=settings.DEBUG_GUILD_ID)
        bot.tree.copy_global_to(guild=guild)
        synced = await bot.tree.sync(guild=guild)
        log.info("🔁 Synced %d commands on guild %s", len(synced), settings.DEBUG_GUILD_ID)
    else:
        synced = await bot.tree.sync()
        log.info("🌐 Synced %d global commands (may take ~1h)", len(synced))

    for cmd in bot.tree.walk_commands():
        log.info("• /%s – %s", cmd.qualified_name, cmd.description or "(no desc)")

###############################################################################
# Main routine ---------------------------------------------------------------
###############################################################################
async def main() -> None:
    state = BotState.from_settings(settings)
    bot.state = state

    state.cm.schedule_refresh(settings.cm_refresh_interval)

    health_task = None
    if settings.HEALTH_PORT:
        server = uvicorn.Server(uvicorn.Config(
            create_app(state.srcom, state.cm),
            host="0.0.0.0", port=settings.HEALTH_PORT, log_level="warning",
        ))
        health_task = asyncio.create_task(server.serve(), name="health-server")

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, lambda: asyncio.create_task(bot.close()))
    except NotImplementedError:  # Windows
        pass

    try:
        await load_all_extensions()
        await bot.start(settings.DISCORD_TOKEN)
    finally:
        log.info("Shutting down")
        if health_task is not None:
            health_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await health_task
        await state.close()
        if not bot.is_closed():
            await bot.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
