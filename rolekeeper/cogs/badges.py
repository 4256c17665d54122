# cogs/badges.py
# ============================================================================
#  Badge commands + scheduled role sync
#  • /analyze, /user, /report : analyses on a definition file (attached or
#    the one stored for the server)
#  • /server … : definition file, badge roles, dry run, manual refresh
#  • role_sync_loop : keeps the home guild's badge roles up to date
# ============================================================================

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import discord
from discord import app_commands
from discord.ext import commands, tasks

from rolekeeper.analyzer.report import full_analysis, requirement_rows
from rolekeeper.analyzer.role_definition import RoleDefinition, format_requirement, load_definition
from rolekeeper.analyzer.user import CmAccount, SrcomAccount, analyze_user, group_connections
from rolekeeper.config import settings
from rolekeeper.errors import ConfigError, RoleManagerError
from rolekeeper.server_config import ServerConfig, read_server_definition, write_server_definition
from rolekeeper.services.role_sync import update_badge_roles
from rolekeeper.state import BotState

log = logging.getLogger(__name__)

CONFIG_DIR = Path(settings.SERVER_CONFIG_DIR)
DEFINITION_DIR = Path(settings.SERVER_DEFINITION_DIR)

EMBED_MAX_FIELDS = 25
FIELD_MAX_LEN = 1024


def _clip(text: str, limit: int = FIELD_MAX_LEN) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _error_embed(error: Exception) -> discord.Embed:
    return discord.Embed(title="Failed to execute command", description=_clip(str(error), 4000),
                         color=discord.Color.red())


async def _guild_members(guild: discord.Guild) -> List[discord.Member]:
    return [m async for m in guild.fetch_members(limit=None) if not m.bot]


class BadgesCog(commands.Cog):
    """Badge analysis commands and the periodic role sync."""

    server = app_commands.Group(
        name="server", description="Manage skill roles in this server",
        guild_only=True, default_permissions=discord.Permissions(manage_guild=True),
    )
    roles = app_commands.Group(name="roles", description="Manage roles used for badges in this server", parent=server)

    def __init__(self, bot: commands.Bot, state: BotState):
        self.bot = bot
        self.state = state

    async def cog_load(self):
        if settings.HOME_GUILD_ID:
            self.role_sync_loop.change_interval(seconds=settings.ROLE_SYNC_SECONDS)
            self.role_sync_loop.start()

    async def cog_unload(self):
        self.role_sync_loop.cancel()

    async def cog_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        original = getattr(error, "original", error)
        if isinstance(original, RoleManagerError):
            log.warning("Command /%s failed: %s", interaction.command.qualified_name if interaction.command else "?", original)
        else:
            log.error("Unexpected error in command", exc_info=original)

        send = interaction.followup.send if interaction.response.is_done() else interaction.response.send_message
        try:
            await send(embed=_error_embed(original), ephemeral=True)
        except discord.HTTPException as e:
            log.error(f"Sending error response failed: {e}")

    # ───────────────────────────── Helpers ─────────────────────────────
    async def _definition(self, interaction: discord.Interaction,
                          attachment: Optional[discord.Attachment]) -> Tuple[RoleDefinition, bytes, str]:
        """Definition from the attachment, or the one stored for this server."""
        if attachment is not None:
            if attachment.size > settings.MAX_DEFINITION_BYTES:
                raise ConfigError("Definition files cannot be this large. "
                                  "If you wish to use this definition file, please contact the developers.")
            content = await attachment.read()
            return load_definition(content), content, attachment.filename

        if interaction.guild_id is None:
            raise ConfigError("This command can only be run in servers.")
        definition = read_server_definition(DEFINITION_DIR, interaction.guild_id)
        if definition is None:
            raise ConfigError("This server doesn't have a definition file set for it! Try attaching one.")
        filename = f"{interaction.guild_id}.json5"
        return definition, (DEFINITION_DIR / filename).read_bytes(), filename

    def _analysis_guild(self, interaction: discord.Interaction) -> discord.Guild:
        guild = self.bot.get_guild(settings.HOME_GUILD_ID) if settings.HOME_GUILD_ID else None
        guild = guild or interaction.guild
        if guild is None:
            raise ConfigError("This command can only be run in servers.")
        return guild

    # ───────────────────────────── /analyze ────────────────────────────
    @app_commands.command(name="analyze", description="Provides a general analysis of a skill role file")
    @app_commands.describe(definition_file="Json5 file describing skill role definitions")
    async def analyze(self, interaction: discord.Interaction, definition_file: discord.Attachment):
        await interaction.response.defer()

        definition, content, filename = await self._definition(interaction, definition_file)
        members = await _guild_members(self._analysis_guild(interaction))
        connections = await self.state.connections()

        report = await full_analysis(definition, connections, [m.id for m in members],
                                     self.state.srcom, self.state.cm)

        embed = discord.Embed(
            description=f"Analyzed **{report.total_users} Users** "
                        f"({report.steam_users} CM, {report.srcom_users} SRC)"
        )
        embed.set_footer(text=f"Context: {filename}")
        for name, value in (await report.badge_summary(self.state.srcom))[:EMBED_MAX_FIELDS]:
            embed.add_field(name=_clip(name, 256), value=_clip(value) or "-", inline=False)

        await interaction.followup.send(embed=embed, file=discord.File(io.BytesIO(content), filename=filename))

    # ───────────────────────────── /user ───────────────────────────────
    @app_commands.command(name="user", description="Provides an analysis of a user under a skill role file")
    @app_commands.describe(user="User to analyze", definition_file="Json5 file describing skill role definitions")
    async def user(self, interaction: discord.Interaction,
                   user: Optional[discord.User] = None,
                   definition_file: Optional[discord.Attachment] = None):
        await interaction.response.defer()

        definition, content, filename = await self._definition(interaction, definition_file)
        target = user or interaction.user
        log.info("Analyzing %s", target.name)

        connections = await self.state.connections(target.id)
        analysis = await analyze_user(target.id, definition, connections,
                                      self.state.srcom, self.state.cm, exhaustive=True)

        accounts = []
        for account in analysis.external_accounts:
            if isinstance(account, CmAccount):
                accounts.append(f"- [{account.username} (Steam)]({account.link})")
            elif isinstance(account, SrcomAccount):
                accounts.append(f"- [{account.username} (Speedrun.com)]({account.link})")

        embed = discord.Embed(
            color=getattr(target, "accent_color", None) or discord.Color.dark_grey(),
            description=f"**__External Accounts__**\n{chr(10).join(accounts) or 'None linked'}\n**__Badges__**",
        )
        embed.set_author(name=target.name, icon_url=target.display_avatar.url)
        embed.set_thumbnail(url=target.display_avatar.url)
        embed.set_footer(text=f"Context: {filename}")

        for badge in analysis.badges[:EMBED_MAX_FIELDS]:
            lines = []
            for met in badge.met_requirements:
                lines.append(f"{await format_requirement(met.definition, self.state.srcom)}\n - {met.cause}")
            embed.add_field(name=_clip(badge.definition.name, 256), value=_clip("\n".join(lines)), inline=False)

        await interaction.followup.send(embed=embed, file=discord.File(io.BytesIO(content), filename=filename))

    # ───────────────────────────── /report ─────────────────────────────
    @app_commands.command(name="report",
                          description="Generates a CSV file reporting which users satisfy which requirements of a badge")
    @app_commands.describe(badge_name="Badge to analyze", definition_file="Json5 file describing skill role definitions")
    async def report(self, interaction: discord.Interaction, badge_name: str,
                     definition_file: Optional[discord.Attachment] = None):
        await interaction.response.defer()

        definition, content, filename = await self._definition(interaction, definition_file)
        badge = definition.badge(badge_name)
        if badge is None:
            return await interaction.followup.send(f"This definition file does not contain a badge `{badge_name}`")

        members = await _guild_members(self._analysis_guild(interaction))
        by_user = group_connections(await self.state.connections())

        analyses = []
        for member in members:
            analysis = await analyze_user(member.id, definition, by_user.get(member.id, []),
                                          self.state.srcom, self.state.cm, exhaustive=True)
            analyses.append((member.name, analysis))

        header = ["Discord User", "Num Reqs Satisfied"]
        for req in badge.requirements:
            header.append(await format_requirement(req, self.state.srcom))
        rows = requirement_rows(badge, analyses)

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(header)
        writer.writerows(rows)

        embed = discord.Embed(
            description=f"{len(rows)}/{len(members)} Discord users meet the requirement for badge {badge_name}"
        )
        embed.set_footer(text=f"Context: {filename}")
        await interaction.followup.send(embed=embed, files=[
            discord.File(io.BytesIO(buffer.getvalue().encode("utf-8")), filename=f"{badge_name}.csv"),
            discord.File(io.BytesIO(content), filename=filename),
        ])

    # ───────────────────────────── /server … ───────────────────────────
    @server.command(name="redefine", description="Redefine the skill role definition used for this server")
    @app_commands.describe(definition_file="Json5 file describing skill role definitions")
    async def redefine(self, interaction: discord.Interaction, definition_file: discord.Attachment):
        await interaction.response.defer()

        # Only a definition that loads is stored
        _, content, _ = await self._definition(interaction, definition_file)
        write_server_definition(DEFINITION_DIR, interaction.guild_id, content)
        await interaction.followup.send("Updated definitions file for this server!")

    @server.command(name="refresh", description="Manually trigger a role assignments refresh")
    async def refresh(self, interaction: discord.Interaction):
        await interaction.response.defer()
        summary = await self.sync_guild(interaction.guild)
        if summary is None:
            return await interaction.followup.send("This server has no configuration or definition file yet.")
        await interaction.followup.send(
            f"Updated badges in server: {len(summary.added)} added, {len(summary.removed)} removed"
            + (" (dry run)" if summary.dry_run else "")
        )

    @server.command(name="dryrun",
                    description="Set whether refreshes should perform a \"dry run\" or actually change roles")
    @app_commands.describe(enabled="Whether the server should perform \"Dry run\" refreshes instead of normal")
    async def dryrun(self, interaction: discord.Interaction, enabled: bool):
        config = ServerConfig.read(CONFIG_DIR, interaction.guild_id) or ServerConfig()
        config.dry_run = enabled
        config.write(CONFIG_DIR, interaction.guild_id)
        await interaction.response.send_message("Updated this server's `dryrun` attribute")

    @roles.command(name="list", description="List roles and badges used in this server")
    async def roles_list(self, interaction: discord.Interaction):
        config = ServerConfig.read(CONFIG_DIR, interaction.guild_id) or ServerConfig()
        lines = ["Current Badge Roles:"]
        lines += [f"- **{badge}** - <@&{role_id}>" for badge, role_id in config.badge_roles.items()]
        await interaction.response.send_message("\n".join(lines),
                                                allowed_mentions=discord.AllowedMentions.none())

    @roles.command(name="add", description="Add a badge and a corresponding role to give on this server")
    @app_commands.describe(badge_name="The badge name (as used in Json5 definition files)",
                           role="The role assigned to this badge")
    async def roles_add(self, interaction: discord.Interaction, badge_name: str, role: discord.Role):
        config = ServerConfig.read(CONFIG_DIR, interaction.guild_id) or ServerConfig()
        config.badge_roles[badge_name] = role.id
        config.write(CONFIG_DIR, interaction.guild_id)
        await interaction.response.send_message("Updated badge roles for this server",
                                                allowed_mentions=discord.AllowedMentions.none())

    @roles.command(name="remove", description="Remove a badge from being given on this server")
    @app_commands.describe(badge_name="The badge name (as used in Json5 definition files)")
    async def roles_remove(self, interaction: discord.Interaction, badge_name: str):
        config = ServerConfig.read(CONFIG_DIR, interaction.guild_id) or ServerConfig()
        if config.badge_roles.pop(badge_name, None) is None:
            return await interaction.response.send_message(f"Badge not found with name `{badge_name}` in this server")
        config.write(CONFIG_DIR, interaction.guild_id)
        await interaction.response.send_message("Updated badge roles for this server")

    # ───────────────────────────── Role sync ───────────────────────────
    async def sync_guild(self, guild: discord.Guild):
        config = ServerConfig.read(CONFIG_DIR, guild.id)
        if config is None:
            log.warning("Guild %s doesn't have a set configuration", guild.id)
            return None
        definition = read_server_definition(DEFINITION_DIR, guild.id)
        if definition is None:
            log.warning("Guild %s doesn't have a definition file", guild.id)
            return None

        return await update_badge_roles(
            guild, definition, config,
            await self.state.connections(),
            await self.state.manual_assignments(),
            self.state.srcom, self.state.cm,
        )

    @tasks.loop(seconds=60)
    async def role_sync_loop(self):
        guild = self.bot.get_guild(settings.HOME_GUILD_ID)
        if guild is None:
            log.warning("Home guild %s not available, skipping role sync", settings.HOME_GUILD_ID)
            return
        try:
            await self.sync_guild(guild)
        except (RoleManagerError, discord.HTTPException):
            log.exception("Encountered error while updating badge roles")

    @role_sync_loop.before_loop
    async def before_role_sync(self):
        await self.bot.wait_until_ready()


async def setup(bot: commands.Bot):
    await bot.add_cog(BadgesCog(bot, bot.state))
