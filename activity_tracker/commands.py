from datetime import date

import discord
from discord import app_commands

from .tracker import ActivityLogRetrievalError, ActivityQuery

NO_MENTIONS = discord.AllowedMentions.none()


def _parse_date_range(start_date: str | None, end_date: str | None) -> tuple[date | None, date | None]:
    try:
        start = date.fromisoformat(start_date.strip()) if start_date else None
        end = date.fromisoformat(end_date.strip()) if end_date else None
    except ValueError as exc:
        raise ValueError("Dates must use the YYYY-MM-DD format.") from exc

    if start is not None and end is not None and start > end:
        raise ValueError("start_date must not be after end_date.")
    return start, end


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    async def reject_outside_guild(interaction) -> bool:
        if interaction.guild is None or interaction.guild.id != bot.config.guild_id:
            await interaction.response.send_message("This command can only be used in the configured server.", ephemeral=True)
            return True
        return False

    def remember_member(user) -> None:
        # Keep display names current so activity listings sort and render by name.
        role_name = user.top_role.name if isinstance(user, discord.Member) else None
        bot.db.upsert_user(str(user.id), name=user.display_name, role_name=role_name)

    async def send_activity(interaction, title: str, query: ActivityQuery) -> None:
        try:
            activity = bot.tracker.get_activity_logs(query)
        except ActivityLogRetrievalError:
            bot.logger.exception("Activity query failed")
            await interaction.response.send_message("Failed to retrieve activity logs.", ephemeral=True)
            return

        content = bot.reporter.build_activity_content(title, activity)
        await interaction.response.send_message(content, ephemeral=True, allowed_mentions=NO_MENTIONS)

    @bot.tree.command(name="status", description="Show tracker status", guild=guild_scope)
    async def status(interaction):
        now_local = bot.tracker.clock().astimezone(bot.config.timezone)
        lines = [
            "Activity tracker status: online",
            f"Guild ID: `{bot.config.guild_id}`",
            f"Timezone: `{bot.config.timezone.key}`",
            f"Current local time: `{now_local.isoformat()}`",
            f"Records per page: `{bot.config.page_limit}`",
            f"Strict event ordering: `{bot.config.strict_event_ordering}`",
        ]
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    @bot.tree.command(name="tracking", description="Turn your time tracking on or off", guild=guild_scope)
    @app_commands.describe(enabled="True starts a tracked session, False ends it")
    async def tracking(interaction, enabled: bool):
        if await reject_outside_guild(interaction):
            return

        remember_member(interaction.user)
        changed = bot.tracker.set_tracking_enabled(str(interaction.user.id), enabled)

        state = "on" if enabled else "off"
        if changed:
            bot.logger.info("Tracking turned %s: user=%s", state, interaction.user.id)
            message = f"Time tracking is now {state}."
        else:
            message = f"Time tracking was already {state}."
        await interaction.response.send_message(message, ephemeral=True)

    @bot.tree.command(name="settings", description="Show your tracking setting", guild=guild_scope)
    async def settings(interaction):
        if await reject_outside_guild(interaction):
            return

        enabled = bot.tracker.is_tracking_enabled(str(interaction.user.id))
        await interaction.response.send_message(
            f"Time tracking: `{'on' if enabled else 'off'}`",
            ephemeral=True,
        )

    @bot.tree.command(name="my-activity", description="Show your tracked time per day", guild=guild_scope)
    @app_commands.describe(
        page="Page number, starting at 1",
        start_date="First day to include (YYYY-MM-DD)",
        end_date="Last day to include (YYYY-MM-DD)",
    )
    async def my_activity(interaction, page: int = 1, start_date: str | None = None, end_date: str | None = None):
        if await reject_outside_guild(interaction):
            return

        try:
            start, end = _parse_date_range(start_date, end_date)
        except ValueError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return

        remember_member(interaction.user)
        query = ActivityQuery(
            page=page,
            limit=bot.config.page_limit,
            user_id=str(interaction.user.id),
            start_date=start,
            end_date=end,
        )
        await send_activity(interaction, "Your tracked time", query)

    @bot.tree.command(name="activity", description="Show tracked time per member and day", guild=guild_scope)
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.describe(
        member="Only show this member",
        page="Page number, starting at 1",
        start_date="First day to include (YYYY-MM-DD)",
        end_date="Last day to include (YYYY-MM-DD)",
    )
    async def activity(
        interaction,
        member: discord.Member | None = None,
        page: int = 1,
        start_date: str | None = None,
        end_date: str | None = None,
    ):
        if await reject_outside_guild(interaction):
            return

        try:
            start, end = _parse_date_range(start_date, end_date)
        except ValueError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return

        if member is not None:
            remember_member(member)
        query = ActivityQuery(
            page=page,
            limit=bot.config.page_limit,
            user_id=str(member.id) if member is not None else None,
            start_date=start,
            end_date=end,
        )
        await send_activity(interaction, "Tracked time by member", query)

    @bot.tree.command(name="login-logs", description="List your raw tracking events", guild=guild_scope)
    @app_commands.describe(page="Page number, starting at 1")
    async def login_logs(interaction, page: int = 1):
        if await reject_outside_guild(interaction):
            return

        try:
            logs = bot.tracker.get_login_logs(str(interaction.user.id), page=page)
        except ActivityLogRetrievalError:
            bot.logger.exception("Login log query failed")
            await interaction.response.send_message("Failed to get login logs.", ephemeral=True)
            return

        await interaction.response.send_message(bot.reporter.build_login_log_content(logs), ephemeral=True)
