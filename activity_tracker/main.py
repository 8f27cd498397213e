from __future__ import annotations

import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .commands import register_commands
from .config import Config, load_config
from .db import Database
from .reporter import Reporter
from .tracker import TimeTracker


class ActivityTrackerBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.tracker = TimeTracker(db=db, tz=config.timezone, strict_ordering=config.strict_event_ordering)
        self.reporter = Reporter(config.timezone)

        self.logger = logging.getLogger("activity-tracker-bot")

    async def setup_hook(self) -> None:
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")

        # Fail fast when the configured guild is not reachable.
        if self.get_guild(self.config.guild_id) is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            await self.close()

    async def close(self) -> None:
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(config.db_path)
    db.initialize()

    bot = ActivityTrackerBot(config=config, db=db)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
