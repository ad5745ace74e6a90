import discord
from discord import app_commands
from discord.ext import commands
import logging
import os
from typing import Dict, Optional

from .data_manager import DataManager
from .config_manager import ConfigManager
from .quiz_controller import QuizController
from .quiz_engine import QuizEngine
from .models import Difficulty, OptionStatus, PlayerSession, Round

logger = logging.getLogger(__name__)

OPTION_STYLES: Dict[OptionStatus, discord.ButtonStyle] = {
    OptionStatus.AVAILABLE: discord.ButtonStyle.primary,
    OptionStatus.CORRECT: discord.ButtonStyle.success,
    OptionStatus.WRONG_SELECTION: discord.ButtonStyle.danger,
    OptionStatus.DIMMED: discord.ButtonStyle.secondary,
}

DIFFICULTY_CHOICES = [
    app_commands.Choice(name=f"{d.label} ({d.options_count} options)", value=d.value)
    for d in Difficulty
]


def build_round_embed(engine: QuizEngine) -> discord.Embed:
    """Render the live round of a game, including feedback once answered."""
    current_round = engine.current_round
    feedback = engine.feedback

    if feedback is None:
        color = 0x00b0f4
    elif feedback.type == "success":
        color = 0x00ff00
    else:
        color = 0xff0000

    embed = discord.Embed(
        title="🌍 Which country does this flag belong to?",
        description=f"# {current_round.target.flag}" if current_round else "Loading game...",
        color=color
    )
    embed.add_field(name="🏆 Score", value=str(engine.score), inline=True)
    embed.add_field(
        name="🎚️ Difficulty",
        value=f"{engine.difficulty.label} ({engine.difficulty.options_count} options)",
        inline=True
    )

    if feedback is not None:
        embed.add_field(name="Result", value=feedback.message, inline=False)
        embed.set_footer(text="Next flag coming up...")
    else:
        embed.set_footer(text="Pick a country below")
    return embed


class RoundView(discord.ui.View):
    """One button per option of a round. Only the session's player may press them."""

    def __init__(self, bot: "FlagQuizBot", session: PlayerSession, quiz_round: Round):
        super().__init__(timeout=None)
        self.bot = bot
        self.channel_id = session.channel_id
        self.user_id = session.user_id
        self.round_number = quiz_round.number

        engine = session.engine
        for option in quiz_round.options:
            button = discord.ui.Button(
                label=option.name,
                style=OPTION_STYLES[engine.option_status(option)],
                disabled=engine.answered
            )
            button.callback = self._make_callback(option.name)
            self.add_item(button)

    def _make_callback(self, country_name: str):
        async def callback(interaction: discord.Interaction):
            await self.bot.handle_guess(
                interaction,
                self.channel_id,
                self.user_id,
                self.round_number,
                country_name
            )
        return callback


class FlagQuizBot(commands.Bot):
    """Discord bot for playing the flag quiz"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.quiz_controller: Optional[QuizController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            self.apply_configuration()

            self.data_manager = DataManager(self.config_manager.get_catalog_path())
            self.load_catalog()

            self.quiz_controller = QuizController(
                self.data_manager,
                self.config_manager,
                round_presenter=self.present_round
            )

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def apply_configuration(self):
        """Apply settings from the configuration file to the config manager."""
        errors = self.config_manager.apply_config(self.app_config.get('quiz', {}))
        for error in errors:
            logger.warning(f"Configuration ignored: {error}")

    def load_catalog(self):
        """Load the country catalog and report its health"""
        countries = self.data_manager.load_catalog()
        logger.info(f"Loaded {len(countries)} countries")

        for error in self.data_manager.get_load_errors():
            logger.warning(f"Catalog loading error: {error}")

        health = self.config_manager.get_configuration_health_check(len(countries))
        for warning in health['warnings']:
            logger.warning(warning)
        for error in health['errors']:
            logger.error(error)

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="play", description="Start a flag quiz game")
        @app_commands.describe(difficulty="How many countries to choose from")
        @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
        async def play_command(interaction: discord.Interaction, difficulty: Optional[str] = None):
            await self.handle_play(interaction, difficulty)

        @self.tree.command(name="difficulty", description="Change difficulty (resets your score)")
        @app_commands.describe(level="New difficulty level")
        @app_commands.choices(level=DIFFICULTY_CHOICES)
        async def difficulty_command(interaction: discord.Interaction, level: str):
            await self.handle_difficulty(interaction, level)

        @self.tree.command(name="reset", description="Reset your score and start over")
        async def reset_command(interaction: discord.Interaction):
            await self.handle_reset(interaction)

        @self.tree.command(name="score", description="Show your score and progress")
        async def score_command(interaction: discord.Interaction):
            await self.handle_score(interaction)

        @self.tree.command(name="stop", description="End your game")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.quiz_controller is not None:
            self.quiz_controller.shutdown()
        await super().close()

    async def send_round(self, interaction: discord.Interaction, session: PlayerSession, content: str = None):
        """Reply to an interaction with the session's live round"""
        engine = session.engine
        await interaction.response.send_message(
            content=content,
            embed=build_round_embed(engine),
            view=RoundView(self, session, engine.current_round)
        )

    async def present_round(self, session: PlayerSession, quiz_round: Round):
        """Post a round started by the advance timer to the session's channel"""
        if session.channel is None:
            logger.debug(f"No channel to present round {quiz_round.number} for user {session.user_id}")
            return

        try:
            await session.channel.send(
                embed=build_round_embed(session.engine),
                view=RoundView(self, session, quiz_round)
            )
        except discord.HTTPException as e:
            logger.error(f"Failed to present round {quiz_round.number} in channel {session.channel_id}: {e}")

    async def handle_guess(
        self,
        interaction: discord.Interaction,
        channel_id: int,
        user_id: int,
        round_number: int,
        country_name: str
    ):
        """Handle a click on one of a round's option buttons"""
        try:
            if interaction.user.id != user_id:
                await self.send_info_response(
                    interaction,
                    "This is someone else's game. Start your own with `/play`."
                )
                return

            session = self.quiz_controller.get_session(channel_id, user_id)
            current_round = session.engine.current_round if session else None
            if current_round is None or current_round.number != round_number:
                await self.send_info_response(interaction, "This round is already over.")
                return

            result = self.quiz_controller.submit_guess(channel_id, user_id, country_name)
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'])
                return

            if result['ignored']:
                await interaction.response.defer()
                return

            await interaction.response.edit_message(
                embed=build_round_embed(session.engine),
                view=RoundView(self, session, current_round)
            )

        except discord.HTTPException as e:
            logger.error(f"Failed to update round after guess: {e}")

    async def handle_play(self, interaction: discord.Interaction, difficulty: Optional[str] = None):
        """Handle /play command"""
        try:
            chosen = Difficulty(difficulty) if difficulty else None
            result = self.quiz_controller.start_game(
                interaction.channel_id,
                interaction.user.id,
                chosen,
                interaction.channel
            )

            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Cannot Start Game")
                return

            session = self.quiz_controller.get_session(interaction.channel_id, interaction.user.id)
            await self.send_round(interaction, session)

        except discord.HTTPException as e:
            logger.error(f"Error in play command: {e}")

    async def handle_difficulty(self, interaction: discord.Interaction, level: str):
        """Handle /difficulty command"""
        try:
            result = self.quiz_controller.set_difficulty(
                interaction.channel_id,
                interaction.user.id,
                Difficulty(level)
            )

            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Cannot Change Difficulty")
                return

            session = self.quiz_controller.get_session(interaction.channel_id, interaction.user.id)
            await self.send_round(interaction, session, f"🎚️ {result['message']}")

        except discord.HTTPException as e:
            logger.error(f"Error in difficulty command: {e}")

    async def handle_reset(self, interaction: discord.Interaction):
        """Handle /reset command"""
        try:
            result = self.quiz_controller.reset_game(interaction.channel_id, interaction.user.id)

            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Cannot Reset Game")
                return

            session = self.quiz_controller.get_session(interaction.channel_id, interaction.user.id)
            await self.send_round(interaction, session, "🔄 Score reset. Good luck!")

        except discord.HTTPException as e:
            logger.error(f"Error in reset command: {e}")

    async def handle_score(self, interaction: discord.Interaction):
        """Handle /score command"""
        try:
            progress = self.quiz_controller.get_session_progress(interaction.channel_id, interaction.user.id)
            if progress is None:
                await self.send_info_response(interaction, "You have no game running here. Start one with `/play`.")
                return

            rounds_played = progress['rounds_played']
            accuracy = (progress['correct_answers'] / rounds_played * 100) if rounds_played else 0.0

            embed = discord.Embed(title="🏆 Your Game", color=0x00b0f4)
            embed.add_field(name="Score", value=str(progress['score']), inline=True)
            embed.add_field(name="Difficulty", value=progress['difficulty'], inline=True)
            embed.add_field(
                name="Answered",
                value=f"{rounds_played} flags ({accuracy:.0f}% correct)",
                inline=False
            )
            await interaction.response.send_message(embed=embed, ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Error in score command: {e}")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        try:
            result = self.quiz_controller.stop_game(interaction.channel_id, interaction.user.id)

            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ No Game")
                return

            final = result['session_info']
            embed = discord.Embed(
                title="🏁 Game Over",
                description=f"Final score: **{final['score']}** on {final['difficulty']}",
                color=0xffaa00
            )
            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            logger.error(f"Error in stop command: {e}")

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            embed = discord.Embed(
                title="🌍 Flag Quiz Help",
                description="Guess which country each flag belongs to. Every correct answer is worth one point.",
                color=0x00b0f4
            )
            embed.add_field(
                name="🎮 Commands",
                value=(
                    "`/play [difficulty]` - Start a game\n"
                    "`/difficulty <level>` - Change difficulty (resets score)\n"
                    "`/reset` - Reset your score\n"
                    "`/score` - Show your progress\n"
                    "`/stop` - End your game"
                ),
                inline=False
            )
            embed.add_field(
                name="🎚️ Difficulty",
                value="\n".join(f"{d.label}: {d.options_count} options" for d in Difficulty),
                inline=False
            )
            embed.add_field(
                name="⚙️ Settings",
                value=self.config_manager.get_settings_summary(),
                inline=False
            )
            await interaction.response.send_message(embed=embed, ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send an ephemeral error embed"""
        await self._send_ephemeral_embed(interaction, title, message, 0xff0000)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send an ephemeral information embed"""
        await self._send_ephemeral_embed(interaction, title, message, 0x00b0f4)

    async def _send_ephemeral_embed(self, interaction: discord.Interaction, title: str, message: str, color: int):
        embed = discord.Embed(title=title, description=message, color=color)
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to send response embed: {e}")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = FlagQuizBot(config)

    try:
        logger.info("Starting Flag Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
