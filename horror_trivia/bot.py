import discord
from discord.ext import commands
import logging
from typing import Optional
import os

from .config_manager import ConfigManager
from .game_views import COLOR_INFO, DiscordGameView, send_stop_prompt
from .quiz_controller import GameState, QuizController, SessionConflictError
from .quiz_engine import QuizEngine
from .telemetry import TelemetrySink
from .trivia_api import TriviaApiClient

logger = logging.getLogger(__name__)


class QuizBot(commands.Bot):
    """Discord bot that runs horror trivia games"""

    def __init__(self, config=None):
        # Slash commands and buttons only need the guilds intent
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.config_manager: Optional[ConfigManager] = None
        self.api_client: Optional[TriviaApiClient] = None
        self.quiz_controller: Optional[QuizController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            problems = self.config_manager.apply_config(self.app_config)
            for problem in problems:
                logger.warning(f"Config: {problem}")

            settings = self.config_manager.get_game_settings()
            self.api_client = TriviaApiClient(settings)
            self.quiz_controller = QuizController(
                self.config_manager,
                self.api_client,
                engine=QuizEngine(),
                telemetry=TelemetrySink(self.api_client, settings.user_agent)
            )

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="How to play horror trivia")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="trivia", description="Open the horror trivia start screen in this channel")
        async def trivia_command(interaction: discord.Interaction):
            await self.handle_trivia(interaction)

        @self.tree.command(name="contest", description="Play the horror trivia contest with your contest link")
        @discord.app_commands.describe(link="Contest link from your registration email")
        async def contest_command(interaction: discord.Interaction, link: Optional[str] = None):
            await self.handle_contest(interaction, link)

        @self.tree.command(name="stop", description="Stop your current trivia game")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="Show the trivia game in this channel")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")

        print(f"🎃 {self.user} is Ready and Online!")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        """Finish games and reports before disconnecting"""
        if self.quiz_controller is not None:
            await self.quiz_controller.shutdown()
        if self.api_client is not None:
            await self.api_client.close()
        await super().close()

    async def _create_game(self, interaction: discord.Interaction):
        """Create a game bound to the interaction's channel, or explain why not."""
        try:
            return await self.quiz_controller.create_game(
                interaction.channel_id,
                owner_id=interaction.user.id,
                view=DiscordGameView(interaction.channel)
            )
        except SessionConflictError:
            game = self.quiz_controller.get_game(interaction.channel_id)
            if game is not None and game.owner_id == interaction.user.id:
                message = "You already have a game running here. Use /stop to end it first."
            else:
                message = "Someone is already playing in this channel. Wait for their game to end."
            await self.send_error_response(interaction, message, "👻 Game In Progress")
            return None

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🎃 Horror Trivia",
                description="Answer horror movie questions against the clock. Faster answers earn more points.",
                color=0xff6600
            )

            help_embed.add_field(
                name="🎮 Commands",
                value=(
                    "`/trivia` - Open the start screen\n"
                    "`/contest [link]` - Play the contest with your contest link\n"
                    "`/stop` - Stop your game and keep your score\n"
                    "`/status` - Show the game in this channel\n"
                    "`/help` - Show this message"
                ),
                inline=False
            )

            help_embed.add_field(
                name="🧮 Scoring",
                value=(
                    "A correct answer is worth up to 10 points, dropping as the clock runs down "
                    "(never below 1). Wrong answers and timeouts score 0."
                ),
                inline=False
            )

            settings_summary = self.config_manager.get_settings_summary()
            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{settings_summary}\n```",
                inline=False
            )

            help_embed.set_footer(text="Only the player who started a game can press its buttons")

            await interaction.response.send_message(embed=help_embed, ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help", "❌ Help Error")

    async def handle_trivia(self, interaction: discord.Interaction):
        """Handle /trivia command"""
        game = await self._create_game(interaction)
        if game is None:
            return

        await self.send_info_response(interaction, "Your game is ready below. Good luck! 🔪", "🎃 Horror Trivia")
        await game.view.show_start(game)

    async def handle_contest(self, interaction: discord.Interaction, link: Optional[str] = None):
        """Handle /contest command, starting straight away when a link is given"""
        game = await self._create_game(interaction)
        if game is None:
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        await game.open_contest_entry()

        if not link:
            await self.send_info_response(
                interaction,
                "Press **Enter Link** on the game message and paste your contest link.",
                "🏆 Contest Mode"
            )
            return

        await game.submit_contest_link(link)
        if game.state is GameState.CONTEST_LINK_ENTRY:
            await self.send_error_response(
                interaction,
                game.last_error or "Invalid contest link.",
                "❌ Contest Link"
            )
        else:
            player = game.session.player.full_name if game.session and game.session.player else "player"
            await self.send_info_response(interaction, f"Good luck, {player}! 🩸", "🏆 Contest Started")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        game = self.quiz_controller.get_game(interaction.channel_id)
        if game is None or game.state not in (GameState.QUESTION, GameState.ANSWER_FEEDBACK):
            await self.send_info_response(
                interaction,
                "There is no game in progress in this channel.",
                "ℹ️ No Active Game"
            )
            return

        if game.owner_id is not None and game.owner_id != interaction.user.id:
            await self.send_error_response(
                interaction,
                "Only the player who started this game can stop it.",
                "👻 Not Your Game"
            )
            return

        await send_stop_prompt(interaction, game)

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            summary = self.quiz_controller.get_status_summary(interaction.channel_id)
            embed = discord.Embed(
                title="📊 Trivia Status",
                description=summary,
                color=COLOR_INFO
            )

            game = self.quiz_controller.get_game(interaction.channel_id)
            if game is not None and game.session is not None:
                timer_status = self.quiz_controller.quiz_engine.get_timer_status(game.session.session_id)
                if timer_status and timer_status['is_running']:
                    embed.add_field(
                        name="⏰ Current Timer",
                        value=f"{timer_status['clock']} clock, {timer_status['remaining_time']} seconds remaining",
                        inline=False
                    )

            embed.set_footer(text="Use /help to see all available commands")
            await interaction.response.send_message(embed=embed, ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Error in status command: {e}")
            await self.send_error_response(interaction, "Failed to get game status", "❌ Status Error")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xff0000
            )
            embed.set_footer(text="If this error persists, try using /help for available commands")

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=COLOR_INFO
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Horror Trivia Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
