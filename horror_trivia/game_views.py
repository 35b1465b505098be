"""
Discord rendering for trivia games.
Each game lives in one channel message whose embed and buttons are replaced
as the game moves between screens.
"""
import logging
import time
from typing import List, Optional

import discord

from .models import MAX_OPTIONS, AnswerResult, GameMode, GameSummary, Question
from .quiz_controller import GameView, TriviaGame
from .quiz_engine import QuizEngine
from .trivia_api import QuestionFetchError

logger = logging.getLogger(__name__)

OPTION_LETTERS = "ABCDEFGH"[:MAX_OPTIONS]
FIELD_VALUE_LIMIT = 1024
DESCRIPTION_LIMIT = 4096
BUTTON_LABEL_LIMIT = 80
REFRESH_EVERY = 5  # seconds between countdown edits

COLOR_START = 0xff6600
COLOR_QUESTION = 0x00ff00
COLOR_WARNING = 0xff6600
COLOR_DANGER = 0xff0000
COLOR_CORRECT = 0x2ecc71
COLOR_INCORRECT = 0xe74c3c
COLOR_INFO = 0x6699ff


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"


def _options_text(options: List[str]) -> str:
    """Lettered option list that fits in one embed field."""
    prefixes = [f"**{letter}.** " for letter in OPTION_LETTERS[:len(options)]]
    if not prefixes:
        return "-"
    per_line = FIELD_VALUE_LIMIT // len(prefixes) - 1
    return "\n".join(
        prefix + _truncate(option, per_line - len(prefix))
        for prefix, option in zip(prefixes, options)
    )


def _relative_time(seconds: int) -> str:
    """Discord timestamp markup that counts down on the client."""
    return f"<t:{int(time.time()) + seconds}:R>"


def _mode_label(game: TriviaGame) -> str:
    session = game.session
    if session is None:
        return ""
    if session.mode is GameMode.CONTEST:
        return f"🏆 Contest - {session.player.full_name}" if session.player else "🏆 Contest"
    return "🎲 Casual"


def build_start_embed(game: TriviaGame, loading: Optional[str] = None) -> discord.Embed:
    settings = game.settings
    embed = discord.Embed(
        title="🎃 Horror Trivia",
        description="Test your horror movie knowledge. The faster you answer, the more points you earn!",
        color=COLOR_START
    )
    embed.add_field(
        name="🎲 Casual",
        value=f"{settings.casual_seconds} seconds per question, play as long as you like",
        inline=False
    )
    embed.add_field(
        name="🏆 Contest",
        value=f"Have a contest link? {settings.contest_seconds} seconds per question, score goes on the leaderboard",
        inline=False
    )
    if game.last_error:
        embed.add_field(name="❌ Error", value=game.last_error, inline=False)
    if loading:
        embed.set_footer(text=loading)
    return embed


def build_contest_entry_embed(game: TriviaGame, error: Optional[str] = None, loading: Optional[str] = None) -> discord.Embed:
    embed = discord.Embed(
        title="🏆 Contest Mode",
        description="Press **Enter Link** and paste the contest link from your registration email.",
        color=COLOR_START
    )
    embed.add_field(
        name="⏱️ Rules",
        value=f"{game.settings.contest_seconds} seconds per question. Your final score is submitted when the game ends.",
        inline=False
    )
    if error:
        embed.add_field(name="❌ Link Error", value=error, inline=False)
    if loading:
        embed.set_footer(text=loading)
    return embed


def build_question_embed(
    game: TriviaGame,
    question: Question,
    options: List[str],
    number: int,
    remaining: int,
    potential_points: int
) -> discord.Embed:
    session = game.session
    if remaining > 10:
        color, timer_emoji = COLOR_QUESTION, "⏱️"
    elif remaining > 5:
        color, timer_emoji = COLOR_WARNING, "⚠️"
    else:
        color, timer_emoji = COLOR_DANGER, "🚨"

    embed = discord.Embed(
        title=f"💀 Question {number}",
        description=_truncate(question.text, DESCRIPTION_LIMIT),
        color=color
    )
    embed.add_field(
        name=f"{timer_emoji} Time",
        value=f"{remaining}s left (ends {_relative_time(remaining)})",
        inline=True
    )
    embed.add_field(name="🎯 Worth", value=f"{potential_points} points", inline=True)
    embed.add_field(name="📊 Score", value=str(session.score), inline=True)
    embed.add_field(
        name="Options",
        value=_options_text(options),
        inline=False
    )
    if question.image_url and question.image_url.startswith(("http://", "https://")):
        embed.set_image(url=question.image_url)
    embed.set_footer(text=_mode_label(game))
    return embed


def build_feedback_embed(game: TriviaGame, result: AnswerResult, remaining: Optional[int] = None) -> discord.Embed:
    session = game.session
    if result.is_correct:
        title, color = "✅ CORRECT!", COLOR_CORRECT
    elif result.timed_out:
        title, color = "⏰ TIME'S UP!", COLOR_INCORRECT
    else:
        title, color = "❌ INCORRECT!", COLOR_INCORRECT

    embed = discord.Embed(title=title, description=_truncate(result.question.text, DESCRIPTION_LIMIT), color=color)
    embed.add_field(name="Correct Answer", value=f"**{_truncate(result.question.correct_answer, FIELD_VALUE_LIMIT - 4)}**", inline=False)
    if not result.is_correct and not result.timed_out:
        embed.add_field(name="Your Answer", value=_truncate(result.selected_answer, FIELD_VALUE_LIMIT), inline=False)
    if result.question.explanation:
        embed.add_field(name="📖 Explanation", value=_truncate(result.question.explanation, FIELD_VALUE_LIMIT), inline=False)
    embed.add_field(name="Points Earned", value=str(result.points), inline=True)
    embed.add_field(name="📊 Total", value=QuizEngine.progress_text(session), inline=True)

    delay = remaining if remaining is not None else game.settings.advance_delay
    embed.set_footer(text=f"Next question in {delay} seconds, or press Next")
    return embed


def build_game_over_embed(game: TriviaGame, summary: GameSummary) -> discord.Embed:
    embed = discord.Embed(
        title="🪦 Game Over",
        description=summary.message,
        color=COLOR_START
    )
    embed.add_field(name="Final Score", value=f"**{summary.score}** / {summary.max_possible_score}", inline=True)
    embed.add_field(
        name="Correct Answers",
        value=f"{summary.correct_answers} of {summary.questions_answered}",
        inline=True
    )
    embed.add_field(name="Percentage", value=f"{summary.percentage:.0f}%", inline=True)
    if summary.mode is GameMode.CONTEST:
        embed.add_field(
            name="🏆 Contest",
            value="Your score has been submitted. Good luck!",
            inline=False
        )
    embed.set_footer(text="Press Play Again to go back to the start screen")
    return embed


class OwnerOnlyView(discord.ui.View):
    """Base view that only reacts to the player who owns the game."""

    def __init__(self, game: TriviaGame, renderer: "DiscordGameView"):
        super().__init__(timeout=None)
        self.game = game
        self.renderer = renderer

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if self.game.owner_id is None or interaction.user.id == self.game.owner_id:
            return True
        await interaction.response.send_message(
            "👻 This isn't your game. Use /trivia to start your own!",
            ephemeral=True
        )
        return False


class StartView(OwnerOnlyView):
    """Start screen: casual game or contest entry."""

    def __init__(self, game: TriviaGame, renderer: "DiscordGameView", disabled: bool = False):
        super().__init__(game, renderer)
        for item in self.children:
            item.disabled = disabled

    @discord.ui.button(label="Start Game", style=discord.ButtonStyle.success, emoji="🎃")
    async def start_game(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.defer()
        try:
            await self.game.start_casual()
        except QuestionFetchError:
            await interaction.followup.send(
                self.game.last_error or "Failed to load questions. Please try again.",
                ephemeral=True
            )

    @discord.ui.button(label="Contest Mode", style=discord.ButtonStyle.primary, emoji="🏆")
    async def contest_mode(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.defer()
        await self.game.open_contest_entry()


class ContestLinkModal(discord.ui.Modal, title="Enter Contest Link"):
    """Text box for the contest link."""

    link = discord.ui.TextInput(
        label="Contest link",
        placeholder="Paste the link from your registration email",
        max_length=400
    )

    def __init__(self, game: TriviaGame):
        super().__init__()
        self.game = game

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer()
        await self.game.submit_contest_link(self.link.value)


class ContestEntryView(OwnerOnlyView):
    """Contest link entry screen."""

    def __init__(self, game: TriviaGame, renderer: "DiscordGameView", disabled: bool = False):
        super().__init__(game, renderer)
        for item in self.children:
            item.disabled = disabled

    @discord.ui.button(label="Enter Link", style=discord.ButtonStyle.success, emoji="🔗")
    async def enter_link(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.send_modal(ContestLinkModal(self.game))

    @discord.ui.button(label="Back", style=discord.ButtonStyle.secondary)
    async def back(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.defer()
        await self.game.back_to_start()


class StopConfirmView(discord.ui.View):
    """Ephemeral yes/no prompt before abandoning a game."""

    def __init__(self, game: TriviaGame):
        super().__init__(timeout=30)
        self.game = game

    @discord.ui.button(label="Yes, stop", style=discord.ButtonStyle.danger)
    async def confirm(self, interaction: discord.Interaction, button: discord.ui.Button):
        if await self.game.stop(confirmed=True):
            content = "🛑 Game stopped. Your score has been saved."
        else:
            content = "ℹ️ This game has already ended."
        await interaction.response.edit_message(content=content, embed=None, view=None)

    @discord.ui.button(label="Keep playing", style=discord.ButtonStyle.secondary)
    async def cancel(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.edit_message(content="👍 Carry on!", embed=None, view=None)
        await self.game.stop(confirmed=False)


async def send_stop_prompt(interaction: discord.Interaction, game: TriviaGame) -> None:
    await interaction.response.send_message(
        "Are you sure you want to stop the game? Your current score will be saved.",
        view=StopConfirmView(game),
        ephemeral=True
    )


class QuestionView(OwnerOnlyView):
    """Question screen: one button per option plus Stop."""

    def __init__(self, game: TriviaGame, renderer: "DiscordGameView", options: List[str]):
        super().__init__(game, renderer)
        for index, (letter, option) in enumerate(zip(OPTION_LETTERS, options)):
            button = discord.ui.Button(
                label=_truncate(f"{letter}. {option}", BUTTON_LABEL_LIMIT),
                style=discord.ButtonStyle.primary,
                row=index // 2
            )
            button.callback = self._make_answer_callback(index)
            self.add_item(button)

        stop_button = discord.ui.Button(label="Stop", style=discord.ButtonStyle.danger, emoji="🛑", row=4)
        stop_button.callback = self._stop
        self.add_item(stop_button)

    def _make_answer_callback(self, index: int):
        async def callback(interaction: discord.Interaction):
            await interaction.response.defer()
            await self.game.select_answer(index)
        return callback

    async def _stop(self, interaction: discord.Interaction):
        await send_stop_prompt(interaction, self.game)


class FeedbackView(OwnerOnlyView):
    """Answer screen: next question now, or stop."""

    @discord.ui.button(label="Next Question", style=discord.ButtonStyle.success, emoji="➡️")
    async def next_question(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.defer()
        await self.game.advance()

    @discord.ui.button(label="Stop", style=discord.ButtonStyle.danger, emoji="🛑")
    async def stop_game(self, interaction: discord.Interaction, button: discord.ui.Button):
        await send_stop_prompt(interaction, self.game)


class GameOverView(OwnerOnlyView):
    """Game over screen."""

    @discord.ui.button(label="Play Again", style=discord.ButtonStyle.success, emoji="🔁")
    async def play_again(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.defer()
        await self.game.restart()


class DiscordGameView(GameView):
    """Draws a TriviaGame into a single Discord message."""

    def __init__(self, channel: discord.abc.Messageable):
        self.channel = channel
        self.message: Optional[discord.Message] = None
        self._question: Optional[Question] = None
        self._options: List[str] = []
        self._number = 0
        self._result: Optional[AnswerResult] = None
        self._active_view: Optional[discord.ui.View] = None

    async def _render(self, embed: discord.Embed, view: Optional[discord.ui.View]) -> None:
        """Post or edit the game message. Discord errors never break the game."""
        if self._active_view is not None and self._active_view is not view:
            self._active_view.stop()
        self._active_view = view
        try:
            if self.message is None:
                self.message = await self.channel.send(embed=embed, view=view)
            else:
                await self.message.edit(embed=embed, view=view)
        except discord.HTTPException as e:
            logger.error(f"Failed to render game message: {e}")

    async def show_start(self, game: TriviaGame) -> None:
        await self._render(build_start_embed(game), StartView(game, self))

    async def show_contest_entry(self, game: TriviaGame, error: Optional[str] = None) -> None:
        await self._render(build_contest_entry_embed(game, error), ContestEntryView(game, self))

    async def show_loading(self, game: TriviaGame, message: str) -> None:
        if self._active_view is not None and isinstance(self._active_view, ContestEntryView):
            embed = build_contest_entry_embed(game, loading=message)
            view = ContestEntryView(game, self, disabled=True)
        else:
            embed = build_start_embed(game, loading=message)
            view = StartView(game, self, disabled=True)
        await self._render(embed, view)

    async def show_question(self, game: TriviaGame, question: Question, options: List[str], number: int) -> None:
        self._question, self._options, self._number = question, options, number
        remaining = game.session.max_seconds
        embed = build_question_embed(
            game, question, options, number, remaining,
            QuizEngine.calculate_points(remaining, game.session.max_seconds)
        )
        await self._render(embed, QuestionView(game, self, options))

    async def update_countdown(self, game: TriviaGame, remaining: int, potential_points: int) -> None:
        if self.message is None or self._question is None:
            return
        if not 0 < remaining < game.session.max_seconds or remaining % REFRESH_EVERY:
            return
        embed = build_question_embed(game, self._question, self._options, self._number, remaining, potential_points)
        try:
            await self.message.edit(embed=embed)
        except discord.HTTPException as e:
            logger.warning(f"Failed to update countdown: {e}")

    async def show_answer_feedback(self, game: TriviaGame, result: AnswerResult) -> None:
        self._result = result
        await self._render(build_feedback_embed(game, result), FeedbackView(game, self))

    async def update_advance_countdown(self, game: TriviaGame, remaining: int) -> None:
        if self.message is None or self._result is None:
            return
        if not 0 < remaining < game.settings.advance_delay or remaining % REFRESH_EVERY:
            return
        try:
            await self.message.edit(embed=build_feedback_embed(game, self._result, remaining))
        except discord.HTTPException as e:
            logger.warning(f"Failed to update next question countdown: {e}")

    async def show_game_over(self, game: TriviaGame, summary: GameSummary) -> None:
        self._question = None
        self._result = None
        await self._render(build_game_over_embed(game, summary), GameOverView(game, self))
