"""
Discord presentation of quiz sessions: embeds, answer buttons and the
session observer that keeps a channel's question message up to date.
"""
import logging
from typing import TYPE_CHECKING, List, Optional, Sequence

import discord

from .levels import BASIC_TIER
from .models import AnswerFeedback, AnswerResult, Level, Question, ScoreTally, SessionSnapshot
from .reporter import SessionReport
from .session_engine import SessionObserver

if TYPE_CHECKING:
    from .quiz_controller import QuizController, QuizDraft

logger = logging.getLogger(__name__)

OPTION_LABELS = ("A", "B", "C", "D")
BUTTON_LABEL_LIMIT = 80
FIELD_VALUE_LIMIT = 1024
LEVELS_PER_PAGE = 20

COLOR_ACTIVE = 0x00ff00
COLOR_WARNING = 0xff6600
COLOR_DANGER = 0xff0000
COLOR_INFO = 0x6699ff
COLOR_STATS = 0x22d3ee


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"


def option_label(index: int, option: str) -> str:
    return _truncate(f"{OPTION_LABELS[index]}) {option}", BUTTON_LABEL_LIMIT)


def _timer_color(remaining_time: int) -> int:
    if remaining_time > 5:
        return COLOR_ACTIVE
    if remaining_time > 2:
        return COLOR_WARNING
    return COLOR_DANGER


def build_question_embed(snapshot: SessionSnapshot, question: Question) -> discord.Embed:
    remaining = snapshot.time_remaining
    embed = discord.Embed(
        title=f"🎯 السؤال {snapshot.current_number}/{snapshot.total_questions}",
        description=question.text,
        color=_timer_color(remaining)
    )
    options_text = "\n".join(f"**{OPTION_LABELS[i]})** {opt}" for i, opt in enumerate(question.options))
    embed.add_field(name="الخيارات", value=_truncate(options_text, FIELD_VALUE_LIMIT), inline=False)

    timer_emoji = "⏱️" if remaining > 5 else "⚠️" if remaining > 2 else "🚨"
    embed.add_field(name=f"{timer_emoji} الوقت المتبقي", value=f"{remaining} ثانية", inline=True)
    embed.add_field(name="⭐ النقاط", value=str(snapshot.tally.score), inline=True)
    embed.set_footer(text=snapshot.title)
    return embed


def build_feedback_embed(snapshot: SessionSnapshot, result: AnswerResult) -> discord.Embed:
    question = result.question
    if result.feedback is AnswerFeedback.CORRECT:
        title, color = "✅ إجابة صحيحة!", COLOR_ACTIVE
    elif result.feedback is AnswerFeedback.TIMED_OUT:
        title, color = "⏰ نفذ الوقت!", COLOR_WARNING
    else:
        title, color = "❌ إجابة خاطئة", COLOR_DANGER

    embed = discord.Embed(
        title=f"{title} - السؤال {snapshot.current_number}/{snapshot.total_questions}",
        description=question.text,
        color=color
    )
    if result.feedback is AnswerFeedback.INCORRECT:
        embed.add_field(name="إجابتك", value=result.selected_answer, inline=False)
    embed.add_field(name="الإجابة الصحيحة", value=f"**{question.answer}**", inline=False)
    embed.add_field(name="⭐ النقاط", value=str(snapshot.tally.score), inline=True)

    is_last = snapshot.current_number >= snapshot.total_questions
    embed.set_footer(text="انتهى التحدي" if is_last else "السؤال التالي قادم...")
    return embed


def build_stats_embed(report: SessionReport) -> discord.Embed:
    embed = discord.Embed(
        title="🏁 انتهى التحدي!",
        description=f"**{report.title}**\n{report.message}",
        color=COLOR_STATS
    )
    embed.add_field(name="النقاط", value=str(report.score), inline=True)
    embed.add_field(name="الإجابات الصحيحة", value=str(report.correct), inline=True)
    embed.add_field(name="الإجابات الخاطئة", value=str(report.incorrect), inline=True)
    embed.add_field(name="النسبة", value=f"{report.percentage}%", inline=True)

    if report.has_mistakes:
        lines = []
        for item in report.review:
            lines.append(
                f"**{item.question}**\n"
                f"إجابتك: {item.your_answer}\n"
                f"الإجابة الصحيحة: {item.correct_answer}"
            )
        embed.add_field(
            name="مراجعة الأخطاء",
            value=_truncate("\n\n".join(lines), FIELD_VALUE_LIMIT),
            inline=False
        )

    embed.set_footer(text="استخدم زر العودة لخريطة الرحلة للعب مرة أخرى")
    return embed


def build_draft_embed(draft: "QuizDraft") -> discord.Embed:
    embed = discord.Embed(
        title=f"🛠️ إعداد التحدي: {draft.title or 'بدون اسم'}",
        description=f"عدد الأسئلة: {draft.question_count}",
        color=COLOR_INFO
    )
    for number, question in enumerate(draft.editor, start=1):
        if number > 25:
            break
        options = " | ".join(question.options)
        embed.add_field(
            name=_truncate(f"{number}. {question.text}", 256),
            value=_truncate(f"{options}\n✅ {question.answer} • ⏱️ {question.time_limit} ثانية", FIELD_VALUE_LIMIT),
            inline=False
        )
    embed.set_footer(
        text="/edit_question • /delete_question • /question_time • /move_question • /start_quiz"
    )
    return embed


def build_levels_embed(levels: Sequence[Level], page: int = 1, heading: str = "🗺️ خريطة الرحلة") -> discord.Embed:
    pages = max(1, (len(levels) + LEVELS_PER_PAGE - 1) // LEVELS_PER_PAGE)
    page = min(max(page, 1), pages)
    start = (page - 1) * LEVELS_PER_PAGE
    shown = levels[start:start + LEVELS_PER_PAGE]

    embed = discord.Embed(title=heading, color=COLOR_INFO)
    if shown:
        embed.description = "\n".join(
            f"`{level.id:>3}` {level.title} ({level.difficulty.value})" for level in shown
        )
    else:
        embed.description = "لا توجد مستويات مطابقة."
    embed.set_footer(text=f"صفحة {page}/{pages} • استخدم /level_quiz لاختيار مستوى")
    return embed


class AnswerView(discord.ui.View):
    """Four answer buttons for the current question."""

    def __init__(self, controller: "QuizController", channel_id: int, question: Question, timeout: Optional[float] = None):
        super().__init__(timeout=timeout)
        self.controller = controller
        self.channel_id = channel_id
        self.question = question

        for index, option in enumerate(question.options):
            button = discord.ui.Button(
                label=option_label(index, option),
                style=discord.ButtonStyle.secondary,
                custom_id=f"answer:{question.id}:{index}",
                row=index
            )
            button.callback = self._make_callback(option)
            self.add_item(button)

    def _make_callback(self, option: str):
        async def callback(interaction: discord.Interaction):
            await self.handle_answer(interaction, option)
        return callback

    async def handle_answer(self, interaction: discord.Interaction, option: str) -> None:
        await interaction.response.defer()
        result = await self.controller.submit_answer(self.channel_id, option)
        if not result['success']:
            await interaction.followup.send(result['user_message'], ephemeral=True)
        elif not result['recorded']:
            await interaction.followup.send("تمت الإجابة على هذا السؤال بالفعل.", ephemeral=True)

    def disable(self, highlight: Optional[str] = None, correct: Optional[str] = None) -> None:
        """Disable every button, colouring the chosen and correct options."""
        for item in self.children:
            if not isinstance(item, discord.ui.Button):
                continue
            item.disabled = True
            index = int(item.custom_id.rsplit(":", 1)[1])
            option = self.question.options[index]
            if option == correct:
                item.style = discord.ButtonStyle.success
            elif option == highlight:
                item.style = discord.ButtonStyle.danger


class PlayAgainView(discord.ui.View):
    """Single button returning the channel to the level map."""

    def __init__(self, controller: "QuizController", channel_id: int):
        super().__init__(timeout=None)
        self.controller = controller
        self.channel_id = channel_id

    @discord.ui.button(label="العودة لخريطة الرحلة", style=discord.ButtonStyle.primary)
    async def play_again(self, interaction: discord.Interaction, button: discord.ui.Button):
        result = self.controller.play_again(self.channel_id)
        if not result['success']:
            await interaction.response.send_message(result['user_message'], ephemeral=True)
            return
        button.disabled = True
        await interaction.response.edit_message(view=self)
        await interaction.followup.send(embed=build_levels_embed(self.controller.level_catalog.tier(BASIC_TIER)))


class ChannelPresenter(SessionObserver):
    """
    Keeps one Discord channel in sync with its quiz session.

    A new message is sent for every question; timer ticks edit it in place
    every `update_every` seconds and on each of the last five seconds.
    """

    def __init__(self, controller: "QuizController", channel: discord.abc.Messageable, channel_id: int, update_every: int = 5):
        self.controller = controller
        self.channel = channel
        self.channel_id = channel_id
        self.update_every = update_every
        self.message: Optional[discord.Message] = None
        self.view: Optional[AnswerView] = None
        self.question: Optional[Question] = None

    def should_update(self, remaining_time: int) -> bool:
        return remaining_time <= 5 or remaining_time % self.update_every == 0

    async def question_started(self, snapshot: SessionSnapshot, question: Question) -> None:
        self.question = question
        self.view = AnswerView(self.controller, self.channel_id, question)
        try:
            self.message = await self.channel.send(embed=build_question_embed(snapshot, question), view=self.view)
        except discord.HTTPException as e:
            logger.error(f"Failed to send question {snapshot.current_number} in channel {self.channel_id}: {e}")
            self.message = None

    async def time_updated(self, snapshot: SessionSnapshot, remaining_time: int) -> None:
        if self.message is None or not self.should_update(remaining_time):
            return
        try:
            await self.message.edit(embed=build_question_embed(snapshot, self.question))
        except discord.HTTPException as e:
            logger.error(f"Failed to update timer message in channel {self.channel_id}: {e}")

    async def answer_recorded(self, snapshot: SessionSnapshot, result: AnswerResult) -> None:
        if self.view is not None:
            self.view.disable(highlight=result.selected_answer, correct=result.question.answer)
            self.view.stop()
        if self.message is None:
            return
        try:
            await self.message.edit(embed=build_feedback_embed(snapshot, result), view=self.view)
        except discord.HTTPException as e:
            logger.error(f"Failed to show answer feedback in channel {self.channel_id}: {e}")

    async def session_finished(self, snapshot: SessionSnapshot, tally: ScoreTally) -> None:
        report = self.controller.get_latest_report(self.channel_id)
        if report is None:
            report = self.controller.reporter.build_report(snapshot.title, tally)
        try:
            await self.channel.send(
                embed=build_stats_embed(report),
                view=PlayAgainView(self.controller, self.channel_id)
            )
        except discord.HTTPException as e:
            logger.error(f"Failed to send quiz summary in channel {self.channel_id}: {e}")


def levels_for_listing(controller: "QuizController", tier: Optional[str], query: Optional[str]) -> List[Level]:
    if query:
        return controller.level_catalog.search(query)
    return controller.level_catalog.tier(tier or BASIC_TIER)
