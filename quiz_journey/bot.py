import discord
from discord import app_commands
from discord.ext import commands
import logging
import os
from pathlib import Path
from typing import Optional

from .config_manager import ConfigManager
from .levels import ADVANCED_TIER, BASIC_TIER, LevelCatalog
from .models import Difficulty
from .presenter import (
    ChannelPresenter,
    build_draft_embed,
    build_levels_embed,
    levels_for_listing,
)
from .question_bank import QuestionBank
from .question_source import GeminiQuestionSource
from .quiz_controller import QuizController


def setup_logging(level: str = "INFO", log_directory: str = "./logs/"):
    """Set up console and file logging for the bot."""
    logs_dir = Path(log_directory)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(logs_dir / "bot.log", encoding='utf-8'),
        ]
    )

    error_handler = logging.FileHandler(logs_dir / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logging.getLogger().addHandler(error_handler)

    # Reduce discord.py noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)


logger = logging.getLogger(__name__)

DIFFICULTY_CHOICES = [app_commands.Choice(name=d.value, value=d.name) for d in Difficulty]
TIMER_CHOICES = [app_commands.Choice(name=f"{t} ثانية", value=t) for t in ConfigManager.TIMER_OPTIONS]
TIER_CHOICES = [
    app_commands.Choice(name="المستويات الأساسية (1-100)", value=BASIC_TIER),
    app_commands.Choice(name="المستويات المتقدمة (101-200)", value=ADVANCED_TIER),
]
CORRECT_CHOICES = [app_commands.Choice(name=label, value=index) for index, label in enumerate("ABCD")]


class QuizBot(commands.Bot):
    """Discord bot running the Islamic quiz journey"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

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
        self.question_bank: Optional[QuestionBank] = None
        self.quiz_controller: Optional[QuizController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager(self.app_config)
            proxy_url = os.getenv('QUIZ_PROXY_URL')
            if proxy_url:
                self.config_manager.set_proxy_url(proxy_url)

            self.question_bank = QuestionBank(self.config_manager.get_question_bank_directory())
            self.load_question_banks()

            generator = GeminiQuestionSource(
                self.config_manager.get_proxy_url(),
                request_timeout=self.config_manager.get_request_timeout()
            )
            self.quiz_controller = QuizController(
                self.config_manager,
                generator,
                level_catalog=LevelCatalog(),
                question_bank=self.question_bank
            )

            await self.setup_commands()
            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def load_question_banks(self):
        """Load offline question banks; failures leave the fallback bank in place."""
        banks = self.question_bank.load_banks()
        logger.info(f"Loaded {len(banks)} question banks from {self.question_bank.bank_directory}")
        for error in self.question_bank.get_load_errors():
            logger.warning(f"Question bank problem: {error}")

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="عرض الأوامر المتاحة")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="levels", description="عرض خريطة الرحلة والبحث في المستويات")
        @app_commands.describe(tier="مجموعة المستويات", search="كلمة للبحث في المستويات", page="رقم الصفحة")
        @app_commands.choices(tier=TIER_CHOICES)
        async def levels_command(
            interaction: discord.Interaction,
            tier: Optional[app_commands.Choice[str]] = None,
            search: Optional[str] = None,
            page: int = 1
        ):
            await self.handle_levels(interaction, tier.value if tier else None, search, page)

        @self.tree.command(name="level_quiz", description="توليد أسئلة مستوى وتحضيرها للتعديل")
        @app_commands.describe(level="رقم المستوى (1-200)")
        async def level_quiz_command(interaction: discord.Interaction, level: app_commands.Range[int, 1, 200]):
            await self.handle_level_quiz(interaction, level)

        @self.tree.command(name="custom_quiz", description="إنشاء تحدٍ مخصص")
        @app_commands.describe(title="اسم التحدي")
        async def custom_quiz_command(interaction: discord.Interaction, title: str):
            await self.handle_custom_quiz(interaction, title)

        @self.tree.command(name="add_topic", description="إضافة أسئلة موضوع إلى التحدي المخصص")
        @app_commands.describe(level="رقم المستوى الذي يحدد الموضوع")
        async def add_topic_command(interaction: discord.Interaction, level: app_commands.Range[int, 1, 200]):
            await self.handle_add_topic(interaction, level)

        @self.tree.command(name="add_bank", description="إضافة أسئلة من بنك أسئلة إلى التحدي المخصص")
        @app_commands.describe(name="اسم بنك الأسئلة")
        async def add_bank_command(interaction: discord.Interaction, name: str):
            await self.handle_add_bank(interaction, name)

        @self.tree.command(name="banks", description="عرض بنوك الأسئلة المتاحة")
        async def banks_command(interaction: discord.Interaction):
            await self.handle_banks(interaction)

        @self.tree.command(name="draft", description="عرض أسئلة التحدي قيد الإعداد")
        async def draft_command(interaction: discord.Interaction):
            await self.handle_draft(interaction)

        @self.tree.command(name="edit_question", description="تعديل سؤال في التحدي قيد الإعداد")
        @app_commands.describe(
            number="رقم السؤال",
            text="نص السؤال الجديد",
            option_a="الخيار A",
            option_b="الخيار B",
            option_c="الخيار C",
            option_d="الخيار D",
            correct="الخيار الصحيح"
        )
        @app_commands.choices(correct=CORRECT_CHOICES)
        async def edit_question_command(
            interaction: discord.Interaction,
            number: int,
            text: Optional[str] = None,
            option_a: Optional[str] = None,
            option_b: Optional[str] = None,
            option_c: Optional[str] = None,
            option_d: Optional[str] = None,
            correct: Optional[app_commands.Choice[int]] = None
        ):
            await self.handle_edit_question(
                interaction, number, text,
                [option_a, option_b, option_c, option_d],
                correct.value if correct else None
            )

        @self.tree.command(name="delete_question", description="حذف سؤال من التحدي قيد الإعداد")
        async def delete_question_command(interaction: discord.Interaction, number: int):
            await self.handle_delete_question(interaction, number)

        @self.tree.command(name="question_time", description="تغيير وقت سؤال (5-120 ثانية)")
        async def question_time_command(interaction: discord.Interaction, number: int, seconds: int):
            await self.handle_question_time(interaction, number, seconds)

        @self.tree.command(name="move_question", description="نقل سؤال إلى موضع آخر")
        async def move_question_command(interaction: discord.Interaction, number: int, position: int):
            await self.handle_move_question(interaction, number, position)

        @self.tree.command(name="start_quiz", description="بدء التحدي قيد الإعداد")
        async def start_quiz_command(interaction: discord.Interaction):
            await self.handle_start_quiz(interaction)

        @self.tree.command(name="cancel_setup", description="إلغاء إعداد التحدي والعودة للخريطة")
        async def cancel_setup_command(interaction: discord.Interaction):
            await self.handle_cancel_setup(interaction)

        @self.tree.command(name="random_quiz", description="بدء تحدٍ عشوائي")
        @app_commands.describe(count="عدد الأسئلة (5-20)", difficulty="مستوى الصعوبة", seconds="الوقت لكل سؤال")
        @app_commands.choices(difficulty=DIFFICULTY_CHOICES, seconds=TIMER_CHOICES)
        async def random_quiz_command(
            interaction: discord.Interaction,
            count: Optional[app_commands.Range[int, 5, 20]] = None,
            difficulty: Optional[app_commands.Choice[str]] = None,
            seconds: Optional[app_commands.Choice[int]] = None
        ):
            await self.handle_random_quiz(
                interaction,
                count,
                difficulty.value if difficulty else None,
                seconds.value if seconds else None
            )

        @self.tree.command(name="stop", description="إيقاف التحدي الحالي")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="عرض حالة التحدي في هذه القناة")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="settings", description="عرض إعدادات الاختبار العشوائي")
        async def settings_command(interaction: discord.Interaction):
            await self.handle_settings(interaction)

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
            await self.quiz_controller.shutdown()
        await super().close()

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🕌 رحلة المعرفة الإسلامية",
                description="اختبر معلوماتك في السيرة والفقه والعقيدة والتاريخ الإسلامي",
                color=0x00ff00
            )
            help_embed.add_field(
                name="🗺️ الرحلة",
                value=(
                    "`/levels` - عرض خريطة المستويات والبحث فيها\n"
                    "`/level_quiz <رقم>` - تحضير أسئلة مستوى\n"
                    "`/random_quiz` - تحدٍ عشوائي بإعداداتك\n"
                    "`/custom_quiz <اسم>` - إنشاء تحدٍ مخصص"
                ),
                inline=False
            )
            help_embed.add_field(
                name="🛠️ إعداد التحدي",
                value=(
                    "`/add_topic <رقم>` - إضافة 5 أسئلة عن موضوع\n"
                    "`/add_bank <اسم>` - إضافة أسئلة من بنك أسئلة\n"
                    "`/draft` - عرض الأسئلة\n"
                    "`/edit_question` `/delete_question` `/question_time` `/move_question`\n"
                    "`/start_quiz` - بدء التحدي\n"
                    "`/cancel_setup` - إلغاء الإعداد"
                ),
                inline=False
            )
            help_embed.add_field(
                name="🎮 أثناء التحدي",
                value="`/status` - حالة التحدي\n`/stop` - إيقاف التحدي",
                inline=False
            )
            help_embed.add_field(
                name="⚙️ الإعدادات الحالية",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            await interaction.response.send_message(embed=help_embed)

        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "تعذر عرض المساعدة", "❌ خطأ")

    async def handle_levels(self, interaction: discord.Interaction, tier: Optional[str], search: Optional[str], page: int):
        """Handle /levels command"""
        result = self.quiz_controller.open_level_map(interaction.channel_id)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'])
            return

        levels = levels_for_listing(self.quiz_controller, tier, search)
        heading = f"🔎 نتائج البحث: {search}" if search else "🗺️ خريطة الرحلة"
        await interaction.response.send_message(embed=build_levels_embed(levels, page, heading))

    async def handle_level_quiz(self, interaction: discord.Interaction, level_id: int):
        """Handle /level_quiz command"""
        await interaction.response.defer(thinking=True)
        result = await self.quiz_controller.prepare_level_quiz(interaction.channel_id, level_id)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ تعذر تحضير المستوى")
            return
        await interaction.followup.send(embed=build_draft_embed(result['draft']))

    async def handle_custom_quiz(self, interaction: discord.Interaction, title: str):
        """Handle /custom_quiz command"""
        result = self.quiz_controller.prepare_custom_quiz(interaction.channel_id, title)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'])
            return

        embed = build_draft_embed(result['draft'])
        embed.add_field(
            name="الخطوة التالية",
            value="ابحث عن موضوع بـ `/levels search:<كلمة>` ثم أضف أسئلته بـ `/add_topic <رقم>`",
            inline=False
        )
        await interaction.response.send_message(embed=embed)

    async def handle_add_topic(self, interaction: discord.Interaction, level_id: int):
        """Handle /add_topic command"""
        await interaction.response.defer(thinking=True)
        result = await self.quiz_controller.add_topic_questions(interaction.channel_id, level_id)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ تعذر إضافة الأسئلة")
            return
        await interaction.followup.send(
            content=f"✅ تمت إضافة {result['added']} أسئلة",
            embed=build_draft_embed(result['draft'])
        )

    async def handle_add_bank(self, interaction: discord.Interaction, name: str):
        """Handle /add_bank command"""
        result = self.quiz_controller.add_bank_questions(interaction.channel_id, name)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'])
            return
        await interaction.response.send_message(
            content=f"✅ تمت إضافة {result['added']} أسئلة من بنك {name}",
            embed=build_draft_embed(result['draft'])
        )

    async def handle_banks(self, interaction: discord.Interaction):
        """Handle /banks command"""
        summary = self.question_bank.get_loading_summary()
        embed = discord.Embed(title="📚 بنوك الأسئلة", color=0x6699ff)
        if summary['available_banks']:
            embed.description = "\n".join(
                f"`{name}` - {self.question_bank.get_bank(name).title} "
                f"({len(self.question_bank.get_bank(name).questions)} سؤال)"
                for name in summary['available_banks']
            )
        else:
            embed.description = "لا توجد بنوك أسئلة."
        if summary['fallback_active']:
            embed.add_field(name="⚠️ تنبيه", value="تعذر تحميل الملفات، يتم استخدام بنك احتياطي.", inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_draft(self, interaction: discord.Interaction):
        """Handle /draft command"""
        draft = self.quiz_controller.get_draft(interaction.channel_id)
        if draft is None:
            await self.send_info_response(interaction, "لا يوجد تحدٍ قيد الإعداد في هذه القناة.")
            return
        await interaction.response.send_message(embed=build_draft_embed(draft))

    async def handle_edit_question(self, interaction, number, text, options, correct_index):
        """Handle /edit_question command"""
        question_id = self._question_id_at(interaction.channel_id, number)
        if question_id is None:
            await self.send_error_response(interaction, "❌ رقم السؤال غير صالح")
            return

        current = self.quiz_controller.get_draft(interaction.channel_id).editor.get(question_id)
        new_options = [new if new else old for new, old in zip(options, current.options)]
        answer = new_options[correct_index] if correct_index is not None else None

        result = self.quiz_controller.edit_question(
            interaction.channel_id, question_id, text=text, options=new_options, answer=answer
        )
        await self._send_draft_result(interaction, result, f"✅ تم تعديل السؤال {number}")

    async def handle_delete_question(self, interaction: discord.Interaction, number: int):
        """Handle /delete_question command"""
        question_id = self._question_id_at(interaction.channel_id, number)
        if question_id is None:
            await self.send_error_response(interaction, "❌ رقم السؤال غير صالح")
            return
        result = self.quiz_controller.delete_question(interaction.channel_id, question_id)
        await self._send_draft_result(interaction, result, f"🗑️ تم حذف السؤال {number}")

    async def handle_question_time(self, interaction: discord.Interaction, number: int, seconds: int):
        """Handle /question_time command"""
        question_id = self._question_id_at(interaction.channel_id, number)
        if question_id is None:
            await self.send_error_response(interaction, "❌ رقم السؤال غير صالح")
            return
        result = self.quiz_controller.set_question_time(interaction.channel_id, question_id, seconds)
        message = f"⏱️ وقت السؤال {number}: {result['question'].time_limit} ثانية" if result['success'] else ""
        await self._send_draft_result(interaction, result, message)

    async def handle_move_question(self, interaction: discord.Interaction, number: int, position: int):
        """Handle /move_question command"""
        result = self.quiz_controller.move_question(interaction.channel_id, number - 1, position - 1)
        await self._send_draft_result(interaction, result, f"↕️ تم نقل السؤال {number} إلى الموضع {position}")

    async def handle_start_quiz(self, interaction: discord.Interaction):
        """Handle /start_quiz command"""
        await interaction.response.defer(thinking=True)
        presenter = ChannelPresenter(self.quiz_controller, interaction.channel, interaction.channel_id)
        result = await self.quiz_controller.start_draft_quiz(interaction.channel_id, presenter)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ تعذر بدء التحدي")
            return
        await interaction.followup.send("🚀 بدأ التحدي!")

    async def handle_cancel_setup(self, interaction: discord.Interaction):
        """Handle /cancel_setup command"""
        result = self.quiz_controller.cancel_setup(interaction.channel_id)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'])
            return
        await interaction.response.send_message("↩️ تم إلغاء الإعداد والعودة لخريطة الرحلة")

    async def handle_random_quiz(self, interaction, count, difficulty, seconds):
        """Handle /random_quiz command"""
        await interaction.response.defer(thinking=True)
        presenter = ChannelPresenter(self.quiz_controller, interaction.channel, interaction.channel_id)
        result = await self.quiz_controller.start_random_quiz(
            interaction.channel_id,
            presenter,
            count=count,
            difficulty=difficulty,
            time_per_question=seconds
        )
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ تعذر بدء التحدي العشوائي")
            return

        snapshot = result['handle'].snapshot()
        await interaction.followup.send(f"🎲 **{snapshot.title}** - {snapshot.total_questions} سؤال")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        result = await self.quiz_controller.stop_quiz(interaction.channel_id)
        if not result['success']:
            await self.send_info_response(interaction, result['user_message'], "ℹ️ لا يوجد تحدٍ نشط")
            return

        progress = result['progress']
        embed = discord.Embed(
            title="🛑 تم إيقاف التحدي",
            description=(
                f"توقف التحدي عند السؤال {progress['current_question']} من {progress['total_questions']}\n"
                f"الإجابات الصحيحة: {progress['correct']}"
            ),
            color=0xff6600
        )
        embed.set_footer(text="استخدم /levels للعودة إلى خريطة الرحلة")
        await interaction.response.send_message(embed=embed)

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        summary = self.quiz_controller.get_session_status_summary(interaction.channel_id)
        await self.send_info_response(interaction, summary, "📊 حالة التحدي")

    async def handle_settings(self, interaction: discord.Interaction):
        """Handle /settings command"""
        await self.send_info_response(interaction, self.config_manager.get_settings_summary(), "⚙️ الإعدادات")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _question_id_at(self, channel_id: int, number: int) -> Optional[str]:
        draft = self.quiz_controller.get_draft(channel_id)
        if draft is None or not 1 <= number <= draft.question_count:
            return None
        return draft.editor.questions[number - 1].id

    async def _send_draft_result(self, interaction: discord.Interaction, result: dict, message: str):
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'])
            return
        draft = self.quiz_controller.get_draft(interaction.channel_id)
        await interaction.response.send_message(content=message, embed=build_draft_embed(draft))

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ خطأ"):
        """Send formatted error response to user"""
        await self._send_embed(interaction, message, title, 0xff0000)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ معلومات"):
        """Send formatted info response to user"""
        await self._send_embed(interaction, message, title, 0x6699ff)

    async def _send_embed(self, interaction: discord.Interaction, message: str, title: str, color: int):
        try:
            embed = discord.Embed(title=title, description=message, color=color)
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error(f"Failed to send '{title}' response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Quiz Journey bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
