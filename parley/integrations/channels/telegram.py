"""Telegram surface: renders question batches as inline-keyboard wizards."""

from __future__ import annotations

import logging
from typing import Any

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, ApplicationBuilder, CallbackQueryHandler, ContextTypes, MessageHandler
from telegram.ext import filters as tg_filters

from parley.core.config import settings
from parley.data.schemas import OTHER, QuestionBatch
from parley.integrations.channels.base import NotificationChannel
from parley.integrations.wizard import AnswerStateMachine, CancelFn, SubmitFn, WizardStatus

logger = logging.getLogger(__name__)

CALLBACK_PREFIX = "w"


def _callback(request_id: str, action: str, index: int | None = None) -> str:
    parts = [CALLBACK_PREFIX, request_id, action]
    if index is not None:
        parts.append(str(index))
    return ":".join(parts)


def render_text(wizard: AnswerStateMachine) -> str:
    """Message body for the wizard's current step."""
    q = wizard.question
    state = wizard.step()
    lines = [f"❓ [{q.header}] Question {wizard.index + 1}/{wizard.total_steps}", "", q.prompt, ""]
    for opt in q.options:
        mark = "✅" if opt.label in state.selected else "▫️"
        line = f"{mark} {opt.label}"
        if opt.description:
            line += f" — {opt.description}"
        lines.append(line)
    if wizard.is_selected(OTHER):
        text = state.other_text.strip()
        lines.append("")
        lines.append(f"✏️ Other: {text}" if text else "✏️ Other: reply to this message with your answer")
    if q.multi_select:
        lines.append("")
        lines.append("(select all that apply)")
    return "\n".join(lines)


def render_keyboard(wizard: AnswerStateMachine) -> InlineKeyboardMarkup:
    """Inline keyboard for the wizard's current step."""
    rid = wizard.request_id
    rows: list[list[InlineKeyboardButton]] = []
    for i, opt in enumerate(wizard.question.options):
        mark = "✅ " if wizard.is_selected(opt.label) else ""
        rows.append([InlineKeyboardButton(f"{mark}{opt.label}", callback_data=_callback(rid, "opt", i))])
    other_mark = "✅ " if wizard.is_selected(OTHER) else ""
    rows.append([InlineKeyboardButton(f"{other_mark}Other…", callback_data=_callback(rid, "other"))])

    nav: list[InlineKeyboardButton] = []
    if not wizard.is_first_step:
        nav.append(InlineKeyboardButton("◀ Back", callback_data=_callback(rid, "back")))
    if wizard.is_last_step:
        nav.append(InlineKeyboardButton("✔ Submit", callback_data=_callback(rid, "submit")))
    else:
        nav.append(InlineKeyboardButton("Next ▶", callback_data=_callback(rid, "next")))
    nav.append(InlineKeyboardButton("✖ Cancel", callback_data=_callback(rid, "cancel")))
    rows.append(nav)
    return InlineKeyboardMarkup(rows)


class TelegramWizardChannel(NotificationChannel):
    """Telegram bot implementation of NotificationChannel.

    Each pending request gets one message in the admin chat whose text and
    keyboard are re-rendered after every accepted transition. Free text for
    "Other" comes from an admin reply to that message, or from the next plain
    message when it is not a reply.
    """

    def __init__(
        self,
        on_answer: SubmitFn,
        on_cancel: CancelFn,
        bot_token: str = "",
        admin_chat_id: int = 0,
    ) -> None:
        self._on_answer = on_answer
        self._on_cancel = on_cancel
        self._bot_token = bot_token or settings.telegram_bot_token
        self._admin_chat_id = admin_chat_id or settings.telegram_admin_chat_id
        self._bot: Bot | None = None
        self._app: Application[Any, Any, Any, Any, Any, Any] | None = None
        self._wizards: dict[str, AnswerStateMachine] = {}
        # request_id -> message_id of the wizard message
        self._messages: dict[str, int] = {}
        # most recent "Other" press; fills in plain, non-reply messages
        self._awaiting_text: str | None = None

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def bot(self) -> Bot:
        """Return the bot instance, creating lazily if needed."""
        if self._bot is None:
            self._bot = Bot(token=self._bot_token)
        return self._bot

    @property
    def app(self) -> Application[Any, Any, Any, Any, Any, Any] | None:
        """Return the Application instance (None before initialize)."""
        return self._app

    @property
    def admin_chat_id(self) -> int:
        return self._admin_chat_id

    def set_bot(self, bot: Bot) -> None:
        """Override the bot instance (useful for testing)."""
        self._bot = bot

    def wizard(self, request_id: str) -> AnswerStateMachine | None:
        return self._wizards.get(request_id)

    async def initialize(self) -> None:
        """Build and start the Telegram Application with polling."""
        if not self._bot_token:
            logger.warning("No Telegram bot token — channel disabled")
            return
        self._app = ApplicationBuilder().token(self._bot_token).build()
        self.register_handlers(self._app)
        await self._app.initialize()
        await self._app.start()
        if self._app.updater is not None:
            await self._app.updater.start_polling()
        self._bot = self._app.bot
        logger.info("TelegramWizardChannel initialized")

    async def shutdown(self) -> None:
        """Stop polling and shut down the Application."""
        if self._app is not None:
            if self._app.updater is not None:
                await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
            logger.info("TelegramWizardChannel shut down")

    async def notify(self, request_id: str, batch: QuestionBatch, session_id: str) -> None:
        """Send the first step of a new wizard to the admin chat."""
        wizard = AnswerStateMachine(
            request_id,
            batch,
            on_submit=self._on_answer,
            on_cancel=self._on_cancel,
        )
        self._wizards[request_id] = wizard
        msg = await self.bot.send_message(
            chat_id=self._admin_chat_id,
            text=render_text(wizard),
            reply_markup=render_keyboard(wizard),
        )
        self._messages[request_id] = msg.message_id
        logger.info("Sent question %s for session %s to Telegram", request_id, session_id[:8])

    async def withdraw(self, request_id: str) -> None:
        """Close the wizard message once the request settled elsewhere (timeout, API)."""
        wizard = self._wizards.get(request_id)
        message_id = self._forget(request_id)
        if wizard is None or message_id is None or not wizard.active:
            return
        try:
            await self.bot.edit_message_text(
                chat_id=self._admin_chat_id,
                message_id=message_id,
                text=f"{render_text(wizard)}\n\n⏳ Closed — no longer waiting for an answer.",
            )
        except TelegramError:
            logger.warning("Could not close Telegram message for %s", request_id)

    async def _refresh(self, wizard: AnswerStateMachine) -> None:
        message_id = self._messages.get(wizard.request_id)
        if message_id is None:
            return
        try:
            await self.bot.edit_message_text(
                chat_id=self._admin_chat_id,
                message_id=message_id,
                text=render_text(wizard),
                reply_markup=render_keyboard(wizard),
            )
        except BadRequest as exc:
            # Re-pressing a toggle that leaves the step unchanged
            if "not modified" not in str(exc).lower():
                raise
            logger.debug("Wizard %s unchanged, skipped edit", wizard.request_id)

    def _request_for_message(self, message_id: int) -> str | None:
        for request_id, wizard_message_id in self._messages.items():
            if wizard_message_id == message_id:
                return request_id
        return None

    def _forget(self, request_id: str) -> int | None:
        self._wizards.pop(request_id, None)
        if self._awaiting_text == request_id:
            self._awaiting_text = None
        return self._messages.pop(request_id, None)

    def _apply(self, wizard: AnswerStateMachine, action: str, arg: str | None) -> bool:
        """Run one wizard transition. Returns whether it was accepted."""
        if action == "opt" and arg is not None and arg.isdigit():
            options = wizard.question.options
            index = int(arg)
            if index >= len(options):
                return False
            return wizard.select_option(options[index].label)
        if action == "other":
            accepted = wizard.select_other()
            if accepted and wizard.is_selected(OTHER):
                self._awaiting_text = wizard.request_id
            return accepted
        if action == "next":
            return wizard.next()
        if action == "back":
            return wizard.back()
        if action == "submit":
            return wizard.submit() is not None
        if action == "cancel":
            return wizard.cancel()
        return False

    async def handle_wizard_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle inline keyboard presses on wizard messages.

        Security: Only processes callbacks from the configured admin user.
        """
        query = update.callback_query
        if query is None or query.data is None:
            return
        if not query.data.startswith(f"{CALLBACK_PREFIX}:"):
            return

        if query.from_user is None or query.from_user.id != self._admin_chat_id:
            logger.warning(
                "Unauthorized wizard callback from user_id=%s",
                query.from_user.id if query.from_user else "unknown",
            )
            await query.answer(text="Unauthorized.", show_alert=True)
            return

        # Parse "w:<request_id>:<action>[:<index>]"
        parts = query.data.split(":")
        if len(parts) < 3:
            await query.answer()
            return
        request_id, action = parts[1], parts[2]
        arg = parts[3] if len(parts) > 3 else None

        wizard = self._wizards.get(request_id)
        if wizard is None:
            await query.answer(text="This question is no longer open.")
            return

        if not self._apply(wizard, action, arg):
            hint = "Type your answer for Other first." if wizard.is_selected(OTHER) else "Pick an option first."
            await query.answer(text=hint)
            return

        if wizard.active:
            await query.answer()
            await self._refresh(wizard)
            return

        # Settled: drop local state before yielding so a racing withdraw finds nothing
        message_id = self._forget(request_id)
        await query.answer()
        if message_id is None:
            return
        if wizard.status == WizardStatus.SUBMITTED:
            summary = f"✅ Answered ({wizard.total_steps} question(s))."
        else:
            summary = "✖ Questions cancelled."
        await self.bot.edit_message_text(chat_id=self._admin_chat_id, message_id=message_id, text=summary)

    async def handle_text_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Take an admin message as the "Other" text of a wizard.

        A reply goes to the wizard whose message it quotes; anything else
        goes to the wizard where "Other" was pressed last.

        Security: Only processes messages from the configured admin user.
        """
        message = update.message
        if message is None or message.text is None:
            return

        if message.from_user is None or message.from_user.id != self._admin_chat_id:
            return

        if message.reply_to_message is not None:
            request_id = self._request_for_message(message.reply_to_message.message_id)
        else:
            request_id = self._awaiting_text
        if request_id is None:
            return
        wizard = self._wizards.get(request_id)
        if wizard is None or not wizard.is_selected(OTHER):
            return
        wizard.set_other_text(message.text)
        await self._refresh(wizard)

    def register_handlers(self, app: Any) -> None:
        """Register wizard callback and text handlers on a Telegram Application."""
        app.add_handler(CallbackQueryHandler(self.handle_wizard_callback, pattern=rf"^{CALLBACK_PREFIX}:"))
        app.add_handler(MessageHandler(tg_filters.TEXT & ~tg_filters.COMMAND, self.handle_text_message))
