"""
Публикация вопросов в канал.

- send_content: отправка текста или медиа нужным методом Bot API
- ChannelPublisher: первый пост вопроса и обновление его клавиатуры
"""

from typing import Any, Optional

import structlog
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup, Message

from bot.keyboards import get_channel_question_keyboard
from core.content import MediaType
from core.exceptions import ConfigurationMissing, ExternalPublishFailure
from templates.message_templates import channel_question_post


logger = structlog.get_logger()


async def get_bot_username(bot: Bot) -> str:
    """Username бота для deep link (Bot.me() кэшируется aiogram)."""
    me = await bot.me()
    return me.username


async def send_content(
    bot: Bot,
    chat_id: Any,
    media_type: Optional[str],
    media_id: Optional[str],
    text: str,
    reply_markup: Optional[Any] = None,
) -> Message:
    """
    Отправить текст или медиа с подписью.

    Для медиа text становится подписью. Длину text под лимит
    подписи или сообщения подгоняют шаблоны (fit_content).

    Raises:
        TelegramAPIError: Ошибка Bot API
    """
    kind = MediaType(media_type or MediaType.TEXT.value)

    if kind is MediaType.TEXT or not media_id:
        return await bot.send_message(
            chat_id=chat_id,
            text=text,
            reply_markup=reply_markup,
        )

    if kind is MediaType.PHOTO:
        return await bot.send_photo(chat_id=chat_id, photo=media_id, caption=text, reply_markup=reply_markup)
    if kind is MediaType.VIDEO:
        return await bot.send_video(chat_id=chat_id, video=media_id, caption=text, reply_markup=reply_markup)
    if kind is MediaType.AUDIO:
        return await bot.send_audio(chat_id=chat_id, audio=media_id, caption=text, reply_markup=reply_markup)
    if kind is MediaType.VOICE:
        return await bot.send_voice(chat_id=chat_id, voice=media_id, caption=text, reply_markup=reply_markup)
    return await bot.send_document(chat_id=chat_id, document=media_id, caption=text, reply_markup=reply_markup)


def is_not_modified_error(error: TelegramBadRequest) -> bool:
    """Telegram отвечает ошибкой, если разметка не изменилась."""
    return "message is not modified" in str(error.message).lower()


class ChannelPublisher:
    """
    Публикация вопросов в канал.

    Пост содержит текст вопроса (или медиа с подписью) и две
    кнопки-ссылки: ответить и посмотреть ответы (с числом ответов).
    После публикации меняется только клавиатура поста.
    """

    def __init__(self, bot: Bot, config: Any):
        self.bot = bot
        self.config = config

    @property
    def channel(self) -> Optional[str]:
        return self.config.channel_identifier

    def _require_channel(self) -> str:
        channel = self.channel
        if not channel:
            logger.error("channel_not_configured")
            raise ConfigurationMissing()
        return channel

    async def build_keyboard(self, question_id: str, answer_count: int) -> InlineKeyboardMarkup:
        bot_username = await get_bot_username(self.bot)
        return get_channel_question_keyboard(bot_username, question_id, answer_count)

    async def publish(self, question: Any, answer_count: int = 0) -> int:
        """
        Опубликовать вопрос в канал.

        Returns:
            message_id поста

        Raises:
            ConfigurationMissing: Канал не настроен
            ExternalPublishFailure: Ошибка Bot API
        """
        channel = self._require_channel()

        try:
            keyboard = await self.build_keyboard(question.id, answer_count)
            message = await send_content(
                self.bot,
                channel,
                question.media_type,
                question.media_id,
                channel_question_post(question),
                reply_markup=keyboard,
            )
        except TelegramAPIError as e:
            logger.error(
                "channel_publish_failed",
                question_id=question.id,
                channel=channel,
                error=str(e),
            )
            raise ExternalPublishFailure() from e

        logger.info(
            "question_published",
            question_id=question.id,
            channel=channel,
            channel_message_id=message.message_id,
        )
        return message.message_id

    async def refresh_keyboard(self, question_id: str, message_id: int, answer_count: int) -> None:
        """
        Обновить клавиатуру поста (текст поста не меняется).

        Ответ "message is not modified" считается успехом.

        Raises:
            ConfigurationMissing: Канал не настроен
            ExternalPublishFailure: Ошибка Bot API
        """
        channel = self._require_channel()

        try:
            keyboard = await self.build_keyboard(question_id, answer_count)
            await self.bot.edit_message_reply_markup(
                chat_id=channel,
                message_id=message_id,
                reply_markup=keyboard,
            )
        except TelegramBadRequest as e:
            if is_not_modified_error(e):
                logger.debug("channel_keyboard_not_modified", question_id=question_id)
                return
            logger.error("channel_keyboard_refresh_failed", question_id=question_id, error=str(e))
            raise ExternalPublishFailure() from e
        except TelegramAPIError as e:
            logger.error("channel_keyboard_refresh_failed", question_id=question_id, error=str(e))
            raise ExternalPublishFailure() from e

        logger.info(
            "channel_keyboard_refreshed",
            question_id=question_id,
            channel_message_id=message_id,
            answer_count=answer_count,
        )
