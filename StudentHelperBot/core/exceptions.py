"""
Кастомные исключения Q&A бота.

Иерархия исключений позволяет обрабатывать ошибки на разных уровнях:
- QABotError - базовое исключение для всех ошибок бота
  - ValidationFailure - некорректный ID, слишком короткий текст, неподдерживаемый контент
  - NotFound - вопрос, ответ или пользователь отсутствует
  - InvalidState - переход статуса запрещён (например, ответ на неодобренный вопрос)
  - Unauthorized - не-админ пытается выполнить админскую операцию
  - ExternalTransientFailure - ошибка или таймаут БД/Telegram
    - ExternalPublishFailure - не удалось опубликовать или обновить пост в канале
  - ConfigurationMissing - не задан канал или ссылка на канал

Каждое исключение несёт user_message - короткий текст, который можно
показать пользователю. Сырые ошибки пользователю не показываются.
"""


class QABotError(Exception):
    """
    Базовое исключение бота.

    Все кастомные исключения проекта наследуются от этого класса.
    Позволяет ловить все ожидаемые ошибки одним except блоком
    на границе обработчика.
    """

    default_message = "❌ An error occurred. Please try again."

    def __init__(self, user_message: str | None = None):
        """
        Инициализация исключения.

        Args:
            user_message: Текст для пользователя (по умолчанию default_message)
        """
        self.user_message = user_message or self.default_message
        super().__init__(self.user_message)


class ValidationFailure(QABotError):
    """
    Некорректные входные данные.

    Возникает при:
    - Неверном формате ID вопроса
    - Индексе ответа вне диапазона
    - Слишком коротком тексте
    - Неподдерживаемом типе сообщения
    """

    default_message = "❌ Invalid request."


class NotFound(QABotError):
    """Вопрос, ответ или пользователь не найден."""

    default_message = "❌ Question not found or was removed"


class InvalidState(QABotError):
    """
    Операция недопустима в текущем состоянии.

    Например: повторное одобрение вопроса или ответ
    на вопрос, который не одобрен.
    """

    default_message = "❌ This action is no longer available."


class Unauthorized(QABotError):
    """Операция доступна только администраторам."""

    default_message = "❌ Unauthorized"


class ExternalTransientFailure(QABotError):
    """
    Временная ошибка внешнего сервиса.

    Возникает при сбое или таймауте запроса к БД или Telegram API.
    Повторная попытка позже может быть успешной.
    """

    default_message = "❌ Service is temporarily unavailable. Please try again later."


class ExternalPublishFailure(ExternalTransientFailure):
    """Не удалось отправить или отредактировать сообщение в канале."""

    default_message = "❌ Error posting to channel"


class ConfigurationMissing(QABotError):
    """
    Ошибка конфигурации.

    Возникает когда не заданы CHANNEL_ID / CHANNEL_LINK.
    """

    default_message = "❌ Channel not configured. Contact administrator."
