"""
Константы приложения.
"""

# Лимиты Telegram
MAX_MESSAGE_LENGTH = 4096
MAX_CAPTION_LENGTH = 1024

# Место под реплики в сообщении с ответом
REPLIES_RESERVE = 1000
MIN_REPLY_ROOM = 20

# Предпросмотр ответа перед подтверждением
ANSWER_PREVIEW_LENGTH = 100

# Список вопросов на модерации
PENDING_QUESTIONS_LIMIT = 10
PENDING_PREVIEW_LENGTH = 100

# Повторы атомарной вставки ответа при конфликте позиции
ANSWER_APPEND_RETRIES = 5

# Статусы участника канала, которые считаются подпиской
SUBSCRIBED_MEMBER_STATUSES = ("creator", "administrator", "member")
