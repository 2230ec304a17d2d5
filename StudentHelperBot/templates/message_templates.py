"""
Шаблоны сообщений бота.

Содержит функции для форматирования HTML-сообщений:
онбординг, меню, вопросы и ответы, пост в канале, админ-команды.
Пользовательский текст всегда экранируется через escape_html.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from config.constants import (
    MAX_CAPTION_LENGTH,
    MAX_MESSAGE_LENGTH,
    MIN_REPLY_ROOM,
    PENDING_PREVIEW_LENGTH,
    REPLIES_RESERVE,
)
from config.grades import format_grade_level
from core.validators import get_display_name


# ============================================================
# БАЗОВЫЕ ФУНКЦИИ ФОРМАТИРОВАНИЯ
# ============================================================

def escape_html(text: Optional[str]) -> str:
    """
    Экранирует HTML-специальные символы.

    Args:
        text: Исходный текст

    Returns:
        Экранированный текст
    """
    if not text:
        return ""
    return (
        text.replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
    )


def bold(text: str) -> str:
    """Оборачивает текст в тег <b>."""
    return f"<b>{text}</b>"


def italic(text: str) -> str:
    """Оборачивает текст в тег <i>."""
    return f"<i>{text}</i>"


def code(text: str) -> str:
    """Оборачивает текст в тег <code>."""
    return f"<code>{escape_html(text)}</code>"


def format_date(dt: Optional[datetime]) -> str:
    """Дата для списков ответов и вопросов."""
    if not dt:
        return ""
    return dt.strftime("%Y-%m-%d")


def format_content(
    media_type: Optional[str],
    content: Optional[str],
    caption: Optional[str] = None,
    max_length: Optional[int] = None,
) -> str:
    """
    Содержимое вопроса/ответа для текста сообщения.

    Текст выводится как есть, медиа - как [PHOTO] подпись.
    max_length ограничивает видимую длину: текст обрезается
    до экранирования, поэтому HTML-сущности не разрываются.
    """
    label = ""
    text = content or ""
    if media_type and media_type != "text":
        label = f"[{media_type.upper()}] "
        text = caption or content or ""

    if max_length is not None:
        text = truncate_message(text, max(max_length - len(label), 0))
    return f"{label}{escape_html(text)}"


def text_length(text: str) -> int:
    """Длина в единицах UTF-16, как её считает Telegram."""
    return len(text.encode("utf-16-le")) // 2


def truncate_message(text: str, max_length: Optional[int] = None) -> str:
    """
    Обрезает сообщение до максимальной длины (в единицах UTF-16).

    Применяется к исходному тексту, не к готовому HTML.
    Суррогатная пара на границе обреза отбрасывается целиком.

    Args:
        text: Исходный текст
        max_length: Максимальная длина

    Returns:
        Обрезанный текст
    """
    max_len = MAX_MESSAGE_LENGTH if max_length is None else max(max_length, 0)

    if text_length(text) <= max_len:
        return text

    encoded = text.encode("utf-16-le")
    if max_len <= 3:
        return encoded[: 2 * max_len].decode("utf-16-le", errors="ignore")
    return encoded[: 2 * (max_len - 3)].decode("utf-16-le", errors="ignore") + "..."


def text_limit(media_type: Optional[str], media_id: Optional[str] = None) -> int:
    """Лимит Telegram: подпись для медиа, обычное сообщение для текста."""
    if media_type and media_type != "text" and media_id:
        return MAX_CAPTION_LENGTH
    return MAX_MESSAGE_LENGTH


def fit_content(prefix: str, item: Any, suffix: str = "", limit: Optional[int] = None) -> str:
    """
    Собирает prefix + содержимое item + suffix в пределах лимита.

    Обрезается только содержимое, поэтому рамка сообщения
    (теги, ID вопроса) сохраняется целиком. Длина рамки считается
    по HTML, который не короче видимого текста.
    """
    if limit is None:
        limit = text_limit(item.media_type, getattr(item, "media_id", None))
    budget = limit - text_length(prefix) - text_length(suffix)
    body = format_content(item.media_type, item.content, getattr(item, "media_caption", None), max_length=budget)
    return f"{prefix}{body}{suffix}"


# ============================================================
# ОНБОРДИНГ
# ============================================================

def onboarding_welcome_message() -> str:
    return (
        f"🎓 {bold('Welcome to Student Helper Bot!')}\n\n"
        "To get started, please complete these steps:\n\n"
        "1️⃣ Subscribe to our channel\n"
        "2️⃣ Share your contact information\n\n"
        "Let's begin with channel subscription:"
    )


def onboarding_without_channel_message() -> str:
    return (
        f"🎓 {bold('Welcome to Student Helper Bot!')}\n\n"
        f"📱 {bold('Next Step: Share Contact')}\n\n"
        "Please share your contact information to complete the setup."
    )


def subscription_required_message(channel_link: Optional[str]) -> str:
    return (
        f"📢 {bold('Channel Subscription Required')}\n\n"
        "To use this bot, you need to subscribe to our official channel.\n\n"
        f"📋 {bold('Steps:')}\n"
        "1. Click the channel link below\n"
        "2. Join the channel\n"
        "3. Come back here and click \"✅ Check Subscription\"\n\n"
        f"🔗 {bold('Channel:')} {escape_html(channel_link)}"
    )


def subscription_not_found_message(channel_link: Optional[str]) -> str:
    return (
        f"❌ {bold('Subscription Not Found')}\n\n"
        "It seems you haven't subscribed to our channel yet.\n\n"
        "Please:\n"
        "1. Click the channel link below\n"
        "2. Join the channel\n"
        "3. Come back here and click \"✅ Check Subscription\"\n\n"
        f"🔗 {bold('Channel:')} {escape_html(channel_link)}"
    )


def subscription_verified_message() -> str:
    return (
        f"✅ {bold('Subscription Verified!')}\n\n"
        "Great! You've successfully subscribed to our channel.\n\n"
        f"📱 {bold('Next Step: Share Contact')}\n\n"
        "Please share your contact information to complete the setup.\n"
        "Tap the button below to continue:"
    )


def share_contact_message() -> str:
    return (
        f"📱 {bold('Share Your Contact')}\n\n"
        "Please share your contact information by tapping the button below.\n\n"
        "This helps us provide better support and track your requests."
    )


CONTACT_BUTTON_PROMPT = "📱 Share your contact using the button below:"
OWN_CONTACT_ONLY = "❌ Please share your own contact using the button below."
SETUP_CANCELLED = (
    f"❌ {bold('Setup Cancelled')}\n\n"
    "You can restart the setup process anytime by using /start command."
)
SETUP_COMPLETE = f"✅ {bold('Setup Complete!')}\n\nWelcome to Student Helper Bot! 🎓"
SETUP_COMPLETE_ANSWER = "✅ Setup complete! Taking you to the question..."
SETUP_COMPLETE_VIEW = "✅ Setup complete! Loading answers..."
FINISH_SETUP = "❌ Please complete the setup first. Use /start to continue."
BANNED_MESSAGE = (
    "❌ You are not allowed to use this bot. "
    "Please contact an admin if you think this is a mistake."
)


# ============================================================
# МЕНЮ
# ============================================================

def main_menu_message() -> str:
    return (
        f"🎓 {bold('Student Helper Bot')}\n\n"
        "Welcome! I'm here to help you with your academic journey.\n\n"
        f"❓ {bold('Q&A Community')} - Ask questions and get answers from the community\n\n"
        "Choose an option to get started:"
    )


def help_message(is_admin: bool = False, support_username: str = "") -> str:
    """
    Справка по командам.

    Админские команды показываются только администраторам.
    """
    admin_lines = ""
    if is_admin:
        admin_lines = "/admin - Admin panel (admin only)\n/adminstatus - Check your admin status\n"

    support_line = ""
    if support_username:
        support_line = f"\nNeed more help? Contact support @{escape_html(support_username.lstrip('@'))}."

    return (
        f"❓ {bold('Help Menu')}\n\n"
        f"📋 {bold('Available Commands:')}\n"
        "/start - Start the bot\n"
        "/ask - Ask questions to the community\n"
        "/myquestions - Show your questions\n"
        "/cancel - Cancel the current action\n"
        f"{admin_lines}"
        "/help - Show this help menu\n\n"
        f"💡 {bold('How to use:')}\n\n"
        f"❓ {bold('Ask Questions:')}\n"
        "1. Use /ask to submit a question\n"
        "2. Send your question (text, voice, photo, etc.)\n"
        "3. Select your grade level\n"
        "4. Wait for admin approval\n"
        "5. Others can answer your question\n"
        f"{support_line}"
    )


def ask_question_menu_message() -> str:
    return (
        f"❓ {bold('Ask a Question')}\n\n"
        "Ask questions to the community and get answers from other students and tutors.\n\n"
        f"📋 {bold('How it works:')}\n"
        "1. Send your question (text, voice, photo, video, document)\n"
        "2. Select your grade level\n"
        "3. Wait for admin approval\n"
        "4. Your question will be posted to the community\n"
        "5. Others can answer your question\n\n"
        f"💡 {bold('Tips for a good question:')}\n"
        "• Include all necessary details\n"
        "• Specify what you've already tried\n"
        "• Be clear and concise"
    )


def my_questions_message(questions: Iterable[Any]) -> str:
    """Список вопросов пользователя со статусом и числом ответов."""
    questions = list(questions)
    if not questions:
        return (
            f"📋 {bold('My Questions')}\n\n"
            "You haven't asked any questions yet.\n\n"
            "Use /ask to submit a new question!"
        )

    status_icons = {"pending": "⏳", "approved": "✅", "declined": "❌"}
    lines = [f"📋 {bold('My Questions')}", ""]

    for question in questions:
        preview = format_content(
            question.media_type,
            question.content,
            question.media_caption,
            max_length=PENDING_PREVIEW_LENGTH,
        )
        lines.append(f"{status_icons.get(question.status, '•')} {preview}")
        lines.append(
            f"   📚 {format_grade_level(question.grade_level)} | "
            f"💬 {len(question.answers)} | {format_date(question.created_at)}"
        )

    lines.extend(["", "Use /ask to submit a new question!"])
    return "\n".join(lines)


# ============================================================
# ВОПРОСЫ
# ============================================================

def ask_question_message() -> str:
    return (
        f"❓ {bold('Ask a Question')}\n\n"
        "You can send your question as text, photo, video, audio, document, or voice.\n\n"
        "💡 Tips for a good question:\n"
        "• Include all necessary details\n"
        "• Specify what you've already tried\n"
        "• Be clear and concise\n\n"
        "Your question will be reviewed by an admin before being posted."
    )


SELECT_GRADE = "📚 Select your grade level:"
PICK_GRADE_REMINDER = "📚 Please select your grade level using the buttons above."
QUESTION_TOO_SHORT = "❌ Your question is too short. Please provide more details."
COMMAND_NOT_CONTENT = "❌ Unknown command. Send your text or media, or /cancel to stop."
QUESTION_CANCELLED = "❌ Question cancelled."
QUESTION_SUBMITTED = (
    "✅ Your question has been submitted!\n\n"
    "It will be reviewed by our admins and posted to the channel if approved.\n"
    "You will receive a notification when your question is approved."
)
QUESTION_APPROVED_NOTICE = (
    "✅ Your question has been approved and posted to the channel!\n"
    "Other students can now see and answer your question."
)
QUESTION_DECLINED_NOTICE = (
    "❌ Your question has been declined by an administrator.\n"
    "Please review our community guidelines for asking questions."
)
NOTHING_TO_CANCEL = "Nothing to cancel."
ACTION_CANCELLED = "✅ Cancelled"


def channel_question_post(question: Any) -> str:
    """Текст (или подпись) поста с вопросом в канале."""
    prefix = f"{bold('❓ Question from Student')}\n\n"
    suffix = f"\n\n📚 Grade Level: {escape_html(format_grade_level(question.grade_level))}"
    budget = text_limit(question.media_type, question.media_id) - text_length(prefix) - text_length(suffix)
    return f"{prefix}{escape_html(truncate_message(question.content or '', budget))}{suffix}"


# ============================================================
# ОТВЕТЫ И РЕПЛИКИ
# ============================================================

ANSWER_TOO_SHORT = "❌ Your answer is too short. Please provide a more detailed response."
REPLY_TOO_SHORT = "❌ Your reply is too short. Please provide a more detailed response."
ANSWER_CANCELLED = "✅ Answer cancelled"
REPLY_CANCELLED = "✅ Reply cancelled"
REPLY_SUBMITTED = "✅ Your reply is submitted!"
REPLY_PROMPT = "↩️ Type your reply. You can send text, voice, photo, video, or document."
EDIT_ANSWER_PROMPT = "✏️ Send your corrected answer."
NO_ANSWERS = "👁️ No answers yet for this question."
NO_OTHER_ANSWERS = "No answers from others yet."
ANSWERS_FOOTER = "Use the buttons above to react to answers or reply to them."
ANSWER_DRAFT_MISSING = "❌ Please send your answer first."
REACTION_RECORDED = {
    "right": "✅ Marked as right",
    "wrong": "❌ Marked as wrong",
}


def answer_prompt_message(question: Any, is_author: bool) -> str:
    """Приглашение написать ответ (или дополнение автора)."""
    header = "📝 Add information to your question:" if is_author else "💬 Answer this question:"
    kind = "additional information" if is_author else "answer"
    return fit_content(
        f"{header}\n\nQuestion: ",
        question,
        f"\n\nGrade Level: {escape_html(format_grade_level(question.grade_level))}\n\n"
        f"Type your {kind} below. You can send text, voice, photo, video, or document.",
    )


def answer_confirm_message(preview: str, is_author: bool) -> str:
    """Подтверждение ответа перед публикацией."""
    title = "Additional Information" if is_author else "Answer"
    kind = "information" if is_author else "answer"
    return (
        f"{bold(f'📝 Confirm Your {title}')}\n\n"
        f"{escape_html(preview)}\n\n"
        f"Are you sure you want to post this {kind}?"
    )


def answer_posted_message(is_author: bool) -> str:
    if is_author:
        return "✅ Your additional information has been posted!"
    return "✅ Your answer has been posted!"


def answers_header_message(question: Any) -> str:
    return fit_content(
        f"{bold('📝 Question:')}\n",
        question,
        f"\n\n{bold('Grade Level:')} {escape_html(format_grade_level(question.grade_level))}\n\n"
        f"{bold('Total Answers:')} {len(question.answers)}",
    )


def author_updates_header(count: int) -> str:
    return bold(f"📌 Updates from Question Author ({count}):")


def regular_answers_header(count: int) -> str:
    return bold(f"💬 Answers from Others ({count}):")


def author_update_message(number: int, answer: Any) -> str:
    date = format_date(answer.created_at)
    suffix = f" ({date})" if date else ""
    return fit_content(f"{bold(f'📌 Author Update {number}{suffix}:')}\n\n", answer)


def answer_message(number: int, answer: Any) -> str:
    """
    Ответ с репликами (без имени автора ответа).

    Реплики добавляются, пока помещаются в лимит сообщения,
    остальные сворачиваются в строку "... and N more".
    """
    date = format_date(answer.created_at)
    suffix = f" ({date})" if date else ""
    limit = text_limit(answer.media_type, answer.media_id)
    replies = list(answer.replies or [])

    header = f"{bold(f'💬 Answer {number} by Anonymous{suffix}:')}\n\n"
    reserve = min(REPLIES_RESERVE, limit // 2) if replies else 0
    text = fit_content(header, answer, limit=limit - reserve)

    if not replies:
        return text

    text += "\n\n" + bold(f"↩️ Replies ({len(replies)}):")
    for shown, reply in enumerate(replies):
        rest = len(replies) - shown
        tail = f"\n... and {rest - 1} more" if rest > 1 else ""
        room = limit - text_length(text) - text_length("\n• ") - text_length(tail)
        if room < MIN_REPLY_ROOM:
            text += f"\n... and {rest} more"
            break
        text += "\n• " + format_content(reply.media_type, reply.content, reply.media_caption, max_length=room)

    return text


# ============================================================
# АДМИНИСТРИРОВАНИЕ
# ============================================================

ADMIN_ONLY = "❌ You are not authorized to access admin panel."
QUESTION_APPROVED_ADMIN = "✅ Question approved and posted to channel."
QUESTION_DECLINED_ADMIN = "❌ Question declined."
QUESTION_REPUBLISHED_ADMIN = "✅ Question posted to channel."


def question_approved_not_posted_message(question_id: str, reason: str) -> str:
    """Вопрос одобрен, но пост в канал не создан."""
    return (
        f"⚠️ Question approved, but it was not posted to the channel.\n"
        f"{escape_html(reason)}\n\n"
        f"Retry with /republish {code(question_id)}"
    )


def usage_message(command: str, arguments: str) -> str:
    """Подсказка по аргументам команды: Usage: /approve &lt;questionId&gt;."""
    return f"Usage: /{command} {escape_html(arguments)}"


def admin_panel_message() -> str:
    return (
        f"🔧 {bold('Admin Panel (Commands)')}\n\n"
        "/admin_questions – List pending questions\n"
        "/admin_stats – Show basic stats\n"
        "/approve &lt;questionId&gt; – Approve question\n"
        "/decline &lt;questionId&gt; – Decline question\n"
        "/republish &lt;questionId&gt; – Retry posting an approved question\n"
        "/broadcast &lt;message&gt; – Send message to all users\n"
        "/makeadmin &lt;userId&gt; [role] – Make admin (super, content, support)\n"
        "/removeadmin &lt;userId&gt; – Remove admin\n"
        "/listadmins – List admins\n"
        "/ban &lt;userId&gt; [reason] – Ban user\n"
        "/unban &lt;userId&gt; – Unban user"
    )


def pending_questions_message(questions: Iterable[Any]) -> str:
    """Список вопросов на модерации с командами approve/decline."""
    questions = list(questions)
    if not questions:
        return f"❓ {bold('Question Approvals')}\n\nNo pending questions."

    lines = [f"❓ {bold('Pending Questions')}", ""]
    for question in questions:
        preview = format_content(
            question.media_type,
            question.content,
            question.media_caption,
            max_length=PENDING_PREVIEW_LENGTH,
        )
        lines.append(f"• {code(question.id)}: {preview}")
        lines.append(f"  /approve {question.id} | /decline {question.id}")
        lines.append("")

    return "\n".join(lines).rstrip()


def new_question_admin_message(question: Any) -> str:
    """
    Уведомление администраторам о новом вопросе.

    Для медиа действует лимит подписи, для текста - лимит сообщения.
    Обрезается только текст вопроса, ID вопроса остаётся в конце.
    """
    if question.username:
        author = f"@{escape_html(question.username)}"
    else:
        author = escape_html(question.first_name or "Anonymous")

    return fit_content(
        f"🆕 {bold('New Question for Review')}\n\n",
        question,
        f"\n\n📚 Grade Level: {escape_html(format_grade_level(question.grade_level))}\n"
        f"👤 From: {author} ({code(str(question.user_id))})\n"
        f"🆔 {code(question.id)}",
    )


def stats_message(stats: Dict[str, int]) -> str:
    return (
        f"📊 {bold('Stats')}\n\n"
        f"❓ Questions: {stats['total_questions']} (pending: {stats['pending_questions']}, "
        f"approved: {stats['approved_questions']}, declined: {stats['declined_questions']})\n"
        f"💬 Answers: {stats['total_answers']}\n"
        f"👥 Total Users: {stats['total_users']}"
    )


def admin_status_message(
    telegram_id: int,
    first_name: Optional[str],
    username: Optional[str],
    user: Optional[Any],
) -> str:
    lines = [
        f"🔍 {bold('Admin Status Check')}",
        "",
        f"👤 User: {escape_html(first_name or '')}",
        f"🆔 User ID: {code(str(telegram_id))}",
        f"📧 Username: {escape_html(username or 'None')}",
    ]

    if user is None:
        lines.append("👑 Admin Status: ❌ No")
        lines.append("📊 User in DB: ❌ No")
        return "\n".join(lines)

    lines.extend([
        f"👑 Admin Status: {'✅ Yes' if user.is_admin else '❌ No'}",
        f"🔧 Admin Role: {escape_html(user.admin_role or 'None')}",
        f"📅 Admin Since: {format_date(user.admin_added_at) or 'N/A'}",
        f"👑 Added By: {user.admin_added_by or 'N/A'}",
        "📊 User in DB: ✅ Yes",
    ])
    return "\n".join(lines)


def admins_list_message(admins: Iterable[Any]) -> str:
    admins = list(admins)
    if not admins:
        return "❌ No admins found."

    lines = [f"👑 {bold('Admins:')}", ""]
    for admin in admins:
        name = escape_html(get_display_name(admin.username, admin.first_name, "Unknown"))
        lines.append(f"• {name} ({code(str(admin.telegram_id))}) - {escape_html(admin.admin_role or 'admin')}")
    return "\n".join(lines)


def broadcast_text(message: str) -> str:
    """Текст рассылки, который получают пользователи."""
    return f"📢 {bold('Broadcast Message')}\n\n{escape_html(message)}\n\nFrom: Admin"


def broadcast_result_message(total: int, success: int, failed: int) -> str:
    return (
        f"✅ {bold('Broadcast Complete!')}\n\n"
        "📊 Results:\n"
        f"✅ Success: {success}\n"
        f"❌ Failed: {failed}\n\n"
        f"Total users: {total}"
    )


# ============================================================
# ОШИБКИ
# ============================================================

def error_message(error_id: Optional[str] = None) -> str:
    """
    Сообщение о непредвиденной ошибке.

    Args:
        error_id: ID ошибки для репорта

    Returns:
        Форматированное сообщение
    """
    lines: List[str] = ["❌ An error occurred. Please try again."]

    if error_id:
        lines.extend(["", italic(f"Error ID: {code(error_id)}")])

    return "\n".join(lines)
