"""Client-facing throttling messages.

Messages are keyed by locale and limit type. Templates receive ``seconds``
and ``minutes`` (seconds rounded up to whole minutes); long blocks such as
login and grading read better in minutes.
"""

from __future__ import annotations

import math

DEFAULT_LOCALE = "en"

_MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "ai-generation": "You reached the AI content generation limit. Please try again in {seconds} seconds.",
        "chat": "Too many chat messages. Please wait {seconds} seconds.",
        "grading": "You reached the grading limit. Please try again in {minutes} minutes.",
        "login": "Too many login attempts. Please wait {minutes} minutes.",
        "wizdi-api": "API rate limit exceeded. Please try again in {seconds} seconds.",
        "general": "Too many requests. Please try again in {seconds} seconds.",
    },
    "he": {
        "ai-generation": "הגעת למגבלת יצירת תוכן AI. אנא נסה שוב בעוד {seconds} שניות.",
        "chat": "יותר מדי הודעות בצ'אט. אנא המתן {seconds} שניות.",
        "grading": "הגעת למגבלת הערכות. אנא נסה שוב בעוד {minutes} דקות.",
        "login": "יותר מדי ניסיונות התחברות. אנא המתן {minutes} דקות.",
        "wizdi-api": "חריגה ממגבלת ה-API. אנא נסה שוב בעוד {seconds} שניות.",
        "general": "יותר מדי בקשות. אנא נסה שוב בעוד {seconds} שניות.",
    },
}


def rate_limit_message(limit_type: str, seconds: int, locale: str = DEFAULT_LOCALE) -> str:
    """Build the localized throttling message.

    Unknown locales fall back to English, unknown limit types to the
    ``general`` template.

    Examples:
        >>> rate_limit_message("login", 300)
        'Too many login attempts. Please wait 5 minutes.'
    """

    templates = _MESSAGES.get(locale, _MESSAGES[DEFAULT_LOCALE])
    template = templates.get(limit_type, templates["general"])
    return template.format(seconds=seconds, minutes=math.ceil(seconds / 60))
