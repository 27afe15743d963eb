"""
Keyword intent detection (no LLM)
Global commands, idle-menu intents, yes/no replies and vehicle type matching
"""
import re
from dataclasses import dataclass
from typing import Iterable, Literal, Optional

from app.services.pricing.engine import VEHICLE_TYPES

HELP_WORDS = {"help", "menu"}
CANCEL_WORDS = {"cancel", "stop"}

BOOK_WORDS = {"book", "booking", "hire", "transport"}
PRICE_WORDS = {"price", "prices", "pricing", "cost", "rate", "rates"}
DRIVER_WORDS = {"driver", "drivers", "join"}

YES_WORDS = {"yes", "y", "yeah", "yep", "ok", "okay", "confirm", "book", "ndio", "sawa"}
NO_WORDS = {"no", "n", "nope", "change", "edit", "hapana"}


def normalize_whitespace(s: str) -> str:
    """Normalize whitespace in string"""
    return re.sub(r"\s+", " ", s.strip())


def contains_word(text: str, words: Iterable[str]) -> bool:
    """True if any of the words appears in text as a whole word (case-insensitive)"""
    lowered = text.lower()
    return any(re.search(rf"\b{re.escape(w)}\b", lowered) for w in words)


def match_vehicle_type(text: str) -> Optional[str]:
    """First vehicle type from the fixed vocabulary contained in the text"""
    lowered = text.lower()
    for vehicle_type in VEHICLE_TYPES:
        if vehicle_type in lowered:
            return vehicle_type
    return None


@dataclass
class IntentGateResult:
    """Result of global command classification"""
    kind: Literal["continue", "help", "cancel"]


class IntentGate:
    """
    Global commands that apply in every state.
    Cancel wins over help when a message contains both.
    """

    def check(self, user_message: str) -> IntentGateResult:
        msg = normalize_whitespace(user_message or "")

        if contains_word(msg, CANCEL_WORDS):
            return IntentGateResult(kind="cancel")

        if contains_word(msg, HELP_WORDS):
            return IntentGateResult(kind="help")

        return IntentGateResult(kind="continue")


def idle_intent(message: str) -> Literal["book", "price", "driver", "unknown"]:
    if contains_word(message, BOOK_WORDS):
        return "book"
    if contains_word(message, PRICE_WORDS):
        return "price"
    if contains_word(message, DRIVER_WORDS):
        return "driver"
    return "unknown"


def confirmation_reply(message: str) -> Literal["yes", "no", "unclear"]:
    if contains_word(message, YES_WORDS):
        return "yes"
    if contains_word(message, NO_WORDS):
        return "no"
    return "unclear"
