import pytest

from app.services.chatbot.intents import (
    IntentGate,
    confirmation_reply,
    contains_word,
    idle_intent,
    match_vehicle_type,
)


@pytest.mark.parametrize("text, kind", [
    ("help", "help"),
    ("MENU please", "help"),
    ("cancel", "cancel"),
    ("Stop!", "cancel"),
    ("help me cancel", "cancel"),
    ("Dar es Salaam CBD", "continue"),
    ("helpful driver", "continue"),
    ("", "continue"),
])
def test_intent_gate(text, kind):
    assert IntentGate().check(text).kind == kind


@pytest.mark.parametrize("text, intent", [
    ("I want to book a trip", "book"),
    ("Hire a driver", "book"),
    ("what are your prices?", "price"),
    ("cost", "price"),
    ("I want to join as a driver", "driver"),
    ("habari", "unknown"),
])
def test_idle_intent(text, intent):
    assert idle_intent(text) == intent


@pytest.mark.parametrize("text, answer", [
    ("yes", "yes"),
    ("Yes please confirm", "yes"),
    ("sawa", "yes"),
    ("no", "no"),
    ("I want to change the date", "no"),
    ("maybe", "unclear"),
])
def test_confirmation_reply(text, answer):
    assert confirmation_reply(text) == answer


@pytest.mark.parametrize("text, vehicle", [
    ("I need a van please", "van"),
    ("PICKUP", "pickup"),
    ("a big lorry", "lorry"),
    ("Suv", "suv"),
    ("bicycle", None),
])
def test_match_vehicle_type(text, vehicle):
    assert match_vehicle_type(text) == vehicle


def test_contains_word_is_whole_word():
    assert contains_word("please book now", {"book"})
    assert not contains_word("facebook", {"book"})
