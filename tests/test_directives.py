from __future__ import annotations

import pytest

from dietcoach.directives import AddCalories, AddWater, GenerateImage, QuickReplies, SetTarget, parse_reply


@pytest.mark.parametrize(
    "text",
    [
        "Great lunch! Keep it up.",
        "  Drink water [soon] and rest.  ",
        "Brackets [[like this]] that are not tags stay.",
        "Breakfast ideas:\n\n\n- poha\n- upma",
        "",
    ],
)
def test_directive_free_text_passes_through(text: str) -> None:
    r = parse_reply(text)
    assert r.clean_text == text.strip()
    assert r.directives == ()
    assert r.calories_to_add is None
    assert r.new_target is None
    assert r.water_to_add is None
    assert r.buttons is None
    assert r.image_prompt is None


def test_add_extracted_and_removed() -> None:
    r = parse_reply("Nice dal 👍\n• Approx 350 kcal\n[[ADD: 350]]")
    assert r.calories_to_add == 350
    assert "[[" not in r.clean_text
    assert r.clean_text == "Nice dal 👍\n• Approx 350 kcal"


def test_all_tags_case_insensitive_and_whitespace_tolerant() -> None:
    r = parse_reply(
        "Ok!\n[[ add :  420 ]] [[Target:1450]] [[WATER: 250]]\n"
        "[[buttons: Yes,  Not yet , ,Later]] [[ GENERATE_IMAGE :  Healthy   Dosa ]]"
    )
    assert r.calories_to_add == 420
    assert r.new_target == 1450
    assert r.water_to_add == 250
    assert r.buttons == ("Yes", "Not yet", "Later")
    assert r.image_prompt == "Healthy Dosa"
    assert r.clean_text == "Ok!"
    assert {type(d) for d in r.directives} == {AddCalories, SetTarget, AddWater, QuickReplies, GenerateImage}


def test_first_instance_wins_and_all_instances_are_stripped() -> None:
    r = parse_reply("A [[ADD: 100]] B [[ADD: 200]] C")
    assert r.calories_to_add == 100
    assert r.clean_text == "A  B  C"


@pytest.mark.parametrize("payload", ["abc", "-50", "12.5", "350 kcal", ""])
def test_malformed_integer_is_absent_but_never_leaks(payload: str) -> None:
    r = parse_reply(f"Hmm [[ADD: {payload}]] [[WATER: {payload}]]")
    assert r.calories_to_add is None
    assert r.water_to_add is None
    assert "[[" not in r.clean_text
    assert r.clean_text == "Hmm"


def test_malformed_first_then_valid() -> None:
    r = parse_reply("[[TARGET: lots]] then [[TARGET: 1400]]")
    assert r.new_target == 1400
    assert r.clean_text == "then"


def test_empty_buttons_and_prompt_are_absent() -> None:
    r = parse_reply("Hi [[BUTTONS: , ,]] [[GENERATE_IMAGE:   ]]")
    assert r.buttons is None
    assert r.image_prompt is None
    assert r.clean_text == "Hi"


def test_zero_is_present_not_absent() -> None:
    r = parse_reply("[[ADD: 0]]")
    assert r.calories_to_add == 0


def test_blank_lines_left_by_tags_are_collapsed() -> None:
    r = parse_reply("Line one\n\n[[WATER: 200]]\n\n\nLine two")
    assert r.clean_text == "Line one\n\nLine two"


def test_parsing_is_deterministic() -> None:
    text = "Try this [[GENERATE_IMAGE: Poha bowl]] [[BUTTONS: Yes, No]]"
    assert parse_reply(text) == parse_reply(text)


def test_none_input() -> None:
    r = parse_reply(None)
    assert r.clean_text == ""
    assert r.directives == ()


def test_payload_with_square_brackets_is_still_a_tag() -> None:
    r = parse_reply("Try this! [[GENERATE_IMAGE: Masala dosa [crispy] with chutney]]")
    assert r.image_prompt == "Masala dosa [crispy] with chutney"
    assert r.clean_text == "Try this!"


def test_tag_payload_may_span_lines() -> None:
    r = parse_reply("Here [[BUTTONS: Yes,\nNot yet]]")
    assert r.buttons == ("Yes", "Not yet")
    assert r.clean_text == "Here"


@pytest.mark.parametrize("digits", [10, 5000])
def test_oversized_integer_is_absent(digits: int) -> None:
    r = parse_reply(f"ok [[ADD: {'9' * digits}]] [[WATER: 250]]")
    assert r.calories_to_add is None
    assert r.water_to_add == 250
    assert r.clean_text == "ok"


def test_nine_digit_integer_is_accepted() -> None:
    assert parse_reply("[[TARGET: 123456789]]").new_target == 123456789
