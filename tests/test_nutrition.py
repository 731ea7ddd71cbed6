from dietcoach.nutrition import bmr_mifflin_st_jeor, daily_calorie_target, daily_calorie_target_with_meta, direction


def test_bmr_female_and_male() -> None:
    assert bmr_mifflin_st_jeor("Female", 32, 160, 78) == 1459
    assert bmr_mifflin_st_jeor("Male", 30, 180, 70) == 1680


def test_loss_target_applies_deficit() -> None:
    meta = daily_calorie_target_with_meta(
        gender="Female",
        age=32,
        height_cm=160,
        current_weight_kg=78,
        target_weight_kg=65,
        activity_level="Low",
    )
    assert meta.direction == "loss"
    assert meta.bmr_kcal == 1459
    assert meta.target_kcal == 1606


def test_gain_target_applies_surplus() -> None:
    kcal = daily_calorie_target(
        gender="Male",
        age=30,
        height_cm=180,
        current_weight_kg=70,
        target_weight_kg=75,
        activity_level="Moderate",
    )
    assert kcal == 2854


def test_loss_target_never_below_floor() -> None:
    kcal = daily_calorie_target(
        gender="Female",
        age=60,
        height_cm=150,
        current_weight_kg=50,
        target_weight_kg=45,
        activity_level="Very low",
    )
    assert kcal == 1200


def test_missing_body_data_uses_default_bmr() -> None:
    kcal = daily_calorie_target(
        gender=None,
        age=None,
        height_cm=None,
        current_weight_kg=None,
        target_weight_kg=None,
        activity_level="very low",
    )
    assert kcal == 1800


def test_direction() -> None:
    assert direction(80, 70) == "loss"
    assert direction(70, 80) == "gain"
    assert direction(70, 70) == "maintain"
    assert direction(None, 70) == "maintain"
