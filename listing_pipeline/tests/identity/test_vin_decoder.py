import pytest

from listing_pipeline.app.identity.vin_decoder import check_digit, decode_vin, is_valid_vin

GT3_997 = "WP0AC29978S792345"
GT3_RS_991 = "WP0AF2A91KS292345"


def test_decodes_997_gt3():
    decoded = decode_vin(GT3_997)

    assert decoded.valid
    assert decoded.model == "911"
    assert decoded.model_year == 2008
    assert decoded.engine == "GT3"
    assert decoded.body_style == "Coupe"
    assert decoded.generation == "997.1"
    assert decoded.platforms == ("996", "997")
    assert decoded.vehicle_type == "sports_car"


def test_alphabetic_position_seven_uses_newer_cycle():
    decoded = decode_vin(GT3_RS_991)

    assert decoded.model_year == 2019
    assert decoded.engine == "GT3 RS"
    assert decoded.generation == "991.2"


def test_input_is_cleaned():
    assert decode_vin(f"  {GT3_997.lower()} ").vin == GT3_997


@pytest.mark.parametrize(
    "vin,reason",
    [
        ("WP0AC29978S79234", "invalid VIN length"),
        ("WP0AC29978S7923456", "invalid VIN length"),
        ("WP0AC2997IS792345", "invalid VIN characters"),
        ("1HGCM82633A004352", "unknown manufacturer code"),
        ("WP0AC2997US792345", "invalid model year code"),
        ("", "invalid VIN length"),
        (None, "invalid VIN length"),
    ],
)
def test_invalid_vins_never_yield_a_model(vin, reason):
    decoded = decode_vin(vin)

    assert not decoded.valid
    assert decoded.model is None
    assert decoded.model_year is None
    assert decoded.generation == ""
    assert reason in decoded.errors[0]


def test_year_conflicting_with_listing_is_invalid():
    decoded = decode_vin("WP0AC2A99XS000000", year_hint=2008)

    assert not decoded.valid
    assert decoded.model is None
    assert "conflicts with listing year 2008" in decoded.errors[0]


def test_year_hint_selects_other_cycle():
    decoded = decode_vin("WP0AB2A91DS120456", year_hint=1983)

    assert decoded.valid
    assert decoded.model_year == 1983
    assert any("read as 1983" in warning for warning in decoded.warnings)
    assert decoded.year_warning == "model year code 'D' read as 1983 to match listing year 1983"


def test_year_hint_within_window_keeps_position_seven_rule():
    decoded = decode_vin("WP0AB2A91DS120456", year_hint=2014)

    assert decoded.model_year == 2013
    assert decoded.generation == "991.1"


def test_check_digit_mismatch_is_only_a_warning():
    decoded = decode_vin(GT3_997)

    assert check_digit(GT3_997) != GT3_997[8]
    assert decoded.valid
    assert any("check digit" in warning for warning in decoded.warnings)


def test_check_digit_reference_value():
    assert check_digit("1M8GDM9AXKP042788") == "X"


def test_suv_manufacturer_code_has_no_model():
    decoded = decode_vin("WP1AB2A59FLA12345")

    assert decoded.valid
    assert decoded.vehicle_type == "suv"
    assert decoded.model is None
    assert not decoded.model_known


def test_race_chassis():
    decoded = decode_vin("WP0ZZZ99Z8S790001")

    assert decoded.valid
    assert decoded.race_chassis
    assert decoded.model == "911"
    assert decoded.engine is None


def test_unknown_pattern_is_a_warning_not_a_failure():
    decoded = decode_vin("WP0AA2B118S790001")

    assert decoded.valid
    assert decoded.model is None
    assert any("not recognised" in warning for warning in decoded.warnings)


def test_decoding_is_deterministic():
    assert decode_vin(GT3_997, year_hint=2008) == decode_vin(GT3_997, year_hint=2008)


def test_structural_validity():
    assert is_valid_vin(GT3_997)
    assert not is_valid_vin("WP0AC2997OS792345")
