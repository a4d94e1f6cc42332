import pytest

from listing_pipeline.app.identity.colors import is_paint_to_sample, normalize_color
from listing_pipeline.app.identity.titles import match_model, match_trim, parse_title


def test_generation_keyword_title():
    signals = parse_title("2008 Porsche 997 GT3")

    assert signals.year == 2008
    assert signals.model == "911"
    assert signals.trim == "GT3"
    assert signals.generation == "997"
    assert signals.unsupported_model is None


def test_mileage_prefix_is_not_a_year():
    signals = parse_title("2,019-Mile 2004 Porsche 911 GT3")

    assert signals.year == 2004


@pytest.mark.parametrize(
    "title,model,trim",
    [
        ("2019 Porsche 911 GT3 RS Weissach", "911", "GT3 RS"),
        ("2018 Porsche 911 GT3 Touring 6-Speed", "911", "GT3 Touring"),
        ("2016 Porsche Cayman GT4", "718 Cayman", "GT4"),
        ("2014 Porsche Boxster S", "718 Boxster", "S"),
        ("2011 Porsche 911 Carrera GTS", "911", "Carrera GTS"),
        ("2022 Porsche 718 Spyder", "718 Boxster", "Spyder"),
        ("2013 Porsche 718", "718", None),
    ],
)
def test_model_and_trim_keywords(title, model, trim):
    signals = parse_title(title)

    assert signals.model == model
    assert signals.trim == trim


def test_unsupported_models_are_reported():
    assert parse_title("2005 Porsche Cayenne Turbo").unsupported_model == "Cayenne"
    assert parse_title("2005 Porsche Carrera GT").unsupported_model == "Carrera GT"
    assert parse_title("2011 Porsche 911 Carrera GTS").unsupported_model is None


def test_race_trims_match_before_road_trims():
    assert match_trim("2017 Porsche 911 GT3 Cup") == "GT3 Cup"
    assert match_trim("2019 911 GT3 R") == "GT3 R"
    assert match_trim("2019 911 GT3 RS") == "GT3 RS"


def test_empty_title():
    signals = parse_title(None)

    assert signals.year is None
    assert signals.model is None
    assert match_model("") is None


def test_exterior_colors_map_to_factory_names():
    assert normalize_color("Guards Red") == "Guards Red"
    assert normalize_color("Agate Grey Metallic") == "Agate Gray"
    assert normalize_color("black") == "Jet Black"
    assert normalize_color("Paint-to-Sample Gulf Blue") == "Gulf Blue"


def test_interior_colors_are_only_cleaned():
    assert normalize_color("black", interior=True) == "black"
    assert normalize_color("Black Leather ", interior=True) == "Black Leather"


def test_blank_colors():
    assert normalize_color(None) is None
    assert normalize_color("   ") is None
    assert normalize_color("PTS") is None


def test_paint_to_sample_flag():
    assert is_paint_to_sample("Gulf Blue (PTS)")
    assert is_paint_to_sample("paint to sample Oak Green")
    assert not is_paint_to_sample("Guards Red")
