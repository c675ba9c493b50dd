"""Tests for areaforge.typology: scale detection, typology matching and clarifications."""

from areaforge.typology import (
    analyze_scale,
    detect_scale,
    format_area,
    generate_scale_clarification,
    get_next_scale_down,
    get_scale_unfold_guidance,
    match_typology,
    suggest_magnitude_corrections,
    validate_split_for_scale,
)


class TestDetectScale:
    def test_scale_boundaries(self):
        assert detect_scale(500) == "interior"
        assert detect_scale(2_000) == "interior"
        assert detect_scale(5_000) == "architecture"
        assert detect_scale(200_000) == "landscape"
        assert detect_scale(2_000_000) == "masterplan"
        assert detect_scale(50_000_000) == "urban"

    def test_next_scale_down(self):
        assert get_next_scale_down("urban") == "masterplan"
        assert get_next_scale_down("interior") is None


class TestFormatArea:
    def test_millions(self):
        assert format_area(1_500_000) == "1.5M m²"

    def test_thousands(self):
        assert format_area(15_000) == "15.0K m²"

    def test_small(self):
        assert format_area(850) == "850 m²"
        assert format_area(849.5) == "850 m²"


class TestMatchTypology:
    def test_direct_key(self):
        assert match_typology("office_building") == "office_building"

    def test_alias(self):
        assert match_typology("Resort") == "hotel_resort"

    def test_word_in_phrase(self):
        assert match_typology("a small boutique motel by the sea") == "hotel_boutique"

    def test_no_match(self):
        assert match_typology("spaceship") is None


class TestAnalyzeScale:
    def test_hundredfold_hotel_is_an_error(self):
        analysis = analyze_scale(5_000_000, "hotel")
        assert analysis["confidence"] == 0.2
        assert not analysis["size_within_range"]
        assert "This appears to be a scale mismatch - clarification needed" in analysis["warnings"]

    def test_magnitude_corrections_land_in_range(self):
        assert suggest_magnitude_corrections(5_000_000, "hotel")[:2] == [50_000, 5_000]

    def test_tenfold_is_a_warning(self):
        analysis = analyze_scale(1_000_000, "hotel")
        assert analysis["confidence"] == 0.4
        assert analysis["interpretations"]

    def test_slightly_over_is_only_noted(self):
        analysis = analyze_scale(60_000, "hotel")
        assert analysis["confidence"] == 0.6
        assert analysis["interpretations"] == []

    def test_unknown_building_type(self):
        analysis = analyze_scale(5_000, "spaceship")
        assert analysis["typology"] is None
        assert analysis["confidence"] == 0.6

    def test_very_large_area_warns(self):
        analysis = analyze_scale(20_000_000)
        assert any("Very large area" in w for w in analysis["warnings"])


class TestScaleClarification:
    def test_hotel_of_five_million_needs_clarification(self):
        result = generate_scale_clarification(5_000_000, "hotel")
        assert result["needs_clarification"]
        assert result["severity"] == "error"
        areas = [option["area"] for option in result["options"]]
        assert 5_000 in areas
        assert any("Masterplan" in option["interpretation"] for option in result["options"])
        assert result["options"][-1]["label"].startswith("Keep 5.0M m² as specified")

    def test_tenfold_severity_is_warning(self):
        result = generate_scale_clarification(1_000_000, "hotel")
        assert result["needs_clarification"]
        assert result["severity"] == "warning"

    def test_within_range_needs_nothing(self):
        result = generate_scale_clarification(15_000, "hotel")
        assert not result["needs_clarification"]
        assert result["options"] == []

    def test_slightly_over_is_info(self):
        result = generate_scale_clarification(60_000, "hotel")
        assert not result["needs_clarification"]
        assert result["severity"] == "info"


class TestUnfoldGuidance:
    def test_building_unfolds_into_departments(self):
        guidance = get_scale_unfold_guidance(5_000)
        assert guidance["current_scale"] == "architecture"
        assert guidance["next_scale"] == "interior"
        assert guidance["child_size_range"]["min"] == 50
        assert guidance["constraint"] == (
            "Generate 2-10 floors, departments, or functional zones. Each should be 50 m²-5.0K m²."
        )

    def test_split_limited_by_scale_minimum(self):
        result = validate_split_for_scale(50, 10)
        assert not result["valid"]
        assert result["max_parts"] == 5

    def test_split_within_limit(self):
        assert validate_split_for_scale(1_000, 4)["valid"]
