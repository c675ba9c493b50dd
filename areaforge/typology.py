"""Scale and typology validator.

Catches nonsensical inputs like a 500,000,000 m² hotel: detects the project
scale from the area, compares it with the expected size range of the building
type, and offers ranked alternative readings when they disagree.
"""

import math
from typing import Literal

Scale = Literal["interior", "architecture", "landscape", "masterplan", "urban"]
Severity = Literal["info", "warning", "error"]

SCALE_RANGES = {
    "interior": {
        "min": 10, "max": 2_000,
        "typical": "50-500 m²", "unit_breakdown": "rooms, zones, furniture layouts",
    },
    "architecture": {
        "min": 100, "max": 100_000,
        "typical": "500-20,000 m²", "unit_breakdown": "floors, departments, functional zones",
    },
    "landscape": {
        "min": 1_000, "max": 500_000,
        "typical": "2,000-50,000 m²",
        "unit_breakdown": "buildings, outdoor zones, parking, landscape areas",
    },
    "masterplan": {
        "min": 10_000, "max": 5_000_000,
        "typical": "50,000-500,000 m²",
        "unit_breakdown": "building plots, streets, public spaces, districts",
    },
    "urban": {
        "min": 100_000, "max": 100_000_000,
        "typical": "500,000-5,000,000 m²",
        "unit_breakdown": "neighborhoods, zones, infrastructure corridors",
    },
}

SCALE_HIERARCHY = ["urban", "masterplan", "landscape", "architecture", "interior"]

# (min, max, typical, description) in m²
TYPOLOGY_SIZE_RANGES = {
    # Residential
    "apartment": (30, 300, 80, "Single apartment unit"),
    "house": (80, 800, 200, "Single family house"),
    "apartment_building": (500, 20_000, 3_000, "Multi-unit residential"),
    "residential_tower": (5_000, 50_000, 15_000, "High-rise residential"),
    # Hospitality
    "hotel_boutique": (500, 5_000, 2_000, "Boutique hotel (10-50 rooms)"),
    "hotel": (3_000, 50_000, 15_000, "Standard hotel (50-300 rooms)"),
    "hotel_large": (20_000, 150_000, 50_000, "Large hotel/resort (300+ rooms)"),
    "hotel_resort": (30_000, 500_000, 100_000, "Resort complex (includes grounds)"),
    # Commercial
    "retail_shop": (50, 500, 150, "Single retail unit"),
    "retail_building": (1_000, 20_000, 5_000, "Retail building/mall floor"),
    "shopping_mall": (10_000, 300_000, 50_000, "Shopping center"),
    # Office
    "office_small": (100, 1_000, 300, "Small office suite"),
    "office_floor": (500, 3_000, 1_500, "Office floor plate"),
    "office_building": (2_000, 50_000, 10_000, "Office building"),
    "office_tower": (20_000, 200_000, 50_000, "Office tower"),
    # Institutional
    "school": (2_000, 20_000, 8_000, "Primary/secondary school"),
    "university_building": (5_000, 50_000, 15_000, "University building"),
    "hospital": (10_000, 200_000, 50_000, "Hospital"),
    "clinic": (500, 5_000, 2_000, "Medical clinic"),
    # Cultural
    "museum": (2_000, 100_000, 15_000, "Museum"),
    "theater": (1_000, 20_000, 5_000, "Theater/performance venue"),
    "library": (500, 30_000, 5_000, "Library"),
    # Industrial
    "warehouse": (1_000, 100_000, 10_000, "Warehouse"),
    "factory": (2_000, 200_000, 20_000, "Manufacturing facility"),
    # Mixed
    "mixed_use": (5_000, 200_000, 30_000, "Mixed-use building"),
}

TYPOLOGY_ALIASES = {
    # Hotels
    "hotel": "hotel",
    "motel": "hotel_boutique",
    "inn": "hotel_boutique",
    "resort": "hotel_resort",
    "hostel": "hotel_boutique",
    "lodge": "hotel_boutique",
    # Residential
    "apartment": "apartment",
    "flat": "apartment",
    "condo": "apartment",
    "house": "house",
    "villa": "house",
    "residential": "apartment_building",
    "housing": "apartment_building",
    "tower": "residential_tower",
    # Office
    "office": "office_building",
    "coworking": "office_floor",
    "workplace": "office_building",
    "headquarters": "office_building",
    "hq": "office_building",
    # Retail
    "shop": "retail_shop",
    "store": "retail_shop",
    "retail": "retail_building",
    "mall": "shopping_mall",
    "shopping": "shopping_mall",
    # Food and drink
    "restaurant": "retail_shop",
    "cafe": "retail_shop",
    "bar": "retail_shop",
    # Institutional
    "school": "school",
    "university": "university_building",
    "college": "university_building",
    "hospital": "hospital",
    "clinic": "clinic",
    "medical": "clinic",
    "museum": "museum",
    "gallery": "museum",
    "library": "library",
    "theater": "theater",
    "theatre": "theater",
    "cinema": "theater",
    # Industrial
    "warehouse": "warehouse",
    "factory": "factory",
    "industrial": "factory",
    "manufacturing": "factory",
    # Mixed
    "mixed": "mixed_use",
    "mixed-use": "mixed_use",
}

# Child size ranges per scale, used when unfolding a node one level down.
_UNFOLD_GUIDANCE = {
    "urban": (
        "districts or major zones", (50_000, 500_000, 150_000),
        ["Residential District", "Commercial Zone", "Green Corridor", "Mixed-Use Hub",
         "Infrastructure Zone"],
    ),
    "masterplan": (
        "building plots, streets, or public spaces", (5_000, 100_000, 20_000),
        ["Office Complex Plot", "Residential Block", "Central Plaza", "Green Park",
         "Retail Promenade"],
    ),
    "landscape": (
        "buildings or major outdoor areas", (500, 20_000, 5_000),
        ["Main Building", "Parking Structure", "Gardens", "Service Building", "Entrance Plaza"],
    ),
    "architecture": (
        "floors, departments, or functional zones", (50, 5_000, 500),
        ["Lobby Zone", "Guest Floors", "Back of House", "Restaurant Wing", "Meeting Level"],
    ),
    "interior": (
        "rooms or specific spaces", (5, 200, 30),
        ["Reception", "Waiting Area", "Meeting Room", "Storage", "Restrooms"],
    ),
}

_WORD_SPLIT = str.maketrans({"_": " ", "-": " "})


def detect_scale(area: float) -> Scale:
    """Smallest scale whose upper bound still contains the area."""
    for scale in ("interior", "architecture", "landscape", "masterplan"):
        if area <= SCALE_RANGES[scale]["max"]:
            return scale
    return "urban"


def describe_scale(scale: Scale) -> str:
    info = SCALE_RANGES[scale]
    return f"{scale} scale ({info['typical']}, breakdown: {info['unit_breakdown']})"


def format_area(area: float) -> str:
    """Compact display form: 1.5M m², 15.0K m², 850 m²."""
    if area >= 1_000_000:
        return f"{area / 1_000_000:.1f}M m²"
    if area >= 1_000:
        return f"{area / 1_000:.1f}K m²"
    return f"{math.floor(area + 0.5)} m²"


def match_typology(text: str) -> str | None:
    """Map a building-type phrase to a typology key.

    Tries a direct key, then the alias table, then each word in turn.
    """
    normalized = text.lower().strip()
    if normalized in TYPOLOGY_SIZE_RANGES:
        return normalized
    if normalized in TYPOLOGY_ALIASES:
        return TYPOLOGY_ALIASES[normalized]
    for word in normalized.translate(_WORD_SPLIT).split():
        word = word.strip(".,;:!?()")
        if word in TYPOLOGY_ALIASES:
            return TYPOLOGY_ALIASES[word]
        if word in TYPOLOGY_SIZE_RANGES:
            return word
    return None


def suggest_magnitude_corrections(area: float, typology: str) -> list[float]:
    """Areas obtained by dividing by powers of ten that land inside the typology range.

    The typology's typical size is appended as a last resort.
    """
    if typology not in TYPOLOGY_SIZE_RANGES:
        return []
    low, high, typical, _ = TYPOLOGY_SIZE_RANGES[typology]
    corrections = [
        area / divisor
        for divisor in (10, 100, 1_000, 10_000, 100_000, 1_000_000)
        if low <= area / divisor <= high
    ]
    if typical not in corrections:
        corrections.append(typical)
    return corrections


def _interpretation(label: str, area: float, scale: Scale, prompt: str) -> dict:
    return {
        "interpretation": label,
        "suggested_area": area,
        "scale": scale,
        "clarification_prompt": prompt,
    }


def generate_alternative_interpretations(area: float, typology: str | None, building_type: str) -> list[dict]:
    """Ranked readings of an out-of-range area: magnitude fixes first, then coarser scales."""
    interpretations = []
    if typology:
        description = TYPOLOGY_SIZE_RANGES[typology][3]
        for corrected in suggest_magnitude_corrections(area, typology)[:2]:
            interpretations.append(_interpretation(
                f"{building_type} of {format_area(corrected)}",
                corrected,
                detect_scale(corrected),
                f"Did you mean a {description} of {format_area(corrected)}?",
            ))

    scale = detect_scale(area)
    if scale in ("masterplan", "urban"):
        interpretations.append(_interpretation(
            f"Masterplan/district containing {building_type} facilities",
            area,
            scale,
            f"Did you mean a masterplan/district of {format_area(area)} "
            f"that includes {building_type} facilities?",
        ))
        interpretations.append(_interpretation(
            f"{building_type} campus or complex",
            area,
            "landscape",
            f"Did you mean a {building_type} campus/complex of {format_area(area)} "
            f"including outdoor areas?",
        ))
    elif scale == "landscape":
        interpretations.append(_interpretation(
            f"Site with {building_type} and outdoor areas",
            area,
            "landscape",
            f"Is this a site of {format_area(area)} with {building_type} building(s) "
            f"plus outdoor areas?",
        ))
    return interpretations


def analyze_scale(area: float, building_type: str | None = None) -> dict:
    """Compare an area against the expected range of its building type.

    Returns {detected_scale, typology, confidence, size_within_range,
    interpretations, warnings}. Over the typology maximum the ratio
    area/max decides: >= 100 is a likely typo (confidence 0.2), above 10 a
    probable campus or typo (0.4), anything closer is only noted (0.6).
    """
    warnings: list[str] = []
    detected = detect_scale(area)
    confidence = 0.8
    within_range = True
    interpretations: list[dict] = []

    typology = match_typology(building_type) if building_type else None
    if building_type and typology:
        low, high, _, description = TYPOLOGY_SIZE_RANGES[typology]
        if area < low:
            within_range = False
            warnings.append(
                f"{format_area(area)} is unusually small for {description} "
                f"(typical: {format_area(low)}-{format_area(high)})"
            )
            confidence = 0.5
        elif area > high:
            within_range = False
            ratio = area / high
            if ratio >= 100:
                warnings.append(
                    f"{format_area(area)} is {ratio:.0f}x larger than typical "
                    f"{description} max ({format_area(high)})"
                )
                warnings.append("This appears to be a scale mismatch - clarification needed")
                confidence = 0.2
            elif ratio > 10:
                warnings.append(
                    f"{format_area(area)} is much larger than typical {description} "
                    f"- may be a campus/complex or typo"
                )
                confidence = 0.4
            else:
                warnings.append(
                    f"{format_area(area)} is larger than typical {description} "
                    f"(max: {format_area(high)})"
                )
                confidence = 0.6
            if ratio > 10:
                interpretations = generate_alternative_interpretations(area, typology, building_type)
    elif building_type:
        warnings.append(f'Unknown building type "{building_type}" - using general scale detection')
        confidence = 0.6

    if area > 10_000_000:
        warnings.append(f"Very large area ({format_area(area)}) - ensure this is intentional")

    if not warnings:
        warnings.append(
            f"Working at {detected} scale: {SCALE_RANGES[detected]['unit_breakdown']}"
        )

    return {
        "detected_scale": detected,
        "typology": typology,
        "confidence": confidence,
        "size_within_range": within_range,
        "interpretations": interpretations,
        "warnings": warnings,
    }


def generate_scale_clarification(area: float, building_type: str | None = None) -> dict:
    """Decide whether the user must confirm the area before anything is generated.

    Returns {needs_clarification, severity, question, options, analysis}. When
    clarification is needed the options always end with a keep-as-specified
    escape hatch.
    """
    analysis = analyze_scale(area, building_type)
    result = {
        "needs_clarification": False,
        "severity": "info",
        "question": None,
        "options": [],
        "analysis": analysis,
    }

    if analysis["size_within_range"] and analysis["confidence"] >= 0.7:
        return result

    if analysis["confidence"] >= 0.5 and not analysis["interpretations"]:
        # Close to the range: worth a note, not a question
        result["severity"] = "info" if analysis["confidence"] >= 0.6 and analysis["typology"] else "warning"
        return result

    options = [
        {
            "label": interp["clarification_prompt"],
            "area": interp["suggested_area"],
            "scale": interp["scale"],
            "interpretation": interp["interpretation"],
        }
        for interp in analysis["interpretations"]
    ]
    options.append({
        "label": f"Keep {format_area(area)} as specified (I know what I'm doing)",
        "area": area,
        "scale": analysis["detected_scale"],
        "interpretation": building_type or "custom",
    })

    if building_type:
        question = f'The area {format_area(area)} seems unusual for "{building_type}". What did you mean?'
    else:
        question = f"The area {format_area(area)} is very large. Please confirm the project type:"

    result.update({
        "needs_clarification": True,
        "severity": "error" if analysis["confidence"] < 0.3 else "warning",
        "question": question,
        "options": options,
    })
    return result


def get_next_scale_down(scale: Scale) -> Scale | None:
    index = SCALE_HIERARCHY.index(scale)
    if index == len(SCALE_HIERARCHY) - 1:
        return None
    return SCALE_HIERARCHY[index + 1]


def get_scale_unfold_guidance(area: float) -> dict:
    """What kind of children a node of this size should unfold into, and how many."""
    scale = detect_scale(area)
    children_type, (low, high, typical), examples = _UNFOLD_GUIDANCE[scale]
    max_children = math.floor(area / low)
    min_children = max(2, math.ceil(area / high))
    return {
        "current_scale": scale,
        "next_scale": get_next_scale_down(scale),
        "children_type": children_type,
        "child_size_range": {"min": low, "max": high, "typical": typical},
        "examples": examples,
        "constraint": (
            f"Generate {min_children}-{min(max_children, 10)} {children_type}. "
            f"Each should be {format_area(low)}-{format_area(high)}."
        ),
    }


def validate_split_for_scale(area: float, parts: int, scale: Scale | None = None) -> dict:
    """Check that splitting ``area`` into ``parts`` keeps each part above the scale minimum."""
    scale = scale or detect_scale(area)
    minimum = SCALE_RANGES[scale]["min"]
    max_parts = math.floor(area / minimum)
    if parts > max_parts:
        return {
            "valid": False,
            "warning": (
                f"At {scale} scale, {format_area(area)} can only be split into {max_parts} "
                f"parts (minimum {format_area(minimum)} each)"
            ),
            "max_parts": max_parts,
        }
    return {"valid": True, "warning": None, "max_parts": max_parts}
