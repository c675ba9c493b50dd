"""Input classifier: decides whether pasted text is a brief worth parsing.

Extracts cheap textual signals, classifies the text as a generation prompt,
a dirty brief, a structured brief or garbage, scores its quality, picks a
parsing strategy and returns a cleaned-up copy of the text. Pure and
deterministic.
"""

import re
from typing import Literal, TypedDict

InputCategory = Literal["prompt", "dirty", "structured", "garbage"]
Quality = Literal["low", "medium", "high"]
Strategy = Literal["extract_tolerant", "extract_strict", "redirect_to_agent", "reject"]
UnitType = Literal["metric", "imperial", "mixed", "none"]

SQFT_TO_SQM = 0.0929

_NUMERIC_RE = re.compile(
    r"\b\d{1,6}(?:[.,]\d+)?\s*(?:m²|sqm|sq\.?\s*m|sqft|sq\.?\s*ft|sf)?\b", re.IGNORECASE
)
_TABLE_RE = re.compile(r"^.+\t.+$|^.+\s{3,}\d", re.MULTILINE)
_SECTION_HEADER_RE = re.compile(r"^(?:[A-Z][A-Za-z\s&,]+:?\s*$)|^[-─═]{3,}|^#+\s", re.MULTILINE)
_TOTALS_RE = re.compile(
    r"\b(?:total|grand\s*total|program\s*total|gfa|gia|nla|gross\s*(?:floor\s*)?area|net\s*area)\b",
    re.IGNORECASE,
)
_SUBTOTALS_RE = re.compile(r"\b(?:subtotal|sub-total|sub\s*total|section\s*total)\b", re.IGNORECASE)
_EMAIL_RE = re.compile(
    r"(?:^from:|^to:|^subject:|^cc:|^sent:|^date:|\bregards,|\bthanks,|\bbest,|\bcheers,"
    r"|^dear\s|^hi\s|^hello\s)",
    re.IGNORECASE | re.MULTILINE,
)
_LIST_RE = re.compile(
    r"^\s*[-•●○◦▪▸►]\s|^\s*\d+[.)]\s|^\s*[a-z][.)]\s", re.IGNORECASE | re.MULTILINE
)
_IMPERATIVE_RE = re.compile(
    r"\b(?:create|make|generate|design|build|develop|prepare|draft|propose|suggest)\b",
    re.IGNORECASE,
)
_METRIC_RE = re.compile(r"(?:m²|sqm|sq\.?\s*m(?:eters?)?(?=\s|$|,|\.))", re.IGNORECASE)
_IMPERIAL_RE = re.compile(r"(?:sqft|sq\.?\s*f(?:ee)?t|sf)(?=\s|$|,|\.)", re.IGNORECASE)
_NOISE_RE = re.compile(
    r"(?:please|kindly|would\s+you|could\s+you|let\s+me\s+know|attached|find\s+below"
    r"|as\s+discussed|following\s+up)",
    re.IGNORECASE,
)
_SPACE_RE = re.compile(
    r"\b(?:room|office|lobby|reception|meeting|conference|toilet|wc|bathroom|kitchen|storage"
    r"|corridor|circulation|parking|entrance|gallery|studio|workshop|lab|classroom|auditorium"
    r"|restaurant|cafe|retail|shop)\b",
    re.IGNORECASE,
)


class Signals(TypedDict):
    line_count: int
    word_count: int
    numeric_count: int
    has_table_structure: bool
    has_totals: bool
    has_subtotals: bool
    has_section_headers: bool
    has_list_markers: bool
    has_email_markers: bool
    has_imperative_verbs: bool
    noise_ratio: float
    unit_type: UnitType
    average_line_length: float
    space_indicator_count: int


class Classification(TypedDict):
    category: InputCategory
    confidence: float
    signals: Signals
    quality: Quality
    strategy: Strategy
    warnings: list[str]
    suggestions: list[str]
    cleaned_text: str


def extract_signals(text: str) -> Signals:
    """Count the structural and lexical signals the rules below look at."""
    stripped = text.strip()
    lines = [line for line in stripped.split("\n") if line.strip()]
    words = stripped.split() if stripped else [""]

    has_metric = bool(_METRIC_RE.search(text))
    has_imperial = bool(_IMPERIAL_RE.search(text))
    if has_metric and has_imperial:
        unit_type = "mixed"
    elif has_metric:
        unit_type = "metric"
    elif has_imperial:
        unit_type = "imperial"
    else:
        unit_type = "none"

    noise = len(_NOISE_RE.findall(text))
    spaces = len(_SPACE_RE.findall(text))
    if spaces > 0:
        noise_ratio = noise / (noise + spaces)
    else:
        noise_ratio = 0.8 if noise > 3 else 0.3

    return {
        "line_count": len(lines),
        "word_count": len(words),
        "numeric_count": len(_NUMERIC_RE.findall(text)),
        "has_table_structure": bool(_TABLE_RE.search(text)),
        "has_totals": bool(_TOTALS_RE.search(text)),
        "has_subtotals": bool(_SUBTOTALS_RE.search(text)),
        "has_section_headers": len(_SECTION_HEADER_RE.findall(text)) >= 2,
        "has_list_markers": bool(_LIST_RE.search(text)),
        "has_email_markers": bool(_EMAIL_RE.search(text)),
        "has_imperative_verbs": bool(_IMPERATIVE_RE.search(text)),
        "noise_ratio": noise_ratio,
        "unit_type": unit_type,
        "average_line_length": sum(len(line) for line in lines) / len(lines) if lines else 0,
        "space_indicator_count": spaces,
    }


def _determine_category(s: Signals) -> tuple[InputCategory, float]:
    # Short imperative request with few numbers
    if (
        s["line_count"] <= 5
        and s["numeric_count"] <= 3
        and s["has_imperative_verbs"]
        and not s["has_table_structure"]
    ):
        return "prompt", 0.9
    if (
        s["line_count"] <= 3
        and s["word_count"] <= 50
        and s["numeric_count"] >= 1
        and s["has_imperative_verbs"]
    ):
        return "prompt", 0.85

    if (
        s["has_table_structure"]
        and s["has_totals"]
        and s["numeric_count"] >= 5
        and s["noise_ratio"] < 0.3
    ):
        return "structured", 0.9
    if (
        s["has_section_headers"]
        and s["numeric_count"] >= 8
        and s["noise_ratio"] < 0.3
        and (s["has_totals"] or s["has_subtotals"])
    ):
        return "structured", 0.8

    if s["numeric_count"] == 0 and not s["has_imperative_verbs"] and s["word_count"] < 10:
        return "garbage", 0.9
    if s["noise_ratio"] > 0.7 and s["numeric_count"] < 3 and not s["has_section_headers"]:
        return "garbage", 0.7
    if (
        s["numeric_count"] <= 5
        and s["space_indicator_count"] < 2
        and not s["has_table_structure"]
        and not s["has_totals"]
        and s["noise_ratio"] > 0.2
    ):
        return "garbage", 0.65

    if s["numeric_count"] > 0:
        return "dirty", 0.7 if s["has_email_markers"] else 0.8
    return "dirty", 0.5


def _assess_quality(s: Signals, category: InputCategory) -> Quality:
    if category in ("prompt", "garbage"):
        return "low"

    score = 0
    if s["has_table_structure"]:
        score += 25
    if s["has_section_headers"]:
        score += 15
    if s["has_totals"]:
        score += 20
    if s["has_subtotals"]:
        score += 10

    if s["noise_ratio"] < 0.2:
        score += 15
    elif s["noise_ratio"] < 0.4:
        score += 5

    if s["unit_type"] in ("metric", "imperial"):
        score += 10
    elif s["unit_type"] == "mixed":
        score -= 5

    if s["numeric_count"] >= 10:
        score += 5

    if score >= 60:
        return "high"
    if score >= 30:
        return "medium"
    return "low"


def _select_strategy(category: InputCategory, quality: Quality) -> Strategy:
    if category == "garbage":
        return "reject"
    if category == "prompt":
        return "redirect_to_agent"
    if category == "structured" and quality != "low":
        return "extract_strict"
    return "extract_tolerant"


def _warnings(s: Signals, category: InputCategory) -> list[str]:
    if category == "garbage":
        return ["This text does not appear to contain a building program"]
    if category == "prompt":
        return ["This looks like a generation request, not a brief to parse"]

    warnings = []
    if s["has_email_markers"]:
        warnings.append("Email content detected - may contain non-program text")
    if s["noise_ratio"] > 0.4:
        warnings.append("High amount of non-program content detected")
    if s["unit_type"] == "mixed":
        warnings.append("Mixed units (m² and sqft) - will convert to m²")
    if s["unit_type"] == "none":
        warnings.append("No area units found - numbers may be counts or areas")
    if not s["has_totals"] and category == "structured":
        warnings.append("No program total found - cannot validate parsing")
    if s["numeric_count"] > 50:
        warnings.append("Large program detected - parsing may take longer")
    return warnings


def _suggestions(s: Signals, category: InputCategory, quality: Quality) -> list[str]:
    if category == "garbage":
        return [
            "Please provide a building program with spaces and areas",
            'Example: "Lobby 100m², Offices 500m², Meeting Rooms 80m²"',
        ]
    if category == "prompt":
        return [
            "Switch to Agent Chat mode to generate a building program",
            "The Agent can create detailed programs from prompts like this",
        ]

    suggestions = []
    if quality == "low":
        if not s["has_totals"]:
            suggestions.append("Add a total GFA to help validate the parsed areas")
        if s["noise_ratio"] > 0.5:
            suggestions.append("Remove non-program text (emails, notes) for better accuracy")
        if not s["has_section_headers"] and s["numeric_count"] > 10:
            suggestions.append("Group spaces under section headers for better organization")
    if s["unit_type"] == "none":
        suggestions.append("Adding units (m²) helps distinguish areas from counts")
    return suggestions


# --- Preprocessing ---

_EMAIL_HEADER_RE = re.compile(r"^(from|to|cc|bcc|subject|sent|date):", re.IGNORECASE)
_SIGNOFF_RE = re.compile(r"^(regards|thanks|best|cheers|sincerely|thank you),?\s*$", re.IGNORECASE)
_GREETING_RE = re.compile(r"^(dear|hi|hello|hey)\s+", re.IGNORECASE)
_EMAIL_PHRASE_RE = re.compile(r"^(please find|as discussed|following up|attached)", re.IGNORECASE)
_SQFT_VALUE_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:sqft|sq\.?\s*ft|sf)\b", re.IGNORECASE)
_SQM_VARIANT_RE = re.compile(r"\b(sqm|sq\.?\s*m(?:eters?)?)\b", re.IGNORECASE)
_THOUSANDS_RE = re.compile(r"(\d),(\d{3})\b")


def clean_whitespace(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return "\n".join(line.strip() for line in text.split("\n")).strip()


def remove_email_noise(text: str) -> str:
    """Drop headers, greetings, boilerplate phrases and everything after the sign-off."""
    kept = []
    for line in text.split("\n"):
        trimmed = line.strip().lower()
        if _EMAIL_HEADER_RE.match(line):
            continue
        if _SIGNOFF_RE.match(trimmed):
            break
        if _GREETING_RE.match(trimmed) or _EMAIL_PHRASE_RE.match(trimmed):
            continue
        kept.append(line)
    return "\n".join(kept).strip()


def _sqft_to_sqm(match: re.Match) -> str:
    value = float(match.group(1).replace(",", ""))
    return f"{int(value * SQFT_TO_SQM + 0.5)} m²"


def normalize_units(text: str) -> str:
    """Convert square feet to m², unify m² spellings and strip thousands separators."""
    text = _SQFT_VALUE_RE.sub(_sqft_to_sqm, text)
    text = _SQM_VARIANT_RE.sub("m²", text)
    return _THOUSANDS_RE.sub(r"\1\2", text)


def _preprocess(text: str, category: InputCategory, s: Signals) -> str:
    cleaned = clean_whitespace(text)
    if category == "dirty" and s["has_email_markers"]:
        cleaned = remove_email_noise(cleaned)
    if s["unit_type"] in ("imperial", "mixed"):
        cleaned = normalize_units(cleaned)
    return cleaned


def analyze(text: str) -> Classification:
    """Classify text and return signals, strategy, warnings and the cleaned text."""
    trimmed = (text or "").strip()
    if not trimmed:
        return {
            "category": "garbage",
            "confidence": 1.0,
            "signals": extract_signals(""),
            "quality": "low",
            "strategy": "reject",
            "warnings": ["No input provided"],
            "suggestions": ["Please enter a building program or describe what you want to create"],
            "cleaned_text": "",
        }

    signals = extract_signals(trimmed)
    category, confidence = _determine_category(signals)
    quality = _assess_quality(signals, category)
    return {
        "category": category,
        "confidence": confidence,
        "signals": signals,
        "quality": quality,
        "strategy": _select_strategy(category, quality),
        "warnings": _warnings(signals, category),
        "suggestions": _suggestions(signals, category, quality),
        "cleaned_text": _preprocess(trimmed, category, signals),
    }


def can_proceed_with_parsing(classification: Classification) -> bool:
    return classification["strategy"] != "reject"


_CATEGORY_LABELS = {
    "prompt": "Generation Request",
    "dirty": "Unstructured Brief",
    "structured": "Structured Brief",
    "garbage": "Invalid Input",
}

_STRATEGY_LABELS = {
    "extract_tolerant": "AI will extract spaces and infer missing values",
    "extract_strict": "AI will extract and validate against stated totals",
    "redirect_to_agent": "This looks like a generation request - use Agent Chat instead",
    "reject": "Cannot parse this input",
}


def describe_category(category: InputCategory) -> str:
    return _CATEGORY_LABELS[category]


def describe_strategy(strategy: Strategy) -> str:
    return _STRATEGY_LABELS[strategy]
