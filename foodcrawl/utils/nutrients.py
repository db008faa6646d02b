"""Pure helpers for turning raw source fields into nutrient numbers.

Sources spell the same nutrient in different ways (``proteins_100g`` vs
``proteins``, ``Rohprotein`` vs ``Eiweiß``). Every field gets an explicit,
ordered tuple of aliases and the first usable one wins.
"""

import re
from typing import Any

MACRO_FIELDS = ("protein", "fat", "crude_fiber", "ash", "moisture")

# Open Pet Food Facts ``nutriments`` keys, per 100 g first.
OPFF_NUTRIENT_ALIASES: dict[str, tuple[str, ...]] = {
    "protein": ("proteins_100g", "proteins_value", "proteins", "proteins_g"),
    "fat": ("fat_100g", "fat_value", "fat", "fat_g"),
    "crude_fiber": ("fiber_100g", "fiber_value", "fiber", "fiber_g"),
    "ash": ("ash_100g", "ash_value", "ash", "ash_g"),
    "moisture": ("moisture_100g", "moisture_value", "moisture", "moisture_g"),
    "carbohydrates": (
        "carbohydrates_100g",
        "carbohydrates_value",
        "carbohydrates",
        "carbohydrates_g",
    ),
    "energy_kcal": ("energy-kcal_100g", "energy-kcal_value", "energy-kcal"),
}

_NUM = r"(\d+(?:[,.]\d+)?)\s*%"

# "Analytische Bestandteile" as printed on German shop pages.
GERMAN_NUTRIENT_PATTERNS: dict[str, tuple[re.Pattern, ...]] = {
    "protein": (
        re.compile(r"(?:roh)?protein\s*[:=]?\s*" + _NUM, re.I),
        re.compile(r"(?:rohes?\s+)?eiwei(?:ß|ss)\s*[:=]?\s*" + _NUM, re.I),
        re.compile(r"proteine?\s*[:=]?\s*" + _NUM, re.I),
    ),
    "fat": (
        re.compile(r"(?:roh)?fett\s*[:=]?\s*" + _NUM, re.I),
        re.compile(r"fettgehalt\s*[:=]?\s*" + _NUM, re.I),
        re.compile(r"öle?\s+und\s+fette?\s*[:=]?\s*" + _NUM, re.I),
    ),
    "crude_fiber": (
        re.compile(r"(?:roh)?fasern?\s*[:=]?\s*" + _NUM, re.I),
        re.compile(r"ballaststoffe?\s*[:=]?\s*" + _NUM, re.I),
    ),
    "ash": (
        re.compile(r"(?:roh)?asche\s*[:=]?\s*" + _NUM, re.I),
        re.compile(r"mineralstoffe?\s*[:=]?\s*" + _NUM, re.I),
        re.compile(r"aschgehalt\s*[:=]?\s*" + _NUM, re.I),
    ),
    "moisture": (
        re.compile(r"feuchtigkeit\s*[:=]?\s*" + _NUM, re.I),
        re.compile(r"feuchte(?:gehalt)?\s*[:=]?\s*" + _NUM, re.I),
        re.compile(r"wassergehalt\s*[:=]?\s*" + _NUM, re.I),
    ),
}

_ADDITIVE_PATTERNS = (
    re.compile(r"vitamine?\s+[A-E0-9]+", re.I),
    re.compile(r"\bE[0-9]{3}[a-z]?\b"),
    re.compile(r"minerals?\s*:\s*[^,]+", re.I),
    re.compile(r"trace\s+elements?", re.I),
)

_GERMAN_ADDITIVES = re.compile(r"zusatzstoffe[:\s]+([^.]+\.)", re.I)
_VITAMIN_SENTENCE = re.compile(r"vitamin[^.]+\.", re.I)

_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.I | re.S)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def coerce_float(value: Any) -> float | None:
    """Best-effort number parsing: ints, floats and "12,5 %" style strings."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.strip().rstrip("%").strip().replace(",", ".")
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def resolve_alias(raw: dict, aliases: tuple[str, ...]) -> float | None:
    """Return the first alias present in ``raw`` whose value parses as a number."""
    for key in aliases:
        if key in raw:
            number = coerce_float(raw[key])
            if number is not None:
                return number
    return None


def sanitize_text(text: Any) -> str | None:
    """Strip markup, collapse whitespace. Empty results become None."""
    if text is None:
        return None
    cleaned = _TAG_RE.sub("", _SCRIPT_RE.sub("", str(text)))
    cleaned = _WS_RE.sub(" ", cleaned).strip()
    return cleaned or None


def extract_nutrients_from_text(text: str | None) -> dict[str, float]:
    """Parse German analytical constituents text into macro percentages."""
    result: dict[str, float] = {}
    if not text:
        return result
    for field, patterns in GERMAN_NUTRIENT_PATTERNS.items():
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                result[field] = float(match.group(1).replace(",", "."))
                break
    return result


def extract_german_additives(text: str | None) -> str | None:
    if not text:
        return None
    match = _GERMAN_ADDITIVES.search(text)
    if match:
        return sanitize_text(match.group(1))
    vitamins = _VITAMIN_SENTENCE.findall(text)
    if vitamins:
        return sanitize_text(" ".join(vitamins))
    return None


def extract_additives(ingredients_text: str | None) -> str | None:
    """Pick vitamins, E-numbers and mineral mentions out of an ingredient list."""
    if not ingredients_text:
        return None
    found: list[str] = []
    for pattern in _ADDITIVE_PATTERNS:
        found.extend(m.group(0).strip() for m in pattern.finditer(ingredients_text))
    return ", ".join(found) if found else None


def has_core_nutrients(values: dict[str, float]) -> bool:
    # Moisture is often missing on dry food labels.
    return all(values.get(f, 0) > 0 for f in ("protein", "fat", "crude_fiber", "ash"))
