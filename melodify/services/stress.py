from __future__ import annotations

import math
from collections import Counter

FOOT_PATTERNS: dict[str, str] = {
    "iamb": "01",
    "trochee": "10",
    "anapest": "001",
    "dactyl": "100",
    "spondee": "11",
}

_TWO_SYLLABLE_FEET = {"01": "iamb", "10": "trochee", "11": "spondee"}
MIN_FOOT_MATCH = 0.7
DOMINANT_FOOT_SHARE = 0.4


def to_binary_stress(pattern: str) -> str:
    return pattern.replace("2", "1")


def tile_foot(foot_pattern: str, length: int) -> str:
    if not foot_pattern or length <= 0:
        return ""
    repeats = length // len(foot_pattern) + 1
    return (foot_pattern * repeats)[:length]


def classify_foot(pattern: str) -> str:
    binary = to_binary_stress(pattern or "")
    if len(binary) < 2:
        return "unknown"
    if len(binary) == 2:
        return _TWO_SYLLABLE_FEET.get(binary, "unknown")

    best_foot = "unknown"
    best_score = 0.0
    for foot, foot_pattern in FOOT_PATTERNS.items():
        ideal = tile_foot(foot_pattern, len(binary))
        matches = sum(1 for a, b in zip(binary, ideal) if a == b)
        score = matches / len(binary)
        if score > best_score:
            best_score = score
            best_foot = foot
    return best_foot if best_score >= MIN_FOOT_MATCH else "unknown"


def detect_deviations(pattern: str, expected_foot: str) -> list[int]:
    foot_pattern = FOOT_PATTERNS.get(expected_foot)
    if not pattern or not foot_pattern:
        return []
    binary = to_binary_stress(pattern)
    ideal = tile_foot(foot_pattern, len(binary))
    return [i for i, (actual, expected) in enumerate(zip(binary, ideal)) if actual != expected]


def count_feet(pattern: str, foot_type: str) -> int:
    if not pattern:
        return 0
    foot_pattern = FOOT_PATTERNS.get(foot_type)
    foot_length = len(foot_pattern) if foot_pattern else 2
    return math.ceil(len(pattern) / foot_length)


def get_dominant_foot(foot_types: list[str]) -> str:
    """Most common known foot, provided at least 40% of lines share it."""
    if not foot_types:
        return "unknown"
    counts = Counter(foot for foot in foot_types if foot != "unknown")
    if not counts:
        return "unknown"
    # Ties go to the canonical foot order.
    order = list(FOOT_PATTERNS)
    foot, count = max(counts.items(), key=lambda item: (item[1], -order.index(item[0])))
    return foot if count >= len(foot_types) * DOMINANT_FOOT_SHARE else "unknown"
