from __future__ import annotations

import logging
import math

from melodify.logging_utils import log_event
from melodify.models import MeterDeviation, MeterMatch, MeterResult, MultiLineMeter
from melodify.services.stress import FOOT_PATTERNS, tile_foot, to_binary_stress

logger = logging.getLogger(__name__)

LINE_LENGTH_NAMES = {
    1: "monometer",
    2: "dimeter",
    3: "trimeter",
    4: "tetrameter",
    5: "pentameter",
    6: "hexameter",
    7: "heptameter",
    8: "octameter",
}
FOOT_TYPE_ADJECTIVES = {
    "iamb": "iambic",
    "trochee": "trochaic",
    "anapest": "anapestic",
    "dactyl": "dactylic",
    "spondee": "spondaic",
}
MIN_MATCH_SCORE = 0.3
SHORT_PATTERN_LENGTH = 4
SHORT_PATTERN_DISCOUNT = 0.7
MIN_FEET = 1
MAX_FEET = 8


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1 - levenshtein_distance(a, b) / max(len(a), len(b))


def foot_type_to_adjective(foot_type: str) -> str:
    return FOOT_TYPE_ADJECTIVES.get(foot_type, "irregular")


def classify_line_length(syllable_count: int, foot_type: str = "iamb") -> str:
    if syllable_count <= 0:
        return LINE_LENGTH_NAMES[1]
    foot_length = len(FOOT_PATTERNS.get(foot_type, "01"))
    feet = min(MAX_FEET, max(MIN_FEET, round(syllable_count / foot_length)))
    return LINE_LENGTH_NAMES[feet]


def find_best_meter_match(pattern: str) -> list[MeterMatch]:
    """Score every foot/length tiling of a stress pattern, best first, one per meter name."""
    if not pattern:
        return []
    candidates: list[MeterMatch] = []
    for foot_type, foot_pattern in FOOT_PATTERNS.items():
        foot_length = len(foot_pattern)
        counts = dict.fromkeys((len(pattern) // foot_length, math.ceil(len(pattern) / foot_length)))
        for feet in counts:
            if feet < MIN_FEET or feet > MAX_FEET:
                continue
            score = string_similarity(pattern, foot_pattern * feet)
            if score <= MIN_MATCH_SCORE:
                continue
            line_length = LINE_LENGTH_NAMES[feet]
            candidates.append(
                MeterMatch(
                    foot_type=foot_type,
                    line_length=line_length,
                    feet_count=feet,
                    meter_name=f"{foot_type_to_adjective(foot_type)} {line_length}",
                    score=score,
                )
            )

    candidates.sort(key=lambda m: m.score, reverse=True)
    seen: set[str] = set()
    unique: list[MeterMatch] = []
    for match in candidates:
        if match.meter_name in seen:
            continue
        seen.add(match.meter_name)
        unique.append(match)
    return unique


def detect_meter(stress_pattern: str) -> MeterResult:
    if not stress_pattern:
        return MeterResult()

    pattern = to_binary_stress(stress_pattern)
    matches = find_best_meter_match(pattern)
    if not matches:
        return MeterResult(
            line_length=classify_line_length(len(pattern)),
            feet_count=math.ceil(len(pattern) / 2),
            meter_name="irregular",
            pattern=pattern,
        )

    best = matches[0]
    regularity = string_similarity(pattern, tile_foot(FOOT_PATTERNS[best.foot_type], len(pattern)))
    runner_up = matches[1].score if len(matches) > 1 else 0.0
    confidence = min(1.0, best.score + 0.5 * (best.score - runner_up))
    if len(pattern) < SHORT_PATTERN_LENGTH:
        confidence *= SHORT_PATTERN_DISCOUNT

    result = MeterResult(
        foot_type=best.foot_type,
        line_length=best.line_length,
        feet_count=best.feet_count,
        regularity=max(0.0, min(1.0, regularity)),
        confidence=max(0.0, min(1.0, confidence)),
        meter_name=best.meter_name,
        pattern=pattern,
    )
    log_event(logger, "meter_detected", level=logging.DEBUG, pattern=pattern, meter_name=result.meter_name)
    return result


def analyze_multi_line_meter(stress_patterns: list[str]) -> MultiLineMeter:
    """Dominant meter across lines; ties go to the meter seen first."""
    meters = [detect_meter(p) for p in stress_patterns if p]
    if not meters:
        return MultiLineMeter()

    counts: dict[str, int] = {}
    for meter in meters:
        counts[meter.meter_name] = counts.get(meter.meter_name, 0) + 1
    dominant_name = max(counts, key=lambda name: counts[name])
    matching = [m for m in meters if m.meter_name == dominant_name]
    dominant = matching[0]

    consistency = len(matching) / len(meters)
    avg_regularity = sum(m.regularity for m in matching) / len(matching)
    regularity = 0.5 * consistency + 0.5 * avg_regularity

    return MultiLineMeter(
        dominant=dominant.model_copy(
            update={
                "regularity": avg_regularity,
                "confidence": max(0.0, min(1.0, dominant.confidence * consistency)),
            }
        ),
        consistency=consistency,
        regularity=max(0.0, min(1.0, regularity)),
        line_meters=meters,
    )


def find_deviations(pattern: str, foot_type: str) -> list[MeterDeviation]:
    foot_pattern = FOOT_PATTERNS.get(foot_type)
    if not foot_pattern or not pattern:
        return []
    ideal = tile_foot(foot_pattern, len(pattern))
    return [
        MeterDeviation(position=i, expected=expected, actual=actual)
        for i, (actual, expected) in enumerate(zip(pattern, ideal))
        if actual != expected
    ]


def create_meter_pattern(foot_type: str, feet_count: int) -> str:
    return FOOT_PATTERNS.get(foot_type, FOOT_PATTERNS["iamb"]) * max(0, feet_count)


def parse_meter_name(meter_name: str) -> tuple[str, str] | None:
    """Parse names like "iambic pentameter" into (foot type, line length)."""
    lower = meter_name.lower().strip()
    foot_type = next((foot for foot, adj in FOOT_TYPE_ADJECTIVES.items() if adj in lower), "unknown")
    line_length = next((name for name in LINE_LENGTH_NAMES.values() if name in lower), "tetrameter")
    if foot_type == "unknown" and "irregular" not in lower:
        return None
    return foot_type, line_length
