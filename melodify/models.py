from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


StressLevel = Literal[0, 1, 2]
Severity = Literal["low", "medium", "high"]
BoundaryStrength = Literal["weak", "medium", "strong"]
BoundaryType = Literal["punctuation", "conjunction", "semantic", "length_split", "line_break"]
FootType = Literal["iamb", "trochee", "anapest", "dactyl", "spondee", "unknown"]
LineLengthName = Literal[
    "monometer", "dimeter", "trimeter", "tetrameter", "pentameter", "hexameter", "heptameter", "octameter"
]
SectionType = Literal["verse", "chorus", "bridge", "refrain", "intro", "outro"]
RhymeType = Literal["perfect", "slant", "assonance", "consonance", "none"]
ContourShape = Literal["arch", "descending", "ascending", "wave"]
CadenceType = Literal["perfect", "half", "deceptive", "plagal"]
VariationType = Literal["ornament", "simplify", "invert", "transpose"]
Mode = Literal["major", "minor"]

VALID_TIME_SIGNATURES = ("4/4", "3/4", "6/8", "2/4")
VALID_DEFAULT_NOTE_LENGTHS = ("1/8", "1/4", "1/16")
VALID_KEYS = ("C", "G", "D", "F", "Am", "Em", "Dm")
VALID_PITCHES = ("C", "D", "E", "F", "G", "A", "B", "z", "Z")


class PunctuationMark(BaseModel):
    char: str = Field(min_length=1, max_length=1)
    position: int = Field(ge=0)


class TokenizedLine(BaseModel):
    words: list[str] = Field(default_factory=list)
    punctuation: list[PunctuationMark] = Field(default_factory=list)


class PreprocessedPoem(BaseModel):
    model_config = ConfigDict(frozen=True)

    original: str
    stanzas: list[list[str]] = Field(default_factory=list)
    line_count: int = Field(default=0, ge=0)
    stanza_count: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_counts(self):
        if self.line_count != sum(len(stanza) for stanza in self.stanzas):
            raise ValueError("line_count must equal the number of lines across all stanzas.")
        if self.stanza_count != len(self.stanzas):
            raise ValueError("stanza_count must equal the number of stanzas.")
        if any(not line.strip() for stanza in self.stanzas for line in stanza):
            raise ValueError("Stanzas may not contain blank lines.")
        return self


class Syllable(BaseModel):
    phonemes: list[str] = Field(default_factory=list)
    stress: StressLevel = 0
    vowel_phoneme: str = ""
    is_open: bool = False


class SyllabifiedWord(BaseModel):
    text: str
    syllables: list[Syllable] = Field(default_factory=list)
    in_lexicon: bool = True


class ProblemSpot(BaseModel):
    position: int = Field(ge=0, description="Syllable index within the line")
    issue: str
    severity: Severity


class SingabilityScore(BaseModel):
    syllable_scores: list[float] = Field(default_factory=list)
    line_score: float = Field(default=0.0, ge=0, le=1)
    problem_spots: list[ProblemSpot] = Field(default_factory=list)


class SoundPattern(BaseModel):
    sound: str
    words: list[str] = Field(default_factory=list)
    strength: float = Field(default=0.5, ge=0, le=1)


class LineSoundPatterns(BaseModel):
    alliterations: list[SoundPattern] = Field(default_factory=list)
    assonances: list[SoundPattern] = Field(default_factory=list)
    consonances: list[SoundPattern] = Field(default_factory=list)


class AnalyzedLine(BaseModel):
    text: str
    words: list[SyllabifiedWord] = Field(default_factory=list)
    stress_pattern: str = Field(default="", pattern=r"^[012]*$")
    syllable_count: int = Field(default=0, ge=0)
    singability: SingabilityScore = Field(default_factory=SingabilityScore)
    meter: MeterResult | None = None


class MeterMatch(BaseModel):
    foot_type: FootType
    line_length: LineLengthName
    feet_count: int
    meter_name: str
    score: float


class MeterResult(BaseModel):
    foot_type: FootType = "unknown"
    line_length: LineLengthName = "monometer"
    feet_count: int = 0
    regularity: float = Field(default=0.0, ge=0, le=1)
    confidence: float = Field(default=0.0, ge=0, le=1)
    meter_name: str = "irregular"
    pattern: str = ""


class MultiLineMeter(BaseModel):
    dominant: MeterResult = Field(default_factory=MeterResult)
    consistency: float = Field(default=0.0, ge=0, le=1)
    regularity: float = Field(default=0.0, ge=0, le=1)
    line_meters: list[MeterResult] = Field(default_factory=list)


class MeterDeviation(BaseModel):
    position: int
    expected: str
    actual: str


class PhraseBoundary(BaseModel):
    position: int = Field(description="Index of the word the boundary follows")
    char_position: int = Field(default=0, ge=0)
    type: BoundaryType
    strength: BoundaryStrength
    trigger: str = ""
    breathability: float = Field(ge=0, le=1)


class Phrase(BaseModel):
    text: str
    words: list[str]
    start_word: int
    end_word: int
    syllable_count: int
    ends_at_line_break: bool = False


class LinePhraseAnalysis(BaseModel):
    text: str
    line_index: int = 0
    boundaries: list[PhraseBoundary] = Field(default_factory=list)
    phrases: list[Phrase] = Field(default_factory=list)
    combine_with_next: bool = False


class BreathPoint(BaseModel):
    line_index: int
    word_index: int
    strength: BoundaryStrength
    breathability: float


class PoemPhraseAnalysis(BaseModel):
    lines: list[LinePhraseAnalysis] = Field(default_factory=list)
    major_break_lines: list[int] = Field(default_factory=list)
    average_phrase_length: float = 0.0
    breath_points: list[BreathPoint] = Field(default_factory=list)


class Section(BaseModel):
    type: SectionType
    stanza_indices: list[int]
    label: str
    confidence: float = Field(ge=0, le=1)
    repeat_of: int | None = None


class RefrainOccurrence(BaseModel):
    stanza_index: int
    line_index: int
    text: str


class Refrain(BaseModel):
    text: str
    normalized: str
    occurrences: list[RefrainOccurrence]
    stanza_indices: list[int]
    is_exact: bool = True


class StanzaSimilarity(BaseModel):
    stanza1: int
    stanza2: int
    overall: float
    text: float
    meter: float
    line_count_match: bool
    foot_type_match: bool


class StructureAnalysis(BaseModel):
    sections: list[Section] = Field(default_factory=list)
    refrains: list[Refrain] = Field(default_factory=list)
    similarities: list[StanzaSimilarity] = Field(default_factory=list)
    has_verse_chorus_structure: bool = False
    structure_pattern: str = ""
    summary: str = ""


class RhymeGroup(BaseModel):
    label: str
    lines: list[int]
    rhyme_type: RhymeType
    end_words: list[str]


class InternalRhyme(BaseModel):
    line_index: int
    positions: tuple[int, int]
    words: tuple[str, str]


class RhymeAnalysis(BaseModel):
    scheme: str = ""
    stanza_schemes: list[str] = Field(default_factory=list)
    groups: list[RhymeGroup] = Field(default_factory=list)
    internal_rhymes: list[InternalRhyme] = Field(default_factory=list)
    form: str = "none"


class MoodProfile(BaseModel):
    overall_sentiment: float = Field(default=0.0, ge=-1, le=1)
    arousal: float = Field(default=0.5, ge=0, le=1)
    dominant_emotions: list[str] = Field(default_factory=lambda: ["peaceful"])
    mode: Mode = "major"
    tempo_range: tuple[int, int] = (80, 120)
    register: Literal["low", "middle", "high"] = "middle"

    @model_validator(mode="after")
    def order_tempo_range(self):
        low, high = self.tempo_range
        if low <= 0 or high <= 0:
            raise ValueError("Tempo range must be positive.")
        if low > high:
            self.tempo_range = (high, low)
        return self


class MelodySuggestions(BaseModel):
    time_signature: str = "4/4"
    tempo: int = Field(default=100, gt=0)
    key: str = "C"
    mode: Mode = "major"
    phrase_breaks: list[int] = Field(default_factory=list)


class AnalysisProblem(BaseModel):
    type: Literal["stress_mismatch", "singability", "syllable_variance"]
    line_index: int
    position: int = 0
    severity: Severity
    message: str


class PoemAnalysis(BaseModel):
    poem: PreprocessedPoem
    lines: list[AnalyzedLine] = Field(default_factory=list)
    stanza_meters: list[MultiLineMeter] = Field(default_factory=list)
    meter: MultiLineMeter = Field(default_factory=MultiLineMeter)
    phrases: PoemPhraseAnalysis = Field(default_factory=PoemPhraseAnalysis)
    structure: StructureAnalysis = Field(default_factory=StructureAnalysis)
    rhyme: RhymeAnalysis = Field(default_factory=RhymeAnalysis)
    mood: MoodProfile = Field(default_factory=MoodProfile)
    suggestions: MelodySuggestions = Field(default_factory=MelodySuggestions)
    problems: list[AnalysisProblem] = Field(default_factory=list)

    def stanza_lines(self) -> list[list[AnalyzedLine]]:
        out: list[list[AnalyzedLine]] = []
        cursor = 0
        for stanza in self.poem.stanzas:
            out.append(self.lines[cursor : cursor + len(stanza)])
            cursor += len(stanza)
        return out


class Note(BaseModel):
    pitch: str = Field(min_length=1, max_length=1, description="C-B, or z for a rest")
    octave: int = 0
    duration: float = Field(gt=0, description="Multiple of the default note length")

    @property
    def is_rest(self) -> bool:
        return self.pitch in {"z", "Z"}


class MelodyParams(BaseModel):
    title: str = "Untitled Melody"
    time_signature: str = "4/4"
    default_note_length: str = "1/8"
    tempo: int = 100
    key: str = "C"


class Melody(BaseModel):
    params: MelodyParams = Field(default_factory=MelodyParams)
    measures: list[list[Note]] = Field(default_factory=list)
    lyrics: list[list[str]] = Field(default_factory=list)


class ParamsOverride(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    time_signature: str | None = None
    default_note_length: str | None = None
    tempo: int | None = Field(default=None, ge=20, le=300)
    key: str | None = None

    @field_validator("time_signature")
    @classmethod
    def validate_time_signature(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = re.sub(r"\s+", "", value)
        if cleaned not in VALID_TIME_SIGNATURES:
            raise ValueError(f"Invalid time signature. Use one of {', '.join(VALID_TIME_SIGNATURES)}.")
        return cleaned

    @field_validator("default_note_length")
    @classmethod
    def validate_note_length(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        if cleaned not in VALID_DEFAULT_NOTE_LENGTHS:
            raise ValueError(f"Invalid default note length. Use one of {', '.join(VALID_DEFAULT_NOTE_LENGTHS)}.")
        return cleaned

    @field_validator("key")
    @classmethod
    def validate_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        m = re.fullmatch(r"\s*([A-Ga-g])(m?)\s*", value)
        if not m or f"{m.group(1).upper()}{m.group(2)}" not in VALID_KEYS:
            raise ValueError(f"Invalid key. Supported keys are {', '.join(VALID_KEYS)}.")
        return f"{m.group(1).upper()}{m.group(2)}"

    def as_update(self) -> dict:
        return self.model_dump(exclude_none=True)


class AnalyzeRequest(BaseModel):
    text: str
    mood: MoodProfile | None = None


class GenerateMelodyRequest(BaseModel):
    text: str
    mood: MoodProfile | None = None
    seed: int | None = Field(default=None, ge=0, le=0xFFFFFFFF)
    title: str | None = Field(default=None, min_length=1, max_length=200)
    force_params: ParamsOverride | None = None
    respect_breath_points: bool = True
    by_section: bool = False


class MelodyResponse(BaseModel):
    melody: Melody
    abc: str
    seed: int | None = None
    structure_pattern: str | None = None
    analysis_summary: str | None = None
    warnings: list[str] = Field(default_factory=list)


class MelodyRequest(BaseModel):
    melody: Melody


class AdjustMelodyRequest(BaseModel):
    melody: Melody
    params: ParamsOverride


class StyleRequest(BaseModel):
    melody: Melody
    style: str = Field(min_length=1, max_length=40)


class VariationRequestOptions(BaseModel):
    ornament_probability: float = Field(default=0.3, ge=0, le=1)
    seed: int | None = Field(default=None, ge=0, le=0xFFFFFFFF)
    invert_pivot: str | None = Field(default=None, min_length=1, max_length=1)
    transpose_semitones: int = Field(default=0, ge=-24, le=24)


class VariationRequest(BaseModel):
    melody: Melody
    variation_type: str = Field(min_length=1, max_length=40)
    options: VariationRequestOptions = Field(default_factory=VariationRequestOptions)


class VariationResponse(MelodyResponse):
    summary: str


AnalyzedLine.model_rebuild()
