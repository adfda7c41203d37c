"""Pattern Suggestion Stage - Derive extraction regexes from sample tags.

Rule-based: each sample is matched against a few well-known P&ID layouts
and mapped to a generalized pattern. Unknown layouts fall back to a
per-segment pattern built from the sample's character classes.

    "8\"-PL-30001-C1C"        -> line pattern
    "PCV-2001A"               -> instrument {func, num}
    "00342GS-7300-PRP-D-105"  -> drawing number pattern
"""

import re
from dataclasses import dataclass
from typing import Optional

from pidtag.models import InstrumentPattern, PatternConfig

# (sample layout, generated pattern)
LINE_LAYOUTS = [
    (
        re.compile(r'^(\d+(?:/\d+)?)"?-([A-Z]{1,4})-(\d{3,})(?:-([A-Z0-9]+))?$', re.IGNORECASE),
        r'\d+(?:[/\d]+)?"?-[A-Z]{1,4}-\d{3,}(?:-[A-Z0-9]+)?',
    ),
    (
        re.compile(r'^(\d+)"?-(\d{4})-([A-Z])-(\d{3})-([A-Z0-9-]+)$', re.IGNORECASE),
        r'\d+"?-\d{4}-[A-Z]-\d{3}-[A-Z0-9-]+',
    ),
    (
        re.compile(r'^(\d+(?:/\d+)?)"?-([A-Z]{2,})-(\d+)$', re.IGNORECASE),
        r'\d+(?:[/\d]+)?"?-[A-Z]{2,}-\d+',
    ),
]
DEFAULT_LINE_PATTERN = r'\d+(?:[/\d]+)?"?-[A-Z]{1,4}-\d{3,}'

INSTRUMENT_LAYOUTS = [
    re.compile(r"^([A-Z]{2,5})[-\s]?(\d{3,4}[A-Z]?)$", re.IGNORECASE),
    re.compile(r"^([A-Z]{2,6})[-\s]?(\d{3,4}[A-Z]?)$", re.IGNORECASE),
]

DRAWING_PID_LAYOUT = re.compile(r"^P&ID-\d+-REV-[A-Z]$", re.IGNORECASE)
DRAWING_SECTIONED_LAYOUT = re.compile(
    r"^[0-9]{3,}[A-Z]{2,}-[0-9]{4}-[A-Z]{2,}-[A-Z]-[0-9]{3,}$", re.IGNORECASE
)
DRAWING_DASHED_LAYOUT = re.compile(r"^[A-Z0-9]+(-[A-Z0-9]+){2,}$", re.IGNORECASE)
DEFAULT_DRAWING_PATTERN = r"[A-Z0-9][A-Z0-9\-]{10,}"


@dataclass
class GeneratedPatterns:
    """Patterns suggested from samples; None where no sample was given."""

    line: Optional[str] = None
    instrument: Optional[InstrumentPattern] = None
    drawing: Optional[str] = None

    def apply_to(self, patterns: PatternConfig) -> PatternConfig:
        """Copy of `patterns` with the suggested entries swapped in."""
        update = {}
        if self.line:
            update["line"] = self.line
        if self.instrument:
            update["instrument"] = self.instrument
        if self.drawing:
            update["drawing_number"] = self.drawing
        return patterns.model_copy(update=update)


def _segment_pattern(part: str) -> str:
    if re.fullmatch(r"\d+", part):
        return rf"\d{{{len(part)}}}"
    if re.fullmatch(r"\d+/\d+", part):
        return r"\d+/\d+"
    if re.fullmatch(r"[A-Z]+", part, re.IGNORECASE):
        return f"[A-Z]{{{len(part)}}}"
    if re.fullmatch(r"[A-Z0-9]+", part, re.IGNORECASE):
        return "[A-Z0-9]+"
    return "[A-Z0-9-]+"


def analyze_line_sample(sample: str) -> str:
    """Pattern for a line number such as `8"-PL-30001-C1C`."""
    if not sample:
        return ""
    for layout, pattern in LINE_LAYOUTS:
        if layout.match(sample):
            return pattern

    parts = [p for p in re.split(r'[-"]', sample) if p]
    pattern = "-".join(_segment_pattern(p) for p in parts)
    if pattern and '"' in sample:
        # Optional inch mark after the leading size segment
        pattern = re.sub(r"^(\\d[^-]*)", lambda m: m.group(1) + '"?', pattern, count=1)
    return pattern or DEFAULT_LINE_PATTERN


def analyze_instrument_sample(sample: str) -> InstrumentPattern:
    """Function-code and number patterns for a tag such as `PCV-2001A`."""
    normalized = re.sub(r"\s+", " ", sample.strip())
    match = None
    for layout in INSTRUMENT_LAYOUTS:
        match = layout.match(normalized)
        if match:
            break
    if match is None:
        return InstrumentPattern()

    func, num = match.group(1), match.group(2)
    if len(func) <= 3:
        func_pattern = "[A-Z]{2,3}"
    else:
        func_pattern = f"[A-Z]{{{min(len(func) - 1, 2)},{min(len(func) + 1, 6)}}}"

    digits = len(re.sub(r"[A-Z]", "", num, flags=re.IGNORECASE))
    if re.search(r"[A-Z]$", num):
        num_pattern = rf"\d{{{digits}}}[A-Z]?"
    else:
        num_pattern = rf"\d{{{max(3, digits)},{max(4, digits)}}}"
    return InstrumentPattern(func=func_pattern, num=num_pattern)


def analyze_drawing_sample(sample: str) -> str:
    """Pattern for a drawing number such as `00342GS-7300-PRP-D-105`."""
    if not sample:
        return ""
    if DRAWING_PID_LAYOUT.match(sample):
        return r"P&ID-\d+-REV-[A-Z]"
    if DRAWING_SECTIONED_LAYOUT.match(sample):
        return r"\d{3,}[A-Z]{2,}-\d{4}-[A-Z]{2,}-[A-Z]-\d{3,}"
    if DRAWING_DASHED_LAYOUT.match(sample):
        sections = sample.split("-")
        min_sections = max(3, len(sections) - 1)
        max_sections = len(sections) + 2
        segment = "[A-Z0-9]+" if re.search(r"[A-Z]", sample, re.IGNORECASE) else r"\d+"
        required = "".join(f"(-{segment})" for _ in range(1, min_sections))
        optional = "".join(f"(-{segment})?" for _ in range(min_sections, max_sections))
        return segment + required + optional
    return DEFAULT_DRAWING_PATTERN


def _split_samples(samples: Optional[str]) -> list[str]:
    return [s.strip() for s in (samples or "").split(",") if s.strip()]


def _alternation(patterns: list[str]) -> Optional[str]:
    unique = list(dict.fromkeys(p for p in patterns if p))
    if not unique:
        return None
    return unique[0] if len(unique) == 1 else f"({'|'.join(unique)})"


def generate_regex_from_samples(
    line_samples: Optional[str] = None,
    instrument_samples: Optional[str] = None,
    drawing_samples: Optional[str] = None,
) -> GeneratedPatterns:
    """Suggest patterns from comma-separated sample strings.

    Args:
        line_samples: e.g. `8"-PL-30001-C1C, 3"-GL-30401-N1E`.
        instrument_samples: e.g. `FT-101, PCV 2001A`.
        drawing_samples: e.g. `00342GS-7300-PRP-D-105`.

    Returns:
        GeneratedPatterns; several samples combine as `(a|b)`.
    """
    result = GeneratedPatterns()
    result.line = _alternation([analyze_line_sample(s) for s in _split_samples(line_samples)])
    result.drawing = _alternation(
        [analyze_drawing_sample(s) for s in _split_samples(drawing_samples)]
    )

    instruments = [analyze_instrument_sample(s) for s in _split_samples(instrument_samples)]
    if instruments:
        result.instrument = InstrumentPattern(
            func=_alternation([p.func for p in instruments]),
            num=_alternation([p.num for p in instruments]),
        )
    return result
