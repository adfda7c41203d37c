"""User-editable extraction settings: patterns, tolerances and app options.

These mirror the `settings` block of a project snapshot. Defaults match the
values a new project starts with.
"""

from typing import Literal, Optional

from pydantic import Field

from .base import CamelModel, Category


class InstrumentPattern(CamelModel):
    """Two-part instrument pattern: function code above loop number."""

    func: str = r"[A-Z]{2,4}"
    num: str = r"\d{3,4}(?:\s?[A-Z])?"


class PatternConfig(CamelModel):
    """Regex patterns keyed by category."""

    line: Optional[str] = Field(default=r'^.*".*-.*-.*$', alias="Line")
    instrument: InstrumentPattern = Field(
        default_factory=InstrumentPattern, alias="Instrument"
    )
    drawing_number: Optional[str] = Field(
        default=r"[A-Z0-9][A-Z0-9\-]{10,}", alias="DrawingNumber"
    )
    notes_and_holds: Optional[str] = Field(default=r"^(NOTE|HOLD).*", alias="NotesAndHolds")

    def for_category(self, category: Category) -> Optional[str]:
        """Single-token pattern for a category (None for Instrument)."""
        return {
            Category.LINE: self.line,
            Category.DRAWING_NUMBER: self.drawing_number,
            Category.NOTES_AND_HOLDS: self.notes_and_holds,
        }.get(category)


class InstrumentTolerance(CamelModel):
    """Proximity thresholds in PDF points."""

    vertical: float = Field(default=15, ge=0, description="Max vertical center offset")
    horizontal: float = Field(default=20, ge=0, description="Max horizontal center offset")
    auto_link_distance: Optional[float] = Field(
        default=30, description="Max distance for auto-linking raw text to instruments"
    )


class ToleranceConfig(CamelModel):
    """Tolerances keyed by category (only Instrument is used)."""

    instrument: InstrumentTolerance = Field(
        default_factory=InstrumentTolerance, alias="Instrument"
    )


class HyphenSettings(CamelModel):
    """Whether items merged into a tag are joined with a hyphen, per category."""

    line: bool = False
    instrument: bool = True
    drawing_number: bool = False
    notes_and_holds: bool = False

    def for_category(self, category: Category) -> bool:
        """Hyphen flag for a category."""
        return {
            Category.LINE: self.line,
            Category.INSTRUMENT: self.instrument,
            Category.DRAWING_NUMBER: self.drawing_number,
            Category.NOTES_AND_HOLDS: self.notes_and_holds,
        }.get(category, False)


class DrawingSearchArea(CamelModel):
    """Rectangle restricting where drawing numbers are looked for."""

    enabled: bool = False
    unit: Literal["percent", "px"] = "percent"
    top: float = 5
    right: float = 95
    bottom: float = 20
    left: float = 5

    def to_rect(self, page_width: float, page_height: float) -> tuple[float, float, float, float]:
        """Rectangle (x1, y1, x2, y2) in screen coordinates."""
        if self.unit == "percent":
            return (
                self.left / 100 * page_width,
                self.top / 100 * page_height,
                self.right / 100 * page_width,
                self.bottom / 100 * page_height,
            )
        return (self.left, self.top, self.right, self.bottom)


class InstrumentMapping(CamelModel):
    """Instrument type and I/O type for a function code."""

    instrument_type: str
    io_type: str


DEFAULT_LOOP_RULES: dict[str, str] = {
    # Temperature
    "TT": "T", "TE": "T", "TI": "T", "TC": "T", "TCV": "T",
    "TSH": "T", "TSL": "T", "TIS": "T", "TXT": "T",
    # Pressure
    "PT": "P", "PE": "P", "PI": "P", "PC": "P", "PCV": "P",
    "PSH": "P", "PSL": "P", "PIT": "P", "PDT": "P", "PSV": "P",
    # Flow
    "FT": "F", "FE": "F", "FI": "F", "FC": "F", "FCV": "F",
    "FSH": "F", "FSL": "F", "FIT": "F", "FIC": "F", "FICA": "F",
    # Level
    "LT": "L", "LE": "L", "LI": "L", "LC": "L", "LCV": "L",
    "LSH": "L", "LSL": "L", "LIT": "L", "LIC": "L",
    # Analysis
    "AT": "A", "AE": "A", "AI": "A", "AC": "A", "AIC": "A",
    # Valves, hand, position, vibration
    "XV": "X", "XCV": "X",
    "HV": "H", "HCV": "H", "HS": "H", "HC": "H", "HIC": "H",
    "ZT": "Z", "ZI": "Z", "ZS": "Z",
    "VT": "V", "VE": "V", "VSH": "V",
}

_MAPPINGS: dict[str, tuple[str, str]] = {
    # Temperature
    "TE": ("TEMPERATURE ELEMENT", "AI"),
    "TT": ("TEMPERATURE TRANSMITTER", "AI"),
    "TC": ("TEMPERATURE CONTROLLER", "AO"),
    "TI": ("TEMPERATURE INDICATOR", "Local"),
    "TCV": ("TEMPERATURE CONTROL VALVE", "AO"),
    "TSH": ("TEMPERATURE SWITCH HIGH", "DI"),
    "TSL": ("TEMPERATURE SWITCH LOW", "DI"),
    "TIC": ("TEMPERATURE INDICATING CONTROLLER", "AO"),
    "TG": ("TEMPERATURE GAUGE", "Local"),
    "TV": ("TEMPERATURE VALVE", "AO"),
    # Pressure
    "PE": ("PRESSURE ELEMENT", "AI"),
    "PT": ("PRESSURE TRANSMITTER", "AI"),
    "PI": ("PRESSURE INDICATOR", "Local"),
    "PC": ("PRESSURE CONTROLLER", "AO"),
    "PCV": ("PRESSURE CONTROL VALVE", "AO"),
    "PSH": ("PRESSURE SWITCH HIGH", "DI"),
    "PSL": ("PRESSURE SWITCH LOW", "DI"),
    "PIT": ("PRESSURE INDICATING TRANSMITTER", "AI"),
    "PIC": ("PRESSURE INDICATING CONTROLLER", "AO"),
    "PG": ("PRESSURE GAUGE", "Local"),
    "PDI": ("PRESSURE DIFFERENTIAL INDICATOR", "Local"),
    "PDT": ("PRESSURE DIFFERENTIAL TRANSMITTER", "AI"),
    "PSV": ("PRESSURE SAFETY VALVE", "Local"),
    "PV": ("PRESSURE VALVE", "AO"),
    # Level
    "LE": ("LEVEL ELEMENT", "AI"),
    "LT": ("LEVEL TRANSMITTER", "AI"),
    "LI": ("LEVEL INDICATOR", "Local"),
    "LC": ("LEVEL CONTROLLER", "AO"),
    "LCV": ("LEVEL CONTROL VALVE", "AO"),
    "LSH": ("LEVEL SWITCH HIGH", "DI"),
    "LSL": ("LEVEL SWITCH LOW", "DI"),
    "LIT": ("LEVEL INDICATING TRANSMITTER", "AI"),
    "LIC": ("LEVEL INDICATING CONTROLLER", "AO"),
    "LG": ("LEVEL GAUGE", "Local"),
    # Flow
    "FE": ("FLOW ELEMENT", "AI"),
    "FT": ("FLOW TRANSMITTER", "AI"),
    "FI": ("FLOW INDICATOR", "Local"),
    "FC": ("FLOW CONTROLLER", "AO"),
    "FCV": ("FLOW CONTROL VALVE", "AO"),
    "FSH": ("FLOW SWITCH HIGH", "DI"),
    "FSL": ("FLOW SWITCH LOW", "DI"),
    "FIT": ("FLOW INDICATING TRANSMITTER", "AI"),
    "FIC": ("FLOW INDICATING CONTROLLER", "AO"),
    "FV": ("FLOW VALVE", "AO"),
    # Analysis
    "AE": ("ANALYSIS ELEMENT", "AI"),
    "AT": ("ANALYSIS TRANSMITTER", "AI"),
    "AI": ("ANALYSIS INDICATOR", "Local"),
    "AC": ("ANALYSIS CONTROLLER", "AO"),
    # Valves and switches
    "HV": ("HAND VALVE", "Local"),
    "HCV": ("HAND CONTROL VALVE", "Local"),
    "XV": ("ON/OFF VALVE", "DO"),
    "XCV": ("ON/OFF CONTROL VALVE", "DO"),
    "HS": ("HAND SWITCH", "DI"),
    "HC": ("HAND CONTROLLER", "DO"),
    "HIC": ("HAND INDICATING CONTROLLER", "AO"),
    "ZI": ("POSITION INDICATOR", "Local"),
    "ZT": ("POSITION TRANSMITTER", "AI"),
    "ZS": ("POSITION SWITCH", "DI"),
    # Vibration
    "VE": ("VIBRATION ELEMENT", "AI"),
    "VT": ("VIBRATION TRANSMITTER", "AI"),
    "VSH": ("VIBRATION SWITCH HIGH", "DI"),
    # Safety
    "ESD": ("EMERGENCY SHUTDOWN", "DI"),
}


def default_instrument_mappings() -> dict[str, InstrumentMapping]:
    """Fresh copy of the built-in function code lookup."""
    return {
        code: InstrumentMapping(instrument_type=kind, io_type=io)
        for code, (kind, io) in _MAPPINGS.items()
    }


class AppSettings(CamelModel):
    """Application-level options that influence extraction and export."""

    auto_generate_loops: bool = True
    auto_remove_whitespace: bool = True
    hyphen_settings: HyphenSettings = Field(default_factory=HyphenSettings)
    drawing_search_area: DrawingSearchArea = Field(default_factory=DrawingSearchArea)
    sheet_no_pattern: Optional[str] = r"^\d{3}$"
    sheet_no_tolerance_px: float = Field(default=60, ge=0)
    combine_drawing_and_sheet: bool = True
    loop_rules: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_LOOP_RULES))
    instrument_mappings: dict[str, InstrumentMapping] = Field(
        default_factory=default_instrument_mappings
    )


class NoteDescriptionPattern(CamelModel):
    """Tunable layout parameters for note description detection."""

    min_x_position: float = Field(default=0.35, ge=0, le=1, description="Right-side threshold as page width fraction")
    alignment_tolerance: float = Field(default=60, ge=0)
    min_aligned_notes: int = Field(default=1, ge=1)
    max_y_gap: float = Field(default=400, ge=0, description="Hard stop vertical gap")
    max_horizontal_gap: float = Field(default=250, ge=0)
    max_line_gap: float = Field(default=60, ge=0, description="Typical gap between lines")


class ProjectSettings(CamelModel):
    """Settings block stored alongside a project snapshot."""

    patterns: PatternConfig = Field(default_factory=PatternConfig)
    tolerances: ToleranceConfig = Field(default_factory=ToleranceConfig)
    app_settings: AppSettings = Field(default_factory=AppSettings)
