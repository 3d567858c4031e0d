"""DoseTrack: variable-dosage pattern engine.

This package resolves which repeating dosage pattern governs a medication on a
given date, computes the expected dose with cyclic day arithmetic, generates
schedules across pattern revisions, and reconciles logged doses against the
historically active pattern.

Run the CLI with: python -m dosetrack.cli
"""

__all__ = [
    "calculator",
    "errors",
    "lifecycle",
    "medication",
    "pattern",
    "resolver",
    "schedule",
    "store",
    "validator",
    "variance",
]

__version__ = "0.1.0"
