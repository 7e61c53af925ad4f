from __future__ import annotations


class ExtractionError(RuntimeError):
    """The AI extraction provider could not produce a result."""
