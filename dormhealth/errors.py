"""Exception hierarchy for the analysis pipeline."""


class DormHealthError(Exception):
    """Base class for errors raised by the analysis pipeline."""


class SymptomParseError(DormHealthError, ValueError):
    """A stored symptom payload could not be decoded into a list of labels."""

    def __init__(self, payload: object, reason: str) -> None:
        preview = repr(payload)
        if len(preview) > 80:
            preview = preview[:77] + "..."
        super().__init__(f"Unparseable symptom payload {preview}: {reason}")
        self.payload = payload
        self.reason = reason


class AggregationError(DormHealthError):
    """Survey rows for a unit-week could not be aggregated."""

    def __init__(self, unit_id: str, reason: str) -> None:
        super().__init__(f"Cannot aggregate unit {unit_id!r}: {reason}")
        self.unit_id = unit_id
