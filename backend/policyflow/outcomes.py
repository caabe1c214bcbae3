from typing import Optional, Union

Outcome = Union[bool, str]

_BOOLEAN_TEXT = {"true": True, "false": False}


def coerce_expected_outcome(value: Outcome) -> Outcome:
    """Normalize a user-entered expected outcome.

    Booleans pass through. Text that reads "true" or "false" (ignoring case and
    surrounding whitespace) becomes the matching boolean; any other text is a
    custom outcome and is kept verbatim.
    """
    if isinstance(value, bool):
        return value
    normalized = value.strip().lower()
    if normalized in _BOOLEAN_TEXT:
        return _BOOLEAN_TEXT[normalized]
    return value


def outcome_passed(expected: Outcome, final_outcome: Optional[Outcome]) -> bool:
    if final_outcome is None:
        return False
    if type(expected) is not type(final_outcome):
        return False
    return expected == final_outcome
