import re

_COMPONENT = re.compile(r"\d+(\.\d+)?")


def timestamp_to_seconds(timestamp: str) -> float:
    """
    Parse "HH:MM:SS", "MM:SS" or a bare number of seconds.
    Raises ValueError for anything else.
    """
    raw = (timestamp or "").strip()
    if not raw:
        raise ValueError("timestamp is empty")

    parts = raw.split(":")
    if len(parts) > 3:
        raise ValueError(f"Unrecognized timestamp: {timestamp!r}")

    # digits only: float() alone would accept "nan", "inf", "1e3" and signs
    if not all(_COMPONENT.fullmatch(p) for p in parts):
        raise ValueError(f"Unrecognized timestamp: {timestamp!r}")

    total = 0.0
    for value in (float(p) for p in parts):
        total = total * 60 + value
    return total
