"""Version string ordering.

Versions are split on '.', '-' and '+'. Segments that are both numeric
compare as integers and anything else compares as text. A numeric segment
sorts before a textual one. A missing segment counts as 0 against a numeric
one, and as newer than a textual one, so "1.0" == "1.0.0", "1.10" > "1.9"
and "1.0-rc1" < "1.0".
"""

import re
from typing import List, Tuple, Union

_SEPARATORS = re.compile(r"[.\-+]")

Segment = Tuple[int, Union[int, str]]

_ZERO: Segment = (0, 0)
_RELEASE: Segment = (2, "")


def _segments(version: str) -> List[Segment]:
    parts = _SEPARATORS.split(version.strip().lstrip("vV"))
    return [(0, int(part)) if part.isdigit() else (1, part) for part in parts]


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` is older than, equal to or newer than ``b``."""
    left, right = _segments(a), _segments(b)
    for i in range(max(len(left), len(right))):
        x = left[i] if i < len(left) else None
        y = right[i] if i < len(right) else None
        if x is None:
            x = _ZERO if y[0] == 0 else _RELEASE
        if y is None:
            y = _ZERO if x[0] == 0 else _RELEASE
        if x != y:
            return -1 if x < y else 1
    return 0
