from __future__ import annotations

import re
from typing import List, Optional

_NON_WORD = re.compile(r"[^a-z0-9 \t\n]")


def tokenize(text: Optional[str]) -> List[str]:
    """Lowercase, blank out everything but ascii letters, digits and whitespace, split."""
    return _NON_WORD.sub(" ", (text or "").lower()).split()


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """Set-overlap ratio of the two token sets; two empty answers count as identical."""
    left = set(tokenize(a))
    right = set(tokenize(b))
    if not left and not right:
        return 1.0
    return len(left & right) / len(left | right)
