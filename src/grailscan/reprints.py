"""Reprint and facsimile suppression."""

from __future__ import annotations

import re
from typing import Iterable, List, Tuple

from .schemas.candidate import Candidate

REPRINT_KEYWORDS = (
    "facsimile",
    "variant facsimile",
    "reprint",
    "anniversary edition",
    "replica",
    "reproduction",
    "true believers",
)

# A first printing is the original; later printings are reissues.
_NTH_PRINT_RE = re.compile(
    r"\b(?:(?:[2-9]|\d{2,})(?:st|nd|rd|th)|second|third|fourth|fifth|sixth|seventh|eighth|ninth|tenth)"
    r"\s+print",
    re.IGNORECASE,
)


def match_text(candidate: Candidate) -> str:
    parts = (candidate.title, candidate.series_name, candidate.variant_description)
    return " ".join(part for part in parts if part).lower()


def is_reprint(candidate: Candidate) -> bool:
    """True when the classifier flagged the candidate or its text reads like a reissue."""

    if candidate.is_reprint_flagged:
        return True
    text = match_text(candidate)
    if any(keyword in text for keyword in REPRINT_KEYWORDS):
        return True
    return bool(_NTH_PRINT_RE.search(text))


def keep_candidate(candidate: Candidate, exclude_reprints: bool = True) -> bool:
    if not exclude_reprints:
        return True
    return not is_reprint(candidate)


def filter_reprints(
    candidates: Iterable[Candidate], exclude_reprints: bool = True
) -> List[Candidate]:
    return [c for c in candidates if keep_candidate(c, exclude_reprints)]


def split_reprints(
    candidates: Iterable[Candidate], exclude_reprints: bool = True
) -> Tuple[List[Candidate], List[Candidate]]:
    """Partition into (kept, suppressed), both in the original order."""

    kept: List[Candidate] = []
    suppressed: List[Candidate] = []
    for candidate in candidates:
        if keep_candidate(candidate, exclude_reprints):
            kept.append(candidate)
        else:
            suppressed.append(candidate)
    return kept, suppressed
