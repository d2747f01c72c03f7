"""
Payment link extraction from a finished assistant reply.

The match is syntactic only: the query parameters are not checked against the
terms that were actually negotiated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

_URL_PATTERN = re.compile(r"https?://\S+")

# Sentence punctuation the model tends to put right after the link.
_TRAILING_PUNCTUATION = ".,;:!?)]}\"'"


@dataclass(frozen=True)
class PaymentTerms:
    term_length: int | None
    total_debt_amount: float | None
    term_payment_amount: float | None


def extract_payment_link(text: str) -> str | None:
    match = _URL_PATTERN.search(text or "")
    if match is None:
        return None
    url = match.group(0).rstrip(_TRAILING_PUNCTUATION)
    return url or None


def _first_number(query: dict[str, list[str]], key: str, cast: type) -> int | float | None:
    values = query.get(key)
    if not values:
        return None
    try:
        return cast(values[0])
    except ValueError:
        return None


def parse_payment_terms(url: str) -> PaymentTerms | None:
    query = parse_qs(urlparse(url).query)
    terms = PaymentTerms(
        term_length=_first_number(query, "termLength", int),
        total_debt_amount=_first_number(query, "totalDebtAmount", float),
        term_payment_amount=_first_number(query, "termPaymentAmount", float),
    )
    if terms == PaymentTerms(None, None, None):
        return None
    return terms
