from __future__ import annotations

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

DIGIT_RE = re.compile(r"\d")


def decode_html(body: bytes, charset: Optional[str]) -> str:
    """
    Декодирование HTML с учётом charset ответа.
    """
    enc = charset or "utf-8"
    try:
        decoded = body.decode(enc, errors="replace")
        logger.debug("[heuristics] HTML decoded with charset=%s", enc)
        return decoded
    except LookupError as exc:
        logger.warning("[heuristics] HTML decode failed charset=%s: %s; fallback to utf-8", enc, exc)
        return body.decode("utf-8", errors="replace")


def first_digit(value: str) -> Optional[str]:
    """
    Первая десятичная цифра в строке.
    Берётся ровно одна цифра: "Drupal 10.1" -> "1".
    """
    m = DIGIT_RE.search(value)
    return m.group(0) if m else None
