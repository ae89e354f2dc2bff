"""
Biometric token normalization.

Time clocks export user IDs inconsistently ("123", "000123", " 123 "), so every
stage keys employees by a normalized token instead of the raw cell value.
"""

from __future__ import annotations

import re

from bioattend.core.config import settings

_DIGITS_ONLY = re.compile(r"^\d+$")


def normalize_biometric_token(token: object, pad_length: int | None = None) -> str:
    """
    Trim and uppercase the token; digit-only tokens are left-padded with zeros.

    ``pad_length`` defaults to ``settings.BIOMETRICS_TOKEN_PAD_LENGTH``.
    Anything that is not a non-blank string normalizes to "".
    """
    if not isinstance(token, str):
        return ""
    normalized = token.strip().upper()
    if not normalized:
        return ""

    length = settings.BIOMETRICS_TOKEN_PAD_LENGTH if pad_length is None else pad_length
    length = max(0, int(length))
    if length > 0 and _DIGITS_ONLY.match(normalized):
        normalized = normalized.zfill(length)
    return normalized


def normalize_biometric_token_or_none(token: object, pad_length: int | None = None) -> str | None:
    return normalize_biometric_token(token, pad_length) or None
