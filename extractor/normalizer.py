"""
Price text normalization.

Turns the text of a price element ("$1,234.56", "19,99 EUR", "Now: 42.-")
into a float.
"""

import re

_NON_NUMERIC = re.compile(r'[^\d.,]')
_LEADING_NUMBER = re.compile(r'\d+(?:\.\d*)?|\.\d+')


class PriceParseError(ValueError):
    """Raised when no number can be read from a price text."""

    def __init__(self, text: str):
        self.text = text
        super().__init__(f"Failed to parse price from text: {text!r}")


def normalize_price_text(text: str) -> str:
    """
    Reduce price text to digits and a single decimal separator.

    Everything except digits, commas and periods is dropped. When both a
    comma and a period remain, commas are thousands separators. When only a
    comma remains, it is the decimal separator.

    Args:
        text: Raw element text

    Returns:
        Cleaned numeric text (may be empty)
    """
    cleaned = _NON_NUMERIC.sub('', text or '')

    if ',' in cleaned and '.' in cleaned:
        cleaned = cleaned.replace(',', '')
    elif ',' in cleaned:
        cleaned = cleaned.replace(',', '.', 1)

    return cleaned


def parse_price(text: str) -> float:
    """
    Parse price text into a float.

    The longest leading decimal number of the normalized text is used, so
    "12.5.3" reads as 12.5.

    Args:
        text: Raw element text

    Returns:
        Parsed price

    Raises:
        PriceParseError: If the normalized text holds no number
    """
    match = _LEADING_NUMBER.match(normalize_price_text(text))
    if not match:
        raise PriceParseError(text)
    return float(match.group(0))
