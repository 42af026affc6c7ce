"""ISBN cleaning and checksum validation.

Both functions are pure; anything that is not a string cleans to "" and
is never valid.
"""

import re

_NON_ISBN_CHARS = re.compile(r"[^0-9X]")
_NON_DIGITS = re.compile(r"[^0-9]")


def clean_isbn(raw) -> str:
    """Strip an ISBN down to its digits and check character.

    Upper-cases the input and keeps only digits and ``X``. Anything longer
    than 10 characters can only be an ISBN-13, which never contains ``X``,
    so it is reduced to digits. A shorter value with an ``X`` anywhere but
    the last position has all of its ``X`` characters removed.

    Example:
        >>> clean_isbn("0-8044-2957-x")
        '080442957X'
        >>> clean_isbn("978-0-306-40615-7")
        '9780306406157'
    """
    if not isinstance(raw, str):
        return ""

    cleaned = _NON_ISBN_CHARS.sub("", raw.upper())
    if len(cleaned) > 10:
        return _NON_DIGITS.sub("", cleaned)
    if "X" in cleaned[:-1]:
        return cleaned.replace("X", "")
    return cleaned


def _is_valid_isbn10(isbn: str) -> bool:
    if not isbn[:9].isdigit():
        return False
    check = 10 if isbn[9] == "X" else int(isbn[9])
    # Weights 10..2 over the first nine digits, 1 on the check digit
    total = sum((10 - i) * int(d) for i, d in enumerate(isbn[:9])) + check
    return total % 11 == 0


def _is_valid_isbn13(isbn: str) -> bool:
    if not isbn.isdigit():
        return False
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(isbn[:12]))
    return (10 - total % 10) % 10 == int(isbn[12])


def is_valid_isbn(raw) -> bool:
    """Validate an ISBN-10 or ISBN-13 checksum after cleaning.

    Example:
        >>> is_valid_isbn("0-306-40615-2")
        True
        >>> is_valid_isbn("978-0-306-40615-8")
        False
    """
    isbn = clean_isbn(raw)
    if len(isbn) == 10:
        return _is_valid_isbn10(isbn)
    if len(isbn) == 13:
        return _is_valid_isbn13(isbn)
    return False


def isbn10_check_digit(first_nine: str) -> str:
    """Compute the ISBN-10 check character for nine digits."""
    total = sum((10 - i) * int(d) for i, d in enumerate(first_nine))
    check = (11 - total % 11) % 11
    return "X" if check == 10 else str(check)
