# civic_search/utils/session_numbers.py
"""Council session numbering: roman/arabic conversion and extraction from text.

Councils number their sessions with roman numerals ("Sesja Nr XXIII") while
users type either form ("sesja 23", "sesji xxiii"). Everything is compared
through the arabic value.
"""

import re
from typing import List, Optional, Union

MAX_ROMAN = 3999
MAX_SESSION_NUMBER = 200

ROMAN_VALUES = {
    "I": 1,
    "V": 5,
    "X": 10,
    "L": 50,
    "C": 100,
    "D": 500,
    "M": 1000,
}

ARABIC_TO_ROMAN = [
    (1000, "M"),
    (900, "CM"),
    (500, "D"),
    (400, "CD"),
    (100, "C"),
    (90, "XC"),
    (50, "L"),
    (40, "XL"),
    (10, "X"),
    (9, "IX"),
    (5, "V"),
    (4, "IV"),
    (1, "I"),
]

_ROMAN_CHARS = re.compile(r"^[IVXLCDM]+$")

_ARABIC_PATTERNS = [
    re.compile(r"sesj[iaęy]\s+(?:nr\.?\s*)?(\d{1,3})\b", re.IGNORECASE),
    re.compile(r"\b(\d{1,3})\s*\.?\s*sesj", re.IGNORECASE),
]

_ROMAN_PATTERNS = [
    re.compile(r"sesj[iaęy]\s+(?:nr\.?\s*)?([IVXLC]{1,10})\b", re.IGNORECASE),
    re.compile(r"\b([IVXLC]{1,10})\s*sesj", re.IGNORECASE),
    re.compile(r"\bnr\.?\s*([IVXLC]{1,10})\b", re.IGNORECASE),
]


def roman_to_arabic(roman: str) -> int:
    """Convert a roman numeral to an int; returns 0 for anything that is not one"""
    if not roman or not isinstance(roman, str):
        return 0

    upper = roman.strip().upper()
    if not _ROMAN_CHARS.match(upper):
        return 0

    result = 0
    prev_value = 0
    for char in reversed(upper):
        value = ROMAN_VALUES[char]
        if value < prev_value:
            result -= value
        else:
            result += value
        prev_value = value

    return result


def arabic_to_roman(num: int) -> str:
    """Convert 1..3999 to its canonical roman form; '' outside that range"""
    if not isinstance(num, int) or isinstance(num, bool) or num <= 0 or num > MAX_ROMAN:
        return ""

    result = []
    remaining = num
    for value, numeral in ARABIC_TO_ROMAN:
        while remaining >= value:
            result.append(numeral)
            remaining -= value

    return "".join(result)


def is_canonical_roman(roman: str) -> bool:
    value = roman_to_arabic(roman)
    return value > 0 and arabic_to_roman(value) == roman.strip().upper()


def session_numeral_to_arabic(value: Union[str, int]) -> int:
    """Normalize a session number given as int, arabic string or roman numeral.

    Raises ValueError for values that are not a canonical number in 1..3999.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a session number: {value!r}")
    if isinstance(value, int):
        number = value
    else:
        text = str(value).strip()
        if text.isdigit():
            number = int(text)
        elif is_canonical_roman(text):
            number = roman_to_arabic(text)
        else:
            raise ValueError(f"Not a session number: {value!r}")

    if number < 1 or number > MAX_ROMAN:
        raise ValueError(f"Session number out of range: {number}")
    return number


def arabic_to_session_numeral(number: int) -> str:
    """Roman form used in council document titles"""
    numeral = arabic_to_roman(number)
    if not numeral:
        raise ValueError(f"Session number out of range: {number!r}")
    return numeral


def parse_session_number(value: str) -> Optional[int]:
    """Parse a bare session number ("23" or "XXIII") within the council range"""
    if not value:
        return None

    trimmed = str(value).strip()
    if trimmed.isdigit():
        number = int(trimmed)
        return number if 0 < number <= MAX_SESSION_NUMBER else None

    if is_canonical_roman(trimmed):
        number = roman_to_arabic(trimmed)
        return number if 0 < number <= MAX_SESSION_NUMBER else None

    return None


def extract_session_number(text: str) -> Optional[int]:
    """Find a session number in free text such as a query or a document title"""
    if not text:
        return None

    for pattern in _ARABIC_PATTERNS:
        match = pattern.search(text)
        if match:
            number = int(match.group(1))
            if 0 < number <= MAX_SESSION_NUMBER:
                return number

    for pattern in _ROMAN_PATTERNS:
        for match in pattern.finditer(text):
            candidate = match.group(1)
            # a lone lowercase "i" is the Polish conjunction, not session one
            if len(candidate) == 1 and candidate.islower() and "nr" not in match.group(0).lower():
                continue
            if not is_canonical_roman(candidate):
                continue
            number = roman_to_arabic(candidate)
            if 0 < number <= MAX_SESSION_NUMBER:
                return number

    return None


def session_search_variants(session_number: int) -> List[str]:
    """All spellings a document title may use for the given session"""
    roman = arabic_to_roman(session_number)
    arabic = str(session_number)

    variants = [
        f"Sesja {arabic}",
        f"Sesja Nr {arabic}",
        f"Sesji {arabic}",
    ]
    if roman:
        variants.extend([
            f"Sesja {roman}",
            f"Sesja Nr {roman}",
            f"Sesji {roman}",
            f"{roman} Sesja",
            f"Nr {roman}",
        ])
    return variants
