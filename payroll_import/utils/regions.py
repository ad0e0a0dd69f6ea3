"""
Canadian province and territory code standardization.

Source files spell provinces every possible way: "ON", "Ontario", "ON - Ontario",
"Ont.", "Québec". Everything resolves to one of the thirteen two-letter codes.
"""

import re
import unicodedata
from typing import Any, Dict, Optional

PROVINCE_CODES = (
    "ON", "BC", "AB", "SK", "MB", "QC", "NB", "NS", "PE", "NL", "YT", "NT", "NU",
)

PROVINCE_NAMES: Dict[str, str] = {
    "AB": "Alberta",
    "BC": "British Columbia",
    "MB": "Manitoba",
    "NB": "New Brunswick",
    "NL": "Newfoundland and Labrador",
    "NS": "Nova Scotia",
    "NT": "Northwest Territories",
    "NU": "Nunavut",
    "ON": "Ontario",
    "PE": "Prince Edward Island",
    "QC": "Quebec",
    "SK": "Saskatchewan",
    "YT": "Yukon",
}

# Alternate spellings, French names, postal abbreviations and legacy codes
_EXTRA_ALIASES: Dict[str, str] = {
    "alta": "AB",
    "colombiebritannique": "BC",
    "cb": "BC",
    "man": "MB",
    "nouveaubrunswick": "NB",
    "nb": "NB",
    "newfoundland": "NL",
    "labrador": "NL",
    "nfld": "NL",
    "nf": "NL",
    "terreneuveetlabrador": "NL",
    "nouvelleecosse": "NS",
    "territoiresdunordouest": "NT",
    "nwt": "NT",
    "ont": "ON",
    "pei": "PE",
    "iledupinceedouard": "PE",
    "ileduprinceedouard": "PE",
    "que": "QC",
    "pq": "QC",
    "sask": "SK",
    "yukonterritory": "YT",
    "yk": "YT",
}


def _alias_key(text: str) -> str:
    """Fold accents and case, keep letters only."""
    folded = unicodedata.normalize("NFKD", text)
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return re.sub(r"[^a-z]", "", folded.lower())


def _build_alias_table() -> Dict[str, str]:
    table: Dict[str, str] = {}
    for code in PROVINCE_CODES:
        table[_alias_key(code)] = code
    for code, name in PROVINCE_NAMES.items():
        table[_alias_key(name)] = code
        table[_alias_key(f"{code} - {name}")] = code
    table.update(_EXTRA_ALIASES)
    return table


PROVINCE_ALIASES = _build_alias_table()


def standardize_province(value: Any) -> Optional[str]:
    """
    Resolve a province/territory reference to its two-letter code.

    Handles:
    - codes in any case: "on", "Bc"
    - full names, with or without accents: "Ontario", "Québec"
    - "CODE - Full Name" and "Full Name (CODE)" forms
    - common abbreviations: "Ont.", "Nfld", "PEI"

    Returns:
        Two-letter code or None when the value is empty or unknown
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    key = _alias_key(text)
    if key in PROVINCE_ALIASES:
        return PROVINCE_ALIASES[key]

    # "ON - Something unexpected" or "Ontario (ON)": trust a leading/trailing code
    code_match = re.match(r"^([A-Za-z]{2})\s*[-–:]\s*\S", text) or re.search(r"\(([A-Za-z]{2})\)\s*$", text)
    if code_match and code_match.group(1).upper() in PROVINCE_CODES:
        return code_match.group(1).upper()

    return None
