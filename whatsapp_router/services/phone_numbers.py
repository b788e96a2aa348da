"""Phone number normalisation to E.164."""

from __future__ import annotations

import re
from typing import Any

DEFAULT_COUNTRY_PREFIX = "+242"

E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")
_NON_DIAL_RE = re.compile(r"[^\d+]")

# Checked in this order; the first matching prefix wins.
KNOWN_CALLING_CODES = (
    "242",  # Congo
    "221",  # Senegal
    "223",  # Mali
    "224",  # Guinea
    "225",  # Ivory Coast
    "226",  # Burkina Faso
    "227",  # Niger
    "228",  # Togo
    "229",  # Benin
    "230",  # Mauritius
    "231",  # Liberia
    "232",  # Sierra Leone
    "233",  # Ghana
    "234",  # Nigeria
    "235",  # Chad
    "236",  # Central African Republic
    "237",  # Cameroon
    "238",  # Cape Verde
    "239",  # Sao Tome and Principe
    "240",  # Equatorial Guinea
    "241",  # Gabon
    "243",  # DR Congo
    "244",  # Angola
    "245",  # Guinea-Bissau
    "246",  # British Indian Ocean Territory
    "247",  # Ascension Island
    "248",  # Seychelles
    "249",  # Sudan
    "250",  # Rwanda
    "251",  # Ethiopia
    "252",  # Somalia
    "253",  # Djibouti
    "254",  # Kenya
    "255",  # Tanzania
    "256",  # Uganda
    "257",  # Burundi
    "258",  # Mozambique
    "260",  # Zambia
    "261",  # Madagascar
    "262",  # Reunion/Mayotte
    "263",  # Zimbabwe
    "264",  # Namibia
    "265",  # Malawi
    "266",  # Lesotho
    "267",  # Botswana
    "268",  # Eswatini
    "269",  # Comoros
    "290",  # Saint Helena
    "291",  # Eritrea
    "297",  # Aruba
    "298",  # Faroe Islands
    "299",  # Greenland
)


def normalize(raw: Any, default_prefix: str = DEFAULT_COUNTRY_PREFIX) -> str:
    """Best-effort conversion to ``+<digits>``; never raises."""

    if not isinstance(raw, str) or not raw:
        return ""
    cleaned = _NON_DIAL_RE.sub("", raw)
    if not cleaned:
        return ""
    if cleaned.startswith("+"):
        return cleaned
    for code in KNOWN_CALLING_CODES:
        if cleaned.startswith(code):
            return "+" + cleaned
    if cleaned.startswith("0"):
        return default_prefix + cleaned[1:]
    return default_prefix + cleaned


def is_valid(number: str) -> bool:
    return bool(number) and E164_RE.match(number) is not None
