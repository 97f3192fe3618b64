"""Static IATA airport code -> timezone table.

Values are IANA zone names so DST is applied for the wall time being
resolved. The resolver also accepts fixed ``"+HH:MM"`` offsets as values,
which is what test fixtures usually inject.
"""

from __future__ import annotations

import re
from types import MappingProxyType

AIRPORT_ZONES = MappingProxyType(
    {
        # North America
        "ATL": "America/New_York",
        "BOS": "America/New_York",
        "JFK": "America/New_York",
        "LGA": "America/New_York",
        "EWR": "America/New_York",
        "IAD": "America/New_York",
        "DCA": "America/New_York",
        "MIA": "America/New_York",
        "MCO": "America/New_York",
        "CLT": "America/New_York",
        "DTW": "America/Detroit",
        "ORD": "America/Chicago",
        "MDW": "America/Chicago",
        "DFW": "America/Chicago",
        "IAH": "America/Chicago",
        "MSP": "America/Chicago",
        "DEN": "America/Denver",
        "SLC": "America/Denver",
        "PHX": "America/Phoenix",
        "LAX": "America/Los_Angeles",
        "SFO": "America/Los_Angeles",
        "SEA": "America/Los_Angeles",
        "SAN": "America/Los_Angeles",
        "LAS": "America/Los_Angeles",
        "PDX": "America/Los_Angeles",
        "ANC": "America/Anchorage",
        "HNL": "Pacific/Honolulu",
        "YYZ": "America/Toronto",
        "YVR": "America/Vancouver",
        "YUL": "America/Toronto",
        "MEX": "America/Mexico_City",
        "CUN": "America/Cancun",
        # South America
        "GRU": "America/Sao_Paulo",
        "EZE": "America/Argentina/Buenos_Aires",
        "BOG": "America/Bogota",
        "LIM": "America/Lima",
        "SCL": "America/Santiago",
        # Europe
        "LHR": "Europe/London",
        "LGW": "Europe/London",
        "DUB": "Europe/Dublin",
        "CDG": "Europe/Paris",
        "AMS": "Europe/Amsterdam",
        "FRA": "Europe/Berlin",
        "MUC": "Europe/Berlin",
        "ZRH": "Europe/Zurich",
        "MAD": "Europe/Madrid",
        "BCN": "Europe/Madrid",
        "FCO": "Europe/Rome",
        "LIS": "Europe/Lisbon",
        "CPH": "Europe/Copenhagen",
        "ARN": "Europe/Stockholm",
        "IST": "Europe/Istanbul",
        # Middle East / Africa
        "DXB": "Asia/Dubai",
        "DOH": "Asia/Qatar",
        "TLV": "Asia/Jerusalem",
        "CAI": "Africa/Cairo",
        "JNB": "Africa/Johannesburg",
        "NBO": "Africa/Nairobi",
        # Asia / Pacific
        "DEL": "Asia/Kolkata",
        "BOM": "Asia/Kolkata",
        "SIN": "Asia/Singapore",
        "KUL": "Asia/Kuala_Lumpur",
        "BKK": "Asia/Bangkok",
        "DPS": "Asia/Makassar",
        "CGK": "Asia/Jakarta",
        "MNL": "Asia/Manila",
        "HKG": "Asia/Hong_Kong",
        "PEK": "Asia/Shanghai",
        "PVG": "Asia/Shanghai",
        "TPE": "Asia/Taipei",
        "ICN": "Asia/Seoul",
        "NRT": "Asia/Tokyo",
        "HND": "Asia/Tokyo",
        "KIX": "Asia/Tokyo",
        "SYD": "Australia/Sydney",
        "MEL": "Australia/Melbourne",
        "BNE": "Australia/Brisbane",
        "PER": "Australia/Perth",
        "AKL": "Pacific/Auckland",
    }
)

_AIRPORT_CODE_RE = re.compile(r"\b([A-Z]{3})\b")


def extract_airport_code(text: str | None) -> str | None:
    """Pull a three-letter code out of text like ``"JFK - John F. Kennedy"``."""
    if not text:
        return None
    match = _AIRPORT_CODE_RE.search(text)
    return match.group(1) if match else None
