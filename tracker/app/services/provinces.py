"""
Static list of province codes protocols can be issued for.
"""

from typing import Dict, List, Optional

PROVINCES: List[Dict[str, str]] = [
    {"code": "ACE", "name": "Aceh"},
    {"code": "SUT", "name": "Sumatera Utara"},
    {"code": "SUB", "name": "Sumatera Barat"},
    {"code": "RIA", "name": "Riau"},
    {"code": "KEP", "name": "Kepulauan Riau"},
    {"code": "JAM", "name": "Jambi"},
    {"code": "SUS", "name": "Sumatera Selatan"},
    {"code": "BBL", "name": "Bangka Belitung"},
    {"code": "BEN", "name": "Bengkulu"},
    {"code": "LAM", "name": "Lampung"},
    {"code": "DKI", "name": "DKI Jakarta"},
    {"code": "JAB", "name": "Jawa Barat"},
    {"code": "JAT", "name": "Jawa Tengah"},
    {"code": "JAI", "name": "Jawa Timur"},
    {"code": "YOG", "name": "DI Yogyakarta"},
    {"code": "BAN", "name": "Banten"},
    {"code": "BAL", "name": "Bali"},
    {"code": "NTB", "name": "Nusa Tenggara Barat"},
    {"code": "NTT", "name": "Nusa Tenggara Timur"},
    {"code": "KAB", "name": "Kalimantan Barat"},
    {"code": "KAT", "name": "Kalimantan Tengah"},
    {"code": "KAI", "name": "Kalimantan Timur"},
    {"code": "KAS", "name": "Kalimantan Selatan"},
    {"code": "KAU", "name": "Kalimantan Utara"},
    {"code": "SLS", "name": "Sulawesi Selatan"},
    {"code": "SLT", "name": "Sulawesi Tengah"},
    {"code": "SLG", "name": "Sulawesi Tenggara"},
    {"code": "SLB", "name": "Sulawesi Barat"},
    {"code": "SLU", "name": "Sulawesi Utara"},
    {"code": "GOR", "name": "Gorontalo"},
    {"code": "MAL", "name": "Maluku"},
    {"code": "MAU", "name": "Maluku Utara"},
    {"code": "PAP", "name": "Papua"},
    {"code": "PAB", "name": "Papua Barat"},
    {"code": "PPS", "name": "Papua Selatan"},
    {"code": "PPT", "name": "Papua Tengah"},
    {"code": "PPG", "name": "Papua Pegunungan"},
]

_BY_CODE = {p["code"]: p["name"] for p in PROVINCES}


def is_valid_province(code: Optional[str]) -> bool:
    return isinstance(code, str) and code in _BY_CODE


def province_name(code: str) -> str:
    """Display name for a code; unknown codes are shown as-is."""
    return _BY_CODE.get(code, code)
