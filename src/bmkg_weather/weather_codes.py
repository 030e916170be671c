"""BMKG weather and wind direction codes."""

from typing import Dict, List, Literal, Optional, Tuple

Lang = Literal["id", "en"]

WEATHER_CODES: Dict[int, Dict[str, str]] = {
    0: {"id": "Cerah", "en": "Clear Skies"},
    1: {"id": "Cerah Berawan", "en": "Partly Cloudy"},
    2: {"id": "Cerah Berawan", "en": "Partly Cloudy"},
    3: {"id": "Berawan", "en": "Mostly Cloudy"},
    4: {"id": "Berawan Tebal", "en": "Overcast"},
    5: {"id": "Udara Kabur", "en": "Haze"},
    10: {"id": "Asap", "en": "Smoke"},
    45: {"id": "Kabut", "en": "Fog"},
    60: {"id": "Hujan Ringan", "en": "Light Rain"},
    61: {"id": "Hujan Sedang", "en": "Rain"},
    63: {"id": "Hujan Lebat", "en": "Heavy Rain"},
    80: {"id": "Hujan Lokal", "en": "Isolated Shower"},
    95: {"id": "Hujan Petir", "en": "Severe Thunderstorm"},
    97: {"id": "Hujan Petir", "en": "Severe Thunderstorm"},
    # Alternative codes (100+)
    100: {"id": "Cerah", "en": "Clear Skies"},
    101: {"id": "Cerah Berawan", "en": "Partly Cloudy"},
    102: {"id": "Cerah Berawan", "en": "Partly Cloudy"},
    103: {"id": "Berawan", "en": "Mostly Cloudy"},
    104: {"id": "Berawan Tebal", "en": "Overcast"},
}

# Sectors are [start, end) in degrees; N wraps around 0
WIND_DIRECTION_CODES: Dict[str, Tuple[str, str, Optional[Tuple[float, float]]]] = {
    "N": ("North", "Utara", (348.75, 11.25)),
    "NNE": ("North-Northeast", "Utara-Timur Laut", (11.25, 33.75)),
    "NE": ("Northeast", "Timur Laut", (33.75, 56.25)),
    "ENE": ("East-Northeast", "Timur-Timur Laut", (56.25, 78.75)),
    "E": ("East", "Timur", (78.75, 101.25)),
    "ESE": ("East-Southeast", "Timur-Tenggara", (101.25, 123.75)),
    "SE": ("Southeast", "Tenggara", (123.75, 146.25)),
    "SSE": ("South-Southeast", "Selatan-Tenggara", (146.25, 168.75)),
    "S": ("South", "Selatan", (168.75, 191.25)),
    "SSW": ("South-Southwest", "Selatan-Barat Daya", (191.25, 213.75)),
    "SW": ("Southwest", "Barat Daya", (213.75, 236.25)),
    "WSW": ("West-Southwest", "Barat-Barat Daya", (236.25, 258.75)),
    "W": ("West", "Barat", (258.75, 281.25)),
    "WNW": ("West-Northwest", "Barat-Barat Laut", (281.25, 303.75)),
    "NW": ("Northwest", "Barat Laut", (303.75, 326.25)),
    "NNW": ("North-Northwest", "Utara-Barat Laut", (326.25, 348.75)),
    "VARIABLE": ("Variable", "Berubah-ubah", None),
}

RAIN_CODES = frozenset({60, 61, 63, 80, 95, 97})
CLEAR_CODES = frozenset({0, 1, 100, 101})
CLOUDY_CODES = frozenset({2, 3, 4, 102, 103, 104})
POOR_VISIBILITY_CODES = frozenset({5, 10, 45})


def get_weather_description(code: int, lang: Lang = "id") -> Optional[str]:
    weather = WEATHER_CODES.get(code)
    return weather[lang] if weather else None


def get_wind_direction_description(code: str, lang: Lang = "id") -> Optional[str]:
    wind = WIND_DIRECTION_CODES.get(code.upper())
    if not wind:
        return None
    return wind[0] if lang == "en" else wind[1]


def degrees_to_wind_direction(degrees: float) -> str:
    """Map a bearing in degrees to its 16-point compass code"""
    normalized = degrees % 360

    for code, (_, _, sector) in WIND_DIRECTION_CODES.items():
        if sector is None:
            continue
        start, end = sector
        if code == "N":
            if normalized >= start or normalized < end:
                return code
        elif start <= normalized < end:
            return code

    return "N"


def is_rainy(code: int) -> bool:
    return code in RAIN_CODES


def is_clear(code: int) -> bool:
    return code in CLEAR_CODES


def is_cloudy(code: int) -> bool:
    return code in CLOUDY_CODES


def is_poor_visibility(code: int) -> bool:
    return code in POOR_VISIBILITY_CODES


def get_all_weather_codes() -> List[Dict[str, object]]:
    return [{"code": code, **desc} for code, desc in WEATHER_CODES.items()]


def get_all_wind_direction_codes() -> List[Dict[str, str]]:
    return [{"code": code, "id": name_id, "en": name_en} for code, (name_en, name_id, _) in WIND_DIRECTION_CODES.items()]
