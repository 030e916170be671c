"""Normalize raw AWS Center readings into typed observations.

Every field is looked up through an ordered tuple of candidate keys; the first
key holding a parsable number wins. Missing, empty and non-numeric values
become ``None``, never zero and never NaN.
"""

import math
import re
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from pydantic import BaseModel

from bmkg_weather.models import (
    ARGWeather,
    ASRSWeather,
    AWSWeather,
    IklimmikroLevel,
    IklimmikroWeather,
    SoilMoisture,
    SoilTemperature,
    SoilWeather,
    StationType,
    WeatherObservation,
)

# Leading numeric prefix, the way the portal's own frontend reads values
_NUMBER_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

FieldMap = Dict[str, Tuple[str, ...]]

BATTERY_FIELDS: FieldMap = {"battery": ("batt_volt",)}

ARG_FIELDS: FieldMap = {
    **BATTERY_FIELDS,
    "rainfall": ("rr",),
}

AWS_FIELDS: FieldMap = {
    **BATTERY_FIELDS,
    "temperature": ("tt_air_avg", "t"),
    "temperature_max": ("tt_air_max", "tx"),
    "temperature_min": ("tt_air_min", "tn"),
    "humidity": ("rh_avg", "rh"),
    "rainfall": ("rr",),
    "pressure": ("pp_air",),
    "solar_radiation": ("sr_avg",),
    "solar_radiation_max": ("sr_max",),
    "wind_speed": ("ws_avg",),
    "wind_speed_max": ("ws_max", "ff_x"),
    "wind_direction": ("wd_avg",),
    "water_level": ("wl",),
    "par": ("par",),
    "wind_speed_2m": ("ws_2m",),
}

ASRS_FIELDS: FieldMap = {
    **BATTERY_FIELDS,
    "diffuse_radiation": ("diffuse_rad_round",),
    "global_radiation": ("global_rad_round",),
    "direct_normal_irradiance": ("dni_rad_round",),
    "reflected_radiation": ("reflected_rad_round",),
    "net_radiation": ("nett_rad_round",),
    "sunshine_minutes": ("sunshine_minutes",),
}

SOIL_DEPTHS = (10, 20, 30, 40, 60, 100)

# Older loggers report sm10 instead of sm_10
SOIL_MOISTURE_FIELDS: FieldMap = {f"sm{depth}": (f"sm_{depth}", f"sm{depth}") for depth in SOIL_DEPTHS}
SOIL_TEMPERATURE_FIELDS: FieldMap = {f"ts{depth}": (f"ts{depth}",) for depth in SOIL_DEPTHS}


def iklimmikro_level_fields(level: str) -> FieldMap:
    return {
        "temperature": (f"tt_{level}",),
        "temperature_min": (f"tt_min_{level}",),
        "temperature_avg": (f"tt_avg_{level}",),
        "temperature_max": (f"tt_max_{level}",),
        "humidity": (f"rh_{level}",),
        "humidity_min": (f"rh_min_{level}",),
        "humidity_avg": (f"rh_avg_{level}",),
        "humidity_max": (f"rh_max_{level}",),
        "wind_speed": (f"ws_{level}",),
        "wind_speed_min": (f"ws_min_{level}",),
        "wind_speed_avg": (f"ws_avg_{level}",),
        "wind_speed_max": (f"ws_max_{level}",),
        "wind_direction": (f"wd_{level}", f"wd_avg_{level}"),
    }


def parse_float(value: Any) -> Optional[float]:
    """Parse a reading into a finite float, or None when there is no usable number"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        match = _NUMBER_RE.match(value)
        if not match:
            return None
        number = float(match.group(0))
    else:
        return None
    return number if math.isfinite(number) else None


def parse_int(value: Any, default: int = 0) -> int:
    number = parse_float(value)
    return int(number) if number is not None else default


def first_float(raw: Mapping[str, Any], keys: Tuple[str, ...]) -> Optional[float]:
    for key in keys:
        number = parse_float(raw.get(key))
        if number is not None:
            return number
    return None


def extract(raw: Mapping[str, Any], fields: FieldMap, model: Type[BaseModel]) -> Any:
    return model(**{name: first_float(raw, keys) for name, keys in fields.items()})


def build_iklimmikro_level(raw: Mapping[str, Any], level: str) -> IklimmikroLevel:
    return extract(raw, iklimmikro_level_fields(level), IklimmikroLevel)


def build_weather_data(raw: Mapping[str, Any], station_type: str) -> WeatherObservation:
    """Build the observation model matching the station type"""
    station_type = (station_type or "").lower()

    if station_type == StationType.ARG.value:
        return extract(raw, ARG_FIELDS, ARGWeather)

    if station_type == StationType.SOIL.value:
        return SoilWeather(
            battery=first_float(raw, BATTERY_FIELDS["battery"]),
            swc=first_float(raw, ("swc",)),
            soil_moisture=extract(raw, SOIL_MOISTURE_FIELDS, SoilMoisture),
            soil_temperature=extract(raw, SOIL_TEMPERATURE_FIELDS, SoilTemperature),
        )

    if station_type == StationType.IKLIMMIKRO.value:
        return IklimmikroWeather(
            battery=first_float(raw, BATTERY_FIELDS["battery"]),
            level_4m=build_iklimmikro_level(raw, "4m"),
            level_7m=build_iklimmikro_level(raw, "7m"),
            level_10m=build_iklimmikro_level(raw, "10m"),
        )

    if station_type == StationType.ASRS.value:
        return extract(raw, ASRS_FIELDS, ASRSWeather)

    # aws, aaws and anything unrecognized
    return extract(raw, AWS_FIELDS, AWSWeather)
