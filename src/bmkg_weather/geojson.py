import json
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from bmkg_weather.models import NOT_AVAILABLE
from bmkg_weather.observation import build_weather_data, parse_float, parse_int
from bmkg_weather.weather_codes import get_weather_description

logger = logging.getLogger("bmkg_weather.geojson")

Feature = Dict[str, Any]
FeatureCollection = Dict[str, Any]


def _first_present(station: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = station.get(key)
        if value not in (None, ""):
            return value
    return None


def _point(lon: float, lat: float) -> Dict[str, Any]:
    # GeoJSON uses [longitude, latitude]
    return {"type": "Point", "coordinates": [lon, lat]}


def aws_to_geojson_feature(station: Mapping[str, Any]) -> Optional[Feature]:
    """Convert a single AWS Center station record to a GeoJSON point feature.

    Returns None when the record has no usable coordinates.
    """
    lat = parse_float(_first_present(station, "lat", "latt"))
    lng = parse_float(station.get("lng"))

    if lat is None or lng is None or not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        logger.debug(f"Dropping station {station.get('id_station')} with invalid coordinates")
        return None

    station_type = str(_first_present(station, "type", "tipe_station") or "unknown").lower()
    station_name = _first_present(station, "name_station", "nama_stasiun") or NOT_AVAILABLE
    status_icon = _first_present(station, "icon", "status_symbol") or ""

    weather = build_weather_data(station, station_type)

    properties = {
        "id": station.get("id_station"),
        "name": station_name,
        "city": station.get("nama_kota"),
        "type": station_type,
        "province": station.get("nama_provinsi"),
        "provinceCode": station.get("kode_provinsi"),
        "classification": station.get("klasifikasi"),
        "status": {
            "daysDiff": parse_int(station.get("diff_day")),
            "hoursDiff": parse_int(station.get("diff_hour")),
            "minutesDiff": parse_int(station.get("diff_minute")),
            "lastUpdate": station.get("tanggal") or "",
            "icon": status_icon,
        },
        "weather": weather.model_dump(by_alias=True),
        "loggerTemp": parse_float(station.get("logger_temp")),
    }
    if station.get("distance") is not None:
        properties["distance"] = station["distance"]

    return {"type": "Feature", "geometry": _point(lng, lat), "properties": properties}


def aws_to_geojson(stations: Sequence[Mapping[str, Any]], include_metadata: bool = True) -> FeatureCollection:
    """Convert AWS Center station records to a FeatureCollection"""
    features = [f for f in (aws_to_geojson_feature(s) for s in stations) if f is not None]

    collection: FeatureCollection = {"type": "FeatureCollection", "features": features}
    if include_metadata:
        # Type counts describe the input, including dropped records
        type_counts = Counter(s.get("type") or "unknown" for s in stations)
        collection["metadata"] = {
            "count": len(features),
            "generated": datetime.now(timezone.utc).isoformat(),
            "types": dict(type_counts),
        }
    return collection


def aws_to_geojson_string(
    stations: Sequence[Mapping[str, Any]], pretty: bool = False, include_metadata: bool = True
) -> str:
    geojson = aws_to_geojson(stations, include_metadata)
    return json.dumps(geojson, indent=2 if pretty else None)


# Public weather (signature.bmkg.go.id pwxDarat rows)


def parse_weather_data(weather: Optional[Sequence[Any]]) -> Optional[Dict[str, Any]]:
    """Convert [humidity, temperature, weatherCode, windDirection, windSpeed] to a mapping"""
    if not weather or len(weather) < 5:
        return None

    humidity, temperature, weather_code, wind_direction, wind_speed = (
        str(v) if v is not None else "" for v in weather[:5]
    )
    code = parse_float(weather_code)
    return {
        "humidity": humidity,
        "temperature": temperature,
        "weatherCode": weather_code,
        "weatherDescription": get_weather_description(int(code)) if code is not None else None,
        "windDirection": wind_direction,
        "windSpeed": wind_speed,
    }


def public_to_geojson_feature(location: Optional[Sequence[Any]]) -> Optional[Feature]:
    """Convert one public weather row to a GeoJSON feature.

    Row layout: [province, kabupaten, kecamatan, lat, lon, id, timestamp, weather, type]
    """
    if not location:
        return None

    row = list(location[:9]) + [None] * (9 - len(location[:9]))
    province, kabupaten, kecamatan, lat, lon, location_id, timestamp, weather, location_type = row
    lat, lon = parse_float(lat), parse_float(lon)
    if lat is None or lon is None:
        return None

    return {
        "type": "Feature",
        "geometry": _point(lon, lat),
        "properties": {
            "id": location_id,
            "province": province or "",
            "kabupaten": kabupaten or "",
            "kecamatan": kecamatan or "",
            "timestamp": timestamp,
            "type": location_type or "",
            "weather": parse_weather_data(weather),
        },
    }


def public_to_geojson(locations: Iterable[Sequence[Any]]) -> FeatureCollection:
    features = [f for f in (public_to_geojson_feature(row) for row in locations) if f is not None]
    return {"type": "FeatureCollection", "features": features}


def _lower_list(value: Union[None, str, Sequence[str]]) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    return [v.lower() for v in value]


def filter_public_geojson(
    geojson: FeatureCollection,
    province: Optional[str] = None,
    kabupaten: Optional[str] = None,
    kecamatan: Optional[str] = None,
    type: Optional[str] = None,
    exclude_province: Union[None, str, Sequence[str]] = None,
    exclude_kabupaten: Union[None, str, Sequence[str]] = None,
    exclude_kecamatan: Union[None, str, Sequence[str]] = None,
    exclude_type: Union[None, str, Sequence[str]] = None,
) -> FeatureCollection:
    """Filter a public weather FeatureCollection by administrative area and type.

    Province and type match exactly, kabupaten and kecamatan by substring; all
    case-insensitive. A feature matching any exclude list is always dropped.
    """
    excluded_provinces = _lower_list(exclude_province)
    excluded_kabupaten = _lower_list(exclude_kabupaten)
    excluded_kecamatan = _lower_list(exclude_kecamatan)
    excluded_types = _lower_list(exclude_type)

    def keep(feature: Feature) -> bool:
        props = feature["properties"]
        feature_province = str(props.get("province", "")).lower()
        feature_kabupaten = str(props.get("kabupaten", "")).lower()
        feature_kecamatan = str(props.get("kecamatan", "")).lower()
        feature_type = str(props.get("type", "")).lower()

        if feature_province in excluded_provinces or feature_type in excluded_types:
            return False
        if any(excl in feature_kabupaten for excl in excluded_kabupaten):
            return False
        if any(excl in feature_kecamatan for excl in excluded_kecamatan):
            return False

        if province and feature_province != province.lower():
            return False
        if kabupaten and kabupaten.lower() not in feature_kabupaten:
            return False
        if kecamatan and kecamatan.lower() not in feature_kecamatan:
            return False
        if type and feature_type != type.lower():
            return False
        return True

    return {"type": "FeatureCollection", "features": [f for f in geojson["features"] if keep(f)]}


def filter_by_bounding_box(
    geojson: FeatureCollection, min_lon: float, min_lat: float, max_lon: float, max_lat: float
) -> FeatureCollection:
    """Keep features whose point lies inside the box (edges included)"""
    features = []
    for feature in geojson["features"]:
        lon, lat = feature["geometry"]["coordinates"]
        if min_lon <= lon <= max_lon and min_lat <= lat <= max_lat:
            features.append(feature)
    return {"type": "FeatureCollection", "features": features}
