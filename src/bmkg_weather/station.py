import json
import logging
import unicodedata
from math import atan2, cos, radians, sin, sqrt
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Union

from pydantic import ValidationError

from bmkg_weather.models import StationDirectoryEntry, StationType, TypeFilter

# Get logger for this module
logger = logging.getLogger("bmkg_weather.station")

MatchMode = Literal["partial", "exact", "startsWith"]
TypeArg = Union[None, str, StationType, Sequence[Union[str, StationType]]]
NameArg = Union[None, str, Sequence[str]]

# Earth's radius in kilometers
EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers using the Haversine formula"""
    lat1, lon1, lat2, lon2 = radians(lat1), radians(lon1), radians(lat2), radians(lon2)

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def normalize_name(value: str) -> str:
    """Lower-case, strip diacritics and treat underscores as spaces"""
    decomposed = unicodedata.normalize("NFKD", value.replace("_", " "))
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.strip().lower()


def _name_list(value: NameArg) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    return [normalize_name(v) for v in value if v and v.strip()]


class StationDirectory:
    """Read-only directory of AWS Center stations, indexed by station id"""

    def __init__(self, entries: Iterable[StationDirectoryEntry]):
        self._stations: Dict[str, StationDirectoryEntry] = {}
        for entry in entries:
            if entry.station_id in self._stations:
                logger.warning(f"Duplicate station id {entry.station_id} in directory, keeping the first entry")
                continue
            self._stations[entry.station_id] = entry
        logger.info(f"Station directory ready with {len(self._stations)} stations")

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "StationDirectory":
        entries = []
        for record in records:
            try:
                entries.append(StationDirectoryEntry.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping invalid station record {record.get('id_station', '?')}: {e}")
        return cls(entries)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "StationDirectory":
        path = Path(path)
        logger.info(f"Loading station directory from {path}")
        records = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(records, list):
            raise ValueError(f"Station directory {path} must hold a JSON array")
        return cls.from_records(records)

    @property
    def stations(self) -> Dict[str, StationDirectoryEntry]:
        return self._stations

    def __len__(self) -> int:
        return len(self._stations)

    def __iter__(self):
        return iter(self._stations.values())

    def get(self, station_id: str) -> Optional[StationDirectoryEntry]:
        return self._stations.get(station_id)

    def by_province(
        self,
        province_codes: Iterable[str],
        station_type: TypeArg = None,
        city: NameArg = None,
        exclude_city: NameArg = None,
    ) -> List[StationDirectoryEntry]:
        """Stations in the given provinces, optionally narrowed by city name"""
        codes = set(province_codes)
        type_filter = TypeFilter.build(station_type)
        cities = _name_list(city)
        excluded = _name_list(exclude_city)

        matches = []
        for entry in self._stations.values():
            if entry.province_code not in codes:
                continue

            location_city = normalize_name(entry.city)
            if any(term in location_city for term in excluded):
                continue
            if cities and not any(term in location_city for term in cities):
                continue

            if type_filter.matches(entry.station_type):
                matches.append(entry)

        logger.info(f"Found {len(matches)} {type_filter.label()} stations in provinces {sorted(codes)}")
        return matches

    def by_city(
        self,
        city_names: NameArg,
        station_type: TypeArg = None,
        match: MatchMode = "partial",
        exclude_city: NameArg = None,
    ) -> List[StationDirectoryEntry]:
        """Stations whose city matches any of the given names"""
        if match not in ("partial", "exact", "startsWith"):
            raise ValueError(f"Unsupported match mode: {match}")

        terms = _name_list(city_names)
        type_filter = TypeFilter.build(station_type)
        excluded = _name_list(exclude_city)

        matches = []
        for entry in self._stations.values():
            location_city = normalize_name(entry.city)

            # Exclusion wins over any match
            if any(term in location_city for term in excluded):
                continue

            if match == "exact":
                matched = any(location_city == term for term in terms)
            elif match == "startsWith":
                matched = any(location_city.startswith(term) for term in terms)
            else:
                matched = any(term in location_city for term in terms)

            if matched and type_filter.matches(entry.station_type):
                matches.append(entry)

        logger.info(f"Found {len(matches)} {type_filter.label()} stations in cities {terms}")
        return matches

    def by_radius(
        self,
        lat: float,
        lon: float,
        radius_km: float,
        station_type: TypeArg = None,
    ) -> List[StationDirectoryEntry]:
        """Stations within radius_km of a point, nearest first, with distance attached"""
        if radius_km <= 0:
            raise ValueError(f"Radius must be positive, got {radius_km}")

        type_filter = TypeFilter.build(station_type)

        matches = []
        for entry in self._stations.values():
            coords = entry.coordinates
            if coords is None:
                logger.debug(f"Station {entry.station_id} has unusable coordinates ({entry.lat}, {entry.lon})")
                continue
            if not type_filter.matches(entry.station_type):
                continue

            distance = haversine_distance(lat, lon, coords.latitude, coords.longitude)
            if distance <= radius_km:
                matches.append(entry.model_copy(update={"distance": distance}))

        matches.sort(key=lambda e: e.distance)

        logger.info(f"Found {len(matches)} {type_filter.label()} stations within {radius_km}km from ({lat}, {lon})")
        for entry in matches[:10]:
            logger.debug(f"  - {entry.name} ({entry.station_id}) - {entry.city} - {entry.distance:.2f}km")
        return matches

    def find_nearest(self, lat: float, lon: float, station_type: TypeArg = None) -> StationDirectoryEntry:
        """Find the nearest station to given coordinates"""
        type_filter = TypeFilter.build(station_type)
        candidates = [
            entry
            for entry in self._stations.values()
            if entry.coordinates is not None and type_filter.matches(entry.station_type)
        ]
        if not candidates:
            raise ValueError("No stations available for the requested type")

        def calculate_distance(entry: StationDirectoryEntry) -> float:
            coords = entry.coordinates
            return haversine_distance(lat, lon, coords.latitude, coords.longitude)

        nearest = min(candidates, key=calculate_distance)
        logger.info(f"Found nearest station: {nearest.name} ({nearest.station_id})")
        return nearest.model_copy(update={"distance": calculate_distance(nearest)})
