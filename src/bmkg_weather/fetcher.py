import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from bmkg_weather.geojson import FeatureCollection, aws_to_geojson
from bmkg_weather.models import NOT_AVAILABLE, StationDirectoryEntry, StationFetchResult, StationType, TypeFilter
from bmkg_weather.observation import build_weather_data
from bmkg_weather.session import BMKGAuth
from bmkg_weather.station import MatchMode, NameArg, StationDirectory, TypeArg

logger = logging.getLogger("bmkg_weather.fetcher")

DEFAULT_STATION_TYPE = StationType.AWS.value

StationRef = Union[str, StationDirectoryEntry]


class AWSDataFetcher:
    """Fetches live AWS Center readings for directory stations, one station at a time"""

    def __init__(self, auth: BMKGAuth, directory: StationDirectory):
        self.auth = auth
        self.directory = directory

    def station_url(self, station_id: str, station_type: str) -> str:
        return f"{self.auth.base_url}/monitoring/{station_type}/{station_id}/json"

    def _location_info(self, station_id: str, station_type: str) -> Dict[str, Any]:
        entry = self.directory.get(station_id)
        if entry is None:
            logger.debug(f"Station {station_id} not in directory, metadata unavailable")
            return {
                "station_name": NOT_AVAILABLE,
                "city": NOT_AVAILABLE,
                "province": NOT_AVAILABLE,
                "province_code": NOT_AVAILABLE,
                "lat": NOT_AVAILABLE,
                "lng": NOT_AVAILABLE,
                "type": station_type,
            }
        return {
            "station_name": entry.name,
            "city": entry.city,
            "province": entry.province,
            "province_code": entry.province_code,
            "lat": entry.lat,
            "lng": entry.lon,
            "type": entry.station_type.value,
        }

    async def fetch_station_data(
        self,
        station_id: str,
        station_type: Optional[str] = None,
        include_location_info: bool = True,
    ) -> StationFetchResult:
        """Fetch one station's live reading; failures are returned, not raised"""
        actual_type = station_type
        if not actual_type:
            entry = self.directory.get(station_id)
            actual_type = entry.station_type.value if entry else DEFAULT_STATION_TYPE
        actual_type = str(getattr(actual_type, "value", actual_type)).lower()

        info = self._location_info(station_id, actual_type) if include_location_info else {}

        try:
            response = await self.auth.fetch_with_retry(self.station_url(station_id, actual_type))

            if not response.is_success:
                logger.warning(f"Station {station_id}: HTTP {response.status_code}")
                return StationFetchResult(
                    success=False,
                    station_id=station_id,
                    error=f"HTTP {response.status_code}: {response.reason_phrase}",
                    **info,
                )

            data = response.json()
            weather = build_weather_data(data, actual_type) if isinstance(data, Mapping) else None
        except Exception as e:
            logger.error(f"Station {station_id}: {e}")
            return StationFetchResult(success=False, station_id=station_id, error=str(e) or type(e).__name__, **info)

        return StationFetchResult(success=True, station_id=station_id, data=data, weather=weather, **info)

    async def fetch_multiple_stations(
        self,
        stations: Iterable[StationRef],
        default_type: Optional[str] = None,
        include_location_info: bool = True,
    ) -> List[StationFetchResult]:
        """Fetch stations sequentially, keeping input order and isolating failures"""
        results = []
        for station in stations:
            if isinstance(station, StationDirectoryEntry):
                station_id, station_type, distance = station.station_id, station.station_type.value, station.distance
            else:
                station_id, station_type, distance = station, default_type, None

            try:
                result = await self.fetch_station_data(station_id, station_type, include_location_info)
            except Exception as e:
                logger.exception(f"Unexpected failure fetching station {station_id}")
                result = StationFetchResult(success=False, station_id=station_id, error=str(e))

            if distance is not None:
                result = result.model_copy(update={"distance": distance})
            results.append(result)

        successful = sum(1 for r in results if r.success)
        logger.info(f"Fetched {len(results)} stations: {successful} successful, {len(results) - successful} failed")
        return results

    async def fetch_data_by_province(
        self,
        province_codes: Sequence[str],
        station_type: TypeArg = None,
        city: NameArg = None,
        exclude_city: NameArg = None,
    ) -> List[StationFetchResult]:
        stations = self.directory.by_province(province_codes, station_type, city, exclude_city)
        for code in province_codes:
            in_province = [s for s in stations if s.province_code == code]
            name = in_province[0].province if in_province else code
            logger.info(f"  - {name} ({code}): {len(in_province)} stations")
        if city:
            logger.info(f"  Filtered by city: {city}")
        if exclude_city:
            logger.info(f"  Excluded cities: {exclude_city}")

        logger.info("Fetching data...")
        return await self.fetch_multiple_stations(stations)

    async def fetch_data_by_radius(
        self,
        lat: float,
        lon: float,
        radius_km: float,
        station_type: TypeArg = None,
    ) -> List[StationFetchResult]:
        stations = self.directory.by_radius(lat, lon, radius_km, station_type)
        logger.info("Fetching data...")
        return await self.fetch_multiple_stations(stations)

    async def fetch_data_by_city(
        self,
        city_names: NameArg,
        station_type: TypeArg = None,
        match: MatchMode = "partial",
        exclude_city: NameArg = None,
    ) -> List[StationFetchResult]:
        stations = self.directory.by_city(city_names, station_type, match, exclude_city)
        for s in stations:
            logger.debug(f"  - {s.name} ({s.station_id}) - {s.city}")
        logger.info("Fetching data...")
        return await self.fetch_multiple_stations(stations)

    async def fetch_data_by_ids(self, station_ids: Sequence[str], station_type: TypeArg = None) -> List[StationFetchResult]:
        """Fetch explicit station ids; a type filter drops known stations of other types"""
        type_filter = TypeFilter.build(station_type)
        selected = []
        for station_id in station_ids:
            entry = self.directory.get(station_id)
            if entry is None or type_filter.matches(entry.station_type):
                selected.append(station_id)

        logger.info(f"Fetching {len(selected)} stations by id...")
        return await self.fetch_multiple_stations(selected)


def results_to_geojson(results: Iterable[StationFetchResult], include_metadata: bool = True) -> FeatureCollection:
    """Merge successful readings with their directory metadata and build a FeatureCollection"""
    records = []
    for result in results:
        if not result.success or not isinstance(result.data, Mapping):
            continue
        record = dict(result.data)
        record.update(
            {
                "id_station": result.station_id,
                "name_station": result.station_name or record.get("name_station"),
                "nama_kota": result.city,
                "nama_provinsi": result.province,
                "kode_provinsi": result.province_code,
                "lat": result.lat if result.lat != NOT_AVAILABLE else record.get("lat"),
                "lng": result.lng if result.lng != NOT_AVAILABLE else record.get("lng"),
                "type": result.type,
            }
        )
        if result.distance is not None:
            record["distance"] = result.distance
        records.append(record)
    return aws_to_geojson(records, include_metadata)
