import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import uvicorn
import yaml
from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bmkg_weather import __version__
from bmkg_weather.config import config, setup_logging
from bmkg_weather.fetcher import AWSDataFetcher, results_to_geojson
from bmkg_weather.geojson import filter_public_geojson, public_to_geojson
from bmkg_weather.public import PublicWeather
from bmkg_weather.session import BMKGAuth
from bmkg_weather.station import StationDirectory

logger = logging.getLogger("bmkg_weather.api")

GEOJSON_MEDIA_TYPE = "application/geo+json"

STATION_TYPES = {
    "aws": "Automatic Weather Station - Full weather data",
    "aaws": "Advanced AWS - AWS with additional sensors",
    "arg": "Automatic Rain Gauge - Rainfall only",
    "asrs": "Automatic Solar Radiation Station - Solar radiation data",
    "soil": "Soil Moisture Station - Soil moisture & temperature",
    "iklimmikro": "Micro Climate Station - Multi-level (4m, 7m, 10m) measurements",
}

AWS_EXAMPLES = {
    "byProvince": "/aws?province=PR013",
    "byProvinceMultiple": "/aws?province=PR013,PR015",
    "byProvinceAwsOnly": "/aws?province=PR013&type=aws",
    "byProvinceGeoJSON": "/aws?province=PR013&format=geojson",
    "byRadius": "/aws?lat=-7.5&lon=110.5&radius=50",
    "byCity": "/aws?city=cilacap",
    "byCityExclude": "/aws?city=banjar&exclude=banjarnegara",
    "byStations": "/aws?stations=STA1101,STA1102",
}

PUBLIC_EXAMPLES = {
    "nowcasting": "/public/nowcasting?code=CJH",
    "nowcastingXML": "/public/nowcasting?type=xml&province=jawa_tengah",
    "weather": "/public/weather",
    "weatherFiltered": "/public/weather?province=jawa_tengah&kabupaten=banyumas",
    "locationByCode": "/public/location?code=33.01.22.1003",
    "locationByCoords": "/public/location?lat=-7.656747&lon=109.115523",
}


class APIError(Exception):
    """Error rendered as the {success: false, error} envelope"""

    def __init__(self, status_code: int, error: str, **extra: Any):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.extra = extra


def error_response(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"success": False, "error": error, **extra}, status_code=status_code)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The directory is read once and shared read-only by every request
    app.state.directory = StationDirectory.from_file(config.stations_file)
    yield


app = FastAPI(
    title="BMKG Weather API",
    description="Weather observations from BMKG AWS Center and public BMKG portals as JSON and GeoJSON",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return error_response(exc.status_code, exc.error, **exc.extra)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(400, "Invalid request parameters", details=jsonable_encoder(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}")
    return error_response(500, str(exc) or type(exc).__name__)


# Dependencies


def get_directory(request: Request) -> StationDirectory:
    return request.app.state.directory


def get_auth() -> BMKGAuth:
    # One authenticator, and so one cookie session, per request
    return BMKGAuth()


def get_public_weather() -> PublicWeather:
    return PublicWeather()


# Parameter helpers


def split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def underscores_to_spaces(value: Optional[str]) -> Optional[str]:
    return value.replace("_", " ") if value else None


def parse_number(name: str, value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        number = math.nan
    if not math.isfinite(number):
        raise APIError(400, f"Invalid {name} parameter: must be a valid number", example=AWS_EXAMPLES["byRadius"])
    return number


@app.get("/")
async def index() -> Dict[str, Any]:
    return {
        "success": True,
        "message": "BMKG Weather API",
        "version": __version__,
        "documentation": {"docs": "/docs", "openapi": "/openapi.yaml"},
        "endpoints": {
            "aws": "/aws - Automatic Weather Station data (AWS, AAWS, ARG, ASRS, Soil, Iklimmikro)",
            "public": "/public - Public weather data (Nowcasting, Weather forecast)",
        },
        "examples": {"aws": AWS_EXAMPLES, "public": PUBLIC_EXAMPLES},
        "stationTypes": STATION_TYPES,
    }


@app.get("/openapi.yaml", include_in_schema=False)
async def openapi_yaml() -> PlainTextResponse:
    return PlainTextResponse(yaml.safe_dump(app.openapi(), sort_keys=False), media_type="text/yaml; charset=utf-8")


@app.get("/aws")
async def aws(
    province: Optional[str] = None,
    city: Optional[str] = None,
    stations: Optional[str] = None,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    radius: Optional[str] = None,
    station_type: Optional[str] = Query(default=None, alias="type"),
    match: Optional[str] = None,
    exclude: Optional[str] = None,
    output_format: str = Query(default="json", alias="format"),
    directory: StationDirectory = Depends(get_directory),
    auth: BMKGAuth = Depends(get_auth),
):
    """Live readings for AWS Center stations selected by province, city, ids or radius"""
    radius_params = {"lat": lat, "lon": lon, "radius": radius}
    province_codes, city_names, station_ids = split_list(province), split_list(city), split_list(stations)
    selectors = [
        name
        for name, values in (("province", province_codes), ("city", city_names), ("stations", station_ids))
        if values
    ]
    if any(v is not None for v in radius_params.values()):
        selectors.append("lat/lon/radius")

    if not selectors:
        raise APIError(
            400,
            "Missing required parameter. Provide one of: province, city, stations, or lat+lon+radius",
            examples=AWS_EXAMPLES,
        )
    if len(selectors) > 1:
        raise APIError(
            400,
            f"Conflicting parameters: {', '.join(selectors)}. Provide only one of province, city, stations, "
            "or lat+lon+radius",
            examples=AWS_EXAMPLES,
        )

    types = split_list(station_type) or None

    if selectors[0] == "lat/lon/radius":
        missing = [name for name, value in radius_params.items() if not value]
        if missing:
            raise APIError(
                400,
                f"Radius search requires lat, lon and radius (missing: {', '.join(missing)})",
                example=AWS_EXAMPLES["byRadius"],
            )
        lat_value = parse_number("lat", lat)
        lon_value = parse_number("lon", lon)
        radius_value = parse_number("radius", radius)
        if not -90 <= lat_value <= 90:
            raise APIError(400, "Invalid lat parameter: must be between -90 and 90", example=AWS_EXAMPLES["byRadius"])
        if not -180 <= lon_value <= 180:
            raise APIError(
                400, "Invalid lon parameter: must be between -180 and 180", example=AWS_EXAMPLES["byRadius"]
            )
        if radius_value <= 0:
            raise APIError(400, "Invalid radius parameter: must be greater than 0", example=AWS_EXAMPLES["byRadius"])

    fetcher = AWSDataFetcher(auth, directory)
    if not await auth.authenticate():
        logger.warning("AWS Center login failed, station fetches will report the failure")

    if province_codes:
        results = await fetcher.fetch_data_by_province(province_codes, types)
    elif city_names:
        match_mode = match if match in ("exact", "startsWith") else "partial"
        results = await fetcher.fetch_data_by_city(city_names, types, match_mode, split_list(exclude) or None)
    elif station_ids:
        results = await fetcher.fetch_data_by_ids(station_ids, types)
    else:
        results = await fetcher.fetch_data_by_radius(lat_value, lon_value, radius_value, types)

    successful = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    summary = {"total": len(results), "successful": len(successful), "failed": len(failed)}

    if output_format == "geojson":
        collection = results_to_geojson(results)
        collection["metadata"].update({"success": True, "summary": summary})
        return JSONResponse(collection, media_type=GEOJSON_MEDIA_TYPE)

    return {
        "success": True,
        "summary": summary,
        "stations": [r.to_dict() for r in successful],
        "failed": [r.to_dict() for r in failed],
    }


@app.get("/public")
async def public_index() -> Dict[str, Any]:
    return {
        "success": True,
        "message": "BMKG Public Weather API",
        "version": __version__,
        "endpoints": {
            "nowcasting": "/public/nowcasting - Nowcasting data",
            "weather": "/public/weather - Weather forecast data (GeoJSON)",
            "location": "/public/location - Weather by location code (ADM4) or coordinates",
        },
        "examples": PUBLIC_EXAMPLES,
    }


@app.get("/public/nowcasting")
async def nowcasting(
    source_type: str = Query(default="signature", alias="type"),
    code: str = "CJH",
    province: Optional[str] = None,
    public_weather: PublicWeather = Depends(get_public_weather),
):
    province_name = underscores_to_spaces(province)

    if source_type == "signature":
        try:
            data = await public_weather.get_nowcasting(code)
        except Exception as e:
            logger.exception("Nowcasting fetch failed")
            raise APIError(500, str(e)) from e
        return {"success": True, "source": "signature.bmkg.go.id", "code": code, "data": data}

    if source_type not in ("xml", "databmkg"):
        raise APIError(
            400,
            f"Unsupported type parameter: {source_type}",
            supported=["signature", "xml", "databmkg"],
            examples={"signature": PUBLIC_EXAMPLES["nowcasting"], "xml": PUBLIC_EXAMPLES["nowcastingXML"]},
        )

    if not province_name:
        raise APIError(
            400,
            "Province parameter is required for XML/databmkg type",
            example=PUBLIC_EXAMPLES["nowcastingXML"],
        )

    try:
        latest = await public_weather.get_nowcasting_xml_latest(province_name)
    except Exception as e:
        logger.exception("Nowcast feed fetch failed")
        raise APIError(500, "Failed to fetch or parse XML data", details=str(e)) from e

    items = (latest or {}).get("nowcasting") or []
    link = items[0].get("link") if items else None
    if not link:
        raise APIError(404, f"No nowcasting data found for province: {province_name}")

    try:
        data = await public_weather.get_nowcasting_xml(str(link))
    except Exception as e:
        logger.exception(f"Nowcast alert fetch failed for {link}")
        raise APIError(500, "Failed to fetch or parse XML data", details=str(e)) from e

    return {"success": True, "source": "www.bmkg.go.id", "province": province_name, "data": data}


@app.get("/public/location")
async def location(
    code: Optional[str] = None,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    public_weather: PublicWeather = Depends(get_public_weather),
):
    examples = {"byCode": PUBLIC_EXAMPLES["locationByCode"], "byCoordinates": PUBLIC_EXAMPLES["locationByCoords"]}

    if code:
        try:
            data = await public_weather.get_location_weather_by_code(code)
        except Exception as e:
            logger.exception(f"Location weather fetch failed for {code}")
            raise APIError(500, str(e)) from e
        return {"success": True, "source": "api.bmkg.go.id", "type": "by_code", "code": code, "data": data}

    if not (lat and lon):
        raise APIError(
            400, "Missing required parameters. Provide either 'code' or both 'lat' and 'lon'.", examples=examples
        )

    try:
        lat_value, lon_value = float(lat), float(lon)
    except ValueError:
        lat_value = lon_value = math.nan
    if not (math.isfinite(lat_value) and math.isfinite(lon_value)):
        raise APIError(400, "Invalid lat/lon parameters. Must be valid numbers.", examples=examples)

    try:
        data = await public_weather.get_location_weather(lat_value, lon_value)
    except Exception as e:
        logger.exception(f"Location weather fetch failed for ({lat_value}, {lon_value})")
        raise APIError(500, str(e)) from e

    return {
        "success": True,
        "source": "signature.bmkg.go.id",
        "type": "by_coordinates",
        "coordinates": {"lat": lat_value, "lon": lon_value},
        "data": data,
    }


@app.get("/public/weather")
async def public_weather_geojson(
    province: Optional[str] = None,
    kabupaten: Optional[str] = None,
    kecamatan: Optional[str] = None,
    output_format: str = Query(default="geojson", alias="format"),
    public_weather: PublicWeather = Depends(get_public_weather),
):
    try:
        rows = await public_weather.get_pwx_darat()
    except Exception as e:
        logger.exception("Public weather fetch failed")
        raise APIError(500, str(e)) from e

    filtered = filter_public_geojson(
        public_to_geojson(rows or []),
        province=underscores_to_spaces(province),
        kabupaten=underscores_to_spaces(kabupaten),
        kecamatan=underscores_to_spaces(kecamatan),
    )
    filters = {"province": province, "kabupaten": kabupaten, "kecamatan": kecamatan}

    if output_format == "geojson":
        filtered["metadata"] = {
            "success": True,
            "count": len(filtered["features"]),
            "filters": filters,
            "generated": datetime.now(timezone.utc).isoformat(),
        }
        return JSONResponse(filtered, media_type=GEOJSON_MEDIA_TYPE)

    return {"success": True, "count": len(filtered["features"]), "filters": filters, "data": filtered["features"]}


def main() -> None:
    setup_logging()
    logger.info(f"Starting BMKG Weather API on {config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, timeout_keep_alive=config.keep_alive_timeout)


if __name__ == "__main__":
    main()
