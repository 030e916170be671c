import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import Context, FastMCP

from bmkg_weather.config import config, setup_logging
from bmkg_weather.fetcher import AWSDataFetcher
from bmkg_weather.geojson import filter_public_geojson, public_to_geojson
from bmkg_weather.models import StationFetchResult
from bmkg_weather.public import PublicWeather
from bmkg_weather.session import BMKGAuth
from bmkg_weather.station import StationDirectory

logger = logging.getLogger("bmkg_weather.server")

mcp = FastMCP(
    "BMKG Weather",
    instructions="Live BMKG AWS Center station readings and public BMKG forecasts for Indonesia",
    port=config.mcp_port,
    log_level=config.log_level.upper(),
)

_directory: Optional[StationDirectory] = None


def get_directory() -> StationDirectory:
    """Load the station directory on first use"""
    global _directory
    if _directory is None:
        _directory = StationDirectory.from_file(config.stations_file)
    return _directory


async def _authenticated_fetcher(ctx: Context) -> AWSDataFetcher:
    auth = BMKGAuth()
    await ctx.info(f"Logging in to {auth.base_url}")
    if not await auth.authenticate():
        await ctx.error("AWS Center login failed, station results will report the failure")
    return AWSDataFetcher(auth, get_directory())


def _summarize(results: List[StationFetchResult]) -> Dict[str, Any]:
    successful = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    return {
        "summary": {"total": len(results), "successful": len(successful), "failed": len(failed)},
        "stations": [r.to_dict() for r in successful],
        "failed": [r.to_dict() for r in failed],
    }


# Tools
@mcp.tool()
async def get_province_stations_weather(
    province_codes: List[str], ctx: Context, station_types: Optional[List[str]] = None
) -> Dict[str, Any]:
    """
    Get live readings for every station in one or more provinces

    Args:
        province_codes: Province codes such as PR013 (Jawa Tengah)
        station_types: Optional station types (aws, aaws, arg, asrs, soil, iklimmikro)
    """
    fetcher = await _authenticated_fetcher(ctx)
    await ctx.info(f"Fetching stations for provinces {province_codes}")
    return _summarize(await fetcher.fetch_data_by_province(province_codes, station_types))


@mcp.tool()
async def get_city_stations_weather(
    city_names: List[str],
    ctx: Context,
    station_types: Optional[List[str]] = None,
    match: str = "partial",
    exclude_cities: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Get live readings for stations in the given cities

    Args:
        city_names: City or regency names, e.g. cilacap
        station_types: Optional station types
        match: partial, exact or startsWith
        exclude_cities: City names to leave out even when they match
    """
    fetcher = await _authenticated_fetcher(ctx)
    await ctx.info(f"Fetching stations for cities {city_names} ({match})")
    return _summarize(await fetcher.fetch_data_by_city(city_names, station_types, match, exclude_cities))


@mcp.tool()
async def get_nearby_stations_weather(
    latitude: float, longitude: float, radius_km: float, ctx: Context, station_types: Optional[List[str]] = None
) -> Dict[str, Any]:
    """
    Get live readings for stations within a radius, nearest first

    Args:
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        radius_km: Search radius in kilometers
    """
    fetcher = await _authenticated_fetcher(ctx)
    await ctx.info(f"Fetching stations within {radius_km}km of ({latitude}, {longitude})")
    return _summarize(await fetcher.fetch_data_by_radius(latitude, longitude, radius_km, station_types))


@mcp.tool()
async def get_stations_weather(station_ids: List[str], ctx: Context) -> Dict[str, Any]:
    """Get live readings for explicit station ids such as STA1101"""
    fetcher = await _authenticated_fetcher(ctx)
    return _summarize(await fetcher.fetch_data_by_ids(station_ids))


@mcp.tool()
async def get_nearest_station(
    latitude: float, longitude: float, ctx: Context, station_type: Optional[str] = None
) -> Dict[str, Any]:
    """
    Find the nearest AWS Center station to given coordinates

    Args:
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        station_type: Optional station type
    """
    station = get_directory().find_nearest(latitude, longitude, station_type)
    await ctx.debug(f"Nearest station is {station.station_id} at {station.distance:.2f}km")
    return station.model_dump(by_alias=True)


@mcp.tool()
async def get_nowcasting(province: str, ctx: Context) -> Dict[str, Any]:
    """
    Get the latest BMKG nowcast warning for a province

    Args:
        province: Province name, e.g. Jawa Tengah
    """
    public_weather = PublicWeather()
    latest = await public_weather.get_nowcasting_xml_latest(province)
    items = (latest or {}).get("nowcasting") or []
    if not items or not items[0].get("link"):
        await ctx.info(f"No nowcast warning for {province}")
        return {"province": province, "warning": None}
    return {"province": province, "warning": await public_weather.get_nowcasting_xml(str(items[0]["link"]))}


@mcp.tool()
async def get_public_weather(
    ctx: Context, province: Optional[str] = None, kabupaten: Optional[str] = None, kecamatan: Optional[str] = None
) -> Dict[str, Any]:
    """Get current public weather points as GeoJSON, filtered by administrative area"""
    rows = await PublicWeather().get_pwx_darat()
    geojson = filter_public_geojson(public_to_geojson(rows or []), province, kabupaten, kecamatan)
    await ctx.info(f"Returning {len(geojson['features'])} public weather points")
    return geojson


def main() -> None:
    setup_logging()
    logger.info(f"Starting BMKG Weather MCP server (port {config.mcp_port})")
    mcp.run()


if __name__ == "__main__":
    main()
