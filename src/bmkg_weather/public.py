import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

import httpx

from bmkg_weather.config import config

logger = logging.getLogger("bmkg_weather.public")

ATTRIBUTE_PREFIX = "@_"
TEXT_KEY = "#text"


def _local_name(tag: str) -> str:
    # "{urn:oasis:names:tc:emergency:cap:1.2}alert" -> "alert"
    return tag.rsplit("}", 1)[-1]


def _element_to_value(element: ET.Element) -> Any:
    children = list(element)
    text = (element.text or "").strip()

    if not children and not element.attrib:
        return text

    node: Dict[str, Any] = {f"{ATTRIBUTE_PREFIX}{_local_name(k)}": v for k, v in element.attrib.items()}
    for child in children:
        tag = _local_name(child.tag)
        value = _element_to_value(child)
        if tag in node:
            # Repeated tags collapse into a list
            if not isinstance(node[tag], list):
                node[tag] = [node[tag]]
            node[tag].append(value)
        else:
            node[tag] = value
    if text:
        node[TEXT_KEY] = text
    return node


def xml_to_dict(xml_text: str) -> Dict[str, Any]:
    """Parse an XML document into nested dicts keyed by tag name.

    Attributes are prefixed with ``@_``, repeated children become lists and
    text-only elements become plain strings.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ValueError(f"Invalid XML: {e}") from e
    return {_local_name(root.tag): _element_to_value(root)}


class PublicWeather:
    """Client for BMKG's unauthenticated weather endpoints"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        if self._client is not None:
            response = await self._client.get(url, params=params)
        else:
            async with httpx.AsyncClient(timeout=config.http_timeout, follow_redirects=True) as client:
                response = await client.get(url, params=params)
        response.raise_for_status()
        return response

    async def _signature(self, **params: Any) -> Any:
        response = await self._get(config.signature_base_url, params=params)
        return response.json()

    async def get_pwx_darat(self) -> Any:
        """Current land weather for every public forecast point"""
        return await self._signature(type="pwxDarat")

    async def get_location_weather(self, lat: float, lon: float) -> Any:
        return await self._signature(type="lokasiCuaca", lon=lon, lat=lat)

    async def get_location_weather_by_code(self, code: str) -> Any:
        """Forecast for an ADM4 (village level) code such as 33.01.22.1003"""
        response = await self._get(config.public_api_url, params={"adm4": code})
        return response.json()

    async def get_forecast_darat(self, code: str) -> Any:
        return await self._signature(type="getForecastDarat", code=f"{code}.json")

    async def get_manifest(self) -> Any:
        return await self._signature(type="getManifest", code="jalurDarat")

    async def get_nowcasting(self, code: str) -> Any:
        return await self._signature(type="nowcasting", code=code)

    async def get_nowcasting_xml(self, url: str) -> Dict[str, Any]:
        response = await self._get(url)
        return xml_to_dict(response.text)

    async def get_nowcasting_xml_latest(self, province_name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Latest nowcast RSS feed, optionally narrowed to one province"""
        data = await self.get_nowcasting_xml(config.nowcast_feed_url)
        if province_name:
            return self.filter_by_province(data, province_name)
        return data

    @staticmethod
    def filter_by_province(data: Any, province_name: str) -> Optional[Dict[str, List[Dict[str, Any]]]]:
        """Keep feed items whose title mentions the province (case-insensitive)"""
        try:
            items = data["rss"]["channel"]["item"]
        except (KeyError, TypeError):
            logger.warning("Nowcast feed has no rss/channel/item entries")
            return None

        if isinstance(items, dict):
            items = [items]
        if not isinstance(items, list):
            return None

        keyword = province_name.lower()
        filtered = [
            item for item in items if isinstance(item, dict) and keyword in str(item.get("title") or "").lower()
        ]
        logger.info(f"Found {len(filtered)} nowcast items for {province_name}")
        return {"nowcasting": filtered}
