import httpx
import pytest

from bmkg_weather.config import config
from bmkg_weather.public import PublicWeather, xml_to_dict

FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Peringatan Dini Cuaca</title>
    <item>
      <title>Hujan Lebat di Jawa Tengah</title>
      <link>https://www.bmkg.go.id/alerts/nowcast/id/CJH_alert.xml</link>
    </item>
    <item>
      <title>Hujan Sedang di Jawa Barat</title>
      <link>https://www.bmkg.go.id/alerts/nowcast/id/CJB_alert.xml</link>
    </item>
  </channel>
</rss>
"""

SINGLE_ITEM_FEED = """<rss><channel><item><title>Angin Kencang di Jawa Tengah</title>
<link>https://www.bmkg.go.id/alerts/nowcast/id/CJH_alert.xml</link></item></channel></rss>"""

ALERT = """<alert xmlns="urn:oasis:names:tc:emergency:cap:1.2" xmlns:cap="urn:oasis:names:tc:emergency:cap:1.2">
  <identifier>CJH20261019</identifier>
  <info lang="id" cap:scope="Public">
    <event>Hujan Lebat</event>
    <area><areaDesc>Banyumas</areaDesc></area>
    <area><areaDesc>Cilacap</areaDesc></area>
  </info>
</alert>"""


def test_xml_to_dict():
    data = xml_to_dict(FEED)

    assert data["rss"]["@_version"] == "2.0"
    items = data["rss"]["channel"]["item"]
    assert isinstance(items, list)
    assert items[0]["title"] == "Hujan Lebat di Jawa Tengah"


def test_xml_to_dict_strips_namespaces():
    alert = xml_to_dict(ALERT)["alert"]

    assert alert["identifier"] == "CJH20261019"
    assert alert["info"]["@_lang"] == "id"
    assert alert["info"]["@_scope"] == "Public"
    assert [a["areaDesc"] for a in alert["info"]["area"]] == ["Banyumas", "Cilacap"]


def test_xml_to_dict_rejects_malformed_xml():
    with pytest.raises(ValueError):
        xml_to_dict("<rss><channel>")


def test_filter_by_province():
    data = xml_to_dict(FEED)

    filtered = PublicWeather.filter_by_province(data, "jawa tengah")
    assert [item["title"] for item in filtered["nowcasting"]] == ["Hujan Lebat di Jawa Tengah"]
    assert PublicWeather.filter_by_province(data, "Bali") == {"nowcasting": []}


def test_filter_by_province_single_item():
    filtered = PublicWeather.filter_by_province(xml_to_dict(SINGLE_ITEM_FEED), "Jawa Tengah")
    assert len(filtered["nowcasting"]) == 1


def test_filter_by_province_unexpected_shape():
    assert PublicWeather.filter_by_province({"feed": {}}, "Jawa Tengah") is None
    assert PublicWeather.filter_by_province({"rss": {"channel": "empty"}}, "Jawa Tengah") is None


class FakeBMKG:
    def __init__(self):
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url.startswith(config.signature_base_url):
            return httpx.Response(200, json={"type": request.url.params.get("type")})
        if url.startswith(config.public_api_url):
            return httpx.Response(200, json={"adm4": request.url.params.get("adm4")})
        if url == config.nowcast_feed_url:
            return httpx.Response(200, text=FEED)
        if url.endswith("CJH_alert.xml"):
            return httpx.Response(200, text=ALERT)
        return httpx.Response(503)


@pytest.fixture
def fake_bmkg():
    return FakeBMKG()


@pytest.fixture
def public_weather(fake_bmkg):
    return PublicWeather(client=httpx.AsyncClient(transport=httpx.MockTransport(fake_bmkg)))


@pytest.mark.asyncio
async def test_signature_requests(public_weather, fake_bmkg):
    assert await public_weather.get_pwx_darat() == {"type": "pwxDarat"}
    assert await public_weather.get_nowcasting("CJH") == {"type": "nowcasting"}
    assert await public_weather.get_manifest() == {"type": "getManifest"}
    assert await public_weather.get_forecast_darat("501") == {"type": "getForecastDarat"}
    assert await public_weather.get_location_weather(-7.65, 109.11) == {"type": "lokasiCuaca"}

    params = [dict(r.url.params) for r in fake_bmkg.requests]
    assert params[1] == {"type": "nowcasting", "code": "CJH"}
    assert params[2] == {"type": "getManifest", "code": "jalurDarat"}
    assert params[3] == {"type": "getForecastDarat", "code": "501.json"}
    assert params[4] == {"type": "lokasiCuaca", "lon": "109.11", "lat": "-7.65"}


@pytest.mark.asyncio
async def test_location_weather_by_code(public_weather):
    assert await public_weather.get_location_weather_by_code("33.01.22.1003") == {"adm4": "33.01.22.1003"}


@pytest.mark.asyncio
async def test_nowcasting_xml_latest(public_weather):
    latest = await public_weather.get_nowcasting_xml_latest("Jawa Barat")
    assert [item["title"] for item in latest["nowcasting"]] == ["Hujan Sedang di Jawa Barat"]

    unfiltered = await public_weather.get_nowcasting_xml_latest()
    assert "rss" in unfiltered

    alert = await public_weather.get_nowcasting_xml(latest["nowcasting"][0]["link"].replace("CJB", "CJH"))
    assert alert["alert"]["info"]["event"] == "Hujan Lebat"


@pytest.mark.asyncio
async def test_upstream_errors_raise():
    public_weather = PublicWeather(client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(502))))
    with pytest.raises(httpx.HTTPStatusError):
        await public_weather.get_pwx_darat()
