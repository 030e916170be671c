import os

# Settings are read at import time
os.environ.setdefault("BMKG_USERNAME", "tester")
os.environ.setdefault("BMKG_PASSWORD", "secret")

import pytest  # noqa: E402

from bmkg_weather.station import StationDirectory  # noqa: E402

STATION_RECORDS = [
    {
        "id_station": "STA0001",
        "name_station": "AWS Cilacap",
        "nama_kota": "Cilacap",
        "nama_provinsi": "Jawa Tengah",
        "kode_provinsi": "PR013",
        "lat": "-7.7",
        "lng": "109.0",
        "type": "aws",
    },
    {
        "id_station": "STA0002",
        "name_station": "ARG Banjarnegara",
        "nama_kota": "Banjarnegara",
        "nama_provinsi": "Jawa Tengah",
        "kode_provinsi": "PR013",
        "lat": "-7.4",
        "lng": "109.7",
        "type": "arg",
    },
    {
        "id_station": "STA0003",
        "name_station": "AWS Banjar",
        "nama_kota": "Banjar",
        "nama_provinsi": "Jawa Barat",
        "kode_provinsi": "PR012",
        "lat": "-7.37",
        "lng": "108.53",
        "type": "aws",
    },
    {
        "id_station": "STA0004",
        "name_station": "AWS Semarang",
        "nama_kota": "Semarang",
        "nama_provinsi": "Jawa Tengah",
        "kode_provinsi": "PR013",
        "lat": "-6.98",
        "lng": "110.41",
        "type": "aws",
    },
    {
        "id_station": "STA0005",
        "name_station": "Soil Wonosobo",
        "nama_kota": "Wonosobo",
        "nama_provinsi": "Jawa Tengah",
        "kode_provinsi": "PR013",
        "lat": "",
        "lng": "",
        "type": "soil",
    },
    {
        "id_station": "STA0006",
        "name_station": "Iklimmikro Bandung",
        "nama_kota": "Bandung",
        "nama_provinsi": "Jawa Barat",
        "kode_provinsi": "PR012",
        "lat": "-6.9",
        "lng": "107.6",
        "type": "iklimmikro",
    },
]


@pytest.fixture
def station_records():
    return [dict(record) for record in STATION_RECORDS]


@pytest.fixture
def directory(station_records):
    return StationDirectory.from_records(station_records)
