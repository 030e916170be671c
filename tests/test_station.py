import json

import pytest

from bmkg_weather.models import Coordinates, StationDirectoryEntry, StationType
from bmkg_weather.station import StationDirectory, haversine_distance, normalize_name


def ids(entries):
    return [e.station_id for e in entries]


def test_directory_initialization(directory):
    assert len(directory) == 6
    assert isinstance(directory.stations, dict)

    for station in directory:
        assert isinstance(station, StationDirectoryEntry)
        assert isinstance(station.station_type, StationType)

    station = directory.get("STA0001")
    assert isinstance(station.coordinates, Coordinates)
    assert -90 <= station.coordinates.latitude <= 90
    assert -180 <= station.coordinates.longitude <= 180


def test_directory_skips_invalid_and_duplicate_records(station_records):
    station_records.append({**station_records[0], "name_station": "Duplicate"})
    station_records.append({**station_records[1], "id_station": "STA9999", "type": "radar"})

    directory = StationDirectory.from_records(station_records)

    assert len(directory) == 6
    assert directory.get("STA0001").name == "AWS Cilacap"
    assert directory.get("STA9999") is None


def test_directory_from_file(tmp_path, station_records):
    path = tmp_path / "location.json"
    path.write_text(json.dumps(station_records), encoding="utf-8")
    assert len(StationDirectory.from_file(path)) == 6

    path.write_text(json.dumps({"stations": station_records}), encoding="utf-8")
    with pytest.raises(ValueError):
        StationDirectory.from_file(path)


def test_unusable_coordinates():
    assert StationDirectory.from_records([]).get("missing") is None
    entry = StationDirectoryEntry(
        station_id="X",
        name="X",
        city="X",
        province="X",
        province_code="PR000",
        lat="abc",
        lon="110",
        station_type="aws",
    )
    assert entry.coordinates is None
    assert entry.model_copy(update={"lat": "95"}).coordinates is None


def test_haversine_distance():
    assert haversine_distance(-7.7, 109.0, -7.7, 109.0) == 0
    assert haversine_distance(0, 0, 0, 1) == pytest.approx(111.19, abs=0.01)


def test_normalize_name():
    assert normalize_name("Kab_Banyumas") == "kab banyumas"
    assert normalize_name("  Ménado ") == "menado"


def test_by_province(directory):
    assert ids(directory.by_province(["PR013"])) == ["STA0001", "STA0002", "STA0004", "STA0005"]
    assert ids(directory.by_province(["PR013"], "aws")) == ["STA0001", "STA0004"]
    assert ids(directory.by_province(["PR013"], ["aws", "arg"])) == ["STA0001", "STA0002", "STA0004"]
    assert ids(directory.by_province(["PR012", "PR013"], StationType.IKLIMMIKRO)) == ["STA0006"]
    assert directory.by_province(["PR099"]) == []


def test_by_province_city_filters(directory):
    assert ids(directory.by_province(["PR013"], city="banjar")) == ["STA0002"]
    assert ids(directory.by_province(["PR013"], exclude_city=["semarang", "wonosobo"])) == ["STA0001", "STA0002"]
    # Exclusion is applied before inclusion
    assert directory.by_province(["PR013"], city="banjar", exclude_city="banjarnegara") == []


def test_by_city_match_modes(directory):
    assert ids(directory.by_city("banjar")) == ["STA0002", "STA0003"]
    assert ids(directory.by_city("BANJAR", match="exact")) == ["STA0003"]
    assert ids(directory.by_city("banjar", match="startsWith")) == ["STA0002", "STA0003"]
    assert ids(directory.by_city("negara", match="startsWith")) == []
    assert ids(directory.by_city(["cilacap", "semarang"], "aws")) == ["STA0001", "STA0004"]


def test_by_city_exclusion_is_subtractive(directory):
    assert ids(directory.by_city("banjar", exclude_city="banjarnegara")) == ["STA0003"]
    assert directory.by_city("banjar", match="exact", exclude_city="banjar") == []


def test_by_city_rejects_unknown_match_mode(directory):
    with pytest.raises(ValueError):
        directory.by_city("banjar", match="fuzzy")


def test_by_radius(directory):
    stations = directory.by_radius(-7.7, 109.0, 100)

    assert ids(stations) == ["STA0001", "STA0003", "STA0002"]
    distances = [s.distance for s in stations]
    assert distances == sorted(distances)
    assert distances[0] == pytest.approx(0)
    assert all(d <= 100 for d in distances)
    # Query results carry distance, the directory itself is untouched
    assert directory.get("STA0003").distance is None


def test_by_radius_type_filter(directory):
    assert ids(directory.by_radius(-7.7, 109.0, 100, "arg")) == ["STA0002"]
    assert ids(directory.by_radius(-7.7, 109.0, 100, ["aws"])) == ["STA0001", "STA0003"]


def test_find_nearest(directory):
    nearest = directory.find_nearest(-6.95, 110.4)
    assert nearest.station_id == "STA0004"
    assert nearest.distance < 5

    assert directory.find_nearest(-6.95, 110.4, "iklimmikro").station_id == "STA0006"
    with pytest.raises(ValueError):
        directory.find_nearest(-6.95, 110.4, "asrs")


def test_by_radius_rejects_non_positive_radius(directory):
    with pytest.raises(ValueError):
        directory.by_radius(-7.7, 109.0, 0)
