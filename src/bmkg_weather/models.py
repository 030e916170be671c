from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

NOT_AVAILABLE = "N/A"


class StationType(str, Enum):
    """AWS Center instrument classes"""

    AWS = "aws"
    AAWS = "aaws"
    ARG = "arg"
    ASRS = "asrs"
    SOIL = "soil"
    IKLIMMIKRO = "iklimmikro"


class Coordinates(BaseModel):
    """Geographic coordinates"""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class StationDirectoryEntry(BaseModel):
    """Station record from the static AWS Center directory"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    station_id: str = Field(alias="id_station")
    name: str = Field(alias="name_station")
    city: str = Field(alias="nama_kota")
    province: str = Field(alias="nama_provinsi")
    province_code: str = Field(alias="kode_provinsi")
    # Kept as text like the source file, parsed on use
    lat: str
    lon: str = Field(alias="lng")
    station_type: StationType = Field(alias="type")
    distance: Optional[float] = None

    @property
    def coordinates(self) -> Optional[Coordinates]:
        try:
            return Coordinates(latitude=float(self.lat), longitude=float(self.lon))
        except ValueError:
            return None


class TypeFilter(BaseModel):
    """Station type filter: no filter, exactly one type, or any of a set"""

    model_config = ConfigDict(frozen=True)

    types: Optional[FrozenSet[str]] = None

    @classmethod
    def build(cls, value: Union[None, str, StationType, Iterable[Union[str, StationType]]]) -> "TypeFilter":
        if value is None or value == "":
            return cls()
        if isinstance(value, (str, StationType)):
            return cls(types=frozenset([_type_value(value)]))
        types = frozenset(_type_value(v) for v in value if v)
        return cls(types=types or None)

    def matches(self, station_type: Union[str, StationType]) -> bool:
        if self.types is None:
            return True
        return _type_value(station_type) in self.types

    def label(self) -> str:
        if self.types is None:
            return "all types"
        return " & ".join(sorted(self.types))


def _type_value(value: Union[str, StationType]) -> str:
    return value.value if isinstance(value, StationType) else str(value).lower()


# Normalized observations, one model per station type


class BaseWeather(BaseModel):
    battery: Optional[float] = None


class AWSWeather(BaseWeather):
    """AWS / AAWS full weather reading"""

    temperature: Optional[float] = None
    temperature_max: Optional[float] = Field(default=None, serialization_alias="temperatureMax")
    temperature_min: Optional[float] = Field(default=None, serialization_alias="temperatureMin")
    humidity: Optional[float] = None
    rainfall: Optional[float] = None
    pressure: Optional[float] = None
    solar_radiation: Optional[float] = Field(default=None, serialization_alias="solarRadiation")
    solar_radiation_max: Optional[float] = Field(default=None, serialization_alias="solarRadiationMax")
    wind_speed: Optional[float] = Field(default=None, serialization_alias="windSpeed")
    wind_speed_max: Optional[float] = Field(default=None, serialization_alias="windSpeedMax")
    wind_direction: Optional[float] = Field(default=None, serialization_alias="windDirection")
    water_level: Optional[float] = Field(default=None, serialization_alias="waterLevel")
    # AAWS only
    par: Optional[float] = None
    wind_speed_2m: Optional[float] = Field(default=None, serialization_alias="windSpeed2m")


class ARGWeather(BaseWeather):
    """Rain gauge reading"""

    rainfall: Optional[float] = None


class SoilMoisture(BaseModel):
    sm10: Optional[float] = None
    sm20: Optional[float] = None
    sm30: Optional[float] = None
    sm40: Optional[float] = None
    sm60: Optional[float] = None
    sm100: Optional[float] = None


class SoilTemperature(BaseModel):
    ts10: Optional[float] = None
    ts20: Optional[float] = None
    ts30: Optional[float] = None
    ts40: Optional[float] = None
    ts60: Optional[float] = None
    ts100: Optional[float] = None


class SoilWeather(BaseWeather):
    """Soil moisture and temperature at fixed depths (cm)"""

    swc: Optional[float] = None
    soil_moisture: SoilMoisture = Field(default_factory=SoilMoisture, serialization_alias="soilMoisture")
    soil_temperature: SoilTemperature = Field(default_factory=SoilTemperature, serialization_alias="soilTemperature")


class IklimmikroLevel(BaseModel):
    temperature: Optional[float] = None
    temperature_min: Optional[float] = Field(default=None, serialization_alias="temperatureMin")
    temperature_avg: Optional[float] = Field(default=None, serialization_alias="temperatureAvg")
    temperature_max: Optional[float] = Field(default=None, serialization_alias="temperatureMax")
    humidity: Optional[float] = None
    humidity_min: Optional[float] = Field(default=None, serialization_alias="humidityMin")
    humidity_avg: Optional[float] = Field(default=None, serialization_alias="humidityAvg")
    humidity_max: Optional[float] = Field(default=None, serialization_alias="humidityMax")
    wind_speed: Optional[float] = Field(default=None, serialization_alias="windSpeed")
    wind_speed_min: Optional[float] = Field(default=None, serialization_alias="windSpeedMin")
    wind_speed_avg: Optional[float] = Field(default=None, serialization_alias="windSpeedAvg")
    wind_speed_max: Optional[float] = Field(default=None, serialization_alias="windSpeedMax")
    wind_direction: Optional[float] = Field(default=None, serialization_alias="windDirection")


class IklimmikroWeather(BaseWeather):
    """Micro-climate reading at 4 m, 7 m and 10 m"""

    level_4m: IklimmikroLevel = Field(default_factory=IklimmikroLevel, serialization_alias="level4m")
    level_7m: IklimmikroLevel = Field(default_factory=IklimmikroLevel, serialization_alias="level7m")
    level_10m: IklimmikroLevel = Field(default_factory=IklimmikroLevel, serialization_alias="level10m")


class ASRSWeather(BaseWeather):
    """Solar radiation station reading"""

    diffuse_radiation: Optional[float] = Field(default=None, serialization_alias="diffuseRadiation")
    global_radiation: Optional[float] = Field(default=None, serialization_alias="globalRadiation")
    direct_normal_irradiance: Optional[float] = Field(default=None, serialization_alias="directNormalIrradiance")
    reflected_radiation: Optional[float] = Field(default=None, serialization_alias="reflectedRadiation")
    net_radiation: Optional[float] = Field(default=None, serialization_alias="netRadiation")
    sunshine_minutes: Optional[float] = Field(default=None, serialization_alias="sunshineMinutes")


WeatherObservation = Union[AWSWeather, ARGWeather, SoilWeather, IklimmikroWeather, ASRSWeather]


class StationFetchResult(BaseModel):
    """Outcome of fetching one station from AWS Center"""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    station_id: str = Field(serialization_alias="stationId")
    data: Optional[Any] = None
    weather: Optional[WeatherObservation] = None
    error: Optional[str] = None

    station_name: Optional[str] = Field(default=None, serialization_alias="stationName")
    city: Optional[str] = None
    province: Optional[str] = None
    province_code: Optional[str] = Field(default=None, serialization_alias="provinceCode")
    lat: Optional[str] = None
    lng: Optional[str] = None
    type: Optional[str] = None
    distance: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude_none=True)
        if self.weather is not None:
            # Null readings stay explicit inside the observation
            payload["weather"] = self.weather.model_dump(by_alias=True)
        return payload
