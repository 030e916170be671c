import logging
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BMKG_", extra="ignore")

    # AWS Center credentials
    username: str
    password: str
    captcha: str = "3"  # fixed placeholder the login form accepts, not a solved challenge

    aws_base_url: str = "https://awscenter.bmkg.go.id"
    login_path: str = "/base"
    signature_base_url: str = "https://signature.bmkg.go.id/dwt/asset/boot/api_dwt2.php"
    public_api_url: str = "https://api.bmkg.go.id/publik/prakiraan-cuaca"
    nowcast_feed_url: str = "https://www.bmkg.go.id/alerts/nowcast/id"

    stations_file: Path = Path("location.json")
    http_timeout: float = 30.0

    host: str = "0.0.0.0"
    port: int = 3000
    keep_alive_timeout: int = 240  # sequential upstream fetches are slow
    mcp_port: int = 8001

    log_dir: Optional[Path] = Path("logs")
    log_level: str = "INFO"


config = Config()


def setup_logging() -> None:
    """Configure root logging with a file and a console handler"""
    handlers = [logging.StreamHandler()]
    if config.log_dir:
        config.log_dir.mkdir(exist_ok=True)
        handlers.append(logging.FileHandler(config.log_dir / "bmkg_weather.log"))

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # Silence verbose loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
