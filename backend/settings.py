import os

# Basic settings helper to read environment configuration.


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_float(val: str | None, default: float) -> float:
    if val is None or not val.strip():
        return default
    return float(val)


class Settings:
    def __init__(self) -> None:
        # Fixed "home" point used as route origin and default camera center (Miami).
        self.HOME_LAT: float = _as_float(os.getenv("HOME_LAT"), 25.7602)
        self.HOME_LON: float = _as_float(os.getenv("HOME_LON"), -80.1959)
        self.HOME_REGION_METERS: float = _as_float(os.getenv("HOME_REGION_METERS"), 2000.0)

        self.HTTP_TIMEOUT: float = _as_float(os.getenv("HTTP_TIMEOUT"), 5.0)

        self.NOMINATIM_BASE_URL: str = os.getenv(
            "NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org"
        ).rstrip("/")
        self.NOMINATIM_USER_AGENT: str | None = os.getenv("NOMINATIM_USER_AGENT")
        self.NOMINATIM_REFERER: str | None = os.getenv("NOMINATIM_REFERER")
        self.NOMINATIM_MIN_INTERVAL: float = _as_float(os.getenv("NOMINATIM_MIN_INTERVAL"), 1.1)
        self.SEARCH_RESULT_LIMIT: int = int(os.getenv("SEARCH_RESULT_LIMIT", "10"))

        self.OSRM_URL: str = os.getenv("OSRM_URL", "https://router.project-osrm.org").rstrip("/")
        self.OSRM_PROFILE: str = os.getenv("OSRM_PROFILE", "driving")

        self.MAPILLARY_BASE_URL: str = os.getenv(
            "MAPILLARY_BASE_URL", "https://graph.mapillary.com"
        ).rstrip("/")
        self.MAPILLARY_ACCESS_TOKEN: str | None = os.getenv("MAPILLARY_ACCESS_TOKEN")

        self.MAP_TILES_ENABLED: bool = _as_bool(os.getenv("MAP_TILES_ENABLED"), False)
        self.MAP_TILE_URL_TEMPLATE: str = os.getenv("MAP_TILE_URL_TEMPLATE", "")
        self.MAP_TILE_TIMEOUT: float = _as_float(os.getenv("MAP_TILE_TIMEOUT"), 3.0)
        self.MAP_TILE_MIN_INTERVAL_SEC: float = _as_float(os.getenv("MAP_TILE_MIN_INTERVAL_SEC"), 1.0)


settings = Settings()
