"""
Terrain constants and server settings

The terrain geometry is fixed at build time. Server settings come from the
environment so the same build can run locally or behind a proxy.
"""
import os
from dataclasses import dataclass
from typing import Optional, Tuple

ALLOWED_EXTENSIONS = {'wav', 'mp3', 'flac', 'm4a', 'ogg'}


@dataclass(frozen=True)
class TerrainConfig:
    width_segments: int = 50    # circumferential bands, one per magnitude
    height_segments: int = 100  # rings along the cylinder axis
    top_radius: float = 10.0
    bottom_radius: float = 10.0
    height: float = 100.0
    height_scale: float = 100.0  # magnitude -> displacement along the normal
    capped: bool = True
    smoothing_sigma: float = 0.0  # in bands; 0 keeps the raw averages
    # display only, never applied to exported geometry
    rotation: Tuple[float, float, float] = (0.0, 0.0, 0.0)


DEFAULT_TERRAIN = TerrainConfig()


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class ServerConfig:
    host: str = '0.0.0.0'
    port: int = 8080
    debug: bool = False
    max_upload_mb: int = 50
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    status_max_age: float = 3600.0  # seconds a finished conversion stays queryable

    @property
    def max_content_length(self):
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls):
        """Build server settings from TERRAIN_* environment variables"""
        return cls(
            host=os.getenv('TERRAIN_HOST', cls.host),
            port=int(os.getenv('TERRAIN_PORT', cls.port)),
            debug=_env_bool('TERRAIN_DEBUG', cls.debug),
            max_upload_mb=int(os.getenv('TERRAIN_MAX_UPLOAD_MB', cls.max_upload_mb)),
            log_level=os.getenv('TERRAIN_LOG_LEVEL', cls.log_level).upper(),
            log_file=os.getenv('TERRAIN_LOG_FILE') or None,
            status_max_age=float(os.getenv('TERRAIN_STATUS_MAX_AGE', cls.status_max_age)),
        )
