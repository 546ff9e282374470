"""Application configuration helpers."""

import os
import tempfile


# Region the map opens on (roughly centered on the UK).
DEFAULT_MAP_REGION = {
    "latitude": 54.5,
    "longitude": -2.0,
    "latitude_delta": 25.0,
    "longitude_delta": 25.0,
}

POLYGON_STYLE = {
    "stroke_color": "#0066CC",
    "stroke_width": 3,
    "fill_color": "rgba(0, 102, 204, 0.3)",
}

DEFAULT_MESH_SCALE = 10.0
DEFAULT_PLACEHOLDER_SIZE = 10.0
DEFAULT_TEXTURE_TIMEOUT_SECONDS = 5.0
DEFAULT_SNAPSHOT_SETTLE_SECONDS = 3.0
DEFAULT_SNAPSHOT_READY_TIMEOUT_SECONDS = 15.0

FALLBACK_MATERIAL_COLOR = 0xFF6B6B
PLACEHOLDER_MATERIAL_COLOR = 0x44AA88


def parse_env_bool(value, default=False):
    """Parse a boolean-like environment value with a fallback default."""
    if value is None:
        return default
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def get_cors_origins():
    """
    Return CORS origins from env, or localhost-only defaults.

    `MAPCLIP_CORS_ORIGINS` supports a comma-separated list.
    """
    raw = os.getenv('MAPCLIP_CORS_ORIGINS', '')
    if raw.strip():
        return [origin.strip() for origin in raw.split(',') if origin.strip()]
    return [r"^http://localhost(:\d+)?$", r"^http://127\.0\.0\.1(:\d+)?$"]


def parse_env_int(name, default):
    """Parse an integer environment value with fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def parse_env_float(name, default):
    """Parse a float environment value with fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def get_upload_folder():
    return os.getenv("MAPCLIP_UPLOAD_FOLDER", os.path.join(tempfile.gettempdir(), "mapclip3d", "uploads"))


def get_export_folder():
    return os.getenv("MAPCLIP_EXPORT_FOLDER", os.path.join(tempfile.gettempdir(), "mapclip3d", "exports"))


def get_file_ttl_seconds():
    return max(60, parse_env_int("MAPCLIP_FILE_TTL_SECONDS", 24 * 3600))


def get_texture_timeout_seconds():
    """Bounded wait for a snapshot image to decode into a texture."""
    return max(0.1, parse_env_float("MAPCLIP_TEXTURE_TIMEOUT_SECONDS", DEFAULT_TEXTURE_TIMEOUT_SECONDS))


def get_snapshot_settle_seconds():
    """Delay before capture when the map surface gives no readiness signal."""
    return max(0.0, parse_env_float("MAPCLIP_SNAPSHOT_SETTLE_SECONDS", DEFAULT_SNAPSHOT_SETTLE_SECONDS))


def get_snapshot_ready_timeout_seconds():
    return max(0.1, parse_env_float(
        "MAPCLIP_SNAPSHOT_READY_TIMEOUT_SECONDS", DEFAULT_SNAPSHOT_READY_TIMEOUT_SECONDS
    ))


def get_mesh_scale():
    scale = parse_env_float("MAPCLIP_MESH_SCALE", DEFAULT_MESH_SCALE)
    if scale <= 0:
        return DEFAULT_MESH_SCALE
    return scale


def get_placeholder_size():
    size = parse_env_float("MAPCLIP_PLACEHOLDER_SIZE", DEFAULT_PLACEHOLDER_SIZE)
    if size <= 0:
        return DEFAULT_PLACEHOLDER_SIZE
    return size
