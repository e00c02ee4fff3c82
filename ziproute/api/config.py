# ziproute/api/config.py
"""Configuration management for the route planner API."""
import os
from dotenv import load_dotenv

load_dotenv()

VALID_GEOCODER_BACKENDS = ("mapbox", "google")


def _flag(name, default="1"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def get_openai_api_key():
    """Get OpenAI API key from environment."""
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ValueError("OPENAI_API_KEY not set")
    return api_key


def get_openai_model_name():
    return os.getenv("OPENAI_CHAT_MODEL", "gpt-4.1-mini")


def get_mapbox_config():
    """Get Mapbox configuration."""
    return {
        "token": os.getenv("MAPBOX_TOKEN", ""),
        "api_base": os.getenv("MAPBOX_API_BASE", "https://api.mapbox.com"),
    }


def get_google_maps_config():
    """Get Google Maps configuration."""
    return {
        "api_key": os.getenv("GOOGLE_MAPS_API_KEY", ""),
    }


def get_planner_config():
    """Get route planning configuration."""
    countries = os.getenv("GEOCODE_COUNTRIES", "us,ca")
    return {
        "geocoder_backend": os.getenv("GEOCODER_BACKEND", "mapbox").strip().lower(),
        "countries": [c.strip().lower() for c in countries.split(",") if c.strip()],
        "traffic_enabled": _flag("TRAFFIC_ENABLED"),
        "stabilize": _flag("STABILIZE_DESTINATIONS"),
        "max_per_leg": int(os.getenv("MAPS_MAX_PER_LEG", "11")),
        "timeout": float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
        "session_ttl_seconds": int(os.getenv("PLANNER_SESSION_TTL_SECONDS", "3600")),
    }


def get_usage_config():
    """Get usage metering configuration."""
    return {
        "daily_free_limit": int(os.getenv("DAILY_FREE_LIMIT", "10")),
        "cooldown_minutes": int(os.getenv("COOLDOWN_MINUTES", "30")),
        "guest_nudge_after": int(os.getenv("GUEST_LOGIN_SOFT_NUDGE_AFTER", "3")),
        "store_path": os.getenv("USAGE_STORE_PATH", ""),
    }


def get_port():
    """Get port configuration."""
    return int(os.getenv("PORT", 5000))


def validate_planner_config():
    """Validate route planning configuration is usable."""
    planner_config = get_planner_config()

    if planner_config["geocoder_backend"] not in VALID_GEOCODER_BACKENDS:
        raise ValueError(
            f"Invalid geocoder backend. Must be one of: {', '.join(VALID_GEOCODER_BACKENDS)}"
        )

    if planner_config["max_per_leg"] < 2:
        raise ValueError("MAPS_MAX_PER_LEG must be at least 2")

    if planner_config["geocoder_backend"] == "google" and not get_google_maps_config()["api_key"]:
        raise ValueError("GOOGLE_MAPS_API_KEY not set for the google geocoder backend")

    return True
