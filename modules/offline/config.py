import os
from dotenv import load_dotenv

load_dotenv()


class OfflineSettings:
    """Device runtime settings, read from the environment."""

    def __init__(self, **overrides):
        self.api_url = os.getenv("API_URL", "http://localhost:8000").rstrip("/")
        self.relay_url = os.getenv("RELAY_URL") or _relay_url_for(self.api_url)
        self.data_dir = os.getenv("OFFLINE_DATA_DIR", os.path.join(os.path.expanduser("~"), ".incident-sync"))
        self.reachability_url = os.getenv("REACHABILITY_URL") or f"{self.api_url}/api/health"
        self.sync_interval_seconds = float(os.getenv("SYNC_INTERVAL_SECONDS", "10"))
        self.sync_max_age_minutes = float(os.getenv("SYNC_MAX_AGE_MINUTES", "30"))
        self.nearby_radius_km = float(os.getenv("NEARBY_RADIUS_KM", "10"))
        self.http_timeout_seconds = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting '{key}'")
            setattr(self, key, value)


def _relay_url_for(api_url: str) -> str:
    if api_url.startswith("https://"):
        base = "wss://" + api_url[len("https://"):]
    elif api_url.startswith("http://"):
        base = "ws://" + api_url[len("http://"):]
    else:
        base = api_url
    return f"{base}/api/chat/ws"
