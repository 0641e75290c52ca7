import json
import os

ROOT = os.path.dirname(os.path.abspath(__file__))
DB_PATH = os.path.join(ROOT, "pos.sqlite")
CONFIG_PATH = os.path.join(ROOT, "config.json")

DEFAULT_CONFIG = {
    "api_base_url": "http://localhost:8001",
    "device_id": "",
    # Seconds between backend health checks (online/offline detection).
    "health_interval_s": 5,
    "health_timeout_s": 0.8,
    # Timeout for a single remote commit call.
    "commit_timeout_s": 10,
    "user_id": "",
}


def load_config(path: str = None) -> dict:
    path = path or CONFIG_PATH
    if not os.path.exists(path):
        save_config(DEFAULT_CONFIG, path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    cfg = {**DEFAULT_CONFIG, **data}
    # Allow Docker/ops to override without rewriting the on-disk config.
    if os.environ.get("POS_API_BASE_URL"):
        cfg["api_base_url"] = os.environ["POS_API_BASE_URL"]
    if os.environ.get("POS_DEVICE_ID"):
        cfg["device_id"] = os.environ["POS_DEVICE_ID"]
    if os.environ.get("POS_HEALTH_INTERVAL_S"):
        try:
            cfg["health_interval_s"] = float(os.environ["POS_HEALTH_INTERVAL_S"])
        except ValueError:
            pass
    return cfg


def save_config(data: dict, path: str = None):
    path = path or CONFIG_PATH
    parent = os.path.dirname(os.path.abspath(path))
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
