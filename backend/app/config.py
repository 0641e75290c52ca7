import os
from typing import List

class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def __init__(self) -> None:
        self.env = os.getenv('APP_ENV', 'local')
        self.db_url = os.getenv('APP_DATABASE_URL') or os.getenv('DATABASE_URL') or 'postgresql://localhost/pos_sales'
        # Comma-separated list of allowed CORS origins for the register UI.
        # Default keeps local dev working out of the box.
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:7070", "http://127.0.0.1:7070"],
        )
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"
        # Max rows returned by customer history lookups.
        self.history_limit_max = int(os.getenv("HISTORY_LIMIT_MAX", "200") or 200)

settings = Settings()
