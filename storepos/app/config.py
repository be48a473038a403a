import os
from typing import List


class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def _int(self, name: str, default: int) -> int:
        raw = (os.getenv(name) or "").strip()
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError:
            return default

    def __init__(self) -> None:
        self.env = os.getenv('APP_ENV', 'local')
        self.db_url = (
            os.getenv('APP_DATABASE_URL')
            or os.getenv('DATABASE_URL')
            or 'postgresql://localhost/storepos'
        )
        self.db_pool_min = self._int("DB_POOL_MIN_SIZE", 1)
        self.db_pool_max = self._int("DB_POOL_MAX_SIZE", 10)
        # Comma-separated list of allowed CORS origins for the register UI.
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:3000", "http://127.0.0.1:3000"],
        )
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"
        self.default_member_level_id = self._int("DEFAULT_MEMBER_LEVEL_ID", 1)
        # What a repeated idempotency key returns: the original result ("replay")
        # or a 409 ("conflict"). Never a second order either way.
        mode = (os.getenv("PASS_DUPLICATE_MODE") or "replay").strip().lower()
        self.pass_duplicate_mode = mode if mode in {"replay", "conflict"} else "replay"
        self.pass_payment_methods = [
            m.lower()
            for m in self._split_csv(os.getenv("PASS_PAYMENT_METHODS", "").strip(), default=["cash", "card"])
        ]

    @property
    def exposes_errors(self) -> bool:
        return self.env in {"local", "dev"}


settings = Settings()
