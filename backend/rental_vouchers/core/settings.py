import os


def _getenv(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y", "on"}

def _getenv_csv_set(name: str) -> set[str]:
    raw = _getenv(name)
    if raw is None:
        return set()
    parts = [p.strip().lower() for p in raw.split(",")]
    return {p for p in parts if p}


class Settings:
    def __init__(self) -> None:
        self.environment = (_getenv("ENVIRONMENT", "development") or "development").lower()
        self.database_url = _getenv("DATABASE_URL", "sqlite:///./vouchers.db") or "sqlite:///./vouchers.db"
        self.db_auto_create = _getenv_bool("DB_AUTO_CREATE", default=True)
        self.log_level = (_getenv("LOG_LEVEL", "INFO") or "INFO").upper()

        self.jwt_secret = _getenv("JWT_SECRET")
        self.jwt_algorithm = _getenv("JWT_ALGORITHM", "HS256") or "HS256"
        self.jwt_audience = _getenv("JWT_AUDIENCE")
        self.admin_emails = _getenv_csv_set("ADMIN_EMAILS")
        self.cors_allow_origins = _getenv("CORS_ALLOW_ORIGINS")

        self.voucher_timezone = _getenv("VOUCHER_TIMEZONE", "Asia/Kuala_Lumpur") or "Asia/Kuala_Lumpur"
        self.voucher_max_stack = int(_getenv("VOUCHER_MAX_STACK", "2") or "2")
        self.morning_promo_hourly_reduction = float(_getenv("MORNING_PROMO_HOURLY_REDUCTION", "3") or "3")
        self.currency_label = _getenv("CURRENCY_LABEL", "RM") or "RM"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def resolved_cors_origins(self) -> list[str]:
        raw = self.cors_allow_origins
        if raw is None:
            return ["http://localhost:5173", "http://localhost:3000"]
        if raw.strip() == "*":
            return ["*"]
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        return origins


settings = Settings()
