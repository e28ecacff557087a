from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    db_path: str = "subtrack.db"
    default_currency: str = "NOK"
    debug: bool = False

    detection_min_confidence: float = 0.6
    match_min_confidence: float = 0.7
    stale_candidate_months: int = 4
    reconcile_lookback_months: int = 6
    upcoming_payment_days: int = 30
    unused_subscription_days: int = 90

    default_alert_thresholds: list[int] = [50, 75, 90, 100]

    @field_validator("default_alert_thresholds", mode="before")
    @classmethod
    def parse_thresholds(cls, v):
        if isinstance(v, str):
            return sorted(int(x.strip()) for x in v.split(",") if x.strip())
        if isinstance(v, int):
            return [v]
        return v

    annual_return_rate: float = 0.07
    inflation_rate: float = 0.025
    monthly_compounding: bool = True


settings = Settings()
