from pydantic_settings import BaseSettings, SettingsConfigDict

from forecast_scoring.models import AggregationMethod


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///forecast_scoring.db"
    RECENT_WINDOW_DAYS: int = 90  # "last 3 months" on the track record page
    COMMUNITY_METHOD: AggregationMethod = AggregationMethod.GEOMETRIC
    RELATIVE_BASELINE: AggregationMethod = AggregationMethod.GEOMETRIC
    MIN_PARTICIPANTS_FOR_RELATIVE: int = 2
    CALIBRATION_BINS: int = 10
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
