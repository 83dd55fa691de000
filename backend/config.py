from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"  # development | test | staging | production
    APP_NAME: str = "HabitArcade"
    DATABASE_URL: str = "sqlite:///data/habitarcade.db"
    DATA_DIR: Path = Path("data")
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    DEFAULT_DAY_BOUNDARY_HOUR: int = 6
    DEFAULT_WEEK_START_DAY: int = 0  # Sunday
    AUTO_FILL_LOOKBACK_DAYS: int = 30
    AUTO_FILL_MAX_REPORTED_ENTRIES: int = 100

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_runtime_configuration(self) -> None:
        errors: list[str] = []
        if not 0 <= self.DEFAULT_DAY_BOUNDARY_HOUR <= 23:
            errors.append("DEFAULT_DAY_BOUNDARY_HOUR must be between 0 and 23")
        if not 0 <= self.DEFAULT_WEEK_START_DAY <= 6:
            errors.append("DEFAULT_WEEK_START_DAY must be between 0 and 6")
        if self.AUTO_FILL_LOOKBACK_DAYS < 1:
            errors.append("AUTO_FILL_LOOKBACK_DAYS must be at least 1")
        if errors:
            joined = "; ".join(errors)
            raise RuntimeError(f"Invalid configuration: {joined}")


settings = Settings()
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
