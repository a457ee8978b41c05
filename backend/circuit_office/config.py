from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    env: str = "dev"
    database_url: str = "sqlite:///./data/circuit_office.db"

    default_currency: str = "EUR"
    default_margin_pct: float = 30.0
    vehicle_capacity: int = 4

    exchange_rate_api_url: str = "https://api.exchangerate-api.com/v4/latest"
    exchange_rate_cache_hours: int = 6

    cors_origins: list[str] = ["*"]

    def model_post_init(self, __context):
        if self.env == "prod" and self.database_url.startswith("sqlite"):
            raise ValueError(
                "Production requires explicit DATABASE_URL (not SQLite)"
            )

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
