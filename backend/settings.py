from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "SG Bus Arrivals API"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    # CORS: "*" for dev; in production set to comma-separated origins, e.g. "https://buses.example.com"
    cors_origins: str = "*"
    lta_api_key: str = ""  # LTA DataMall AccountKey (request at datamall.lta.gov.sg)
    lta_base_url: str = "https://datamall2.mytransport.sg/ltaodataservice"

    # Base URL of a deployed instance of this API. When set, nearby lookups are ranked server-side.
    nearby_source_url: str = ""
    # Key sent as X-API-Key to that instance when it has API key auth enabled.
    nearby_source_api_key: str = ""

    # Optional API key auth. When enabled, requests must include X-API-Key or Authorization: Bearer <key>.
    api_key_required: bool = False
    api_keys: str = ""  # Comma-separated list of valid keys (no spaces). Example: API_KEYS=key1,key2


def get_settings() -> Settings:
    return Settings()
