import sys

from pydantic_settings import BaseSettings

_ENV_FILE = None if "pytest" in sys.modules else ".env"


class Settings(BaseSettings):
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # memory | cosmos | url
    DOCUMENT_STORE_TYPE: str = "memory"
    ORGCHART_DOCUMENT_KEY: str = "orgchart.json"

    COSMOS_DB_ENDPOINT: str = ""
    COSMOS_DB_KEY: str = ""
    COSMOS_DB_DATABASE: str = "orgchart-db"
    COSMOS_DB_CONTAINER: str = "documents"

    ORGCHART_DATA_URL: str = ""
    ORGCHART_DATA_TIMEOUT_SECONDS: float = 30.0

    ORGCHART_INSERT_ENABLED: bool = False
    ORGCHART_UPDATE_ENABLED: bool = False
    ORGCHART_DELETE_ENABLED: bool = False

    AUTH_ENABLED: bool = True
    AZURE_AD_TENANT_ID: str = ""
    AZURE_AD_CLIENT_ID: str = ""
    AZURE_AD_CLIENT_SECRET: str = ""
    FRONTEND_CLIENT_ID: str = ""

    GRAPH_BASE_URL: str = "https://graph.microsoft.com/v1.0"
    GRAPH_TIMEOUT_SECONDS: float = 30.0

    PROFILE_CACHE_TTL_SECONDS: float = 6 * 60 * 60
    PHOTO_CACHE_TTL_SECONDS: float = 24 * 60 * 60
    PRELOAD_CONCURRENCY: int = 5
    PRELOAD_PACING_SECONDS: float = 0.1

    USER_CACHE_BACKGROUND_REFRESH: bool = True
    USER_CACHE_INITIAL_DELAY_SECONDS: float = 30.0
    USER_CACHE_REFRESH_INTERVAL_HOURS: float = 6.0

    model_config = {
        "env_file": _ENV_FILE,
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


settings = Settings()
