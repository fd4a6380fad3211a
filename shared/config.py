"""
Application configuration settings
"""
from typing import Annotated, Any, List

from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    model_config = ConfigDict(env_file=".env")

    PROJECT_NAME: str = "Sales Star ETL"

    # Database
    DATABASE_URL: str = "sqlite:///./sales_warehouse.db"

    # Source files
    SOURCE_DATA_DIR: str = "./data"
    CSV_DELIMITER: str = ","
    CSV_QUOTECHAR: str = '"'
    CSV_ENCODING: str = "utf-8"
    LOAD_RETRY_ATTEMPTS: int = 3

    # Staging tables kept after purge, comma separated; everything else is dropped
    STAGING_RETAINED_TABLES: Annotated[List[str], NoDecode] = []

    # pass_through | reject
    NULL_KEY_POLICY: str = "pass_through"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @field_validator("STAGING_RETAINED_TABLES", mode="before")
    @classmethod
    def _split_retained_tables(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [name.strip() for name in value.split(",") if name.strip()]
        return value

    @field_validator("NULL_KEY_POLICY")
    @classmethod
    def _check_null_key_policy(cls, value: str) -> str:
        value = value.lower()
        if value not in ("pass_through", "reject"):
            raise ValueError(f"Unsupported NULL_KEY_POLICY: {value}")
        return value


settings = Settings()
