"""
Configuration settings for the inventory import service
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class ImportSettings(BaseSettings):
    """CSV import pipeline configuration settings"""

    # File limits
    csv_import_max_file_size: int = Field(default=10 * 1024 * 1024, env="CSV_IMPORT_MAX_FILE_SIZE")  # 10MB

    # Import engine tuning
    csv_import_batch_size: int = Field(default=100, env="CSV_IMPORT_BATCH_SIZE")
    csv_import_chunk_size: int = Field(default=5, env="CSV_IMPORT_CHUNK_SIZE")
    csv_import_inter_batch_delay: float = Field(default=0.1, env="CSV_IMPORT_INTER_BATCH_DELAY")  # seconds

    # Parsing toggles
    csv_import_auto_detect_delimiter: bool = Field(default=True, env="CSV_IMPORT_AUTO_DETECT_DELIMITER")
    csv_import_auto_detect_encoding: bool = Field(default=True, env="CSV_IMPORT_AUTO_DETECT_ENCODING")
    csv_import_skip_empty_rows: bool = Field(default=True, env="CSV_IMPORT_SKIP_EMPTY_ROWS")
    csv_import_trim_whitespace: bool = Field(default=True, env="CSV_IMPORT_TRIM_WHITESPACE")
    csv_import_case_sensitive_mapping: bool = Field(default=False, env="CSV_IMPORT_CASE_SENSITIVE_MAPPING")

    # Inventory API (category/location/item collaborators)
    inventory_api_base_url: str = Field(default="http://localhost:3000", env="INVENTORY_API_BASE_URL")
    inventory_api_timeout: float = Field(default=30.0, env="INVENTORY_API_TIMEOUT")
    inventory_api_token: str = Field(default="", env="INVENTORY_API_TOKEN")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra environment variables


@lru_cache()
def get_import_settings() -> ImportSettings:
    """Get cached import settings instance"""
    return ImportSettings()
