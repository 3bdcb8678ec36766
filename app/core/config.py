from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")
    database_echo: bool = Field(False, alias="DATABASE_ECHO")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Swap exchanges rooms along with day/period unless a request says otherwise.
    timetable_swap_moves_rooms: bool = Field(True, alias="TIMETABLE_SWAP_MOVES_ROOMS")
    # Used for utilization rates when the year has no working pattern configured.
    timetable_default_working_days: int = Field(5, alias="TIMETABLE_DEFAULT_WORKING_DAYS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
