"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration – values are read from `.env` or the environment."""

    # Journal server asset endpoint (multipart POST per imported chart)
    upload_url: str = "http://localhost:5000/api/assets"
    upload_timeout: float = 30.0  # seconds, per submission

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
