from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {
        "env_file": "../.env",
        "extra": "ignore",
        "env_prefix": "",
        "case_sensitive": False,
    }

    # Marketplace API
    api_base_url: str = "https://api.mashynbazar.com"
    request_timeout_seconds: float = 60.0

    # Reference catalog
    reference_retry_attempts: int = 3
    reference_retry_max_delay_seconds: float = 30.0
    generation_prefetch_limit: int = 5
    price_recommendation_stale_seconds: float = 60.0

    # Media
    image_max_width: int = 1600
    image_quality: int = 80
    max_images: int = 10
    max_image_bytes: int = 10 * 1024 * 1024
    allowed_image_extensions: list[str] = ["jpg", "jpeg", "png"]

    # App
    environment: str = "development"
    log_level: str = "INFO"
    log_file: str = ""


settings = Settings()
