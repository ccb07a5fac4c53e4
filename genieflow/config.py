from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # AI
    anthropic_api_key: str = ""
    # Optional LLM gateway in front of the Anthropic API
    anthropic_base_url: str = ""
    default_model: str = "claude-sonnet-4-20250514"
    default_max_tokens: int = 1024

    # Self-inferencing nodes
    auto_respond_delay_seconds: float = 0.5

    # URL loader
    url_fetch_timeout_seconds: float = 10.0
    url_max_chars: int = 100 * 1024

    # App
    app_name: str = "GenieFlow"
    debug: bool = False
    log_dir: str = str(Path(__file__).resolve().parent.parent / "logs")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
