from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Multichat"
    debug: bool = False

    # Storage
    database_url: str = f"sqlite:///{Path(__file__).resolve().parent.parent.parent / 'multichat.db'}"
    persist_state: bool = True

    # Personas
    default_persona_id: str = "Generic"

    # LLM vendors - server-side defaults, user-entered source settings win
    request_timeout: float = 60.0
    openai_api_key: str = ""
    openai_api_host: str = ""
    openai_api_org_id: str = ""
    ollama_api_host: str = ""
    localai_api_host: str = ""
    gemini_api_key: str = ""

    # Server
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent.parent / ".env"),
        "env_prefix": "MULTICHAT_",
    }


settings = Settings()
