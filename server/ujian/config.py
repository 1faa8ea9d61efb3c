from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration settings"""

    # Application
    app_name: str = "Web Ujian AI"
    debug: bool = False
    api_version: str = "v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 5000

    # Storage
    # Empty means local JSON storage mode
    database_url: str = ""
    local_data_dir: str = "./database"

    # AI grading (OpenAI-compatible endpoint)
    gemini_api_key: str = ""
    ai_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    ai_model: str = "gemini-2.5-flash"
    ai_timeout_seconds: float = 30.0

    # Security
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    # Presence
    online_threshold_seconds: int = 30

    # Created at startup when no owner account exists yet
    bootstrap_owner_username: str = ""
    bootstrap_owner_password: str = ""

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
