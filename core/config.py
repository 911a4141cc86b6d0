from functools import lru_cache

from pydantic_settings import BaseSettings

EXIT_MISSING_CONFIG = 2


class Settings(BaseSettings):
    DISCORD_TOKEN: str
    CLIENT_ID: str
    CLIENT_SECRET: str
    DISCORD_PUBLIC_KEY: str
    REDIRECT_URI: str
    BASE_URL: str

    DISCORD_API_URL: str = "https://discord.com/api/v10"
    DISCORD_AUTHORIZE_URL: str = "https://discord.com/oauth2/authorize"
    HTTP_TIMEOUT_SECONDS: float = 10.0
    REGISTER_COMMANDS: bool = True

    DATA_DIR: str = "data"
    SESSIONS_FILE: str = "verified.json"
    COMMUNITY_SETTINGS_FILE: str = "guild-settings.json"

    # Milliseconds
    VERIFICATION_EXPIRATION_MS: int = 300000
    CLEANUP_INTERVAL_MS: int = 60000

    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    @property
    def expiration_minutes(self) -> int:
        return max(1, self.VERIFICATION_EXPIRATION_MS // 60000)

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
