from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # 행 저장소 / 인증 제공자 (Supabase 호환)
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_ANON_KEY: str = ""

    FRONTEND_URL: str = "http://localhost:3000"
    API_BASE_URL: str = "http://localhost:8000"

    FINNHUB_BASE_URL: str = "https://finnhub.io/api/v1"
    FINNHUB_API_KEY: str = ""

    JWT_SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    QUOTE_TIMEOUT_SECONDS: float = 5.0
    ROW_STORE_TIMEOUT_SECONDS: float = 10.0

    # 클라이언트 측 설정
    TOKEN_REFRESH_LEEWAY_SECONDS: int = 30
    PRICE_REFRESH_INTERVAL_SECONDS: float = 60.0
    VIEW_PREFS_PATH: Path = Path.home() / ".stockwatch" / "view.json"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def rest_url(self) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/rest/v1"

    @property
    def auth_url(self) -> str:
        return f"{self.SUPABASE_URL.rstrip('/')}/auth/v1"


@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
