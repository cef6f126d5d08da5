"""
Environment configuration
"""

import os
from functools import lru_cache
from pydantic_settings import BaseSettings

TRANSPORT_MODES = ["auto", "function", "http", "mock"]
REPOSITORY_KINDS = ["memory", "postgrest"]


class Settings(BaseSettings):
    # Generation transport
    TRANSPORT_MODE: str = os.getenv("TRANSPORT_MODE", "auto")
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
    GENERATION_BASE_URL: str = os.getenv("GENERATION_BASE_URL", "")
    GENERATION_TIMEOUT: int = int(os.getenv("GENERATION_TIMEOUT", "30"))

    # Upstream model behind the edge proxy
    UPSTREAM_MODEL_URL: str = os.getenv("UPSTREAM_MODEL_URL", "")
    UPSTREAM_API_KEY: str = os.getenv("UPSTREAM_API_KEY", "")
    UPSTREAM_TIMEOUT: int = int(os.getenv("UPSTREAM_TIMEOUT", "30"))

    # Edge rate limiting
    EDGE_RATE_LIMIT_PER_MIN: int = int(os.getenv("EDGE_RATE_LIMIT_PER_MIN", "8"))
    EDGE_RATE_WINDOW_SECONDS: int = int(os.getenv("EDGE_RATE_WINDOW_SECONDS", "60"))
    EDGE_MAX_PROMPT_LENGTH: int = int(os.getenv("EDGE_MAX_PROMPT_LENGTH", "6000"))

    # Story persistence
    STORY_REPOSITORY: str = os.getenv("STORY_REPOSITORY", "memory")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = ".env"
        extra = "ignore"

    def function_invocation_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY)

    def get_available_transports(self) -> dict:
        """Transports that could be selected with the current environment"""
        return {
            "function": self.function_invocation_configured(),
            "http": bool(self.GENERATION_BASE_URL),
            "mock": True
        }

    def get_current_transport_info(self) -> dict:
        """Transport that `auto` resolves to"""
        mode = self.TRANSPORT_MODE.lower()

        if mode in ("auto", "function") and self.function_invocation_configured():
            return {
                "transport": "function",
                "endpoint": f"{self.SUPABASE_URL.rstrip('/')}/functions/v1/gemini-proxy",
                "status": "configured"
            }
        elif mode in ("auto", "http") and self.GENERATION_BASE_URL:
            return {
                "transport": "http",
                "endpoint": f"{self.GENERATION_BASE_URL.rstrip('/')}/functions/v1/gemini-proxy",
                "status": "configured"
            }
        else:
            return {
                "transport": "mock",
                "endpoint": None,
                "status": "fallback"
            }

    def validate_settings(self) -> list:
        """Return configuration warnings"""
        warnings = []

        if self.TRANSPORT_MODE.lower() not in TRANSPORT_MODES:
            warnings.append(f"Unknown TRANSPORT_MODE: {self.TRANSPORT_MODE}")

        if self.TRANSPORT_MODE.lower() == "function" and not self.function_invocation_configured():
            warnings.append("Function transport selected but SUPABASE_URL/SUPABASE_ANON_KEY are missing.")

        if self.TRANSPORT_MODE.lower() == "http" and not self.GENERATION_BASE_URL:
            warnings.append("HTTP transport selected but GENERATION_BASE_URL is missing.")

        if self.STORY_REPOSITORY.lower() not in REPOSITORY_KINDS:
            warnings.append(f"Unknown STORY_REPOSITORY: {self.STORY_REPOSITORY}")

        if self.STORY_REPOSITORY.lower() == "postgrest" and not self.function_invocation_configured():
            warnings.append("PostgREST repository selected but SUPABASE_URL/SUPABASE_ANON_KEY are missing.")

        if not self.UPSTREAM_MODEL_URL:
            warnings.append("UPSTREAM_MODEL_URL is not set; the edge proxy answers with mock stories.")

        if self.EDGE_RATE_LIMIT_PER_MIN < 1:
            warnings.append("EDGE_RATE_LIMIT_PER_MIN must be at least 1.")

        if self.EDGE_MAX_PROMPT_LENGTH > 6000:
            warnings.append("EDGE_MAX_PROMPT_LENGTH is above the composer's 6000 character cap.")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    return Settings()
