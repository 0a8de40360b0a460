"""Centralized configuration — all env vars in one place."""

import os

GROQ_OPENAI_ENDPOINT = "https://api.groq.com/openai/v1"


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # Admin portal
        self.admin_key: str | None = os.getenv("ADMIN_KEY")

        # Upstream market data
        self.cache_max_entries: int = int(os.getenv("CACHE_MAX_ENTRIES", "100"))
        self.upstream_timeout_seconds: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))
        self.etherscan_api_key: str | None = os.getenv("ETHERSCAN_API_KEY")

        # Per-client request limit on public data routes
        self.rate_limit_max_requests: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
        self.rate_limit_window_seconds: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

        # Admin assistant (any OpenAI-compatible endpoint, Groq by default)
        self.llm_endpoint: str = os.getenv("LLM_ENDPOINT", GROQ_OPENAI_ENDPOINT)
        self.llm_api_key: str | None = os.getenv("LLM_API_KEY") or os.getenv("GROQ_API_KEY")
        self.llm_model: str = os.getenv("LLM_MODEL", "llama-3.3-70b-versatile")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> list[str]:
        """Return list of missing env vars for admin features."""
        required = ["ADMIN_KEY", "LLM_API_KEY"]
        return [var for var in required if not getattr(self, _attr_for(var))]


settings = Settings()


def _attr_for(env_var: str) -> str:
    """Map env var name to Settings attribute name."""
    mapping = {
        "ADMIN_KEY": "admin_key",
        "LLM_API_KEY": "llm_api_key",
    }
    return mapping.get(env_var, env_var.lower())
