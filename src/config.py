import logging
import os

from dotenv import load_dotenv

from src.interfaces.policy import FailurePolicy
from src.utils.env import parse_env_bool, parse_env_list, parse_env_number


class _Config:
    TURNSTILE_ENABLED: bool
    TURNSTILE_SECRET_KEY: str | None
    TURNSTILE_VERIFY_URL: str
    TURNSTILE_TIMEOUT: float

    GLOBAL_LIMIT_ENABLED: bool
    GLOBAL_DAILY_LIMIT: int
    RATE_LIMIT_FAILURE_POLICY: FailurePolicy

    ALLOWED_ORIGINS: list[str]

    FREE_API_KEY: str | None
    OPENROUTER_API_BASE_URL: str
    PAID_CENTRAL_MODEL: str
    FREE_MODEL: str
    FREE_TIER_FALLBACK_ENABLED: bool
    UPSTREAM_TIMEOUT: float
    DEFAULT_TEMPERATURE: float
    DEFAULT_MAX_TOKENS: int
    APP_REFERER: str
    APP_TITLE: str

    BALANCE_CACHE_TTL: int
    BALANCE_STALE_TTL: int
    BALANCE_SAFETY_MARGIN: float
    BALANCE_TIMEOUT: float
    BALANCE_FAILURE_POLICY: FailurePolicy

    SESSION_SECRET: str | None
    SESSION_TOKEN_TTL: int

    REDIS_URL: str | None

    LOG_LEVEL: int
    LOG_FILE: str | None
    IS_DEVELOPMENT: bool

    def __init__(self):
        load_dotenv()
        self.TURNSTILE_ENABLED = parse_env_bool(os.getenv("TURNSTILE_ENABLED"))
        self.TURNSTILE_SECRET_KEY = os.getenv("TURNSTILE_SECRET_KEY") or None
        self.TURNSTILE_VERIFY_URL = os.getenv(
            "TURNSTILE_VERIFY_URL", "https://challenges.cloudflare.com/turnstile/v0/siteverify"
        )
        self.TURNSTILE_TIMEOUT = parse_env_number(os.getenv("TURNSTILE_TIMEOUT"), 10.0)

        self.GLOBAL_LIMIT_ENABLED = parse_env_bool(os.getenv("GLOBAL_LIMIT_ENABLED"))
        self.GLOBAL_DAILY_LIMIT = int(parse_env_number(os.getenv("GLOBAL_DAILY_LIMIT"), 100))
        self.RATE_LIMIT_FAILURE_POLICY = FailurePolicy.parse(os.getenv("RATE_LIMIT_FAILURE_POLICY"))

        self.ALLOWED_ORIGINS = parse_env_list(os.getenv("ALLOWED_ORIGINS"))

        self.FREE_API_KEY = os.getenv("FREE_API_KEY") or None
        self.OPENROUTER_API_BASE_URL = os.getenv("OPENROUTER_API_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
        self.PAID_CENTRAL_MODEL = os.getenv("PAID_CENTRAL_MODEL", "openai/gpt-oss-120b")
        self.FREE_MODEL = os.getenv("FREE_MODEL", "openai/gpt-oss-120b:free")
        self.FREE_TIER_FALLBACK_ENABLED = parse_env_bool(os.getenv("FREE_TIER_FALLBACK_ENABLED", "true"))
        self.UPSTREAM_TIMEOUT = parse_env_number(os.getenv("UPSTREAM_TIMEOUT"), 120.0)
        self.DEFAULT_TEMPERATURE = parse_env_number(os.getenv("DEFAULT_TEMPERATURE"), 0.7)
        self.DEFAULT_MAX_TOKENS = int(parse_env_number(os.getenv("DEFAULT_MAX_TOKENS"), 32000))
        self.APP_REFERER = os.getenv("APP_REFERER", "https://korykilpatrick.github.io/policy-analyzer/")
        self.APP_TITLE = os.getenv("APP_TITLE", "Privacy Policy Distiller")

        self.BALANCE_CACHE_TTL = int(parse_env_number(os.getenv("BALANCE_CACHE_TTL"), 300))
        self.BALANCE_STALE_TTL = int(parse_env_number(os.getenv("BALANCE_STALE_TTL"), 86400))
        self.BALANCE_SAFETY_MARGIN = parse_env_number(os.getenv("BALANCE_SAFETY_MARGIN"), 0.3)
        self.BALANCE_TIMEOUT = parse_env_number(os.getenv("BALANCE_TIMEOUT"), 10.0)
        self.BALANCE_FAILURE_POLICY = FailurePolicy.parse(os.getenv("BALANCE_FAILURE_POLICY"))

        # Must not be the Turnstile secret
        self.SESSION_SECRET = os.getenv("SESSION_SECRET") or None
        self.SESSION_TOKEN_TTL = int(parse_env_number(os.getenv("SESSION_TOKEN_TTL"), 180))

        self.REDIS_URL = os.getenv("REDIS_URL") or None

        # Configure logging
        log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_LEVEL = getattr(logging, log_level_str, logging.INFO)
        self.LOG_FILE = os.getenv("LOG_FILE", None)
        self.IS_DEVELOPMENT = parse_env_bool(os.getenv("IS_DEVELOPMENT"))

        if self.IS_DEVELOPMENT:
            self.ALLOWED_ORIGINS += [
                origin
                for origin in ("http://localhost:5173", "http://localhost:3000")
                if origin not in self.ALLOWED_ORIGINS
            ]


config = _Config()
