import os
import logging
from typing import List

from dotenv import load_dotenv


# Load env early
load_dotenv()


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


# Logging configuration
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, log_level, logging.INFO),
)
logger = logging.getLogger(__name__)

# Reduce noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.ExtBot").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.Updater").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.Application").setLevel(logging.WARNING)
logging.getLogger("telegram.bot").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)


class Config:
    """Application configuration read from the environment."""

    # Telegram Bot Configuration
    BOT_TOKEN: str | None = os.getenv("BOT_TOKEN")

    # Closure Studio account
    EMAIL: str = os.getenv("CLOSURE_EMAIL", "").strip()
    PASSWORD: str = os.getenv("CLOSURE_PASSWORD", "")
    DEBUG: bool = _env_flag("DEBUG")

    # Destinations in platform:channelId form, e.g. telegram:123456789
    NOTICE_LIST: List[str] = _env_list("NOTICE_LIST")

    # Where the bearer token survives restarts
    TOKEN_FILE: str = os.getenv("TOKEN_FILE", os.path.join("data", "closure-studio", "token"))

    # Service endpoints
    LOGIN_URL: str = os.getenv("LOGIN_URL", "https://passport.ltsc.vip/api/v1/login").strip()
    ME_URL: str = os.getenv("ME_URL", "https://registry.ltsc.vip/api/users/me").strip()
    GAMES_URL: str = os.getenv("GAMES_URL", "https://api-tunnel.arknights.app/sse/games").strip()

    # Seconds without any byte before the stream is considered dead (0 disables)
    STREAM_IDLE_SECS: float = float(os.getenv("STREAM_IDLE_SECS", "0"))

    @classmethod
    def validate_config(cls) -> None:
        if not cls.BOT_TOKEN:
            raise ValueError("BOT_TOKEN environment variable is required")
        if not cls.EMAIL:
            raise ValueError("CLOSURE_EMAIL environment variable is required")
        if not cls.PASSWORD:
            raise ValueError("CLOSURE_PASSWORD environment variable is required")
        if not cls.NOTICE_LIST:
            logger.warning("NOTICE_LIST not configured - log events will not be forwarded")

    @classmethod
    def stream_idle_timeout(cls) -> float | None:
        return cls.STREAM_IDLE_SECS if cls.STREAM_IDLE_SECS > 0 else None


config = Config()
BOT_TOKEN = config.BOT_TOKEN
NOTICE_LIST = config.NOTICE_LIST

if config.DEBUG:
    logging.getLogger("closurebot").setLevel(logging.DEBUG)
