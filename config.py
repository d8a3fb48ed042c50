"""
Runtime settings for the discovery bot, read from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

# =========================
# Mirrors
# =========================
DEFAULT_MIRRORS: Tuple[str, ...] = (
    "https://nitter.net",
    "https://nitter.it",
    "https://nitter.fdn.fr",
    "https://nitter.domain.glass",
    "https://nitter.poast.org",
    "https://nitter.moomoo.me",
    "https://twitt.re",
    "https://nitter.dashy.a3x.dn.nyx.im",
    "http://46.250.231.226:8889",
    "https://nitter.privacydev.net",
    "https://xcancel.com",
)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; TrendScannerBot/1.0; +https://example.com/bot)"

# =========================
# Trend bot
# =========================
DEFAULT_BOT_HANDLE = "@RickBurpBot"
TWEETS_COMMAND = "/tt@rick"
PROFILES_COMMAND = "/xt@rick"
RESPONSE_KEYWORDS: Tuple[str, ...] = ("Trending", "𝕏", "twitter.com", "x.com")

REPORT_HEADER = "Latest Burp Smells"


@dataclass(frozen=True)
class DiscoveryConfig:
    """Values consumed by one discovery run. Loading lives in load_config()."""
    chat_id: Optional[str] = None
    prompt_chat_ids: Tuple[str, ...] = ()
    bot_handle: str = DEFAULT_BOT_HANDLE
    tweets_command: str = TWEETS_COMMAND
    profiles_command: str = PROFILES_COMMAND
    response_keywords: Tuple[str, ...] = RESPONSE_KEYWORDS

    # Correlation (seconds)
    reply_timeout: float = 15.0
    poll_interval: float = 3.0
    max_messages_per_scan: int = 120
    poll_slack: float = 15.0
    relaxed_window: float = 180.0

    # Scraping
    primary_mirror: Optional[str] = None
    fallback_mirrors: Tuple[str, ...] = ()
    default_mirrors: Tuple[str, ...] = DEFAULT_MIRRORS
    fetch_timeout: float = 12.0
    fetch_attempts: int = 1
    attempt_delay: float = 1.5
    max_redirects: int = 5
    user_agent: str = DEFAULT_USER_AGENT

    # Reporting
    max_chunk_length: int = 3500
    report_header: str = REPORT_HEADER

    # Credentials
    bot_token: Optional[str] = field(default=None, repr=False)
    api_id: Optional[int] = None
    api_hash: Optional[str] = field(default=None, repr=False)
    session_string: Optional[str] = field(default=None, repr=False)
    session_file: str = "data/user.session"

    @property
    def mirrors(self) -> List[str]:
        return mirror_list(self)


def mirror_list(cfg: DiscoveryConfig) -> List[str]:
    """Primary -> fallbacks -> built-in defaults, de-duplicated, order kept"""
    ordered = []
    seen = set()
    for base in [cfg.primary_mirror, *cfg.fallback_mirrors, *cfg.default_mirrors]:
        if not base:
            continue
        base = base.strip().rstrip("/")
        if base and base not in seen:
            seen.add(base)
            ordered.append(base)
    return ordered


def _int_or_none(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _csv(value: Optional[str]) -> Tuple[str, ...]:
    return tuple(s.strip() for s in (value or "").split(",") if s.strip())


def load_config(environ: Optional[Mapping[str, str]] = None) -> DiscoveryConfig:
    """Build a DiscoveryConfig from environment variables"""
    env: Mapping[str, str] = os.environ if environ is None else environ

    chat_id = (env.get("TELEGRAM_GROUP_ID") or "").strip() or None
    prompt_chats = _csv(env.get("TELEGRAM_GROUP_IDS"))
    if not prompt_chats and chat_id:
        prompt_chats = (chat_id,)

    wait_ms = _int_or_none(env.get("RICK_REPLY_WAIT_MS")) or 15000
    delay_ms = _int_or_none(env.get("NITTER_ATTEMPT_DELAY_MS"))
    timeout_ms = _int_or_none(env.get("SCAN_TIMEOUT_MS")) or 12000
    max_chunk = _int_or_none(env.get("MAX_CHUNK_LENGTH")) or 3500

    return DiscoveryConfig(
        chat_id=chat_id,
        prompt_chat_ids=prompt_chats,
        bot_handle=env.get("RICKBURP_BOT_USERNAME") or DEFAULT_BOT_HANDLE,
        reply_timeout=wait_ms / 1000,
        primary_mirror=(env.get("NITTER_BASE_URL") or "").strip() or None,
        fallback_mirrors=_csv(env.get("NITTER_FALLBACKS")),
        fetch_timeout=timeout_ms / 1000,
        attempt_delay=(delay_ms if delay_ms is not None else 1500) / 1000,
        max_chunk_length=max_chunk,
        bot_token=env.get("TELEGRAM_BOT_TOKEN") or None,
        api_id=_int_or_none(env.get("TELEGRAM_API_ID")),
        api_hash=env.get("TELEGRAM_API_HASH") or None,
        session_string=(env.get("TELEGRAM_USER_SESSION") or "").strip() or None,
        session_file=env.get("TELEGRAM_USER_SESSION_FILE") or "data/user.session",
    )


def describe(cfg: DiscoveryConfig) -> Dict[str, object]:
    """Loggable view of the config without credentials"""
    return {
        "chat_id": cfg.chat_id,
        "bot_handle": cfg.bot_handle,
        "reply_timeout": cfg.reply_timeout,
        "mirrors": len(cfg.mirrors),
        "fetch_timeout": cfg.fetch_timeout,
        "max_chunk_length": cfg.max_chunk_length,
    }
