"""
Turns a trend bot reply into addresses, tweet/profile URLs and handles.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Tuple

from address_extractor import extract_addresses, sanitize_html_to_text

logger = logging.getLogger(__name__)

TWEET_URL_REGEX = re.compile(
    r'https?://(?:www\.)?(?:x\.com|twitter\.com)/[A-Za-z0-9_]+/status/\d+',
    re.IGNORECASE,
)
# Same hosts, handle path, but never the start of a status permalink
PROFILE_URL_REGEX = re.compile(
    r'https?://(?:www\.)?(?:x\.com|twitter\.com)/[A-Za-z0-9_]+(?![A-Za-z0-9_])(?!/status/\d)',
    re.IGNORECASE,
)
HANDLE_REGEX = re.compile(r'@[A-Za-z0-9_]{1,15}')
URL_REGEX = re.compile(r'https?://[^\s]+')


@dataclass(frozen=True)
class ParsedTrend:
    """Structured view of one combined bot reply"""
    raw_text: str
    evm_addresses: FrozenSet[str] = frozenset()
    solana_addresses: FrozenSet[str] = frozenset()
    tweet_urls: FrozenSet[str] = frozenset()
    profile_urls: FrozenSet[str] = frozenset()
    profile_handles: FrozenSet[str] = frozenset()
    generic_urls: Tuple[str, ...] = ()
    parsed_at: datetime = field(default_factory=datetime.now, compare=False)


def find_tweet_urls(text: str) -> FrozenSet[str]:
    return frozenset(TWEET_URL_REGEX.findall(text))


def find_profile_urls(text: str) -> FrozenSet[str]:
    return frozenset(PROFILE_URL_REGEX.findall(text))


def find_handles(text: str) -> FrozenSet[str]:
    return frozenset(h.lower() for h in HANDLE_REGEX.findall(text))


def find_urls(text: str) -> Tuple[str, ...]:
    """Every http(s) token in order, duplicates kept"""
    return tuple(URL_REGEX.findall(text))


def parse_trending_data(text: str) -> ParsedTrend:
    text = text or ''
    normalized = sanitize_html_to_text(text)
    addresses = extract_addresses(normalized)

    parsed = ParsedTrend(
        raw_text=text,
        evm_addresses=addresses.evm,
        solana_addresses=addresses.sol,
        tweet_urls=find_tweet_urls(normalized),
        profile_urls=find_profile_urls(normalized),
        profile_handles=find_handles(normalized),
        generic_urls=find_urls(normalized),
    )
    logger.debug(
        f"Parsed {len(parsed.evm_addresses)} EVM, {len(parsed.solana_addresses)} SOL, "
        f"{len(parsed.tweet_urls)} tweets, {len(parsed.profile_urls)} profiles, "
        f"{len(parsed.profile_handles)} handles"
    )
    return parsed
