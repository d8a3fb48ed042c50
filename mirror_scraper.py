"""
Mirror Scraper
Resolves X/Twitter links through an ordered list of Nitter-style mirrors,
pulls contract addresses from the first usable page and follows one hop
of off-platform links from post pages.

Best effort throughout: a dead mirror, parked page or failed hop is logged
and skipped, never raised.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set
from urllib.parse import urljoin, urlparse

import aiohttp
from bs4 import BeautifulSoup

from address_extractor import extract_addresses
from errors import DiscoveryError, TransientFetchError, UnusablePageError

logger = logging.getLogger(__name__)

PLATFORM_HOSTS = ('x.com', 'twitter.com')
HANDLE_REGEX = re.compile(r'^[A-Za-z0-9_]{1,15}$')
STATUS_PATH_REGEX = re.compile(r'/status/')
PERMALINK_PATH_REGEX = re.compile(r'/status/\d+$')

ACCEPT_HEADER = 'text/html,application/json;q=0.9,*/*;q=0.8'

MAX_PROFILE_TWEETS = 5
MAX_EXTERNAL_LINKS = 10
MIN_AUTHENTIC_LENGTH = 2000


@dataclass(frozen=True)
class ScanDetail:
    """Addresses found on exactly one fetched page"""
    url: str
    evm: FrozenSet[str] = frozenset()
    sol: FrozenSet[str] = frozenset()

    @property
    def has_addresses(self) -> bool:
        return bool(self.evm or self.sol)


@dataclass
class ScanResult:
    """Union of addresses across a batch plus per-page details"""
    evm_addresses: Set[str] = field(default_factory=set)
    solana_addresses: Set[str] = field(default_factory=set)
    details: List[ScanDetail] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.evm_addresses or self.solana_addresses)

    def add(self, detail: ScanDetail):
        self.evm_addresses.update(detail.evm)
        self.solana_addresses.update(detail.sol)
        self.details.append(detail)

    def merge(self, other: 'ScanResult') -> 'ScanResult':
        return ScanResult(
            evm_addresses=self.evm_addresses | other.evm_addresses,
            solana_addresses=self.solana_addresses | other.solana_addresses,
            details=[*self.details, *other.details],
        )


@dataclass(frozen=True)
class FetchOutcome:
    """Result of one fetch: 'ok' with a body, or 'failed' with the error"""
    url: str
    status: str
    body: str = ''
    error: Optional[DiscoveryError] = None

    @property
    def ok(self) -> bool:
        return self.status == 'ok'


def looks_like_nitter_html(html: str) -> bool:
    """Heuristic: genuine Nitter/X page rather than a parked placeholder"""
    s = str(html or '').lower()
    if 'name="generator" content="nitter"' in s:
        return True
    if 'class="profile-card"' in s or 'class="timeline"' in s:
        return True
    if 'class="tweet"' in s or '/status/' in s:
        return True
    if 'window.park' in s or 'data-adblockkey' in s:
        return False
    return len(s) >= MIN_AUTHENTIC_LENGTH


def is_status_url(url: str) -> bool:
    """True when the path contains a /status/ segment"""
    try:
        return bool(STATUS_PATH_REGEX.search(urlparse(url).path))
    except ValueError:
        return False


def is_platform_host(host: str) -> bool:
    """x.com, twitter.com or any of their subdomains"""
    host = (host or '').lower()
    return any(host == h or host.endswith('.' + h) for h in PLATFORM_HOSTS)


def map_to_mirror_candidates(url: str, mirror: str, is_first_mirror: bool) -> List[str]:
    """
    Request URLs to try for one source URL on one mirror.

    Posts become <mirror>/<handle>/status/<id>, profiles <mirror>/<handle>.
    Anything else is passed through untouched, on the first mirror only.
    """
    candidates = []
    try:
        parsed = urlparse(url)
        if is_platform_host(parsed.hostname or ''):
            parts = [p for p in parsed.path.split('/') if p]
            user = parts[0] if parts else ''
            if is_status_url(url):
                if user and len(parts) > 2 and parts[2]:
                    candidates.append(f"{mirror}/{user}/status/{parts[2]}")
            elif HANDLE_REGEX.match(user):
                candidates.append(f"{mirror}/{user}")
    except ValueError:
        pass
    if not candidates and is_first_mirror:
        candidates.append(url)
    return candidates


def anchor_hrefs(html: str) -> List[str]:
    """href of every <a> on the page, entities decoded, in page order"""
    try:
        soup = BeautifulSoup(html or '', 'html.parser')
        return [a.get('href', '').strip() for a in soup.find_all('a', href=True)]
    except Exception as e:
        logger.debug(f"Could not parse page links: {e}")
        return []


def extract_tweet_links(html: str, origin: str) -> List[str]:
    """
    Absolute, de-duplicated tweet permalinks in page order.

    Nitter appends "#m" to permalinks; query and fragment are dropped.
    """
    out = []
    for href in anchor_hrefs(html):
        try:
            parsed = urlparse(urljoin(origin + '/', href))
        except ValueError:
            continue
        if not PERMALINK_PATH_REGEX.search(parsed.path):
            continue
        link = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
        if link not in out:
            out.append(link)
    return out


def extract_hrefs(html: str, base_url: str) -> List[str]:
    """Anchor targets resolved against the page URL"""
    out = []
    for href in anchor_hrefs(html):
        try:
            out.append(urljoin(base_url, href))
        except ValueError:
            continue
    return out


def origin_of(url: str) -> str:
    """scheme://host[:port] of a URL"""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


class MirrorScraper:
    """Scans social links for contract addresses via mirror sites"""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        mirrors: Sequence[str],
        timeout: float = 12.0,
        attempts: int = 1,
        attempt_delay: float = 1.5,
        max_redirects: int = 5,
        user_agent: str = 'Mozilla/5.0 (compatible; TrendScannerBot/1.0)',
    ):
        self.session = session
        self.mirrors = tuple(m.rstrip('/') for m in mirrors if m)
        self.timeout = timeout
        self.attempts = max(1, attempts)
        self.attempt_delay = attempt_delay
        self.max_redirects = max_redirects
        self.user_agent = user_agent
        self.mirror_hosts = frozenset(
            (urlparse(m).hostname or '').lower() for m in self.mirrors
        )

    @classmethod
    def from_config(cls, session: aiohttp.ClientSession, cfg) -> 'MirrorScraper':
        return cls(
            session,
            cfg.mirrors,
            timeout=cfg.fetch_timeout,
            attempts=cfg.fetch_attempts,
            attempt_delay=cfg.attempt_delay,
            max_redirects=cfg.max_redirects,
            user_agent=cfg.user_agent,
        )

    def is_platform_url(self, url: str) -> bool:
        """True for X/Twitter, any Nitter host and every configured mirror"""
        host = (urlparse(url).hostname or '').lower()
        return is_platform_host(host) or 'nitter.' in host or host in self.mirror_hosts

    def _headers(self, referer: str) -> Dict[str, str]:
        return {
            'user-agent': self.user_agent,
            'accept': ACCEPT_HEADER,
            'accept-language': 'en-US,en;q=0.9',
            'referer': referer,
        }

    async def fetch(self, url: str, referer: str = 'https://x.com/') -> FetchOutcome:
        """GET with timeout, bounded redirects and only 2xx/3xx accepted"""
        error = None
        for attempt in range(self.attempts):
            if attempt:
                await asyncio.sleep(self.attempt_delay)
            try:
                async with self.session.get(
                    url,
                    headers=self._headers(referer),
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    allow_redirects=True,
                    max_redirects=self.max_redirects,
                ) as response:
                    if not 200 <= response.status < 400:
                        error = TransientFetchError(url, f"HTTP {response.status}")
                        continue
                    body = await response.text(errors='replace')
                    return FetchOutcome(url=url, status='ok', body=body)
            except asyncio.TimeoutError:
                error = TransientFetchError(url, f"timeout after {self.timeout}s")
            except Exception as e:
                error = TransientFetchError(url, str(e) or type(e).__name__)
        return FetchOutcome(url=url, status='failed', error=error)

    async def scan(self, urls: Iterable[str]) -> ScanResult:
        """Scan every source URL; failures are skipped, never raised"""
        result = ScanResult()
        unique = list(dict.fromkeys(u for u in (urls or []) if u))
        for src in unique:
            try:
                await self._scan_source(src, result)
            except Exception as e:
                logger.warning(f"Failed to scan {src}: {e}")
        return result

    async def _scan_source(self, src: str, result: ScanResult):
        resolved = await self._resolve_via_mirrors(src)
        if resolved is None:
            logger.warning(f"No usable mirror page for {src}")
            return

        outcome, extracted, tweet_links = resolved
        result.add(ScanDetail(url=outcome.url, evm=extracted.evm, sol=extracted.sol))

        if is_status_url(outcome.url):
            await self._follow_external_links(outcome.body, outcome.url, result)
            return

        for tweet_url in tweet_links:
            await self._scan_tweet_page(tweet_url, outcome.url, result)

    async def _resolve_via_mirrors(self, src: str):
        """First usable (outcome, addresses, tweet links) across mirrors, or None"""
        for index, mirror in enumerate(self.mirrors):
            last_error = None
            for fetch_url in map_to_mirror_candidates(src, mirror, index == 0):
                logger.info(f"Scanning single page: {fetch_url}")
                outcome = await self.fetch(fetch_url)
                if not outcome.ok:
                    last_error = outcome.error
                    continue

                extracted = extract_addresses(outcome.body)
                tweet_links: List[str] = []
                if not is_status_url(fetch_url):
                    tweet_links = extract_tweet_links(
                        outcome.body, origin_of(fetch_url)
                    )[:MAX_PROFILE_TWEETS]

                usable = (
                    looks_like_nitter_html(outcome.body)
                    or extracted.total > 0
                    or len(tweet_links) > 0
                )
                if usable:
                    return outcome, extracted, tweet_links
                last_error = UnusablePageError(fetch_url)
            if last_error:
                logger.warning(f"Failed on mirror {mirror}: {last_error}")
        return None

    async def _scan_tweet_page(self, tweet_url: str, referer: str, result: ScanResult):
        outcome = await self.fetch(tweet_url, referer=referer)
        if not outcome.ok:
            logger.warning(f"Failed to fetch tweet page {tweet_url}: {outcome.error}")
            return
        extracted = extract_addresses(outcome.body)
        if extracted.total:
            result.add(ScanDetail(url=tweet_url, evm=extracted.evm, sol=extracted.sol))
        await self._follow_external_links(outcome.body, tweet_url, result)

    async def _follow_external_links(self, html: str, page_url: str, result: ScanResult):
        """The single off-platform hop: fetch each external link once"""
        external = [
            link for link in extract_hrefs(html, page_url)
            if link.lower().startswith(('http://', 'https://'))
            and not self.is_platform_url(link)
        ]
        for link in list(dict.fromkeys(external))[:MAX_EXTERNAL_LINKS]:
            outcome = await self.fetch(link, referer=page_url)
            if not outcome.ok:
                logger.debug(f"External link {link} skipped: {outcome.error}")
                continue
            extracted = extract_addresses(outcome.body)
            if extracted.total:
                result.add(ScanDetail(url=link, evm=extracted.evm, sol=extracted.sol))

    async def scan_tweets_with_profile_fallback(self, tweet_urls: Iterable[str]) -> ScanResult:
        """Scan tweets; if nothing turns up, scan their authors' profiles too"""
        unique = list(dict.fromkeys(u for u in (tweet_urls or []) if u))
        if not unique:
            return ScanResult()

        primary = await self.scan(unique)
        if primary.found:
            return primary

        profiles = []
        for url in unique:
            parsed = urlparse(url)
            if not is_platform_host(parsed.hostname or ''):
                continue
            parts = [p for p in parsed.path.split('/') if p]
            if parts:
                profiles.append(f"{parsed.scheme}://{parsed.hostname}/{parts[0]}")

        logger.info(f"No addresses in {len(unique)} tweets, trying {len(set(profiles))} author profiles")
        return primary.merge(await self.scan(profiles))
