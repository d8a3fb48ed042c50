"""
Folds parsed bot text and scan results into one report with per-address
source attribution, then splits it into Telegram-sized chunks.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Sequence, Set
from urllib.parse import urlparse

from errors import AggregationError
from mirror_scraper import ScanDetail, ScanResult
from trend_parser import ParsedTrend

logger = logging.getLogger(__name__)

CANONICAL_HOST = 'https://x.com'
NONE_PLACEHOLDER = '(none)'
SOURCE_DELIMITER = ', '
DEFAULT_MAX_CHUNK = 3500


@dataclass
class AggregatedDiscovery:
    evm_addresses: Set[str] = field(default_factory=set)
    solana_addresses: Set[str] = field(default_factory=set)
    details: List[ScanDetail] = field(default_factory=list)
    evm_sources: Dict[str, Set[str]] = field(default_factory=dict)
    sol_sources: Dict[str, Set[str]] = field(default_factory=dict)

    @property
    def has_sources(self) -> bool:
        return bool(self.evm_sources or self.sol_sources)


def to_canonical_url(url: str, mirror_hosts: FrozenSet[str] = frozenset()) -> str:
    """Rewrite a mirror URL back to its x.com form; others pass through"""
    try:
        parsed = urlparse(url)
        host = (parsed.hostname or '').lower()
        if 'nitter' not in host and host not in mirror_hosts:
            return url
        parts = [p for p in parsed.path.split('/') if p]
        if len(parts) >= 3 and parts[1] == 'status':
            return f"{CANONICAL_HOST}/{parts[0]}/status/{parts[2]}"
        if parts:
            return f"{CANONICAL_HOST}/{parts[0]}"
    except ValueError:
        pass
    return url


def aggregate(parsed: ParsedTrend, scans: Iterable[ScanResult],
              mirror_hosts: Iterable[str] = ()) -> AggregatedDiscovery:
    try:
        hosts = frozenset(h.lower() for h in mirror_hosts if h)
        result = AggregatedDiscovery()
        result.evm_addresses.update(a.lower() for a in parsed.evm_addresses)
        result.solana_addresses.update(parsed.solana_addresses)

        for scan in scans:
            result.evm_addresses.update(a.lower() for a in scan.evm_addresses)
            result.solana_addresses.update(scan.solana_addresses)
            for detail in scan.details:
                result.details.append(detail)
                source = to_canonical_url(detail.url, hosts)
                for address in detail.evm:
                    key = address.lower()
                    result.evm_addresses.add(key)
                    result.evm_sources.setdefault(key, set()).add(source)
                for address in detail.sol:
                    result.solana_addresses.add(address)
                    result.sol_sources.setdefault(address, set()).add(source)
        return result
    except Exception as e:
        raise AggregationError(f"could not aggregate discovery results: {e}") from e


def _source_lines(addresses: Sequence[str], index: Dict[str, Set[str]]) -> List[str]:
    lines = []
    for address in addresses:
        sources = sorted(index.get(address) or ())
        if sources:
            lines.append(f"- {address} <- {SOURCE_DELIMITER.join(sources)}")
    return lines


def render(discovery: AggregatedDiscovery, header: str = 'Latest Burp Smells') -> str:
    evm = sorted(discovery.evm_addresses)
    sol = sorted(discovery.solana_addresses)

    lines = [
        header,
        f"EVM ({len(evm)}):",
        ', '.join(evm) if evm else NONE_PLACEHOLDER,
        f"SOL ({len(sol)}):",
        ', '.join(sol) if sol else NONE_PLACEHOLDER,
    ]

    if discovery.has_sources:
        lines.append('')
        if discovery.evm_sources:
            lines.append('Sources (EVM):')
            lines.extend(_source_lines(evm, discovery.evm_sources))
        if discovery.sol_sources:
            lines.append('Sources (SOL):')
            lines.extend(_source_lines(sol, discovery.sol_sources))

    return '\n'.join(lines)


def chunk_message(text: str, max_len: int = DEFAULT_MAX_CHUNK) -> List[str]:
    """
    Split at line boundaries into chunks of at most max_len characters.
    A single line longer than max_len is never cut; it becomes its own chunk.
    """
    chunks = []
    current = ''
    started = False
    for line in (text or '').split('\n'):
        if not started:
            current = line
            started = True
        elif len(current) + 1 + len(line) > max_len:
            # a lone blank line cannot be sent as a chunk of its own
            if current:
                chunks.append(current)
            current = line
        else:
            current = f"{current}\n{line}"
    if current:
        chunks.append(current)
    return chunks


def render_chunks(discovery: AggregatedDiscovery, header: str = 'Latest Burp Smells',
                  max_len: int = DEFAULT_MAX_CHUNK) -> List[str]:
    return chunk_message(render(discovery, header), max_len)
