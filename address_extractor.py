"""
Contract address extraction from free text and HTML pages.

Everything here is pure: no I/O, same input -> same output. Each entity
type has its own small function so they can be composed (and tested) on
their own.
"""

import html
import logging
import re
from typing import FrozenSet, NamedTuple

from errors import ParseAnomaly

logger = logging.getLogger(__name__)

EVM_REGEX = re.compile(r'0x[a-fA-F0-9]{40}')
# Up to 60 so "<address>pump" still matches; trimmed back to 44 afterwards
SOLANA_CANDIDATE_REGEX = re.compile(r'\b[1-9A-HJ-NP-Za-km-z]{32,60}\b')

PUMP_SUFFIX_REGEX = re.compile(r'pump$', re.IGNORECASE)
SOLANA_MIN_LENGTH = 32
SOLANA_MAX_LENGTH = 44

_SCRIPT_RE = re.compile(r'<script[\s\S]*?</script>', re.IGNORECASE)
_STYLE_RE = re.compile(r'<style[\s\S]*?</style>', re.IGNORECASE)
_TAG_RE = re.compile(r'<[^>]+>')
_ZERO_WIDTH_RE = re.compile('[\u200B-\u200D\uFEFF]')
_DASH_RE = re.compile('[\u2010-\u2015\u2212]')
_WHITESPACE_RE = re.compile(r'\s+')


class ExtractedAddresses(NamedTuple):
    evm: FrozenSet[str]
    sol: FrozenSet[str]

    @property
    def total(self) -> int:
        return len(self.evm) + len(self.sol)


EMPTY = ExtractedAddresses(frozenset(), frozenset())


def normalize_text(html_like) -> str:
    """Decode entities, drop scripts/styles/tags, normalize odd characters"""
    try:
        text = html.unescape(str(html_like))
        text = _SCRIPT_RE.sub(' ', text)
        text = _STYLE_RE.sub(' ', text)
        text = _TAG_RE.sub(' ', text)
        text = _ZERO_WIDTH_RE.sub('', text)
        text = _DASH_RE.sub('-', text)
        return _WHITESPACE_RE.sub(' ', text)
    except Exception as e:
        raise ParseAnomaly(f"could not normalize text: {e}") from e


def sanitize_html_to_text(html_like) -> str:
    """normalize_text, degrading to the raw input on a ParseAnomaly"""
    try:
        return normalize_text(html_like)
    except ParseAnomaly as e:
        logger.debug(f"{e}; using raw text")
        return str(html_like or '')


def find_evm_addresses(text: str) -> FrozenSet[str]:
    """0x + 40 hex. Case is kept; lower-casing happens at aggregation."""
    return frozenset(EVM_REGEX.findall(text or ''))


def normalize_solana_candidate(candidate: str) -> str:
    """Strip a trailing "pump" and cut to the longest valid length"""
    return PUMP_SUFFIX_REGEX.sub('', candidate)[:SOLANA_MAX_LENGTH]


def is_solana_address(value: str) -> bool:
    """Base58 string of 32 to 44 characters"""
    return (
        SOLANA_MIN_LENGTH <= len(value) <= SOLANA_MAX_LENGTH
        and not value.startswith('0x')
    )


def find_solana_addresses(text: str) -> FrozenSet[str]:
    """Normalized, validated Solana addresses in the text"""
    found = set()
    for candidate in SOLANA_CANDIDATE_REGEX.findall(text or ''):
        address = normalize_solana_candidate(candidate)
        if is_solana_address(address):
            found.add(address)
    return frozenset(found)


def extract_addresses(text) -> ExtractedAddresses:
    """Sanitize text then pull out EVM and Solana address candidates"""
    if not text:
        return EMPTY
    cleaned = sanitize_html_to_text(text)
    return ExtractedAddresses(
        evm=find_evm_addresses(cleaned),
        sol=find_solana_addresses(cleaned),
    )
