"""
Error taxonomy for the trend discovery pipeline.

Fetch, usability, correlation and parse errors are recovered where they
occur. Only ConfigurationError and AggregationError abort a run.
"""


class DiscoveryError(Exception):
    """Base class for every discovery error"""


class TransientFetchError(DiscoveryError):
    """Network failure, timeout or non 2xx/3xx status on one fetch"""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class UnusablePageError(DiscoveryError):
    """Fetch succeeded but the body looks like a parked/placeholder page"""

    def __init__(self, url: str):
        super().__init__(f"unusable mirror response from {url}")
        self.url = url


class CorrelationTimeout(DiscoveryError):
    """No qualifying bot reply arrived within the wait window"""


class ParseAnomaly(DiscoveryError):
    """Text could not be fully normalized; extraction runs on the raw input"""


class ConfigurationError(DiscoveryError):
    """Caller-level misconfiguration, e.g. no target chat"""


class AggregationError(DiscoveryError):
    """Merging scan results into the final report failed"""
