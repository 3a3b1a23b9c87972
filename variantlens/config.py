"""
VariantLens runtime configuration
=================================

All tunables are read from the environment once, at import time, so importing
any module is side-effect free apart from these reads. Nothing here touches the
network.

Environment toggles
-------------------
CALL_TIMEOUT_S            (default: 5.0 seconds, hard per-attempt timeout)
HTTP_RETRIES              (default: 3 retries after the first attempt)
HTTP_BACKOFF              (default: 0.5 seconds base, doubled per attempt)
HTTP_JITTER_S             (default: 0.1 seconds max random jitter)
CB_FAILURE_THRESHOLD      (default: 5 consecutive failures)
CB_OPEN_SECONDS           (default: 30 seconds)
CB_RATE_LIMIT_SECONDS     (default: 60 seconds, cooldown after HTTP 429)
SIFTS_CACHE_TTL_S         (default: 300)
STRUCTURE_CACHE_TTL_S     (default: 3600)
CLINICAL_CACHE_TTL_S      (default: 3600)
LITERATURE_CACHE_TTL_S    (default: 7200)
UNIPROT_CACHE_TTL_S       (default: 3600)
STRUCTURE_MAX_CANDIDATES  (default: 5)
STRUCTURE_FANOUT          (default: 5)
MAX_RESOLUTION_A          (default: 3.5 Å)
GENERATION_TIMEOUT_S      (default: 30.0 seconds, text-generation providers)
OUTBOUND_USER_AGENT       (default: "VariantLens/2.0")
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default

def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


CALL_TIMEOUT_S = _float_env("CALL_TIMEOUT_S", 5.0)
HTTP_RETRIES = _int_env("HTTP_RETRIES", 3)
HTTP_BACKOFF = _float_env("HTTP_BACKOFF", 0.5)
HTTP_JITTER_S = _float_env("HTTP_JITTER_S", 0.1)

CB_FAILURE_THRESHOLD = _int_env("CB_FAILURE_THRESHOLD", 5)
CB_OPEN_SECONDS = _float_env("CB_OPEN_SECONDS", 30.0)
CB_RATE_LIMIT_SECONDS = _float_env("CB_RATE_LIMIT_SECONDS", 60.0)

# TTL classes (seconds)
SIFTS_CACHE_TTL_S = _int_env("SIFTS_CACHE_TTL_S", 5 * 60)
STRUCTURE_CACHE_TTL_S = _int_env("STRUCTURE_CACHE_TTL_S", 3600)
CLINICAL_CACHE_TTL_S = _int_env("CLINICAL_CACHE_TTL_S", 3600)
LITERATURE_CACHE_TTL_S = _int_env("LITERATURE_CACHE_TTL_S", 2 * 3600)
UNIPROT_CACHE_TTL_S = _int_env("UNIPROT_CACHE_TTL_S", 3600)

STRUCTURE_MAX_CANDIDATES = _int_env("STRUCTURE_MAX_CANDIDATES", 5)
STRUCTURE_FANOUT = _int_env("STRUCTURE_FANOUT", 5)
MAX_RESOLUTION_A = _float_env("MAX_RESOLUTION_A", 3.5)

GENERATION_TIMEOUT_S = _float_env("GENERATION_TIMEOUT_S", 30.0)

USER_AGENT = os.getenv("OUTBOUND_USER_AGENT", "VariantLens/2.0 (+evidence-core)")


@dataclass(frozen=True)
class GatewayPolicy:
    """Timeout, retry and circuit tunables for one Gateway instance."""
    timeout: float = CALL_TIMEOUT_S
    max_retries: int = HTTP_RETRIES
    backoff_base: float = HTTP_BACKOFF
    jitter: float = HTTP_JITTER_S
    failure_threshold: int = CB_FAILURE_THRESHOLD
    cooldown: float = CB_OPEN_SECONDS
    rate_limit_cooldown: float = CB_RATE_LIMIT_SECONDS


DEFAULT_POLICY = GatewayPolicy()
