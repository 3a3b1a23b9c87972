# variantlens/clients/sources.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

# ------------------------------------------------------------------------------------
# Model
# ------------------------------------------------------------------------------------
@dataclass(frozen=True)
class Source:
    name: str
    base_url: str
    auth_scheme: Optional[str] = None          # e.g., "Bearer" or "api_key" (query param)
    auth_env: Optional[str] = None             # e.g., "NCBI_API_KEY"
    default_headers: Dict[str, str] = field(default_factory=dict)

    def url(self, path: str) -> str:
        return _join_url(self.base_url, path)

    def token(self) -> Optional[str]:
        return _env(self.auth_env) if self.auth_env else None


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default)


def _json_env(name: str) -> Dict[str, str]:
    raw = os.getenv(name)
    if not raw:
        return {}
    try:
        val = json.loads(raw)
    except ValueError:
        return {}
    return {str(k): str(v) for k, v in val.items()} if isinstance(val, dict) else {}


def _join_url(base: str, path: str) -> str:
    if not base:
        return path
    if path.startswith("http://") or path.startswith("https://"):
        return path
    if not base.endswith("/") and not path.startswith("/"):
        return f"{base}/{path}"
    if base.endswith("/") and path.startswith("/"):
        return f"{base}{path[1:]}"
    return f"{base}{path}"


def make_headers(src: Source) -> Dict[str, str]:
    """Per-source headers. The gateway adds User-Agent/Accept on top of these."""
    headers = dict(src.default_headers)
    tok = src.token()
    if tok and src.auth_scheme:
        s = src.auth_scheme.lower()
        if s == "bearer":
            headers["Authorization"] = f"Bearer {tok}"
        elif s in ("x-api-key", "x_api_key"):
            headers["X-API-Key"] = tok
        elif s != "api_key":
            headers[src.auth_scheme] = tok  # treat as raw header key
    return headers


def auth_params(src: Source) -> Dict[str, str]:
    """Query-string credentials (NCBI passes api_key as a parameter)."""
    tok = src.token()
    if tok and (src.auth_scheme or "").lower() == "api_key":
        return {"api_key": tok}
    return {}


# ------------------------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------------------------
SOURCES: Dict[str, Source] = {
    "rcsb-search": Source(
        name="rcsb-search",
        base_url=_env("RCSB_SEARCH_BASE_URL", "https://search.rcsb.org/rcsbsearch/v2"),
        default_headers=_json_env("RCSB_EXTRA_HEADERS"),
    ),
    "rcsb-data": Source(
        name="rcsb-data",
        base_url=_env("RCSB_DATA_BASE_URL", "https://data.rcsb.org/rest/v1"),
        default_headers=_json_env("RCSB_EXTRA_HEADERS"),
    ),
    "rcsb-files": Source(
        name="rcsb-files",
        base_url=_env("RCSB_FILES_BASE_URL", "https://files.rcsb.org/download"),
    ),
    "alphafold": Source(
        name="alphafold",
        base_url=_env("ALPHAFOLD_BASE_URL", "https://alphafold.ebi.ac.uk/api"),
        default_headers=_json_env("ALPHAFOLD_EXTRA_HEADERS"),
    ),
    "pdbe": Source(
        name="pdbe",
        base_url=_env("PDBE_BASE_URL", "https://www.ebi.ac.uk/pdbe/api"),
        default_headers=_json_env("PDBE_EXTRA_HEADERS"),
    ),
    "eutils": Source(
        name="eutils",
        base_url=_env("EUTILS_BASE_URL", "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"),
        auth_scheme=_env("NCBI_AUTH_SCHEME", "api_key"),
        auth_env=_env("NCBI_API_KEY_ENV", "NCBI_API_KEY"),
        default_headers=_json_env("NCBI_EXTRA_HEADERS"),
    ),
    "uniprot": Source(
        name="uniprot",
        base_url=_env("UNIPROT_BASE_URL", "https://rest.uniprot.org"),
        default_headers=_json_env("UNIPROT_EXTRA_HEADERS"),
    ),
    "gemini": Source(
        name="gemini",
        base_url=_env("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"),
        auth_scheme="x-goog-api-key",
        auth_env="GEMINI_API_KEY",
    ),
    "openrouter": Source(
        name="openrouter",
        base_url=_env("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
        auth_scheme="Bearer",
        auth_env="OPENROUTER_API_KEY",
    ),
    "ollama": Source(
        name="ollama",
        base_url=_env("LOCAL_LLM_URL", ""),
    ),
}


def get_source(name: str) -> Source:
    try:
        return SOURCES[name]
    except KeyError:
        raise KeyError(f"Unknown source '{name}'. Known: {', '.join(sorted(SOURCES))}") from None
