"""
VariantLens input validators
============================

No network, no FastAPI. Raises `VariantValidationError` on malformed input;
the router maps that to HTTP 400.

    validate_symbol(value, field_name="gene")  -> stripped value
    normalize_gene_symbol(value)               -> uppercase & strip
    is_uniprot_accession(value)                -> bool
    normalize_pdb_id(value)                    -> lowercase PDB id
    validate_position(position, length)        -> raises INVALID_POSITION
"""

from __future__ import annotations

import re
from typing import Optional

from ..errors import VariantValidationError

_GENE_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,64}$")
_UNIPROT_RE = re.compile(
    r"^(?:[OPQ][0-9][A-Z0-9]{3}[0-9]|[A-NR-Z][0-9](?:[A-Z][A-Z0-9]{2}[0-9]){1,2})(?:-[0-9]+)?$",
    re.IGNORECASE,
)


def _ensure_nonempty(value: Optional[str], field: str) -> str:
    if value is None:
        raise VariantValidationError(f"Missing '{field}'")
    v = str(value).strip()
    if not v:
        raise VariantValidationError(f"Empty '{field}'")
    return v


def validate_symbol(value: Optional[str], field_name: str = "gene") -> str:
    """Permissive gene validator. Accepts symbols (e.g., BRAF) or UniProt accessions."""
    v = _ensure_nonempty(value, field_name)
    if _UNIPROT_RE.match(v) or _GENE_RE.match(v):
        return v
    raise VariantValidationError(f"Invalid {field_name} '{v}'")


def normalize_gene_symbol(value: str) -> str:
    return (value or "").strip().upper()


def is_uniprot_accession(value: Optional[str]) -> bool:
    return bool(value) and bool(_UNIPROT_RE.match(value.strip()))


def normalize_pdb_id(value: str) -> str:
    """'PDB 1ABC' / '1ABC' -> '1abc' (PDBe keys its payloads by lowercase id)."""
    v = (value or "").strip()
    if v.upper().startswith("PDB "):
        v = v[4:].strip()
    return v.lower()


def validate_position(position: int, length: Optional[int]) -> int:
    if position < 1:
        raise VariantValidationError(
            f"Residue position {position} is invalid (must be >= 1)",
            code="INVALID_POSITION",
            details={"providedPosition": position},
        )
    if length and position > length:
        raise VariantValidationError(
            f"Residue position {position} exceeds protein length ({length} aa)",
            code="INVALID_POSITION",
            details={"providedPosition": position, "proteinLength": length},
        )
    return position
