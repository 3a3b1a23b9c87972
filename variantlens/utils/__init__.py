"""Shared building blocks for VariantLens.

- outcome:    tri-state call results (Data / Absent / Unavailable)
- alleles:    protein allele parsing with provenance
- validation: input validators (no network)
- evidence:   pydantic output records
- cache:      passive TTL cache
- ledger:     in-memory outcome ledger

Import either from submodules or via the facade here.
"""

from .outcome import (
    Absent, CallOutcome, Data, Unavailable, UnavailableReason, describe,
)

from .alleles import (
    ParsedAllele, ParsedVariant, Provenance, parse_hgvs, parse_protein_change,
    parse_structured_allele, parse_title_allele,
)

from .validation import (
    is_uniprot_accession, normalize_gene_symbol, normalize_pdb_id, validate_position, validate_symbol,
)

__all__ = [
    # outcome
    "Absent","CallOutcome","Data","Unavailable","UnavailableReason","describe",
    # alleles
    "ParsedAllele","ParsedVariant","Provenance","parse_hgvs","parse_protein_change",
    "parse_structured_allele","parse_title_allele",
    # validation
    "is_uniprot_accession","normalize_gene_symbol","normalize_pdb_id","validate_position","validate_symbol",
]
