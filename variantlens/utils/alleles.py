# variantlens/utils/alleles.py
"""
Protein allele parsing.

Three entry points, each tagging its result with where the allele came from:

- `parse_hgvs` / `parse_protein_change`  caller input, strict syntax (QUERY)
- `parse_structured_allele`              dedicated record fields (STRUCTURED)
- `parse_title_allele`                   regex over a human-readable title (FREE_TEXT)

The free-text path is lossy by nature. Its output always carries
`Provenance.FREE_TEXT` and the clinical scorer never treats it as exact.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..errors import VariantValidationError

AMINO_ACIDS: Dict[str, str] = {
    "Ala": "A", "Cys": "C", "Asp": "D", "Glu": "E", "Phe": "F",
    "Gly": "G", "His": "H", "Ile": "I", "Lys": "K", "Leu": "L",
    "Met": "M", "Asn": "N", "Pro": "P", "Gln": "Q", "Arg": "R",
    "Ser": "S", "Thr": "T", "Val": "V", "Trp": "W", "Tyr": "Y",
    "Ter": "*", "Stop": "*",
}
VALID_AA = set(AMINO_ACIDS.values())
SPECIAL_ALTS = {"del", "ins", "dup", "fs"}


class Provenance(str, Enum):
    QUERY = "query"
    STRUCTURED = "structured"
    FREE_TEXT = "free_text"


@dataclass(frozen=True)
class ParsedAllele:
    gene: str
    ref: str
    position: int
    alt: str
    provenance: Provenance
    transcript: Optional[str] = None

    def same_allele(self, other: "ParsedAllele") -> bool:
        return (
            self.gene.upper() == other.gene.upper()
            and self.position == other.position
            and self.ref == other.ref
            and self.alt == other.alt
        )

    @property
    def protein_change(self) -> str:
        return f"p.{self.ref}{self.position}{self.alt}"


@dataclass(frozen=True)
class ParsedVariant:
    gene: str
    ref: str
    position: int
    alt: str
    kind: str   # missense | nonsense | silent | deletion | insertion | unknown
    transcript: Optional[str] = None

    @property
    def normalized(self) -> str:
        return f"{self.gene}:p.{self.ref}{self.position}{self.alt}"

    @property
    def protein_change(self) -> str:
        return f"p.{self.ref}{self.position}{self.alt}"


# ----------------------------------------------------------------------------
# Amino acid codes
# ----------------------------------------------------------------------------

def to_one_letter(aa: str) -> str:
    if aa == "*":
        return "*"
    if len(aa) == 1:
        up = aa.upper()
        if up not in VALID_AA:
            raise VariantValidationError(f"Invalid amino acid code: {aa}")
        return up
    key = aa[:1].upper() + aa[1:].lower()
    if key not in AMINO_ACIDS:
        raise VariantValidationError(f"Invalid amino acid code: {aa}")
    return AMINO_ACIDS[key]


_THREE_LETTER = {v: k for k, v in AMINO_ACIDS.items() if k != "Stop"}


def to_three_letter(code: str) -> str:
    """'V' -> 'Val', '*' -> 'Ter'; del/ins/dup/fs pass through."""
    return _THREE_LETTER.get(code, code)


def three_letter_change(allele: "ParsedAllele") -> str:
    return f"p.{to_three_letter(allele.ref)}{allele.position}{to_three_letter(allele.alt)}"


def _alt_code(alt: str) -> str:
    low = alt.lower()
    if low in SPECIAL_ALTS:
        return low
    if alt == "=":
        return "="
    return to_one_letter(alt)


# ----------------------------------------------------------------------------
# Caller input (strict)
# ----------------------------------------------------------------------------

_HGVS_RE = re.compile(
    r"^(?:(?P<tx>N[MP]_\d+(?:\.\d+)?)\((?P<txgene>[A-Za-z0-9-]+)\)|(?P<gene>[A-Za-z0-9-]+)):"
    r"p\.\(?(?P<ref>[A-Za-z]{3}|[A-Za-z*])(?P<pos>\d+)(?P<alt>del|ins|dup|fs|[A-Za-z]{3}|[A-Za-z*=])\)?$"
)
_CHANGE_RE = re.compile(
    r"^(?:p\.)?\(?(?P<ref>[A-Za-z]{3}|[A-Za-z*])(?P<pos>\d+)(?P<alt>del|ins|dup|fs|[A-Za-z]{3}|[A-Za-z*=])\)?$"
)


def _kind(ref: str, alt: str) -> str:
    if alt == "del":
        return "deletion"
    if alt == "ins":
        return "insertion"
    if alt in SPECIAL_ALTS:
        return "unknown"
    if alt == "*":
        return "nonsense"
    if ref == alt or alt == "=":
        return "silent"
    return "missense"


def parse_hgvs(hgvs: str) -> ParsedVariant:
    """Parse `GENE:p.RefPosAlt` (optionally `NM_x(GENE):p.RefPosAlt`) into one-letter form."""
    if not hgvs or not isinstance(hgvs, str) or not hgvs.strip():
        raise VariantValidationError("Invalid HGVS format: empty input")
    text = hgvs.strip()
    m = _HGVS_RE.match(text)
    if not m:
        if ":c." in text:
            raise VariantValidationError(
                "Protein HGVS required (e.g., BRCA1:p.Cys61Gly). Nucleotide HGVS not supported."
            )
        raise VariantValidationError("Invalid HGVS format. Expected: GENE:p.RefPosAlt (e.g., BRCA1:p.Cys61Gly)")

    gene = (m.group("gene") or m.group("txgene")).upper()
    position = int(m.group("pos"))
    if position < 1:
        raise VariantValidationError(
            f"Residue position {position} is invalid (must be >= 1)", code="INVALID_POSITION",
            details={"providedPosition": position},
        )
    ref = to_one_letter(m.group("ref"))
    alt = _alt_code(m.group("alt"))
    if alt == "=":
        alt = ref
    return ParsedVariant(gene=gene, ref=ref, position=position, alt=alt, kind=_kind(ref, alt), transcript=m.group("tx"))


def parse_protein_change(gene: str, protein_change: str, transcript: Optional[str] = None) -> ParsedAllele:
    if not gene or not gene.strip():
        raise VariantValidationError("Invalid gene: value must be a non-empty string")
    m = _CHANGE_RE.match((protein_change or "").strip())
    if not m:
        raise VariantValidationError(f"Invalid protein change {protein_change!r}. Expected p.RefPosAlt")
    ref = to_one_letter(m.group("ref"))
    alt = _alt_code(m.group("alt"))
    if alt == "=":
        alt = ref
    return ParsedAllele(
        gene=gene.strip().upper(),
        ref=ref,
        position=int(m.group("pos")),
        alt=alt,
        provenance=Provenance.QUERY,
        transcript=transcript.strip() if transcript else None,
    )


# ----------------------------------------------------------------------------
# Candidate records
# ----------------------------------------------------------------------------

def _structured_changes(raw: Any) -> List[Tuple[str, int, str]]:
    """(ref, pos, alt) in one-letter form for every readable token; V600E, Val600Glu and p.Val600Glu all parse."""
    if isinstance(raw, list):
        tokens = [str(t) for t in raw]
    elif isinstance(raw, str):
        tokens = raw.split(",")
    else:
        return []
    out = []
    for tok in tokens:
        m = _CHANGE_RE.match(tok.strip())
        if not m:
            continue
        try:
            ref, alt = to_one_letter(m.group("ref")), _alt_code(m.group("alt"))
        except VariantValidationError:
            continue
        out.append((ref, int(m.group("pos")), ref if alt == "=" else alt))
    return out


def _record_gene(record: Dict[str, Any]) -> Optional[str]:
    genes = record.get("genes")
    for g in genes if isinstance(genes, list) else []:
        if isinstance(g, dict) and g.get("symbol"):
            return str(g["symbol"]).upper()
    sort_gene = record.get("gene_sort")
    return str(sort_gene).upper() if sort_gene else None


def _record_transcript(record: Dict[str, Any]) -> Optional[str]:
    tx = record.get("transcript")
    if not tx:
        variation_set = record.get("variation_set")
        for vs in variation_set if isinstance(variation_set, list) else []:
            if isinstance(vs, dict) and vs.get("transcript"):
                tx = vs["transcript"]
                break
    return str(tx) if tx else None


def parse_structured_allele(record: Dict[str, Any], prefer_position: Optional[int] = None) -> Optional[ParsedAllele]:
    """Read the allele from the record's machine-readable fields, or return None."""
    gene = _record_gene(record)
    changes = _structured_changes(record.get("protein_change"))
    if not gene or not changes:
        return None
    chosen = changes[0]
    if prefer_position is not None:
        for change in changes:
            if change[1] == prefer_position:
                chosen = change
                break
    ref, pos, alt = chosen
    return ParsedAllele(
        gene=gene, ref=ref, position=pos, alt=alt,
        provenance=Provenance.STRUCTURED, transcript=_record_transcript(record),
    )


_TITLE_PATTERNS = [
    # NM_004333.6(BRAF):c.1799T>A (p.Val600Glu)
    re.compile(
        r"(?P<tx>N[MP]_\d+(?:\.\d+)?)\((?P<gene>[A-Za-z0-9-]+)\):\S*\s*\(p\.(?P<ref>[A-Z][a-z]{2})(?P<pos>\d+)(?P<alt>[A-Z][a-z]{2}|=)\)"
    ),
    # BRAF:p.Val600Glu / BRAF p.Val600Glu
    re.compile(r"\b(?P<gene>[A-Z][A-Z0-9-]+)[\s:]+p\.\(?(?P<ref>[A-Z][a-z]{2})(?P<pos>\d+)(?P<alt>[A-Z][a-z]{2}|=)\)?"),
    # BRAF V600E
    re.compile(r"\b(?P<gene>[A-Z][A-Z0-9-]+)\s+(?P<ref>[A-Z])(?P<pos>\d+)(?P<alt>[A-Z])\b"),
]


def parse_title_allele(title: Optional[str]) -> Optional[ParsedAllele]:
    """Best-effort regex extraction from a free-text title. Always FREE_TEXT provenance."""
    if not title:
        return None
    for pattern in _TITLE_PATTERNS:
        m = pattern.search(title)
        if not m:
            continue
        try:
            ref = to_one_letter(m.group("ref"))
            alt = m.group("alt")
            alt = ref if alt == "=" else to_one_letter(alt)
        except VariantValidationError:
            continue
        groups = m.groupdict()
        return ParsedAllele(
            gene=m.group("gene").upper(),
            ref=ref,
            position=int(m.group("pos")),
            alt=alt,
            provenance=Provenance.FREE_TEXT,
            transcript=groups.get("tx"),
        )
    return None


def gene_mentioned(text: Optional[str], gene: str) -> bool:
    if not text or not gene:
        return False
    return re.search(rf"(?<![A-Za-z0-9]){re.escape(gene)}(?![A-Za-z0-9])", text, re.IGNORECASE) is not None
