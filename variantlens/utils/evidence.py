# variantlens/utils/evidence.py
from __future__ import annotations

import time
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .alleles import Provenance


class SourceKind(str, Enum):
    PRIMARY = "primary"        # experimental (RCSB PDB)
    SECONDARY = "secondary"    # predicted (AlphaFold DB)


class StructureCandidate(BaseModel):
    source_kind: SourceKind
    id: str
    resolution: Optional[float] = None    # Å; None for predicted models and NMR entries
    mapped: bool = False
    pdb_residue: Optional[int] = None
    chain: Optional[str] = None
    url: Optional[str] = None
    pae_url: Optional[str] = None
    confidence: Optional[float] = None    # mean pLDDT for predicted models
    mapping_note: Optional[str] = None

    def sort_key(self) -> Tuple[int, float]:
        return (0 if self.mapped else 1, self.resolution if self.resolution is not None else float("inf"))


class ResidueMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    mapped: bool
    target_id: str
    chain: Optional[str] = None
    target_residue: Optional[int] = None
    reason: Optional[str] = None          # "unmapped" | "gap" | "partial"


class MatchType(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


class ClinicalCandidate(BaseModel):
    uid: str
    title: str = ""
    gene: Optional[str] = None
    protein_change: Optional[str] = None
    transcript: Optional[str] = None
    significance: Optional[str] = None
    review_status: Optional[str] = None
    conditions: List[str] = Field(default_factory=list)
    stars: int = 0
    provenance: Optional[Provenance] = None
    match_type: MatchType = MatchType.NONE
    score: int = 0
    url: Optional[str] = None


class Paper(BaseModel):
    pmid: str
    title: str = ""
    authors: List[str] = Field(default_factory=list)
    source: str = ""
    pub_date: str = ""
    url: str = ""


class LiteratureResult(BaseModel):
    count: int
    query: str
    papers: List[Paper] = Field(default_factory=list)


class Domain(BaseModel):
    name: str
    type: str
    start: int
    end: int


class FunctionalSite(BaseModel):
    type: str
    position: int
    end: Optional[int] = None
    description: str = ""


class ProteinContext(BaseModel):
    gene: str
    accession: str
    protein_name: str = ""
    length: int = 0
    domains: List[Domain] = Field(default_factory=list)
    functional_sites: List[FunctionalSite] = Field(default_factory=list)
    variant_in_domain: Optional[str] = None
    near_functional_site: bool = False
    distance_to_nearest_site: Optional[int] = None


# ------------------------------------------------------------------------------------
# Coverage (frozen once assembled)
# ------------------------------------------------------------------------------------
class StructureStatus(str, Enum):
    EXPERIMENTAL = "experimental"
    PREDICTED = "predicted"
    NONE = "none"
    UNAVAILABLE = "unavailable"


class ClinicalStatus(str, Enum):
    PATHOGENIC = "pathogenic"
    LIKELY_PATHOGENIC = "likely_pathogenic"
    UNCERTAIN = "uncertain"
    LIKELY_BENIGN = "likely_benign"
    BENIGN = "benign"
    NONE = "none"
    UNAVAILABLE = "unavailable"


class LiteratureStatus(str, Enum):
    FOUND = "found"
    NONE = "none"
    UNAVAILABLE = "unavailable"


class StructureCoverage(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: StructureStatus
    id: Optional[str] = None
    resolution: Optional[float] = None
    residue_mapped: Optional[bool] = None
    mapping_note: Optional[str] = None
    candidates: int = 0
    reason: Optional[str] = None


class ClinicalCoverage(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ClinicalStatus
    uid: Optional[str] = None
    match_type: Optional[MatchType] = None
    score: Optional[int] = None
    stars: Optional[int] = None
    significance: Optional[str] = None
    conditions: Tuple[str, ...] = ()
    reason: Optional[str] = None


class LiteratureCoverage(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: LiteratureStatus
    count: int = 0
    query: Optional[str] = None
    reason: Optional[str] = None


class EvidenceCoverage(BaseModel):
    model_config = ConfigDict(frozen=True)

    structure: StructureCoverage
    clinical: ClinicalCoverage
    literature: LiteratureCoverage


class Severity(str, Enum):
    CRITICAL = "critical"
    MODERATE = "moderate"
    MINOR = "minor"


class ExplicitUnknowns(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: Tuple[str, ...] = ()
    severity: Severity = Severity.MINOR


class EvidenceReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    coverage: EvidenceCoverage
    unknowns: ExplicitUnknowns


class VariantSummary(BaseModel):
    hgvs: str
    gene: str
    ref: str
    position: int
    alt: str
    kind: str
    transcript: Optional[str] = None


class VariantReport(BaseModel):
    variant: VariantSummary
    protein: ProteinContext
    coverage: EvidenceCoverage
    unknowns: ExplicitUnknowns
    structures: List[StructureCandidate] = Field(default_factory=list)
    clinical: Optional[ClinicalCandidate] = None
    papers: List[Paper] = Field(default_factory=list)
    processing_ms: int = 0
    timestamp: float = Field(default_factory=lambda: now_ts())


def now_ts() -> float:
    return time.time()
