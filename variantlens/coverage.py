"""
Evidence coverage assembly
==========================

Turns the three per-source outcomes into one frozen `EvidenceCoverage` plus the
list of explicit unknowns. Each source maps the same way:

    Unavailable -> status "unavailable", reason carried through
    Absent      -> status "none"
    Data        -> enriched status (experimental/predicted, clinical class, count)

A ClinVar record only lends its classification when it names the queried
allele; gene or position neighbours are reported as "none" with their score.

No source is ever reported as "none" when it could not be reached.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from .utils.evidence import (
    ClinicalCandidate,
    ClinicalCoverage,
    ClinicalStatus,
    EvidenceCoverage,
    EvidenceReport,
    ExplicitUnknowns,
    LiteratureCoverage,
    LiteratureResult,
    LiteratureStatus,
    MatchType,
    ProteinContext,
    Severity,
    SourceKind,
    StructureCoverage,
    StructureStatus,
)
from .utils.outcome import Absent, CallOutcome, Unavailable

log = logging.getLogger("variantlens.coverage")

NO_STRUCTURE = "No experimental or predicted structure available"
NO_CLINICAL = "No clinical significance annotation in ClinVar"
NO_ALLELE_MATCH = "No allele-level ClinVar match; closest record differs from the queried change"
NO_LITERATURE = "No variant-specific literature found"
OUTSIDE_DOMAIN = "Variant position is outside annotated protein domains"
NO_DOMAIN_ANNOTATION = "No domain annotations available for this protein"
NO_FUNCTIONAL_SITE = "No annotated functional sites near variant"
UNRESOLVED_REGION = "Variant falls in unresolved region of available structures"
MAPPING_NOT_COMPUTED = "Structure residue mapping not yet computed"

# lowest ClinVar tier where the record names the queried allele
ALLELE_MATCH_MIN_SCORE = 60


def _unavailable_msg(what: str, outcome: Unavailable) -> str:
    return f"{what} unavailable ({outcome.reason.value})"


def clinical_status(significance: Optional[str]) -> ClinicalStatus:
    s = (significance or "").lower()
    if not s:
        return ClinicalStatus.NONE
    if "conflicting" in s or "uncertain" in s or "vus" in s:
        return ClinicalStatus.UNCERTAIN
    if "likely pathogenic" in s:
        return ClinicalStatus.LIKELY_PATHOGENIC
    if "pathogenic" in s:
        return ClinicalStatus.PATHOGENIC
    if "likely benign" in s:
        return ClinicalStatus.LIKELY_BENIGN
    if "benign" in s:
        return ClinicalStatus.BENIGN
    return ClinicalStatus.NONE


def severity_for(count: int) -> Severity:
    if count >= 4:
        return Severity.CRITICAL
    if count >= 2:
        return Severity.MODERATE
    return Severity.MINOR


# ------------------------------------------------------------------------------------
# Per-source coverage
# ------------------------------------------------------------------------------------
def structure_coverage(outcome: CallOutcome) -> StructureCoverage:
    if isinstance(outcome, Unavailable):
        return StructureCoverage(status=StructureStatus.UNAVAILABLE, reason=outcome.reason.value)
    if isinstance(outcome, Absent):
        return StructureCoverage(status=StructureStatus.NONE)
    resolution: Any = outcome.value
    best = resolution.best
    if best is None:
        return StructureCoverage(status=StructureStatus.NONE)
    return StructureCoverage(
        status=StructureStatus.EXPERIMENTAL if best.source_kind == SourceKind.PRIMARY else StructureStatus.PREDICTED,
        id=best.id,
        resolution=best.resolution,
        residue_mapped=best.mapped,
        mapping_note=best.mapping_note,
        candidates=len(resolution.available),
    )


def clinical_coverage(outcome: CallOutcome) -> ClinicalCoverage:
    if isinstance(outcome, Unavailable):
        return ClinicalCoverage(status=ClinicalStatus.UNAVAILABLE, reason=outcome.reason.value)
    if isinstance(outcome, Absent):
        return ClinicalCoverage(status=ClinicalStatus.NONE)
    cand: ClinicalCandidate = outcome.value
    if cand.match_type == MatchType.NONE:
        return ClinicalCoverage(status=ClinicalStatus.NONE, match_type=MatchType.NONE, score=0)
    if cand.score < ALLELE_MATCH_MIN_SCORE:
        # a gene or position neighbour; its classification is not this variant's
        return ClinicalCoverage(
            status=ClinicalStatus.NONE, uid=cand.uid, match_type=cand.match_type, score=cand.score, stars=cand.stars,
        )
    return ClinicalCoverage(
        status=clinical_status(cand.significance),
        uid=cand.uid,
        match_type=cand.match_type,
        score=cand.score,
        stars=cand.stars,
        significance=cand.significance,
        conditions=tuple(cand.conditions),
    )


def literature_coverage(outcome: CallOutcome) -> LiteratureCoverage:
    if isinstance(outcome, Unavailable):
        return LiteratureCoverage(status=LiteratureStatus.UNAVAILABLE, reason=outcome.reason.value)
    if isinstance(outcome, Absent):
        return LiteratureCoverage(status=LiteratureStatus.NONE)
    result: LiteratureResult = outcome.value
    return LiteratureCoverage(
        status=LiteratureStatus.FOUND if result.count > 0 else LiteratureStatus.NONE,
        count=result.count,
        query=result.query,
    )


# ------------------------------------------------------------------------------------
# Unknowns
# ------------------------------------------------------------------------------------
def generate_unknowns(
    coverage: EvidenceCoverage,
    structure_outcome: CallOutcome,
    clinical_outcome: CallOutcome,
    literature_outcome: CallOutcome,
    protein: Optional[ProteinContext] = None,
) -> ExplicitUnknowns:
    items: List[str] = []

    st = coverage.structure
    if isinstance(structure_outcome, Unavailable):
        items.append(_unavailable_msg("Structure data", structure_outcome))
    elif st.status == StructureStatus.NONE:
        items.append(NO_STRUCTURE)
    elif st.status == StructureStatus.EXPERIMENTAL and not st.residue_mapped:
        items.append(UNRESOLVED_REGION if st.mapping_note == "gap" else MAPPING_NOT_COMPUTED)

    if isinstance(clinical_outcome, Unavailable):
        items.append(_unavailable_msg("Clinical annotation", clinical_outcome))
    elif coverage.clinical.status == ClinicalStatus.NONE:
        score = coverage.clinical.score or 0
        items.append(NO_ALLELE_MATCH if 0 < score < ALLELE_MATCH_MIN_SCORE else NO_CLINICAL)

    if protein is not None:
        if not protein.domains:
            items.append(NO_DOMAIN_ANNOTATION)
        elif not protein.variant_in_domain:
            items.append(OUTSIDE_DOMAIN)
        if protein.functional_sites and not protein.near_functional_site:
            items.append(NO_FUNCTIONAL_SITE)

    if isinstance(literature_outcome, Unavailable):
        items.append(_unavailable_msg("Literature search", literature_outcome))
    elif coverage.literature.status == LiteratureStatus.NONE:
        items.append(NO_LITERATURE)

    return ExplicitUnknowns(items=tuple(items), severity=severity_for(len(items)))


def assemble(
    structure_outcome: CallOutcome,
    clinical_outcome: CallOutcome,
    literature_outcome: CallOutcome,
    protein: Optional[ProteinContext] = None,
) -> EvidenceReport:
    coverage = EvidenceCoverage(
        structure=structure_coverage(structure_outcome),
        clinical=clinical_coverage(clinical_outcome),
        literature=literature_coverage(literature_outcome),
    )
    unknowns = generate_unknowns(coverage, structure_outcome, clinical_outcome, literature_outcome, protein)
    log.debug(
        "[coverage] structure=%s clinical=%s literature=%s unknowns=%d",
        coverage.structure.status.value, coverage.clinical.status.value,
        coverage.literature.status.value, len(unknowns.items),
    )
    return EvidenceReport(coverage=coverage, unknowns=unknowns)
