from unittest.mock import AsyncMock, MagicMock

import pytest

from variantlens.clients.structure import StructureResolution
from variantlens.errors import UnknownSubjectError, VariantValidationError
from variantlens.pipeline import VariantPipeline
from variantlens.utils.evidence import (
    ClinicalCandidate,
    ClinicalStatus,
    Domain,
    LiteratureResult,
    LiteratureStatus,
    MatchType,
    Paper,
    ProteinContext,
    SourceKind,
    StructureCandidate,
    StructureStatus,
)
from variantlens.utils.outcome import Absent, Data, Unavailable, UnavailableReason

BRAF = ProteinContext(
    gene="BRAF",
    accession="P15056",
    protein_name="Serine/threonine-protein kinase B-raf",
    length=766,
    domains=[Domain(name="Protein kinase", type="domain", start=457, end=717)],
    variant_in_domain="Protein kinase",
)


def make_pipeline(structure=None, clinical=None, literature=None, curate=None):
    curator = MagicMock()
    curator.curate = AsyncMock(return_value=BRAF) if curate is None else AsyncMock(side_effect=curate)
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=structure or StructureResolution())
    matcher = MagicMock()
    matcher.find_best_match = AsyncMock(return_value=clinical or Absent("clinvar"))
    lit = MagicMock()
    lit.search = AsyncMock(return_value=literature or Data(LiteratureResult(count=0, query="q")))
    ticks = iter([10.0, 10.25])
    pipeline = VariantPipeline(MagicMock(), curator, resolver, matcher, lit, timer=lambda: next(ticks))
    return pipeline, curator, resolver, matcher, lit


@pytest.mark.asyncio
async def test_full_report():
    best = StructureCandidate(source_kind=SourceKind.PRIMARY, id="4MNE", resolution=2.8, mapped=True, pdb_residue=600)
    pipeline, curator, resolver, matcher, lit = make_pipeline(
        structure=StructureResolution(best=best, available=[best]),
        clinical=Data(ClinicalCandidate(uid="13961", significance="Pathogenic", match_type=MatchType.EXACT, score=100)),
        literature=Data(LiteratureResult(count=12, query="q", papers=[Paper(pmid="1")])),
    )

    report = await pipeline.analyze("BRAF:p.Val600Glu")

    curator.curate.assert_awaited_once_with("BRAF", 600)
    resolver.resolve.assert_awaited_once_with("P15056", 600)
    matcher.find_best_match.assert_awaited_once_with("BRAF", "p.V600E", None)
    lit.search.assert_awaited_once_with("BRAF", "p.V600E")

    assert report.variant.hgvs == "BRAF:p.V600E"
    assert report.coverage.structure.status == StructureStatus.EXPERIMENTAL
    assert report.coverage.clinical.status == ClinicalStatus.PATHOGENIC
    assert report.coverage.literature.count == 12
    assert report.unknowns.items == ()
    assert report.clinical.uid == "13961"
    assert [p.pmid for p in report.papers] == ["1"]
    assert [s.id for s in report.structures] == ["4MNE"]
    assert report.processing_ms == 250


@pytest.mark.asyncio
async def test_invalid_hgvs_raises_before_any_lookup():
    pipeline, curator, resolver, matcher, lit = make_pipeline()

    with pytest.raises(VariantValidationError):
        await pipeline.analyze("BRAF:c.1799T>A")

    curator.curate.assert_not_awaited()
    resolver.resolve.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_gene_propagates():
    pipeline, curator, resolver, *_ = make_pipeline(curate=UnknownSubjectError("ZZZ"))

    with pytest.raises(UnknownSubjectError):
        await pipeline.analyze("ZZZ:p.V10E")
    resolver.resolve.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_sources_degrade_instead_of_failing():
    pipeline, *_ = make_pipeline(
        structure=StructureResolution(failures=[Unavailable(UnavailableReason.TIMEOUT, "rcsb-search")]),
        clinical=Unavailable(UnavailableReason.CIRCUIT_OPEN, "clinvar"),
        literature=Unavailable(UnavailableReason.UPSTREAM_5XX, "pubmed"),
    )

    report = await pipeline.analyze("BRAF:p.V600E")

    assert report.coverage.structure.status == StructureStatus.UNAVAILABLE
    assert report.coverage.clinical.reason == "circuit_open"
    assert report.coverage.literature.status == LiteratureStatus.UNAVAILABLE
    assert report.clinical is None
    assert report.papers == []
    assert len(report.unknowns.items) == 3


@pytest.mark.asyncio
async def test_transcript_from_prefix_reaches_matcher():
    pipeline, _, _, matcher, _ = make_pipeline()

    report = await pipeline.analyze("NM_004333.6(BRAF):p.Val600Glu")

    matcher.find_best_match.assert_awaited_once_with("BRAF", "p.V600E", "NM_004333.6")
    assert report.variant.transcript == "NM_004333.6"


@pytest.mark.asyncio
async def test_explicit_transcript_wins_over_prefix():
    pipeline, _, _, matcher, _ = make_pipeline()

    await pipeline.analyze("NM_004333.6(BRAF):p.Val600Glu", transcript="NM_004333.5")

    matcher.find_best_match.assert_awaited_once_with("BRAF", "p.V600E", "NM_004333.5")
