"""
Variant pipeline
================

One request, end to end:

    parse HGVS  ->  curate protein (required)  ->  structure | clinical | literature
                                                    (concurrent, never fatal)
                ->  assemble coverage + unknowns  ->  VariantReport

Only input validation and subject resolution can fail the request; every
evidence source degrades to an `Unavailable` status instead.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from .clients.clinvar import ClinicalMatcher
from .clients.pubmed import LiteratureClient
from .clients.structure import StructureResolver
from .clients.uniprot import ProteinCurator
from .coverage import assemble
from .net import Gateway
from .utils.alleles import parse_hgvs
from .utils.evidence import VariantReport, VariantSummary, now_ts
from .utils.outcome import Data, describe

log = logging.getLogger("variantlens.pipeline")


class VariantPipeline:
    def __init__(
        self,
        gateway: Gateway,
        curator: Optional[ProteinCurator] = None,
        resolver: Optional[StructureResolver] = None,
        matcher: Optional[ClinicalMatcher] = None,
        literature: Optional[LiteratureClient] = None,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.gateway = gateway
        self.curator = curator or ProteinCurator(gateway)
        self.resolver = resolver or StructureResolver(gateway)
        self.matcher = matcher or ClinicalMatcher(gateway)
        self.literature = literature or LiteratureClient(gateway)
        self._timer = timer

    async def analyze(self, hgvs: str, transcript: Optional[str] = None) -> VariantReport:
        t0 = self._timer()
        parsed = parse_hgvs(hgvs)
        transcript = (transcript or "").strip() or parsed.transcript

        protein = await self.curator.curate(parsed.gene, parsed.position)

        resolution, clinical, literature = await asyncio.gather(
            self.resolver.resolve(protein.accession, parsed.position),
            self.matcher.find_best_match(protein.gene, parsed.protein_change, transcript),
            self.literature.search(protein.gene, parsed.protein_change),
        )
        structure = resolution.as_outcome()
        report = assemble(structure, clinical, literature, protein)

        elapsed_ms = int((self._timer() - t0) * 1000)
        log.info(
            "[pipeline] %s structure=%s clinical=%s literature=%s unknowns=%d (%dms)",
            parsed.normalized, describe(structure), describe(clinical), describe(literature),
            len(report.unknowns.items), elapsed_ms,
        )
        return VariantReport(
            variant=VariantSummary(
                hgvs=parsed.normalized,
                gene=protein.gene,
                ref=parsed.ref,
                position=parsed.position,
                alt=parsed.alt,
                kind=parsed.kind,
                transcript=transcript,
            ),
            protein=protein,
            coverage=report.coverage,
            unknowns=report.unknowns,
            structures=list(resolution.available),
            clinical=clinical.value if isinstance(clinical, Data) else None,
            papers=list(literature.value.papers) if isinstance(literature, Data) else [],
            processing_ms=elapsed_ms,
            timestamp=now_ts(),
        )
