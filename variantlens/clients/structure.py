# variantlens/clients/structure.py
"""
Structure resolution hierarchy.

Experimental entries from RCSB PDB are preferred; the AlphaFold DB model is
the fallback. Both sources are queried concurrently. Each PDB hit is kept only
if its resolution is within `MAX_RESOLUTION_A` and is then checked residue by
residue through SIFTS, so `mapped` reflects the actual deposited coordinates.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..config import MAX_RESOLUTION_A, STRUCTURE_CACHE_TTL_S, STRUCTURE_FANOUT, STRUCTURE_MAX_CANDIDATES
from ..net import Gateway, RequestSpec, parse_json_body
from ..utils.cache import TTLCache
from ..utils.evidence import SourceKind, StructureCandidate
from ..utils.outcome import Absent, CallOutcome, Data, Unavailable
from .sifts import ResidueMapper
from .sources import get_source, make_headers

log = logging.getLogger("variantlens.structure")

SEARCH_ATTRIBUTE = "rcsb_polymer_entity_container_identifiers.reference_sequence_identifiers.database_accession"


def search_query(accession: str) -> Dict[str, Any]:
    return {
        "query": {
            "type": "terminal",
            "service": "text",
            "parameters": {
                "attribute": SEARCH_ATTRIBUTE,
                "operator": "exact_match",
                "value": accession,
            },
        },
        "return_type": "entry",
    }


def _parse_search(resp: httpx.Response) -> List[str]:
    body = parse_json_body(resp)
    if not isinstance(body, dict):
        raise ValueError("search response is not an object")
    rows = body.get("result_set") or []
    if not isinstance(rows, list):
        raise ValueError("search result_set is not a list")
    return [str(r["identifier"]) for r in rows if isinstance(r, dict) and r.get("identifier")]


def _parse_entry(resp: httpx.Response) -> Optional[float]:
    body = parse_json_body(resp)
    if not isinstance(body, dict):
        raise ValueError("entry response is not an object")
    info = body.get("rcsb_entry_info") or {}
    if not isinstance(info, dict):
        raise ValueError("rcsb_entry_info is not an object")
    combined = info.get("resolution_combined") or []
    if not isinstance(combined, list):
        combined = [combined]
    return float(combined[0]) if combined else None


def _parse_prediction(resp: httpx.Response) -> List[Dict[str, Any]]:
    body = parse_json_body(resp)
    if isinstance(body, dict):
        return [body] if body else []
    if not isinstance(body, list):
        raise ValueError("prediction response is not a list")
    return [e for e in body if isinstance(e, dict)]


def _number(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


@dataclass
class StructureResolution:
    best: Optional[StructureCandidate] = None
    available: List[StructureCandidate] = field(default_factory=list)
    failures: List[Unavailable] = field(default_factory=list)

    def as_outcome(self) -> CallOutcome:
        if self.best is not None:
            return Data(self)
        if self.failures:
            last = self.failures[-1]
            detail = "; ".join(f"{f.dependency}: {f.reason.value}" for f in self.failures)
            return Unavailable(last.reason, "structure", detail, last.status_code)
        return Absent("structure")


class StructureResolver:
    def __init__(
        self,
        gateway: Gateway,
        mapper: Optional[ResidueMapper] = None,
        cache: Optional[TTLCache] = None,
        max_candidates: int = STRUCTURE_MAX_CANDIDATES,
        fanout: int = STRUCTURE_FANOUT,
        max_resolution: float = MAX_RESOLUTION_A,
    ):
        self.gateway = gateway
        self.mapper = mapper or ResidueMapper(gateway)
        self.cache = cache or TTLCache(STRUCTURE_CACHE_TTL_S)
        self.max_candidates = max_candidates
        self.fanout = fanout
        self.max_resolution = max_resolution

    async def resolve(self, accession: str, position: int) -> StructureResolution:
        (primaries, primary_failure), (secondary, secondary_failure) = await asyncio.gather(
            self._primary(accession, position),
            self._secondary(accession, position),
        )
        primaries.sort(key=lambda c: c.sort_key())

        out = StructureResolution()
        out.failures = [f for f in (primary_failure, secondary_failure) if f is not None]
        out.available = primaries + ([secondary] if secondary is not None else [])
        if primaries:
            out.best = primaries[0]
        elif secondary is not None:
            out.best = secondary
        log.info(
            "[structure] %s pos=%d primary=%d secondary=%s failures=%d",
            accession, position, len(primaries), secondary is not None, len(out.failures),
        )
        return out

    # --------------------------------------------------------------------------------
    # Primary: RCSB PDB
    # --------------------------------------------------------------------------------
    async def _primary(self, accession: str, position: int) -> Tuple[List[StructureCandidate], Optional[Unavailable]]:
        src = get_source("rcsb-search")
        spec = RequestSpec(
            src.url("/query"),
            method="POST",
            json_body=search_query(accession),
            headers=make_headers(src),
            parse=_parse_search,
        )
        found = await self.gateway.call(spec, "rcsb-search", allow_absent_on_404=True)
        if isinstance(found, Unavailable):
            return [], found
        if isinstance(found, Absent) or not found.value:
            return [], None

        ids = found.value[: self.max_candidates]
        sem = asyncio.Semaphore(max(1, self.fanout))

        async def one(pdb_id: str) -> Tuple[Optional[StructureCandidate], Optional[Unavailable]]:
            async with sem:
                return await self._candidate(accession, position, pdb_id)

        results = await asyncio.gather(*(one(i) for i in ids))
        survivors = [c for c, _ in results if c is not None]
        detail_failures = [f for _, f in results if f is not None]
        if not survivors and detail_failures and len(detail_failures) == len(ids):
            return [], detail_failures[-1]
        return survivors, None

    async def _resolution(self, pdb_id: str) -> CallOutcome:
        key = pdb_id.upper()
        hit = self.cache.get(key)
        if hit is not None:
            return hit
        src = get_source("rcsb-data")
        spec = RequestSpec(src.url(f"/core/entry/{key}"), headers=make_headers(src), parse=_parse_entry)
        outcome = await self.gateway.call(spec, "rcsb-data", allow_absent_on_404=True)
        if isinstance(outcome, Data):
            self.cache.set(key, outcome)
        return outcome

    async def _candidate(
        self, accession: str, position: int, pdb_id: str
    ) -> Tuple[Optional[StructureCandidate], Optional[Unavailable]]:
        detail = await self._resolution(pdb_id)
        if isinstance(detail, Unavailable):
            return None, detail
        if isinstance(detail, Absent):
            # 404 on the entry endpoint: drop the hit, the source itself is fine
            log.debug("[structure] %s has no entry summary, dropping", pdb_id)
            return None, None

        resolution = detail.value
        if resolution is not None and resolution > self.max_resolution:
            return None, None

        cand = StructureCandidate(
            source_kind=SourceKind.PRIMARY,
            id=pdb_id.upper(),
            resolution=resolution,
            url=get_source("rcsb-files").url(f"/{pdb_id.upper()}.cif"),
        )
        mapping = await self.mapper.map_residue(accession, position, pdb_id)
        if isinstance(mapping, Data):
            m = mapping.value
            cand.mapped = m.mapped
            cand.pdb_residue = m.target_residue
            cand.chain = m.chain
            cand.mapping_note = m.reason
        elif isinstance(mapping, Absent):
            cand.mapping_note = "no_alignment"
        else:
            cand.mapping_note = f"mapping_unavailable:{mapping.reason.value}"
        return cand, None

    # --------------------------------------------------------------------------------
    # Secondary: AlphaFold DB
    # --------------------------------------------------------------------------------
    async def _secondary(self, accession: str, position: int) -> Tuple[Optional[StructureCandidate], Optional[Unavailable]]:
        src = get_source("alphafold")
        spec = RequestSpec(src.url(f"/prediction/{accession}"), headers=make_headers(src), parse=_parse_prediction)
        outcome = await self.gateway.call(spec, "alphafold", allow_absent_on_404=True)
        if isinstance(outcome, Unavailable):
            return None, outcome
        if isinstance(outcome, Absent) or not outcome.value:
            return None, None

        entry = outcome.value[0]
        start, end = entry.get("uniprotStart"), entry.get("uniprotEnd")
        covered = True
        if isinstance(start, int) and isinstance(end, int):
            covered = start <= position <= end
        return StructureCandidate(
            source_kind=SourceKind.SECONDARY,
            id=str(entry.get("entryId") or f"AF-{accession}-F1"),
            mapped=covered,
            pdb_residue=position if covered else None,
            url=_text(entry.get("pdbUrl")) or _text(entry.get("cifUrl")),
            pae_url=_text(entry.get("paeDocUrl")),
            confidence=_number(entry.get("globalMetricValue")),
        ), None
