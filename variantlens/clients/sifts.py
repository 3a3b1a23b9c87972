# variantlens/clients/sifts.py
"""
Residue mapping: UniProt position -> residue number in a PDB entry.

PDBe SIFTS gives the aligned segments, the polymer-coverage endpoint gives the
residue ranges actually observed in the deposited model. Both payloads are
cached for a few minutes because PDBe rate-limits aggressively.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from ..config import SIFTS_CACHE_TTL_S
from ..net import Gateway, RequestSpec, parse_json_body
from ..utils.cache import TTLCache
from ..utils.evidence import ResidueMapping
from ..utils.outcome import Absent, CallOutcome, Data, Unavailable
from ..utils.validation import normalize_pdb_id
from .sources import Source, get_source, make_headers

log = logging.getLogger("variantlens.sifts")

DEPENDENCY = "pdbe"


# (chain, unp_start, unp_end, structure_start)
Segment = Tuple[Optional[str], int, int, int]


def _object(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{what}: expected JSON object, got {type(value).__name__}")
    return value


def _list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{what}: expected JSON array, got {type(value).__name__}")
    return value


def _int(v: Any) -> Optional[int]:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def _residue(value: Any, what: str) -> Optional[int]:
    return _int(_object(value or {}, what).get("residue_number"))


def alignment_parser(pdb: str) -> Callable[[httpx.Response], Dict[str, List[Segment]]]:
    """Parse `/mappings/{pdb}` into accession -> aligned segments; {} when the entry is not listed."""

    def parse(resp: httpx.Response) -> Dict[str, List[Segment]]:
        body = _object(parse_json_body(resp), "mappings")
        if body.get(pdb) is None:
            return {}
        unp = _object(_object(body[pdb], pdb).get("UniProt") or {}, "UniProt")
        out: Dict[str, List[Segment]] = {}
        for accession, block in unp.items():
            segments: List[Segment] = []
            for seg in _list(_object(block, accession).get("mappings"), "mappings"):
                seg = _object(seg, "segment")
                lo, hi = _int(seg.get("unp_start")), _int(seg.get("unp_end"))
                start = _residue(seg.get("start"), "segment start")
                if lo is None or hi is None or start is None:
                    continue
                segments.append((seg.get("chain_id") or seg.get("struct_asym_id"), lo, hi, start))
            out[str(accession)] = segments
        return out

    return parse


def coverage_parser(pdb: str) -> Callable[[httpx.Response], Dict[Optional[str], List[Tuple[int, int]]]]:
    """Parse `/pdb/entry/polymer_coverage/{pdb}` into chain -> observed residue ranges."""

    def parse(resp: httpx.Response) -> Dict[Optional[str], List[Tuple[int, int]]]:
        body = _object(parse_json_body(resp), "polymer_coverage")
        if body.get(pdb) is None:
            return {}
        out: Dict[Optional[str], List[Tuple[int, int]]] = {}
        for molecule in _list(_object(body[pdb], pdb).get("molecules"), "molecules"):
            for ch in _list(_object(molecule, "molecule").get("chains"), "chains"):
                ch = _object(ch, "chain")
                chain_id = ch.get("chain_id")
                if chain_id in out:
                    continue
                ranges = []
                for obs in _list(ch.get("observed"), "observed"):
                    obs = _object(obs, "observed range")
                    lo, hi = _residue(obs.get("start"), "range start"), _residue(obs.get("end"), "range end")
                    if lo is not None and hi is not None:
                        ranges.append((lo, hi))
                out[chain_id] = ranges
        return out

    return parse


def _accession_segments(alignment: Dict[str, List[Segment]], accession: str) -> Optional[List[Segment]]:
    if accession in alignment:
        return alignment[accession]
    base = accession.split("-")[0]
    for key, segments in alignment.items():
        if key.split("-")[0] == base:
            return segments
    return None


def _locate(segments: List[Segment], position: int) -> Optional[Tuple[Optional[str], int]]:
    for chain, unp_start, unp_end, struct_start in segments:
        if unp_start <= position <= unp_end:
            return chain, struct_start + (position - unp_start)
    return None


def _observed_ranges(chains: Dict[Optional[str], List[Tuple[int, int]]], chain: Optional[str]) -> Optional[List[Tuple[int, int]]]:
    """Observed ranges for `chain`, or None when the payload does not describe it."""
    if chain is None:
        return next(iter(chains.values()), None)
    return chains.get(chain)


class ResidueMapper:
    def __init__(self, gateway: Gateway, cache: Optional[TTLCache] = None, source: Optional[Source] = None):
        self.gateway = gateway
        self.cache = cache or TTLCache(SIFTS_CACHE_TTL_S)
        self.source = source or get_source("pdbe")

    async def _cached_get(self, key: str, path: str, parse: Callable[[httpx.Response], Any]) -> CallOutcome:
        hit = self.cache.get(key)
        if hit is not None:
            return hit
        spec = RequestSpec(self.source.url(path), headers=make_headers(self.source), parse=parse)
        outcome = await self.gateway.call(spec, DEPENDENCY, allow_absent_on_404=True)
        if not isinstance(outcome, Unavailable):
            self.cache.set(key, outcome)
        return outcome

    async def alignment(self, structure_id: str) -> CallOutcome:
        pdb = normalize_pdb_id(structure_id)
        return await self._cached_get(f"mappings:{pdb}", f"/mappings/{pdb}", alignment_parser(pdb))

    async def observed(self, structure_id: str) -> CallOutcome:
        pdb = normalize_pdb_id(structure_id)
        return await self._cached_get(f"coverage:{pdb}", f"/pdb/entry/polymer_coverage/{pdb}", coverage_parser(pdb))

    async def map_residue(self, sequence_id: str, position: int, structure_id: str) -> CallOutcome:
        pdb = normalize_pdb_id(structure_id)
        aligned = await self.alignment(pdb)
        if isinstance(aligned, (Unavailable, Absent)):
            return aligned

        segments = _accession_segments(aligned.value, sequence_id)
        if not segments:
            log.debug("[sifts] %s has no segments for %s", pdb, sequence_id)
            return Absent(DEPENDENCY)

        hit = _locate(segments, position)
        if hit is None:
            return Data(ResidueMapping(mapped=False, target_id=pdb, reason="unmapped"))
        chain, residue = hit

        observed = await self.observed(pdb)
        if not isinstance(observed, Data):
            return Data(ResidueMapping(mapped=True, target_id=pdb, chain=chain, target_residue=residue, reason="partial"))

        ranges = _observed_ranges(observed.value, chain)
        if ranges is None:
            return Data(ResidueMapping(mapped=True, target_id=pdb, chain=chain, target_residue=residue, reason="partial"))
        if not any(lo <= residue <= hi for lo, hi in ranges):
            return Data(ResidueMapping(mapped=False, target_id=pdb, chain=chain, target_residue=residue, reason="gap"))
        return Data(ResidueMapping(mapped=True, target_id=pdb, chain=chain, target_residue=residue))
