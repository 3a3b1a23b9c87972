# variantlens/clients/uniprot.py
"""
Protein curation: gene symbol -> UniProt entry -> length, domains, functional sites.

This is the one source a request cannot do without. Unresolvable genes raise
`UnknownSubjectError`, an unreachable UniProt raises `SubjectUnavailableError`,
and a position outside the sequence raises `VariantValidationError`.
Only explicitly annotated features are reported; nothing is inferred.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import UNIPROT_CACHE_TTL_S
from ..errors import SubjectUnavailableError, UnknownSubjectError
from ..net import Gateway, RequestSpec, parse_json_body
from ..utils.cache import TTLCache
from ..utils.evidence import Domain, FunctionalSite, ProteinContext
from ..utils.outcome import Absent, CallOutcome, Data, Unavailable
from ..utils.validation import is_uniprot_accession, normalize_gene_symbol, validate_position, validate_symbol
from .sources import get_source, make_headers

log = logging.getLogger("variantlens.uniprot")

DEPENDENCY = "uniprot"
NEAR_SITE_WINDOW = 10
UNIPROT_TIMEOUT_S = 6.0

COMMON_GENES: Dict[str, str] = {
    "JAK2": "O60674", "BRAF": "P15056", "TP53": "P04637", "BRCA1": "P38398",
    "BRCA2": "P51587", "EGFR": "P00533", "KRAS": "P01116", "PIK3CA": "P42336",
    "IDH1": "O75874", "IDH2": "P48735", "CFTR": "P13569", "PTEN": "P60484",
    "AKT1": "P31749", "ERBB2": "P04626", "PTPN11": "Q06124", "RYR1": "P21817",
    "POLG": "P54098", "G6PD": "P11413", "HBB": "P68871", "SCN5A": "Q14524",
    "APOE": "P02649", "DMD": "P11532",
}

DOMAIN_FEATURE_TYPES = {"domain", "region", "repeat", "zinc finger", "motif"}
SITE_FEATURE_TYPES = {
    "active site": "active_site",
    "binding site": "binding_site",
    "metal binding": "metal_binding",
    "disulfide bond": "disulfide_bond",
    "site": "site",
}


def _json_object(resp: httpx.Response) -> Dict[str, Any]:
    body = parse_json_body(resp)
    if not isinstance(body, dict):
        raise ValueError("expected JSON object")
    return body


def _parse_entry(resp: httpx.Response) -> Dict[str, Any]:
    """UniProtKB entry with the fields the curator reads checked for shape."""
    body = _json_object(resp)
    for key, kind in (("sequence", dict), ("proteinDescription", dict), ("genes", list), ("features", list)):
        if body.get(key) is not None and not isinstance(body[key], kind):
            raise ValueError(f"entry field '{key}' is not a {kind.__name__}")
    body["features"] = [f for f in body.get("features") or [] if isinstance(f, dict)]
    body["genes"] = [g for g in body.get("genes") or [] if isinstance(g, dict)]
    sequence = body.get("sequence") or {}
    body["sequence"] = {**sequence, "length": int(sequence.get("length") or 0)}
    return body


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _loc(feature: Dict[str, Any], end: str) -> Optional[int]:
    value = _dict(_dict(feature.get("location")).get(end)).get("value")
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _gene_name(entry: Dict[str, Any]) -> str:
    genes = entry.get("genes")
    first = genes[0] if isinstance(genes, list) and genes else {}
    return str(_dict(_dict(first).get("geneName")).get("value") or "")


def pick_exact_gene(results: List[Dict[str, Any]], gene: str) -> Optional[Dict[str, Any]]:
    upper = gene.upper()
    for r in results if isinstance(results, list) else []:
        if isinstance(r, dict) and _gene_name(r).upper() == upper:
            return r
    return None


def extract_domains(features: List[Dict[str, Any]]) -> List[Domain]:
    seen = set()
    out: List[Domain] = []
    for f in features:
        ftype = str(f.get("type") or "").strip().lower()
        if ftype not in DOMAIN_FEATURE_TYPES:
            continue
        start, end = _loc(f, "start"), _loc(f, "end")
        if start is None or end is None:
            continue
        name = str(f.get("description") or "").strip() or ftype.title()
        key = (name.lower(), start, end)
        if key in seen:
            continue
        seen.add(key)
        out.append(Domain(name=name, type=ftype, start=start, end=end))
    return out


def extract_sites(features: List[Dict[str, Any]]) -> List[FunctionalSite]:
    out: List[FunctionalSite] = []
    for f in features:
        kind = SITE_FEATURE_TYPES.get(str(f.get("type") or "").strip().lower())
        start = _loc(f, "start")
        if kind is None or start is None:
            continue
        end = _loc(f, "end")
        out.append(FunctionalSite(
            type=kind, position=start, end=end if end != start else None,
            description=str(f.get("description") or "").strip(),
        ))
    return out


def domain_for_position(domains: List[Domain], position: int) -> Optional[str]:
    """Name of the most specific annotated domain covering `position`."""
    containing = [d for d in domains if d.start <= position <= d.end]
    if not containing:
        return None
    containing.sort(key=lambda d: (d.type != "domain", d.end - d.start))
    return containing[0].name


def nearest_site_distance(sites: List[FunctionalSite], position: int) -> Optional[int]:
    if not sites:
        return None
    return min(abs(s.position - position) for s in sites)


class ProteinCurator:
    def __init__(self, gateway: Gateway, cache: Optional[TTLCache] = None):
        self.gateway = gateway
        self.cache = cache or TTLCache(UNIPROT_CACHE_TTL_S)
        self.source = get_source("uniprot")

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None, parse=_json_object) -> CallOutcome:
        key = f"{path}?{sorted((params or {}).items())}"
        hit = self.cache.get(key)
        if hit is not None:
            return hit
        spec = RequestSpec(self.source.url(path), params=params, headers=make_headers(self.source), parse=parse)
        outcome = await self.gateway.call(spec, DEPENDENCY, timeout=UNIPROT_TIMEOUT_S, allow_absent_on_404=True)
        if not isinstance(outcome, Unavailable):
            self.cache.set(key, outcome)
        return outcome

    async def resolve_accession(self, gene: str) -> str:
        symbol = validate_symbol(gene)
        if is_uniprot_accession(symbol):
            return symbol.upper()
        upper = normalize_gene_symbol(symbol)
        if upper in COMMON_GENES:
            return COMMON_GENES[upper]

        for query, size in ((f"gene_exact:{upper} AND reviewed:true", 25), (f"gene:{upper} AND reviewed:true", 50)):
            found = await self._get("/uniprotkb/search", {"query": query, "format": "json", "size": size})
            if isinstance(found, Unavailable):
                raise SubjectUnavailableError(DEPENDENCY, found.reason.value, found.detail)
            if isinstance(found, Data):
                hit = pick_exact_gene(found.value.get("results") or [], upper)
                if hit and hit.get("primaryAccession"):
                    return str(hit["primaryAccession"])
        raise UnknownSubjectError(gene)

    async def curate(self, gene_or_accession: str, position: int) -> ProteinContext:
        accession = await self.resolve_accession(gene_or_accession)
        entry = await self._get(f"/uniprotkb/{accession}.json", parse=_parse_entry)
        if isinstance(entry, Unavailable):
            raise SubjectUnavailableError(DEPENDENCY, entry.reason.value, entry.detail)
        if isinstance(entry, Absent):
            raise UnknownSubjectError(gene_or_accession)

        data = entry.value
        length = data["sequence"]["length"]
        validate_position(position, length)

        gene = _gene_name(data) or normalize_gene_symbol(gene_or_accession)
        name = _dict(_dict(_dict(data.get("proteinDescription")).get("recommendedName")).get("fullName")).get("value")

        features = data["features"]
        domains = extract_domains(features)
        sites = extract_sites(features)
        distance = nearest_site_distance(sites, position)
        ctx = ProteinContext(
            gene=gene,
            accession=accession,
            protein_name=name or "Unknown protein",
            length=length,
            domains=domains,
            functional_sites=sites,
            variant_in_domain=domain_for_position(domains, position),
            near_functional_site=distance is not None and distance <= NEAR_SITE_WINDOW,
            distance_to_nearest_site=distance,
        )
        log.info(
            "[uniprot] %s (%s) len=%d domains=%d sites=%d",
            ctx.gene, accession, length, len(domains), len(sites),
        )
        return ctx
