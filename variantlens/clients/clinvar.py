# variantlens/clients/clinvar.py
"""
Clinical annotation matcher (ClinVar via NCBI E-utilities).

The search is deliberately loose (gene + variant-name tokens) and returns
noisy candidates. Every candidate gets an allele parsed from its structured
fields when they exist, otherwise from its title. The scorer then ranks by
allele equality:

    exact    100  allele equal, transcript ok, structured provenance
    partial   80  allele equal, transcript ok, free-text provenance
    partial   60  allele equal, transcript mismatch or missing
    partial   40  same gene and position
    partial   10  same gene
    partial    5  no allele parsed, gene appears in the title
    none       0

Review stars (0-4) break ties inside a tier and never cross one (the
smallest gap between tiers is 5).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..config import CLINICAL_CACHE_TTL_S
from ..net import Gateway, RequestSpec, parse_json_body
from ..utils.alleles import (
    ParsedAllele,
    Provenance,
    gene_mentioned,
    parse_protein_change,
    parse_structured_allele,
    parse_title_allele,
    three_letter_change,
)
from ..utils.cache import TTLCache
from ..utils.evidence import ClinicalCandidate, MatchType
from ..utils.outcome import Absent, CallOutcome, Data, Unavailable
from .sources import auth_params, get_source, make_headers

log = logging.getLogger("variantlens.clinvar")

DEPENDENCY = "clinvar"
MAX_CANDIDATES = 20
MAX_STARS = 4


# ------------------------------------------------------------------------------------
# Record fields
# ------------------------------------------------------------------------------------
def review_stars(review_status: Optional[str]) -> int:
    status = (review_status or "").lower()
    if "practice guideline" in status or "expert panel" in status:
        return 4
    if "multiple submitters" in status:
        return 3
    if "single submitter" in status or "conflicting" in status:
        return 2
    if "no assertion criteria" in status:
        return 1
    return 0


def _block(value: Any) -> Dict[str, Any]:
    if isinstance(value, str):
        return {"description": value}
    return value if isinstance(value, dict) else {}


def _text_or_none(value: Any) -> Optional[str]:
    return str(value) if value else None


def _classification(record: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """(significance, review_status) preferring the germline classification block."""
    germ = _block(record.get("germline_classification"))
    legacy = _block(record.get("clinical_significance"))
    significance = germ.get("description") or legacy.get("description")
    review = germ.get("review_status") or legacy.get("review_status")
    return _text_or_none(significance), _text_or_none(review)


def _conditions(record: Dict[str, Any]) -> List[str]:
    out: List[str] = []
    for traits in (record.get("trait_set"), _block(record.get("germline_classification")).get("trait_set")):
        if not isinstance(traits, list):
            continue
        for trait in traits:
            name = trait.get("trait_name") if isinstance(trait, dict) else None
            if name and str(name) not in out:
                out.append(str(name))
    return out


def clinvar_url(uid: str) -> str:
    return f"https://www.ncbi.nlm.nih.gov/clinvar/variation/{uid}/"


# ------------------------------------------------------------------------------------
# Scoring
# ------------------------------------------------------------------------------------
def transcript_ok(query: ParsedAllele, allele: ParsedAllele) -> bool:
    if not query.transcript:
        return True
    return allele.transcript is not None and allele.transcript.strip() == query.transcript


def score_candidate(query: ParsedAllele, allele: Optional[ParsedAllele], text: str = "") -> Tuple[MatchType, int]:
    """Tier for one candidate. Only a STRUCTURED allele can reach `exact`."""
    if allele is None:
        return (MatchType.PARTIAL, 5) if gene_mentioned(text, query.gene) else (MatchType.NONE, 0)
    if allele.gene.upper() != query.gene.upper():
        return MatchType.NONE, 0
    if allele.same_allele(query):
        if not transcript_ok(query, allele):
            return MatchType.PARTIAL, 60
        if allele.provenance == Provenance.STRUCTURED:
            return MatchType.EXACT, 100
        return MatchType.PARTIAL, 80
    if allele.position == query.position:
        return MatchType.PARTIAL, 40
    return MatchType.PARTIAL, 10


def rank_key(candidate: ClinicalCandidate) -> Tuple[int, int]:
    bonus = min(max(candidate.stars, 0), MAX_STARS) if candidate.score > 0 else 0
    return candidate.score, bonus


def rank_candidates(candidates: List[ClinicalCandidate]) -> List[ClinicalCandidate]:
    ranked = sorted(candidates, key=rank_key, reverse=True)
    for c in ranked:
        if c.score == 0:
            c.match_type = MatchType.NONE
    return ranked


def build_candidate(uid: str, record: Dict[str, Any], query: ParsedAllele) -> ClinicalCandidate:
    title = str(record.get("title") or "")
    allele = parse_structured_allele(record, prefer_position=query.position)
    if allele is None:
        allele = parse_title_allele(title)
    match_type, score = score_candidate(query, allele, title)
    significance, review = _classification(record)
    return ClinicalCandidate(
        uid=str(uid),
        title=title,
        gene=allele.gene if allele else None,
        protein_change=allele.protein_change if allele else None,
        transcript=allele.transcript if allele else None,
        significance=significance,
        review_status=review,
        conditions=_conditions(record),
        stars=review_stars(review),
        provenance=allele.provenance if allele else None,
        match_type=match_type,
        score=score,
        url=clinvar_url(str(uid)),
    )


# ------------------------------------------------------------------------------------
# Wire
# ------------------------------------------------------------------------------------
def _parse_esearch(resp: httpx.Response) -> List[str]:
    body = parse_json_body(resp)
    if not isinstance(body, dict) or not isinstance(body.get("esearchresult"), dict):
        raise ValueError("esearch response has no esearchresult object")
    idlist = body["esearchresult"]["idlist"]
    if not isinstance(idlist, list):
        raise ValueError("esearchresult.idlist is not a list")
    return [str(i) for i in idlist]


def _parse_esummary(resp: httpx.Response) -> List[Tuple[str, Dict[str, Any]]]:
    body = parse_json_body(resp)
    if not isinstance(body, dict) or not isinstance(body.get("result"), dict):
        raise ValueError("esummary response has no result object")
    result = body["result"]
    uids = result.get("uids")
    if not isinstance(uids, list):
        uids = [k for k in result if k != "uids"]
    return [(str(u), result[str(u)]) for u in uids if isinstance(result.get(str(u)), dict)]


def search_term(query: ParsedAllele) -> str:
    one = f"{query.ref}{query.position}{query.alt}"
    return f"{query.gene}[gene] AND ({one}[variant name] OR {three_letter_change(query)}[variant name])"


class ClinicalMatcher:
    def __init__(self, gateway: Gateway, cache: Optional[TTLCache] = None, max_candidates: int = MAX_CANDIDATES):
        self.gateway = gateway
        self.cache = cache or TTLCache(CLINICAL_CACHE_TTL_S)
        self.max_candidates = max_candidates
        self.source = get_source("eutils")

    def _spec(self, path: str, params: Dict[str, Any], parse) -> RequestSpec:
        return RequestSpec(
            self.source.url(path),
            params={**params, "retmode": "json", **auth_params(self.source)},
            headers=make_headers(self.source),
            parse=parse,
        )

    async def find_best_match(
        self, gene: str, protein_change: str, transcript: Optional[str] = None
    ) -> CallOutcome:
        query = parse_protein_change(gene, protein_change, transcript)
        key = f"{query.gene}:{query.protein_change}:{query.transcript or ''}"
        hit = self.cache.get(key)
        if hit is not None:
            return hit

        found = await self.gateway.call(
            self._spec("/esearch.fcgi", {"db": "clinvar", "term": search_term(query), "retmax": self.max_candidates}, _parse_esearch),
            DEPENDENCY,
            allow_absent_on_404=True,
        )
        if isinstance(found, Unavailable):
            return found
        if isinstance(found, Absent) or not found.value:
            outcome: CallOutcome = Absent(DEPENDENCY)
            self.cache.set(key, outcome)
            return outcome

        summaries = await self.gateway.call(
            self._spec("/esummary.fcgi", {"db": "clinvar", "id": ",".join(found.value)}, _parse_esummary),
            DEPENDENCY,
            allow_absent_on_404=True,
        )
        if isinstance(summaries, Unavailable):
            return summaries
        if isinstance(summaries, Absent) or not summaries.value:
            outcome = Absent(DEPENDENCY)
            self.cache.set(key, outcome)
            return outcome

        ranked = rank_candidates([build_candidate(uid, rec, query) for uid, rec in summaries.value])
        best = ranked[0]
        log.info(
            "[clinvar] %s %s: %d candidates, best uid=%s %s/%d",
            query.gene, query.protein_change, len(ranked), best.uid, best.match_type.value, best.score,
        )
        outcome = Data(best)
        self.cache.set(key, outcome)
        return outcome
