# variantlens/clients/pubmed.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import LITERATURE_CACHE_TTL_S
from ..net import Gateway, RequestSpec, parse_json_body
from ..utils.cache import TTLCache
from ..utils.evidence import LiteratureResult, Paper
from ..utils.outcome import Absent, CallOutcome, Data, Unavailable
from .sources import auth_params, get_source, make_headers

log = logging.getLogger("variantlens.pubmed")

DEPENDENCY = "pubmed"
MAX_PAPERS = 5


def literature_query(gene: str, protein_change: str) -> str:
    change = protein_change.strip()
    if not change.startswith("p."):
        change = f"p.{change}"
    bare = change[2:]
    return f'"{gene}"[Title/Abstract] AND ("{change}"[Title/Abstract] OR "{bare}"[Title/Abstract])'


def _object(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{what}: expected JSON object, got {type(value).__name__}")
    return value


def _parse_esearch(resp: httpx.Response) -> Dict[str, Any]:
    res = _object(_object(parse_json_body(resp), "esearch")["esearchresult"], "esearchresult")
    idlist = res.get("idlist") or []
    if not isinstance(idlist, list):
        raise ValueError("esearchresult.idlist is not a list")
    return {"count": int(res.get("count") or 0), "ids": [str(i) for i in idlist]}


def _parse_esummary(resp: httpx.Response) -> Dict[str, Dict[str, Any]]:
    result = _object(_object(parse_json_body(resp), "esummary")["result"], "result")
    return {str(k): v for k, v in result.items() if isinstance(v, dict)}


def _papers(ids: List[str], result: Dict[str, Any]) -> List[Paper]:
    out = []
    for pmid in ids:
        doc = result.get(pmid) or {}
        authors = doc.get("authors") if isinstance(doc.get("authors"), list) else []
        out.append(Paper(
            pmid=pmid,
            title=str(doc.get("title") or f"PMID {pmid}"),
            authors=[str(a.get("name", "")) for a in authors if isinstance(a, dict)],
            source=str(doc.get("source") or "PubMed"),
            pub_date=str(doc.get("pubdate") or ""),
            url=f"https://pubmed.ncbi.nlm.nih.gov/{pmid}/",
        ))
    return out


class LiteratureClient:
    """Variant-specific PubMed search. The exact query always travels with the result."""

    def __init__(self, gateway: Gateway, cache: Optional[TTLCache] = None, max_papers: int = MAX_PAPERS):
        self.gateway = gateway
        self.cache = cache or TTLCache(LITERATURE_CACHE_TTL_S)
        self.max_papers = max_papers
        self.source = get_source("eutils")

    def _spec(self, path: str, params: Dict[str, Any], parse) -> RequestSpec:
        return RequestSpec(
            self.source.url(path),
            params={**params, "retmode": "json", **auth_params(self.source)},
            headers=make_headers(self.source),
            parse=parse,
        )

    async def search(self, gene: str, protein_change: str) -> CallOutcome:
        query = literature_query(gene, protein_change)
        hit = self.cache.get(query)
        if hit is not None:
            return hit

        found = await self.gateway.call(
            self._spec("/esearch.fcgi", {"db": "pubmed", "term": query, "retmax": self.max_papers, "sort": "date"}, _parse_esearch),
            DEPENDENCY,
        )
        if isinstance(found, Unavailable):
            return found
        if isinstance(found, Absent):
            return Data(LiteratureResult(count=0, query=query))

        count, ids = found.value["count"], found.value["ids"]
        papers: List[Paper] = []
        if count > 0 and ids:
            summary = await self.gateway.call(
                self._spec("/esummary.fcgi", {"db": "pubmed", "id": ",".join(ids)}, _parse_esummary),
                DEPENDENCY,
            )
            if isinstance(summary, Data):
                papers = _papers(ids, summary.value)
            else:
                log.info("[pubmed] summaries unavailable for %d ids, keeping count only", len(ids))

        log.info("[pubmed] %s -> %d papers", query, count)
        outcome = Data(LiteratureResult(count=count, query=query, papers=papers))
        if papers or not ids:
            self.cache.set(query, outcome)
        return outcome
