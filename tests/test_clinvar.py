import itertools

import pytest

from variantlens.clients.clinvar import (
    ClinicalMatcher,
    build_candidate,
    rank_candidates,
    review_stars,
    score_candidate,
    search_term,
)
from variantlens.errors import VariantValidationError
from variantlens.utils.alleles import ParsedAllele, Provenance, parse_protein_change
from variantlens.utils.evidence import ClinicalCandidate, MatchType
from variantlens.utils.outcome import Absent, Data, Unavailable, UnavailableReason

BRAF_TITLE = "NM_004333.6(BRAF):c.1799T>A (p.Val600Glu)"


def structured(uid="1", gene="BRAF", change="V600E", transcript=None, review="", significance="Pathogenic", title=""):
    rec = {
        "uid": uid,
        "title": title or f"{gene} {change}",
        "genes": [{"symbol": gene}],
        "protein_change": change,
        "germline_classification": {
            "description": significance,
            "review_status": review,
            "trait_set": [{"trait_name": "Melanoma"}],
        },
    }
    if transcript:
        rec["variation_set"] = [{"transcript": transcript}]
    return rec


def title_only(uid="2", title=BRAF_TITLE, review=""):
    return {"uid": uid, "title": title, "clinical_significance": {"description": "Likely pathogenic", "review_status": review}}


def candidate(uid, score, stars, match=MatchType.PARTIAL):
    return ClinicalCandidate(uid=uid, score=score, stars=stars, match_type=match)


# ------------------------------------------------------------------------------
# Scoring
# ------------------------------------------------------------------------------
def test_exact_requires_structured_provenance():
    query = parse_protein_change("BRAF", "p.Val600Glu")
    structured_allele = ParsedAllele("BRAF", "V", 600, "E", Provenance.STRUCTURED)
    text_allele = ParsedAllele("BRAF", "V", 600, "E", Provenance.FREE_TEXT)

    assert score_candidate(query, structured_allele) == (MatchType.EXACT, 100)
    assert score_candidate(query, text_allele) == (MatchType.PARTIAL, 80)


def test_title_only_candidate_is_never_exact():
    query = parse_protein_change("BRAF", "p.V600E", transcript="NM_004333.6")
    cand = build_candidate("2", title_only(), query)
    assert cand.provenance == Provenance.FREE_TEXT
    assert cand.match_type == MatchType.PARTIAL
    assert cand.score == 80


def test_transcript_required_but_missing_scores_60():
    query = parse_protein_change("X", "p.Val600Glu", transcript="NM_1")
    cand = build_candidate("9", structured(gene="X", change="V600E"), query)
    assert cand.provenance == Provenance.STRUCTURED
    assert cand.match_type == MatchType.PARTIAL
    assert cand.score == 60


def test_transcript_must_match_exactly():
    query = parse_protein_change("BRAF", "V600E", transcript="NM_004333.6")
    ok = build_candidate("1", structured(transcript="NM_004333.6"), query)
    other = build_candidate("2", structured(transcript="NM_004333.5"), query)
    assert (ok.match_type, ok.score) == (MatchType.EXACT, 100)
    assert (other.match_type, other.score) == (MatchType.PARTIAL, 60)


def test_lower_tiers():
    query = parse_protein_change("BRAF", "V600E")
    same_pos = ParsedAllele("BRAF", "V", 600, "K", Provenance.STRUCTURED)
    same_gene = ParsedAllele("BRAF", "G", 469, "A", Provenance.STRUCTURED)
    other_gene = ParsedAllele("KRAS", "V", 600, "E", Provenance.STRUCTURED)

    assert score_candidate(query, same_pos) == (MatchType.PARTIAL, 40)
    assert score_candidate(query, same_gene) == (MatchType.PARTIAL, 10)
    assert score_candidate(query, other_gene) == (MatchType.NONE, 0)
    assert score_candidate(query, None, "Somatic BRAF variant, protein change not stated") == (MatchType.PARTIAL, 5)
    assert score_candidate(query, None, "unrelated record") == (MatchType.NONE, 0)


@pytest.mark.parametrize("change", ["p.Val600Glu", "Val600Glu"])
def test_three_letter_structured_change_is_exact(change):
    query = parse_protein_change("BRAF", "p.Val600Glu")
    cand = build_candidate("13961", {"uid": "13961", "genes": [{"symbol": "BRAF"}], "protein_change": change}, query)
    assert cand.provenance == Provenance.STRUCTURED
    assert (cand.match_type, cand.score) == (MatchType.EXACT, 100)
    assert cand.title == ""


def test_structured_fields_win_over_title():
    query = parse_protein_change("BRAF", "V600E")
    rec = structured(change="V600K", title=BRAF_TITLE)
    cand = build_candidate("1", rec, query)
    assert cand.provenance == Provenance.STRUCTURED
    assert cand.score == 40


@pytest.mark.parametrize("order", list(itertools.permutations([100, 80, 60])))
@pytest.mark.parametrize("stars", range(5))
def test_ranking_orders_tiers_before_stars(order, stars):
    cands = [
        candidate(f"c{score}", score, (stars + i) % 5, MatchType.EXACT if score == 100 else MatchType.PARTIAL)
        for i, score in enumerate(order)
    ]
    ranked = rank_candidates(cands)
    assert [c.score for c in ranked] == [100, 80, 60]
    assert ranked[0].match_type == MatchType.EXACT


@pytest.mark.parametrize("stars", range(5))
def test_lower_tier_with_more_stars_never_outranks(stars):
    ranked = rank_candidates([candidate("low", 40, 4), candidate("high", 60, stars)])
    assert [c.uid for c in ranked] == ["high", "low"]


def test_stars_break_ties_inside_a_tier():
    ranked = rank_candidates([candidate("low", 80, 1), candidate("high", 80, 3)])
    assert [c.uid for c in ranked] == ["high", "low"]


def test_stars_never_lift_a_zero_score():
    ranked = rank_candidates([candidate("z", 0, 4, MatchType.NONE), candidate("five", 5, 0)])
    assert ranked[0].uid == "five"
    assert ranked[1].match_type == MatchType.NONE


@pytest.mark.parametrize("status,stars", [
    ("practice guideline", 4),
    ("reviewed by expert panel", 4),
    ("criteria provided, multiple submitters, no conflicts", 3),
    ("criteria provided, single submitter", 2),
    ("criteria provided, conflicting classifications", 2),
    ("no assertion criteria provided", 1),
    ("no classification provided", 0),
    (None, 0),
])
def test_review_stars(status, stars):
    assert review_stars(status) == stars


def test_search_term_uses_both_notations():
    term = search_term(parse_protein_change("BRAF", "p.Val600Glu"))
    assert term == "BRAF[gene] AND (V600E[variant name] OR p.Val600Glu[variant name])"


# ------------------------------------------------------------------------------
# Matcher over the wire
# ------------------------------------------------------------------------------
def esummary(*records):
    result = {"uids": [r["uid"] for r in records]}
    for r in records:
        result[r["uid"]] = r
    return {"result": result}


@pytest.mark.asyncio
async def test_find_best_match_batches_summaries_and_picks_exact(gateway, routes):
    routes.json("esearch.fcgi?db=clinvar", {"esearchresult": {"count": "3", "idlist": ["10", "11", "12"]}})
    routes.json("esummary.fcgi?db=clinvar", esummary(
        title_only(uid="10", review="criteria provided, multiple submitters"),
        structured(uid="11", review="criteria provided, single submitter"),
        structured(uid="12", change="V600K"),
    ))

    out = await ClinicalMatcher(gateway).find_best_match("BRAF", "p.Val600Glu")

    assert isinstance(out, Data)
    best = out.value
    assert best.uid == "11"
    assert best.match_type == MatchType.EXACT
    assert best.score == 100
    assert best.stars == 2
    assert best.conditions == ["Melanoma"]
    assert best.url.endswith("/variation/11/")
    assert routes.count("esummary.fcgi") == 1
    assert "id=10%2C11%2C12" in str(routes.calls[-1].url) or "id=10,11,12" in str(routes.calls[-1].url)


@pytest.mark.asyncio
async def test_no_search_hits_is_absent(gateway, routes):
    routes.json("esearch.fcgi?db=clinvar", {"esearchresult": {"count": "0", "idlist": []}})
    out = await ClinicalMatcher(gateway).find_best_match("BRAF", "V600E")
    assert isinstance(out, Absent)
    assert routes.count("esummary.fcgi") == 0


@pytest.mark.asyncio
async def test_search_outage_is_unavailable(gateway, routes):
    routes.status("esearch.fcgi?db=clinvar", 503)
    out = await ClinicalMatcher(gateway).find_best_match("BRAF", "V600E")
    assert isinstance(out, Unavailable)
    assert out.reason == UnavailableReason.UPSTREAM_5XX


@pytest.mark.asyncio
async def test_malformed_search_payload_is_bad_response(gateway, routes):
    routes.json("esearch.fcgi?db=clinvar", {"error": "API rate limit exceeded"})
    out = await ClinicalMatcher(gateway).find_best_match("BRAF", "V600E")
    assert isinstance(out, Unavailable)
    assert out.reason == UnavailableReason.BAD_RESPONSE


@pytest.mark.asyncio
async def test_invalid_input_raises_before_any_call(gateway, routes):
    with pytest.raises(VariantValidationError):
        await ClinicalMatcher(gateway).find_best_match("BRAF", "c.1799T>A")
    assert routes.calls == []


@pytest.mark.asyncio
async def test_results_cached_per_query(gateway, routes):
    routes.json("esearch.fcgi?db=clinvar", {"esearchresult": {"count": "1", "idlist": ["11"]}})
    routes.json("esummary.fcgi?db=clinvar", esummary(structured(uid="11")))
    matcher = ClinicalMatcher(gateway)

    await matcher.find_best_match("BRAF", "V600E")
    await matcher.find_best_match("braf", "p.Val600Glu")
    await matcher.find_best_match("BRAF", "V600E", transcript="NM_004333.6")

    assert routes.count("esearch.fcgi") == 2


@pytest.mark.asyncio
async def test_malformed_summary_payload_is_bad_response(gateway, routes):
    routes.json("esearch.fcgi?db=clinvar", {"esearchresult": {"count": "1", "idlist": ["11"]}})
    routes.json("esummary.fcgi?db=clinvar", {"result": ["11"]})
    out = await ClinicalMatcher(gateway).find_best_match("BRAF", "V600E")
    assert isinstance(out, Unavailable)
    assert out.reason == UnavailableReason.BAD_RESPONSE


def test_odd_record_fields_do_not_raise():
    query = parse_protein_change("BRAF", "V600E")
    rec = {
        "uid": "11",
        "title": BRAF_TITLE,
        "genes": "BRAF",
        "variation_set": {"transcript": "NM_004333.6"},
        "germline_classification": "Pathogenic",
        "trait_set": "Melanoma",
    }
    cand = build_candidate("11", rec, query)
    assert cand.provenance == Provenance.FREE_TEXT
    assert cand.score == 80
    assert cand.significance == "Pathogenic"
    assert cand.conditions == []
