import pytest

from variantlens.clients.structure import StructureResolver, search_query
from variantlens.utils.evidence import SourceKind
from variantlens.utils.outcome import Absent, Data, Unavailable

ACC = "P15056"
SEARCH = "rcsbsearch/v2/query"
PREDICTION = f"api/prediction/{ACC}"


def entry(resolution=None):
    info = {"resolution_combined": [resolution]} if resolution is not None else {}
    return {"rcsb_entry_info": info}


def sifts(pdb, unp_start=400, unp_end=700, struct_start=1, chain="A"):
    return {pdb: {"UniProt": {ACC: {"mappings": [
        {"chain_id": chain, "unp_start": unp_start, "unp_end": unp_end, "start": {"residue_number": struct_start}}
    ]}}}}


def coverage(pdb, lo=1, hi=400, chain="A"):
    return {pdb: {"molecules": [{"chains": [
        {"chain_id": chain, "observed": [{"start": {"residue_number": lo}, "end": {"residue_number": hi}}]}
    ]}]}}


ALPHAFOLD = [{
    "entryId": "AF-P15056-F1",
    "pdbUrl": "https://alphafold.ebi.ac.uk/files/AF-P15056-F1-model_v4.pdb",
    "paeDocUrl": "https://alphafold.ebi.ac.uk/files/AF-P15056-F1-predicted_aligned_error_v4.json",
    "globalMetricValue": 78.5,
    "uniprotStart": 1,
    "uniprotEnd": 766,
}]


def primary_hits(routes, *ids):
    routes.json(SEARCH, {"result_set": [{"identifier": i} for i in ids]}, method="POST")


def test_search_query_targets_accession_cross_reference():
    q = search_query(ACC)
    params = q["query"]["parameters"]
    assert params["operator"] == "exact_match"
    assert params["value"] == ACC
    assert params["attribute"].endswith("database_accession")
    assert q["return_type"] == "entry"


@pytest.mark.asyncio
async def test_primary_covered_and_secondary_both_available(gateway, routes):
    primary_hits(routes, "1ABC")
    routes.json("core/entry/1ABC", entry(2.1))
    routes.json("mappings/1abc", sifts("1abc"))
    routes.json("polymer_coverage/1abc", coverage("1abc"))
    routes.json(PREDICTION, ALPHAFOLD)

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert res.best.source_kind == SourceKind.PRIMARY
    assert res.best.id == "1ABC"
    assert res.best.mapped is True
    assert res.best.pdb_residue == 201
    assert res.best.chain == "A"
    assert len(res.available) == 2
    assert res.available[1].source_kind == SourceKind.SECONDARY
    assert isinstance(res.as_outcome(), Data)


@pytest.mark.asyncio
async def test_no_primary_hits_falls_back_to_prediction(gateway, routes):
    routes.status(SEARCH, 204, method="POST")
    routes.json(PREDICTION, ALPHAFOLD)

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert res.best.source_kind == SourceKind.SECONDARY
    assert res.best.id == "AF-P15056-F1"
    assert res.best.pae_url.endswith(".json")
    assert res.best.mapped is True
    assert len(res.available) == 1
    assert res.failures == []


@pytest.mark.asyncio
async def test_both_sources_failing_returns_empty_without_raising(gateway, routes):
    routes.status(SEARCH, 503, method="POST")
    routes.status(PREDICTION, 500)

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert res.best is None
    assert res.available == []
    assert len(res.failures) == 2
    outcome = res.as_outcome()
    assert isinstance(outcome, Unavailable)
    assert outcome.dependency == "structure"


@pytest.mark.asyncio
async def test_nothing_anywhere_is_absent(gateway, routes):
    routes.json(SEARCH, {"result_set": []}, method="POST")
    routes.status(PREDICTION, 404)

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert res.best is None
    assert isinstance(res.as_outcome(), Absent)


@pytest.mark.asyncio
async def test_primary_failure_with_empty_secondary_is_not_reported_as_absent(gateway, routes):
    routes.status(SEARCH, 503, method="POST")
    routes.status(PREDICTION, 404)

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert isinstance(res.as_outcome(), Unavailable)


@pytest.mark.asyncio
async def test_entry_detail_404_silently_drops_candidate(gateway, routes):
    primary_hits(routes, "1ABC", "2XYZ")
    routes.status("core/entry/1ABC", 404)
    routes.json("core/entry/2XYZ", entry(1.8))
    routes.json("mappings/2xyz", sifts("2xyz"))
    routes.json("polymer_coverage/2xyz", coverage("2xyz"))
    routes.status(PREDICTION, 404)

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert [c.id for c in res.available] == ["2XYZ"]
    assert res.failures == []
    assert routes.count("mappings/1abc") == 0


@pytest.mark.asyncio
async def test_all_details_unavailable_marks_primary_failed(gateway, routes):
    primary_hits(routes, "1ABC")
    routes.status("core/entry/1ABC", 500)
    routes.status(PREDICTION, 404)

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert res.best is None
    assert len(res.failures) == 1
    assert isinstance(res.as_outcome(), Unavailable)


@pytest.mark.asyncio
async def test_low_resolution_dropped_and_nmr_sorted_last(gateway, routes):
    primary_hits(routes, "1LOW", "2NMR", "3HIG")
    routes.json("core/entry/1LOW", entry(4.2))
    routes.json("core/entry/2NMR", entry(None))
    routes.json("core/entry/3HIG", entry(2.9))
    for pdb in ("2nmr", "3hig"):
        routes.json(f"mappings/{pdb}", sifts(pdb))
        routes.json(f"polymer_coverage/{pdb}", coverage(pdb))
    routes.status(PREDICTION, 404)

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert [c.id for c in res.available] == ["3HIG", "2NMR"]
    assert res.available[1].resolution is None


@pytest.mark.asyncio
async def test_mapped_candidates_rank_ahead_of_better_resolution(gateway, routes):
    primary_hits(routes, "1FIN", "2MAP")
    routes.json("core/entry/1FIN", entry(1.2))
    routes.json("core/entry/2MAP", entry(2.5))
    # 1FIN only covers residues 1-100 of the sequence
    routes.json("mappings/1fin", sifts("1fin", unp_start=1, unp_end=100))
    routes.json("mappings/2map", sifts("2map"))
    routes.json("polymer_coverage/2map", coverage("2map"))
    routes.json(PREDICTION, ALPHAFOLD)

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert [c.id for c in res.available[:2]] == ["2MAP", "1FIN"]
    assert res.available[1].mapped is False
    assert res.available[1].mapping_note == "unmapped"
    assert res.best.id == "2MAP"
    assert routes.count("polymer_coverage/1fin") == 0


@pytest.mark.asyncio
async def test_primary_candidates_capped(gateway, routes):
    ids = [f"{i}AAA" for i in range(1, 9)]
    primary_hits(routes, *ids)
    routes.json("core/entry/", entry(2.0))
    routes.status(PREDICTION, 404)

    res = await StructureResolver(gateway, max_candidates=5).resolve(ACC, 600)

    assert len(res.available) == 5
    assert routes.count("core/entry/") == 5


@pytest.mark.asyncio
async def test_entry_details_are_cached(gateway, routes):
    primary_hits(routes, "1ABC")
    routes.json("core/entry/1ABC", entry(2.1))
    routes.json("mappings/1abc", sifts("1abc"))
    routes.json("polymer_coverage/1abc", coverage("1abc"))
    routes.status(PREDICTION, 404)

    resolver = StructureResolver(gateway)
    await resolver.resolve(ACC, 600)
    await resolver.resolve(ACC, 610)

    assert routes.count("core/entry/1ABC") == 1
    assert routes.count("mappings/1abc") == 1


@pytest.mark.asyncio
async def test_malformed_entry_and_prediction_fields_do_not_raise(gateway, routes):
    primary_hits(routes, "1ABC")
    routes.json("core/entry/1ABC", {"rcsb_entry_info": ["2.1"]})
    routes.json(PREDICTION, [{"entryId": "AF-P15056-F1", "globalMetricValue": "high", "pdbUrl": 7}])

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert res.best.source_kind == SourceKind.SECONDARY
    assert res.best.confidence is None
    assert res.best.url is None
    assert [f.reason.value for f in res.failures] == ["bad_response"]
    assert routes.count("mappings/1abc") == 0


@pytest.mark.asyncio
async def test_malformed_search_result_set_is_bad_response(gateway, routes):
    routes.json(SEARCH, {"result_set": {"identifier": "1ABC"}}, method="POST")
    routes.status(PREDICTION, 404)

    res = await StructureResolver(gateway).resolve(ACC, 600)

    assert res.best is None
    outcome = res.as_outcome()
    assert isinstance(outcome, Unavailable)
    assert outcome.reason.value == "bad_response"
