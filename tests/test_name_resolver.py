import pytest

from cache.store import CacheStore
from fakes import FakeRxNorm, LISINOPRIL_PROPS, lisinopril_rxnorm
from repos.memory_cache_repo import InMemoryCacheRepository
from rxnorm.resolver import NameResolver
from utils.errors import NotFoundError, ValidationError


@pytest.mark.asyncio
async def test_exact_match_has_full_confidence_and_is_enriched():
    resolver = NameResolver(lisinopril_rxnorm())
    res = await resolver.resolve("Lisinopril")
    assert res.method == "exact"
    assert res.drug.id == "314076"
    assert res.drug.confidence == 1.0
    assert res.drug.dosage_form == "TABLET"
    assert res.drug.strength == "10 MG"
    assert res.alternatives == []


@pytest.mark.asyncio
async def test_approximate_match_filters_by_confidence():
    client = FakeRxNorm(
        approx={
            "lisinoprl": [
                {"rxcui": "29046", "score": "95", "rank": "1"},
                {"rxcui": "314076", "score": "40", "rank": "5"},
            ]
        },
        props=dict(LISINOPRIL_PROPS),
    )
    res = await NameResolver(client, min_confidence=0.7).resolve("lisinoprl")
    assert res.method == "approximate"
    assert res.drug.id == "29046"
    assert res.drug.confidence == pytest.approx(0.95)
    assert res.alternatives == []


@pytest.mark.asyncio
async def test_approximate_match_ranks_and_dedupes_alternatives():
    cands = [
        {"rxcui": "2", "score": "80", "rank": "1"},
        {"rxcui": "1", "score": "99", "rank": "1"},
        {"rxcui": "1", "score": "90", "rank": "1"},
    ]
    props = {"1": {"rxcui": "1", "name": "one", "tty": "IN"}, "2": {"rxcui": "2", "name": "two", "tty": "IN"}}
    client = FakeRxNorm(approx={"onetwo": cands}, props=props)
    res = await NameResolver(client).resolve("onetwo")
    assert res.drug.id == "1"
    assert [a.id for a in res.alternatives] == ["2"]


@pytest.mark.asyncio
async def test_spelling_suggestion_reduces_confidence():
    client = FakeRxNorm(
        exact={"lisinopril": ["29046"]},
        spelling={"lisnopril": ["lisinopril"]},
        props=dict(LISINOPRIL_PROPS),
    )
    res = await NameResolver(client).resolve("lisnopril")
    assert res.method == "spelling"
    assert res.drug.id == "29046"
    assert res.drug.confidence == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_failed_strategy_moves_on_to_the_next():
    client = FakeRxNorm(
        approx={"lisinopril": [{"rxcui": "29046", "score": "90", "rank": "1"}]},
        props=dict(LISINOPRIL_PROPS),
        fail=("search_by_name",),
    )
    res = await NameResolver(client).resolve("lisinopril")
    assert res.method == "approximate"
    assert res.drug.id == "29046"


@pytest.mark.asyncio
async def test_exhausted_strategies_raise_not_found():
    client = FakeRxNorm(fail=("search_by_name", "approximate_term", "spelling_suggestions"))
    with pytest.raises(NotFoundError) as ei:
        await NameResolver(client).resolve("nosuchdrug")
    assert ei.value.code == "drug_not_found"


@pytest.mark.asyncio
async def test_invalid_name_is_rejected_before_lookup():
    client = lisinopril_rxnorm()
    with pytest.raises(ValidationError):
        await NameResolver(client).resolve("x")
    assert client.calls == []


@pytest.mark.asyncio
async def test_resolution_is_cached_by_normalised_name():
    client = lisinopril_rxnorm()
    cache = CacheStore(InMemoryCacheRepository())
    resolver = NameResolver(client, cache=cache)

    first = await resolver.resolve("lisinopril")
    calls = len(client.calls)
    second = await resolver.resolve("  LISINOPRIL ")

    assert len(client.calls) == calls
    assert second.cached
    assert second.drug == first.drug


@pytest.mark.asyncio
async def test_failures_are_not_cached():
    repo = InMemoryCacheRepository()
    resolver = NameResolver(FakeRxNorm(), cache=CacheStore(repo))
    with pytest.raises(NotFoundError):
        await resolver.resolve("unknowndrug")
    assert len(repo) == 0


@pytest.mark.asyncio
async def test_resolve_all_keeps_going_after_a_failure():
    entries = await NameResolver(lisinopril_rxnorm()).resolve_all(["lisinopril", "zzzz-unknown", "x"])
    assert [e.ok for e in entries] == [True, False, False]
    assert entries[0].resolution.drug.id == "314076"
    assert isinstance(entries[1].error, NotFoundError)
    assert isinstance(entries[2].error, ValidationError)


@pytest.mark.asyncio
async def test_resolve_by_id():
    resolver = NameResolver(lisinopril_rxnorm())
    res = await resolver.resolve_by_id("314076")
    assert res.method == "id"
    assert res.drug.confidence == 1.0
    assert res.drug.dosage_form == "TABLET"

    with pytest.raises(NotFoundError):
        await resolver.resolve_by_id("999")


@pytest.mark.asyncio
async def test_resolve_by_id_is_cached():
    client = lisinopril_rxnorm()
    resolver = NameResolver(client, cache=CacheStore(InMemoryCacheRepository()))
    first = await resolver.resolve_by_id("314076")
    second = await resolver.resolve_by_id("314076")
    assert client.calls == [("get_properties", "314076")]
    assert second.cached
    assert second.drug == first.drug
