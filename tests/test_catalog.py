from datetime import date

import pytest

from cache.store import CacheStore
from catalog.mapper import map_result_to_packages, map_results, parse_marketing_status, parse_package_size
from catalog.service import PackageCatalog
from fakes import FakeOpenFDA, fda_product
from repos.memory_cache_repo import InMemoryCacheRepository
from utils.errors import NotFoundError

TODAY = date(2024, 6, 1)


@pytest.mark.parametrize(
    "description,expected",
    [
        ("100 TABLET in 1 BOTTLE", (100.0, "TABLET")),
        ("30 TABLET, FILM COATED in 1 BOTTLE", (30.0, "TABLET")),
        ("5 mL in 1 VIAL", (5.0, "ML")),
        ("10 BLISTER PACK in 1 CARTON > 10 TABLET in 1 BLISTER PACK", (100.0, "TABLET")),
        ("90 CAPSULE", (90.0, "CAPSULE")),
        ("", (1.0, "UNKNOWN")),
    ],
)
def test_parse_package_size(description, expected):
    assert parse_package_size(description) == expected


def test_marketing_status():
    assert parse_marketing_status({"marketing_start_date": "20200101"}, TODAY) == "active"
    assert parse_marketing_status({"marketing_start_date": "20200101", "marketing_end_date": "20240101"}, TODAY) == "discontinued"
    # end date still in the future
    assert parse_marketing_status({"marketing_start_date": "20200101", "marketing_end_date": "20300101"}, TODAY) == "active"
    assert parse_marketing_status({}, TODAY) == "unknown"


def test_invalid_ndcs_are_skipped():
    product = fda_product([30])
    product["packaging"].append({"package_ndc": "not-an-ndc", "description": "1 TABLET", "marketing_start_date": "20200101"})
    packages = map_result_to_packages(product, TODAY)
    assert [p.code for p in packages] == ["12345-0030-01"]
    assert packages[0].labeler == "Example Labs"
    assert packages[0].dosage_form == "TABLET"


def test_ten_digit_ndcs_are_canonicalised():
    product = {"dosage_form": "TABLET", "packaging": [{"package_ndc": "0002-3227-30", "description": "30 TABLET in 1 BOTTLE"}]}
    packages = map_result_to_packages(product, TODAY)
    assert packages[0].code == "00002-3227-30"
    assert packages[0].marketing_status == "unknown"
    assert not packages[0].is_active


def test_map_results_dedupes_by_code():
    packages = map_results([fda_product([30, 60]), fda_product([60, 90], inactive=[100])], TODAY)
    assert [p.code for p in packages] == ["12345-0030-01", "12345-0060-01", "12345-0090-01", "12345-0100-99"]
    assert [p.is_active for p in packages] == [True, True, True, False]


@pytest.mark.asyncio
async def test_catalog_caches_packages():
    client = FakeOpenFDA({"314076": [fda_product([30, 60])]})
    catalog = PackageCatalog(client, cache=CacheStore(InMemoryCacheRepository()))

    first = await catalog.packages_for("314076")
    second = await catalog.packages_for("314076")
    assert client.calls == ["314076"]
    assert first == second
    assert [p.size_quantity for p in second] == [30.0, 60.0]


@pytest.mark.asyncio
async def test_catalog_without_packages_raises_not_found():
    catalog = PackageCatalog(FakeOpenFDA())
    with pytest.raises(NotFoundError) as ei:
        await catalog.packages_for("999")
    assert ei.value.code == "package_not_found"
