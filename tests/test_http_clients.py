import httpx
import pytest

from catalog.openfda_client import OpenFDAClient
from rxnorm.client import RxNormClient
from utils.errors import ExternalServiceError
from utils.http import backoff_delay, get_with_retry


def _client(statuses, seen=None):
    """MockTransport that replies with the given statuses in order, repeating the last one."""
    queue = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        status = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(status, Exception):
            raise status
        return httpx.Response(status, json={"ok": status})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_backoff_is_capped():
    assert [backoff_delay(a, 0.25, 2.0) for a in range(5)] == [0.25, 0.5, 1.0, 2.0, 2.0]


@pytest.mark.asyncio
async def test_retries_5xx_then_succeeds():
    seen = []
    async with _client([503, 503, 200], seen) as http:
        r = await get_with_retry(http, "https://x.test/a", service="rxnorm", base_delay_s=0, max_retries=3)
    assert r.status_code == 200
    assert len(seen) == 3


@pytest.mark.asyncio
async def test_4xx_is_returned_without_retry():
    seen = []
    async with _client([400], seen) as http:
        r = await get_with_retry(http, "https://x.test/a", service="rxnorm", base_delay_s=0)
    assert r.status_code == 400
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_persistent_5xx_raises_external_service_error():
    seen = []
    async with _client([500], seen) as http:
        with pytest.raises(ExternalServiceError) as ei:
            await get_with_retry(http, "https://x.test/a", service="openfda", base_delay_s=0, max_retries=2)
    assert len(seen) == 3
    assert ei.value.status == 500
    assert ei.value.retryable
    assert ei.value.status_code == 503


@pytest.mark.asyncio
async def test_transport_errors_are_retried():
    seen = []
    async with _client([httpx.ConnectError("refused"), 200], seen) as http:
        r = await get_with_retry(http, "https://x.test/a", service="rxnorm", base_delay_s=0)
    assert r.status_code == 200
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_openfda_404_means_no_results():
    seen = []
    async with _client([404], seen) as http:
        client = OpenFDAClient("https://api.fda.gov", api_key="k", http=http, base_delay_s=0)
        assert await client.search_by_rxcui("314076") == []
    params = seen[0].url.params
    assert params["search"] == 'openfda.rxcui:"314076"'
    assert params["api_key"] == "k"


@pytest.mark.asyncio
async def test_openfda_returns_results():
    def handler(request):
        return httpx.Response(200, json={"meta": {}, "results": [{"product_ndc": "12345-0001"}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = OpenFDAClient("https://api.fda.gov", http=http)
        assert await client.search_by_rxcui("314076") == [{"product_ndc": "12345-0001"}]


@pytest.mark.asyncio
async def test_rxnorm_paths_and_errors():
    seen = []

    def handler(request):
        seen.append(request)
        if request.url.path.endswith("/properties.json"):
            return httpx.Response(404)
        if request.url.path.endswith("/spellingsuggestions.json"):
            return httpx.Response(403)
        return httpx.Response(200, json={"idGroup": {"rxnormId": ["29046"]}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = RxNormClient("https://rxnav.nlm.nih.gov/REST/", http=http, base_delay_s=0)
        assert (await client.search_by_name("lisinopril"))["idGroup"]["rxnormId"] == ["29046"]
        assert await client.get_properties("29046") == {}
        with pytest.raises(ExternalServiceError) as ei:
            await client.spelling_suggestions("lisnopril")
        assert ei.value.status == 403
        assert not ei.value.retryable
        await client.approximate_term("lisinoprl")

    assert seen[0].url.path == "/REST/rxcui.json"
    assert seen[0].url.params["name"] == "lisinopril"
    assert seen[-1].url.params["option"] == "1"
