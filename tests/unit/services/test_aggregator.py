# tests/unit/services/test_aggregator.py
import time
from decimal import Decimal

import pytest

from app.core.enums import ProviderKey
from app.core.exceptions import GeocodingError, ProviderAPIError
from app.services.address_cache import AddressResolutionCache
from app.services.aggregator import QuoteAggregator, eligible_carriers, filter_affordable
from app.services.geocoding import GeocodeResult
from app.services.pricing import MarkupPolicy
from tests.mocks.mock_carrier import MockCarrier
from tests.mocks.stores import InMemoryAddressCacheStore, InMemoryPartnerStore, all_partners

NO_MARKUP = MarkupPolicy(flat_fee=Decimal("0"), percent_by_provider={})


def registry_of(*carriers):
    return {c.carrier_code: c for c in carriers}


@pytest.fixture
def address_cache(mocker):
    cache = mocker.MagicMock()
    cache.get_or_create = mocker.AsyncMock(return_value="ab-123")
    return cache


@pytest.fixture
def geocoder(mocker):
    geocoder = mocker.MagicMock()
    geocoder.normalize = mocker.AsyncMock(
        return_value=GeocodeResult("5 Allen Ave, Ikeja, Lagos, Nigeria", (6.6018, 3.3515), "100271")
    )
    return geocoder


def make_aggregator(registry, address_cache, geocoder, policy=NO_MARKUP, partners=None, timeout=5.0):
    return QuoteAggregator(
        registry=registry,
        partner_store=partners or all_partners(),
        address_cache=address_cache,
        geocoder=geocoder,
        markup_policy=policy,
        quote_timeout=timeout,
    )


"""
1. Eligibility
"""

def test_international_routes_only_to_international_carriers(international_request):
    registry = registry_of(
        MockCarrier(ProviderKey.FEZ),
        MockCarrier(ProviderKey.GIG),
        MockCarrier(ProviderKey.DHL, international=True),
    )
    carriers = eligible_carriers(international_request, registry, {"fez", "gig", "dhl"})
    assert [c.carrier_code for c in carriers] == [ProviderKey.DHL]


def test_domestic_routes_to_domestic_carriers(quote_request):
    registry = registry_of(MockCarrier(ProviderKey.FEZ), MockCarrier(ProviderKey.DHL, international=True))
    carriers = eligible_carriers(quote_request, registry, {"fez", "dhl"})
    assert {c.carrier_code for c in carriers} == {ProviderKey.FEZ, ProviderKey.DHL}


def test_service_region_requires_both_states(quote_request):
    glovo = MockCarrier(ProviderKey.GLOVO, service_regions=["lagos"])
    registry = registry_of(glovo)

    assert eligible_carriers(quote_request, registry, {"glovo"}) == [glovo]

    out_of_region = quote_request.model_copy(
        update={"delivery": quote_request.delivery.model_copy(update={"state": "Abuja"})}
    )
    assert eligible_carriers(out_of_region, registry, {"glovo"}) == []


def test_inactive_carriers_are_excluded(quote_request):
    registry = registry_of(MockCarrier(ProviderKey.FEZ), MockCarrier(ProviderKey.GIG))
    carriers = eligible_carriers(quote_request, registry, {"gig"})
    assert [c.carrier_code for c in carriers] == [ProviderKey.GIG]


def test_filter_affordable():
    quotes = [
        type("Q", (), {"price_final": Decimal(p)})() for p in ("500", "2000", "2000.01")
    ]
    assert [q.price_final for q in filter_affordable(quotes, Decimal("2000"))] == [Decimal("500"), Decimal("2000")]


"""
2. Fan-out
"""

@pytest.mark.asyncio
async def test_partial_failure_returns_successful_quotes(quote_request, address_cache, geocoder):
    failing = MockCarrier(ProviderKey.GIG)
    failing.quote_error = ProviderAPIError("GIG is down", status_code=503)
    registry = registry_of(MockCarrier(ProviderKey.FEZ, price=3000), failing, MockCarrier(ProviderKey.FARAMOVE, price=5000))

    quotes = await make_aggregator(registry, address_cache, geocoder).get_quotes(quote_request)

    assert {q.provider_key for q in quotes} == {ProviderKey.FEZ, ProviderKey.FARAMOVE}


@pytest.mark.asyncio
async def test_all_failures_return_empty_list(quote_request, address_cache, geocoder):
    carriers = [MockCarrier(ProviderKey.FEZ), MockCarrier(ProviderKey.GIG)]
    for carrier in carriers:
        carrier.quote_error = RuntimeError("boom")

    assert await make_aggregator(registry_of(*carriers), address_cache, geocoder).get_quotes(quote_request) == []


@pytest.mark.asyncio
async def test_slow_carrier_is_dropped(quote_request, address_cache, geocoder):
    registry = registry_of(MockCarrier(ProviderKey.FEZ), MockCarrier(ProviderKey.GIG, delay=1.0))

    quotes = await make_aggregator(registry, address_cache, geocoder, timeout=0.05).get_quotes(quote_request)

    assert [q.provider_key for q in quotes] == [ProviderKey.FEZ]


@pytest.mark.asyncio
async def test_carriers_are_quoted_concurrently(quote_request, address_cache, geocoder):
    registry = registry_of(MockCarrier(ProviderKey.FEZ, delay=0.2), MockCarrier(ProviderKey.GIG, delay=0.2))

    started = time.monotonic()
    quotes = await make_aggregator(registry, address_cache, geocoder, timeout=0.3).get_quotes(quote_request)
    elapsed = time.monotonic() - started

    assert {q.provider_key for q in quotes} == {ProviderKey.FEZ, ProviderKey.GIG}
    assert elapsed < 0.4  # back to back would take at least 0.4s


@pytest.mark.asyncio
async def test_wallet_balance_filters_unaffordable_quotes(quote_request, address_cache, geocoder):
    registry = registry_of(
        MockCarrier(ProviderKey.FEZ, price=500),
        MockCarrier(ProviderKey.GIG, price=1500),
        MockCarrier(ProviderKey.FARAMOVE, price=3000),
    )

    quotes = await make_aggregator(registry, address_cache, geocoder).get_quotes(
        quote_request, wallet_balance=Decimal("2000")
    )

    assert sorted(q.price_final for q in quotes) == [Decimal("500"), Decimal("1500")]


@pytest.mark.asyncio
async def test_quotes_include_markup_and_partner_id(quote_request, address_cache, geocoder, markup_policy):
    partners = InMemoryPartnerStore(["glovo", "faramove", "fez"])
    registry = registry_of(MockCarrier(ProviderKey.FEZ, price=4000))

    quotes = await make_aggregator(registry, address_cache, geocoder, policy=markup_policy, partners=partners) \
        .get_quotes(quote_request)

    assert len(quotes) == 1
    assert quotes[0].price_final == Decimal("4500.00")
    assert quotes[0].provider_id == 3
    assert "internal" not in quotes[0].essential_meta


@pytest.mark.asyncio
async def test_inactive_partner_is_not_called(quote_request, address_cache, geocoder):
    fez = MockCarrier(ProviderKey.FEZ)
    partners = all_partners(inactive=["fez"])

    await make_aggregator(registry_of(fez), address_cache, geocoder, partners=partners).get_quotes(quote_request)

    assert fez.quote_requests == []


"""
3. Pre-resolution
"""

@pytest.mark.asyncio
async def test_address_book_id_resolved_once(quote_request, address_cache, geocoder):
    glovo = MockCarrier(ProviderKey.GLOVO, uses_address_book=True)
    other = MockCarrier(ProviderKey.FEZ)

    await make_aggregator(registry_of(glovo, other), address_cache, geocoder).get_quotes(quote_request)

    address_cache.get_or_create.assert_awaited_once_with(quote_request.pickup.address)
    assert glovo.quote_requests[0].meta["address_book_id"] == "ab-123"
    assert "address_book_id" not in quote_request.meta


@pytest.mark.asyncio
async def test_address_book_carrier_skipped_without_id(quote_request, address_cache, geocoder):
    address_cache.get_or_create.return_value = None
    glovo = MockCarrier(ProviderKey.GLOVO, uses_address_book=True)

    quotes = await make_aggregator(registry_of(glovo, MockCarrier(ProviderKey.FEZ)), address_cache, geocoder) \
        .get_quotes(quote_request)

    assert glovo.quote_requests == []
    assert [q.provider_key for q in quotes] == [ProviderKey.FEZ]


@pytest.mark.asyncio
async def test_address_book_errors_do_not_block_other_carriers(quote_request, address_cache, geocoder):
    address_cache.get_or_create.side_effect = GeocodingError("quota exceeded")

    quotes = await make_aggregator(
        registry_of(MockCarrier(ProviderKey.GLOVO, uses_address_book=True), MockCarrier(ProviderKey.FEZ)),
        address_cache,
        geocoder,
    ).get_quotes(quote_request)

    assert [q.provider_key for q in quotes] == [ProviderKey.FEZ]


@pytest.mark.asyncio
async def test_coordinates_geocoded_for_carriers_that_need_them(quote_request, address_cache, geocoder):
    gig = MockCarrier(ProviderKey.GIG, needs_coordinates=True)

    await make_aggregator(registry_of(gig), address_cache, geocoder).get_quotes(quote_request)

    sent = gig.quote_requests[0]
    assert sent.delivery.coordinates == (6.6018, 3.3515)
    assert sent.delivery.formatted_address == "5 Allen Ave, Ikeja, Lagos, Nigeria"
    assert sent.pickup.coordinates == (6.6018, 3.3515)
    assert quote_request.delivery.coordinates is None


@pytest.mark.asyncio
async def test_no_geocoding_when_not_needed(quote_request, address_cache, geocoder):
    await make_aggregator(registry_of(MockCarrier(ProviderKey.FEZ)), address_cache, geocoder).get_quotes(quote_request)
    geocoder.normalize.assert_not_called()
    address_cache.get_or_create.assert_not_called()


@pytest.mark.asyncio
async def test_unexpected_cache_failure_does_not_block_other_carriers(quote_request, geocoder, mocker):
    store = InMemoryAddressCacheStore()
    store.get = mocker.AsyncMock(side_effect=RuntimeError("db connection lost"))
    registrar = mocker.AsyncMock(return_value="ab-123")
    cache = AddressResolutionCache(geocoder, store, registrar, default_phone="+2340000000000")
    glovo = MockCarrier(ProviderKey.GLOVO, uses_address_book=True)

    quotes = await make_aggregator(registry_of(glovo, MockCarrier(ProviderKey.FEZ)), cache, geocoder) \
        .get_quotes(quote_request)

    assert [q.provider_key for q in quotes] == [ProviderKey.FEZ]
    assert glovo.quote_requests == []
    registrar.assert_not_called()


@pytest.mark.asyncio
async def test_unexpected_geocoder_failure_leaves_coordinates_empty(quote_request, address_cache, geocoder):
    geocoder.normalize.side_effect = RuntimeError("connection reset")
    gig = MockCarrier(ProviderKey.GIG, needs_coordinates=True)

    quotes = await make_aggregator(registry_of(gig), address_cache, geocoder).get_quotes(quote_request)

    assert [q.provider_key for q in quotes] == [ProviderKey.GIG]
    assert gig.quote_requests[0].delivery.coordinates is None


@pytest.mark.asyncio
async def test_prepare_without_registration_reads_cache_only(quote_request, address_cache, geocoder, mocker):
    address_cache.lookup = mocker.AsyncMock(return_value="ab-cached")
    glovo = MockCarrier(ProviderKey.GLOVO, uses_address_book=True)

    prepared = await make_aggregator(registry_of(glovo), address_cache, geocoder) \
        .prepare_request(quote_request, [glovo], register_addresses=False)

    assert prepared.meta["address_book_id"] == "ab-cached"
    address_cache.lookup.assert_awaited_once_with(quote_request.pickup.address)
    address_cache.get_or_create.assert_not_called()
