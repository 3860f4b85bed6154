import asyncio
import pytest
from decimal import Decimal
from kandel.distribution.helper import DistributionHelper, get_required_provision
from kandel.distribution.model import OfferType
from kandel.market.base import MarketInterface
from kandel.market.mock import MockMarket
from kandel.core.errors import UpstreamQueryFailure

class BothSidesMarket(MarketInterface):
    """Answers only once both sides have been asked, so sequential queries would hang."""
    def __init__(self):
        self.started = 0
        self.both_started = asyncio.Event()

    async def get_offer_provision(self, offer_type, gasreq, gasprice):
        self.started += 1
        if self.started == 2:
            self.both_started.set()
        await self.both_started.wait()
        return Decimal("1") if offer_type == OfferType.BID else Decimal("2")

class BrokenMarket(MarketInterface):
    async def get_offer_provision(self, offer_type, gasreq, gasprice):
        raise RuntimeError("market contract reverted")

class OneSideFailsMarket(MarketInterface):
    """Bids fail at once while asks take their time."""
    def __init__(self):
        self.ask_cancelled = False
        self.ask_finished = False

    async def get_offer_provision(self, offer_type, gasreq, gasprice):
        if offer_type == OfferType.BID:
            raise UpstreamQueryFailure("bid side unavailable")
        try:
            await asyncio.sleep(0.5)
        except asyncio.CancelledError:
            self.ask_cancelled = True
            raise
        self.ask_finished = True
        return Decimal("1")

def gasbase_market():
    return MockMarket(offer_gasbase={OfferType.BID: 50_000, OfferType.ASK: 70_000})

@pytest.mark.asyncio
async def test_provision_covers_both_sides():
    market = gasbase_market()
    # bid: 2 * 150000 / 1e9, ask: 2 * 170000 / 1e9
    provision = await get_required_provision(market, gasreq=100_000, gasprice=2, offer_count=10)
    assert provision == Decimal("0.0064")
    assert market.queries == {OfferType.BID: 1, OfferType.ASK: 1}

@pytest.mark.asyncio
async def test_provision_is_additive():
    market = gasbase_market()
    one = await get_required_provision(market, gasreq=100_000, gasprice=3, offer_count=1)
    for n in [0, 2, 7, 250]:
        assert await get_required_provision(market, gasreq=100_000, gasprice=3, offer_count=n) == one * n

@pytest.mark.asyncio
async def test_queries_run_concurrently():
    provision = await get_required_provision(BothSidesMarket(), gasreq=1, gasprice=1, offer_count=3, timeout=1.0)
    assert provision == Decimal("9")

@pytest.mark.asyncio
async def test_market_failure_propagates():
    market = gasbase_market()
    market.fail_with("node unavailable")
    with pytest.raises(UpstreamQueryFailure, match="node unavailable"):
        await get_required_provision(market, gasreq=100_000, gasprice=2, offer_count=1)

    # Errors that are not ours are not wrapped either
    with pytest.raises(RuntimeError, match="reverted"):
        await get_required_provision(BrokenMarket(), gasreq=100_000, gasprice=2, offer_count=1)

@pytest.mark.asyncio
async def test_failed_side_cancels_the_other():
    market = OneSideFailsMarket()
    with pytest.raises(UpstreamQueryFailure, match="bid side unavailable"):
        await get_required_provision(market, gasreq=100_000, gasprice=2, offer_count=1)

    await asyncio.sleep(0.05)
    assert market.ask_cancelled
    assert not market.ask_finished

@pytest.mark.asyncio
async def test_timeout_surfaces_as_failure():
    market = MockMarket(delay=1.0)
    with pytest.raises(UpstreamQueryFailure, match="timed out"):
        await get_required_provision(market, gasreq=100_000, gasprice=2, offer_count=1, timeout=0.05)

@pytest.mark.asyncio
async def test_negative_offer_count():
    with pytest.raises(ValueError, match=">= 0"):
        await get_required_provision(gasbase_market(), gasreq=100_000, gasprice=2, offer_count=-1)

@pytest.mark.asyncio
async def test_helper_get_required_provision():
    helper = DistributionHelper(base_decimals=18, quote_decimals=6)
    provision = await helper.get_required_provision(gasbase_market(), 100_000, 2, 1)
    assert provision == Decimal("0.00064")
