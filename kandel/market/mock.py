import asyncio
import logging
from decimal import Decimal
from typing import Dict, Optional

from kandel.core.errors import UpstreamQueryFailure
from kandel.distribution.model import OfferType
from kandel.market.base import MarketInterface, calculate_offer_provision

logger = logging.getLogger(__name__)

class MockMarket(MarketInterface):
    """
    A purely deterministic market for unit tests and dry runs.
    """
    def __init__(
        self,
        offer_gasbase: Optional[Dict[OfferType, int]] = None,
        global_gasprice: int = 0,
        delay: float = 0.0
    ):
        self._offer_gasbase = offer_gasbase or {OfferType.BID: 0, OfferType.ASK: 0}
        self._global_gasprice = global_gasprice
        self._delay = delay
        self._failure: Optional[str] = None
        # Number of provision queries served, per side
        self.queries: Dict[OfferType, int] = {OfferType.BID: 0, OfferType.ASK: 0}

    def set_offer_gasbase(self, offer_type: OfferType, gasbase: int):
        """Helper to change one side's gasbase."""
        self._offer_gasbase[offer_type] = gasbase

    def fail_with(self, message: Optional[str]):
        """Helper to make every following query raise UpstreamQueryFailure (None clears it)."""
        self._failure = message

    async def get_offer_provision(self, offer_type: OfferType, gasreq: int, gasprice: int) -> Decimal:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._failure:
            raise UpstreamQueryFailure(self._failure)

        self.queries[offer_type] += 1
        effective_gasprice = max(gasprice, self._global_gasprice)
        provision = calculate_offer_provision(effective_gasprice, gasreq, self._offer_gasbase.get(offer_type, 0))
        logger.debug(f"MockMarket provision for {offer_type.value}: {provision} (gasprice {effective_gasprice})")
        return provision
