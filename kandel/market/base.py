from abc import ABC, abstractmethod
from decimal import Decimal

from kandel.core.decimals import DECIMAL_CONTEXT
from kandel.distribution.model import OfferType

# Gas prices are quoted in gwei; provisions are paid in the chain's native unit.
GWEI_PER_NATIVE = Decimal(10) ** 9

def calculate_offer_provision(gasprice: int, gasreq: int, offer_gasbase: int) -> Decimal:
    """
    Native collateral locked by one offer: gasprice (gwei) * (gasreq + gasbase) / 1e9.
    E.g., calculate_offer_provision(2, 100_000, 50_000) -> Decimal("0.0003")
    """
    gas = Decimal(gasreq + offer_gasbase)
    return DECIMAL_CONTEXT.divide(DECIMAL_CONTEXT.multiply(Decimal(gasprice), gas), GWEI_PER_NATIVE)

class MarketInterface(ABC):
    """
    The slice of an on-chain market the distribution engine depends on.
    """

    @abstractmethod
    async def get_offer_provision(self, offer_type: OfferType, gasreq: int, gasprice: int) -> Decimal:
        """
        Provision one offer on the given side needs, in native units.
        Raises UpstreamQueryFailure when the market cannot be queried.
        """
        pass
