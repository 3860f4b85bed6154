from enum import Enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple, Union

from kandel.core.decimals import DECIMAL_CONTEXT, Amount
from kandel.core.errors import InvalidDistribution

class OfferType(str, Enum):
    BID = "bids"
    ASK = "asks"

@dataclass(frozen=True)
class Offer:
    index: int
    offer_type: OfferType
    base: Decimal
    quote: Decimal

    @property
    def gives(self) -> Decimal:
        return self.base if self.offer_type == OfferType.ASK else self.quote

    @property
    def wants(self) -> Decimal:
        return self.quote if self.offer_type == OfferType.ASK else self.base

    @property
    def price(self) -> Optional[Decimal]:
        """Quote per base, or None for an offer with no base."""
        if self.base == 0:
            return None
        return DECIMAL_CONTEXT.divide(self.quote, self.base)

@dataclass(frozen=True)
class IndexChunk:
    """Half-open index range [from_index, to_index)."""
    from_index: int
    to_index: int

    def __len__(self) -> int:
        return self.to_index - self.from_index

@dataclass(frozen=True)
class Distribution:
    """
    An immutable grid of offers. Construction fails with InvalidDistribution
    unless offers are sorted by index, indices are unique and inside
    [0, price_points), amounts are non-negative and every bid sits strictly
    below every ask.
    """
    ratio: Decimal
    price_points: int
    offers: Tuple[Offer, ...]
    base_decimals: int
    quote_decimals: int

    def __post_init__(self):
        object.__setattr__(self, "offers", tuple(self.offers))

        if self.ratio <= 1:
            raise InvalidDistribution(f"Ratio must be > 1, got {self.ratio}.")
        if self.price_points < len(self.offers):
            raise InvalidDistribution(
                f"price_points ({self.price_points}) is less than the number of offers ({len(self.offers)})."
            )

        previous = -1
        for offer in self.offers:
            if offer.index <= previous:
                raise InvalidDistribution(f"Offer indices must be unique and ascending, got {offer.index} after {previous}.")
            if offer.index >= self.price_points:
                raise InvalidDistribution(f"Offer index {offer.index} is outside [0, {self.price_points}).")
            if offer.base < 0 or offer.quote < 0:
                raise InvalidDistribution(f"Offer at index {offer.index} has a negative amount.")
            previous = offer.index

        bids = self.get_offers(OfferType.BID)
        asks = self.get_offers(OfferType.ASK)
        if bids and asks and bids[-1].index >= asks[0].index:
            raise InvalidDistribution(
                f"Bid at index {bids[-1].index} is not below the first ask at index {asks[0].index}."
            )

    def get_offer_count(self) -> int:
        return len(self.offers)

    def get_offers(self, offer_type: OfferType) -> List[Offer]:
        return [o for o in self.offers if o.offer_type == offer_type]

    def get_first_ask_index(self) -> int:
        """Index of the lowest ask, or price_points when the grid holds only bids."""
        asks = self.get_offers(OfferType.ASK)
        return asks[0].index if asks else self.price_points

    def get_offered_volume(self) -> Tuple[Decimal, Decimal]:
        """
        Funds the grid needs: base given by all asks and quote given by all bids.
        Returns (required_base, required_quote).
        """
        required_base = sum((o.base for o in self.get_offers(OfferType.ASK)), Decimal(0))
        required_quote = sum((o.quote for o in self.get_offers(OfferType.BID)), Decimal(0))
        return required_base, required_quote

    def get_prices(self) -> List[Optional[Decimal]]:
        return [o.price for o in self.offers]

# Builder inputs. Exactly one of these is passed to DistributionHelper.calculate_distribution.

@dataclass(frozen=True)
class ConstantGives:
    ratio: Amount
    prices: Sequence[Amount]
    ask_gives: Amount
    bid_gives: Amount
    first_ask_index: int

@dataclass(frozen=True)
class ConstantBase:
    ratio: Amount
    prices: Sequence[Amount]
    base: Amount
    first_ask_index: int

@dataclass(frozen=True)
class ExplicitOffer:
    index: Optional[int]
    offer_type: Optional[OfferType]
    price: Optional[Amount]
    gives: Optional[Amount]

@dataclass(frozen=True)
class DistributionParams:
    ratio: Amount
    price_points: Optional[int] = None

@dataclass(frozen=True)
class ExplicitOffers:
    offers: Sequence[Union[ExplicitOffer, Dict]]
    params: Union[DistributionParams, Distribution, Dict]

DistributionInput = Union[ConstantGives, ConstantBase, ExplicitOffers]
