import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union

from kandel.core.decimals import DecimalPolicy, Amount, to_decimal
from kandel.core.errors import InvalidDistribution, InvalidRange, MissingOffer, UpstreamQueryFailure
from kandel.distribution.model import (
    ConstantBase,
    ConstantGives,
    Distribution,
    DistributionInput,
    DistributionParams,
    ExplicitOffer,
    ExplicitOffers,
    IndexChunk,
    Offer,
    OfferType,
)
from kandel.market.base import MarketInterface

logger = logging.getLogger(__name__)

_EXPLICIT_FIELDS = ("index", "offer_type", "price", "gives")

def _index_of(item: Any) -> int:
    return item["index"] if isinstance(item, dict) else item.index

def sort_by_index(items: List[Any]) -> List[Any]:
    """Sorts in place, stable, ascending by index. Works for objects and dicts."""
    items.sort(key=_index_of)
    return items

def get_offer_type(index: int, first_ask_index: int) -> OfferType:
    """Indices at or above first_ask_index are asks, everything below is a bid."""
    return OfferType.ASK if index >= first_ask_index else OfferType.BID

def get_dual_index(offer_type: OfferType, index: int, price_points: int, step: int) -> int:
    """
    Index of the offer to refresh when the offer at `index` is taken.
    Mirrors GeometricKandel.transportDestination on-chain, so both sides agree.
    """
    better = 0
    if offer_type == OfferType.ASK:
        better = index + step
        if better >= price_points:
            better = price_points - 1
    else:
        if index >= step:
            better = index - step
        # else better stays at 0
    return better

def chunk_indices(from_index: int, to_index: int, max_offers_in_chunk: int) -> List[IndexChunk]:
    """
    Splits [from_index, to_index) into ascending chunks of at most
    max_offers_in_chunk indices.
    E.g., chunk_indices(0, 10, 3) -> [0,3) [3,6) [6,9) [9,10)
    """
    if max_offers_in_chunk < 1:
        raise InvalidRange(f"Chunk size must be at least 1, got {max_offers_in_chunk}.")
    if from_index > to_index:
        raise InvalidRange(f"Range start ({from_index}) must not exceed range end ({to_index}).")

    return [
        IndexChunk(from_index=i, to_index=min(i + max_offers_in_chunk, to_index))
        for i in range(from_index, to_index, max_offers_in_chunk)
    ]

async def get_required_provision(
    market: MarketInterface,
    gasreq: int,
    gasprice: int,
    offer_count: int,
    timeout: Optional[float] = None
) -> Decimal:
    """
    Provision needed for offer_count price points. Each price point can hold
    both a bid and an ask, so both sides are provisioned. The two market
    queries run concurrently; their errors propagate unchanged.
    """
    if offer_count < 0:
        raise ValueError(f"Offer count must be >= 0, got {offer_count}.")

    tasks = [
        asyncio.ensure_future(market.get_offer_provision(OfferType.BID, gasreq, gasprice)),
        asyncio.ensure_future(market.get_offer_provision(OfferType.ASK, gasreq, gasprice)),
    ]
    try:
        provision_bid, provision_ask = await asyncio.wait_for(asyncio.gather(*tasks), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise UpstreamQueryFailure(f"Provision query timed out after {timeout}s.") from e
    finally:
        # A failed side leaves the other one running
        for task in tasks:
            if not task.done():
                task.cancel()

    logger.debug(f"Provision per price point: bid={provision_bid}, ask={provision_ask}")
    return (provision_bid + provision_ask) * offer_count

class DistributionHelper:
    """
    Builds Kandel distributions for a pair of tokens with fixed decimals.
    Stateless apart from the decimals, so one helper can serve any number of callers.
    """

    def __init__(self, base_decimals: int, quote_decimals: int):
        self.base_decimals = base_decimals
        self.quote_decimals = quote_decimals
        self.policy = DecimalPolicy(base_decimals, quote_decimals)

    def round_base(self, base: Amount) -> Decimal:
        return self.policy.round_base(base)

    def round_quote(self, quote: Amount) -> Decimal:
        return self.policy.round_quote(quote)

    def quote_from_base_and_price(self, base: Amount, price: Amount) -> Decimal:
        return self.policy.quote_from_base_and_price(base, price)

    def base_from_quote_and_price(self, quote: Amount, price: Amount) -> Decimal:
        return self.policy.base_from_quote_and_price(quote, price)

    def _distribution(self, ratio: Amount, price_points: int, offers: List[Offer]) -> Distribution:
        return Distribution(
            ratio=to_decimal(ratio),
            price_points=price_points,
            offers=tuple(sort_by_index(offers)),
            base_decimals=self.base_decimals,
            quote_decimals=self.quote_decimals
        )

    def calculate_distribution(self, inputs: DistributionInput) -> Distribution:
        """Builds a distribution from one of ConstantGives, ConstantBase or ExplicitOffers."""
        if isinstance(inputs, ConstantGives):
            return self.calculate_distribution_constant_gives(
                inputs.ratio, inputs.prices, inputs.ask_gives, inputs.bid_gives, inputs.first_ask_index
            )
        elif isinstance(inputs, ConstantBase):
            return self.calculate_distribution_constant_base(
                inputs.ratio, inputs.prices, inputs.base, inputs.first_ask_index
            )
        elif isinstance(inputs, ExplicitOffers):
            return self.create_distribution_with_offers(inputs.offers, inputs.params)
        else:
            raise TypeError(f"Unknown distribution input: {type(inputs).__name__}")

    def calculate_distribution_constant_gives(
        self,
        ratio: Amount,
        prices: Sequence[Amount],
        ask_gives: Amount,
        bid_gives: Amount,
        first_ask_index: int
    ) -> Distribution:
        """Bids all give bid_gives of quote, asks all give ask_gives of base."""
        ask_gives = to_decimal(ask_gives)
        bid_gives = to_decimal(bid_gives)

        offers = []
        for index, price in enumerate(prices):
            if get_offer_type(index, first_ask_index) == OfferType.BID:
                offers.append(Offer(
                    index=index,
                    offer_type=OfferType.BID,
                    base=self.base_from_quote_and_price(bid_gives, price),
                    quote=bid_gives
                ))
            else:
                offers.append(Offer(
                    index=index,
                    offer_type=OfferType.ASK,
                    base=ask_gives,
                    quote=self.quote_from_base_and_price(ask_gives, price)
                ))

        logger.debug(f"Constant gives distribution: {len(offers)} offers, first ask at {first_ask_index}")
        return self._distribution(ratio, len(offers), offers)

    def calculate_distribution_constant_base(
        self,
        ratio: Amount,
        prices: Sequence[Amount],
        constant_base: Amount,
        first_ask_index: int
    ) -> Distribution:
        """Every offer holds the same base; quote follows the price at its index."""
        # Rounded once for the whole ladder.
        base = self.round_base(constant_base)
        offers = [
            Offer(
                index=index,
                offer_type=get_offer_type(index, first_ask_index),
                base=base,
                quote=self.quote_from_base_and_price(base, price)
            )
            for index, price in enumerate(prices)
        ]

        logger.debug(f"Constant base distribution: {len(offers)} offers with base {base}")
        return self._distribution(ratio, len(offers), offers)

    def calculate_distribution_from_prices(
        self,
        ratio: Amount,
        prices: Sequence[Amount],
        first_ask_index: int,
        initial_ask_gives: Amount,
        initial_bid_gives: Optional[Amount] = None
    ) -> Distribution:
        """
        Constant gives when initial_bid_gives is given, otherwise constant base
        with initial_ask_gives used as the base for both sides.
        """
        if initial_bid_gives is not None:
            inputs = ConstantGives(ratio, prices, initial_ask_gives, initial_bid_gives, first_ask_index)
        else:
            inputs = ConstantBase(ratio, prices, initial_ask_gives, first_ask_index)
        return self.calculate_distribution(inputs)

    def create_distribution_with_offers(
        self,
        explicit_offers: Sequence[Union[ExplicitOffer, Dict]],
        distribution: Union[DistributionParams, Distribution, Dict]
    ) -> Distribution:
        """
        Builds a distribution from explicit (index, offer_type, price, gives)
        records. `gives` is base for asks and quote for bids. Ratio and
        price_points come from `distribution`: a DistributionParams, a
        {ratio, price_points} mapping or an existing Distribution. Missing
        price_points defaults to the offer count.
        """
        offers = []
        for record in explicit_offers:
            index, offer_type, price, gives = self._read_explicit_offer(record)
            if offer_type == OfferType.ASK:
                base = to_decimal(gives)
                quote = self.quote_from_base_and_price(gives, price)
            else:
                base = self.base_from_quote_and_price(gives, price)
                quote = to_decimal(gives)
            offers.append(Offer(index=index, offer_type=offer_type, base=base, quote=quote))

        if isinstance(distribution, dict):
            ratio = distribution.get("ratio")
            price_points = distribution.get("price_points")
        else:
            ratio = distribution.ratio
            price_points = distribution.price_points

        if ratio is None:
            raise InvalidDistribution(f"Distribution parameters {distribution!r} are missing ratio.")
        if price_points is None:
            price_points = len(offers)

        logger.debug(f"Explicit distribution: {len(offers)} offers over {price_points} price points")
        return self._distribution(ratio, price_points, offers)

    def _read_explicit_offer(self, record: Union[ExplicitOffer, Dict]):
        if isinstance(record, dict):
            values = [record.get(name) for name in _EXPLICIT_FIELDS]
        else:
            values = [getattr(record, name, None) for name in _EXPLICIT_FIELDS]

        missing = [name for name, value in zip(_EXPLICIT_FIELDS, values) if value is None]
        if missing:
            raise MissingOffer(f"Explicit offer {record!r} is missing {', '.join(missing)}.")

        index, offer_type, price, gives = values
        return index, OfferType(offer_type), price, gives

    def sort_by_index(self, items: List[Any]) -> List[Any]:
        return sort_by_index(items)

    def get_offer_type(self, index: int, first_ask_index: int) -> OfferType:
        return get_offer_type(index, first_ask_index)

    def get_dual_index(self, offer_type: OfferType, index: int, price_points: int, step: int) -> int:
        return get_dual_index(offer_type, index, price_points, step)

    def chunk_indices(self, from_index: int, to_index: int, max_offers_in_chunk: int) -> List[IndexChunk]:
        return chunk_indices(from_index, to_index, max_offers_in_chunk)

    async def get_required_provision(
        self,
        market: MarketInterface,
        gasreq: int,
        gasprice: int,
        offer_count: int,
        timeout: Optional[float] = None
    ) -> Decimal:
        return await get_required_provision(market, gasreq, gasprice, offer_count, timeout=timeout)
