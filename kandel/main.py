import argparse
import asyncio
import sys
import logging
from decimal import Decimal

from kandel.core.config import load_config, AppConfig, ConfigError
from kandel.core.errors import KandelError
from kandel.distribution.helper import DistributionHelper
from kandel.distribution.model import ConstantBase, ConstantGives, Distribution, OfferType
from kandel.market.base import MarketInterface
from kandel.market.mock import MockMarket
from kandel.market.rpc import RpcMarket

def setup_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

def build_market(config: AppConfig) -> MarketInterface:
    gasbase = {
        OfferType.BID: config.market.offer_gasbase_bids,
        OfferType.ASK: config.market.offer_gasbase_asks
    }
    if config.market.rpc_url:
        return RpcMarket(config.market.rpc_url, gasbase, timeout=config.market.query_timeout_seconds)
    return MockMarket(offer_gasbase=gasbase)

def build_distribution(config: AppConfig, helper: DistributionHelper) -> Distribution:
    dist = config.distribution
    if dist.mode == "CONSTANT_GIVES":
        inputs = ConstantGives(dist.ratio, dist.prices, dist.ask_gives, dist.bid_gives, dist.first_ask_index)
    else:
        inputs = ConstantBase(dist.ratio, dist.prices, dist.base, dist.first_ask_index)
    return helper.calculate_distribution(inputs)

def plan(config: AppConfig, market: MarketInterface, max_chunk: int, offer_count: int) -> Decimal:
    """Builds the distribution, logs the offers and chunk plan, returns the required provision."""
    logger = logging.getLogger("main")

    helper = DistributionHelper(config.tokens.base_decimals, config.tokens.quote_decimals)
    distribution = build_distribution(config, helper)

    logger.info(f"Distribution: {distribution.get_offer_count()} offers, ratio {distribution.ratio}, "
                f"first ask at {distribution.get_first_ask_index()}")
    for offer in distribution.offers:
        dual = helper.get_dual_index(offer.offer_type, offer.index, distribution.price_points, config.chunking.step)
        logger.info(f"  [{offer.index}] {offer.offer_type.value}: base={offer.base} quote={offer.quote} (dual {dual})")

    required_base, required_quote = distribution.get_offered_volume()
    logger.info(f"Required funds: base={required_base}, quote={required_quote}")

    for chunk in helper.chunk_indices(0, distribution.price_points, max_chunk):
        logger.info(f"Chunk [{chunk.from_index}, {chunk.to_index})")

    provision = asyncio.run(helper.get_required_provision(
        market,
        config.market.gasreq,
        config.market.gasprice,
        offer_count,
        timeout=config.market.query_timeout_seconds
    ))
    logger.info(f"Required provision for {offer_count} price points: {provision}")
    return provision

def main():
    setup_logging()
    logger = logging.getLogger("main")

    parser = argparse.ArgumentParser(description="Kandel distribution planner")
    parser.add_argument("--config", type=str, default="config.yaml", help="Path to configuration file")
    parser.add_argument("--max-chunk", type=int, default=None, help="Override max offers per chunk")
    parser.add_argument("--offer-count", type=int, default=None, help="Price points to provision (default: whole ladder)")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Configuration Error: {e}")
        sys.exit(1)

    max_chunk = args.max_chunk if args.max_chunk is not None else config.chunking.max_offers_in_chunk
    offer_count = args.offer_count if args.offer_count is not None else len(config.distribution.prices)

    try:
        plan(config, build_market(config), max_chunk, offer_count)
    except (KandelError, ValueError) as e:
        logger.error(f"Planning failed: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
