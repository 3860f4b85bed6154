import asyncio
import itertools
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from kandel.core.errors import UpstreamQueryFailure
from kandel.distribution.model import OfferType
from kandel.market.base import MarketInterface, calculate_offer_provision

logger = logging.getLogger(__name__)

WEI_PER_GWEI = 10 ** 9

class RpcMarket(MarketInterface):
    """
    Minimal market adapter over an Ethereum JSON-RPC node.
    Reads the network gas price and applies the per-side offer gasbase.
    """

    def __init__(self, rpc_url: str, offer_gasbase: Dict[OfferType, int], timeout: float = 10.0):
        self.rpc_url = rpc_url
        self.offer_gasbase = offer_gasbase
        self.timeout = timeout
        self._ids = itertools.count(1)

    def _request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or []
        }

        try:
            response = requests.post(self.rpc_url, json=payload, timeout=self.timeout)

            if response.status_code != 200:
                logger.error(f"RPC HTTP Error [{response.status_code}] for {method}")
                raise UpstreamQueryFailure(f"RPC HTTP Error: {response.status_code} for {method}")

            data = response.json()

            if "error" in data:
                msg = data["error"].get("message", "Unknown error")
                code = data["error"].get("code")
                logger.error(f"RPC Error [{code}]: {msg}")
                raise UpstreamQueryFailure(f"RPC Error: {msg} (Code: {code})")

            return data["result"]

        except requests.RequestException as e:
            logger.error(f"Request failed: {e}")
            raise UpstreamQueryFailure(f"Network error communicating with {self.rpc_url}: {e}")
        except (ValueError, KeyError) as e:
            logger.error(f"Malformed RPC response for {method}: {e}")
            raise UpstreamQueryFailure(f"Malformed RPC response for {method}: {e}")

    def get_gasprice(self) -> int:
        """Network gas price in whole gwei, rounded up."""
        wei = int(self._request("eth_gasPrice"), 16)
        return -(-wei // WEI_PER_GWEI)

    async def get_offer_provision(self, offer_type: OfferType, gasreq: int, gasprice: int) -> Decimal:
        loop = asyncio.get_running_loop()
        network_gasprice = await loop.run_in_executor(None, self.get_gasprice)

        effective_gasprice = max(gasprice, network_gasprice)
        provision = calculate_offer_provision(effective_gasprice, gasreq, self.offer_gasbase.get(offer_type, 0))
        logger.debug(f"RPC provision for {offer_type.value}: {provision} (gasprice {effective_gasprice})")
        return provision
