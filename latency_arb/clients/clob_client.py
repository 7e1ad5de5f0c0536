"""
CLOB client wrapper for Polymarket order placement.
Wraps py-clob-client with async support and error handling.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional
import time

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import OrderArgs, OrderType
from py_clob_client.order_builder.constants import BUY, SELL

from ..utils.logger import get_logger

logger = get_logger("clob")


class OrderSide(Enum):
    """Order side enum."""
    BUY = "BUY"
    SELL = "SELL"


class OrderExecutionError(Exception):
    """Raised when the venue rejects an order (balance, allowance, rule)."""


@dataclass
class OrderResult:
    """Result of an order placement."""
    order_id: str
    status: str
    timestamp: float = 0.0


class CLOBClient:
    """
    Async wrapper for the Polymarket CLOB client.

    Orders are fill-or-kill by default: a placement either fills or raises
    ``OrderExecutionError``.
    """

    def __init__(
        self,
        private_key: str,
        chain_id: int = 137,  # Polygon Mainnet
        host: str = "https://clob.polymarket.com",
        funder_address: Optional[str] = None,
        signature_type: Optional[int] = None,
        order_type: Literal["FOK", "GTC"] = "FOK"
    ):
        """
        Initialize CLOB client.

        Args:
            private_key: Wallet private key used to sign orders
            chain_id: Blockchain chain ID (137 for Polygon)
            host: CLOB API host
            funder_address: Polymarket proxy wallet holding the funds
            signature_type: py-clob-client signature type (0, 1, 2)
            order_type: Time in force for placed orders
        """
        self.private_key = private_key
        self.chain_id = chain_id
        self.host = host
        self.funder_address = funder_address or None
        self.signature_type = signature_type
        self.order_type = order_type

        self._client: Optional[ClobClient] = None

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    async def initialize(self) -> None:
        """Create the client and derive L2 API credentials."""
        if not self.private_key:
            raise OrderExecutionError("No private key configured; live trading disabled")

        logger.info(
            "Initializing CLOB client",
            extra={"funder": self.funder_address, "signature_type": self.signature_type}
        )

        # Client construction and key derivation do blocking I/O
        loop = asyncio.get_running_loop()
        self._client = await loop.run_in_executor(None, self._create_client)

        logger.info("CLOB client initialized successfully")

    def _create_client(self) -> ClobClient:
        """Create the underlying py-clob-client instance with API creds."""
        client = ClobClient(
            self.host,
            key=self.private_key,
            chain_id=self.chain_id,
            signature_type=self.signature_type,
            funder=self.funder_address
        )
        client.set_api_creds(client.create_or_derive_api_creds())
        return client

    async def place_order(
        self,
        token_id: str,
        side: OrderSide,
        price: float,
        size: float
    ) -> OrderResult:
        """
        Place an order on the CLOB.

        Args:
            token_id: Outcome token to trade
            side: BUY or SELL
            price: Limit price (0-1)
            size: Number of shares

        Returns:
            OrderResult with the venue's order id

        Raises:
            OrderExecutionError: If the order is invalid or rejected
        """
        if not self._client:
            raise OrderExecutionError("CLOB client not initialized")

        if price <= 0 or size <= 0:
            raise OrderExecutionError(f"Invalid price/size: {price}/{size}")

        logger.debug(f"Placing order: {side.value} {size} @ {price} for {token_id}")

        order_args = OrderArgs(
            token_id=token_id,
            price=price,
            size=size,
            side=BUY if side == OrderSide.BUY else SELL
        )
        order_type = OrderType.FOK if self.order_type == "FOK" else OrderType.GTC

        try:
            loop = asyncio.get_running_loop()
            signed_order = await loop.run_in_executor(
                None,
                lambda: self._client.create_order(order_args)
            )
            response = await loop.run_in_executor(
                None,
                lambda: self._client.post_order(signed_order, orderType=order_type)
            )
        except Exception as e:
            message = str(e)
            if "allowance" in message.lower():
                logger.error("USDC allowance missing for the exchange contract")
            raise OrderExecutionError(f"Order failed: {message}") from e

        return self._parse_response(response, token_id, side, price, size)

    def _parse_response(
        self,
        response: Optional[dict],
        token_id: str,
        side: OrderSide,
        price: float,
        size: float
    ) -> OrderResult:
        # The API can answer HTTP 200 with an error body
        if not response:
            raise OrderExecutionError("Empty order response")
        if response.get("errorMsg"):
            raise OrderExecutionError(f"API rejected order: {response['errorMsg']}")
        if response.get("success") is False:
            raise OrderExecutionError(f"Order rejected: {response}")

        order_id = response.get("orderID") or response.get("id")
        if not order_id:
            raise OrderExecutionError(f"Order response without id: {response}")

        logger.info(
            "Order placed successfully",
            extra={
                "order_id": order_id,
                "token_id": token_id,
                "side": side.value,
                "size": size,
                "price": price
            }
        )

        return OrderResult(
            order_id=order_id,
            status=response.get("status", "unknown"),
            timestamp=time.time()
        )
