"""Read-only access to the market contract (market source and position source)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError

from predmarket.chain.abi import ERC20_ABI, MARKET_ABI
from predmarket.errors import UpstreamReadError, ValidationError
from predmarket.models import Market, UserPosition

if TYPE_CHECKING:
    from predmarket.config import Settings

log = structlog.get_logger(__name__)


def make_web3(rpc_url: str, timeout: float = 30.0) -> AsyncWeb3:
    return AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))


class MarketContract:
    """Typed reads against the market contract. RPC failures raise UpstreamReadError."""

    def __init__(self, w3: AsyncWeb3, contract_address: str, token_address: str) -> None:
        self.w3 = w3
        self.address = AsyncWeb3.to_checksum_address(contract_address)
        self.token_address = AsyncWeb3.to_checksum_address(token_address)
        self.contract = w3.eth.contract(address=self.address, abi=MARKET_ABI)
        self.token = w3.eth.contract(address=self.token_address, abi=ERC20_ABI)

    @classmethod
    def from_settings(cls, settings: Settings) -> MarketContract:
        return cls(make_web3(settings.rpc_url), settings.contract_address, settings.token_address)

    async def _call(self, what: str, fn: Any, revert_ok: bool = False) -> Any:
        """Run a view call. A revert returns None when revert_ok, else it is an upstream failure."""
        try:
            return await fn.call()
        except ContractLogicError as e:
            if revert_ok:
                return None
            log.warning("chain_call_reverted", call=what, error=str(e))
            raise UpstreamReadError(f"Chain read reverted: {what}") from e
        except Exception as e:
            log.warning("chain_read_failed", call=what, error=str(e))
            raise UpstreamReadError(f"Chain read failed: {what}") from e

    async def market_count(self) -> int:
        return int(await self._call("marketCount", self.contract.functions.marketCount()))

    async def get_market(self, market_id: int) -> Market | None:
        """Market state, or None when the id is not (yet) known to the contract."""
        raw = await self._call("getMarketInfo", self.contract.functions.getMarketInfo(market_id), revert_ok=True)
        if raw is None or (not raw[0] and int(raw[3]) == 0):
            return None
        return Market.from_contract_tuple(market_id, raw)

    async def get_position(self, market_id: int, wallet: str | None) -> UserPosition | None:
        if not wallet:
            return None
        if not AsyncWeb3.is_address(wallet):
            raise ValidationError(f"Not a valid address: {wallet}")
        fn = self.contract.functions.getSharesBalance(market_id, AsyncWeb3.to_checksum_address(wallet))
        raw = await self._call("getSharesBalance", fn, revert_ok=True)
        if raw is None:
            return None
        a, b = raw
        return UserPosition(market_id=market_id, wallet=wallet, option_a_shares=int(a), option_b_shares=int(b))

    async def market_proposer(self, market_id: int) -> str | None:
        fn = self.contract.functions.marketProposers(market_id)
        proposer = await self._call("marketProposers", fn, revert_ok=True)
        if not proposer or int(proposer, 16) == 0:
            return None
        return proposer

    async def creation_stake_amount(self) -> int:
        return int(await self._call("creationStakeAmount", self.contract.functions.creationStakeAmount()))

    async def owner(self) -> str:
        return await self._call("owner", self.contract.functions.owner())

    async def token_balance(self, wallet: str) -> int:
        return int(
            await self._call("balanceOf", self.token.functions.balanceOf(AsyncWeb3.to_checksum_address(wallet)))
        )

    async def token_allowance(self, wallet: str) -> int:
        fn = self.token.functions.allowance(AsyncWeb3.to_checksum_address(wallet), self.address)
        return int(await self._call("allowance", fn))

    async def close(self) -> None:
        """Release the provider's cached HTTP session."""
        await self.w3.provider.disconnect()
