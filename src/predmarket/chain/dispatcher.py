"""Action dispatcher - signs and sends state-changing calls to the market contract."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from web3.logs import DISCARD

from predmarket.errors import AuthorizationError, TransactionError, ValidationError
from predmarket.models import Outcome

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from predmarket.chain.contract import MarketContract

log = structlog.get_logger(__name__)


class ActionDispatcher:
    """Sends transactions from one local account. Failures raise TransactionError(step)."""

    def __init__(
        self,
        market: MarketContract,
        private_key: str,
        chain_id: int,
        receipt_timeout_sec: float = 120.0,
    ) -> None:
        self.market = market
        self.w3 = market.w3
        self.account: LocalAccount = self.w3.eth.account.from_key(private_key)
        self.chain_id = chain_id
        self.receipt_timeout_sec = receipt_timeout_sec

    @property
    def address(self) -> str:
        return self.account.address

    async def send(self, fn: Any, step: str) -> str:
        """Build, sign and submit a contract call. Returns the transaction hash (hex)."""
        try:
            nonce = await self.w3.eth.get_transaction_count(self.address, "pending")
            tx = await fn.build_transaction(
                {"from": self.address, "nonce": nonce, "chainId": self.chain_id}
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            log.error("tx_submit_failed", step=step, error=str(e))
            raise TransactionError(f"{step} failed: {e}", step=step) from e
        tx_hex = tx_hash.to_0x_hex()
        log.info("tx_submitted", step=step, tx_hash=tx_hex)
        return tx_hex

    async def wait_for_receipt(self, tx_hash: str, step: str) -> Any:
        """Wait until mined. A reverted transaction is a failure."""
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout_sec)
        except Exception as e:
            log.error("tx_receipt_failed", step=step, tx_hash=tx_hash, error=str(e))
            raise TransactionError(f"{step} was not confirmed: {e}", step=step) from e
        if receipt["status"] != 1:
            log.error("tx_reverted", step=step, tx_hash=tx_hash)
            raise TransactionError(f"{step} transaction reverted", step=step)
        log.info("tx_confirmed", step=step, tx_hash=tx_hash, block=receipt.get("blockNumber"))
        return receipt

    async def transact(self, fn: Any, step: str) -> Any:
        tx_hash = await self.send(fn, step)
        return await self.wait_for_receipt(tx_hash, step)

    async def extract_market_id(self, tx_hash: str) -> int:
        """Read the MarketCreated event from the proposal receipt."""
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
            events = self.market.contract.events.MarketCreated().process_receipt(receipt, errors=DISCARD)
        except Exception as e:
            raise TransactionError(f"Could not read transaction logs: {e}", step="awaiting_confirmation") from e
        if not events:
            raise TransactionError("MarketCreated event not found in transaction logs", step="awaiting_confirmation")
        return int(events[0]["args"]["marketId"])

    async def creation_stake_amount(self) -> int:
        return await self.market.creation_stake_amount()

    async def approve(self, amount: int, step: str = "approving_allowance") -> Any:
        fn = self.market.token.functions.approve(self.market.address, amount)
        return await self.transact(fn, step)

    async def submit_proposal(self, question: str, option_a: str, option_b: str, end_time: int) -> str:
        fn = self.market.contract.functions.proposeMarket(question, option_a, option_b, end_time)
        return await self.send(fn, "submitting_proposal")

    async def buy_shares(self, market_id: int, option_a: bool, amount: int) -> Any:
        """Buy shares, approving the collateral first when the allowance is short."""
        allowance = await self.market.token_allowance(self.address)
        if allowance < amount:
            await self.approve(amount, step="buy_approval")
        fn = self.market.contract.functions.buyShares(market_id, option_a, amount)
        return await self.transact(fn, "buy_shares")

    async def claim_winnings(self, market_id: int) -> Any:
        return await self.transact(self.market.contract.functions.claimWinnings(market_id), "claim_winnings")

    async def claim_refund(self, market_id: int) -> Any:
        return await self.transact(self.market.contract.functions.claimRefund(market_id), "claim_refund")

    async def _require_owner(self) -> None:
        owner = await self.market.owner()
        if owner.lower() != self.address.lower():
            raise AuthorizationError("Only the contract owner can do this")

    async def resolve_market(self, market_id: int, outcome: Outcome) -> Any:
        if outcome == Outcome.UNRESOLVED:
            raise ValidationError("Outcome must be OptionA, OptionB or Invalid")
        await self._require_owner()
        fn = self.market.contract.functions.resolveMarket(market_id, int(outcome))
        return await self.transact(fn, "resolve_market")

    async def set_creation_stake(self, amount: int) -> Any:
        await self._require_owner()
        fn = self.market.contract.functions.setCreationStakeAmount(amount)
        return await self.transact(fn, "set_creation_stake")
