"""On-chain settlement through the flashloan arbitrage contract."""

from decimal import Decimal, ROUND_DOWN
from typing import Dict, Optional

from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from .base import ArbitrageParams, SettlementService, TxReceipt
from dexarb.chain import ARBITRAGE_ABI, checksum
from dexarb.config import Config
from dexarb.core.errors import ConfirmationTimeout, ValidationFailed


class ContractSettlementService(SettlementService):
    """Encodes and reads the contract through web3, signs with eth_account."""

    def __init__(self, config: Config, w3: AsyncWeb3, gas_limit: Optional[int] = None,
                 poll_interval_s: float = 2.0):
        self.config = config
        self.w3 = w3
        self.contract = w3.eth.contract(address=checksum(config.execution.settlement_contract), abi=ARBITRAGE_ABI)
        self.chain_id = config.rpc.chain_id
        self.gas_limit = gas_limit or int(config.gas.gas_units * 1.5)
        self.poll_interval_s = poll_interval_s
        self.receipt_timeout_s = config.execution.confirmation_timeout_s
        self._routers: Dict[str, str] = {
            ex.name: checksum(ex.router_address) for ex in config.exchanges if ex.router_address
        }

    def _address(self, symbol: str) -> str:
        token = self.config.get_token(symbol)
        if token is None:
            raise ValidationFailed(f"Unknown token {symbol}")
        return checksum(token.address)

    def _router(self, exchange: str) -> str:
        router = self._routers.get(exchange)
        if router is None:
            raise ValidationFailed(f"Exchange {exchange} has no router address")
        return router

    def _decimals(self, symbol: str) -> int:
        token = self.config.get_token(symbol)
        return token.decimals if token else 18

    def to_units(self, symbol: str, amount: float) -> int:
        """Token amount to integer base units, rounding down."""
        scaled = Decimal(str(amount)) * (Decimal(10) ** self._decimals(symbol))
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))

    def _args(self, params: ArbitrageParams) -> list:
        return [
            self._address(params.token_a),
            self._address(params.token_b),
            self.to_units(params.token_a, params.amount_in),
            self._router(params.buy_route),
            self._router(params.sell_route),
        ]

    def encode_execute(self, params: ArbitrageParams) -> str:
        args = self._args(params) + [self.to_units(params.token_a, params.min_profit), params.use_flashloan]
        return self.contract.encode_abi("executeArbitrage", args=args)

    async def estimate_profit(self, params: ArbitrageParams) -> float:
        profit = await self.contract.functions.estimateProfit(*self._args(params)).call()
        return float(Decimal(profit) / (Decimal(10) ** self._decimals(params.token_a)))

    async def execute_arbitrage(self, params: ArbitrageParams, signing_key: str) -> str:
        account = Account.from_key(signing_key)
        nonce = await self.w3.eth.get_transaction_count(account.address, "pending")
        gas_price = await self.w3.eth.gas_price

        tx = {
            'to': self.contract.address,
            'data': self.encode_execute(params),
            'value': 0,
            'gas': self.gas_limit,
            'gasPrice': gas_price,
            'nonce': nonce,
            'chainId': self.chain_id,
        }
        signed = Account.sign_transaction(tx, signing_key)
        tx_hash = Web3.to_hex(await self.w3.eth.send_raw_transaction(signed.raw_transaction))
        logger.info(f"📤 Submitted arbitrage tx {tx_hash} from {account.address} (nonce {nonce})")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout_s, poll_latency=self.poll_interval_s
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(f"Transaction {tx_hash} not mined: {e}", tx_hash=tx_hash) from e

        return TxReceipt(
            tx_hash=tx_hash,
            success=receipt['status'] == 1,
            gas_used=receipt.get('gasUsed', 0),
            block_number=receipt.get('blockNumber'),
            effective_gas_price_wei=receipt.get('effectiveGasPrice', 0)
        )

    async def get_gas_balance(self, address: str) -> float:
        wei = await self.w3.eth.get_balance(checksum(address))
        return float(Web3.from_wei(wei, 'ether'))
