"""Async web3 connection and contract ABIs shared by quoting, gas and settlement."""

import aiohttp
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

# Uniswap-V2-style router, quoting only
V2_ROUTER_ABI = [
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"}
        ],
        "name": "getAmountsOut",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function"
    }
]

# Flashloan arbitrage settlement contract
ARBITRAGE_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "tokenA", "type": "address"},
            {"internalType": "address", "name": "tokenB", "type": "address"},
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "address", "name": "buyRouter", "type": "address"},
            {"internalType": "address", "name": "sellRouter", "type": "address"},
            {"internalType": "uint256", "name": "minProfit", "type": "uint256"},
            {"internalType": "bool", "name": "useFlashloan", "type": "bool"}
        ],
        "name": "executeArbitrage",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "address", "name": "tokenA", "type": "address"},
            {"internalType": "address", "name": "tokenB", "type": "address"},
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "address", "name": "buyRouter", "type": "address"},
            {"internalType": "address", "name": "sellRouter", "type": "address"}
        ],
        "name": "estimateProfit",
        "outputs": [{"internalType": "int256", "name": "profit", "type": "int256"}],
        "stateMutability": "view",
        "type": "function"
    }
]


def checksum(address: str) -> str:
    return Web3.to_checksum_address(address)


def connect(url: str, timeout_s: float = 10.0) -> AsyncWeb3:
    """Build an AsyncWeb3 client over HTTP. No request is made until first use."""
    provider = AsyncHTTPProvider(url, request_kwargs={'timeout': aiohttp.ClientTimeout(total=timeout_s)})
    logger.info(f"Web3 provider: {url}")
    return AsyncWeb3(provider)


async def disconnect(w3: AsyncWeb3) -> None:
    """Close the provider's cached HTTP sessions."""
    try:
        await w3.provider.disconnect()
        logger.debug("Web3 provider disconnected")
    except Exception as e:
        logger.error(f"Error disconnecting web3 provider: {e}")
