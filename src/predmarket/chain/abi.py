"""ABI fragments for the market contract and its ERC-20 collateral token."""

from __future__ import annotations

from typing import Any


def _params(items: list[tuple[str, str]]) -> list[dict[str, Any]]:
    return [{"name": name, "type": typ, "internalType": typ} for name, typ in items]


def _fn(
    name: str,
    inputs: list[tuple[str, str]],
    outputs: list[tuple[str, str]] | None = None,
    mutability: str = "view",
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": _params(inputs),
        "outputs": _params(outputs or []),
        "stateMutability": mutability,
    }


MARKET_ABI: list[dict[str, Any]] = [
    _fn("marketCount", [], [("", "uint256")]),
    _fn(
        "getMarketInfo",
        [("_marketId", "uint256")],
        [
            ("question", "string"),
            ("optionA", "string"),
            ("optionB", "string"),
            ("endTime", "uint256"),
            ("outcome", "uint8"),
            ("totalOptionAShares", "uint256"),
            ("totalOptionBShares", "uint256"),
            ("resolved", "bool"),
            ("feesForCreator", "uint256"),
        ],
    ),
    _fn(
        "getSharesBalance",
        [("_marketId", "uint256"), ("_user", "address")],
        [("optionAShares", "uint256"), ("optionBShares", "uint256")],
    ),
    _fn("marketProposers", [("", "uint256")], [("", "address")]),
    _fn("creationStakeAmount", [], [("", "uint256")]),
    _fn("owner", [], [("", "address")]),
    _fn(
        "proposeMarket",
        [
            ("_question", "string"),
            ("_optionA", "string"),
            ("_optionB", "string"),
            ("_resolutionTimestamp", "uint256"),
        ],
        [("", "uint256")],
        "nonpayable",
    ),
    _fn(
        "buyShares",
        [("_marketId", "uint256"), ("_isOptionA", "bool"), ("_amount", "uint256")],
        mutability="nonpayable",
    ),
    _fn("claimWinnings", [("_marketId", "uint256")], mutability="nonpayable"),
    _fn("claimRefund", [("_marketId", "uint256")], mutability="nonpayable"),
    _fn("resolveMarket", [("_marketId", "uint256"), ("_outcome", "uint8")], mutability="nonpayable"),
    _fn("setCreationStakeAmount", [("_newAmount", "uint256")], mutability="nonpayable"),
    {
        "type": "event",
        "name": "MarketCreated",
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "uint256", "name": "marketId", "type": "uint256"},
            {"indexed": True, "internalType": "address", "name": "proposer", "type": "address"},
            {"indexed": False, "internalType": "string", "name": "question", "type": "string"},
            {"indexed": False, "internalType": "uint256", "name": "endTime", "type": "uint256"},
        ],
    },
]

ERC20_ABI: list[dict[str, Any]] = [
    _fn("balanceOf", [("account", "address")], [("", "uint256")]),
    _fn("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")]),
    _fn("approve", [("spender", "address"), ("amount", "uint256")], [("", "bool")], "nonpayable"),
]
