"""YAML configuration loading for tapsign."""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from tapsign.card import DEFAULT_CARD_DIR
from tapsign.constants import (
    DEFAULT_NETWORK,
    DEFAULT_PRIORITY_FEE_WEI,
    ETH_MAINNET_CHAIN_ID,
    ETH_MAINNET_RPC_URL,
    ETH_SEPOLIA_CHAIN_ID,
    ETH_SEPOLIA_RPC_URL,
)

logger = logging.getLogger(__name__)

RPC_URLS = {
    "mainnet": ETH_MAINNET_RPC_URL,
    "sepolia": ETH_SEPOLIA_RPC_URL,
}

CHAIN_IDS = {
    "mainnet": ETH_MAINNET_CHAIN_ID,
    "sepolia": ETH_SEPOLIA_CHAIN_ID,
}


@dataclass
class TapSignConfig:
    network: str = DEFAULT_NETWORK
    rpc_url: Optional[str] = None
    chain_id: Optional[int] = None
    priority_fee_wei: int = DEFAULT_PRIORITY_FEE_WEI
    card_dir: Path = field(default_factory=lambda: DEFAULT_CARD_DIR)
    log_level: str = "INFO"


def load_config(path: Path) -> TapSignConfig:
    """Load configuration from a YAML file."""
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    config = TapSignConfig(
        network=raw.get("network", DEFAULT_NETWORK),
        rpc_url=raw.get("rpc_url"),
        chain_id=raw.get("chain_id"),
        priority_fee_wei=int(raw.get("priority_fee_wei", DEFAULT_PRIORITY_FEE_WEI)),
        log_level=raw.get("log_level", "INFO"),
    )
    if raw.get("card_dir"):
        config.card_dir = Path(raw["card_dir"]).expanduser()

    if config.priority_fee_wei <= 0:
        raise ValueError("priority_fee_wei must be positive")
    if config.network not in RPC_URLS and not config.rpc_url:
        logger.warning(
            "Unknown network '%s' and no rpc_url; falling back to %s",
            config.network, DEFAULT_NETWORK,
        )
    return config


def get_rpc_url(config: TapSignConfig) -> str:
    """Resolve RPC URL from config (custom URL or network name)."""
    if config.rpc_url:
        return config.rpc_url
    return RPC_URLS.get(config.network, ETH_SEPOLIA_RPC_URL)


def get_chain_id(config: TapSignConfig) -> Optional[int]:
    """Resolve the expected chain ID.

    A custom rpc_url without an explicit chain_id is not checked.
    """
    if config.chain_id is not None:
        return config.chain_id
    if config.rpc_url:
        return None
    return CHAIN_IDS.get(config.network, ETH_SEPOLIA_CHAIN_ID)
