"""Upstream transaction feed providers."""

from .etherscan import EtherscanClient

__all__ = ["EtherscanClient"]
