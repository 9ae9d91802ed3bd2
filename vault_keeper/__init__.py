"""Keeper that advances option vault rounds on Starknet."""

__version__ = "0.1.0"
