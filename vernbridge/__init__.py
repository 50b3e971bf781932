"""Transaction orchestration for the Bitcoin to Starknet bridge."""

__version__ = "0.1.0"
