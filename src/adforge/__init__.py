"""Campaign ad generation: brand profiles in, platform-sized ads and a cost ledger out."""

__version__ = "0.1.0"
