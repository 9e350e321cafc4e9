from .chain import ChainClient, ChainError

__all__ = ["ChainClient", "ChainError"]
