from __future__ import annotations


class InvalidTickError(ValueError):
    """A tick that breaks the ingestion contract; nothing was mutated."""


class UnknownSymbolError(InvalidTickError):
    def __init__(self, symbol: str) -> None:
        super().__init__(f"symbol is not tracked: {symbol}")
        self.symbol = symbol
