"""
Data handler registry keyed by exchange, asset and pair.
"""

from typing import Dict, List, Optional
import logging

from ..core.interfaces import Asset, CurrencyPair, IDataHandler

logger = logging.getLogger(__name__)


class HandlerPerCurrency:
    """Holds one data handler per exchange/asset/pair, in insertion order."""

    def __init__(self):
        self.data: Dict[str, Dict[Asset, Dict[CurrencyPair, IDataHandler]]] = {}

    def setup(self) -> None:
        self.data = {}

    def set_data_for_currency(self, exchange: str, asset: Asset, pair: CurrencyPair,
                              handler: IDataHandler) -> None:
        self.data.setdefault(exchange.lower(), {}).setdefault(asset, {})[pair] = handler

    def get_data_for_currency(self, exchange: str, asset: Asset,
                              pair: CurrencyPair) -> Optional[IDataHandler]:
        return self.data.get(exchange.lower(), {}).get(asset, {}).get(pair)

    def get_all_data(self) -> List[IDataHandler]:
        """Every handler, in the order pairs were configured."""
        return [
            handler
            for assets in self.data.values()
            for pairs in assets.values()
            for handler in pairs.values()
        ]

    def reset(self) -> None:
        for handler in self.get_all_data():
            handler.reset()

    def __len__(self) -> int:
        return len(self.get_all_data())
