"""
Read-only access to the Agile tariff prices stored by the external price collector
under `octopusAgile.byTime/{date_index}/{time_index}/price`.
"""

import logging

from .constants import PRICE_NOT_AVAILABLE, STORE_ROOT_PRICES

logger = logging.getLogger("__main__")
logger.info("[PRICE] loading module ")


class PriceLookup:
    """
    Joins a snapshot's time slot with the separately maintained price series.
    """

    def __init__(self, store, root=STORE_ROOT_PRICES):
        self.prices = store.handle(root)

    def price_at(self, date_index, time_index):
        """
        Return the price for the slot, or `PRICE_NOT_AVAILABLE` when the price
        collector has not stored one yet.
        """
        price = self.prices.get((int(date_index), int(time_index), "price"))
        if price is None:
            return PRICE_NOT_AVAILABLE
        return price
