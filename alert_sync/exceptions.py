"""
Exceptions for the alert sync service
"""


class AlertSyncError(Exception):
    """Base class for alert sync errors"""


class PushSubscriptionError(AlertSyncError):
    """Raised when the push platform refuses to create a subscription"""


class AlertNotFoundError(AlertSyncError):
    """Raised when no stored alert matches a market/price pair"""

    def __init__(self, market: str, price: float):
        super().__init__(f"No alert found for {market} @{price}")
        self.market = market
        self.price = price
