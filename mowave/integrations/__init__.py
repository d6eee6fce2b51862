"""External integrations: mobile-money gateways and SMS."""
from .gateway import (
    AirtelMoneyGateway,
    GatewayError,
    GatewayOutcome,
    GatewayRequest,
    MtnMomoGateway,
    PaymentGateway,
    PaymentGatewaySimulator,
    Provider,
)
from .notifications import NotificationDispatcher, NotificationKind

__all__ = [
    "AirtelMoneyGateway",
    "GatewayError",
    "GatewayOutcome",
    "GatewayRequest",
    "MtnMomoGateway",
    "NotificationDispatcher",
    "NotificationKind",
    "PaymentGateway",
    "PaymentGatewaySimulator",
    "Provider",
]
