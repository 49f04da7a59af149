"""Event store gateways: the provider contract and its implementations."""

from calresolve.gateway.base import EventStoreGateway

__all__ = ["EventStoreGateway"]
