# errors.py
from __future__ import annotations


class GatewayError(Exception):
    """Base class for everything raised by the controller core and its helpers."""


class ConfigError(GatewayError):
    """Malformed APIRule content (mutators, services) or controller settings."""


class ClusterReadError(GatewayError):
    """Listing objects from the cluster failed."""


class ReconcileCancelled(GatewayError):
    """The caller's stop signal fired or its deadline passed."""


class TokenAcquisitionError(GatewayError):
    pass


class TokenTransportError(TokenAcquisitionError):
    pass


class InvalidTokenError(TokenAcquisitionError):
    pass


class UnexpectedTokenTypeError(TokenAcquisitionError):
    pass
