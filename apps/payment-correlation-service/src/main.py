"""Compatibility entrypoint for payment correlation service."""

try:
    from .payment_correlation.main import app
except ImportError:  # pragma: no cover
    from payment_correlation.main import app

__all__ = ["app"]
