"""Configuration package for the voucher platform."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
