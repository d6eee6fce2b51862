"""MoWave hotspot voucher sales backend."""

__version__ = "1.0.0"
