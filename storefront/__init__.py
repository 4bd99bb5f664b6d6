"""Storefront display engine: live pricing, video campaigns and display notifications."""

__version__ = "0.1.0"
