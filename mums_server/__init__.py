"""Storefront for the Cub Scouts mum sale, backed by a spreadsheet order system."""

__version__ = "0.1.0"
