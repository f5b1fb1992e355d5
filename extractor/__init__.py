"""
Price extraction package.

This package contains:
- Price text normalization
- HTTP fetch extraction with a headless browser fallback
- MongoDB storage for products and price history
"""

__version__ = "1.0.0"
