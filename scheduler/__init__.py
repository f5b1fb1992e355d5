"""
Scheduler package for recurring price checks.

This package contains:
- Job registry holding one cron job per product
- Price check scheduler running extraction cycles
"""

__version__ = "1.0.0"
