"""
FastAPI RESTful API for the Price Watch service.

This module provides a REST API for:
- Registering products after testing their price selector
- Listing products with their latest price and full price history
- Triggering immediate price checks
"""
