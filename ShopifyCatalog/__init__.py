"""
ShopifyCatalog - Async client core for the Shopify Admin REST API catalog
"""

__version__ = "0.1.0"

# Importing the models registers the built-in resource types
from . import models  # noqa: F401
