"""Cafeteria menu board photos -> dated, canonical menu records."""
from .logging_config import setup_logging

# every menuboard.* logger goes through the Rich handler from the first import
setup_logging()

__version__ = "0.1.0"
__all__ = ["__version__"]
