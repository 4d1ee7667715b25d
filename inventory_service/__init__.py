"""inventory-service: product inventory over a flat JSON file."""

__version__ = "1.0.0"
