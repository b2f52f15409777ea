"""Order-composition and pricing core of the storefront checkout."""

__version__ = "0.1.0"
