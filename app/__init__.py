"""Forklift storefront admin API: authentication and session lifecycle."""

__version__ = "1.0.0"
