"""Event registration service with keyset pagination and cached counts."""

__version__ = "0.1.0"
