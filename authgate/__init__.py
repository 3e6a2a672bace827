"""Session-based authentication gateway for local and federated sign-in."""

__version__ = "0.1.0"
