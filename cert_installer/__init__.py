"""Install uploaded X.509 certificates into protected server/client directories."""

__version__ = "1.0.0"
