"""PCI Tracker: PCI-DSS compliance document lifecycle and expiration notifications."""

__version__ = "1.0.0"
