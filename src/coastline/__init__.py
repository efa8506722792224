"""coastline — multi-backend data access for the tourism marketplace."""

__version__ = "0.1.0"
