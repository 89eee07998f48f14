"""Control BLE toy trains with checksummed command frames."""

__version__ = "0.1.0"
