"""TwinPlay — catalog / local library reconciliation and playback state sync."""

__version__ = "0.4.0"
