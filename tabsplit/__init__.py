"""Receipt ingestion and review pipeline for shared group expenses."""

__version__ = "0.1.0"
