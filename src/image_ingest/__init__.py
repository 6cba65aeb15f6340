"""Single-image ingestion: moderation, metadata, renditions and cataloging."""

__version__ = "0.1.0"
