"""League roster synchronization and player availability service."""

__version__ = "1.0.0"
