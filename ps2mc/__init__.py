"""PlayStation 2 memory card images, their file system, and PSU save archives."""

__version__ = "0.1.0"