"""Filter-synchronized, incrementally paginated catalog listings."""

__version__ = "0.1.0"
