"""University enrollment and tuition billing service."""

__version__ = "1.0.0"
