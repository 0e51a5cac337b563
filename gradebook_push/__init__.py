"""Web push delivery for GradeBook."""

__version__ = "1.0.0"
