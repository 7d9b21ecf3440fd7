"""HR handbook question-answering gateway."""

__version__ = "1.0.0"
