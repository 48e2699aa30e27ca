"""knowledge-rag: retrieval-augmented generation engine for the desktop assistant."""

__version__ = "0.1.0"
