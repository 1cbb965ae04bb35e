"""DevReload: restart a dev server whenever a locally built artifact is rewritten."""

__version__ = "0.1.0"
