"""Keep source files in sync with pseudocode shadow files through an LLM."""

__version__ = "0.1.0"
