"""Prompt templates and assembly for pseudocode conversion."""

from .builder import PromptAssembler, PromptPair
from .constants import MANIFEST_PLACEHOLDER, language_name

__all__ = ["MANIFEST_PLACEHOLDER", "PromptAssembler", "PromptPair", "language_name"]
