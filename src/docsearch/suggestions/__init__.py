"""Autocomplete suggestions for the search box."""

from docsearch.suggestions.engine import (
    Suggestion,
    SuggestionEngine,
    SuggestionSource,
    source_caps,
)

__all__ = ["Suggestion", "SuggestionEngine", "SuggestionSource", "source_caps"]
