"""
Strategy catalog models and utilities.

This module provides Pydantic models for the declarative strategy table along
with loaders, validation and the built-in default catalog.

Basic usage:
    >>> from thumbgrab.catalog import load_catalog, validate_catalog
    >>>
    >>> catalog = load_catalog("strategies.json")
    >>> issues = validate_catalog(catalog)
    >>> if not issues:
    ...     for strategy in catalog.strategies:
    ...         for entry in strategy.expand("80057281"):
    ...             print(entry.url)
"""

from .models import (
    StrategyCatalog,
    Strategy,
    StrategyEntry,
    UrlTemplate,
    Variant,
)
from .loaders import (
    load_catalog,
    load_json,
    parse_catalog,
    fetch_json,
)
from .validation import (
    ValidationIssue,
    validate_catalog,
    validate_strategy,
)
from .defaults import DEFAULT_CATALOG

__all__ = [
    # Models
    "StrategyCatalog",
    "Strategy",
    "StrategyEntry",
    "UrlTemplate",
    "Variant",
    # Loaders
    "load_catalog",
    "load_json",
    "parse_catalog",
    "fetch_json",
    # Validation
    "ValidationIssue",
    "validate_catalog",
    "validate_strategy",
    # Defaults
    "DEFAULT_CATALOG",
]
