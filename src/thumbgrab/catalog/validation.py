"""
Validation for strategy catalogs.

Pydantic checks field types; these validators check what the generator needs
to produce well-formed, non-redundant candidates.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import PLACEHOLDERS, Strategy, StrategyCatalog

_PROBE_IDENTIFIER = "0000000"


@dataclass(frozen=True)
class ValidationIssue:
    """
    Represents a validation problem.

    Attributes:
        path: Path to the problematic field (e.g., "strategies[0].templates[2]")
        message: Human-readable description of the issue
    """

    path: str
    message: str


def validate_strategy(strategy: Strategy, path: str = "") -> list[ValidationIssue]:
    """
    Validate a single strategy.

    Checks that the strategy has:
    - At least one template and one variant
    - Only known placeholders, and ``{identifier}`` in every template
    - Hosts whenever a template uses ``{host}``
    - Distinct URLs for every combination

    Parameters:
        strategy: Strategy to validate
        path: Prefix for issue paths

    Returns:
        List of validation issues (empty if valid)
    """
    issues: list[ValidationIssue] = []

    if not strategy.templates:
        issues.append(ValidationIssue(f"{path}templates", "Strategy has no templates."))
    if not strategy.variants:
        issues.append(ValidationIssue(f"{path}variants", "Strategy has no variants."))

    malformed = False
    for t_i, template in enumerate(strategy.templates):
        t_path = f"{path}templates[{t_i}]"
        try:
            fields = template.placeholders()
        except ValueError as e:
            issues.append(ValidationIssue(t_path, f"Malformed pattern: {e}"))
            malformed = True
            continue

        unknown = sorted(fields - PLACEHOLDERS)
        if unknown:
            issues.append(
                ValidationIssue(t_path, f"Unknown placeholder(s): {', '.join(unknown)}.")
            )
            malformed = True
        if "identifier" not in fields:
            issues.append(ValidationIssue(t_path, "Template missing {identifier}."))
        if "host" in fields and not strategy.hosts:
            issues.append(ValidationIssue(t_path, "Template uses {host} but hosts[] is empty."))

    if malformed or not strategy.templates or not strategy.variants:
        return issues

    seen: dict[str, int] = {}
    for entry in strategy.expand(_PROBE_IDENTIFIER):
        if entry.url in seen:
            issues.append(
                ValidationIssue(
                    f"{path}variants",
                    f"Combinations {seen[entry.url]} and {entry.index} produce the same URL.",
                )
            )
            break
        seen[entry.url] = entry.index

    return issues


def validate_catalog(catalog: StrategyCatalog) -> list[ValidationIssue]:
    """
    Validate a catalog for candidate generation.

    Parameters:
        catalog: Catalog to validate

    Returns:
        List of validation issues (empty if valid)

    Example:
        >>> issues = validate_catalog(load_catalog("strategies.json"))
        >>> for issue in issues:
        ...     print(f"{issue.path}: {issue.message}")
    """
    issues: list[ValidationIssue] = []

    if not catalog.strategies:
        issues.append(ValidationIssue("strategies", "Missing or empty strategies[]."))
        return issues

    seen: set[str] = set()
    for s_i, strategy in enumerate(catalog.strategies):
        if strategy.name in seen:
            issues.append(
                ValidationIssue(
                    f"strategies[{s_i}].name",
                    f"Duplicate strategy name {strategy.name!r}.",
                )
            )
        seen.add(strategy.name)
        issues.extend(validate_strategy(strategy, f"strategies[{s_i}]."))

    return issues
