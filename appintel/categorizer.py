"""
App Categorizer - Sort apps into a fixed set of ordered categories.

Decision chain (first applicable rule wins):
  1. Manual override
  2. Personal/dev package prefix (disabled when empty)
  3. Platform category hint "game"
  4. Curated professional/banking package list
  5. Curated utility package list
  6. System app
  7. Other

The curated lists are data, loaded from TOML, never hard-coded here.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, TypeVar

import toml
from loguru import logger

from .models import CatalogEntry, CategorizedApp, Category

T = TypeVar("T")

GAME_HINT = "game"


def default_rules_path() -> Path:
    """Curated lists shipped with the package."""
    return Path(__file__).parent / "data" / "categories.toml"


@dataclass(frozen=True)
class CategoryRules:
    """Static configuration for the categorizer."""
    personal_prefix: str = ""
    professional_packages: tuple[str, ...] = ()
    utility_packages: tuple[str, ...] = ()
    professional_keywords: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "CategoryRules":
        """Build rules from a mapping shaped like the [categories] table."""
        return cls(
            personal_prefix=str(data.get("personal_prefix", "")),
            professional_packages=tuple(p.lower() for p in data.get("professional_packages", []) if p),
            utility_packages=tuple(p.lower() for p in data.get("utility_packages", []) if p),
            professional_keywords=tuple(k.lower() for k in data.get("professional_keywords", []) if k),
        )

    @classmethod
    def from_toml(cls, path: Path) -> "CategoryRules":
        """
        Load rules from a TOML file with a [categories] table.

        Raises:
            OSError: If the file cannot be read
            toml.TomlDecodeError: If the file is not valid TOML
        """
        data = toml.load(str(path))
        return cls.from_dict(data.get("categories", {}))


def load_category_rules(path: Optional[Path] = None, personal_prefix: Optional[str] = None) -> CategoryRules:
    """
    Load categorizer rules, falling back to the packaged lists.

    Args:
        path: Custom rules file; the packaged default is used when None
              or when the file cannot be loaded
        personal_prefix: Overrides the prefix from the file when given

    Returns:
        CategoryRules instance
    """
    rules_path = Path(path) if path else default_rules_path()
    try:
        rules = CategoryRules.from_toml(rules_path)
    except (OSError, toml.TomlDecodeError) as e:
        logger.warning(f"Could not load category rules from {rules_path}: {e}")
        rules = CategoryRules.from_toml(default_rules_path())

    if personal_prefix is not None:
        rules = CategoryRules(
            personal_prefix=personal_prefix,
            professional_packages=rules.professional_packages,
            utility_packages=rules.utility_packages,
            professional_keywords=rules.professional_keywords,
        )
    return rules


class AppCategorizer:
    """Pure, total classifier from catalog entries to categories."""

    def __init__(self, rules: Optional[CategoryRules] = None):
        self.rules = rules if rules is not None else CategoryRules()

    def categorize(self, entry: CatalogEntry, manual_override: Optional[Category] = None) -> Category:
        """
        Categorize an entry.

        Args:
            entry: Catalog entry to classify
            manual_override: Wins over every other signal; falls back to
                the entry's own manual_category

        Returns:
            Exactly one Category, never raises
        """
        override = manual_override if manual_override is not None else entry.manual_category
        if override is not None:
            return override

        package = entry.package_id or ""
        prefix = self.rules.personal_prefix
        if prefix and package.startswith(prefix):
            return Category.PERSONAL_DEV

        if entry.category_hint and entry.category_hint.lower() == GAME_HINT:
            return Category.GAMES

        lower_package = package.lower()
        if _contains_any(lower_package, self.rules.professional_packages):
            return Category.PROFESSIONAL

        if _contains_any(lower_package, self.rules.utility_packages):
            return Category.UTILITIES

        if entry.is_system:
            return Category.UTILITIES

        return Category.OTHER

    def categorize_all(
        self,
        entries: Iterable[CatalogEntry],
        overrides: Optional[dict[str, Category]] = None,
    ) -> list[CategorizedApp]:
        """
        Categorize a whole catalog (scores start at 0).

        Args:
            entries: Catalog entries
            overrides: Optional manual categories keyed by package id
        """
        overrides = overrides or {}
        return [
            CategorizedApp(entry, self.categorize(entry, overrides.get(entry.package_id)))
            for entry in entries
        ]

    def is_professional_package(self, package_id: str) -> bool:
        """Curated professional list plus broad keyword hints."""
        lower_package = package_id.lower()
        return (
            _contains_any(lower_package, self.rules.professional_packages)
            or _contains_any(lower_package, self.rules.professional_keywords)
        )

    def is_utility_package(self, package_id: str) -> bool:
        return _contains_any(package_id.lower(), self.rules.utility_packages)

    def group_by_category(self, apps: Iterable[CategorizedApp]) -> dict[Category, list[CategorizedApp]]:
        """
        Group apps by category, ordered by category rank.

        Only non-empty categories appear; apps keep their input order.
        """
        groups: dict[Category, list[CategorizedApp]] = {}
        for app in apps:
            groups.setdefault(app.category, []).append(app)
        return dict(sorted(groups.items()))

    def sort_by_score_descending(self, apps: Sequence[T]) -> list[T]:
        """Stable sort by score, highest first; ties keep input order."""
        return sorted(apps, key=lambda app: app.score, reverse=True)


def _contains_any(text: str, needles: Iterable[str]) -> bool:
    return any(needle in text for needle in needles)
