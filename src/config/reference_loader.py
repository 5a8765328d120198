"""
Reference Data Loader.

Loads the target group table and program formulas from YAML files, enabling:
- Annual updates to wage caps and credit maximums without code changes
- Environment-specific overrides
- Validation before any table reaches the engine

Files are looked up per reference year:
    target_groups_<year>.yaml
    programs_<year>.yaml
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

import yaml

from calculator.program_formulas import ProgramFormula
from calculator.target_groups import TargetGroupTable, definition_from_dict
from config.settings import get_settings

logger = logging.getLogger(__name__)

ENV_PREFIX = "WOTC_"

TARGET_GROUP_OVERRIDE_FIELDS = (
    "name",
    "max_credit",
    "qualified_wage_cap",
    "hours_required",
    "second_year_wage_cap",
    "second_year_rate",
)

PROGRAM_OVERRIDE_FIELDS = (
    "name",
    "rate",
    "wage_cap",
    "max_credit",
    "flat_amount",
    "partial_rate",
    "full_rate",
    "minimum_hours",
    "full_rate_hours",
)


class ReferenceDataError(ValueError):
    """Raised when a reference data file is missing or malformed."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)


class UnknownProgramError(KeyError):
    """Raised when a program id is not in the reference data."""

    def __init__(self, program_id: str):
        self.program_id = program_id
        super().__init__(program_id)

    def __str__(self) -> str:
        return f"Unknown program: {self.program_id!r}"


@dataclass
class ReferenceMetadata:
    """Metadata about a reference data file."""
    version: str
    reference_year: int
    effective_date: str = ""
    source: str = ""  # "IRS", "state", "custom"
    references: List[str] = field(default_factory=list)
    notes: str = ""


def _env_key(identifier: str) -> str:
    return identifier.replace("-", "_").upper()


class ReferenceDataLoader:
    """
    Loads and caches reference tables per year.

    Environment overrides take the form WOTC_<YEAR>_<CODE>_<FIELD>, with
    dashes in the code written as underscores:
        WOTC_2024_IV_A_MAX_CREDIT=9500
        WOTC_2024_CA_NEW_EMPLOYMENT_RATE=0.30
    """

    def __init__(self, data_dir: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize the loader.

        Args:
            data_dir: Directory containing the YAML files.
                      Defaults to settings.reference_dir
            environ: Environment used for overrides; defaults to os.environ
        """
        self.data_dir = Path(data_dir) if data_dir else get_settings().reference_dir
        self._environ = environ
        self._target_groups: Dict[int, TargetGroupTable] = {}
        self._programs: Dict[int, Mapping[str, ProgramFormula]] = {}
        self._metadata: Dict[str, ReferenceMetadata] = {}

    def _read(self, kind: str, year: int, section: str) -> Dict[str, Dict[str, Any]]:
        path = self.data_dir / f"{kind}_{year}.yaml"
        if not path.exists():
            raise ReferenceDataError(f"No {kind} reference data for {year}", path)

        logger.info(f"Loading reference data from {path}")
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ReferenceDataError(f"Invalid YAML: {e}", path) from e

        if not isinstance(data, dict):
            raise ReferenceDataError("Top level must be a mapping", path)
        if "_metadata" in data:
            try:
                self._metadata[f"{kind}_{year}"] = ReferenceMetadata(**data.pop("_metadata"))
            except TypeError as e:
                raise ReferenceDataError(f"Invalid _metadata: {e}", path) from e

        entries = data.get(section)
        if not isinstance(entries, dict) or not entries:
            raise ReferenceDataError(f"Missing or empty '{section}' mapping", path)
        for key, values in entries.items():
            if not isinstance(values, dict):
                raise ReferenceDataError(f"Entry {key!r} must be a mapping", path)
        # Copy so overrides never touch the parsed document
        return {str(key): dict(values) for key, values in entries.items()}

    def _apply_env_overrides(
        self,
        entries: Dict[str, Dict[str, Any]],
        year: int,
        fields: tuple,
    ) -> Dict[str, Dict[str, Any]]:
        """Apply WOTC_<YEAR>_<ID>_<FIELD> environment overrides."""
        environ = os.environ if self._environ is None else self._environ
        prefix = f"{ENV_PREFIX}{year}_"
        # Longest ids first so "V_UNEMPLOYED" wins over "V"
        identifiers = sorted(entries, key=lambda k: len(_env_key(k)), reverse=True)

        for key, value in environ.items():
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            for identifier in identifiers:
                id_prefix = f"{_env_key(identifier)}_"
                if not rest.startswith(id_prefix):
                    continue
                param_name = rest[len(id_prefix):].lower()
                if param_name in fields:
                    entries[identifier][param_name] = value
                    logger.info(f"Applied env override: {identifier}.{param_name}={value}")
                    break
            else:
                logger.warning(f"Ignoring unrecognized reference override: {key}")

        return entries

    def target_groups(self, year: Optional[int] = None) -> TargetGroupTable:
        """
        Load the target group table for a reference year.

        Args:
            year: Reference year; defaults to settings.reference_year

        Returns:
            Immutable TargetGroupTable

        Raises:
            ReferenceDataError: file missing or an entry is invalid
        """
        year = year or get_settings().reference_year
        if year in self._target_groups:
            return self._target_groups[year]

        entries = self._read("target_groups", year, "target_groups")
        entries = self._apply_env_overrides(entries, year, TARGET_GROUP_OVERRIDE_FIELDS)
        try:
            table = TargetGroupTable(
                definition_from_dict(code, values) for code, values in entries.items()
            )
        except (ValueError, TypeError, ArithmeticError) as e:
            raise ReferenceDataError(f"Invalid target group data for {year}: {e}") from e

        logger.info(f"Loaded {len(table)} target groups for {year}")
        self._target_groups[year] = table
        return table

    def programs(self, year: Optional[int] = None) -> Mapping[str, ProgramFormula]:
        """Load the program formulas for a reference year, keyed by program id."""
        year = year or get_settings().reference_year
        if year in self._programs:
            return self._programs[year]

        entries = self._read("programs", year, "programs")
        entries = self._apply_env_overrides(entries, year, PROGRAM_OVERRIDE_FIELDS)
        try:
            programs = {
                program_id: ProgramFormula.from_dict(program_id, values)
                for program_id, values in entries.items()
            }
        except (ValueError, TypeError, ArithmeticError) as e:
            raise ReferenceDataError(f"Invalid program data for {year}: {e}") from e

        logger.info(f"Loaded {len(programs)} program formulas for {year}")
        self._programs[year] = MappingProxyType(programs)
        return self._programs[year]

    def program(self, program_id: str, year: Optional[int] = None) -> ProgramFormula:
        """Get one program formula or raise UnknownProgramError."""
        try:
            return self.programs(year)[program_id]
        except KeyError:
            raise UnknownProgramError(program_id) from None

    def get_metadata(self, kind: str, year: Optional[int] = None) -> Optional[ReferenceMetadata]:
        """Get metadata for 'target_groups' or 'programs' of a year."""
        year = year or get_settings().reference_year
        if kind == "target_groups":
            self.target_groups(year)
        elif kind == "programs":
            self.programs(year)
        else:
            raise ValueError(f"Unknown reference data kind: {kind}")
        return self._metadata.get(f"{kind}_{year}")


# Global singleton
_reference_loader: Optional[ReferenceDataLoader] = None


def get_reference_loader() -> ReferenceDataLoader:
    """Get the global reference data loader instance."""
    global _reference_loader
    if _reference_loader is None:
        _reference_loader = ReferenceDataLoader()
    return _reference_loader


def clear_reference_cache() -> None:
    """Clear loaded reference data (useful for testing)."""
    global _reference_loader
    _reference_loader = None
