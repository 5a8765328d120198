"""Target group reference table.

One immutable TargetGroupDefinition per WOTC / state target group code.
The table is built once from reference data and injected into the
classifier and calculators; nothing mutates it afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple


class UnknownTargetGroupError(KeyError):
    """Raised when a target group code is not in the reference table."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(code)

    def __str__(self) -> str:
        return f"Unknown target group code: {self.code!r}"


@dataclass(frozen=True)
class TargetGroupDefinition:
    """
    Reference data for a single target group.

    ``max_credit`` is the program maximum used to rank qualifying groups;
    ``second_year_wage_cap`` is only set for multi-year programs. When
    ``second_year_rate`` is set the second year uses that flat rate instead
    of the 25/40% hour tiers.
    """

    code: str
    name: str
    max_credit: Decimal
    qualified_wage_cap: Decimal
    hours_required: int = 120
    second_year_wage_cap: Optional[Decimal] = None
    second_year_rate: Optional[Decimal] = None
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.max_credit < 0 or self.qualified_wage_cap < 0:
            raise ValueError(f"{self.code}: credit and wage cap must be non-negative")
        if self.hours_required < 0:
            raise ValueError(f"{self.code}: hours_required must be non-negative")
        if self.second_year_rate is not None and self.second_year_wage_cap is None:
            raise ValueError(f"{self.code}: second_year_rate requires second_year_wage_cap")

    @property
    def is_multi_year(self) -> bool:
        return self.second_year_wage_cap is not None


class TargetGroupTable(Mapping[str, TargetGroupDefinition]):
    """
    Read-only mapping of code -> TargetGroupDefinition.

    Also resolves display names and aliases back to codes, the way
    employer-entered or legacy values ("veteran", "food stamps") arrive.
    """

    def __init__(self, definitions: Iterable[TargetGroupDefinition]):
        table: Dict[str, TargetGroupDefinition] = {}
        for definition in definitions:
            if definition.code in table:
                raise ValueError(f"Duplicate target group code: {definition.code}")
            table[definition.code] = definition
        self._definitions = MappingProxyType(table)

        aliases: Dict[str, str] = {}
        for definition in table.values():
            aliases[definition.name.lower().strip()] = definition.code
            for alias in definition.aliases:
                aliases[alias.lower().strip()] = definition.code
        self._aliases = MappingProxyType(aliases)

    def __getitem__(self, code: str) -> TargetGroupDefinition:
        return self._definitions[code]

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def require(self, code: str) -> TargetGroupDefinition:
        """Get a definition or raise UnknownTargetGroupError."""
        try:
            return self._definitions[code]
        except KeyError:
            raise UnknownTargetGroupError(code) from None

    def normalize(self, value: Optional[str]) -> Optional[str]:
        """
        Normalize a target group name or alias to its code.

        Args:
            value: A code ("IV-B"), official name, or alias ("tanf")

        Returns:
            The code, or None when the value cannot be mapped
        """
        if not value:
            return None
        if value in self._definitions:
            return value
        return self._aliases.get(value.lower().strip())

    def codes(self) -> List[str]:
        return list(self._definitions)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Mapping[str, object]]) -> "TargetGroupTable":
        """
        Build a table from plain dictionaries keyed by code.

        Example:
            TargetGroupTable.from_mapping({
                "V": {"name": "Veteran", "max_credit": 5600, "qualified_wage_cap": 14000},
            })
        """
        return cls(definition_from_dict(code, values) for code, values in data.items())


def _optional_decimal(value: object) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def definition_from_dict(code: str, values: Mapping[str, object]) -> TargetGroupDefinition:
    """Create a TargetGroupDefinition from a reference-data entry."""
    try:
        return TargetGroupDefinition(
            code=code,
            name=str(values["name"]),
            max_credit=Decimal(str(values["max_credit"])),
            qualified_wage_cap=Decimal(str(values["qualified_wage_cap"])),
            hours_required=int(values.get("hours_required", 120)),
            second_year_wage_cap=_optional_decimal(values.get("second_year_wage_cap")),
            second_year_rate=_optional_decimal(values.get("second_year_rate")),
            aliases=tuple(values.get("aliases") or ()),
        )
    except KeyError as e:
        raise ValueError(f"Target group {code} is missing required field {e.args[0]!r}") from None
