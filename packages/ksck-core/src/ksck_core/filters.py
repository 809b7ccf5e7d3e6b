"""
Table and tablet filters.

Filter strings for tables are glob-style patterns: 'Foo*' matches all
tables whose name begins with 'Foo'. Tablet filters are exact ids.

- If table filters are set, only matching tables are checked.
- If tablet filters are set, only the listed tablets are checked.
- If both are set, the intersection is checked.
- If both are empty, everything is checked.
"""

from dataclasses import dataclass, field
from fnmatch import fnmatchcase

from ksck_protocols import Table, Tablet


@dataclass
class KsckFilters:
    """Scope of a check run."""

    table_filters: list[str] = field(default_factory=list)
    tablet_id_filters: list[str] = field(default_factory=list)

    def matches_table(self, table: Table) -> bool:
        if not self.table_filters:
            return True
        return any(fnmatchcase(table.name, pattern) for pattern in self.table_filters)

    def matches_tablet(self, tablet: Tablet) -> bool:
        if not self.tablet_id_filters:
            return True
        return tablet.id in self.tablet_id_filters

    def filter_tables(self, tables: list[Table]) -> list[Table]:
        return [t for t in tables if self.matches_table(t)]

    def filter_tablets(self, table: Table) -> list[Tablet]:
        return [t for t in table.tablets if self.matches_tablet(t)]
