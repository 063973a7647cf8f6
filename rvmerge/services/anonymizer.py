from __future__ import annotations

import hashlib
from collections.abc import Iterable
from dataclasses import dataclass

from ..models.cell import CellValue
from ..models.schema import ReconciledSchema

"""Per document, per category pseudonymization of identifying columns.

Substitutes have the form ``<prefix><h>_<n>`` where ``h`` is derived from the
document name (first 8 hex digits of its SHA-256, modulo ``hash_modulus``) and
``n`` counts distinct values of the category within that document. The same
value therefore maps to the same substitute within a document, while two
documents normally produce different substitutes for the same value.

Mappings are append-only for the lifetime of the Anonymizer.
"""

__all__ = [
    "AnonymizationCategory",
    "Anonymizer",
    "DEFAULT_CATEGORIES",
    "document_hash",
]


@dataclass(frozen=True)
class AnonymizationCategory:
    column: str  # canonical column name
    name: str  # category name, also the map sheet name
    prefix: str


DEFAULT_CATEGORIES: tuple[AnonymizationCategory, ...] = (
    AnonymizationCategory("VM", "VMs", "vm"),
    AnonymizationCategory("DNS Name", "DNS Names", "dns"),
    AnonymizationCategory("Cluster", "Clusters", "cluster"),
    AnonymizationCategory("Host", "Hosts", "host"),
    AnonymizationCategory("Datacenter", "Datacenters", "datacenter"),
    AnonymizationCategory("Primary IP Address", "IP Addresses", "ip"),
)


def document_hash(document_id: str, modulus: int) -> int:
    digest = hashlib.sha256(document_id.encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % modulus


class Anonymizer:
    def __init__(
        self,
        categories: Iterable[AnonymizationCategory] = DEFAULT_CATEGORIES,
        hash_modulus: int = 10_000,
    ) -> None:
        self._categories = {c.column: c for c in categories}
        self._hash_modulus = hash_modulus
        # category name -> document -> original -> substitute
        self._maps: dict[str, dict[str, dict[str, str]]] = {
            c.name: {} for c in self._categories.values()
        }

    @property
    def categories(self) -> list[AnonymizationCategory]:
        return list(self._categories.values())

    def is_sensitive(self, column: str) -> bool:
        return column in self._categories

    def column_indices(self, schema: ReconciledSchema) -> dict[int, str]:
        """Reconciled position -> column name for every anonymized column present."""
        return {
            idx: column
            for idx, column in enumerate(schema.columns)
            if column in self._categories
        }

    def anonymize(self, value: CellValue, column: str, document_id: str) -> CellValue:
        category = self._categories.get(column)
        if category is None or value.is_blank():
            return value
        original = value.to_text()
        per_doc = self._maps[category.name].setdefault(document_id, {})
        substitute = per_doc.get(original)
        if substitute is None:
            h = document_hash(document_id, self._hash_modulus)
            substitute = f"{category.prefix}{h}_{len(per_doc) + 1}"
            per_doc[original] = substitute
        return CellValue.text(substitute)

    def anonymize_row(
        self, row: list[CellValue], indices: dict[int, str], document_id: str
    ) -> list[CellValue]:
        for idx, column in indices.items():
            if idx < len(row):
                row[idx] = self.anonymize(row[idx], column, document_id)
        return row

    def mappings(self) -> dict[str, dict[str, dict[str, str]]]:
        """Copy of the category -> document -> original -> substitute table."""
        return {
            category: {doc: dict(values) for doc, values in docs.items()}
            for category, docs in self._maps.items()
        }

    def statistics(self) -> dict[str, dict[str, int]]:
        """Distinct anonymized values per category and document."""
        return {
            category: {doc: len(values) for doc, values in docs.items()}
            for category, docs in self._maps.items()
            if docs
        }

    def total_anonymized(self) -> int:
        return sum(len(values) for docs in self._maps.values() for values in docs.values())
