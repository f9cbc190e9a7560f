"""
Export parsers.

Parsing turns a raw export into candidate records. Archive and CSV
extraction live outside this package; ``JsonExportParser`` reads exports
that have already been mapped to entity types:

    {"records": [
        {"entity_type": "job", "source_ref": "Positions.csv:3",
         "fields": {"company": "Google", "title": "Engineer", "start_date": "2020-01-01"}}
    ]}

A bare list of records is accepted too.
"""

import json
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from career_import.errors import ParseFailure
from career_import.models import EntityType
from career_import.records import CandidateRecord, build_fields


class Parser(Protocol):
    def parse(self, raw: bytes, source_name: Optional[str] = None) -> list[CandidateRecord]:
        """Return candidate records or raise ParseFailure."""
        ...


class JsonExportParser:
    """Parses a normalized JSON export into candidate records."""

    def parse(self, raw: bytes, source_name: Optional[str] = None) -> list[CandidateRecord]:
        try:
            document = json.loads(raw.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise ParseFailure(f"Export is not UTF-8 text: {e}") from e
        except json.JSONDecodeError as e:
            raise ParseFailure(f"Export is not valid JSON: {e.msg} (line {e.lineno})") from e

        if isinstance(document, dict):
            items = document.get("records")
        else:
            items = document
        if not isinstance(items, list):
            raise ParseFailure("Export must be a list of records or an object with a 'records' list")

        return [self._parse_record(i, item, source_name) for i, item in enumerate(items)]

    def _parse_record(
        self,
        index: int,
        item: Any,
        source_name: Optional[str],
    ) -> CandidateRecord:
        if not isinstance(item, dict):
            raise ParseFailure(f"Record {index} is not an object")

        raw_type = item.get("entity_type")
        try:
            entity_type = EntityType(raw_type)
        except ValueError:
            valid = ", ".join(t.value for t in EntityType)
            raise ParseFailure(
                f"Record {index} has unknown entity_type {raw_type!r} (expected one of: {valid})"
            ) from None

        values = item.get("fields") or {}
        if not isinstance(values, dict):
            raise ParseFailure(f"Record {index} fields must be an object")

        try:
            attributes = build_fields(entity_type, values)
        except ValidationError as e:
            raise ParseFailure(f"Record {index} ({entity_type.value}) has invalid fields: {e}") from e

        source_ref = item.get("source_ref")
        if source_ref is None:
            source_ref = f"{source_name or 'export'}#{index}"

        return CandidateRecord(attributes=attributes, source_ref=str(source_ref))
