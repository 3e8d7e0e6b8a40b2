#!/usr/bin/env python3
"""Emit deterministic seed data for concepts used in resource curation.

SQL output targets the Postgres schema; JSON output is the concepts file read by
the in-memory backend (``KW_MEMORY_CONCEPTS_FILE``). Ids in the JSON follow the
order the SQL inserts rows into a fresh database.
"""

from __future__ import annotations

import argparse
import json


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def _quote_tags(tags: list[str]) -> str:
    if not tags:
        return "'{}'::text[]"
    return "array[" + ", ".join(_quote_sql(tag) for tag in tags) + "]::text[]"


def parse_concept(raw: str) -> tuple[str, str | None]:
    name, separator, description = raw.partition("=")
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"concept name is empty in {raw!r}")
    return name, (description.strip() or None) if separator else None


def _unique_concepts(concepts: list[tuple[str, str | None]]) -> list[tuple[str, str | None]]:
    seen: set[str] = set()
    unique: list[tuple[str, str | None]] = []
    for name, description in concepts:
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append((name, description))
    return unique


def _normalize_tags(tags: list[str]) -> list[str]:
    return sorted({tag.strip().lower() for tag in tags if tag.strip()})


def render_sql(*, concepts: list[tuple[str, str | None]], tags: list[str]) -> str:
    tag_values = _quote_tags(_normalize_tags(tags))
    rows = [
        f"  ({_quote_sql(name)}, {_quote_sql(description) if description else 'null'}, {tag_values})"
        for name, description in _unique_concepts(concepts)
    ]

    values = ",\n".join(rows)
    return f"""-- Concept seed SQL
-- Apply after db/migrations/0001_curated_resources.sql.

insert into concepts (name, description, tags)
values
{values}
on conflict (name) do nothing;
"""


def render_json(*, concepts: list[tuple[str, str | None]], tags: list[str]) -> str:
    tag_values = _normalize_tags(tags)
    records = [
        {"id": index, "name": name, "description": description, "tags": tag_values}
        for index, (name, description) in enumerate(_unique_concepts(concepts), start=1)
    ]
    return json.dumps(records, indent=2, ensure_ascii=False)


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit seed data for concepts.")
    parser.add_argument(
        "concepts",
        nargs="+",
        type=parse_concept,
        help="Concept as NAME or NAME=DESCRIPTION",
    )
    parser.add_argument(
        "--tag",
        action="append",
        default=[],
        help="Tag applied to every seeded concept (repeatable)",
    )
    parser.add_argument(
        "--format",
        choices=("sql", "json"),
        default="sql",
        help="sql for Postgres, json for KW_MEMORY_CONCEPTS_FILE",
    )
    args = parser.parse_args()

    render = render_json if args.format == "json" else render_sql
    print(render(concepts=args.concepts, tags=args.tag))


if __name__ == "__main__":
    main()
