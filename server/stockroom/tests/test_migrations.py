import re
from pathlib import Path

from stockroom import models  # noqa: F401  registers mapped tables
from stockroom.db import Base
from stockroom.movement_types import ADJUSTMENT_TYPES, LEDGER_TYPES, MOVEMENT_TYPES, SERIAL_STATUSES

VERSIONS_DIR = Path(__file__).resolve().parents[2] / "alembic" / "versions"


def _migration_sources() -> dict[str, str]:
    return {path.name: path.read_text(encoding="utf-8") for path in sorted(VERSIONS_DIR.glob("*.py"))}


def test_revision_ids_fit_version_table_limit():
    """Postgres alembic_version.version_num is varchar(32)."""
    too_long: list[tuple[str, str, int]] = []

    for name, text in _migration_sources().items():
        match = re.search(r'^revision = "([^"]+)"', text, re.MULTILINE)
        if match and len(match.group(1)) > 32:
            too_long.append((name, match.group(1), len(match.group(1))))

    assert not too_long, f"Alembic revision IDs must be <= 32 chars. Found: {too_long}"


def test_migrations_create_every_mapped_table():
    created: set[str] = set()
    for text in _migration_sources().values():
        created.update(re.findall(r'op\.create_table\(\s*"([a-z_]+)"', text))

    assert created == set(Base.metadata.tables)


def test_migration_enums_match_model_vocabularies():
    text = "\n".join(_migration_sources().values())

    for values in (MOVEMENT_TYPES, LEDGER_TYPES, SERIAL_STATUSES, ADJUSTMENT_TYPES):
        for value in values:
            assert f'"{value}"' in text, value
