"""Copy progress from a legacy JSON state file into the database."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from habla.config import get_settings
from habla.db.session import ensure_schema, session_scope
from habla.repositories.progress_records import progress_records
from habla.store import STATE_KEYS

logger = logging.getLogger("habla.import_legacy_state")


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open(encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{path} does not contain a mapping of namespaces")
    return payload


def import_state(path: Path, *, overwrite: bool = False) -> int:
    """Import every known key for every namespace; returns the number of values written."""
    if not path.exists():
        logger.info("No legacy state found at %s", path)
        return 0
    payload = _load_json(path)
    ensure_schema()

    imported = 0
    with session_scope() as session:
        for namespace, values in payload.items():
            if not isinstance(values, dict):
                logger.warning("Skipping namespace %s; payload is not a mapping", namespace)
                continue
            existing = set(progress_records.keys(session, namespace))
            for key, value in values.items():
                if key not in STATE_KEYS:
                    logger.warning("Skipping unknown key %s in namespace %s", key, namespace)
                    continue
                if key in existing and not overwrite:
                    continue
                progress_records.upsert(session, namespace, key, value)
                imported += 1
    logger.info("Imported %d progress values from %s", imported, path)
    return imported


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    parser = argparse.ArgumentParser(description="Import legacy JSON progress into the database.")
    parser.add_argument("--path", type=Path, default=None, help="Legacy state file (default: HABLA_LEGACY_STATE_PATH).")
    parser.add_argument("--overwrite", action="store_true", help="Replace values already present in the database.")
    args = parser.parse_args(argv)

    path = args.path or get_settings().legacy_state_path
    try:
        import_state(path, overwrite=args.overwrite)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Legacy import failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
