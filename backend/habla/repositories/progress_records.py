"""Database-backed repository for namespaced progress values."""

from __future__ import annotations

from typing import Any, Iterable, List, Tuple

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..db.models import ProgressRecordModel


def _normalize_namespace(namespace: str) -> str:
    normalized = namespace.strip().lower()
    if not normalized:
        raise ValueError("Namespace cannot be empty.")
    return normalized


class ProgressRecordRepository:
    """Key/value persistence helper mirroring the JSON-backed state file API."""

    def get(self, session: Session, namespace: str, key: str) -> Tuple[bool, Any]:
        model = self._find(session, namespace, key)
        if model is None:
            return False, None
        return True, model.value

    def upsert(self, session: Session, namespace: str, key: str, value: Any) -> None:
        model = self._find(session, namespace, key)
        if model is None:
            model = ProgressRecordModel(namespace=_normalize_namespace(namespace), key=key, value=value)
            session.add(model)
        else:
            model.value = value
        session.flush()

    def delete_keys(self, session: Session, namespace: str, keys: Iterable[str]) -> int:
        key_list: List[str] = list(keys)
        if not key_list:
            return 0
        stmt = delete(ProgressRecordModel).where(
            ProgressRecordModel.namespace == _normalize_namespace(namespace),
            ProgressRecordModel.key.in_(key_list),
        )
        result = session.execute(stmt)
        session.flush()
        return int(result.rowcount or 0)

    def keys(self, session: Session, namespace: str) -> List[str]:
        stmt = (
            select(ProgressRecordModel.key)
            .where(ProgressRecordModel.namespace == _normalize_namespace(namespace))
            .order_by(ProgressRecordModel.key.asc())
        )
        return list(session.execute(stmt).scalars())

    def _find(self, session: Session, namespace: str, key: str) -> ProgressRecordModel | None:
        stmt = select(ProgressRecordModel).where(
            ProgressRecordModel.namespace == _normalize_namespace(namespace),
            ProgressRecordModel.key == key,
        )
        return session.execute(stmt).scalar_one_or_none()


progress_records = ProgressRecordRepository()

__all__ = ["ProgressRecordRepository", "progress_records"]
