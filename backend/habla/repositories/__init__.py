"""Persistence repositories."""

from .progress_records import ProgressRecordRepository, progress_records

__all__ = ["ProgressRecordRepository", "progress_records"]
