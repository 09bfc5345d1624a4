"""
Persistent, ordered history of generation results.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Iterator, Sequence

import yaml

from yadam.common.config import HISTORY_STORAGE_KEY

from .models import GenerationResult, scene_index_from_id

logger = logging.getLogger(__name__)


class ResultStore:
    """
    Ordered collection of :class:`GenerationResult` keyed by id.

    Insertion order is preserved ("most recent" is the reverse of it). When a ``path``
    is given, every mutation rewrites the whole collection to that YAML file, and the
    constructor loads whatever history is already there.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None
        self._lock = threading.RLock()
        self._results: dict[str, GenerationResult] = {}
        if self._path is not None:
            self._results = {result.id: result for result in self.load(self._path)}

    @classmethod
    def in_directory(cls, directory: str | Path) -> "ResultStore":
        return cls(Path(directory).expanduser() / f"{HISTORY_STORAGE_KEY}.yaml")

    @property
    def path(self) -> Path | None:
        return self._path

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, result_id: object) -> bool:
        return result_id in self._results

    def __iter__(self) -> Iterator[GenerationResult]:
        return iter(self.all())

    def get(self, result_id: str) -> GenerationResult | None:
        return self._results.get(result_id)

    def all(self) -> list[GenerationResult]:
        with self._lock:
            return list(self._results.values())

    def recent(self, limit: int | None = None) -> list[GenerationResult]:
        """Return results newest first."""
        results = list(reversed(self.all()))
        return results if limit is None else results[:limit]

    def batch(self, batch_id: str) -> list[GenerationResult]:
        """Return the stored results of one batch in scene order."""
        siblings = [result for result in self.all() if result.batch_id == batch_id]
        return sorted(siblings, key=lambda result: scene_index_from_id(result.id))

    def add(self, result: GenerationResult) -> None:
        """
        Insert a result, or replace the stored record with the same id in place.
        """
        with self._lock:
            self._results[result.id] = result
            self._persist()

    def remove(self, result_id: str) -> bool:
        with self._lock:
            removed = self._results.pop(result_id, None)
            if removed is None:
                return False
            self._persist()
            return True

    def to_list(self) -> list[dict[str, Any]]:
        return [result.to_dict() for result in self.all()]

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_list(), sort_keys=False, allow_unicode=True)

    def _persist(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_name(self._path.name + ".tmp")
        temp_path.write_text(self.to_yaml(), encoding="utf-8")
        os.replace(temp_path, self._path)

    @staticmethod
    def load(path: str | Path) -> list[GenerationResult]:
        """
        Read a history snapshot. Anything that does not parse as a list of results is
        treated as an empty history.
        """
        path = Path(path)
        if not path.exists():
            return []

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError):
            logger.warning("Could not read history at %s; starting with an empty history.", path)
            return []

        if data is None:
            return []
        if not isinstance(data, Sequence) or isinstance(data, (str, bytes)):
            logger.warning("History at %s is not a list; starting with an empty history.", path)
            return []

        try:
            return [GenerationResult.from_dict(entry) for entry in data]
        except (ValueError, TypeError):
            logger.warning("History at %s has an unexpected shape; starting with an empty history.", path)
            return []
