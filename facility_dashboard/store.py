"""
JSON-file storage for datasets and dashboard layouts.

Keys are versioned so a schema change can start from a clean slate without
touching older files. Writes replace the whole file; last write wins.
"""

from __future__ import annotations

import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from .schema import Dataset, LayoutConfig

STORAGE_VERSION = "1.0.0"
KEY_PREFIX = "altavista_"
DATASETS_KEY = "altavista_datasets"
LAYOUTS_KEY = "altavista_layouts"

_DATASETS = TypeAdapter(List[Dataset])


class StorageError(RuntimeError):
    """Persisting data failed (disk full, permissions, serialization)."""


class DatasetStore:
    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    # ------------------------------------------------------------------
    # keys + raw IO
    # ------------------------------------------------------------------

    @staticmethod
    def _storage_key(base_key: str, dataset_id: Optional[str] = None) -> str:
        return f"{base_key}_{dataset_id}" if dataset_id else base_key

    @staticmethod
    def _versioned_key(key: str) -> str:
        return f"{key}_v{STORAGE_VERSION}"

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{self._versioned_key(key)}.json"

    def _write(self, path: Path, payload: bytes) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.data_dir, prefix=".tmp_", suffix=".json")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    # ------------------------------------------------------------------
    # datasets
    # ------------------------------------------------------------------

    def save_datasets(self, datasets: List[Dataset]) -> None:
        path = self._path(DATASETS_KEY)
        try:
            payload = _DATASETS.dump_json(datasets, by_alias=True, indent=2)
            self._write(path, payload)
        except (OSError, ValueError) as e:
            logger.error("Failed to save datasets to {}: {}", path, e)
            raise StorageError("Storage failed. Please clear some data and try again.") from e
        logger.info("Saved {} dataset(s) to {}", len(datasets), path)

    def load_datasets(self) -> List[Dataset]:
        path = self._path(DATASETS_KEY)
        if not path.exists():
            return []
        try:
            return _DATASETS.validate_json(path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.error("Failed to load datasets from {}: {}", path, e)
            return []

    def save_dataset(self, dataset: Dataset) -> Dataset:
        """Insert, or replace the dataset with the same id (``updated_at`` refreshed)."""
        datasets = self.load_datasets()
        for i, d in enumerate(datasets):
            if d.id == dataset.id:
                dataset = dataset.model_copy(update={"updated_at": datetime.now()})
                datasets[i] = dataset
                break
        else:
            datasets.append(dataset)
        self.save_datasets(datasets)
        return dataset

    def get_dataset(self, dataset_id: str) -> Optional[Dataset]:
        return next((d for d in self.load_datasets() if d.id == dataset_id), None)

    def delete_dataset(self, dataset_id: str) -> None:
        datasets = [d for d in self.load_datasets() if d.id != dataset_id]
        self.save_datasets(datasets)

    # ------------------------------------------------------------------
    # layouts
    # ------------------------------------------------------------------

    def save_layout(self, dataset_id: str, layout: LayoutConfig) -> None:
        path = self._path(self._storage_key(LAYOUTS_KEY, dataset_id))
        try:
            self._write(path, layout.model_dump_json(by_alias=True, indent=2).encode("utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Failed to save layout for {}: {}", dataset_id, e)
            raise StorageError(f"Failed to save layout: {e}") from e

    def load_layout(self, dataset_id: str) -> Optional[LayoutConfig]:
        path = self._path(self._storage_key(LAYOUTS_KEY, dataset_id))
        if not path.exists():
            return None
        try:
            return LayoutConfig.model_validate_json(path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.error("Failed to load layout for {}: {}", dataset_id, e)
            return None

    # ------------------------------------------------------------------
    # housekeeping
    # ------------------------------------------------------------------

    def _files(self) -> List[Path]:
        if not self.data_dir.exists():
            return []
        return sorted(self.data_dir.glob(f"{KEY_PREFIX}*.json"))

    def clear_all(self) -> None:
        for p in self._files():
            p.unlink()
        logger.info("Cleared stored data in {}", self.data_dir)

    def storage_info(self) -> Dict[str, int]:
        files = self._files()
        return {"files": len(files), "used": sum(p.stat().st_size for p in files)}
