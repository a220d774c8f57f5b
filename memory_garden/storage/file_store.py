"""
JSON file repository.

Layout (compatible with data written by earlier releases):

    <data_dir>/memories/<batch>.json    list of memory records
    <data_dir>/clusters/<batch>.json    list of cluster records (legacy hints)
    <data_dir>/oblivion.jsonl           append-only tombstones, one per line
    <data_dir>/oblivion.json            legacy tombstone array (read only)
    <data_dir>/user-profile.json        user profile document
    <uploads_dir>/<storedFilename>      uploaded binaries
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from memory_garden.errors import StorageError
from memory_garden.storage.base import MemoryRepository


logger = logging.getLogger("memory_garden.storage.file")

_SAFE_BATCH_ID = re.compile(r"^[^/\\\x00]+$")


def _atomic_write_json(path: Path, value: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(value, handle, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except OSError as exc:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise StorageError(f"cannot write {path}: {exc}") from exc


class JsonFileRepository(MemoryRepository):
    def __init__(self, data_dir: str | Path, uploads_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        self.uploads_dir = Path(uploads_dir)

    def _kind_dir(self, kind: str) -> Path:
        return self.data_dir / kind

    def _batch_path(self, kind: str, batch_id: str) -> Path:
        if batch_id in (".", "..") or not _SAFE_BATCH_ID.match(batch_id):
            raise StorageError(f"invalid batch id: {batch_id!r}")
        return self._kind_dir(kind) / f"{batch_id}.json"

    def _batch_ids(self, kind: str) -> List[str]:
        directory = self._kind_dir(kind)
        try:
            names = sorted(p.name for p in directory.iterdir() if p.is_file())
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning("[storage.file.list_failed] dir=%s error=%s", directory, exc)
            return []
        return [name[: -len(".json")] for name in names if name.endswith(".json") and not name.startswith(".")]

    def _read_batch(self, kind: str, batch_id: str) -> Any:
        path = self._batch_path(kind, batch_id)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageError(f"cannot read {path}: {exc}") from exc

    def _write_batch(self, kind: str, batch_id: str, records: List[Any]) -> None:
        _atomic_write_json(self._batch_path(kind, batch_id), records)

    def _drop_batch(self, kind: str, batch_id: str) -> None:
        path = self._batch_path(kind, batch_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"cannot delete {path}: {exc}") from exc

    @property
    def _oblivion_log(self) -> Path:
        return self.data_dir / "oblivion.jsonl"

    def _append_tombstone_record(self, record: Dict[str, Any]) -> None:
        path = self._oblivion_log
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as exc:
            raise StorageError(f"cannot append to {path}: {exc}") from exc

    def _read_tombstone_records(self) -> List[Any]:
        records: List[Any] = []
        legacy = self.data_dir / "oblivion.json"
        if legacy.exists():
            try:
                payload = json.loads(legacy.read_text(encoding="utf-8"))
                if isinstance(payload, list):
                    records.extend(payload)
            except (OSError, ValueError) as exc:
                logger.warning("[storage.file.oblivion_legacy_unreadable] error=%s", exc)
        try:
            with self._oblivion_log.open("r", encoding="utf-8") as handle:
                for line_no, line in enumerate(handle, start=1):
                    if not line.strip():
                        continue
                    try:
                        records.append(json.loads(line))
                    except ValueError:
                        logger.warning("[storage.file.oblivion_corrupt_line] line=%s", line_no)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("[storage.file.oblivion_unreadable] error=%s", exc)
        return records

    @property
    def _profile_path(self) -> Path:
        return self.data_dir / "user-profile.json"

    def _read_profile(self) -> Optional[Dict[str, Any]]:
        try:
            payload = json.loads(self._profile_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            raise StorageError(f"cannot read profile: {exc}") from exc
        return payload if isinstance(payload, dict) else None

    def _write_profile(self, profile: Dict[str, Any]) -> None:
        _atomic_write_json(self._profile_path, profile)

    def delete_artifact(self, stored_filename: str) -> bool:
        # Only plain names inside the uploads dir are eligible
        path = self.uploads_dir / Path(stored_filename).name
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"cannot delete upload {path.name}: {exc}") from exc
        return True
