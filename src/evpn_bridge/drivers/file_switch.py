"""Switch driver that keeps the table state in a JSON file.

Useful for lab runs and dry runs: the file always holds the complete set of
installed entries, grouped by table, so the effect of a topology change can be
inspected with ``jq`` or diffed between runs.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from evpn_p4.entries import PIPELINE, TableEntry

from .base import SwitchDriver, SwitchError

LOG = logging.getLogger(__name__)


class FileSwitchDriver(SwitchDriver):
    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._entries: Dict[Tuple, TableEntry] = {}

    def is_ready(self) -> bool:
        if self.path is None:
            return True
        return self.path.parent.exists()

    def add_entry(self, entry: TableEntry) -> None:
        if entry.is_delete:
            raise SwitchError(f"entry for {entry.table.value} has no action")
        with self._lock:
            previous = self._entries.get(entry.key)
            self._entries[entry.key] = entry
            if previous is None:
                LOG.debug("added entry to %s", entry.table.value)
            elif previous != entry:
                LOG.debug("modified entry in %s", entry.table.value)
            self._flush()

    def del_entry(self, entry: TableEntry) -> None:
        with self._lock:
            if self._entries.pop(entry.key, None) is None:
                LOG.debug("entry in %s already absent", entry.table.value)
                return
            LOG.debug("deleted entry from %s", entry.table.value)
            self._flush()

    def entries(self, table: Optional[str] = None) -> List[TableEntry]:
        with self._lock:
            values = list(self._entries.values())
        if table is None:
            return values
        return [e for e in values if e.table.value == table]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def snapshot(self) -> Dict[str, object]:
        return _payload(self.entries())

    def _flush(self) -> None:
        if self.path is None:
            return
        payload = _payload(self._entries.values())
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n")
            tmp_path.replace(self.path)
        except OSError as exc:
            raise SwitchError(f"failed to write {self.path}: {exc}") from exc


def _payload(entries: Iterable[TableEntry]) -> Dict[str, object]:
    tables: Dict[str, List[Dict[str, object]]] = {}
    for entry in entries:
        data = entry.to_dict()
        data.pop("table")
        tables.setdefault(entry.table.value, []).append(data)
    return {
        "pipeline": PIPELINE,
        "tables": {name: tables[name] for name in sorted(tables)},
    }
