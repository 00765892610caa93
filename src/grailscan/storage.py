"""Catalog record persistence."""

from __future__ import annotations

import asyncio
import csv
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Protocol

from .errors import PersistenceError
from .schemas.catalog_record import CatalogRecordRequest
from .utils import fs

LOGGER = logging.getLogger(__name__)

LEDGER_FIELDS = (
    "record_id",
    "title",
    "series",
    "issue_number",
    "publisher",
    "year",
    "variant",
    "notes",
    "image_url",
    "scan_item_id",
    "candidate_id",
    "provenance",
    "score",
)


class CatalogStore(Protocol):
    async def create_record(self, request: CatalogRecordRequest) -> str:
        ...


class JsonCatalogStore:
    """One JSON document per record plus an append-only CSV ledger."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def json_dir(self) -> Path:
        return self._root / "json"

    @property
    def ledger_path(self) -> Path:
        return self._root / "csv" / "records.csv"

    async def create_record(self, request: CatalogRecordRequest) -> str:
        record_id = f"rec-{uuid.uuid4().hex[:12]}"
        try:
            await asyncio.to_thread(self._write, record_id, request)
        except OSError as exc:
            raise PersistenceError(f"Could not save record: {exc}") from exc
        LOGGER.info("Created catalog record %s for %s", record_id, request.identification.scan_item_id)
        return record_id

    def _write(self, record_id: str, request: CatalogRecordRequest) -> None:
        document = {"id": record_id, **request.model_dump(mode="json")}
        fs.atomic_write_text(
            str(self.json_dir / f"{record_id}.json"),
            json.dumps(document, ensure_ascii=False, indent=2),
        )

        ident = request.identification
        row = {
            "record_id": record_id,
            "title": request.title,
            "series": request.series,
            "issue_number": request.issue_number,
            "publisher": request.publisher,
            "year": request.year,
            "variant": request.variant,
            "notes": request.notes,
            "image_url": request.image_url,
            "scan_item_id": ident.scan_item_id,
            "candidate_id": ident.candidate_id,
            "provenance": ident.provenance.value,
            "score": ident.score,
        }
        csv_path = self.ledger_path
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not csv_path.exists()
        with csv_path.open("a", newline="", encoding="utf-8") as handle:
            writer = csv.DictWriter(handle, fieldnames=list(LEDGER_FIELDS))
            if write_header:
                writer.writeheader()
            writer.writerow(row)

    def load_record(self, record_id: str) -> Dict[str, Any]:
        path = self.json_dir / f"{record_id}.json"
        if not path.exists():
            raise FileNotFoundError(path)
        return json.loads(path.read_text(encoding="utf-8"))

    def list_records(self) -> List[Dict[str, Any]]:
        if not self.json_dir.exists():
            return []
        return [json.loads(path.read_text(encoding="utf-8")) for path in sorted(self.json_dir.glob("*.json"))]
