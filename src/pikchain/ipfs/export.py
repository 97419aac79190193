"""Bulk export - downloads a set of CIDs to local files, one at a time."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable

from pikchain.exceptions import AllGatewaysExhausted
from pikchain.interfaces.gateway import ContentResolver
from pikchain.ipfs.cids import unique_cids
from pikchain.models.records import ExportReport

log = logging.getLogger(__name__)

FILENAME_PREFIX = "photoblock"


def extension_for(content_type: str) -> str:
    """``image/png; charset=x`` -> ``png``; falls back to ``jpg``."""
    subtype = content_type.split("/", 1)[1] if "/" in content_type else ""
    subtype = subtype.split(";", 1)[0].strip().lower()
    return subtype or "jpg"


def export_filename(cid: str, content_type: str) -> str:
    return f"{FILENAME_PREFIX}-{cid[:8]}.{extension_for(content_type)}"


def unique_path(directory: Path, filename: str) -> Path:
    """``directory/filename``, or ``name-1.ext``, ``name-2.ext``... if taken."""
    path = directory / filename
    counter = 1
    while path.exists():
        path = directory / f"{Path(filename).stem}-{counter}{Path(filename).suffix}"
        counter += 1
    return path


class BulkExporter:
    """Saves every CID through the resolver; one failure never stops the run."""

    def __init__(self, resolver: ContentResolver, delay: float = 0.5) -> None:
        self._resolver = resolver
        self._delay = delay

    async def export_one(self, cid: str, out_dir: str | Path, start_index: int = 0) -> Path:
        """Fetch and save a single CID. Raises AllGatewaysExhausted."""
        content = await self._resolver.fetch_content(cid, start_index=start_index)
        target = Path(out_dir).expanduser()
        target.mkdir(parents=True, exist_ok=True)
        path = unique_path(target, export_filename(content.cid, content.content_type))
        path.write_bytes(content.data)
        log.info("Download success %s -> %s (gateway %s)", cid[:16], path, content.gateway)
        return path

    async def export(self, cids: Iterable[object], out_dir: str | Path) -> ExportReport:
        report = ExportReport()
        items = unique_cids(cids)
        log.info("Exporting %d images to %s", len(items), out_dir)

        for position, cid in enumerate(items):
            try:
                path = await self.export_one(cid, out_dir)
                report.saved[cid] = str(path)
            except AllGatewaysExhausted as exc:
                log.error("Bulk download failed for %s: %s", cid, exc.message)
                report.failed[cid] = exc.message
            except OSError as exc:
                log.error("Could not write %s: %s", cid, exc)
                report.failed[cid] = str(exc)

            if self._delay and position < len(items) - 1:
                await asyncio.sleep(self._delay)

        log.info(
            "Export complete: %d saved, %d failed", len(report.saved), len(report.failed),
        )
        return report
