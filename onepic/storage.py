"""
Where finished collages end up.

Exports are grouped by the day they were made and a short batch id:

    {output_dir}/{YYYY-MM-DD}/{batch_id}/onepic-YYYY-MM-DD.jpg

The API serves ``output_dir`` under ``/output``, so each stored collage
gets a public URL below ``PUBLIC_BASE_URL``.
"""

import abc
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

from .config import Config, get_config

logger = logging.getLogger(__name__)

BATCH_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def new_batch_id() -> str:
    """Short random id grouping the exports of one request."""
    return uuid.uuid4().hex[:8]


@dataclass
class StoredCollage:
    """A collage written to the store."""
    filename: str
    local_path: Path
    url: str
    batch_id: str
    byte_size: int


class CollageStore(abc.ABC):
    """Destination for encoded collages."""

    @abc.abstractmethod
    def put(self, blob: bytes, batch_id: str, filename: str, day: date) -> StoredCollage:
        """Store ``blob`` for the export made on ``day``."""


class LocalCollageStore(CollageStore):
    """Writes collages below the configured output directory."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()

    def path_for(self, batch_id: str, filename: str, day: date) -> Path:
        if not BATCH_ID_PATTERN.match(batch_id):
            raise ValueError(
                f"Invalid batch id '{batch_id}': use 1-64 letters, digits, '-' or '_'"
            )
        if Path(filename).name != filename or filename in ("", ".", ".."):
            raise ValueError(f"Invalid filename '{filename}'")
        return self.config.output_dir / day.isoformat() / batch_id / filename

    def url_for(self, path: Path) -> str:
        relative = path.relative_to(self.config.output_dir).as_posix()
        return f"{self.config.public_base_url}/output/{relative}"

    def put(self, blob: bytes, batch_id: str, filename: str, day: date) -> StoredCollage:
        path = self.path_for(batch_id, filename, day)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(blob)
        logger.debug(f"Wrote {len(blob)} bytes to {path}")

        return StoredCollage(
            filename=filename,
            local_path=path,
            url=self.url_for(path),
            batch_id=batch_id,
            byte_size=len(blob),
        )
