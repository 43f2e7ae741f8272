"""In-memory model of a WACZ container."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pagepack.formats.wacz import RAW_PREFIX, PageLine


@dataclass
class ArchiveContainer:
    """Logical files of the archive plus its page list and extras block.

    pages.jsonl, datapackage.json and datapackage-digest.json are derived
    from these fields when the container is written, so they do not appear
    in ``files``.
    """

    files: dict[str, bytes] = field(default_factory=dict)
    pages: list[PageLine] = field(default_factory=list)
    extras: dict[str, Any] | None = None
    title: str = ""
    main_page_url: str | None = None

    @property
    def raw_files(self) -> dict[str, bytes]:
        return {
            path: data for path, data in self.files.items() if path.startswith(RAW_PREFIX)
        }
