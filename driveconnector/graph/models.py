"""
Repository item metadata.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

TEXT_MIME_TYPES = frozenset({"application/json", "application/xml", "application/javascript"})


class DriveItem(BaseModel):
    """Immutable view of a driveItem returned by the repository."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    web_url: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    last_modified: Optional[str] = None
    is_file: bool = False
    is_folder: bool = False
    description: Optional[str] = None
    parent_path: Optional[str] = None

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "DriveItem":
        file_facet = payload.get("file")
        parent = payload.get("parentReference") or {}
        size = payload.get("size")
        return cls(
            id=str(payload.get("id", "")),
            name=payload.get("name") or "",
            web_url=payload.get("webUrl"),
            mime_type=file_facet.get("mimeType") if isinstance(file_facet, dict) else None,
            size=size if isinstance(size, int) else None,
            last_modified=payload.get("lastModifiedDateTime"),
            is_file=isinstance(file_facet, dict),
            is_folder=isinstance(payload.get("folder"), dict),
            description=payload.get("description"),
            parent_path=parent.get("path") if isinstance(parent, dict) else None,
        )

    @property
    def is_text(self) -> bool:
        mime = self.mime_type or ""
        return mime.startswith("text/") or mime in TEXT_MIME_TYPES
