"""
Request bodies for create/update calls.

A payload is either structured JSON or a multipart upload carrying a file
attachment. The caller picks the variant; the client encodes it.
"""

import json
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union


@dataclass(frozen=True)
class JsonPayload:
    """Structured fields sent as an ``application/json`` body."""
    fields: dict[str, Any] = field(default_factory=dict)

    def encode(self) -> dict[str, Any]:
        """Keyword arguments for ``httpx.AsyncClient.request``."""
        return {"json": self.fields}


@dataclass(frozen=True)
class AttachmentPayload:
    """Form fields plus one binary file, sent as ``multipart/form-data``."""
    fields: dict[str, Any]
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"
    field_name: str = "image"

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(
        cls,
        path: Path,
        fields: dict[str, Any],
        content_type: Optional[str] = None,
    ) -> "AttachmentPayload":
        """Read an image file from disk."""
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            fields=fields,
            filename=path.name,
            content=path.read_bytes(),
            content_type=content_type or guessed or "application/octet-stream",
        )

    def encode(self) -> dict[str, Any]:
        """
        Keyword arguments for ``httpx.AsyncClient.request``.

        Non-string form values (lists, numbers) are JSON-encoded; no
        Content-Type header is set so httpx can add the multipart boundary.
        """
        data = {}
        for key, value in self.fields.items():
            if value is None:
                continue
            data[key] = value if isinstance(value, str) else json.dumps(value)
        return {
            "data": data,
            "files": {self.field_name: (self.filename, self.content, self.content_type)},
        }


Payload = Union[JsonPayload, AttachmentPayload]
