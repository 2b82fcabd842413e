"""In-memory blob store exposed to handlers as ``ctx.blob``.

Documents stay JSON-like, so binary content (generated PDFs, attachments) is
kept here and referenced from the document by a small descriptor.
"""

import base64
import hashlib
import uuid
from typing import Any, Dict, Optional, Union


class BlobStore:
    """Holds binary content created by steps."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    def create(
        self,
        content: Union[bytes, str],
        name: Optional[str] = None,
        mimetype: str = "application/octet-stream",
    ) -> Dict[str, Any]:
        """Store content and return a descriptor suitable for the document.

        ``str`` content is treated as base64.
        """
        raw = base64.b64decode(content) if isinstance(content, str) else bytes(content)
        blob_id = uuid.uuid4().hex
        self._blobs[blob_id] = raw
        return {
            "blobId": blob_id,
            "name": name,
            "mimetype": mimetype,
            "size": len(raw),
            "sha256": hashlib.sha256(raw).hexdigest(),
        }

    def get(self, ref: Union[str, Dict[str, Any]]) -> bytes:
        """Return raw content for a blob id or descriptor."""
        blob_id = ref["blobId"] if isinstance(ref, dict) else ref
        try:
            return self._blobs[blob_id]
        except KeyError:
            raise KeyError(f"Unknown blob: {blob_id}") from None

    def get_base64(self, ref: Union[str, Dict[str, Any]]) -> str:
        return base64.b64encode(self.get(ref)).decode("ascii")

    def __len__(self) -> int:
        return len(self._blobs)
