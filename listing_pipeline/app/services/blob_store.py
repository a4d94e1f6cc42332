from __future__ import annotations

import asyncio
import hashlib
import time
from pathlib import Path
from typing import Optional


class BlobStore:
    async def put_text(self, key: str, content: str) -> str:
        raise NotImplementedError

    def build_key(self, source: str, url: str, suffix: str = "html") -> str:
        digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]
        timestamp = int(time.time() * 1000)
        return f"{source}/{digest}_{timestamp}.{suffix}"


class LocalBlobStore(BlobStore):
    """Filesystem-backed store for raw listing pages."""

    def __init__(self, root: Optional[str | Path] = None):
        self.root = Path(root or Path.cwd() / "data" / "raw_pages")
        self.root.mkdir(parents=True, exist_ok=True)

    async def put_text(self, key: str, content: str) -> str:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_text, content, encoding="utf-8")
        return key
