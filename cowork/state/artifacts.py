"""Tracks files the agent writes into the workspace."""
from __future__ import annotations

import logging
import mimetypes
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class Artifact:
    id: str
    name: str
    path: str
    mime_type: str
    size: int
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "mimeType": self.mime_type,
            "size": self.size,
            "createdAt": self.created_at,
        }


ArtifactBroadcaster = Callable[[Artifact], None]


def guess_mime_type(path: str | Path) -> str:
    mime, _ = mimetypes.guess_type(str(path))
    return mime or "application/octet-stream"


class ArtifactTracker:
    """Records workspace files created or overwritten by the agent.

    Repeated writes to one path update the existing record in place and
    keep its id.
    """

    def __init__(self, workspace: str | Path | None = None) -> None:
        self._workspace = Path(workspace).resolve() if workspace else None
        self._artifacts: dict[str, Artifact] = {}
        self._broadcaster: ArtifactBroadcaster | None = None

    def set_workspace(self, workspace: str | Path) -> None:
        self._workspace = Path(workspace).resolve()

    def set_broadcaster(self, broadcaster: ArtifactBroadcaster) -> None:
        self._broadcaster = broadcaster

    def clear_broadcaster(self) -> None:
        self._broadcaster = None

    def track(self, path: str | Path) -> Artifact | None:
        """Record *path* and notify; returns None when it is not trackable."""
        target = Path(path)
        if not target.is_absolute() and self._workspace is not None:
            target = self._workspace / target
        target = target.resolve()

        if self._workspace is not None and not target.is_relative_to(self._workspace):
            logger.info("Not tracking %s: outside workspace %s", target, self._workspace)
            return None
        try:
            stat = target.stat()
        except OSError as exc:
            logger.info("Not tracking %s: %s", target, exc)
            return None
        if not target.is_file():
            return None

        key = str(target)
        existing = self._artifacts.get(key)
        artifact = Artifact(
            id=existing.id if existing else f"artifact_{uuid.uuid4().hex[:12]}",
            name=target.name,
            path=key,
            mime_type=guess_mime_type(target),
            size=stat.st_size,
            created_at=(
                existing.created_at if existing
                else datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
            ),
        )
        self._artifacts[key] = artifact
        logger.info("Artifact %s: %s (%d bytes)", "updated" if existing else "created", key, stat.st_size)

        if self._broadcaster is not None:
            try:
                self._broadcaster(replace(artifact))
            except Exception:
                logger.exception("Artifact broadcaster failed")
        return replace(artifact)

    def list(self) -> list[Artifact]:
        return [replace(a) for a in self._artifacts.values()]

    def clear(self) -> None:
        self._artifacts.clear()
