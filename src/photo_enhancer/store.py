from __future__ import annotations

import logging
import re
import secrets
from pathlib import Path

from .errors import ArtifactNotFoundError, StorageWriteError
from .media import extension_for, media_type_for_name
from .models import StoredArtifact

log = logging.getLogger("photo-enhancer.store")

FILES_ROUTE = "/files"

# 128-bit hex id + short known extension; nothing else reaches the filesystem
_NAME_RE = re.compile(r"[0-9a-f]{32}\.(?:jpg|jpeg|png|webp|gif|bin)")


def is_valid_name(name: str) -> bool:
    return bool(_NAME_RE.fullmatch(name or ""))


class ContentStore:
    """Write-once artifact directory served back under ``/files/<name>``.

    Artifacts live as long as the directory does; nothing is deleted.
    """

    def __init__(self, root: str | Path, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def ensure_dir(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def public_url(self, name: str) -> str:
        return f"{self.public_base_url}{FILES_ROUTE}/{name}"

    def store(self, data: bytes, media_type: str, name_hint: str = "") -> StoredArtifact:
        artifact_id = secrets.token_hex(16)
        extension = extension_for(media_type, name_hint)
        name = f"{artifact_id}{extension}"
        path = self.root / name
        try:
            # exclusive create: an existing name is never overwritten
            with open(path, "xb") as fh:
                fh.write(data)
        except FileExistsError as exc:
            raise StorageWriteError(f"artifact {name} already exists") from exc
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise StorageWriteError(f"could not write artifact {name}: {exc}") from exc
        log.info("stored %s type=%s bytes=%d", name, media_type, len(data))
        return StoredArtifact(
            id=artifact_id,
            extension=extension,
            path=path,
            public_url=self.public_url(name),
        )

    def locate(self, name: str) -> tuple[Path, str]:
        """Return ``(path, media_type)`` for a stored artifact name.

        Names are checked against the id/extension shape before any
        filesystem access, so ``../`` and friends never reach ``stat``.
        """
        if not is_valid_name(name):
            raise ArtifactNotFoundError(f"no such file: {name!r}")
        path = self.root / name
        if not path.is_file():
            raise ArtifactNotFoundError(f"no such file: {name!r}")
        return path, media_type_for_name(name)

    def read(self, name: str) -> bytes:
        path, _ = self.locate(name)
        return path.read_bytes()
