from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class DecodedMedia:
    media_type: str
    data: bytes
    name_hint: str = ""

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class UploadedFile:
    filename: str
    media_type: str
    content: bytes


@dataclass(frozen=True, slots=True)
class StoredArtifact:
    id: str
    extension: str
    path: Path
    public_url: str

    @property
    def name(self) -> str:
        return f"{self.id}{self.extension}"


@dataclass(frozen=True, slots=True)
class EnhancementResult:
    status: str = "COMPLETED"
    original_url: str = ""
    enhanced_url: str = ""
    message: str = ""

    @property
    def completed(self) -> bool:
        return self.status == "COMPLETED"

    def as_structured(self) -> dict[str, str]:
        return {
            "originalUrl": self.original_url,
            "enhancedUrl": self.enhanced_url,
            "status": self.status,
            "message": self.message,
        }
