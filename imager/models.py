"""Image records and their JSON shape.

The JSON keys (ID, DownloadURL, Resolution, OriginalID, Original, Resized)
are the wire format clients already depend on.
"""

from dataclasses import dataclass, field, replace
from typing import Optional


@dataclass(frozen=True)
class Image:
    """A stored artifact: one row in the images table."""

    download_url: str = ""
    resolution: str = ""
    id: Optional[int] = None
    original_id: Optional[int] = None

    def with_id(self, image_id: int) -> "Image":
        return replace(self, id=image_id)

    def to_dict(self) -> dict:
        data = {
            "ID": self.id or 0,
            "DownloadURL": self.download_url,
            "Resolution": self.resolution,
        }
        if self.original_id:
            data["OriginalID"] = self.original_id
        return data


@dataclass(frozen=True)
class OriginalResized:
    """An original paired with one of its derivatives. Never stored as one row."""

    original: Image = field(default_factory=Image)
    resized: Image = field(default_factory=Image)

    def to_dict(self) -> dict:
        return {"Original": self.original.to_dict(), "Resized": self.resized.to_dict()}
