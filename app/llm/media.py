"""Media URL handling for notes sent to the vision models."""

import re
from urllib.parse import urlparse

from app.database.models import NoteModel

_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_url(value: str | None) -> str | None:
    """Return an absolute http(s) URL, or None if ``value`` is not one.

    Protocol-relative URLs (``//host/path``) are promoted to https.
    """
    if not value or not isinstance(value, str):
        return None

    trimmed = value.strip()
    if not trimmed:
        return None
    if trimmed.startswith("//"):
        return f"https:{trimmed}"
    return trimmed if _HTTP_RE.match(trimmed) else None


def collect_media_urls(note: NoteModel, max_images: int = 12) -> list[str]:
    """Collect the image and video URLs of a note in order, without duplicates.

    Images whose id was flagged by the sensitivity check are skipped. At most
    ``max_images`` of the remaining images are used; the video URL, if any,
    comes last.
    """
    urls: list[str] = []
    filtered = note.filtered_media_ids

    raw_images = note.images or ""
    candidates = [
        u.strip()
        for u in raw_images.split(",")
        if u.strip() and not _is_filtered(u.strip(), filtered)
    ][:max_images]
    if note.video:
        candidates.append(note.video)

    for candidate in candidates:
        normalized = normalize_url(candidate)
        if normalized and normalized not in urls:
            urls.append(normalized)
    return urls


def _is_filtered(url: str, filtered: set[str]) -> bool:
    if not filtered:
        return False
    normalized = normalize_url(url)
    return normalized is not None and extract_image_id(normalized) in filtered


def extract_image_id(image_url: str) -> str | None:
    """Extract the bare image id from a CDN URL.

    The id is the last path segment with any ``!style`` suffix removed.
    """
    try:
        parsed = urlparse(image_url)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None

    segments = [s for s in parsed.path.split("/") if s]
    if not segments:
        return None

    image_id = segments[-1].split("!", 1)[0]
    return image_id or None
