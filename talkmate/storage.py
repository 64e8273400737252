import logging
from collections import deque
from collections.abc import Iterable
from typing import Any

from supabase import Client

from talkmate.core.config import settings

logger = logging.getLogger(__name__)

AUDIO_CONTENT_TYPE = "audio/mpeg"
AUDIO_EXTENSION = ".mp3"

# Public URLs of audio already known to exist, keyed by object path.
_public_url_cache: dict[str, str] = {}


def audio_path(audio_id: str) -> str:
    return audio_id if audio_id.endswith(AUDIO_EXTENSION) else f"{audio_id}{AUDIO_EXTENSION}"


def cached_public_url(path: str) -> str | None:
    return _public_url_cache.get(path)


def clear_url_cache() -> None:
    _public_url_cache.clear()


def _split(path: str) -> tuple[str, str]:
    folder, _, name = path.rpartition("/")
    return folder, name


class AudioStore:
    """
    Audio objects in a Supabase storage bucket, laid out as `{session_id}/{message_key}.mp3`.

    The bucket is treated as a cache: objects are written once and looked up
    before generating again. Deletion is best-effort; listing and removal
    failures are logged and never raised to the caller.
    """

    def __init__(
        self,
        bucket: Any,
        *,
        page_size: int | None = None,
        batch_size: int | None = None,
    ):
        self.bucket = bucket
        self.page_size = page_size or settings.STORAGE_LIST_PAGE_SIZE
        self.batch_size = batch_size or settings.STORAGE_REMOVE_BATCH_SIZE

    @classmethod
    def from_client(cls, client: Client, bucket_name: str | None = None) -> "AudioStore":
        return cls(client.storage.from_(bucket_name or settings.TTS_BUCKET))

    def exists(self, path: str) -> bool:
        folder, name = _split(path)
        entries = self.bucket.list(folder, {"limit": 100, "offset": 0, "search": name})
        return any(entry.get("name") == name for entry in entries or [])

    def upload(self, path: str, data: bytes) -> None:
        self.bucket.upload(
            path,
            data,
            {"content-type": AUDIO_CONTENT_TYPE, "upsert": "true"},
        )

    def public_url(self, path: str) -> str:
        url = _public_url_cache.get(path)
        if url is None:
            url = self.bucket.get_public_url(path).rstrip("?")
            _public_url_cache[path] = url
        return url

    def _list_page(self, folder: str, offset: int) -> list[dict]:
        return self.bucket.list(
            folder,
            {
                "limit": self.page_size,
                "offset": offset,
                "sortBy": {"column": "name", "order": "asc"},
            },
        ) or []

    def walk(self, prefix: str) -> list[str]:
        """Breadth-first listing of every object path below `prefix`."""
        files: list[str] = []
        queue = deque([prefix.strip("/")])
        while queue:
            folder = queue.popleft()
            offset = 0
            while True:
                try:
                    page = self._list_page(folder, offset)
                except Exception as e:
                    logger.error("Storage list failed for %r at offset %s: %s", folder, offset, e)
                    break
                for entry in page:
                    name = entry.get("name")
                    if not name:
                        continue
                    path = f"{folder}/{name}" if folder else name
                    # Folders come back without an object id.
                    if entry.get("id") is None:
                        queue.append(path)
                    else:
                        files.append(path)
                if len(page) < self.page_size:
                    break
                offset += self.page_size
        return files

    def remove(self, paths: Iterable[str]) -> int:
        """Deletes in fixed-size batches. Returns how many paths were in successful batches."""
        pending = list(paths)
        removed = 0
        for start in range(0, len(pending), self.batch_size):
            chunk = pending[start:start + self.batch_size]
            try:
                self.bucket.remove(chunk)
            except Exception as e:
                logger.error("Storage remove failed for %s paths: %s", len(chunk), e)
                continue
            removed += len(chunk)
            for path in chunk:
                _public_url_cache.pop(path, None)
        return removed

    def sweep(self, prefix: str) -> int:
        paths = self.walk(prefix)
        if not paths:
            return 0
        removed = self.remove(paths)
        logger.info("Swept %s/%s objects under %r", removed, len(paths), prefix)
        return removed

    def remove_matching(self, prefix: str, ids: Iterable[str]) -> int:
        """Removes objects under `prefix` whose path contains `/{id}` for any of `ids`."""
        needles = [f"/{i}" for i in ids]
        if not needles:
            return 0
        targets = [p for p in self.walk(prefix) if any(n in p for n in needles)]
        return self.remove(targets) if targets else 0
