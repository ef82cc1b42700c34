"""
Audio chunk storage for sermon notes recorded offline.

Chunks live next to the database as one file per chunk:
    {root}/{note_id}/{index:06d}.chunk

Writes go to a temp file and are renamed into place, so a reader never
sees a half-written chunk.
"""

import os
import shutil
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os

from ..exceptions import StorageFailure, ValidationFailure

CHUNK_SUFFIX = ".chunk"
DEFAULT_MIME_TYPE = "audio/webm"


class AudioChunkStore:
    """Ordered binary chunks keyed by (note_id, index)."""

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()

    def _note_dir(self, note_id: str) -> Path:
        if not note_id or "/" in note_id or "\\" in note_id or note_id in (".", ".."):
            raise ValidationFailure("note_id", "invalid note id", note_id)
        return self.root / note_id

    def _chunk_path(self, note_id: str, index: int) -> Path:
        if index < 0:
            raise ValidationFailure("index", "chunk index must be >= 0", str(index))
        return self._note_dir(note_id) / f"{index:06d}{CHUNK_SUFFIX}"

    async def save_chunk(self, note_id: str, index: int, data: bytes) -> Path:
        """Store one chunk, replacing any chunk already at that index.

        Returns:
            Path of the stored chunk
        """
        path = self._chunk_path(note_id, index)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
        except OSError as e:
            raise StorageFailure("create_directory", str(path.parent), e) from e

        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=CHUNK_SUFFIX)
        try:
            os.close(fd)
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)
                await f.flush()
                os.fsync(f.fileno())
            await aiofiles.os.replace(temp_path, path)
        except OSError as e:
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                pass
            raise StorageFailure("save_chunk", str(path), e) from e
        return path

    async def _chunk_files(self, note_id: str) -> list[Path]:
        note_dir = self._note_dir(note_id)
        try:
            if not await aiofiles.os.path.isdir(note_dir):
                return []
            names = await aiofiles.os.listdir(note_dir)
        except OSError as e:
            raise StorageFailure("list_chunks", str(note_dir), e) from e

        # Zero-padded names sort in index order
        return [
            note_dir / name
            for name in sorted(names)
            if name.endswith(CHUNK_SUFFIX) and not name.startswith(".")
        ]

    async def get_chunks(self, note_id: str) -> list[bytes]:
        """All chunks of a note, ordered by index."""
        chunks = []
        for path in await self._chunk_files(note_id):
            try:
                async with aiofiles.open(path, "rb") as f:
                    chunks.append(await f.read())
            except OSError as e:
                raise StorageFailure("read_chunk", str(path), e) from e
        return chunks

    async def get_blob(self, note_id: str) -> bytes | None:
        """Concatenated audio for a note, or None when nothing was recorded."""
        chunks = await self.get_chunks(note_id)
        if not chunks:
            return None
        return b"".join(chunks)

    async def has_audio(self, note_id: str) -> bool:
        return bool(await self._chunk_files(note_id))

    async def clear(self, note_id: str) -> bool:
        """Remove every chunk of a note. Returns False if there were none."""
        note_dir = self._note_dir(note_id)
        try:
            if not await aiofiles.os.path.exists(note_dir):
                return False
            await aiofiles.os.wrap(shutil.rmtree)(note_dir)
            return True
        except OSError as e:
            raise StorageFailure("clear_chunks", str(note_dir), e) from e
