"""Repository tarball ingestion into the index store"""

import io
import logging
import posixpath
import tarfile

from provider_index.models.repository import IngestedFile
from provider_index.services.index_store import IndexStore

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({".git", ".github", "node_modules", ".terraform", "vendor"})

FILE_TYPES = {
    ".tf": "terraform",
    ".md": "markdown",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".json": "json",
    ".go": "go",
}


class ArchiveError(Exception):
    """Raised when an archive cannot be decompressed or read"""

    def __init__(self, message: str, cause: Exception | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


def normalize_archive_path(name: str) -> str:
    """Drop the leading <owner>-<repo>-<sha>/ segment of a tarball member name"""
    _, _, rest = name.lstrip("/").partition("/")
    return rest.strip("/")


def should_skip_path(path: str) -> bool:
    """Check whether any path segment is an excluded directory"""
    return any(segment in SKIP_DIRS for segment in path.split("/"))


def file_type_for(name: str) -> str:
    _, ext = posixpath.splitext(name.lower())
    return FILE_TYPES.get(ext, "other")


class ArchiveIngestor:
    """Walk a gzip-compressed tarball and store every retained regular file"""

    def __init__(self, store: IndexStore):
        self.store = store

    def ingest(self, data: bytes, repository_id: int) -> int:
        """
        Store archive members as repository files

        Args:
            data: Gzip-compressed tar bytes
            repository_id: Owning repository row id

        Returns:
            Number of files stored

        Raises:
            ArchiveError: If the archive cannot be decompressed or read
        """
        stored = 0
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r|gz") as archive:
                for member in archive:
                    if not member.isfile():
                        continue

                    path = normalize_archive_path(member.name)
                    if not path or should_skip_path(path):
                        continue

                    extracted = archive.extractfile(member)
                    if extracted is None:
                        continue
                    raw = extracted.read()

                    file = IngestedFile(
                        repository_id=repository_id,
                        file_path=path,
                        file_name=posixpath.basename(path),
                        file_type=file_type_for(path),
                        content=raw.decode("utf-8", errors="replace"),
                        size_bytes=len(raw),
                    )
                    try:
                        self.store.insert_file(file)
                    except Exception as e:
                        logger.warning(f"Failed to store {path}: {e}")
                        continue
                    stored += 1
        except (tarfile.TarError, OSError, EOFError) as e:
            raise ArchiveError(f"Failed to read archive: {e}", cause=e) from e

        logger.info(f"Ingested {stored} files for repository {repository_id}")
        return stored
