"""SQLite index store with FTS5 full-text indexes"""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from provider_index.models.provider import (
    ParsedProviderResource,
    ProviderAttribute,
    ProviderService,
    SourceSnippetBundle,
)
from provider_index.models.release import ReleaseEntry, ReleaseRecord
from provider_index.models.repository import IngestedFile, RepositoryRecord

logger = logging.getLogger(__name__)

FTS_TABLES = ("repositories_fts", "repository_files_fts", "provider_resources_fts")

SCHEMA = """
CREATE TABLE IF NOT EXISTS repositories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    full_name TEXT NOT NULL,
    description TEXT,
    repo_url TEXT NOT NULL,
    last_updated TEXT,
    synced_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    readme_content TEXT
);

CREATE TABLE IF NOT EXISTS repository_files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repository_id INTEGER NOT NULL,
    file_name TEXT NOT NULL,
    file_path TEXT NOT NULL,
    file_type TEXT,
    content TEXT NOT NULL,
    size_bytes INTEGER,
    FOREIGN KEY (repository_id) REFERENCES repositories(id) ON DELETE CASCADE,
    UNIQUE(repository_id, file_path)
);

CREATE INDEX IF NOT EXISTS idx_repository_files_repository_id
    ON repository_files(repository_id);
CREATE INDEX IF NOT EXISTS idx_repository_files_type ON repository_files(file_type);

CREATE VIRTUAL TABLE IF NOT EXISTS repositories_fts USING fts5(
    name, description, readme_content,
    content='repositories', content_rowid='id'
);

CREATE VIRTUAL TABLE IF NOT EXISTS repository_files_fts USING fts5(
    file_name, file_path, content,
    content='repository_files', content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS repositories_fts_insert AFTER INSERT ON repositories BEGIN
    INSERT INTO repositories_fts(rowid, name, description, readme_content)
    VALUES (new.id, new.name, new.description, new.readme_content);
END;

CREATE TRIGGER IF NOT EXISTS repositories_fts_delete AFTER DELETE ON repositories BEGIN
    INSERT INTO repositories_fts(repositories_fts, rowid, name, description, readme_content)
    VALUES ('delete', old.id, old.name, old.description, old.readme_content);
END;

CREATE TRIGGER IF NOT EXISTS repositories_fts_update AFTER UPDATE ON repositories BEGIN
    INSERT INTO repositories_fts(repositories_fts, rowid, name, description, readme_content)
    VALUES ('delete', old.id, old.name, old.description, old.readme_content);
    INSERT INTO repositories_fts(rowid, name, description, readme_content)
    VALUES (new.id, new.name, new.description, new.readme_content);
END;

CREATE TRIGGER IF NOT EXISTS repository_files_fts_insert AFTER INSERT ON repository_files BEGIN
    INSERT INTO repository_files_fts(rowid, file_name, file_path, content)
    VALUES (new.id, new.file_name, new.file_path, new.content);
END;

CREATE TRIGGER IF NOT EXISTS repository_files_fts_delete AFTER DELETE ON repository_files BEGIN
    INSERT INTO repository_files_fts(repository_files_fts, rowid, file_name, file_path, content)
    VALUES ('delete', old.id, old.file_name, old.file_path, old.content);
END;

CREATE TRIGGER IF NOT EXISTS repository_files_fts_update AFTER UPDATE ON repository_files BEGIN
    INSERT INTO repository_files_fts(repository_files_fts, rowid, file_name, file_path, content)
    VALUES ('delete', old.id, old.file_name, old.file_path, old.content);
    INSERT INTO repository_files_fts(rowid, file_name, file_path, content)
    VALUES (new.id, new.file_name, new.file_path, new.content);
END;

CREATE TABLE IF NOT EXISTS provider_services (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repository_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    file_path TEXT,
    website_categories TEXT,
    github_label TEXT,
    FOREIGN KEY (repository_id) REFERENCES repositories(id) ON DELETE CASCADE,
    UNIQUE(repository_id, name)
);

CREATE TABLE IF NOT EXISTS provider_resources (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repository_id INTEGER NOT NULL,
    service_id INTEGER,
    name TEXT NOT NULL,
    display_name TEXT,
    kind TEXT NOT NULL,
    file_path TEXT,
    description TEXT,
    deprecation_message TEXT,
    breaking_changes TEXT,
    api_version TEXT,
    FOREIGN KEY (repository_id) REFERENCES repositories(id) ON DELETE CASCADE,
    FOREIGN KEY (service_id) REFERENCES provider_services(id) ON DELETE SET NULL,
    UNIQUE(repository_id, name, kind)
);

CREATE INDEX IF NOT EXISTS idx_provider_resources_name ON provider_resources(name);
CREATE INDEX IF NOT EXISTS idx_provider_resources_kind ON provider_resources(kind);

CREATE VIRTUAL TABLE IF NOT EXISTS provider_resources_fts USING fts5(
    name, description, breaking_changes,
    content='provider_resources', content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS provider_resources_fts_insert AFTER INSERT ON provider_resources
BEGIN
    INSERT INTO provider_resources_fts(rowid, name, description, breaking_changes)
    VALUES (new.id, new.name, new.description, new.breaking_changes);
END;

CREATE TRIGGER IF NOT EXISTS provider_resources_fts_delete AFTER DELETE ON provider_resources
BEGIN
    INSERT INTO provider_resources_fts(provider_resources_fts, rowid, name, description,
                                       breaking_changes)
    VALUES ('delete', old.id, old.name, old.description, old.breaking_changes);
END;

CREATE TRIGGER IF NOT EXISTS provider_resources_fts_update AFTER UPDATE ON provider_resources
BEGIN
    INSERT INTO provider_resources_fts(provider_resources_fts, rowid, name, description,
                                       breaking_changes)
    VALUES ('delete', old.id, old.name, old.description, old.breaking_changes);
    INSERT INTO provider_resources_fts(rowid, name, description, breaking_changes)
    VALUES (new.id, new.name, new.description, new.breaking_changes);
END;

CREATE TABLE IF NOT EXISTS provider_resource_attributes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    resource_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    type TEXT,
    required BOOLEAN DEFAULT 0,
    optional BOOLEAN DEFAULT 0,
    computed BOOLEAN DEFAULT 0,
    force_new BOOLEAN DEFAULT 0,
    sensitive BOOLEAN DEFAULT 0,
    deprecated TEXT,
    description TEXT,
    conflicts_with TEXT,
    exactly_one_of TEXT,
    at_least_one_of TEXT,
    required_with TEXT,
    max_items INTEGER,
    min_items INTEGER,
    elem_type TEXT,
    elem_summary TEXT,
    nested_block BOOLEAN DEFAULT 0,
    validation TEXT,
    diff_suppress TEXT,
    default_value TEXT,
    state_func TEXT,
    set_func TEXT,
    FOREIGN KEY (resource_id) REFERENCES provider_resources(id) ON DELETE CASCADE,
    UNIQUE(resource_id, name)
);

CREATE INDEX IF NOT EXISTS idx_provider_attr_resource
    ON provider_resource_attributes(resource_id);

CREATE TABLE IF NOT EXISTS provider_resource_sources (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    resource_id INTEGER NOT NULL UNIQUE,
    function_name TEXT,
    file_path TEXT,
    function_snippet TEXT,
    schema_snippet TEXT,
    customize_diff_snippet TEXT,
    timeouts_snippet TEXT,
    state_upgraders_snippet TEXT,
    importer_snippet TEXT,
    FOREIGN KEY (resource_id) REFERENCES provider_resources(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS provider_releases (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repository_id INTEGER NOT NULL,
    version TEXT NOT NULL,
    tag TEXT NOT NULL,
    previous_version TEXT,
    previous_tag TEXT,
    commit_sha TEXT,
    previous_commit_sha TEXT,
    release_date TEXT,
    comparison_url TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (repository_id) REFERENCES repositories(id) ON DELETE CASCADE,
    UNIQUE(repository_id, version)
);

CREATE INDEX IF NOT EXISTS idx_provider_releases_tag ON provider_releases(tag);

CREATE TABLE IF NOT EXISTS provider_release_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    release_id INTEGER NOT NULL,
    section TEXT NOT NULL,
    entry_key TEXT NOT NULL,
    title TEXT NOT NULL,
    details TEXT,
    resource_name TEXT,
    identifier TEXT,
    change_type TEXT,
    order_index INTEGER DEFAULT 0,
    FOREIGN KEY (release_id) REFERENCES provider_releases(id) ON DELETE CASCADE,
    UNIQUE(release_id, entry_key)
);

CREATE INDEX IF NOT EXISTS idx_release_entries_identifier
    ON provider_release_entries(identifier);
"""

ATTRIBUTE_COLUMNS = (
    "name",
    "type",
    "required",
    "optional",
    "computed",
    "force_new",
    "sensitive",
    "deprecated",
    "description",
    "conflicts_with",
    "exactly_one_of",
    "at_least_one_of",
    "required_with",
    "max_items",
    "min_items",
    "elem_type",
    "elem_summary",
    "nested_block",
    "validation",
    "diff_suppress",
    "default_value",
    "state_func",
    "set_func",
)


class StoreError(Exception):
    """Raised when a persistence operation fails"""

    pass


class IndexStore(Protocol):
    """Persistence operations consumed by the ingestion pipeline"""

    def insert_repository(self, repository: RepositoryRecord) -> int: ...

    def get_repository(self, name: str) -> RepositoryRecord | None: ...

    def get_repository_by_id(self, repository_id: int) -> RepositoryRecord | None: ...

    def insert_file(self, file: IngestedFile) -> None: ...

    def get_repository_files(self, repository_id: int) -> list[IngestedFile]: ...

    def get_file(self, repository_name: str, file_path: str) -> IngestedFile | None: ...

    def clear_repository_data(self, repository_id: int) -> None: ...

    def delete_repository_by_id(self, repository_id: int) -> None: ...

    def insert_provider_service(self, repository_id: int, service: ProviderService) -> int: ...

    def insert_provider_resource(
        self,
        repository_id: int,
        resource: ParsedProviderResource,
        service_id: int | None = None,
    ) -> int: ...

    def insert_provider_attribute(self, resource_id: int, attribute: ProviderAttribute) -> None: ...

    def upsert_provider_resource_source(
        self, resource_id: int, source: SourceSnippetBundle
    ) -> None: ...

    def upsert_provider_release(self, repository_id: int, release: ReleaseRecord) -> int: ...

    def replace_release_entries(self, release_id: int, entries: list[ReleaseEntry]) -> None: ...


class SQLiteIndexStore:
    """SQLite-backed implementation of IndexStore"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """
        Return the shared connection, opening it on first use

        A single connection serves every thread; statements are serialized by
        the store lock. For :memory: databases this also keeps the data alive.
        """
        if self._conn is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._conn = conn
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(str(e)) from e
            except Exception:
                conn.rollback()
                raise

    def initialize(self) -> None:
        """Create the schema if it does not exist"""
        with self._lock:
            conn = self._get_connection()
            conn.executescript(SCHEMA)
            conn.commit()
        logger.info(f"Index store initialized: {self.db_path}")

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # Repositories

    def insert_repository(self, repository: RepositoryRecord) -> int:
        """Upsert a repository by name; README is kept when the new value is empty"""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO repositories
                    (name, full_name, description, repo_url, last_updated, readme_content)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    full_name = excluded.full_name,
                    description = excluded.description,
                    repo_url = excluded.repo_url,
                    last_updated = excluded.last_updated,
                    readme_content = COALESCE(excluded.readme_content,
                                              repositories.readme_content),
                    synced_at = CURRENT_TIMESTAMP
                """,
                (
                    repository.name,
                    repository.full_name,
                    repository.description,
                    repository.repo_url,
                    repository.last_updated,
                    repository.readme_content,
                ),
            )
            row = conn.execute(
                "SELECT id FROM repositories WHERE name = ?", (repository.name,)
            ).fetchone()
            return int(row["id"])

    def get_repository(self, name: str) -> RepositoryRecord | None:
        with self._lock:
            row = self._get_connection().execute(
                "SELECT * FROM repositories WHERE name = ?", (name,)
            ).fetchone()
        return _repository_from_row(row) if row else None

    def get_repository_by_id(self, repository_id: int) -> RepositoryRecord | None:
        with self._lock:
            row = self._get_connection().execute(
                "SELECT * FROM repositories WHERE id = ?", (repository_id,)
            ).fetchone()
        return _repository_from_row(row) if row else None

    def delete_repository_by_id(self, repository_id: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM repositories WHERE id = ?", (repository_id,))

    def clear_repository_data(self, repository_id: int) -> None:
        """Delete every child row of a repository and rebuild the FTS indexes"""
        with self._transaction() as conn:
            conn.execute(
                """
                DELETE FROM provider_resource_attributes WHERE resource_id IN (
                    SELECT id FROM provider_resources WHERE repository_id = ?
                )
                """,
                (repository_id,),
            )
            conn.execute(
                """
                DELETE FROM provider_resource_sources WHERE resource_id IN (
                    SELECT id FROM provider_resources WHERE repository_id = ?
                )
                """,
                (repository_id,),
            )
            conn.execute("DELETE FROM provider_resources WHERE repository_id = ?", (repository_id,))
            conn.execute(
                """
                DELETE FROM provider_release_entries WHERE release_id IN (
                    SELECT id FROM provider_releases WHERE repository_id = ?
                )
                """,
                (repository_id,),
            )
            conn.execute("DELETE FROM provider_releases WHERE repository_id = ?", (repository_id,))
            conn.execute("DELETE FROM provider_services WHERE repository_id = ?", (repository_id,))
            conn.execute("DELETE FROM repository_files WHERE repository_id = ?", (repository_id,))

            for table in FTS_TABLES:
                conn.execute(f"INSERT INTO {table}({table}) VALUES('rebuild')")

    # Files

    def insert_file(self, file: IngestedFile) -> None:
        """Upsert a file by (repository, path), replacing its content"""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO repository_files
                    (repository_id, file_name, file_path, file_type, content, size_bytes)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(repository_id, file_path) DO UPDATE SET
                    file_name = excluded.file_name,
                    file_type = excluded.file_type,
                    content = excluded.content,
                    size_bytes = excluded.size_bytes
                """,
                (
                    file.repository_id,
                    file.file_name,
                    file.file_path,
                    file.file_type,
                    file.content,
                    file.size_bytes,
                ),
            )

    def get_repository_files(self, repository_id: int) -> list[IngestedFile]:
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT * FROM repository_files WHERE repository_id = ? ORDER BY file_path",
                (repository_id,),
            ).fetchall()
        return [_file_from_row(row) for row in rows]

    def get_file(self, repository_name: str, file_path: str) -> IngestedFile | None:
        with self._lock:
            row = self._get_connection().execute(
                """
                SELECT f.* FROM repository_files f
                JOIN repositories r ON r.id = f.repository_id
                WHERE r.name = ? AND f.file_path = ?
                """,
                (repository_name, file_path),
            ).fetchone()
        return _file_from_row(row) if row else None

    # Provider schema

    def insert_provider_service(self, repository_id: int, service: ProviderService) -> int:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO provider_services
                    (repository_id, name, file_path, website_categories, github_label)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(repository_id, name) DO UPDATE SET
                    file_path = excluded.file_path,
                    website_categories = excluded.website_categories,
                    github_label = excluded.github_label
                """,
                (
                    repository_id,
                    service.name,
                    service.file_path,
                    ",".join(service.website_categories) or None,
                    service.github_label,
                ),
            )
            row = conn.execute(
                "SELECT id FROM provider_services WHERE repository_id = ? AND name = ?",
                (repository_id, service.name),
            ).fetchone()
            return int(row["id"])

    def insert_provider_resource(
        self,
        repository_id: int,
        resource: ParsedProviderResource,
        service_id: int | None = None,
    ) -> int:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO provider_resources
                    (repository_id, service_id, name, display_name, kind, file_path,
                     description, deprecation_message, breaking_changes, api_version)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(repository_id, name, kind) DO UPDATE SET
                    service_id = excluded.service_id,
                    display_name = excluded.display_name,
                    file_path = excluded.file_path,
                    description = excluded.description,
                    deprecation_message = excluded.deprecation_message,
                    breaking_changes = excluded.breaking_changes,
                    api_version = excluded.api_version
                """,
                (
                    repository_id,
                    service_id,
                    resource.name,
                    resource.display_name,
                    resource.kind,
                    resource.file_path,
                    resource.description,
                    resource.deprecation_message,
                    resource.breaking_changes,
                    resource.api_version,
                ),
            )
            row = conn.execute(
                """
                SELECT id FROM provider_resources
                WHERE repository_id = ? AND name = ? AND kind = ?
                """,
                (repository_id, resource.name, resource.kind),
            ).fetchone()
            return int(row["id"])

    def insert_provider_attribute(self, resource_id: int, attribute: ProviderAttribute) -> None:
        values = attribute.model_dump()
        columns = ", ".join(ATTRIBUTE_COLUMNS)
        placeholders = ", ".join("?" for _ in ATTRIBUTE_COLUMNS)
        updates = ", ".join(f"{col} = excluded.{col}" for col in ATTRIBUTE_COLUMNS[1:])

        with self._transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO provider_resource_attributes (resource_id, {columns})
                VALUES (?, {placeholders})
                ON CONFLICT(resource_id, name) DO UPDATE SET {updates}
                """,
                (resource_id, *(values[col] for col in ATTRIBUTE_COLUMNS)),
            )

    def upsert_provider_resource_source(
        self, resource_id: int, source: SourceSnippetBundle
    ) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO provider_resource_sources
                    (resource_id, function_name, file_path, function_snippet, schema_snippet,
                     customize_diff_snippet, timeouts_snippet, state_upgraders_snippet,
                     importer_snippet)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(resource_id) DO UPDATE SET
                    function_name = excluded.function_name,
                    file_path = excluded.file_path,
                    function_snippet = excluded.function_snippet,
                    schema_snippet = excluded.schema_snippet,
                    customize_diff_snippet = excluded.customize_diff_snippet,
                    timeouts_snippet = excluded.timeouts_snippet,
                    state_upgraders_snippet = excluded.state_upgraders_snippet,
                    importer_snippet = excluded.importer_snippet
                """,
                (
                    resource_id,
                    source.function_name,
                    source.file_path,
                    source.function_snippet,
                    source.schema_snippet,
                    source.customize_diff_snippet,
                    source.timeouts_snippet,
                    source.state_upgraders_snippet,
                    source.importer_snippet,
                ),
            )

    def list_provider_resources(
        self, repository_id: int | None = None, kind: str | None = None
    ) -> list[ParsedProviderResource]:
        """List stored resources (attributes and source are not loaded)"""
        query = "SELECT * FROM provider_resources WHERE 1 = 1"
        params: list = []
        if repository_id is not None:
            query += " AND repository_id = ?"
            params.append(repository_id)
        if kind:
            query += " AND kind = ?"
            params.append(kind)
        query += " ORDER BY name, kind"

        with self._lock:
            rows = self._get_connection().execute(query, params).fetchall()
        return [
            ParsedProviderResource(
                name=row["name"],
                kind=row["kind"],
                display_name=row["display_name"],
                file_path=row["file_path"],
                description=row["description"],
                deprecation_message=row["deprecation_message"],
                breaking_changes=row["breaking_changes"],
                api_version=row["api_version"],
            )
            for row in rows
        ]

    def get_provider_resource_id(self, repository_id: int, name: str, kind: str) -> int | None:
        with self._lock:
            row = self._get_connection().execute(
                """
                SELECT id FROM provider_resources
                WHERE repository_id = ? AND name = ? AND kind = ?
                """,
                (repository_id, name, kind),
            ).fetchone()
        return int(row["id"]) if row else None

    def get_provider_resource_attributes(self, resource_id: int) -> list[ProviderAttribute]:
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT * FROM provider_resource_attributes WHERE resource_id = ? ORDER BY id",
                (resource_id,),
            ).fetchall()
        return [
            ProviderAttribute.model_validate({col: row[col] for col in ATTRIBUTE_COLUMNS})
            for row in rows
        ]

    def get_provider_resource_source(self, resource_id: int) -> SourceSnippetBundle | None:
        with self._lock:
            row = self._get_connection().execute(
                "SELECT * FROM provider_resource_sources WHERE resource_id = ?", (resource_id,)
            ).fetchone()
        if not row:
            return None
        return SourceSnippetBundle(
            function_name=row["function_name"] or "",
            file_path=row["file_path"] or "",
            function_snippet=row["function_snippet"],
            schema_snippet=row["schema_snippet"],
            customize_diff_snippet=row["customize_diff_snippet"],
            timeouts_snippet=row["timeouts_snippet"],
            state_upgraders_snippet=row["state_upgraders_snippet"],
            importer_snippet=row["importer_snippet"],
        )

    def list_provider_services(self, repository_id: int) -> list[ProviderService]:
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT * FROM provider_services WHERE repository_id = ? ORDER BY name",
                (repository_id,),
            ).fetchall()
        return [
            ProviderService(
                name=row["name"],
                file_path=row["file_path"] or "",
                website_categories=[c for c in (row["website_categories"] or "").split(",") if c],
                github_label=row["github_label"],
            )
            for row in rows
        ]

    def get_resource_service_name(self, resource_id: int) -> str | None:
        with self._lock:
            row = self._get_connection().execute(
                """
                SELECT s.name FROM provider_resources r
                JOIN provider_services s ON s.id = r.service_id
                WHERE r.id = ?
                """,
                (resource_id,),
            ).fetchone()
        return row["name"] if row else None

    # Releases

    def upsert_provider_release(self, repository_id: int, release: ReleaseRecord) -> int:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO provider_releases
                    (repository_id, version, tag, previous_version, previous_tag,
                     commit_sha, previous_commit_sha, release_date, comparison_url)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(repository_id, version) DO UPDATE SET
                    tag = excluded.tag,
                    previous_version = excluded.previous_version,
                    previous_tag = excluded.previous_tag,
                    commit_sha = excluded.commit_sha,
                    previous_commit_sha = excluded.previous_commit_sha,
                    release_date = excluded.release_date,
                    comparison_url = excluded.comparison_url
                """,
                (
                    repository_id,
                    release.version,
                    release.tag,
                    release.previous_version,
                    release.previous_tag,
                    release.commit_sha,
                    release.previous_commit_sha,
                    release.release_date,
                    release.comparison_url,
                ),
            )
            row = conn.execute(
                "SELECT id FROM provider_releases WHERE repository_id = ? AND version = ?",
                (repository_id, release.version),
            ).fetchone()
            return int(row["id"])

    def replace_release_entries(self, release_id: int, entries: list[ReleaseEntry]) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM provider_release_entries WHERE release_id = ?", (release_id,))
            conn.executemany(
                """
                INSERT INTO provider_release_entries
                    (release_id, section, entry_key, title, details, resource_name,
                     identifier, change_type, order_index)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        release_id,
                        entry.section,
                        entry.entry_key,
                        entry.title,
                        entry.details,
                        entry.resource_name,
                        entry.identifier,
                        entry.change_type,
                        entry.order_index,
                    )
                    for entry in entries
                ],
            )

    def list_releases(self, repository_id: int) -> list[ReleaseRecord]:
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT * FROM provider_releases WHERE repository_id = ? ORDER BY id",
                (repository_id,),
            ).fetchall()
        return [
            ReleaseRecord(
                id=row["id"],
                version=row["version"],
                tag=row["tag"],
                previous_version=row["previous_version"],
                previous_tag=row["previous_tag"],
                commit_sha=row["commit_sha"],
                previous_commit_sha=row["previous_commit_sha"],
                release_date=row["release_date"],
                comparison_url=row["comparison_url"],
            )
            for row in rows
        ]

    def get_release_entries(self, release_id: int) -> list[ReleaseEntry]:
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT * FROM provider_release_entries WHERE release_id = ? ORDER BY order_index",
                (release_id,),
            ).fetchall()
        return [
            ReleaseEntry(
                section=row["section"],
                entry_key=row["entry_key"],
                title=row["title"],
                details=row["details"],
                resource_name=row["resource_name"],
                identifier=row["identifier"],
                change_type=row["change_type"],
                order_index=row["order_index"],
            )
            for row in rows
        ]

    def search_files(self, query: str, limit: int = 20) -> list[IngestedFile]:
        """Full-text search over file names, paths and content"""
        match = '"' + query.replace('"', '""') + '"'
        with self._lock:
            rows = self._get_connection().execute(
                """
                SELECT f.* FROM repository_files_fts
                JOIN repository_files f ON f.id = repository_files_fts.rowid
                WHERE repository_files_fts MATCH ?
                ORDER BY rank LIMIT ?
                """,
                (match, limit),
            ).fetchall()
        return [_file_from_row(row) for row in rows]


def _repository_from_row(row: sqlite3.Row) -> RepositoryRecord:
    return RepositoryRecord(
        id=row["id"],
        name=row["name"],
        full_name=row["full_name"],
        description=row["description"],
        repo_url=row["repo_url"],
        last_updated=row["last_updated"],
        readme_content=row["readme_content"],
        synced_at=row["synced_at"],
    )


def _file_from_row(row: sqlite3.Row) -> IngestedFile:
    return IngestedFile(
        repository_id=row["repository_id"],
        file_path=row["file_path"],
        file_name=row["file_name"],
        file_type=row["file_type"] or "other",
        content=row["content"],
        size_bytes=row["size_bytes"] or 0,
    )
