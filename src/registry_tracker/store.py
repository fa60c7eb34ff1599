"""SQLite-backed store for packages and their dependency graph.

The store owns every persisted record. Writes to derived package fields are
column-scoped so that concurrent refreshes of the same package only ever
overwrite the columns they computed.
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterable, Optional

import aiosqlite

from registry_tracker.cache import ExpiringCache
from registry_tracker.details import latest_version, update_details
from registry_tracker.exceptions import PackageNotFoundError, VersionNotFoundError
from registry_tracker.models import (
    DependencyEdge,
    Package,
    PackageStatus,
    RegistryUser,
    RepositoryRecord,
    Version,
)

logger = logging.getLogger(__name__)

TOTAL_CACHE_KEY = "packages:total"

SCHEMA = """
CREATE TABLE IF NOT EXISTS repositories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    host_type TEXT NOT NULL,
    full_name TEXT NOT NULL,
    description TEXT,
    homepage TEXT,
    license TEXT,
    language TEXT,
    stargazers_count INTEGER NOT NULL DEFAULT 0,
    UNIQUE(host_type, full_name)
);

CREATE TABLE IF NOT EXISTS packages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ecosystem TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    homepage TEXT,
    repository_url TEXT,
    raw_license TEXT,
    normalized_licenses TEXT NOT NULL DEFAULT '[]',
    status TEXT,
    dependents_count INTEGER NOT NULL DEFAULT 0,
    dependent_repos_count INTEGER NOT NULL DEFAULT 0,
    versions_count INTEGER NOT NULL DEFAULT 0,
    last_synced_at TEXT,
    rank INTEGER,
    repository_id INTEGER REFERENCES repositories(id),
    language TEXT,
    keywords TEXT NOT NULL DEFAULT '[]',
    latest_release_number TEXT,
    latest_release_published_at TEXT,
    latest_stable_release_number TEXT,
    latest_stable_release_published_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(ecosystem, name)
);

CREATE TABLE IF NOT EXISTS versions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    package_id INTEGER NOT NULL,
    number TEXT NOT NULL,
    published_at TEXT,
    UNIQUE(package_id, number)
);

CREATE TABLE IF NOT EXISTS dependencies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    version_id INTEGER NOT NULL,
    ecosystem TEXT NOT NULL,
    package_name TEXT NOT NULL,
    requirements TEXT NOT NULL DEFAULT '*',
    kind TEXT NOT NULL DEFAULT 'runtime'
);

CREATE TABLE IF NOT EXISTS package_dependent_repositories (
    package_id INTEGER NOT NULL,
    repository_id INTEGER NOT NULL,
    PRIMARY KEY (package_id, repository_id)
);

CREATE TABLE IF NOT EXISTS registry_users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ecosystem TEXT NOT NULL,
    uuid TEXT NOT NULL,
    email TEXT,
    login TEXT,
    name TEXT,
    url TEXT,
    UNIQUE(ecosystem, uuid)
);

CREATE TABLE IF NOT EXISTS registry_permissions (
    package_id INTEGER NOT NULL,
    registry_user_id INTEGER NOT NULL,
    PRIMARY KEY (package_id, registry_user_id)
);

CREATE INDEX IF NOT EXISTS idx_packages_last_synced ON packages(last_synced_at);
CREATE INDEX IF NOT EXISTS idx_versions_package ON versions(package_id);
CREATE INDEX IF NOT EXISTS idx_dependencies_target ON dependencies(ecosystem, package_name);
CREATE INDEX IF NOT EXISTS idx_dependencies_version ON dependencies(version_id);
"""

# Columns save_package writes; counts, status and sync time have their own writers
_METADATA_COLUMNS = (
    "description",
    "homepage",
    "repository_url",
    "raw_license",
    "normalized_licenses",
    "repository_id",
    "language",
    "keywords",
    "versions_count",
    "latest_release_number",
    "latest_release_published_at",
    "latest_stable_release_number",
    "latest_stable_release_published_at",
)

_UPDATABLE_COLUMNS = frozenset(
    _METADATA_COLUMNS
    + ("status", "dependents_count", "dependent_repos_count", "rank", "last_synced_at")
)


def to_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as a fixed-width UTC string that sorts correctly."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def from_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _column_value(column: str, value: Any) -> Any:
    if column in ("normalized_licenses", "keywords"):
        return json.dumps(list(value or []))
    if isinstance(value, datetime):
        return to_timestamp(value)
    if isinstance(value, PackageStatus):
        return value.value
    return value


class PackageStore:
    """Async SQLite store for packages, versions and the dependency graph.

    Attributes:
        db_path: Path to the SQLite database file, or ":memory:".
    """

    def __init__(self, db_path: str | Path) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = str(db_path)
        self._connection: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Open the connection and make sure the schema exists."""
        if self._connection is not None:
            return
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row
        logger.info("Connected to database: %s", self.db_path)
        await self.init_schema()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("Database connection closed")

    async def __aenter__(self) -> "PackageStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Store is not connected. Call connect() first.")
        return self._connection

    async def init_schema(self) -> None:
        await self.connection.executescript(SCHEMA)
        await self.connection.commit()
        logger.debug("Database schema initialized")

    async def _fetchone(self, query: str, params: Iterable[Any] = ()) -> Optional[aiosqlite.Row]:
        cursor = await self.connection.execute(query, tuple(params))
        return await cursor.fetchone()

    async def _fetchall(self, query: str, params: Iterable[Any] = ()) -> list[aiosqlite.Row]:
        cursor = await self.connection.execute(query, tuple(params))
        return list(await cursor.fetchall())

    async def _scalar(self, query: str, params: Iterable[Any] = ()) -> int:
        row = await self._fetchone(query, params)
        return row[0] if row and row[0] is not None else 0

    # -- packages -----------------------------------------------------------

    @staticmethod
    def _to_package(row: aiosqlite.Row) -> Package:
        return Package(
            id=row["id"],
            ecosystem=row["ecosystem"],
            name=row["name"],
            description=row["description"],
            homepage=row["homepage"],
            repository_url=row["repository_url"],
            raw_license=row["raw_license"],
            normalized_licenses=json.loads(row["normalized_licenses"] or "[]"),
            status=PackageStatus(row["status"]) if row["status"] else None,
            dependents_count=row["dependents_count"],
            dependent_repos_count=row["dependent_repos_count"],
            versions_count=row["versions_count"],
            last_synced_at=from_timestamp(row["last_synced_at"]),
            rank=row["rank"],
            repository_id=row["repository_id"],
            language=row["language"],
            keywords=json.loads(row["keywords"] or "[]"),
            latest_release_number=row["latest_release_number"],
            latest_release_published_at=from_timestamp(row["latest_release_published_at"]),
            latest_stable_release_number=row["latest_stable_release_number"],
            latest_stable_release_published_at=from_timestamp(
                row["latest_stable_release_published_at"]
            ),
        )

    async def get_package(self, package_id: int) -> Package:
        """Load a package by primary key.

        Raises:
            PackageNotFoundError: If no package has this id.
        """
        row = await self._fetchone("SELECT * FROM packages WHERE id = ?", (package_id,))
        if row is None:
            raise PackageNotFoundError(f"Package {package_id} not found")
        return self._to_package(row)

    async def find_package_exact(self, ecosystem: str, name: str) -> Optional[Package]:
        row = await self._fetchone(
            "SELECT * FROM packages WHERE ecosystem = ? AND name = ?", (ecosystem, name)
        )
        return self._to_package(row) if row else None

    async def find_package(self, ecosystem: str, name: str) -> Package:
        """Find a visible package by ecosystem and name.

        Tries an exact match first, then a case-insensitive one.

        Raises:
            PackageNotFoundError: If nothing matches or the package is Hidden.
        """
        package = await self.find_package_exact(ecosystem, name)
        if package is None:
            row = await self._fetchone(
                "SELECT * FROM packages WHERE lower(ecosystem) = ? AND lower(name) = ? "
                "ORDER BY id LIMIT 1",
                (ecosystem.lower(), name.lower()),
            )
            package = self._to_package(row) if row else None

        if package is None or package.status is PackageStatus.HIDDEN:
            raise PackageNotFoundError(f"Package {ecosystem}/{name} not found")
        return package

    async def save_package(self, package: Package) -> Package:
        """Insert or update a package's registry metadata.

        Derived details are refreshed first, so normalized licenses always
        follow the raw license. Counts, status and sync time are left to
        their column-scoped writers on update.

        Args:
            package: Package to persist. Its ``id`` is set on insert.

        Returns:
            The saved package.
        """
        versions = await self.versions_for(package.id) if package.id else []
        repository = (
            await self.get_repository(package.repository_id) if package.repository_id else None
        )
        update_details(package, versions, repository)
        now = to_timestamp(datetime.now(UTC))

        if package.id is None:
            columns = ("ecosystem", "name") + _METADATA_COLUMNS + (
                "status",
                "dependents_count",
                "dependent_repos_count",
                "rank",
                "last_synced_at",
                "created_at",
                "updated_at",
            )
            values = [_column_value(c, getattr(package, c)) for c in columns[:-2]]
            values += [now, now]
            placeholders = ", ".join("?" * len(columns))
            cursor = await self.connection.execute(
                f"INSERT INTO packages ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
            package.id = cursor.lastrowid
            logger.info("Created package %s/%s (%d)", package.ecosystem, package.name, package.id)
        else:
            assignments = ", ".join(f"{c} = ?" for c in _METADATA_COLUMNS)
            values = [_column_value(c, getattr(package, c)) for c in _METADATA_COLUMNS]
            await self.connection.execute(
                f"UPDATE packages SET {assignments}, updated_at = ? WHERE id = ?",
                (*values, now, package.id),
            )

        await self.connection.commit()
        return package

    async def get_or_create_package(self, ecosystem: str, name: str) -> Package:
        package = await self.find_package_exact(ecosystem, name)
        if package is None:
            package = await self.save_package(Package(ecosystem=ecosystem, name=name))
        return package

    async def update_columns(self, package_id: int, **columns: Any) -> None:
        """Write only the given package columns.

        Args:
            package_id: Package to update.
            **columns: Column names and new values. Empty means no write.

        Raises:
            ValueError: If a column is not updatable.
        """
        if not columns:
            return
        unknown = set(columns) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {', '.join(sorted(unknown))}")

        assignments = ", ".join(f"{c} = ?" for c in columns)
        values = [_column_value(c, v) for c, v in columns.items()]
        await self.connection.execute(
            f"UPDATE packages SET {assignments}, updated_at = ? WHERE id = ?",
            (*values, to_timestamp(datetime.now(UTC)), package_id),
        )
        await self.connection.commit()

    async def set_status(self, package_id: int, status: Optional[PackageStatus]) -> None:
        await self.update_columns(package_id, status=status)

    async def touch_last_synced(self, package_id: int, at: datetime) -> bool:
        """Advance ``last_synced_at``, never moving it backwards.

        Returns:
            True if the timestamp changed.
        """
        stamp = to_timestamp(at)
        cursor = await self.connection.execute(
            "UPDATE packages SET last_synced_at = ?, updated_at = ? "
            "WHERE id = ? AND (last_synced_at IS NULL OR last_synced_at < ?)",
            (stamp, to_timestamp(datetime.now(UTC)), package_id, stamp),
        )
        await self.connection.commit()
        return cursor.rowcount > 0

    async def stale_packages(self, synced_before: datetime, limit: int = 100) -> list[Package]:
        """Select packages due for a refresh, never-synced first."""
        rows = await self._fetchall(
            """
            SELECT * FROM packages
            WHERE (status IS NULL OR status != ?)
              AND (last_synced_at IS NULL OR last_synced_at < ?)
            ORDER BY last_synced_at IS NOT NULL, last_synced_at, id
            LIMIT ?
            """,
            (PackageStatus.HIDDEN.value, to_timestamp(synced_before), limit),
        )
        return [self._to_package(row) for row in rows]

    async def count_packages(self) -> int:
        return await self._scalar("SELECT COUNT(*) FROM packages")

    async def total(self, cache: ExpiringCache) -> int:
        """Number of tracked packages, cached for the lifetime of a cache entry."""
        return await cache.get_or_compute(TOTAL_CACHE_KEY, self.count_packages)

    async def destroy_package(self, package_id: int) -> None:
        """Delete a package, removing its versions and their edges first."""
        conn = self.connection
        await conn.execute(
            "DELETE FROM dependencies WHERE version_id IN "
            "(SELECT id FROM versions WHERE package_id = ?)",
            (package_id,),
        )
        await conn.execute("DELETE FROM versions WHERE package_id = ?", (package_id,))
        await conn.execute("DELETE FROM registry_permissions WHERE package_id = ?", (package_id,))
        await conn.execute(
            "DELETE FROM package_dependent_repositories WHERE package_id = ?", (package_id,)
        )
        await conn.execute("DELETE FROM packages WHERE id = ?", (package_id,))
        await conn.commit()
        logger.info("Destroyed package %d", package_id)

    # -- versions and dependencies -----------------------------------------

    @staticmethod
    def _to_version(row: aiosqlite.Row) -> Version:
        return Version(
            id=row["id"],
            package_id=row["package_id"],
            number=row["number"],
            published_at=from_timestamp(row["published_at"]),
        )

    async def upsert_version(
        self, package_id: int, number: str, published_at: Optional[datetime] = None
    ) -> Version:
        await self.connection.execute(
            """
            INSERT INTO versions (package_id, number, published_at) VALUES (?, ?, ?)
            ON CONFLICT(package_id, number) DO UPDATE SET
                published_at = COALESCE(excluded.published_at, versions.published_at)
            """,
            (package_id, number, to_timestamp(published_at)),
        )
        await self.connection.execute(
            "UPDATE packages SET versions_count = "
            "(SELECT COUNT(*) FROM versions WHERE package_id = ?) WHERE id = ?",
            (package_id, package_id),
        )
        await self.connection.commit()
        row = await self._fetchone(
            "SELECT * FROM versions WHERE package_id = ? AND number = ?", (package_id, number)
        )
        return self._to_version(row)

    async def versions_for(self, package_id: int) -> list[Version]:
        rows = await self._fetchall(
            "SELECT * FROM versions WHERE package_id = ? ORDER BY id", (package_id,)
        )
        return [self._to_version(row) for row in rows]

    async def find_version(self, package: Package, number: str) -> Version:
        """Look up one version of a package.

        Args:
            package: Package to search.
            number: Release number, or "latest" for the highest release.

        Raises:
            VersionNotFoundError: If the version does not exist.
        """
        if number == "latest":
            version = latest_version(await self.versions_for(package.id))
        else:
            row = await self._fetchone(
                "SELECT * FROM versions WHERE package_id = ? AND number = ?",
                (package.id, number),
            )
            version = self._to_version(row) if row else None

        if version is None:
            raise VersionNotFoundError(package.name, number)
        return version

    async def replace_dependencies(self, version_id: int, edges: Iterable[DependencyEdge]) -> int:
        """Replace the dependency edges declared by a version.

        Returns:
            Number of edges written.
        """
        rows = [
            (version_id, e.ecosystem, e.package_name, e.requirements, e.kind) for e in edges
        ]
        await self.connection.execute("DELETE FROM dependencies WHERE version_id = ?", (version_id,))
        await self.connection.executemany(
            "INSERT INTO dependencies (version_id, ecosystem, package_name, requirements, kind) "
            "VALUES (?, ?, ?, ?, ?)",
            rows,
        )
        await self.connection.commit()
        return len(rows)

    async def dependencies_for(self, version_id: int) -> list[DependencyEdge]:
        rows = await self._fetchall(
            "SELECT * FROM dependencies WHERE version_id = ? ORDER BY id", (version_id,)
        )
        return [
            DependencyEdge(
                version_id=row["version_id"],
                package_name=row["package_name"],
                ecosystem=row["ecosystem"],
                requirements=row["requirements"],
                kind=row["kind"],
            )
            for row in rows
        ]

    # -- fan-in queries -----------------------------------------------------

    async def count_dependent_packages(self, package: Package) -> int:
        """Count distinct packages with any version depending on ``package``."""
        return await self._scalar(
            """
            SELECT COUNT(DISTINCT v.package_id)
            FROM dependencies d
            JOIN versions v ON v.id = d.version_id
            WHERE d.ecosystem = ? AND d.package_name = ?
            """,
            (package.ecosystem, package.name),
        )

    async def count_dependent_repositories(self, package: Package) -> int:
        """Exactly count open-source repositories of the dependent packages."""
        return await self._scalar(
            """
            SELECT COUNT(DISTINCT r.id)
            FROM dependencies d
            JOIN versions v ON v.id = d.version_id
            JOIN packages p ON p.id = v.package_id
            JOIN repositories r ON r.id = p.repository_id
            WHERE d.ecosystem = ? AND d.package_name = ?
              AND r.license IS NOT NULL AND r.license != ''
            """,
            (package.ecosystem, package.name),
        )

    async def count_dependent_repositories_fast(self, package_id: int) -> int:
        """Read the precomputed fan-in table."""
        return await self._scalar(
            "SELECT COUNT(*) FROM package_dependent_repositories WHERE package_id = ?",
            (package_id,),
        )

    async def rebuild_dependent_repositories(self) -> int:
        """Repopulate the denormalized fan-in table from the graph.

        Returns:
            Number of (package, repository) rows written.
        """
        conn = self.connection
        await conn.execute("DELETE FROM package_dependent_repositories")
        cursor = await conn.execute(
            """
            INSERT INTO package_dependent_repositories (package_id, repository_id)
            SELECT DISTINCT target.id, r.id
            FROM packages target
            JOIN dependencies d
              ON d.ecosystem = target.ecosystem AND d.package_name = target.name
            JOIN versions v ON v.id = d.version_id
            JOIN packages p ON p.id = v.package_id
            JOIN repositories r ON r.id = p.repository_id
            WHERE r.license IS NOT NULL AND r.license != ''
            """
        )
        await conn.commit()
        logger.info("Rebuilt dependent repository table: %d rows", cursor.rowcount)
        return cursor.rowcount

    # -- repositories -------------------------------------------------------

    @staticmethod
    def _to_repository(row: aiosqlite.Row) -> RepositoryRecord:
        return RepositoryRecord(
            id=row["id"],
            host_type=row["host_type"],
            full_name=row["full_name"],
            description=row["description"],
            homepage=row["homepage"],
            license=row["license"],
            language=row["language"],
            stargazers_count=row["stargazers_count"],
        )

    async def get_repository(self, repository_id: int) -> Optional[RepositoryRecord]:
        row = await self._fetchone("SELECT * FROM repositories WHERE id = ?", (repository_id,))
        return self._to_repository(row) if row else None

    async def upsert_repository(self, record: RepositoryRecord) -> RepositoryRecord:
        await self.connection.execute(
            """
            INSERT INTO repositories
                (host_type, full_name, description, homepage, license, language, stargazers_count)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(host_type, full_name) DO UPDATE SET
                description = excluded.description,
                homepage = excluded.homepage,
                license = excluded.license,
                language = excluded.language,
                stargazers_count = excluded.stargazers_count
            """,
            (
                record.host_type,
                record.full_name,
                record.description,
                record.homepage,
                record.license,
                record.language,
                record.stargazers_count,
            ),
        )
        await self.connection.commit()
        row = await self._fetchone(
            "SELECT * FROM repositories WHERE host_type = ? AND full_name = ?",
            (record.host_type, record.full_name),
        )
        return self._to_repository(row)

    async def link_repository(self, package_id: int, repository_id: int) -> None:
        await self.update_columns(package_id, repository_id=repository_id)

    # -- registry owners ----------------------------------------------------

    async def upsert_registry_user(self, user: RegistryUser) -> RegistryUser:
        await self.connection.execute(
            """
            INSERT INTO registry_users (ecosystem, uuid, email, login, name, url)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(ecosystem, uuid) DO UPDATE SET
                email = excluded.email,
                login = excluded.login,
                name = excluded.name,
                url = excluded.url
            """,
            (user.ecosystem, user.uuid, user.email, user.login, user.name, user.url),
        )
        await self.connection.commit()
        row = await self._fetchone(
            "SELECT id FROM registry_users WHERE ecosystem = ? AND uuid = ?",
            (user.ecosystem, user.uuid),
        )
        user.id = row["id"]
        return user

    async def registry_owners(self, package_id: int) -> list[RegistryUser]:
        rows = await self._fetchall(
            """
            SELECT u.* FROM registry_users u
            JOIN registry_permissions rp ON rp.registry_user_id = u.id
            WHERE rp.package_id = ?
            ORDER BY u.id
            """,
            (package_id,),
        )
        return [
            RegistryUser(
                id=row["id"],
                ecosystem=row["ecosystem"],
                uuid=row["uuid"],
                email=row["email"],
                login=row["login"],
                name=row["name"],
                url=row["url"],
            )
            for row in rows
        ]

    async def add_permission(self, package_id: int, registry_user_id: int) -> None:
        await self.connection.execute(
            "INSERT OR IGNORE INTO registry_permissions (package_id, registry_user_id) "
            "VALUES (?, ?)",
            (package_id, registry_user_id),
        )
        await self.connection.commit()

    async def remove_permission(self, package_id: int, registry_user_id: int) -> None:
        await self.connection.execute(
            "DELETE FROM registry_permissions WHERE package_id = ? AND registry_user_id = ?",
            (package_id, registry_user_id),
        )
        await self.connection.commit()
