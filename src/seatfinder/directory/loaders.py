"""
Loaders Module - Directory tiers that produce identifier to name mappings.
==========================================================================

Tiers, tried in order by the resolver:
1. Primary store: a PostgREST-style REST table (``/rest/v1/{table}``)
2. Bundled dataset: package resource, then configured file paths
3. Self-hosted remote dataset URL
4. Public fallback dataset URL

Datasets (bundled or remote) must be a JSON array of records with at least
``identifier`` and ``name`` fields; any other shape is rejected.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Optional, Sequence

import requests

from seatfinder.shared.config import DirectoryConfig, Settings, get_settings
from seatfinder.shared.errors import DirectoryUnavailable
from seatfinder.shared.logging import get_logger
from seatfinder.shared.schemas import StudentRecord
from seatfinder.shared.utils import load_json, normalize_identifier

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Data Classes
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class DirectorySnapshot:
    """
    A loaded mapping and where it came from.

    ``warmed`` is False only when a store explicitly said it is still
    starting up; an empty mapping on its own says nothing about warmth.
    """

    mapping: dict[str, str] = field(default_factory=dict)
    source: str = ""
    warmed: bool = True

    def __len__(self) -> int:
        return len(self.mapping)


def parse_records(data: Any, source: str = "dataset") -> dict[str, str]:
    """
    Validate a dataset and build the identifier to name mapping.

    Raises:
        DirectoryUnavailable: If the data is not an array of
            ``{identifier, name}`` records
    """
    if not isinstance(data, list):
        raise DirectoryUnavailable(f"{source}: expected a JSON array, got {type(data).__name__}")

    mapping: dict[str, str] = {}
    for index, item in enumerate(data):
        if not isinstance(item, dict) or "identifier" not in item or "name" not in item:
            raise DirectoryUnavailable(f"{source}: record {index} lacks identifier/name")
        try:
            record = StudentRecord(identifier=item["identifier"], name=item["name"])
        except ValueError as e:
            logger.debug(f"{source}: skipping record {index}: {e}")
            continue
        mapping.setdefault(record.identifier, record.name)

    return mapping


# ─────────────────────────────────────────────────────────────────────────────
# Loader Interface
# ─────────────────────────────────────────────────────────────────────────────


class DirectoryLoader(ABC):
    """One tier of the directory fallback chain."""

    name: str = "loader"

    @abstractmethod
    def load(self) -> DirectorySnapshot:
        """
        Load the full mapping.

        Raises:
            DirectoryUnavailable: If this tier cannot produce a mapping
        """

    def find(self, identifier: str) -> Optional[str]:
        """Single-row lookup; tiers without one return None."""
        return None


class PrimaryStoreLoader(DirectoryLoader):
    """
    PostgREST-style table behind an API key.

    A ``503`` answer is the store's explicit "not yet warmed" signal and is
    reported as an unwarmed empty snapshot rather than a failure.
    """

    name = "primary"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        table: str = "students",
        identifier_column: str = "register_number",
        name_column: str = "name",
        timeout: float = 10.0,
        page_size: int = 1000,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.table = table
        self.identifier_column = identifier_column
        self.name_column = name_column
        self.timeout = timeout
        self.page_size = page_size
        self.session = session or requests.Session()

    @property
    def table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        headers.update(extra)
        return headers

    def _rows_to_mapping(self, rows: Sequence[dict]) -> dict[str, str]:
        mapping = {}
        for row in rows:
            identifier = normalize_identifier(row.get(self.identifier_column))
            name = row.get(self.name_column)
            if identifier and isinstance(name, str) and name.strip():
                mapping.setdefault(identifier, name.strip())
        return mapping

    def load(self) -> DirectorySnapshot:
        if not self.base_url:
            raise DirectoryUnavailable("primary store not configured")

        select = f"{self.identifier_column},{self.name_column}"
        mapping: dict[str, str] = {}
        start = 0

        while True:
            end = start + self.page_size - 1
            try:
                response = self.session.get(
                    self.table_url,
                    params={"select": select},
                    headers=self._headers(Range=f"{start}-{end}"),
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                raise DirectoryUnavailable(f"primary store: {e}") from e

            if response.status_code == 503:
                logger.info("Primary directory store is still warming up")
                return DirectorySnapshot(mapping={}, source=self.name, warmed=False)
            if not response.ok:
                raise DirectoryUnavailable(f"primary store: HTTP {response.status_code}")

            rows = response.json()
            if not isinstance(rows, list):
                raise DirectoryUnavailable("primary store: unexpected response shape")

            mapping.update(self._rows_to_mapping(rows))
            if len(rows) < self.page_size:
                break
            start += self.page_size

        return DirectorySnapshot(mapping=mapping, source=self.name)

    def find(self, identifier: str) -> Optional[str]:
        if not self.base_url:
            return None

        params = {
            "select": f"{self.identifier_column},{self.name_column}",
            self.identifier_column: f"eq.{identifier}",
            "limit": "1",
        }
        try:
            response = self.session.get(
                self.table_url, params=params, headers=self._headers(), timeout=self.timeout
            )
            response.raise_for_status()
            rows = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.debug(f"Primary store single-row query failed: {e}")
            return None

        if not isinstance(rows, list):
            return None
        return self._rows_to_mapping(rows).get(identifier)


class BundledDatasetLoader(DirectoryLoader):
    """Dataset shipped with the package, or found at a configured path."""

    name = "bundled"

    def __init__(
        self,
        resource: str = "seat-data.json",
        paths: Sequence[Path] = (),
        package: str = "seatfinder.data",
    ):
        self.resource = resource
        self.paths = [Path(p) for p in paths]
        self.package = package

    def _read_resource(self) -> Optional[Any]:
        try:
            resource = resources.files(self.package).joinpath(self.resource)
            if not resource.is_file():
                return None
            return json.loads(resource.read_text(encoding="utf-8"))
        except (ModuleNotFoundError, FileNotFoundError):
            return None
        except ValueError as e:
            raise DirectoryUnavailable(f"bundled resource is not valid JSON: {e}") from e

    def load(self) -> DirectorySnapshot:
        data = self._read_resource()
        origin = f"package:{self.resource}"

        if data is None:
            for path in self.paths:
                if path.is_file():
                    try:
                        data = load_json(path)
                    except ValueError as e:
                        raise DirectoryUnavailable(f"{path}: {e}") from e
                    origin = str(path)
                    break

        if data is None:
            raise DirectoryUnavailable("no bundled dataset found")

        return DirectorySnapshot(mapping=parse_records(data, origin), source=self.name)


class RemoteDatasetLoader(DirectoryLoader):
    """Dataset served as JSON from a URL."""

    def __init__(
        self,
        url: str,
        name: str = "remote",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.name = name
        self.timeout = timeout
        self.session = session or requests.Session()

    def load(self) -> DirectorySnapshot:
        if not self.url:
            raise DirectoryUnavailable(f"{self.name} dataset URL not configured")

        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise DirectoryUnavailable(f"{self.name} dataset: {e}") from e

        return DirectorySnapshot(mapping=parse_records(data, self.url), source=self.name)


# ─────────────────────────────────────────────────────────────────────────────
# Factory
# ─────────────────────────────────────────────────────────────────────────────


def build_loaders(settings: Optional[Settings] = None) -> list[DirectoryLoader]:
    """Build the configured tier chain in fallback order."""
    settings = settings or get_settings()
    config: DirectoryConfig = settings.directory
    root = settings.project_root

    return [
        PrimaryStoreLoader(
            base_url=config.primary_url,
            api_key=settings.directory_api_key,
            table=config.table,
            identifier_column=config.identifier_column,
            name_column=config.name_column,
            timeout=config.timeout,
        ),
        BundledDatasetLoader(
            resource=config.bundled_resource,
            paths=[root / p for p in config.bundled_paths],
        ),
        RemoteDatasetLoader(config.remote_url, name="remote", timeout=config.timeout),
        RemoteDatasetLoader(config.fallback_url, name="fallback", timeout=config.timeout),
    ]
