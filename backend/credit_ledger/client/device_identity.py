"""Stable anonymous device identity.

Each installation is identified by ``<platform>_<uuid4>``, generated on
first use and persisted in a DeviceIdStore. If the store cannot be read or
written, a ``temp_<uuid4>`` identifier is used instead: it is never
persisted, lives only as long as the DeviceIdentity object, and is flagged
by ``is_ephemeral`` so callers can warn that credits bought under it may
not survive a restart.
"""

import logging
import uuid
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

PLATFORMS = frozenset({"ios", "android", "web"})
EPHEMERAL_PREFIX = "temp_"


class DeviceIdStoreError(Exception):
    """The persistent store could not be read or written."""


class DeviceIdStore(Protocol):
    """Persistence for a single device identifier.

    Implementations raise DeviceIdStoreError on I/O failure.
    """

    def load(self) -> str | None: ...

    def save(self, device_id: str) -> None: ...

    def clear(self) -> None: ...


class InMemoryDeviceIdStore:
    """Process-local store (tests, short-lived tools)."""

    def __init__(self, device_id: str | None = None) -> None:
        self._device_id = device_id

    def load(self) -> str | None:
        return self._device_id

    def save(self, device_id: str) -> None:
        self._device_id = device_id

    def clear(self) -> None:
        self._device_id = None


class FileDeviceIdStore:
    """Stores the identifier as a single line in a text file.

    Args:
        path: File location; parent directories are created on save.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> str | None:
        try:
            value = self._path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise DeviceIdStoreError(f"Cannot read {self._path}") from exc
        return value or None

    def save(self, device_id: str) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(device_id + "\n", encoding="utf-8")
        except OSError as exc:
            raise DeviceIdStoreError(f"Cannot write {self._path}") from exc

    def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise DeviceIdStoreError(f"Cannot delete {self._path}") from exc


class DeviceIdentity:
    """Resolves and caches this installation's device identifier.

    Args:
        store: Where the identifier is persisted.
        platform: Platform tag used as prefix (ios, android, web).

    Raises:
        ValueError: If the platform tag is unknown.
    """

    def __init__(self, store: DeviceIdStore, platform: str) -> None:
        if platform not in PLATFORMS:
            msg = f"platform must be one of: {', '.join(sorted(PLATFORMS))}"
            raise ValueError(msg)
        self._store = store
        self._platform = platform
        self._device_id: str | None = None
        self._ephemeral = False

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def is_ephemeral(self) -> bool:
        """True when the current id is a non-persisted ``temp_`` fallback."""
        return self._ephemeral

    def get_device_id(self) -> str:
        """Return the device identifier, creating and persisting it if needed.

        Never raises on store failure; falls back to an ephemeral id.

        Returns:
            The cached, stored, or newly generated identifier.
        """
        if self._device_id is not None:
            return self._device_id

        try:
            stored = self._store.load()
            if stored:
                self._device_id = stored
                return stored
            generated = f"{self._platform}_{uuid.uuid4()}"
            self._store.save(generated)
        except DeviceIdStoreError:
            logger.warning("Device id store unavailable; using an ephemeral id")
            self._device_id = f"{EPHEMERAL_PREFIX}{uuid.uuid4()}"
            self._ephemeral = True
            return self._device_id

        logger.info("Generated new device id for platform %s", self._platform)
        self._device_id = generated
        return generated

    def reset(self) -> None:
        """Forget the identifier, both cached and stored.

        The next get_device_id() call generates a fresh one. A store failure
        here is logged; the cache is cleared regardless.
        """
        self._device_id = None
        self._ephemeral = False
        try:
            self._store.clear()
        except DeviceIdStoreError:
            logger.warning("Could not clear stored device id")
