from __future__ import annotations

import asyncio
import os
import shutil
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from pathlib import Path

import structlog
from pyaileys.auth.creds import AuthenticationCreds
from pyaileys.auth.serde import creds_from_dict
from pyaileys.auth.state import AuthenticationState
from pyaileys.auth.store import MultiFileKeyStore, _fix_filename, _lock_for
from pyaileys.util import json as bufferjson

from ..constants import CREDS_FILENAME
from ..exceptions import CorruptStateError
from .compat import normalize_creds_dict

logger = structlog.get_logger(__name__)

SessionFileSet = Mapping[str, str]


def _write_atomic(path: Path, data: str) -> None:
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        tmp.write_text(data, "utf-8")
        os.replace(tmp, path)
    finally:
        tmp.unlink(missing_ok=True)


@dataclass(slots=True)
class AuthState:
    """
    Credentials for one session directory.

    `creds` is mutated in place by the connection as keys rotate; call
    `save_creds()` to persist it.
    """

    creds: AuthenticationCreds
    keys: MultiFileKeyStore
    store: CredentialStore

    async def save_creds(self) -> None:
        await self.store.save_creds(self.creds)

    def for_client(self) -> AuthenticationState:
        return AuthenticationState(creds=self.creds, keys=self.keys)


class CredentialStore:
    """
    Multi-file credential directory, Baileys layout.

    - `creds.json` holds the identity and doubles as the existence marker.
    - every other file is key material (`{type}-{id}.json`).
    """

    def __init__(self, folder: str | Path) -> None:
        self.folder = Path(folder).expanduser()

    @property
    def creds_path(self) -> Path:
        return self.folder / CREDS_FILENAME

    def exists(self) -> bool:
        return self.creds_path.is_file()

    async def load(self) -> AuthState:
        path = self.creds_path
        if not self.exists():
            raise CorruptStateError(f"{path} is missing", path=str(path))

        try:
            async with _lock_for(path):
                raw = await asyncio.to_thread(path.read_text, "utf-8")
            d = bufferjson.loads(raw)
            if not isinstance(d, dict):
                raise TypeError(f"{CREDS_FILENAME} did not contain an object")
            creds = creds_from_dict(normalize_creds_dict(d))
        except Exception as e:
            logger.error("credentials unreadable", path=str(path), error=str(e))
            raise CorruptStateError(f"failed to load creds from {path}: {e}", path=str(path)) from e

        return AuthState(creds=creds, keys=MultiFileKeyStore(self.folder), store=self)

    async def save(self, files: SessionFileSet) -> dict[str, Exception]:
        """
        Write a session file set verbatim.

        Every file is attempted even if some fail. `creds.json` goes last so a
        crash midway never leaves a directory that looks complete. Returns the
        failures keyed by the filename as given.
        """

        failures: dict[str, Exception] = {}
        try:
            await asyncio.to_thread(self.folder.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            logger.error(
                "could not create session directory", folder=str(self.folder), error=str(e)
            )
            return {name: e for name in files}

        ordered = sorted(files, key=lambda n: _fix_filename(n) == CREDS_FILENAME)
        for name in ordered:
            target = self.folder / _fix_filename(name)
            try:
                # Shared with MultiFileKeyStore, which writes the same key files.
                async with _lock_for(target):
                    await asyncio.to_thread(_write_atomic, target, files[name])
            except OSError as e:
                logger.error("could not save session file", file=name, error=str(e))
                failures[name] = e

        if failures:
            logger.warning(
                "session saved with errors", folder=str(self.folder), failed=sorted(failures)
            )
        else:
            logger.info("session saved locally", folder=str(self.folder), files=len(files))
        return failures

    async def save_creds(self, creds: AuthenticationCreds) -> None:
        path = self.creds_path
        data = bufferjson.dumps(asdict(creds), indent=2)
        async with _lock_for(path):
            await asyncio.to_thread(_write_atomic, path, data)

    async def wipe(self) -> None:
        try:
            await asyncio.to_thread(shutil.rmtree, self.folder)
        except FileNotFoundError:
            return
        logger.info("local session cleared", folder=str(self.folder))
