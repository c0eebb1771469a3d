"""
On-disk credential material.

- `<user>_pwd.b64` secret files: base64 of the secret, mode 0600.
- Temporary credential JSON handed to the OCI CLI by file reference. Its
  lifetime is scoped to the enclosing operation; it is removed exactly once
  on every exit path. While a file is open SIGTERM is turned into SystemExit
  so the context managers and the atexit hook still run on an external kill.
"""
import atexit
import base64
import binascii
import json
import os
import signal
import sys
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterable, Optional

from datasafe_ops.constants import SECRET_FILE_SUFFIX
from datasafe_ops.domain.models import Credential, CredentialScope
from datasafe_ops.exceptions import CredentialError
from datasafe_ops.monitoring.logger import get_logger

logger = get_logger(__name__)

OWNER_ONLY = 0o600

_NOT_INSTALLED = object()


def _exit_on_sigterm(signum, frame) -> None:
    logger.warning("Terminated, removing temporary credential files", signal=signum)
    sys.exit(128 + signum)


def install_sigterm_handler():
    """
    Route SIGTERM through SystemExit; returns the handler to restore.

    Signal handlers can only be set from the main thread, elsewhere this is
    a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        return _NOT_INSTALLED
    return signal.signal(signal.SIGTERM, _exit_on_sigterm)


def restore_sigterm_handler(previous) -> None:
    if previous is _NOT_INSTALLED:
        return
    signal.signal(signal.SIGTERM, previous if previous is not None else signal.SIG_DFL)


def secret_file_name(user: str) -> str:
    return f"{user}{SECRET_FILE_SUFFIX}"


def find_secret_file(user: str, directories: Iterable[str], explicit: Optional[str] = None) -> Optional[Path]:
    """
    Locate a secret file.

    An explicit path is used as-is (and only it); otherwise
    `<user>_pwd.b64` is looked up in each directory in order.
    """
    if explicit:
        path = Path(explicit).expanduser()
        return path if path.is_file() else None
    for directory in directories:
        if not directory:
            continue
        candidate = Path(directory).expanduser() / secret_file_name(user)
        if candidate.is_file():
            return candidate
    return None


def read_secret_file(path: Path) -> str:
    """Decode a base64 secret file, stripping trailing CR/LF."""
    try:
        raw = path.read_bytes()
        decoded = base64.b64decode(b"".join(raw.split()), validate=True).decode("utf-8")
    except (OSError, binascii.Error, UnicodeDecodeError) as e:
        raise CredentialError(f"failed to decode base64 secret file: {path}") from e
    secret = decoded.rstrip("\r\n")
    if not secret:
        raise CredentialError(f"secret file is empty: {path}")
    return secret


def write_secret_file(user: str, secret: str, directory: Optional[Path] = None, path: Optional[Path] = None) -> Path:
    """
    Write `<user>_pwd.b64` with owner-only permissions.

    Either directory (file name derived from user) or an explicit path must
    be given.
    """
    if path is None:
        if directory is None:
            raise CredentialError("no secret directory configured; use --output")
        path = Path(directory).expanduser() / secret_file_name(user)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    encoded = base64.b64encode(secret.encode("utf-8")).decode("ascii")
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, OWNER_ONLY)
    with os.fdopen(fd, "w") as f:
        f.write(encoded + "\n")
    # O_CREAT mode does not apply to an existing file
    os.chmod(path, OWNER_ONLY)
    logger.info("Secret file written", user=user, path=str(path))
    return path


class TemporaryCredentialFile:
    """
    JSON `{userName, password}` file, mode 0600, deleted once.

    Usage:
        with TemporaryCredentialFile(credential) as path:
            client.update_target_credentials(target_id, path)
    """

    def __init__(self, credential: Credential, directory: Optional[str] = None):
        self.credential = credential
        self.directory = directory
        self.path: Optional[Path] = None
        self._removed = False
        self._previous_sigterm = _NOT_INSTALLED

    def create(self) -> Path:
        if self.path is not None:
            return self.path
        fd, name = tempfile.mkstemp(prefix="ds_cred_", suffix=".json", dir=self.directory)
        try:
            os.fchmod(fd, OWNER_ONLY)
            with os.fdopen(fd, "w") as f:
                json.dump(self.credential.to_payload(), f)
        except BaseException:
            os.unlink(name)
            raise
        self.path = Path(name)
        atexit.register(self.cleanup)
        logger.debug("Created temporary credentials file", path=name, scope=self.credential.scope.value)
        return self.path

    def cleanup(self) -> None:
        if self._removed or self.path is None:
            return
        self._removed = True
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        atexit.unregister(self.cleanup)
        logger.debug("Removed temporary credentials file", path=str(self.path))

    @property
    def removed(self) -> bool:
        return self._removed

    def __enter__(self) -> Path:
        self._previous_sigterm = install_sigterm_handler()
        return self.create()

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.cleanup()
        finally:
            restore_sigterm_handler(self._previous_sigterm)
            self._previous_sigterm = _NOT_INSTALLED


class CredentialFileSet:
    """
    One temporary credential file per scope, shared by every target of
    that scope in a run and removed together when the run ends.
    """

    def __init__(self, directory: Optional[str] = None):
        self.directory = directory
        self._files: Dict[CredentialScope, TemporaryCredentialFile] = {}
        self._previous_sigterm = _NOT_INSTALLED

    def path_for(self, credential: Credential) -> Path:
        handle = self._files.get(credential.scope)
        if handle is None or handle.credential != credential:
            if handle is not None:
                handle.cleanup()
            handle = TemporaryCredentialFile(credential, self.directory)
            self._files[credential.scope] = handle
        return handle.create()

    def cleanup(self) -> None:
        for handle in self._files.values():
            handle.cleanup()

    def __enter__(self) -> "CredentialFileSet":
        self._previous_sigterm = install_sigterm_handler()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.cleanup()
        finally:
            restore_sigterm_handler(self._previous_sigterm)
            self._previous_sigterm = _NOT_INSTALLED
