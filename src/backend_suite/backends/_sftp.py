"""SFTP backend using pure paramiko."""

from __future__ import annotations

import contextlib
import errno
import logging
import os
import re
import stat
import uuid
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any

from backend_suite._backend import Backend
from backend_suite._capabilities import ALL_CAPABILITIES, CapabilitySet
from backend_suite._errors import (
    AlreadyExistsError,
    BackendSuiteError,
    ConfigError,
    ConnectivityError,
    InvalidHandle,
    NotFound,
    PermissionDenied,
)
from backend_suite._handle import Handle, ObjectInfo, ResourceKind

if TYPE_CHECKING:
    from collections.abc import Iterator

    from backend_suite._config import BackendConfig
    from backend_suite._types import Options, WritableContent

log = logging.getLogger(__name__)

_TMP_PREFIX = ".~tmp."


# region: host key policy


class HostKeyPolicy(Enum):
    """Controls how unknown remote host keys are handled.

    :cvar STRICT: Reject unknown hosts (production default).
    :cvar TRUST_ON_FIRST_USE: Save on first connect, verify after.
    :cvar AUTO_ADD: Accept any key (dev/testing ONLY).
    """

    STRICT = "strict"
    TRUST_ON_FIRST_USE = "tofu"
    AUTO_ADD = "auto"


# endregion

# region: private keys


def load_private_key(path: str, passphrase: str | None = None) -> Any:
    """Load a private key file of any type paramiko supports (RSA, ECDSA, Ed25519).

    :param path: Key file in OpenSSH or PEM format.
    :param passphrase: Passphrase of an encrypted key.
    :raises ConfigError: If the file cannot be read or holds no usable key.
    """
    import paramiko
    from paramiko.pkey import UnknownKeyType

    try:
        return paramiko.PKey.from_path(path, passphrase=passphrase.encode() if passphrase else None)
    except (paramiko.SSHException, UnknownKeyType, OSError, ValueError, TypeError) as exc:
        raise ConfigError(f"Cannot load private key {path}: {exc}", backend="sftp") from None


# endregion

# region: location parsing

_HOST_KEYS_ENV = "SFTP_KNOWN_HOST_KEYS"
_URL_PATTERN = re.compile(r"^//(?:(?P<user>[^@/]+)@)?(?P<host>[^:/]+)(?::(?P<port>\d+))?(?P<path>/.*)?$")
_SCP_PATTERN = re.compile(r"^(?:(?P<user>[^@/:]+)@)?(?P<host>[^:/]+):(?P<path>.*)$")


def _load_host_keys_from_string(ssh: Any, keys_content: str) -> None:
    """Parse a known_hosts-formatted string into an SSHClient's host keys."""
    import tempfile

    with tempfile.NamedTemporaryFile(mode="w", suffix=".known_hosts", delete=True) as tmp:
        tmp.write(keys_content)
        tmp.flush()
        ssh.load_host_keys(tmp.name)


# endregion


class SFTPBackend(Backend):
    """SFTP backend using pure paramiko.

    :param host: SFTP server hostname (required, non-empty).
    :param port: SSH port (default: 22).
    :param username: SSH username.
    :param password: SSH password.
    :param pkey: paramiko.PKey instance for key-based auth.
    :param base_path: Repository path on the remote server (default: ``/``).
    :param prefix: Namespace directory below ``base_path``.
    :param host_key_policy: Host key verification policy.
    :param known_host_keys: Known hosts string (code-level override).
    :param host_keys_path: Path to known_hosts file (default: ``~/.ssh/known_hosts``).
    :param timeout: SSH connection timeout in seconds.
    :param connect_kwargs: Extra kwargs passed to ``SSHClient.connect()``.
    """

    type_name = "sftp"

    def __init__(
        self,
        host: str,
        *,
        port: int = 22,
        username: str | None = None,
        password: str | None = None,
        pkey: Any = None,
        base_path: str = "/",
        prefix: str = "",
        host_key_policy: HostKeyPolicy | str = HostKeyPolicy.STRICT,
        known_host_keys: str | None = None,
        host_keys_path: str | None = None,
        timeout: int = 10,
        connect_kwargs: dict[str, Any] | None = None,
    ) -> None:
        if not host or not host.strip():
            raise ConfigError("host must be a non-empty string", backend=self.type_name)
        self._host = host
        self._port = int(port)
        self._username = username
        self._password = password
        self._pkey = pkey
        base = "/" + base_path.strip("/") if base_path.strip("/") else ""
        self._root = f"{base}/{prefix.strip('/')}" if prefix.strip("/") else (base or "/")
        try:
            self._host_key_policy = HostKeyPolicy(host_key_policy)
        except ValueError:
            raise ConfigError(f"Unknown host key policy: {host_key_policy!r}", backend=self.type_name) from None
        self._host_keys_path = host_keys_path
        self._timeout = timeout
        self._connect_kwargs = connect_kwargs or {}
        self._resolved_host_keys = known_host_keys or os.environ.get(_HOST_KEYS_ENV)

        self._ssh_client: Any = None
        self._sftp_client: Any = None

    @classmethod
    def parse_location(cls, location: str) -> Options:
        """Accept ``[user@]host:/path`` or ``//[user@]host[:port]/path``."""
        match = _URL_PATTERN.match(location) if location.startswith("//") else _SCP_PATTERN.match(location)
        if match is None:
            raise ConfigError(f"sftp: cannot parse location {location!r}", backend=cls.type_name)
        opts: Options = {"host": match["host"], "base_path": match["path"] or "/"}
        if match["user"]:
            opts["username"] = match["user"]
        if match.groupdict().get("port"):
            opts["port"] = int(match["port"])
        return opts

    @classmethod
    def from_config(cls, config: BackendConfig) -> SFTPBackend:
        """Build from a config; ``credentials`` is a private key file or a password.

        The ``key_passphrase`` option unlocks an encrypted key file.
        """
        kwargs: dict[str, Any] = dict(cls.parse_location(config.location))
        kwargs.update(config.options)
        passphrase = kwargs.pop("key_passphrase", None)
        if config.credentials:
            if os.path.isfile(config.credentials):
                kwargs.setdefault("pkey", load_private_key(config.credentials, passphrase))
            else:
                kwargs.setdefault("password", config.credentials)
        return cls(prefix=config.namespace, **kwargs)

    @property
    def name(self) -> str:
        return "sftp"

    @property
    def capabilities(self) -> CapabilitySet:
        return ALL_CAPABILITIES

    def location(self) -> str:
        user = f"{self._username}@" if self._username else ""
        return f"sftp:{user}{self._host}:{self._root}"

    # region: lazy connection

    @property
    def _sftp(self) -> Any:
        """Lazy SFTP client with automatic reconnection on staleness."""
        if not self._is_connected():
            self._connect()
        return self._sftp_client

    def _connect(self) -> None:
        """Establish SSH + SFTP connection with tenacity retry."""
        import paramiko
        from tenacity import (
            before_sleep_log,
            retry,
            retry_if_exception_type,
            retry_if_not_exception_type,
            stop_after_attempt,
            wait_exponential,
        )

        self._close_clients()

        ssh = self._create_ssh_client()

        # Authentication and host key failures are final; only transport hiccups are retried.
        @retry(
            retry=retry_if_exception_type((paramiko.SSHException, OSError, EOFError))
            & retry_if_not_exception_type((paramiko.AuthenticationException, paramiko.BadHostKeyException)),
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            before_sleep=before_sleep_log(log, logging.WARNING),  # type: ignore[arg-type,unused-ignore]
            reraise=True,
        )
        def _do_connect() -> None:
            log.info("Connecting to %s:%d as %s", self._host, self._port, self._username)
            ssh.connect(
                hostname=self._host,
                port=self._port,
                username=self._username,
                password=self._password,
                pkey=self._pkey,
                timeout=self._timeout,
                banner_timeout=self._timeout,
                auth_timeout=self._timeout,
                channel_timeout=self._timeout,
                **self._connect_kwargs,
            )

        _do_connect()
        self._ssh_client = ssh
        self._sftp_client = ssh.open_sftp()
        log.info("SFTP connection established.")

    def _create_ssh_client(self) -> Any:
        """Create and configure an SSHClient with host key policy."""
        import paramiko

        ssh = paramiko.SSHClient()

        if self._resolved_host_keys:
            _load_host_keys_from_string(ssh, self._resolved_host_keys)
        elif self._host_key_policy in (HostKeyPolicy.STRICT, HostKeyPolicy.TRUST_ON_FIRST_USE):
            keys_path = self._host_keys_path or os.path.expanduser("~/.ssh/known_hosts")
            if os.path.isfile(keys_path):
                ssh.load_host_keys(keys_path)

        if self._host_key_policy == HostKeyPolicy.TRUST_ON_FIRST_USE:
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        elif self._host_key_policy == HostKeyPolicy.AUTO_ADD:
            log.warning("AUTO_ADD host key policy -- NOT safe for production.")
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        else:
            ssh.set_missing_host_key_policy(paramiko.RejectPolicy())
        return ssh

    def _is_connected(self) -> bool:
        if self._sftp_client is None or self._ssh_client is None:
            return False
        transport = self._ssh_client.get_transport()
        return transport is not None and transport.is_active()

    def _close_clients(self) -> None:
        if self._sftp_client is not None:
            with contextlib.suppress(Exception):
                self._sftp_client.close()
            self._sftp_client = None
        if self._ssh_client is not None:
            with contextlib.suppress(Exception):
                self._ssh_client.close()
            self._ssh_client = None

    # endregion

    # region: path helpers

    def _sftp_path(self, key: str = "") -> str:
        if not key:
            return self._root
        if self._root == "/":
            return f"/{key}"
        return f"{self._root}/{key}"

    def _makedirs(self, sftp_path: str) -> None:
        """Create ``sftp_path`` and its missing ancestors."""
        current = ""
        for part in sftp_path.strip("/").split("/"):
            current = f"{current}/{part}"
            try:
                self._sftp.stat(current)
            except OSError:
                with contextlib.suppress(OSError):
                    self._sftp.mkdir(current)

    @staticmethod
    def _missing(exc: OSError) -> bool:
        return isinstance(exc, FileNotFoundError) or getattr(exc, "errno", None) == errno.ENOENT

    # endregion

    # region: error mapping

    @contextmanager
    def _errors(self, path: str = "") -> Iterator[None]:
        """Map paramiko/OS exceptions to backend_suite errors."""
        import paramiko

        try:
            yield
        except BackendSuiteError:
            raise
        except paramiko.AuthenticationException as exc:
            raise PermissionDenied(f"Authentication failed: {exc}", path=path, backend=self.name) from None
        except paramiko.SSHException as exc:
            raise ConnectivityError(str(exc), path=path, backend=self.name) from None
        except PermissionError:
            raise PermissionDenied(f"Permission denied: {path}", path=path, backend=self.name) from None
        except OSError as exc:
            if self._missing(exc):
                raise NotFound(f"Not found: {path}", path=path, backend=self.name) from None
            if getattr(exc, "errno", None) == errno.EACCES:
                raise PermissionDenied(f"Permission denied: {path}", path=path, backend=self.name) from None
            raise ConnectivityError(str(exc), path=path, backend=self.name) from None
        except EOFError as exc:
            raise ConnectivityError(f"Connection closed: {exc}", path=path, backend=self.name) from None

    # endregion

    # region: lifecycle

    def connect(self) -> None:
        with self._errors(self._root):
            self._sftp  # noqa: B018

    def initialize(self) -> None:
        with self._errors(self._root):
            for kind in ResourceKind:
                if kind is not ResourceKind.CONFIG:
                    self._makedirs(self._sftp_path(kind.value))

    def delete(self) -> None:
        with self._errors(self._root):
            try:
                self._sftp.stat(self._root)
            except OSError as exc:
                if self._missing(exc):
                    return
                raise
            self._rmtree(self._root)

    def _rmtree(self, sftp_path: str) -> None:
        """Recursively remove a directory tree, bottom-up."""
        for attr in self._sftp.listdir_attr(sftp_path):
            child = f"{sftp_path.rstrip('/')}/{attr.filename}"
            if stat.S_ISDIR(attr.st_mode):
                self._rmtree(child)
            else:
                self._sftp.remove(child)
        if sftp_path != "/":
            self._sftp.rmdir(sftp_path)

    def close(self) -> None:
        self._close_clients()

    # endregion

    # region: object operations

    def test(self, handle: Handle) -> bool:
        with self._errors(handle.path):
            try:
                attrs = self._sftp.stat(self._sftp_path(handle.path))
            except OSError as exc:
                if self._missing(exc):
                    return False
                raise
            return bool(stat.S_ISREG(attrs.st_mode))

    def save(self, handle: Handle, content: WritableContent, *, overwrite: bool = False) -> None:
        with self._errors(handle.path):
            sftp_path = self._sftp_path(handle.path)
            if not overwrite and self.test(handle):
                raise AlreadyExistsError(f"Object already exists: {handle}", path=handle.path, backend=self.name)
            parent, _, name = sftp_path.rpartition("/")
            self._makedirs(parent)
            tmp_path = f"{parent}/{_TMP_PREFIX}{name}.{uuid.uuid4().hex[:8]}"
            try:
                with self._sftp.file(tmp_path, "w") as f:
                    f.write(self._read_content(content))
                self._sftp.posix_rename(tmp_path, sftp_path)
            except Exception:
                with contextlib.suppress(Exception):
                    self._sftp.remove(tmp_path)
                raise

    def load(self, handle: Handle, *, length: int = 0, offset: int = 0) -> bytes:
        self._check_range(length, offset)
        with self._errors(handle.path):
            with self._sftp.file(self._sftp_path(handle.path), "r") as f:
                if offset:
                    f.seek(offset)
                if length:
                    return bytes(f.read(length))
                f.prefetch()
                return bytes(f.read())

    def stat(self, handle: Handle) -> ObjectInfo:
        with self._errors(handle.path):
            attrs = self._sftp.stat(self._sftp_path(handle.path))
            if not stat.S_ISREG(attrs.st_mode):
                raise NotFound(f"Object not found: {handle}", path=handle.path, backend=self.name)
            return ObjectInfo(handle=handle, size=int(attrs.st_size or 0))

    def remove(self, handle: Handle, *, missing_ok: bool = False) -> None:
        with self._errors(handle.path):
            try:
                self._sftp.remove(self._sftp_path(handle.path))
            except OSError as exc:
                if self._missing(exc):
                    if not missing_ok:
                        raise NotFound(f"Object not found: {handle}", path=handle.path, backend=self.name) from None
                    return
                raise

    def list(self, kind: ResourceKind) -> Iterator[ObjectInfo]:
        if kind is ResourceKind.CONFIG:
            if self.test(Handle(kind)):
                yield self.stat(Handle(kind))
            return
        with self._errors(kind.value):
            found = self._walk(kind.value)
        for key, size in found:
            try:
                handle = Handle.from_path(key)
            except InvalidHandle:
                continue
            yield ObjectInfo(handle=handle, size=size)

    def _walk(self, key: str) -> list[tuple[str, int]]:
        try:
            entries = self._sftp.listdir_attr(self._sftp_path(key))
        except OSError as exc:
            if self._missing(exc):
                return []
            raise
        found: list[tuple[str, int]] = []
        for attr in entries:
            child = f"{key}/{attr.filename}"
            if stat.S_ISDIR(attr.st_mode):
                found.extend(self._walk(child))
            elif stat.S_ISREG(attr.st_mode) and not attr.filename.startswith(_TMP_PREFIX):
                found.append((child, int(attr.st_size or 0)))
        return found

    # endregion
