"""
SFTP Source.

Registry stored on an SSH server, read through paramiko's SFTP client.
Key authentication is tried before password authentication. Host keys must
be in known_hosts unless ``strict_host_key`` is turned off.
"""

import io
import logging
import posixpath
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, BinaryIO

import paramiko

from forgepm.sources.base import Source, SourceError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 30


class SftpSource(Source):
    """Registry over SFTP."""

    type = "sftp"
    transport_errors = (paramiko.SSHException,)

    def __init__(self, config: dict[str, Any]):
        super().__init__(config)
        self.host: str = config.get("host") or ""
        self.port = int(config.get("port") or 22)
        self.username: str = config.get("username") or ""
        self.password: str | None = config.get("password") or None
        self.key_path: str | None = config.get("key_path") or None
        self.key_passphrase: str | None = config.get("key_passphrase") or None
        self.base_path: str = config.get("base_path") or "/"
        self.strict_host_key = bool(config.get("strict_host_key", True))

    def _authenticate(self, client: paramiko.SSHClient) -> None:
        common = {
            "hostname": self.host,
            "port": self.port,
            "username": self.username,
            "timeout": CONNECT_TIMEOUT,
            "allow_agent": False,
            "look_for_keys": False,
        }
        if self.key_path:
            try:
                client.connect(
                    key_filename=self.key_path, passphrase=self.key_passphrase, **common
                )
                return
            except paramiko.AuthenticationException:
                if not self.password:
                    raise
                logger.debug("[%s] key authentication failed, trying password", self.name)
        if self.password:
            client.connect(password=self.password, **common)
            return
        raise SourceError(f"No SFTP credentials for {self.username}@{self.host}")

    @contextmanager
    def _connect(self) -> Iterator[paramiko.SFTPClient]:
        if not self.host:
            raise SourceError("SFTP host is not configured")
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(
            paramiko.RejectPolicy() if self.strict_host_key else paramiko.WarningPolicy()
        )
        try:
            self._authenticate(client)
            sftp = client.open_sftp()
            try:
                yield sftp
            finally:
                sftp.close()
        finally:
            client.close()

    def locate(self, relative: str) -> str:
        return posixpath.join(self.base_path.rstrip("/") or "/", relative.lstrip("/"))

    def copy_to(self, relative: str, f: BinaryIO) -> None:
        with self._connect() as sftp:
            sftp.getfo(self.locate(relative), f)

    def read_bytes(self, relative: str) -> bytes:
        buffer = io.BytesIO()
        self.copy_to(relative, buffer)
        return buffer.getvalue()

    def validate_connection(self) -> bool:
        try:
            with self._connect() as sftp:
                sftp.stat(self.base_path)
        except (SourceError, OSError, paramiko.SSHException):
            return False
        return True
