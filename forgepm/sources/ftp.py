"""
FTP Source.

Registry stored on an FTP or explicit-FTPS server. A fresh connection is
opened per operation and closed afterwards.
"""

import ftplib
import io
import posixpath
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, BinaryIO

from forgepm.sources.base import Source, SourceError

CONNECT_TIMEOUT = 30


class FtpSource(Source):
    """Registry over FTP/FTPS using ftplib."""

    type = "ftp"
    transport_errors = ftplib.all_errors

    def __init__(self, config: dict[str, Any]):
        super().__init__(config)
        self.host: str = config.get("host") or ""
        self.port = int(config.get("port") or 21)
        self.username: str = config.get("username") or ""
        self.password: str = config.get("password") or ""
        self.base_path: str = config.get("base_path") or "/"
        self.passive = bool(config.get("passive", True))
        self.ssl = bool(config.get("ssl", False))

    @contextmanager
    def _connect(self) -> Iterator[ftplib.FTP]:
        if not self.host:
            raise SourceError("FTP host is not configured")
        ftp = ftplib.FTP_TLS() if self.ssl else ftplib.FTP()
        try:
            ftp.connect(self.host, self.port, timeout=CONNECT_TIMEOUT)
            if self.username:
                ftp.login(self.username, self.password)
            else:
                ftp.login()
            if isinstance(ftp, ftplib.FTP_TLS):
                ftp.prot_p()
            ftp.set_pasv(self.passive)
            yield ftp
        finally:
            ftp.close()

    def locate(self, relative: str) -> str:
        return posixpath.join(self.base_path.rstrip("/") or "/", relative.lstrip("/"))

    def copy_to(self, relative: str, f: BinaryIO) -> None:
        with self._connect() as ftp:
            ftp.retrbinary(f"RETR {self.locate(relative)}", f.write)

    def read_bytes(self, relative: str) -> bytes:
        buffer = io.BytesIO()
        self.copy_to(relative, buffer)
        return buffer.getvalue()

    def validate_connection(self) -> bool:
        try:
            with self._connect() as ftp:
                ftp.voidcmd("NOOP")
        except (SourceError, *ftplib.all_errors):
            return False
        return True
