"""
Source Factory.

Builds the adapter for a registry from its declared type. Credential
resolution lives here: explicit config first, then the environment, then
anonymous access.
"""

from collections.abc import Mapping
from typing import Any

from forgepm.config import RegistryConfig
from forgepm.sources.base import Source
from forgepm.sources.ftp import FtpSource
from forgepm.sources.git import GitSource
from forgepm.sources.http import HttpSource
from forgepm.sources.local import LocalNetworkSource, LocalSource
from forgepm.sources.sftp import SftpSource

SOURCE_CLASSES: dict[str, type[Source]] = {
    "git": GitSource,
    "http": HttpSource,
    "ftp": FtpSource,
    "sftp": SftpSource,
    "local": LocalSource,
    "network": LocalNetworkSource,
}

# config key -> environment variable, per transport
ENV_FALLBACKS: dict[str, dict[str, str]] = {
    "sftp": {
        "username": "SFTP_USER",
        "password": "SFTP_PASS",
        "key_path": "SFTP_KEY_PATH",
        "key_passphrase": "SFTP_KEY_PASSPHRASE",
    },
    "ftp": {
        "host": "FTP_HOST",
        "username": "FTP_USER",
        "password": "FTP_PASS",
        "port": "FTP_PORT",
    },
    "http": {
        "username": "HTTP_USER",
        "password": "HTTP_PASS",
    },
}


def resolve_credentials(
    config: dict[str, Any], source_type: str, env: Mapping[str, str]
) -> dict[str, Any]:
    """
    Fill missing credentials from the environment.

    Args:
        config: Registry table
        source_type: Transport type
        env: Environment mapping

    Returns:
        A new config dictionary with fallbacks applied
    """
    config = dict(config)

    if source_type == "git":
        if not config.get("personal_token") and not config.get("token"):
            token = env.get("GITHUB_TOKEN") or env.get("GITLAB_TOKEN")
            if token:
                config["personal_token"] = token

    for key, var in ENV_FALLBACKS.get(source_type, {}).items():
        if config.get(key) in (None, "") and env.get(var):
            config[key] = env[var]

    if source_type == "ftp" and config.get("port") in (None, ""):
        config["port"] = 21

    return config


def create_source(
    config: RegistryConfig | dict[str, Any],
    env: Mapping[str, str] | None = None,
    **kwargs: Any,
) -> Source:
    """
    Create the source adapter for a registry.

    Unknown types fall back to the git transport.

    Args:
        config: Registry config or raw registry table
        env: Environment for credential fallbacks (defaults to empty)
        **kwargs: Extra constructor arguments (e.g. ``client`` for HTTP based
            transports)

    Returns:
        Source adapter instance
    """
    if isinstance(config, RegistryConfig):
        config = config.to_dict()
    source_type = config.get("type") or "git"
    source_class = SOURCE_CLASSES.get(source_type, GitSource)
    resolved = resolve_credentials(config, source_class.type, env or {})
    return source_class(resolved, **kwargs)
