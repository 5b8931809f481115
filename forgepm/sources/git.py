"""
Git Hosting Source.

Reads registries stored in a git repository through the hosting
provider's raw-file endpoint. No git binary or clone is involved.

Key features:
- Raw URL resolution for GitHub, GitLab, Bitbucket (hosted and
  self-hosted), Azure DevOps and generic hosts
- Provider-specific token headers
- Anonymous retry when a token is rejected on a public repository
"""

import logging
import re
from typing import Any, BinaryIO
from urllib.parse import quote

import httpx

from forgepm.sources.base import INDEX_FILE, Source, SourceError

logger = logging.getLogger(__name__)

USER_AGENT = "ForgePackageManager/1.0"
DEFAULT_TIMEOUT = 30.0

_GITHUB_SSH = re.compile(r"^git@github\.com:(?P<user>[^/]+)/(?P<repo>.+?)\.git$")
_GITHUB = re.compile(r"^https?://github\.com/(?P<user>[^/]+)/(?P<repo>[^/]+)", re.I)
_GITLAB = re.compile(r"^https?://gitlab\.com/(?P<user>[^/]+)/(?P<repo>[^/]+)", re.I)
_BITBUCKET = re.compile(r"^https?://bitbucket\.org/(?P<user>[^/]+)/(?P<repo>[^/]+)", re.I)
_AZURE = re.compile(
    r"^https?://dev\.azure\.com/(?P<org>[^/]+)/(?P<project>[^/]+)/_git/(?P<repo>[^/?#]+)",
    re.I,
)
_HOSTED = re.compile(r"^https?://(?P<host>[^/]+)/(?P<user>[^/]+)/(?P<repo>[^/]+)", re.I)


def _strip_git_suffix(repo: str) -> str:
    return repo[:-4] if repo.endswith(".git") else repo


def resolve_raw_base(url: str, branch: str) -> tuple[str, str]:
    """
    Resolve a repository URL to its raw-content base URL.

    Args:
        url: Repository URL (https or GitHub SSH form)
        branch: Branch or ref

    Returns:
        Tuple of (provider, raw base URL). For Azure DevOps the base is the
        items API endpoint; file paths go into its ``path`` parameter.
    """
    if match := _GITHUB_SSH.match(url):
        return "github", (
            f"https://raw.githubusercontent.com/{match['user']}/{match['repo']}/{branch}"
        )
    if match := _GITHUB.match(url):
        repo = _strip_git_suffix(match["repo"])
        return "github", f"https://raw.githubusercontent.com/{match['user']}/{repo}/{branch}"
    if match := _GITLAB.match(url):
        repo = _strip_git_suffix(match["repo"])
        return "gitlab", f"https://gitlab.com/{match['user']}/{repo}/-/raw/{branch}"
    if match := _BITBUCKET.match(url):
        repo = _strip_git_suffix(match["repo"])
        return "bitbucket", f"https://bitbucket.org/{match['user']}/{repo}/raw/{branch}"
    if match := _AZURE.match(url):
        return "azure", (
            f"https://dev.azure.com/{match['org']}/{match['project']}"
            f"/_apis/git/repositories/{match['repo']}/items"
        )
    if match := _HOSTED.match(url):
        host = match["host"].lower()
        repo = _strip_git_suffix(match["repo"])
        if "gitlab" in host:
            return "gitlab", f"https://{match['host']}/{match['user']}/{repo}/-/raw/{branch}"
        if "bitbucket" in host:
            return "bitbucket", f"https://{match['host']}/{match['user']}/{repo}/raw/{branch}"

    return "generic", f"{url.rstrip('/')}/{branch}"


class GitSource(Source):
    """Registry served from a git hosting provider's raw endpoint."""

    type = "git"
    transport_errors = (httpx.HTTPError,)

    def __init__(self, config: dict[str, Any], client: httpx.Client | None = None):
        super().__init__(config)
        self.url: str = config.get("url", "")
        self.branch: str = config.get("branch") or "main"
        self.private: bool = bool(config.get("private", False))
        self.token: str | None = config.get("personal_token") or config.get("token") or None
        self.provider, self.raw_base = resolve_raw_base(self.url, self.branch)
        self.client = client or httpx.Client(
            timeout=DEFAULT_TIMEOUT, follow_redirects=True, max_redirects=5
        )
        self._owns_client = client is None
        logger.debug("[%s] raw base URL: %s (%s)", self.name, self.raw_base, self.provider)

        if self.private and not self.token:
            logger.warning(
                "Registry '%s' is private but no token is configured; access may fail",
                self.name,
            )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def locate(self, relative: str) -> str:
        relative = relative.lstrip("/")
        if self.provider == "azure":
            return (
                f"{self.raw_base}?path=/{quote(relative)}"
                f"&versionDescriptor.version={quote(self.branch)}"
                "&download=true&api-version=6.0"
            )
        return f"{self.raw_base.rstrip('/')}/{relative}"

    def manifest_path(self, path: str) -> str:
        # Git registries address manifests by their full path
        return path

    def _headers(self, with_token: bool) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        if with_token and self.token and self.provider != "azure":
            if "gitlab" in self.raw_base:
                headers["PRIVATE-TOKEN"] = self.token
            else:
                headers["Authorization"] = f"token {self.token}"
        return headers

    def _auth(self, with_token: bool) -> httpx.BasicAuth | None:
        # Azure DevOps takes a PAT as the password of an empty user
        if with_token and self.token and self.provider == "azure":
            return httpx.BasicAuth("", self.token)
        return None

    def _attempts(self) -> list[bool]:
        """Token usage per attempt: with token first, then anonymous if allowed."""
        if self.token and not self.private:
            return [True, False]
        return [bool(self.token)]

    def _request(self, method: str, url: str) -> httpx.Response:
        last_error: Exception | None = None
        attempts = self._attempts()
        for with_token in attempts:
            try:
                response = self.client.request(
                    method,
                    url,
                    headers=self._headers(with_token),
                    auth=self._auth(with_token),
                )
            except httpx.HTTPError as e:
                last_error = e
            else:
                if response.is_success:
                    return response
                last_error = SourceError(f"HTTP {response.status_code} for {url}")
            if with_token and len(attempts) > 1:
                logger.debug("[%s] request with token failed, retrying anonymously", self.name)
        raise last_error or SourceError(f"Request failed for {url}")

    def read_bytes(self, relative: str) -> bytes:
        return self._request("GET", self.locate(relative)).content

    def copy_to(self, relative: str, f: BinaryIO) -> None:
        url = self.locate(relative)
        last_error: Exception | None = None
        attempts = self._attempts()
        for with_token in attempts:
            written = 0
            try:
                with self.client.stream(
                    "GET", url, headers=self._headers(with_token), auth=self._auth(with_token)
                ) as response:
                    if response.is_success:
                        for chunk in response.iter_bytes():
                            f.write(chunk)
                            written += len(chunk)
                        return
                    last_error = SourceError(f"HTTP {response.status_code} for {url}")
            except httpx.HTTPError as e:
                # Part of the body is already in f; a retry would corrupt it
                if written:
                    raise
                last_error = e
            if with_token and len(attempts) > 1:
                logger.debug("[%s] download with token failed, retrying anonymously", self.name)
        raise last_error or SourceError(f"Download failed for {url}")

    def validate_connection(self) -> bool:
        try:
            response = self._request("HEAD", self.locate(INDEX_FILE))
        except (SourceError, httpx.HTTPError):
            return False
        return 200 <= response.status_code < 400
