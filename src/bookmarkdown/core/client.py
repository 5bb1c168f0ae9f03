import logging
import threading
from dataclasses import dataclass
from typing import Any

import requests

from ..codec.common import EMPTY_DOCUMENT_PLACEHOLDER
from ..config import Config
from ..errors import ConcurrentModificationError, NotFoundError, TransportError

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
_PAGE_SIZE = 100
_MAX_PAGES = 10


@dataclass(frozen=True)
class RemoteDocument:
    """A gist as seen by the sync layer.

    Attributes:
        id: Gist id.
        version: Head commit of the gist history.
        content: Text of the bookmarks file (empty when not requested).
    """

    id: str
    version: str
    content: str = ""


class GistClient:
    """Blocking GitHub Gist API client.

    One ``requests.Session`` is kept per thread, so the client can be
    shared by coroutines that hand calls to worker threads.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.api_base_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """Current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
            }
        )
        if self.config.github_token:
            session.headers["Authorization"] = (
                f"Bearer {self.config.github_token}"
            )
        return session

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Send a request to the GitHub API and return the decoded JSON body.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self._get_session().request(
                method, url, timeout=self.config.timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(f"{path} not found")
        if response.status_code >= 400:
            detail = ""
            try:
                detail = response.json().get("message", "")
            except ValueError:
                detail = response.text[:200]
            raise TransportError(
                f"{method} {path} returned HTTP {response.status_code}: {detail}",
                status=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Gist payload helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _version_of(gist: dict) -> str:
        history = gist.get("history") or []
        if history and history[0].get("version"):
            return str(history[0]["version"])
        return str(gist.get("updated_at", ""))

    def _content_of(self, gist: dict) -> str:
        files = gist.get("files") or {}
        entry = files.get(self.config.filename)
        if entry is None:
            entry = next(
                (f for name, f in files.items() if name.endswith(".md")),
                None,
            )
        if entry is None:
            return ""
        if entry.get("truncated") and entry.get("raw_url"):
            logger.debug("Fetching truncated gist file %s", entry["raw_url"])
            try:
                response = self._get_session().get(
                    entry["raw_url"], timeout=self.config.timeout
                )
                response.raise_for_status()
            except requests.RequestException as exc:
                raise TransportError(
                    f"Fetching raw gist content failed: {exc}"
                ) from exc
            return response.text
        return entry.get("content") or ""

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def read(self, gist_id: str) -> RemoteDocument:
        """
        Fetch a gist and the text of its bookmarks file.

        Raises:
            NotFoundError: If the gist does not exist.
            TransportError: On any other failure.
        """
        gist = self._request("GET", f"/gists/{gist_id}")
        return RemoteDocument(
            id=gist["id"],
            version=self._version_of(gist),
            content=self._content_of(gist),
        )

    def get_version(self, gist_id: str) -> str:
        gist = self._request("GET", f"/gists/{gist_id}")
        return self._version_of(gist)

    def create(self, description: str, content: str) -> RemoteDocument:
        """
        Create a new gist holding *content* in the configured file.

        Returns:
            The new gist's id and version.
        """
        payload = {
            "description": description,
            "public": self.config.public,
            "files": {
                self.config.filename: {
                    "content": content or EMPTY_DOCUMENT_PLACEHOLDER
                }
            },
        }
        gist = self._request("POST", "/gists", json=payload)
        logger.info("Created gist %s", gist["id"])
        return RemoteDocument(id=gist["id"], version=self._version_of(gist))

    def update(
        self,
        gist_id: str,
        content: str,
        expected_version: str,
        description: str | None = None,
    ) -> RemoteDocument:
        """
        Replace the bookmarks file if the gist is still at *expected_version*.

        The API has no conditional write, so the head version is read just
        before the write; a newer head fails the update.

        Raises:
            ConcurrentModificationError: If the gist moved past
                *expected_version*.
            NotFoundError: If the gist does not exist.
        """
        current = self.get_version(gist_id)
        if current != expected_version:
            raise ConcurrentModificationError(
                f"Gist {gist_id} changed remotely "
                f"(expected {expected_version}, found {current})",
                expected_version=expected_version,
                actual_version=current,
            )
        payload: dict[str, Any] = {
            "files": {
                self.config.filename: {
                    "content": content or EMPTY_DOCUMENT_PLACEHOLDER
                }
            }
        }
        if description is not None:
            payload["description"] = description
        gist = self._request("PATCH", f"/gists/{gist_id}", json=payload)
        return RemoteDocument(id=gist_id, version=self._version_of(gist))

    def exists(self, gist_id: str) -> bool:
        try:
            self._request("GET", f"/gists/{gist_id}")
        except NotFoundError:
            return False
        return True

    def find_by_filename(self, filename: str) -> str | None:
        """
        Return the id of the first gist of the user that holds *filename*.
        """
        for page in range(1, _MAX_PAGES + 1):
            gists = self._request(
                "GET",
                "/gists",
                params={"per_page": _PAGE_SIZE, "page": page},
            )
            for gist in gists or []:
                if filename in (gist.get("files") or {}):
                    return gist["id"]
            if not gists or len(gists) < _PAGE_SIZE:
                break
        return None

    def validate_connection(self) -> str:
        """
        Validate the token by fetching the authenticated user.
        Returns the login name.
        """
        user = self._request("GET", "/user")
        return str(user.get("login", ""))
