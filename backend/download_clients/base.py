"""Abstract download client interface.

Adapters hide the protocol of each client behind three calls: submit a
release, poll a job and cancel a job. Job state is reduced to three
values so the lifecycle tracker can treat every client the same way.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from quality.model import CandidateRelease, Protocol

STATE_DOWNLOADING = "downloading"
STATE_COMPLETED = "completed"
STATE_ERROR = "error"


@dataclass
class ClientStatus:
    """Snapshot of a job as reported by the client.

    Attributes:
        progress: Fraction done, 0.0 to 1.0.
        state: One of downloading, completed, error.
        path: Content path on disk once known.
        error: Client-side error text for the error state.
    """

    progress: float = 0.0
    state: str = STATE_DOWNLOADING
    path: str = ""
    error: str = ""

    @property
    def is_completed(self) -> bool:
        return self.state == STATE_COMPLETED

    @property
    def is_error(self) -> bool:
        return self.state == STATE_ERROR


class DownloadClient(ABC):
    """Base class for download client adapters.

    Class attributes:
        name: Registry key, matches download_clients.client_type.
        protocol: Which candidate protocol this client accepts.
    """

    name: str = "unknown"
    protocol: Protocol = Protocol.TORRENT

    def __init__(self, client_id: int | None, display_name: str, url: str,
                 username: str = "", password: str = "", api_key: str = "",
                 category: str = "", priority: int = 1, timeout: int = 15):
        self.client_id = client_id
        self.display_name = display_name
        self.url = url.rstrip("/")
        self.username = username
        self.password = password
        self.api_key = api_key
        self.category = category or "grabarr"
        self.priority = priority
        self.timeout = timeout

    def supports(self, candidate: CandidateRelease) -> bool:
        return candidate.protocol == self.protocol

    @abstractmethod
    def submit(self, candidate: CandidateRelease) -> str:
        """Hand a release to the client.

        Returns:
            The client's job id (torrent hash, nzo id, NZBID).

        Raises:
            DownloadClientError: The client refused the job or is unreachable.
        """

    @abstractmethod
    def poll(self, external_id: str) -> ClientStatus:
        """Current status of a job.

        Raises:
            DownloadClientError: The client is unreachable.
        """

    @abstractmethod
    def cancel(self, external_id: str) -> None:
        """Remove a job from the client, leaving downloaded data in place."""

    @abstractmethod
    def test_connection(self) -> bool:
        """Raise DownloadClientError if the client cannot be used."""
