"""Tests for download client adapters and the client manager."""

import base64
from unittest.mock import MagicMock

import pytest

from circuit_breaker import BreakerRegistry
from download_clients import DownloadClientManager, build_client
from download_clients.base import STATE_COMPLETED, STATE_DOWNLOADING, STATE_ERROR
from download_clients.qbittorrent import QBittorrentClient, magnet_hash, map_state
from download_clients.sabnzbd import SABnzbdClient
from download_clients.transmission import SESSION_HEADER, TransmissionClient
from error_handler import DownloadClientError
from quality.model import CandidateRelease, Protocol

HASH = "0123456789abcdef0123456789abcdef01234567"


def _response(status_code=200, text="", json_body=None, headers=None):
    resp = MagicMock(status_code=status_code, text=text, headers=headers or {})
    resp.json.return_value = json_body
    return resp


def _torrent(url=f"magnet:?xt=urn:btih:{HASH}&dn=Arrival"):
    return CandidateRelease(title="Arrival.2016.1080p.WEB-DL-GRP", download_url=url)


class TestQBittorrent:
    @pytest.fixture
    def client(self):
        qb = QBittorrentClient(1, "qBittorrent", "http://qbit:8080/", username="admin", password="pw")
        qb.session = MagicMock()
        qb.session.post.return_value = _response(text="Ok.")
        return qb

    def test_magnet_hash(self):
        assert magnet_hash(f"magnet:?xt=urn:btih:{HASH.upper()}&dn=x") == HASH
        b32 = base64.b32encode(bytes.fromhex(HASH)).decode()
        assert magnet_hash(f"magnet:?xt=urn:btih:{b32}") == HASH
        assert magnet_hash("https://tracker.example/file.torrent") == ""

    def test_map_state(self):
        assert map_state("stalledUP") == STATE_COMPLETED
        assert map_state("missingFiles") == STATE_ERROR
        assert map_state("metaDL") == STATE_DOWNLOADING

    def test_submit_magnet_returns_hash(self, client):
        client.session.request.return_value = _response(text="Ok.")
        assert client.submit(_torrent()) == HASH
        method, url = client.session.request.call_args[0]
        assert (method, url) == ("POST", "http://qbit:8080/api/v2/torrents/add")
        assert client.session.post.call_count == 1

    def test_submit_refused(self, client):
        client.session.request.return_value = _response(text="Fails.")
        with pytest.raises(DownloadClientError):
            client.submit(_torrent())

    def test_login_failure(self, client):
        client.session.post.return_value = _response(text="Fails.")
        with pytest.raises(DownloadClientError):
            client.submit(_torrent())

    def test_poll(self, client):
        client.session.request.return_value = _response(json_body=[{
            "hash": HASH, "progress": 1.0, "state": "uploading",
            "content_path": "/downloads/Arrival.2016.1080p.WEB-DL-GRP",
        }])
        status = client.poll(HASH)
        assert status.is_completed
        assert status.path == "/downloads/Arrival.2016.1080p.WEB-DL-GRP"
        assert client.session.request.call_args[1]["params"] == {"hashes": HASH}

    def test_poll_missing_torrent_is_error(self, client):
        client.session.request.return_value = _response(json_body=[])
        assert client.poll(HASH).is_error

    def test_expired_session_relogs_once(self, client):
        expired = DownloadClientError("forbidden", context={"status_code": 403})
        client.session.request.side_effect = [expired, _response(json_body=[])]
        client._authenticated = True
        client.poll(HASH)
        assert client.session.post.call_count == 1
        assert client.session.request.call_count == 2


class TestTransmission:
    @pytest.fixture
    def client(self):
        tr = TransmissionClient(2, "Transmission", "http://tr:9091")
        tr.session = MagicMock()
        return tr

    def test_session_id_handshake(self, client):
        client.session.post.side_effect = [
            _response(409, headers={SESSION_HEADER: "abc"}),
            _response(json_body={"result": "success",
                                 "arguments": {"torrent-added": {"hashString": HASH}}}),
        ]
        assert client.submit(_torrent()) == HASH
        assert client.session.post.call_args[1]["headers"] == {SESSION_HEADER: "abc"}

    def test_poll_seeding_is_completed(self, client):
        client.session.post.return_value = _response(json_body={"result": "success", "arguments": {
            "torrents": [{"hashString": HASH, "name": "Arrival", "percentDone": 1.0, "status": 6,
                          "downloadDir": "/downloads", "error": 0, "errorString": ""}],
        }})
        status = client.poll(HASH)
        assert status.is_completed
        assert status.path == "/downloads/Arrival"

    def test_rpc_failure(self, client):
        client.session.post.return_value = _response(json_body={"result": "duplicate torrent"})
        with pytest.raises(DownloadClientError):
            client.poll(HASH)


class TestSABnzbd:
    @pytest.fixture
    def client(self):
        sab = SABnzbdClient(3, "SABnzbd", "http://sab:8080", api_key="key")
        sab.session = MagicMock()
        return sab

    def test_submit(self, client):
        client.session.get.return_value = _response(json_body={"status": True, "nzo_ids": ["SABnzbd_nzo_1"]})
        nzb = CandidateRelease(title="Arrival.2016.1080p.BluRay-GRP", protocol=Protocol.USENET,
                               download_url="https://nzb.example/get/1.nzb")
        assert client.submit(nzb) == "SABnzbd_nzo_1"
        params = client.session.get.call_args[1]["params"]
        assert params["mode"] == "addurl"
        assert params["apikey"] == "key"

    def test_poll_queue_then_history(self, client):
        client.session.get.return_value = _response(json_body={"queue": {"slots": [
            {"nzo_id": "nzo_1", "percentage": "55"}]}})
        status = client.poll("nzo_1")
        assert status.state == STATE_DOWNLOADING
        assert status.progress == pytest.approx(0.55)

        client.session.get.side_effect = [
            _response(json_body={"queue": {"slots": []}}),
            _response(json_body={"history": {"slots": [
                {"nzo_id": "nzo_1", "status": "Failed", "fail_message": "Out of retention"}]}}),
        ]
        status = client.poll("nzo_1")
        assert status.is_error
        assert status.error == "Out of retention"

    def test_api_error(self, client):
        client.session.get.return_value = _response(json_body={"error": "API Key Incorrect"})
        with pytest.raises(DownloadClientError):
            client.test_connection()


def test_build_client_unknown_type():
    assert build_client({"id": 1, "name": "x", "client_type": "rtorrent", "url": "http://x"}) is None
    assert isinstance(
        build_client({"id": 1, "name": "SAB", "client_type": "sabnzbd", "url": "http://sab"}), SABnzbdClient)


class TestManager:
    @pytest.fixture
    def breakers(self):
        return BreakerRegistry(failure_threshold=1, cooldown_seconds=600)

    @pytest.fixture
    def manager(self, breakers):
        return DownloadClientManager(MagicMock(client_timeout_seconds=5), breakers)

    def test_submit_records_outcome(self, manager, breakers):
        client = MagicMock(client_id=7, display_name="qb")
        client.submit.return_value = HASH
        assert manager.submit(_torrent(), client=client) == (7, HASH)

        client.submit.side_effect = DownloadClientError("refused")
        with pytest.raises(DownloadClientError):
            manager.submit(_torrent(), client=client)
        assert breakers.get("client:qb").state.value == "open"

    def test_poll_job_skips_open_circuit(self, manager, breakers):
        client = MagicMock(display_name="qb")
        breakers.get("client:qb").record_failure()
        assert manager.poll_job(client, HASH) is None
        client.poll.assert_not_called()
