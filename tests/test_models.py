"""Unit tests for the API data models."""

import pytest

from pyskb.exceptions import SkbError, SkbInvalidResponseError, SkbInvalidStateError
from pyskb.models import (
    BackupCode,
    DiscoveredServer,
    InfoSnapshot,
    ServerInfo,
    ServerState,
    TrackedFile,
)


def server_data(hostname="backup1.example.org", **overrides):
    data = {
        "hostname": hostname,
        "old_hostnames": [],
        "owner": "alice",
        "block_size": 1024,
        "free_blocks": 10,
        "used_blocks": 5,
        "healthcheck_percent": 90,
        "healthcheck_interval": 60,
        "is_verified": True,
        "is_confirmed": True,
        "healthy": True,
    }
    data.update(overrides)
    return data


class TestTrackedFile:
    def test_from_api_response(self):
        tracked = TrackedFile.from_api_response(
            {"id": 42, "path": "docs/a.txt", "last_modified": 1000}
        )
        assert tracked == TrackedFile(id="42", path="docs/a.txt", last_modified=1000)

    def test_missing_field(self):
        with pytest.raises(SkbInvalidResponseError, match="last_modified"):
            TrackedFile.from_api_response({"id": "1", "path": "a.txt"})

    def test_invalid_timestamp(self):
        with pytest.raises(SkbInvalidResponseError):
            TrackedFile.from_api_response(
                {"id": "1", "path": "a.txt", "last_modified": "yesterday"}
            )


class TestServerState:
    @pytest.mark.parametrize(
        "is_verified,is_confirmed,expected",
        [
            (True, True, ServerState.CONNECTED),
            (True, False, ServerState.AWAITING_REMOTE),
            (False, True, ServerState.AWAITING_CONFIRMATION),
        ],
    )
    def test_from_flags(self, is_verified, is_confirmed, expected):
        assert ServerState.from_flags(is_verified, is_confirmed) == expected

    def test_neither_flag_is_illegal(self):
        with pytest.raises(SkbInvalidStateError):
            ServerState.from_flags(False, False)


class TestServerInfo:
    def test_from_api_response(self):
        server = ServerInfo.from_api_response(
            server_data(old_hostnames=["old.example.org"])
        )

        assert server.hostname == "backup1.example.org"
        assert server.state == ServerState.CONNECTED
        assert server.free_bytes == 10 * 1024
        assert server.used_bytes == 5 * 1024
        assert server.old_hostnames == ["old.example.org"]

    def test_illegal_state_rejected(self):
        with pytest.raises(SkbInvalidStateError, match="backup1.example.org"):
            ServerInfo.from_api_response(
                server_data(is_verified=False, is_confirmed=False)
            )

    def test_to_dict_includes_state(self):
        server = ServerInfo.from_api_response(server_data(is_confirmed=False))
        assert server.to_dict()["state"] == "awaiting_remote"


class TestInfoSnapshot:
    @pytest.fixture
    def info_data(self):
        return {
            "total_usage_size": 1000,
            "used_data": 400,
            "data_unsecured": 100,
            "data_secured": 200,
            "data_safely_secured": 100,
            "servers": [
                server_data("good.example.org"),
                server_data("bad.example.org", is_verified=False, is_confirmed=False),
            ],
            "files": [
                {"id": "1", "path": "a.txt", "last_modified": 1000},
                {"id": "2", "path": "docs/b.txt", "last_modified": 2000},
            ],
        }

    def test_from_api_response(self, info_data):
        snapshot = InfoSnapshot.from_api_response(info_data)

        assert snapshot.free_data == 600
        assert [f.id for f in snapshot.files] == ["1", "2"]

    def test_illegal_server_is_skipped(self, info_data, caplog):
        """Test that a server in an impossible state is dropped with a warning."""
        snapshot = InfoSnapshot.from_api_response(info_data)

        assert [s.hostname for s in snapshot.servers] == ["good.example.org"]
        assert "bad.example.org" in caplog.text

    def test_find_file_exact_match(self, info_data):
        """Test that paths are matched without any normalization."""
        snapshot = InfoSnapshot.from_api_response(info_data)

        assert snapshot.find_file("a.txt").id == "1"
        assert snapshot.find_file("./a.txt") is None
        assert snapshot.find_file("docs//b.txt") is None
        assert snapshot.find_file("docs/b.txt").id == "2"

    def test_find_server(self, info_data):
        snapshot = InfoSnapshot.from_api_response(info_data)

        assert snapshot.find_server("good.example.org") is not None
        assert snapshot.find_server("bad.example.org") is None

    def test_empty_response(self):
        with pytest.raises(SkbInvalidResponseError, match="servers"):
            InfoSnapshot.from_api_response({})

    @pytest.mark.parametrize(
        "field", ["files", "servers", "used_data", "total_usage_size"]
    )
    def test_missing_field(self, info_data, field):
        del info_data[field]
        with pytest.raises(SkbInvalidResponseError, match=field):
            InfoSnapshot.from_api_response(info_data)

    def test_null_usage_value(self, info_data):
        info_data["data_secured"] = None
        with pytest.raises(SkbInvalidResponseError):
            InfoSnapshot.from_api_response(info_data)

    def test_files_not_a_list(self, info_data):
        info_data["files"] = {"id": "1"}
        with pytest.raises(SkbInvalidResponseError):
            InfoSnapshot.from_api_response(info_data)

    def test_null_server_field_is_api_error(self, info_data):
        """Test that a malformed server record surfaces as an SkbError."""
        info_data["servers"] = [server_data(block_size=None)]
        with pytest.raises(SkbError, match="backup1.example.org"):
            InfoSnapshot.from_api_response(info_data)

    def test_server_record_not_an_object(self, info_data):
        info_data["servers"] = ["backup1.example.org"]
        with pytest.raises(SkbInvalidResponseError):
            InfoSnapshot.from_api_response(info_data)

    def test_non_dict_response(self):
        with pytest.raises(SkbInvalidResponseError):
            InfoSnapshot.from_api_response([])

    def test_to_dict(self, info_data):
        result = InfoSnapshot.from_api_response(info_data).to_dict()

        assert result["used_data"] == 400
        assert result["files"][0] == {"id": "1", "path": "a.txt", "last_modified": 1000}
        assert result["servers"][0]["state"] == "connected"


class TestDiscoveredServer:
    def test_from_api_response(self):
        server = DiscoveredServer.from_api_response(
            {
                "hostname": "new.example.org",
                "owner": "bob",
                "block_size": 512,
                "free_blocks": 4,
                "healthcheck_percent": 95,
                "healthcheck_interval": 30,
                "hash_methods": ["sha256"],
            }
        )

        assert server.free_bytes == 2048
        assert server.hash_methods == ["sha256"]

    def test_invalid_value(self):
        with pytest.raises(SkbInvalidResponseError, match="new.example.org"):
            DiscoveredServer.from_api_response(
                {"hostname": "new.example.org", "free_blocks": "many"}
            )

    def test_null_value(self):
        with pytest.raises(SkbInvalidResponseError):
            DiscoveredServer.from_api_response(
                {"hostname": "new.example.org", "block_size": None}
            )


class TestBackupCode:
    def test_from_api_response(self):
        assert BackupCode.from_api_response({"backup_code": "abc"}).backup_code == "abc"

    def test_missing_code(self):
        with pytest.raises(SkbInvalidResponseError):
            BackupCode.from_api_response({})
