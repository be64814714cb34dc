"""
Integration tests for full backup and restore flows.

These tests run SnapshotArchiver against InMemoryManagementClient, which
lays out real table, snapshot and backup directories on disk.

Tests cover:
- The nightly backup scenario for a single table
- Tables spread over several data directories
- Disaster recovery: wipe live files, restore, reload
- Stale directories from a dropped and recreated table
"""

import os
import time

import pytest

from dbops.ksbackup.archiver import SnapshotArchiver
from dbops.ksbackup.management.memory import InMemoryManagementClient


def file_set(directory):
    return {p.name: p.read_bytes() for p in directory.iterdir() if p.is_file()}


class TestNightlyBackup:
    """Keyspace app, table events in events-9f3a, tag nightly."""

    @pytest.fixture
    def client(self, tmp_path):
        client = InMemoryManagementClient([str(tmp_path / "data")])
        table_dir = client.add_table("app", "events", table_id="9f3a")
        (table_dir / "events-1.db").write_bytes(b"\x00\x01partition data")
        (table_dir / "events-1.index").write_bytes(b"\x02\x03index")
        return client

    def test_backup_matches_snapshot(self, client, tmp_path):
        """Backup holds exactly the snapshot files, snapshot cleared once."""
        archiver = SnapshotArchiver(client, tmp_path / "backup")

        archiver.backup("app", "nightly")

        dest = tmp_path / "backup" / "app" / "events"
        assert file_set(dest) == {
            "events-1.db": b"\x00\x01partition data",
            "events-1.index": b"\x02\x03index",
        }
        assert client.call_names().count("clear_snapshot") == 1
        assert client.call_names()[-1] == "clear_snapshot"
        assert not (tmp_path / "data" / "app" / "events-9f3a" / "snapshots" / "nightly").exists()

    def test_disaster_recovery(self, client, tmp_path):
        """Wiped live files come back after restore and reload."""
        archiver = SnapshotArchiver(client, tmp_path / "backup")
        archiver.backup("app", "nightly")
        table_dir = tmp_path / "data" / "app" / "events-9f3a"
        backed_up = file_set(tmp_path / "backup" / "app" / "events")
        for name in backed_up:
            (table_dir / name).unlink()

        archiver.restore("app")

        live = file_set(table_dir)
        assert backed_up.items() <= live.items()
        assert client.reloaded == [("app", "events")]


class TestMultipleDataDirectories:
    """A node configured with two data directory roots."""

    @pytest.fixture
    def client(self, tmp_path):
        client = InMemoryManagementClient([str(tmp_path / "disk1"), str(tmp_path / "disk2")])
        first = client.add_table("app", "events", table_id="aa11", data_dir_index=0)
        second = client.add_table("app", "events", table_id="aa11", data_dir_index=1)
        (first / "nb-1-big-Data.db").write_bytes(b"gen1")
        (second / "nb-2-big-Data.db").write_bytes(b"gen2")
        users = client.add_table("app", "users", table_id="bb22", data_dir_index=1)
        (users / "nb-1-big-Data.db").write_bytes(b"users")
        return client

    def test_table_spread_over_disks_is_backed_up_whole(self, client, tmp_path):
        archiver = SnapshotArchiver(client, tmp_path / "backup")

        result = archiver.backup("app", "nightly")

        assert file_set(tmp_path / "backup" / "app" / "events") == {
            "nb-1-big-Data.db": b"gen1",
            "nb-2-big-Data.db": b"gen2",
        }
        assert file_set(tmp_path / "backup" / "app" / "users") == {
            "nb-1-big-Data.db": b"users",
        }
        assert result.files_copied == 3

    def test_restore_targets_first_root_holding_table(self, client, tmp_path):
        archiver = SnapshotArchiver(client, tmp_path / "backup")
        archiver.backup("app", "nightly")

        result = archiver.restore("app")

        by_table = {copy.table: copy for copy in result.tables}
        assert by_table["events"].dest_dir == tmp_path / "disk1" / "app" / "events-aa11"
        assert by_table["users"].dest_dir == tmp_path / "disk2" / "app" / "users-bb22"
        assert (tmp_path / "disk1" / "app" / "events-aa11" / "nb-2-big-Data.db").exists()


class TestRecreatedTable:
    """A dropped and recreated table leaves a stale directory behind."""

    def test_backup_uses_newest_table_directory(self, tmp_path):
        client = InMemoryManagementClient([str(tmp_path / "data")])
        stale = client.add_table("app", "events", table_id="ffff0000")
        (stale / "old-Data.db").write_bytes(b"dropped")
        os.utime(stale, (1_000_000, 1_000_000))
        current = client.add_table("app", "events", table_id="0000ffff")
        (current / "new-Data.db").write_bytes(b"current")
        os.utime(current, (2_000_000, 2_000_000))
        archiver = SnapshotArchiver(client, tmp_path / "backup")

        archiver.backup("app", "nightly")

        assert file_set(tmp_path / "backup" / "app" / "events") == {"new-Data.db": b"current"}

    def test_backup_finds_snapshot_when_stale_directory_is_newer(self, tmp_path):
        """A stale directory touched after the snapshot does not hide any disk's files."""
        client = InMemoryManagementClient([str(tmp_path / "disk1"), str(tmp_path / "disk2")])
        first = client.add_table("app", "events", table_id="aa", data_dir_index=0)
        second = client.add_table("app", "events", table_id="aa", data_dir_index=1)
        (first / "nb-1-Data.db").write_bytes(b"gen1")
        (second / "nb-2-Data.db").write_bytes(b"gen2")
        stale = tmp_path / "disk1" / "app" / "events-zz"
        (stale / "snapshots" / "dropped-1700000000000-events").mkdir(parents=True)
        later = time.time() + 3600
        os.utime(stale, (later, later))
        archiver = SnapshotArchiver(client, tmp_path / "backup")

        result = archiver.backup("app", "nightly")

        assert sorted(file_set(tmp_path / "backup" / "app" / "events")) == [
            "nb-1-Data.db",
            "nb-2-Data.db",
        ]
        assert result.tables[0].source_dirs == [
            first / "snapshots" / "nightly",
            second / "snapshots" / "nightly",
        ]
        assert not client.snapshot_exists("app", "nightly")
