"""
Unit tests for Peer Registry

Tests atomic peer creation, removal, listing order, enable/disable,
schema migration of older stores and concurrent creation.
"""

import re
import sqlite3
import stat
import threading
from datetime import datetime
from unittest.mock import patch

import pytest

from vpnctl.errors import (
    AddressSpaceExhaustedError,
    ConflictError,
    PeerExistsError,
    PeerNotFoundError,
    RandomSourceError,
    StorageError,
)
from vpnctl.models.peer import EnabledPeer
from vpnctl.networking.wireguard_keys import get_public_key_from_private
from vpnctl.services.peer_registry import PeerRegistry

PREFIX = "10.0.0.1/24"


class TestOpenRegistry:
    """Tests for opening the store"""

    def test_creates_database_with_owner_only_permissions(self, data_dir):
        """
        GIVEN a data directory that does not exist yet
        WHEN opening the registry
        THEN directory and database should be created owner-only
        """
        with PeerRegistry(data_dir) as registry:
            db_mode = stat.S_IMODE(registry.db_path.stat().st_mode)

        assert registry.db_path == data_dir / "vpn.db"
        assert db_mode == 0o600
        assert stat.S_IMODE(data_dir.stat().st_mode) == 0o700

    def test_unusable_data_dir_raises_storage_error(self, tmp_path):
        """
        GIVEN a data directory path occupied by a regular file
        WHEN opening the registry
        THEN StorageError should be raised
        """
        blocker = tmp_path / "vpn"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError):
            PeerRegistry(blocker)

    def test_empty_data_dir_raises_storage_error(self, tmp_path, monkeypatch):
        """
        GIVEN an empty data directory string
        WHEN opening the registry
        THEN StorageError should be raised and the working directory left alone
        """
        workdir = tmp_path / "work"
        workdir.mkdir()
        workdir.chmod(0o755)
        monkeypatch.chdir(workdir)

        with pytest.raises(StorageError, match="no data directory"):
            PeerRegistry("")

        assert list(workdir.iterdir()) == []
        assert stat.S_IMODE(workdir.stat().st_mode) == 0o755

    def test_peers_persist_across_reopen(self, data_dir):
        """
        GIVEN a registry with one peer
        WHEN closing and reopening it
        THEN the peer should still be listed
        """
        with PeerRegistry(data_dir) as registry:
            created = registry.create_peer("alice", PREFIX)

        with PeerRegistry(data_dir) as registry:
            peers = registry.list_peers()

        assert [p.id for p in peers] == [created.id]


class TestCreatePeer:
    """Tests for create_peer"""

    def test_create_populates_every_field(self, registry):
        """
        GIVEN an empty registry
        WHEN creating a peer
        THEN it should get an id, matching keypair, .2 address and be enabled
        """
        peer = registry.create_peer("alice", PREFIX)

        assert re.fullmatch(r"[0-9a-f]{16}", peer.id)
        assert peer.name == "alice"
        assert peer.allowed_ip == "10.0.0.2/32"
        assert peer.ip == "10.0.0.2"
        assert peer.enabled is True
        assert isinstance(peer.created_at, datetime)
        assert get_public_key_from_private(peer.private_key) == peer.public_key

    def test_allocation_reuses_freed_address(self, registry):
        """
        GIVEN alice and bob created and alice removed
        WHEN creating carol
        THEN carol should receive alice's old address
        """
        alice = registry.create_peer("alice", PREFIX)
        bob = registry.create_peer("bob", PREFIX)
        registry.remove_peer("alice")

        carol = registry.create_peer("carol", PREFIX)

        assert alice.allowed_ip == "10.0.0.2/32"
        assert bob.allowed_ip == "10.0.0.3/32"
        assert carol.allowed_ip == "10.0.0.2/32"
        assert carol.public_key != alice.public_key

    def test_duplicate_name_raises_and_leaves_store_unchanged(self, registry):
        """
        GIVEN an existing peer named alice
        WHEN creating another alice
        THEN PeerExistsError should be raised and no row added
        """
        registry.create_peer("alice", PREFIX)

        with pytest.raises(PeerExistsError) as exc_info:
            registry.create_peer("alice", PREFIX)

        assert exc_info.value.name == "alice"
        assert len(registry.list_peers()) == 1
        assert registry.used_addresses() == ["10.0.0.2/32"]

    def test_exhaustion_after_253_peers(self, registry):
        """
        GIVEN a /24 prefix with 253 peers already allocated
        WHEN creating one more
        THEN AddressSpaceExhaustedError should be raised and nothing inserted
        """
        for i in range(253):
            registry.create_peer(f"peer-{i}", PREFIX)

        with pytest.raises(AddressSpaceExhaustedError):
            registry.create_peer("one-too-many", PREFIX)

        addresses = registry.used_addresses()
        assert len(addresses) == 253
        assert len(set(addresses)) == 253
        assert "10.0.0.1/32" not in addresses
        assert "10.0.0.254/32" in addresses

    def test_random_failure_rolls_back(self, registry):
        """
        GIVEN an id generator that fails after keys are generated
        WHEN creating a peer
        THEN RandomSourceError should propagate and no row be written
        """
        with patch(
            "vpnctl.services.peer_registry.generate_id",
            side_effect=RandomSourceError("generate id: no entropy"),
        ):
            with pytest.raises(RandomSourceError):
                registry.create_peer("alice", PREFIX)

        assert registry.list_peers() == []
        assert registry.create_peer("alice", PREFIX).allowed_ip == "10.0.0.2/32"

    def test_duplicate_public_key_raises_conflict(self, registry):
        """
        GIVEN a stored peer and a key generator repeating that peer's keys
        WHEN creating a peer under a new name
        THEN ConflictError (not PeerExistsError) should be raised and no row added
        """
        alice = registry.create_peer("alice", PREFIX)

        with patch(
            "vpnctl.services.peer_registry.generate_keypair",
            return_value=(alice.private_key, alice.public_key),
        ):
            with pytest.raises(ConflictError) as exc_info:
                registry.create_peer("bob", PREFIX)

        assert not isinstance(exc_info.value, PeerExistsError)
        assert [p.name for p in registry.list_peers()] == ["alice"]

    def test_duplicate_address_raises_conflict(self, registry):
        """
        GIVEN a stored peer and an allocator that hands out its address again
        WHEN creating a peer
        THEN ConflictError should be raised and no row added
        """
        registry.create_peer("alice", PREFIX)

        with patch(
            "vpnctl.services.peer_registry.allocate_address",
            return_value="10.0.0.2",
        ):
            with pytest.raises(ConflictError):
                registry.create_peer("bob", PREFIX)

        assert registry.used_addresses() == ["10.0.0.2/32"]

    def test_concurrent_creates_get_distinct_addresses(self, registry):
        """
        GIVEN many threads sharing one registry
        WHEN each creates a peer at the same time
        THEN every peer should receive a distinct address
        """
        results = []
        errors = []

        def create(index):
            try:
                results.append(registry.create_peer(f"peer-{index}", PREFIX))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=create, args=(i,)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        addresses = {peer.allowed_ip for peer in results}
        assert len(addresses) == 20
        assert addresses == {f"10.0.0.{host}/32" for host in range(2, 22)}

    def test_separate_registries_on_one_file_get_distinct_addresses(self, data_dir):
        """
        GIVEN two registries opened on the same database file
        WHEN both create peers from several threads at once
        THEN the store lock should serialize them into distinct addresses
        """
        first = PeerRegistry(data_dir)
        second = PeerRegistry(data_dir)
        results = []
        errors = []

        def create(registry, index):
            try:
                results.append(registry.create_peer(f"peer-{index}", PREFIX))
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=create, args=(registry, i))
            for i, registry in enumerate([first, second] * 15)
        ]
        try:
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
        finally:
            first.close()
            second.close()

        assert errors == []
        assert len(results) == 30
        assert len({peer.allowed_ip for peer in results}) == 30

        with PeerRegistry(data_dir) as registry:
            stored = registry.used_addresses()
        assert len(stored) == 30
        assert len(set(stored)) == 30


class TestRemovePeer:
    """Tests for remove_peer"""

    def test_remove_twice(self, registry):
        """
        GIVEN a registered peer
        WHEN removing it twice
        THEN the first call succeeds and the second raises PeerNotFoundError
        """
        registry.create_peer("alice", PREFIX)

        registry.remove_peer("alice")

        with pytest.raises(PeerNotFoundError) as exc_info:
            registry.remove_peer("alice")
        assert exc_info.value.name == "alice"

    def test_remove_unknown_peer(self, registry):
        """
        GIVEN an empty registry
        WHEN removing a name never registered
        THEN PeerNotFoundError should be raised
        """
        with pytest.raises(PeerNotFoundError):
            registry.remove_peer("ghost")


class TestListing:
    """Tests for list_peers, enabled_peers and get_peer"""

    def test_list_in_creation_order(self, registry):
        """
        GIVEN peers created in a known order
        WHEN listing
        THEN they should come back in creation order with private keys
        """
        for name in ("zed", "alice", "mike"):
            registry.create_peer(name, PREFIX)

        peers = registry.list_peers()

        assert [p.name for p in peers] == ["zed", "alice", "mike"]
        assert all(p.private_key for p in peers)

    def test_enabled_peers_excludes_disabled(self, registry):
        """
        GIVEN three peers with the middle one disabled
        WHEN projecting enabled peers
        THEN only the other two should be returned, in creation order
        """
        alice = registry.create_peer("alice", PREFIX)
        registry.create_peer("bob", PREFIX)
        carol = registry.create_peer("carol", PREFIX)

        registry.set_peer_enabled("bob", False)

        assert registry.enabled_peers() == [
            EnabledPeer(public_key=alice.public_key, allowed_ip="10.0.0.2/32"),
            EnabledPeer(public_key=carol.public_key, allowed_ip="10.0.0.4/32"),
        ]

    def test_disabled_peer_keeps_address(self, registry):
        """
        GIVEN a disabled peer
        WHEN creating another peer
        THEN the disabled peer's address should not be reused
        """
        registry.create_peer("alice", PREFIX)
        registry.set_peer_enabled("alice", False)

        bob = registry.create_peer("bob", PREFIX)

        assert bob.allowed_ip == "10.0.0.3/32"

    def test_reenable_restores_peer(self, registry):
        """
        GIVEN a disabled peer
        WHEN enabling it again
        THEN it should reappear in enabled_peers with the same key
        """
        alice = registry.create_peer("alice", PREFIX)
        registry.set_peer_enabled("alice", False)

        updated = registry.set_peer_enabled("alice", True)

        assert updated.enabled is True
        assert updated.public_key == alice.public_key
        assert len(registry.enabled_peers()) == 1

    def test_set_enabled_unknown_peer(self, registry):
        with pytest.raises(PeerNotFoundError):
            registry.set_peer_enabled("ghost", False)

    def test_get_peer(self, registry):
        """
        GIVEN a registered peer
        WHEN looking it up by name
        THEN the full record should be returned
        """
        created = registry.create_peer("alice", PREFIX)

        peer = registry.get_peer("alice")

        assert peer.id == created.id
        assert peer.private_key == created.private_key

        with pytest.raises(PeerNotFoundError):
            registry.get_peer("ghost")


class TestSchemaMigration:
    """Tests for upgrading stores created before private keys were kept"""

    @pytest.fixture
    def legacy_store(self, data_dir):
        data_dir.mkdir(parents=True)
        db_path = data_dir / "vpn.db"

        conn = sqlite3.connect(str(db_path))
        conn.execute(
            "CREATE TABLE peers ("
            "id TEXT PRIMARY KEY, "
            "name TEXT UNIQUE NOT NULL, "
            "public_key TEXT UNIQUE NOT NULL, "
            "allowed_ip TEXT UNIQUE NOT NULL, "
            "enabled INTEGER DEFAULT 1, "
            "created_at DATETIME NOT NULL)"
        )
        conn.execute(
            "INSERT INTO peers (id, name, public_key, allowed_ip, enabled, created_at) "
            "VALUES ('0123456789abcdef', 'legacy', 'LEGACYKEY', '10.0.0.2/32', 1, "
            "'2024-01-01 00:00:00.000000')"
        )
        conn.commit()
        conn.close()
        return db_path

    def test_adds_private_key_column(self, data_dir, legacy_store):
        """
        GIVEN a store without the private_key column
        WHEN opening the registry
        THEN the column should be added and the old row read back with None
        """
        with PeerRegistry(data_dir) as registry:
            peers = registry.list_peers()

        conn = sqlite3.connect(str(legacy_store))
        columns = [row[1] for row in conn.execute("PRAGMA table_info(peers)")]
        conn.close()

        assert "private_key" in columns
        assert len(peers) == 1
        assert peers[0].name == "legacy"
        assert peers[0].private_key is None
        assert peers[0].created_at == datetime(2024, 1, 1)

    def test_migration_is_idempotent(self, data_dir, legacy_store):
        """
        GIVEN a legacy store
        WHEN opening the registry twice and creating a peer
        THEN the new peer should skip the legacy peer's address
        """
        PeerRegistry(data_dir).close()

        with PeerRegistry(data_dir) as registry:
            peer = registry.create_peer("fresh", PREFIX)

        assert peer.allowed_ip == "10.0.0.3/32"
