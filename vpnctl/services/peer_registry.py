"""
Peer Registry

Durable store of overlay peers backed by SQLite.

Creation is one atomic unit: name uniqueness check, key generation,
address scan and allocation, id generation and insert all run inside a
single transaction, and any failure rolls the whole thing back.

Concurrency:
- The engine holds a single connection and opens every transaction with
  BEGIN IMMEDIATE, so writers in other processes serialize at SQLite's lock.
- A process-wide lock guards create/remove/enable end to end, so two
  requests in one long-lived process can never observe the same set of
  used addresses. Callers under load simply wait.
"""

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from sqlalchemy import delete, func, literal_column, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from vpnctl.db.base import (
    Base,
    DB_FILENAME,
    create_session_factory,
    create_store_engine,
)
from vpnctl.errors import (
    ConflictError,
    PeerExistsError,
    PeerNotFoundError,
    StorageError,
)
from vpnctl.models.peer import EnabledPeer, Peer, utcnow, with_host_suffix
from vpnctl.networking.wireguard_keys import generate_id, generate_keypair
from vpnctl.services.ip_pool_manager import allocate_address, parse_prefix

logger = logging.getLogger(__name__)

# creation time first, insertion order for equal timestamps
_LISTING_ORDER = (Peer.created_at, literal_column("peers.rowid"))


class PeerRegistry:
    """
    SQLite-backed peer registry

    Attributes:
        db_path: Path of the SQLite database file
        engine: SQLAlchemy engine (single pooled connection)
        _lock: Guards mutating operations end to end
    """

    def __init__(self, data_dir: Path, db_path: Optional[Path] = None):
        """
        Open (and if needed create or migrate) the peer store

        Args:
            data_dir: Directory holding vpn.db; created with mode 0700
            db_path: Explicit database path, overrides data_dir/vpn.db

        Raises:
            StorageError: If the store cannot be opened or migrated
        """
        # Path("") is the working directory
        if data_dir is None or data_dir == "":
            raise StorageError("create data dir: no data directory given")

        try:
            directory = Path(data_dir)
            directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            os.chmod(directory, 0o700)
        except OSError as e:
            raise StorageError(f"create data dir: {e}") from e

        self.db_path = Path(db_path) if db_path else directory / DB_FILENAME
        self.engine = create_store_engine(self.db_path)

        try:
            self._ensure_schema()
            os.chmod(self.db_path, 0o600)
        except (SQLAlchemyError, OSError) as e:
            self.engine.dispose()
            raise StorageError(f"open db: {e}") from e

        self._session_factory = create_session_factory(self.engine)
        self._lock = threading.Lock()

        logger.info(f"Opened peer registry at {self.db_path}")

    def _ensure_schema(self) -> None:
        """
        Create the peers table and apply forward-only migrations

        Stores created before private keys were kept lack the private_key
        column; it is added in place and existing rows read it as NULL.
        """
        Base.metadata.create_all(bind=self.engine)

        with self.engine.begin() as conn:
            columns = [
                row[1] for row in conn.exec_driver_sql("PRAGMA table_info(peers)")
            ]

            if "private_key" not in columns:
                conn.exec_driver_sql("ALTER TABLE peers ADD COLUMN private_key TEXT")
                logger.info("Added private_key to peers table")

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        try:
            with self._session_factory.begin() as session:
                yield session
        except IntegrityError as e:
            raise ConflictError(f"{action}: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"{action}: {e}") from e

    def close(self) -> None:
        """Release the database connection"""
        self.engine.dispose()

    def __enter__(self) -> "PeerRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_peer(self, name: str, prefix: str) -> Peer:
        """
        Create a peer with a fresh keypair and the lowest free address

        Args:
            name: Unique peer name
            prefix: Server network prefix (e.g., "10.0.0.1/24"); the server
                address itself is never allocated

        Returns:
            Fully populated Peer

        Raises:
            PeerExistsError: If the name is taken
            ConflictError: If the key or address collides with a stored row
            AddressSpaceExhaustedError: If the prefix has no free host
            ConfigFormatError: If the prefix is malformed
            UnsupportedAddressFamilyError: If the prefix is not IPv4
            RandomSourceError: If key or id generation fails
            StorageError: If the transaction fails
        """
        with self._lock:
            with self._transaction("create peer") as session:
                peer = self._insert_peer(session, name, prefix)

        logger.info(f"Created peer {peer.name} with IP {peer.allowed_ip}")
        return peer

    def _insert_peer(self, session: Session, name: str, prefix: str) -> Peer:
        exists = session.scalar(
            select(func.count()).select_from(Peer).where(Peer.name == name)
        )
        if exists:
            raise PeerExistsError(name)

        private_key, public_key = generate_keypair()

        server_ip = str(parse_prefix(prefix).ip)
        used = [server_ip]
        used.extend(session.scalars(select(Peer.allowed_ip)))
        address = allocate_address(prefix, used)

        peer = Peer(
            id=generate_id(),
            name=name,
            public_key=public_key,
            private_key=private_key,
            allowed_ip=with_host_suffix(address),
            enabled=True,
            created_at=utcnow(),
        )
        session.add(peer)
        session.flush()

        return peer

    def remove_peer(self, name: str) -> None:
        """
        Delete a peer by name

        Removing the same name twice fails the second time.

        Raises:
            PeerNotFoundError: If no peer has this name
            StorageError: If the transaction fails
        """
        with self._lock:
            with self._transaction("remove peer") as session:
                result = session.execute(delete(Peer).where(Peer.name == name))
                if result.rowcount == 0:
                    raise PeerNotFoundError(name)

        logger.info(f"Removed peer {name}")

    def set_peer_enabled(self, name: str, enabled: bool) -> Peer:
        """
        Enable or disable a peer without touching its keys or address

        Disabled peers stay registered but drop out of enabled_peers().

        Raises:
            PeerNotFoundError: If no peer has this name
            StorageError: If the transaction fails
        """
        with self._lock:
            with self._transaction("update peer") as session:
                peer = session.scalar(select(Peer).where(Peer.name == name))
                if peer is None:
                    raise PeerNotFoundError(name)
                peer.enabled = enabled

        logger.info(f"Peer {name} {'enabled' if enabled else 'disabled'}")
        return peer

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_peer(self, name: str) -> Peer:
        """
        Get a single peer by name

        Raises:
            PeerNotFoundError: If no peer has this name
        """
        with self._transaction("get peer") as session:
            peer = session.scalar(select(Peer).where(Peer.name == name))

        if peer is None:
            raise PeerNotFoundError(name)
        return peer

    def list_peers(self) -> List[Peer]:
        """
        List all peers ordered by creation time ascending

        Records include private keys; stripping them is the job of whatever
        exposes the list to untrusted callers.
        """
        with self._transaction("list peers") as session:
            return list(session.scalars(select(Peer).order_by(*_LISTING_ORDER)))

    def enabled_peers(self) -> List[EnabledPeer]:
        """
        Project enabled peers to (public_key, allowed_ip) for rendering

        Ordered by creation time ascending, like list_peers().
        """
        stmt = (
            select(Peer.public_key, Peer.allowed_ip)
            .where(Peer.enabled.is_(True))
            .order_by(*_LISTING_ORDER)
        )

        with self._transaction("list enabled peers") as session:
            return [
                EnabledPeer(public_key=row.public_key, allowed_ip=row.allowed_ip)
                for row in session.execute(stmt)
            ]

    def used_addresses(self) -> List[str]:
        """Addresses currently allocated to peers, with /32 suffix"""
        with self._transaction("list addresses") as session:
            return list(session.scalars(select(Peer.allowed_ip)))
