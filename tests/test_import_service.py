"""
Tests for importing WireGuard peer configs from a directory.
"""
import pytest

from wgportal.core.auth import AuthContext
from wgportal.core.exceptions import ConfigError, ImportDirectoryError, InvalidKey
from wgportal.models import AuditEvent, AuditEventType, ImportBatch, Peer, PeerStatus
from wgportal.services import crypto_service
from wgportal.services.import_service import ImportService, parse_peer_address

KEY = "0123456789abcdef" * 4

PEER_TEMPLATE = """[Interface]
PrivateKey = cHJpdmF0ZQ==
Address = {address}

[Peer]
PublicKey = c2VydmVy
Endpoint = vpn.example.com:51820
"""


def write_conf(directory, name, address):
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(PEER_TEMPLATE.format(address=address))
    return path


def test_parse_peer_address_reads_interface_section():
    assert parse_peer_address(PEER_TEMPLATE.format(address="10.8.0.2/32")) == "10.8.0.2/32"
    assert parse_peer_address(PEER_TEMPLATE.format(address="10.8.0.2")) == "10.8.0.2"


@pytest.mark.parametrize("address", ["$CLIENT_IP/32", "fd00::2/128", "not-an-ip"])
def test_parse_peer_address_rejects_unusable_values(address):
    assert parse_peer_address(PEER_TEMPLATE.format(address=address)) is None


def test_parse_peer_address_ignores_peer_section():
    content = "[Peer]\nAddress = 10.0.0.1/32\n"
    assert parse_peer_address(content) is None


def test_import_creates_available_encrypted_peers(db_session, tmp_path):
    write_conf(tmp_path, "a.conf", "10.8.0.2/32")
    write_conf(tmp_path, "nested/b.conf", "10.8.0.3/32")
    (tmp_path / "notes.txt").write_text("ignored")

    result = ImportService(db_session).import_configs(AuthContext.system(), str(tmp_path), KEY)

    assert result["files_imported"] == 2
    assert result["skipped"] == 0
    assert result["batch_id"]

    peers = db_session.query(Peer).order_by(Peer.public_key).all()
    assert [p.public_key for p in peers] == ["10.8.0.2/32", "10.8.0.3/32"]
    for peer in peers:
        assert peer.status == PeerStatus.AVAILABLE
        assert peer.owner_id is None
        assert peer.import_batch_id == result["batch_id"]
        assert "PrivateKey" not in peer.config_ciphertext
        assert crypto_service.decrypt(peer.config_ciphertext, KEY).startswith("[Interface]")

    batch = db_session.get(ImportBatch, result["batch_id"])
    assert batch.files_imported == 2

    event = db_session.query(AuditEvent).filter(AuditEvent.event_type == AuditEventType.IMPORT).one()
    assert event.subject_table == "import_batches"
    assert event.event_metadata == {
        "batch_id": result["batch_id"],
        "files_imported": 2,
        "files_skipped": 0,
        "total_files": 2,
    }


def test_reimport_skips_known_addresses(db_session, tmp_path):
    write_conf(tmp_path, "a.conf", "10.8.0.2/32")
    ImportService(db_session).import_configs(AuthContext.system(), str(tmp_path), KEY)

    write_conf(tmp_path, "b.conf", "10.8.0.3/32")
    write_conf(tmp_path, "c.conf", "10.8.0.3/32")
    result = ImportService(db_session).import_configs(AuthContext.system(), str(tmp_path), KEY)

    assert result["files_imported"] == 1
    assert result["skipped"] == 2
    assert db_session.query(Peer).count() == 2


def test_unparsable_files_are_not_imported(db_session, tmp_path):
    write_conf(tmp_path, "good.conf", "10.8.0.2/32")
    write_conf(tmp_path, "templated.conf", "$IP/32")

    result = ImportService(db_session).import_configs(AuthContext.system(), str(tmp_path), KEY)

    assert result["files_imported"] == 1
    assert result["skipped"] == 0


def test_empty_directory_creates_no_batch(db_session, tmp_path):
    result = ImportService(db_session).import_configs(AuthContext.system(), str(tmp_path), KEY)

    assert result == {"files_imported": 0, "batch_id": "", "skipped": 0}
    assert db_session.query(ImportBatch).count() == 0


def test_missing_directory_raises(db_session, tmp_path):
    with pytest.raises(ImportDirectoryError):
        ImportService(db_session).import_configs(AuthContext.system(), str(tmp_path / "missing"), KEY)


def test_invalid_key_fails_before_any_write(db_session, tmp_path):
    write_conf(tmp_path, "a.conf", "10.8.0.2/32")

    with pytest.raises(InvalidKey):
        ImportService(db_session).import_configs(AuthContext.system(), str(tmp_path), "abcd")
    assert db_session.query(ImportBatch).count() == 0


def test_missing_import_dir_setting_is_config_error(db_session):
    with pytest.raises(ConfigError):
        ImportService(db_session).import_configs(AuthContext.system(), None, KEY)
