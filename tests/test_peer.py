import ipaddress

import pytest

from peerman.errors import ProtocolError
from peerman.mesh.peer import (
    PeerEntry,
    PeerSnapshot,
    has_trusted_router,
    is_link_local,
    uri_address,
)
from tests.conftest import OTHER_KEY, TRUSTED_KEY, make_snapshot


TRUSTED = {TRUSTED_KEY}


def test_link_local_trusted_peer_is_a_router():
    snapshot = make_snapshot(("tcp://[fe80::1]:1", TRUSTED_KEY, True))
    assert has_trusted_router(snapshot, TRUSTED)


def test_ipv4_link_local_counts():
    snapshot = make_snapshot(("tcp://169.254.10.20:9001", TRUSTED_KEY, True))
    assert has_trusted_router(snapshot, TRUSTED)


def test_zone_id_in_uri_is_understood():
    snapshot = make_snapshot(("tls://[fe80::aa:bb%25wlan0]:9001?key=x", TRUSTED_KEY, True))
    assert has_trusted_router(snapshot, TRUSTED)


def test_empty_snapshot_has_no_router():
    assert not has_trusted_router(PeerSnapshot(), TRUSTED)


def test_untrusted_link_local_peer_does_not_count():
    snapshot = make_snapshot(("tcp://[fe80::1]:1", OTHER_KEY, True))
    assert not has_trusted_router(snapshot, TRUSTED)


def test_trusted_peer_on_global_address_does_not_count():
    snapshot = make_snapshot(
        ("tcp://[2001:db8::1]:1", TRUSTED_KEY, True),
        ("tcp://192.168.1.1:1", TRUSTED_KEY, True),
    )
    assert not has_trusted_router(snapshot, TRUSTED)


def test_down_peers_never_count():
    snapshot = make_snapshot(("tcp://[fe80::1]:1", TRUSTED_KEY, False))
    assert not has_trusted_router(snapshot, TRUSTED)


def test_hostname_peers_never_count():
    snapshot = make_snapshot(("tcp://router.local:9001", TRUSTED_KEY, True))
    assert not has_trusted_router(snapshot, TRUSTED)


def test_one_match_wins_regardless_of_other_entries():
    snapshot = make_snapshot(
        ("tcp://router.local:9001", TRUSTED_KEY, True),
        ("tcp://[fe80::2]:1", TRUSTED_KEY, False),
        ("tcp://[fe80::3]:1", OTHER_KEY, True),
        ("tcp://[fe80::1]:1", TRUSTED_KEY, True),
        ("tcp://8.8.8.8:1", OTHER_KEY, True),
    )
    assert has_trusted_router(snapshot, TRUSTED)


def test_no_trusted_keys_means_no_router():
    snapshot = make_snapshot(("tcp://[fe80::1]:1", TRUSTED_KEY, True))
    assert not has_trusted_router(snapshot, [])


def test_bogus_uri_from_node_is_protocol_error():
    snapshot = make_snapshot(("tcp://[fe80::1:1", TRUSTED_KEY, True))
    with pytest.raises(ProtocolError):
        has_trusted_router(snapshot, TRUSTED)


def test_uri_address():
    assert uri_address("tcp://1.2.3.4:5") == ipaddress.ip_address("1.2.3.4")
    assert uri_address("tcp://example.com:5") is None
    assert uri_address("") is None


def test_ipv4_mapped_link_local():
    assert is_link_local(ipaddress.ip_address("::ffff:169.254.1.1"))
    assert not is_link_local(ipaddress.ip_address("::ffff:10.0.0.1"))


def test_snapshot_membership_is_exact_uri_match():
    snapshot = make_snapshot(("tcp://2.2.2.2:1", OTHER_KEY, True))
    assert "tcp://2.2.2.2:1" in snapshot
    assert "tcp://2.2.2.2:1?key=abc" not in snapshot
    assert "tcp://2.2.2.2:2" not in snapshot


def test_snapshot_is_immutable():
    snapshot = make_snapshot(("tcp://2.2.2.2:1", OTHER_KEY, True))
    with pytest.raises(AttributeError):
        snapshot.peers = ()
    with pytest.raises(AttributeError):
        snapshot.peers[0].up = False


def test_entry_accepts_both_field_spellings():
    newer = PeerEntry.from_dict({"remote": "tcp://a:1", "key": TRUSTED_KEY, "up": True})
    older = PeerEntry.from_dict({"uri": "tcp://a:1", "publicKey": TRUSTED_KEY, "up": True})
    assert newer == older


def test_entry_rejects_wrong_types():
    with pytest.raises(ProtocolError):
        PeerEntry.from_dict({"remote": 5})
    with pytest.raises(ProtocolError):
        PeerEntry.from_dict({"remote": "tcp://a:1", "up": "yes"})


def test_null_peer_list_is_empty():
    assert len(PeerSnapshot.from_response({"peers": None})) == 0
