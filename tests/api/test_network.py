from api.utils.network import ip_allowed


def test_empty_allowlist_permits_everyone():
    assert ip_allowed("203.0.113.9", [])
    assert ip_allowed(None, ["", "  "])


def test_plain_and_cidr_entries():
    allow = ["54.187.174.169", "103.26.139.0/24"]
    assert ip_allowed("54.187.174.169", allow)
    assert ip_allowed("103.26.139.87", allow)
    assert not ip_allowed("103.26.140.1", allow)


def test_garbage_entries_are_skipped():
    assert ip_allowed("10.0.0.5", ["not-an-ip", "10.0.0.0/8"])
    assert not ip_allowed("10.0.0.5", ["not-an-ip"])


def test_missing_or_bad_remote_is_rejected():
    assert not ip_allowed(None, ["10.0.0.0/8"])
    assert not ip_allowed("unknown", ["10.0.0.0/8"])
