import hashlib

import pytest

from cleandispatch.webhook_security import (
    amounts_match,
    compute_midtrans_signature,
    missing_midtrans_fields,
    verify_midtrans_signature,
)

from _helper import SERVER_KEY, midtrans_payload


def test_signature_is_sha512_of_concatenated_fields():
    expected = hashlib.sha512(b"ORDER-1200106000.00" + SERVER_KEY.encode()).hexdigest()

    assert compute_midtrans_signature("ORDER-1", "200", "106000.00", SERVER_KEY) == expected


def test_valid_signature_verifies():
    assert verify_midtrans_signature(midtrans_payload("ORDER-1", "106000.00"), SERVER_KEY)


def test_signature_with_wrong_key_fails():
    assert not verify_midtrans_signature(midtrans_payload("ORDER-1", "106000.00"), "another-key")


def test_unconfigured_server_key_rejects_everything():
    assert not verify_midtrans_signature(midtrans_payload("ORDER-1", "106000.00"), "")


def test_missing_fields_are_reported():
    assert missing_midtrans_fields({"order_id": "ORDER-1", "status_code": "200"}) == [
        "gross_amount",
        "signature_key",
        "transaction_status",
    ]


@pytest.mark.parametrize(
    "a, b, expected",
    [("106000.00", 106000, True), ("106000", "106000.0", True), ("105999.99", 106000, False), ("abc", 1, False)],
)
def test_amount_comparison(a, b, expected):
    assert amounts_match(a, b) is expected
