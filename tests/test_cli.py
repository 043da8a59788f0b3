"""Tests for the command-line interface (fulfillment_kernel/cli.py)."""

import json
from uuid import uuid4

import pytest

from fulfillment_kernel.cli import build_parser, main


@pytest.fixture
def cli(tmp_path, capsys):
    """Run the CLI against a fresh SQLite file; returns (exit code, stdout JSON or stderr error)."""
    url = f"sqlite:///{tmp_path / 'cli.db'}"

    def _run(*args):
        code = main(["--database-url", url, *args])
        out, err = capsys.readouterr()
        if code == 0:
            return code, json.loads(out)
        return code, json.loads(err.strip().splitlines()[-1])

    assert _run("init-db") == (0, {"status": "ok"})
    return _run


def test_add_and_stock(cli):
    product, seller = str(uuid4()), str(uuid4())

    code, item = cli(
        "add", "--product", product, "--seller", seller,
        "--type", "license_key", "--payload", '{"key": "AAAA-BBBB"}', "--label", "promo",
    )
    assert code == 0
    assert item["item_type"] == "license_key"
    assert item["label"] == "promo"
    assert item["is_assigned"] is False

    code, stock = cli("stock", "--product", product, "--type", "license_key")
    assert code == 0
    assert (stock["available"], stock["assigned"], stock["total"]) == (1, 0, 1)


def test_import_from_file(cli, tmp_path):
    product, seller = str(uuid4()), str(uuid4())
    source = tmp_path / "accounts.txt"
    source.write_text("a@x.com:pw1\nnot an account\nb@x.com|pw2\n")

    code, result = cli(
        "import", "--product", product, "--seller", seller, "--type", "account", "--file", str(source),
    )
    assert code == 0
    assert result["created"] == 2
    assert result["skipped"] == 1
    assert result["skipped_lines"][0]["line_number"] == 2


def test_claim_and_reveal(cli):
    product, seller = str(uuid4()), str(uuid4())
    cli("add", "--product", product, "--seller", seller, "--type", "license_key", "--payload", '{"key": "K-1"}')

    order, buyer = str(uuid4()), str(uuid4())
    code, record = cli("claim", "--order", order, "--buyer", buyer, "--product", product, "--type", "license_key")
    assert code == 0
    assert record["is_delivered"] is True
    assert record["order_id"] == order
    assert record["delivered_data"] == {"key": "K-1"}

    code, revealed = cli("reveal", "--delivered-id", record["id"])
    assert code == 0
    assert revealed["is_revealed"] is True


def test_claim_out_of_stock(cli):
    code, signal = cli(
        "claim", "--order", str(uuid4()), "--buyer", str(uuid4()), "--product", str(uuid4()), "--type", "account",
    )
    assert code == 0
    assert signal["is_delivered"] is False
    assert signal["status"] == "pending_manual"
    assert signal["reason"] == "pool_exhausted"


def test_seller_low_stock(cli):
    product, seller = str(uuid4()), str(uuid4())
    cli("add", "--product", product, "--seller", seller, "--type", "license_key", "--payload", '{"key": "K"}')

    code, levels = cli("stock", "--seller", seller)
    assert code == 0
    assert [(lvl["product_id"], lvl["available"]) for lvl in levels] == [(product, 1)]


def test_validation_error_reported(cli):
    code, error = cli(
        "add", "--product", str(uuid4()), "--seller", str(uuid4()),
        "--type", "account", "--payload", '{"email": "a@x.com"}',
    )
    assert code == 2
    assert error["error"] == "VALIDATION_FAILED"
    assert "password" in error["message"]


def test_invalid_json_payload(cli):
    code, error = cli(
        "add", "--product", str(uuid4()), "--seller", str(uuid4()),
        "--type", "license_key", "--payload", "{not json",
    )
    assert code == 2
    assert error["error"] == "VALIDATION_FAILED"


def test_reveal_unknown(cli):
    code, error = cli("reveal", "--delivered-id", str(uuid4()))
    assert code == 2
    assert error["error"] == "DELIVERED_ITEM_NOT_FOUND"


def test_bad_uuid_rejected_by_parser():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["reveal", "--delivered-id", "nope"])
