"""
Tests for the web3.py ledger client that need no node: call building, error mapping, log scanning.
"""

import pytest
import requests
from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, TimeExhausted

from cert_hub.exceptions import LedgerRejectedError, LedgerUnavailableError
from cert_hub.ledger.base import (
    OP_GRANT_ISSUER_ROLE,
    OP_ISSUE_CERTIFICATE,
    OP_REVOKE_CERTIFICATE,
    Q_LIST_ANCHORED,
    Q_VERIFY_CERTIFICATE,
)
from cert_hub.ledger.evm import EvmLedgerClient, ledger_errors
from tests.conftest import ISSUER_WALLET, STUDENT_WALLET

CONTRACT = "0x" + "12" * 20
SIGNER_KEY = "0x" + "4c" * 32
HASH_1 = "0x" + "11" * 32
SUBJECT_KEY = "0x" + "5a" * 32


@pytest.fixture
def evm():
    # HTTPProvider connects lazily, nothing here touches the network
    return EvmLedgerClient("http://127.0.0.1:8545", CONTRACT, SIGNER_KEY, timeout=1.0, log_block_range=1000)


def issued_log(block):
    return {
        "args": {"certHash": block.to_bytes(32, "big"), "student": Web3.to_checksum_address(STUDENT_WALLET)},
        "transactionHash": bytes(31) + b"\x01",
        "blockNumber": block,
    }


@pytest.fixture
def chain(evm, monkeypatch):
    """Fake chain head and log source recording every requested block span."""
    state = {"head": 0, "spans": [], "logs": {}}

    def fetch(start, end):
        state["spans"].append((start, end))
        return [log for block, log in sorted(state["logs"].items()) if start <= block <= end]

    monkeypatch.setattr(evm, "_latest_block", lambda: state["head"])
    monkeypatch.setattr(evm, "_fetch_issued_logs", fetch)
    monkeypatch.setattr(evm, "_verify_state", lambda content_hash: {"exists": True, "revoked": False})
    return state


def test_issue_call_carries_issuer(evm):
    call = evm._build_call(
        OP_ISSUE_CERTIFICATE,
        {
            "content_hash": HASH_1,
            "subject_wallet": STUDENT_WALLET,
            "subject_identity_key": SUBJECT_KEY,
            "subject_name": "Asha Rao",
            "title": "Distributed Systems",
            "content_ref": "",
            "issuer": ISSUER_WALLET,
        },
    )
    assert call.fn_name == "issueCertificateFor"
    assert call.args[0] == Web3.to_checksum_address(ISSUER_WALLET)
    assert call.args[1] == Web3.to_bytes(hexstr=HASH_1)


def test_revoke_call_carries_issuer(evm):
    call = evm._build_call(OP_REVOKE_CERTIFICATE, {"content_hash": HASH_1, "issuer": ISSUER_WALLET})
    assert call.fn_name == "revokeCertificateFor"
    assert call.args == (Web3.to_checksum_address(ISSUER_WALLET), Web3.to_bytes(hexstr=HASH_1))


def test_role_call(evm):
    call = evm._build_call(OP_GRANT_ISSUER_ROLE, {"wallet": ISSUER_WALLET})
    assert call.fn_name == "grantIssuerRole"


def test_unsupported_operation(evm):
    with pytest.raises(LedgerRejectedError):
        evm._build_call("mintToken", {})


@pytest.mark.parametrize(
    "error, expected",
    [
        (requests.exceptions.ConnectionError("refused"), LedgerUnavailableError),
        (requests.exceptions.ReadTimeout("slow"), LedgerUnavailableError),
        (TimeExhausted("no receipt"), LedgerUnavailableError),
        (ContractLogicError("execution reverted"), LedgerRejectedError),
        (BadFunctionCallOutput("empty return data"), LedgerRejectedError),
        (ValueError("bad address"), LedgerRejectedError),
    ],
)
def test_ledger_errors_mapping(error, expected):
    with pytest.raises(expected) as exc_info:
        with ledger_errors("verifyCertificate"):
            raise error
    assert exc_info.value.__cause__ is error


def test_query_state_maps_web3_errors(evm, monkeypatch):
    def timeout(content_hash):
        raise TimeExhausted("rpc timeout")

    monkeypatch.setattr(evm, "_verify_state", timeout)
    with pytest.raises(LedgerUnavailableError):
        evm.query_state(Q_VERIFY_CERTIFICATE, {"content_hash": HASH_1})

    def no_contract(content_hash):
        raise BadFunctionCallOutput("no code at address")

    monkeypatch.setattr(evm, "_verify_state", no_contract)
    with pytest.raises(LedgerRejectedError):
        evm.query_state(Q_VERIFY_CERTIFICATE, {"content_hash": HASH_1})


def test_list_anchored_scans_in_bounded_spans(evm, chain):
    chain["head"] = 2500
    chain["logs"] = {10: issued_log(10), 1500: issued_log(1500), 2500: issued_log(2500)}

    entries = evm.query_state(Q_LIST_ANCHORED, {"offset": 0, "limit": 100})

    assert chain["spans"] == [(0, 999), (1000, 1999), (2000, 2500)]
    assert [e["block_ref"] for e in entries] == ["10", "1500", "2500"]
    assert entries[0]["content_hash"] == Web3.to_hex((10).to_bytes(32, "big"))
    assert entries[0]["subject_wallet"] == STUDENT_WALLET


def test_list_anchored_only_scans_new_blocks(evm, chain):
    chain["head"] = 1200
    chain["logs"] = {5: issued_log(5)}
    evm.query_state(Q_LIST_ANCHORED, {"offset": 0, "limit": 100})
    chain["spans"].clear()

    chain["head"] = 1300
    chain["logs"][1250] = issued_log(1250)
    page = evm.query_state(Q_LIST_ANCHORED, {"offset": 1, "limit": 100})

    assert chain["spans"] == [(1201, 1300)]
    assert [e["block_ref"] for e in page] == ["1250"]


def test_list_anchored_paging(evm, chain):
    chain["head"] = 50
    chain["logs"] = {block: issued_log(block) for block in range(1, 6)}

    assert [e["block_ref"] for e in evm.query_state(Q_LIST_ANCHORED, {"offset": 1, "limit": 2})] == ["2", "3"]
    assert evm.query_state(Q_LIST_ANCHORED, {"offset": 5, "limit": 2}) == []
    assert chain["spans"] == [(0, 50)]


def test_list_anchored_waits_for_confirmations(chain, evm):
    evm.confirmations = 3
    chain["head"] = 100
    chain["logs"] = {99: issued_log(99)}

    assert evm.query_state(Q_LIST_ANCHORED, {"offset": 0, "limit": 10}) == []
    assert chain["spans"] == [(0, 98)]
