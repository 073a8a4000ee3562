"""
LedgerClient for an EVM CertificateRegistry contract over JSON-RPC (web3.py).

The engine signs with a single relay key (``CERT_HUB_SIGNER_KEY``) that holds
the contract's relayer role. Certificate writes go through the relayed entry
points, which take the acting issuer as an explicit argument: the contract
checks that address for the issuer role and records it as the issuer. Key
custody is outside this project; the key is only ever read from settings.

Error mapping:
  - connection errors, RPC timeouts, receipt wait timeouts -> LedgerUnavailableError
  - contract reverts, failed receipts, malformed calls     -> LedgerRejectedError
"""

import threading
import time
from contextlib import contextmanager

import requests
import structlog
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3Exception

from cert_hub.exceptions import LedgerRejectedError, LedgerUnavailableError
from cert_hub.ledger.base import (
    OP_GRANT_ISSUER_ROLE,
    OP_ISSUE_CERTIFICATE,
    OP_REVOKE_CERTIFICATE,
    OP_REVOKE_ISSUER_ROLE,
    Q_LIST_ANCHORED,
    Q_VERIFY_CERTIFICATE,
    LedgerClient,
)

logger = structlog.get_logger()

_POLL_INTERVAL = 0.5

# Subset of the CertificateRegistry ABI the engine calls
REGISTRY_ABI = [
    {
        "type": "function",
        "name": "issueCertificateFor",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "issuer", "type": "address"},
            {"name": "certHash", "type": "bytes32"},
            {"name": "student", "type": "address"},
            {"name": "aadhaarHash", "type": "bytes32"},
            {"name": "studentName", "type": "string"},
            {"name": "courseTitle", "type": "string"},
            {"name": "cid", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "revokeCertificateFor",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "issuer", "type": "address"},
            {"name": "certHash", "type": "bytes32"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "grantIssuerRole",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "revokeIssuerRole",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "isIssuer",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "verifyCertificate",
        "stateMutability": "view",
        "inputs": [{"name": "certHash", "type": "bytes32"}],
        "outputs": [
            {"name": "exists", "type": "bool"},
            {"name": "studentName", "type": "string"},
            {"name": "cid", "type": "string"},
            {"name": "issuer", "type": "address"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "revoked", "type": "bool"},
        ],
    },
    {
        "type": "event",
        "name": "CertificateIssued",
        "anonymous": False,
        "inputs": [
            {"name": "certHash", "type": "bytes32", "indexed": True},
            {"name": "student", "type": "address", "indexed": True},
            {"name": "issuer", "type": "address", "indexed": True},
        ],
    },
]


@contextmanager
def ledger_errors(op):
    """Translate web3 and transport failures raised inside the block into ledger errors."""
    try:
        yield
    except ContractLogicError as e:
        raise LedgerRejectedError(f"Contract reverted: {e}", operation=op) from e
    except (requests.exceptions.RequestException, TimeExhausted) as e:
        raise LedgerUnavailableError(f"Ledger unreachable: {e}", operation=op) from e
    except (Web3Exception, ValueError) as e:
        # BadFunctionCallOutput, ABI mismatches, malformed arguments
        raise LedgerRejectedError(f"Ledger call refused: {e}", operation=op) from e


class EvmLedgerClient(LedgerClient):
    """web3.py client for the CertificateRegistry contract."""

    def __init__(
        self,
        rpc_url,
        contract_address,
        signer_key,
        timeout=30.0,
        confirmations=1,
        from_block=0,
        log_block_range=2000,
    ):
        # type: (str, str, str, float, int, int, int) -> None
        """
        :param rpc_url: JSON-RPC endpoint of the node
        :param contract_address: Deployed CertificateRegistry address
        :param signer_key: Private key of the relay account
        :param timeout: Seconds any call may take, finality included
        :param confirmations: Blocks on top of the inclusion block before a write counts as final
        :param from_block: Block the contract was deployed in, where log scans start
        :param log_block_range: Largest block span requested per ``eth_getLogs`` call
        """
        super().__init__(timeout)
        self.confirmations = max(1, int(confirmations))
        self.from_block = int(from_block)
        self.log_block_range = max(1, int(log_block_range))
        self._w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": self.timeout}))
        self._contract = self._w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=REGISTRY_ABI)
        self._account = self._w3.eth.account.from_key(signer_key)
        # Issued-event logs of final blocks, in chain order, and the last block scanned
        self._anchored_logs = []  # type: list
        self._scanned_to = self.from_block - 1
        self._scan_lock = threading.Lock()

    @staticmethod
    def _bytes32(value):
        # type: (str) -> bytes
        return Web3.to_bytes(hexstr=value)

    @staticmethod
    def _address(value):
        # type: (str) -> str
        return Web3.to_checksum_address(value)

    def _build_call(self, op, args):
        # type: (str, dict) -> object
        """Map an engine operation to a bound contract function."""
        fns = self._contract.functions
        if op == OP_ISSUE_CERTIFICATE:
            return fns.issueCertificateFor(
                self._address(args["issuer"]),
                self._bytes32(args["content_hash"]),
                self._address(args["subject_wallet"]),
                self._bytes32(args["subject_identity_key"]),
                args.get("subject_name", ""),
                args.get("title", ""),
                args.get("content_ref", ""),
            )
        if op == OP_REVOKE_CERTIFICATE:
            return fns.revokeCertificateFor(self._address(args["issuer"]), self._bytes32(args["content_hash"]))
        if op == OP_GRANT_ISSUER_ROLE:
            return fns.grantIssuerRole(self._address(args["wallet"]))
        if op == OP_REVOKE_ISSUER_ROLE:
            return fns.revokeIssuerRole(self._address(args["wallet"]))
        raise LedgerRejectedError(f"Unsupported operation: {op}", operation=op)

    def submit_transaction(self, op, args):
        # type: (str, dict) -> str
        with ledger_errors(op):
            call = self._build_call(op, args)
            tx = call.build_transaction(
                {
                    "from": self._account.address,
                    "nonce": self._w3.eth.get_transaction_count(self._account.address, "pending"),
                }
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)

        tx_ref = Web3.to_hex(tx_hash)
        logger.info("ledger_tx_submitted", op=op, tx_ref=tx_ref)
        return tx_ref

    def await_finality(self, tx_ref):
        # type: (str) -> str
        deadline = time.monotonic() + self.timeout
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_ref, timeout=self.timeout, poll_latency=_POLL_INTERVAL
            )
            if receipt["status"] != 1:
                raise LedgerRejectedError(f"Transaction failed on-chain: {tx_ref}", operation="awaitFinality")

            block_number = receipt["blockNumber"]
            target = block_number + self.confirmations - 1
            while self._w3.eth.block_number < target:
                if time.monotonic() > deadline:
                    raise LedgerUnavailableError(
                        f"Timed out waiting for {self.confirmations} confirmations of {tx_ref}",
                        operation="awaitFinality",
                    )
                time.sleep(_POLL_INTERVAL)
        except (TimeExhausted, TransactionNotFound, requests.exceptions.RequestException) as e:
            raise LedgerUnavailableError(f"Finality not confirmed: {e}", operation="awaitFinality") from e

        return str(block_number)

    def query_state(self, op, args):
        # type: (str, dict) -> object
        with ledger_errors(op):
            if op == Q_VERIFY_CERTIFICATE:
                return self._verify_state(args["content_hash"])
            if op == Q_LIST_ANCHORED:
                return self._list_anchored(int(args.get("offset", 0)), args.get("limit"))
        raise LedgerRejectedError(f"Unsupported query: {op}", operation=op)

    def _verify_state(self, content_hash):
        # type: (str) -> dict
        exists, name, cid, issuer, timestamp, revoked = self._contract.functions.verifyCertificate(
            self._bytes32(content_hash)
        ).call()
        if not exists:
            return {"exists": False}
        return {
            "exists": True,
            "subject_name": name,
            "content_ref": cid,
            "issuer": issuer.lower(),
            "timestamp": int(timestamp),
            "revoked": bool(revoked),
        }

    def _latest_block(self):
        # type: () -> int
        return self._w3.eth.block_number

    def _fetch_issued_logs(self, start, end):
        # type: (int, int) -> list
        return list(self._contract.events.CertificateIssued.get_logs(from_block=start, to_block=end))

    def _scan_issued_logs(self):
        # type: () -> list
        """
        Extend the cached issued-event logs up to the newest final block.

        Only blocks past the previous scan are requested, in spans of at most
        ``log_block_range`` blocks.
        """
        with self._scan_lock:
            final = self._latest_block() - self.confirmations + 1
            start = self._scanned_to + 1
            while start <= final:
                end = min(start + self.log_block_range - 1, final)
                self._anchored_logs.extend(self._fetch_issued_logs(start, end))
                self._scanned_to = end
                start = end + 1
            return list(self._anchored_logs)

    def _list_anchored(self, offset, limit):
        # type: (int, int|None) -> list[dict]
        """Reconstruct anchored certificates from CertificateIssued logs."""
        logs = self._scan_issued_logs()[offset:]
        if limit:
            logs = logs[: int(limit)]

        entries = []
        for log in logs:
            content_hash = Web3.to_hex(log["args"]["certHash"])
            state = self._verify_state(content_hash)
            state.update(
                {
                    "content_hash": content_hash,
                    "subject_wallet": log["args"]["student"].lower(),
                    "tx_ref": Web3.to_hex(log["transactionHash"]),
                    "block_ref": str(log["blockNumber"]),
                }
            )
            entries.append(state)
        return entries

    def has_role(self, wallet):
        # type: (str) -> bool
        with ledger_errors("hasRole"):
            return bool(self._contract.functions.isIssuer(self._address(wallet)).call())

    def health(self):
        # type: () -> dict
        try:
            connected = self._w3.is_connected()
        except requests.exceptions.RequestException:
            connected = False
        return {"backend": type(self).__name__, "available": connected}
