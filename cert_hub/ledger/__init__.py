"""Ledger access: abstract client, sandbox and EVM implementations, settings-driven factory."""

from functools import cache

from django.conf import settings
from django.utils.module_loading import import_string

from cert_hub.ledger.base import LedgerClient, LedgerReceipt, LedgerStatus

__all__ = ["LedgerClient", "LedgerReceipt", "LedgerStatus", "get_ledger_client", "reset_ledger_client"]


def build_ledger_client(backend=None):
    # type: (str|None) -> LedgerClient
    """
    Construct a ledger client from settings.

    :param backend: Dotted path overriding ``CERT_HUB_LEDGER_BACKEND``
    :return: A new client instance
    """
    path = backend or settings.CERT_HUB_LEDGER_BACKEND
    cls = import_string(path)
    timeout = settings.CERT_HUB_LEDGER_TIMEOUT

    if path.endswith("EvmLedgerClient"):
        return cls(
            rpc_url=settings.CERT_HUB_RPC_URL,
            contract_address=settings.CERT_HUB_CONTRACT_ADDRESS,
            signer_key=settings.CERT_HUB_SIGNER_KEY,
            timeout=timeout,
            confirmations=settings.CERT_HUB_CONFIRMATIONS,
            from_block=settings.CERT_HUB_FROM_BLOCK,
            log_block_range=settings.CERT_HUB_LOG_BLOCK_RANGE,
        )
    if path.endswith("SandboxLedger"):
        return cls(timeout=timeout, admin=settings.CERT_HUB_SANDBOX_ADMIN)
    return cls(timeout=timeout)


@cache
def get_ledger_client():
    # type: () -> LedgerClient
    """
    Return the process-wide ledger client.

    One client per process: the sandbox keeps its state in memory and the EVM
    client pools its HTTP connection.
    """
    return build_ledger_client()


def reset_ledger_client():
    # type: () -> None
    """Drop the cached client (tests, settings changes)."""
    get_ledger_client.cache_clear()
