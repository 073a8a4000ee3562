"""
Identity registry: one identity key bound to exactly one wallet.

Both uniqueness rules are unique constraints on ``cert_identity``; conflicts
surface as ``IntegrityError`` and are translated here, never leaked.
"""

import structlog
from django.db import IntegrityError, transaction

from cert_hub.audit import append_event
from cert_hub.exceptions import (
    ConflictError,
    DuplicateIdentityError,
    DuplicateWalletError,
    InvalidInputError,
    NotFoundError,
    WalletInUseError,
)
from cert_hub.models import AuditEvent, Identity
from cert_hub.validators import validate_identity_key, validate_name, validate_wallet

logger = structlog.get_logger()


class IdentityRegistry:
    """Owner of ``Identity`` rows."""

    def __init__(self, using="default"):
        # type: (str) -> None
        """
        :param using: Database alias (the injected storage handle)
        """
        self.using = using

    @property
    def objects(self):
        return Identity.objects.using(self.using)

    def register(self, identity_key, name, wallet):
        # type: (str, str, str) -> Identity
        """
        Bind an identity key to a wallet.

        :param identity_key: Derived identity key (never the raw number)
        :param name: Display name
        :param wallet: Wallet address
        :return: The new identity
        :raises DuplicateIdentityError: If the key is already registered (to any wallet)
        :raises DuplicateWalletError: If the wallet is bound to a different key
        """
        identity_key = validate_identity_key(identity_key)
        name = validate_name(name, "display_name")
        wallet = validate_wallet(wallet)

        try:
            with transaction.atomic(using=self.using):
                identity = self.objects.create(identity_key=identity_key, display_name=name, wallet_address=wallet)
                append_event(
                    AuditEvent.Kind.IDENTITY_REGISTERED,
                    identity_key,
                    actor=wallet,
                    detail={"display_name": name, "wallet_address": wallet},
                    using=self.using,
                )
        except IntegrityError as e:
            raise self._translate_conflict(e, identity_key, wallet) from e

        logger.info("identity_registered", identity_key=identity_key, wallet=wallet)
        return identity

    def _translate_conflict(self, error, identity_key, wallet):
        # type: (IntegrityError, str, str) -> ConflictError
        """Map a unique constraint violation to the matching conflict error."""
        if self.objects.filter(identity_key=identity_key).exists():
            return DuplicateIdentityError(f"Identity already registered: {identity_key}")
        if self.objects.filter(wallet_address=wallet).exists():
            return DuplicateWalletError(f"Wallet already bound to another identity: {wallet}")

        # Row vanished between failure and lookup, fall back to the constraint name
        message = str(error).lower()
        if "identity_key" in message:
            return DuplicateIdentityError(f"Identity already registered: {identity_key}")
        if "wallet_address" in message:
            return DuplicateWalletError(f"Wallet already bound to another identity: {wallet}")
        return ConflictError(f"Identity registration conflict: {error}")

    def lookup(self, identity_key):
        # type: (str) -> Identity
        """
        :raises NotFoundError: If no identity has this key
        """
        identity_key = validate_identity_key(identity_key)
        identity = self.objects.filter(identity_key=identity_key).first()
        if identity is None:
            raise NotFoundError(
                f"Identity not found: {identity_key}", resource_type="identity", resource_id=identity_key
            )
        return identity

    def lookup_by_wallet(self, wallet):
        # type: (str) -> Identity
        """
        :raises NotFoundError: If no identity is bound to this wallet
        """
        wallet = validate_wallet(wallet)
        identity = self.objects.filter(wallet_address=wallet).first()
        if identity is None:
            raise NotFoundError(f"No identity bound to wallet: {wallet}", resource_type="identity", resource_id=wallet)
        return identity

    def migrate_wallet(self, identity_key, new_wallet):
        # type: (str, str) -> Identity
        """
        Atomically move an identity to a new wallet, keeping its identity key.

        :raises NotFoundError: If the identity is unknown
        :raises InvalidInputError: If the new wallet equals the current one
        :raises WalletInUseError: If the new wallet is bound to another identity
        """
        identity_key = validate_identity_key(identity_key)
        new_wallet = validate_wallet(new_wallet, "new_wallet")

        with transaction.atomic(using=self.using):
            identity = self.objects.select_for_update().filter(identity_key=identity_key).first()
            if identity is None:
                raise NotFoundError(
                    f"Identity not found: {identity_key}", resource_type="identity", resource_id=identity_key
                )
            old_wallet = identity.wallet_address
            if old_wallet == new_wallet:
                raise InvalidInputError("New wallet equals the current wallet", field="new_wallet")

            identity.wallet_address = new_wallet
            try:
                with transaction.atomic(using=self.using):
                    identity.save(using=self.using, update_fields=["wallet_address", "updated_at"])
            except IntegrityError as e:
                raise WalletInUseError(f"Wallet already bound to another identity: {new_wallet}") from e

            append_event(
                AuditEvent.Kind.WALLET_MIGRATED,
                identity_key,
                actor=old_wallet,
                detail={"old_wallet": old_wallet, "new_wallet": new_wallet},
                using=self.using,
            )

        logger.info("identity_wallet_migrated", identity_key=identity_key, old_wallet=old_wallet, new_wallet=new_wallet)
        return identity
