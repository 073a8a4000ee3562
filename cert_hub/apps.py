from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from cert_hub.telemetry import configure_logging


class CertHubConfig(AppConfig):
    # type: (None) -> None
    """Configuration for the CERT-HUB Django app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "cert_hub"
    verbose_name = "CERT-HUB"

    def ready(self):
        # type: () -> None
        """Perform app initialization when Django starts."""
        configure_logging(
            level=getattr(settings, "CERT_HUB_LOG_LEVEL", "INFO"),
            json_output=getattr(settings, "CERT_HUB_LOG_JSON", False),
        )
        self.validate_ledger_backend()
        self.validate_ledger_timeout()

    def validate_ledger_backend(self):
        # type: () -> None
        """Validate that the configured ledger backend is importable and EVM settings are complete."""
        backend = getattr(settings, "CERT_HUB_LEDGER_BACKEND", None)

        if not backend:
            raise ImproperlyConfigured("CERT_HUB_LEDGER_BACKEND is not configured in settings")

        try:
            import_string(backend)
        except ImportError as e:
            raise ImproperlyConfigured(f"CERT_HUB_LEDGER_BACKEND cannot be imported: {backend}") from e

        if backend.endswith("EvmLedgerClient"):
            for name in ("CERT_HUB_RPC_URL", "CERT_HUB_CONTRACT_ADDRESS", "CERT_HUB_SIGNER_KEY"):
                if not getattr(settings, name, ""):
                    raise ImproperlyConfigured(f"{name} is required for the EVM ledger backend")

    def validate_ledger_timeout(self):
        # type: () -> None
        """Validate that ledger calls have a positive timeout."""
        timeout = getattr(settings, "CERT_HUB_LEDGER_TIMEOUT", None)

        if not isinstance(timeout, int | float):
            raise ImproperlyConfigured(
                f"CERT_HUB_LEDGER_TIMEOUT must be a number, got {type(timeout).__name__}"
            )

        if timeout <= 0:
            raise ImproperlyConfigured(f"CERT_HUB_LEDGER_TIMEOUT must be positive, got {timeout}")
