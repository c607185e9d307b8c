"""Invoice engine configuration."""

from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    """
    Invoice engine configuration.

    Defaults match production. Secrets (database URL, email gateway
    credentials) are not configuration and live in Vault.
    """

    # Quota
    free_tier_invoice_limit: int = Field(
        default=10,
        description="Invoices a free-tier organization may create",
        ge=0,
    )

    # Numbering
    invoice_number_width: int = Field(
        default=4,
        description="Zero-padded width of the counter part of automatic numbers",
        ge=1,
        le=12,
    )
    number_allocation_attempts: int = Field(
        default=5,
        description="Compare-and-swap attempts before giving up on a counter increment",
        ge=1,
        le=50,
    )

    # Invoices
    default_currency: str = Field(
        default="SEK",
        description="Currency used when an invoice does not specify one",
        min_length=3,
        max_length=3,
    )

    # Notifications
    payment_confirmation_enabled: bool = Field(
        default=True,
        description="Send a confirmation email to the client after each payment",
    )
    app_name: str = Field(
        default="Invoicing",
        description="Application name used in outgoing email",
    )
