# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    VaultError,
    get_database_url,
    get_email_config,
)
from clients.postgres_client import PostgresClient
from clients.email_client import EmailGatewayClient, EmailGatewayError
