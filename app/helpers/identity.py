from azure.identity.aio import DefaultAzureCredential

from app.helpers.cache import lru_acache
from app.helpers.http import azure_transport


@lru_acache()
async def credential() -> DefaultAzureCredential:
    """
    Get the Azure credential, from the environment, a managed identity or the CLI.

    Object is cached for performance.
    """
    return DefaultAzureCredential(
        # Performance
        transport=await azure_transport(),
    )
