"""
MS Graph client setup over an explicit credential.
"""

from azure.core.credentials import TokenCredential
from msgraph import GraphServiceClient

from core.config import GRAPH_DEFAULT_SCOPE


def build_graph_client(credential: TokenCredential) -> GraphServiceClient:
    """Create an MS Graph client that authenticates every request with credential."""
    return GraphServiceClient(credentials=credential, scopes=[GRAPH_DEFAULT_SCOPE])
