"""Services for the deployer."""

from deployer.services.ai_service import AIService, get_ai_service
from deployer.services.metadata_service import MetadataService, get_metadata_service

__all__ = [
    "AIService",
    "get_ai_service",
    "MetadataService",
    "get_metadata_service",
]
