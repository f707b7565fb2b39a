"""
Wiring of stores, collaborators and services from the application configuration.
"""

from typing import Optional

from ..models.core import User, UserPreferences
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import AppConfig, validate_config
from ..utils.flat_file import FlatFileWriter
from ..utils.graph_store import GraphStore
from ..utils.logging_config import get_logger
from ..utils.memory_store import InMemoryGraphStore
from ..utils.neptune_store import NeptuneGraphStore
from ..utils.timestamp_utils import now_seconds
from .conversation import ConversationService
from .ingestion import IngestionPipeline
from .label_extraction import LabelExtractionService
from .topic_normalizer import TopicNormalizer

logger = get_logger(__name__)


def build_store(app_config: AppConfig) -> Optional[GraphStore]:
    """
    Create the configured graph store.

    Returns:
        The store, or None for the flat-file backend

    Raises:
        ConfigurationError: If the Neptune settings or credentials are missing
        ConnectivityError: If Neptune cannot be reached
    """
    logger.info(f'Using graph backend: {app_config.graph_backend}')
    if app_config.graph_backend == 'jsonl':
        return None
    if app_config.graph_backend == 'memory':
        return InMemoryGraphStore()

    return NeptuneGraphStore(app_config.neptune)


def build_pipeline(app_config: AppConfig, store: GraphStore) -> IngestionPipeline:
    normalizer = TopicNormalizer(app_config.ingestion.vocabulary)
    return IngestionPipeline(store, normalizer, app_config.ingestion)


def build_conversation(app_config: AppConfig,
                       user_id: str,
                       name: str,
                       preferences: Optional[UserPreferences] = None) -> ConversationService:
    """
    Validate the configuration and assemble a chat session.

    Raises:
        ConfigurationError: If the configuration is invalid
        ConnectivityError: If the graph store cannot be reached
    """
    validate_config(app_config)

    store = build_store(app_config)
    pipeline = build_pipeline(app_config, store) if store is not None else None
    flat_file = FlatFileWriter(app_config.chat.flat_file_path) if store is None else None

    llm = BedrockLLM(app_config.bedrock_llm)
    now = now_seconds()
    user = User(id=user_id, name=name, created_at=now, last_active=now, preferences=preferences or UserPreferences())

    return ConversationService(user=user,
                               embedder=BedrockEmbed(app_config.bedrock_embed),
                               labeler=LabelExtractionService(llm),
                               chat=llm,
                               vocabulary=app_config.ingestion.vocabulary,
                               pipeline=pipeline,
                               flat_file=flat_file,
                               system_prompt=app_config.chat.system_prompt,
                               history_limit=app_config.chat.history_limit)
