"""
MCP Interface Layer using fastmcp for agent orchestration.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from .models.core import User
from .services.factory import build_pipeline, build_store
from .services.ingestion import IngestionPipeline
from .utils.config import config, validate_config
from .utils.errors import ConfigurationError, IngestionError
from .utils.logging_config import get_logger
from .utils.timestamp_utils import now_seconds

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Chat Graph')

_pipeline: Optional[IngestionPipeline] = None


def get_pipeline() -> IngestionPipeline:
    """Build the ingestion pipeline on first use."""
    global _pipeline
    if _pipeline is None:
        validate_config(config)
        store = build_store(config)
        if store is None:
            raise ConfigurationError('The MCP interface needs a graph store; GRAPH_BACKEND=jsonl is not supported')
        _pipeline = build_pipeline(config, store)
    return _pipeline


def ingest_message(user_id: str, sender: str, content: str, embedding: Optional[List[float]] = None,
                   topics: str = '') -> Dict[str, Any]:
    """Record a chat turn in the knowledge graph.

    Args:
        user_id: Owner of the message (ignored in the global-scope deployment)
        sender: 'human' or 'ai'
        content: Message text
        embedding: Precomputed embedding, empty if unavailable
        topics: Raw comma-separated topic labels

    Returns:
        Dict with message_id, edges_created, candidates_scanned and topics

    Raises:
        Exception: If the message could not be recorded
    """
    if not content or not content.strip():
        raise ValueError('Content is required')

    pipeline = get_pipeline()
    try:
        if pipeline.user_scoped:
            if not user_id or not user_id.strip():
                raise ValueError('User ID is required')
            now = now_seconds()
            pipeline.store.ensure_user(User(id=user_id, name=user_id, created_at=now, last_active=now))

        result = pipeline.ingest(sender=sender,
                                 content=content,
                                 owner_id=user_id or None,
                                 embedding=embedding or [],
                                 raw_topic_text=topics)

        logger.debug(f'MCP ingested message {result.message_id} for user {user_id}')
        return {
            'message_id': result.message_id,
            'edges_created': result.edges_created,
            'candidates_scanned': result.candidates_scanned,
            'topics': result.topics,
        }

    except IngestionError as e:
        logger.error(f'Ingestion error in MCP ingest: {e}')
        raise Exception(f'Message ingestion failed: {e}')


def related_messages(message_id: str) -> List[Dict[str, Any]]:
    """List the messages linked to a message by contextual similarity.

    Args:
        message_id: Message to start from

    Returns:
        List of dicts with message_id, similarity, sender and content, most similar first
    """
    if not message_id or not message_id.strip():
        raise ValueError('Message ID is required')

    store = get_pipeline().store
    related = []
    for link in store.get_links(message_id):
        other = store.get_message(link.message_id_2)
        related.append({
            'message_id': link.message_id_2,
            'similarity': link.similarity,
            'sender': other.sender if other else None,
            'content': other.content if other else None,
        })

    related.sort(key=lambda item: item['similarity'], reverse=True)
    return related


mcp.tool()(ingest_message)
mcp.tool()(related_messages)

if __name__ == '__main__':
    mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)
