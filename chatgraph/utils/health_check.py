"""
Health check utilities for the application.
"""

import os
from typing import Any, Dict, Optional

from .bedrock_embed import BedrockEmbed
from .bedrock_llm import BedrockLLM
from .config import AppConfig
from .logging_config import get_logger
from .memory_store import InMemoryGraphStore
from .neptune_store import NeptuneGraphStore

logger = get_logger(__name__)


def check_health(app_config: Optional[AppConfig] = None) -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status(app_config)

        # Check if all components are healthy
        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            logger.warning('Some system components are unhealthy')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def get_health_status(app_config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Get detailed health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    if app_config is None:
        from .config import config as default_config
        app_config = default_config

    health_status = {}

    # Check Bedrock LLM
    try:
        llm = BedrockLLM(app_config.bedrock_llm)
        health_status['bedrock_llm'] = {
            'healthy': llm.health_check(),
            'service': 'Amazon Bedrock LLM',
            'model': app_config.bedrock_llm.model_id
        }
    except Exception as e:
        health_status['bedrock_llm'] = {'healthy': False, 'service': 'Amazon Bedrock LLM', 'error': str(e)}

    # Check Bedrock Embed
    try:
        embed = BedrockEmbed(app_config.bedrock_embed)
        health_status['bedrock_embed'] = {
            'healthy': embed.health_check(),
            'service': 'Amazon Bedrock Embed',
            'model': app_config.bedrock_embed.model_id
        }
    except Exception as e:
        health_status['bedrock_embed'] = {'healthy': False, 'service': 'Amazon Bedrock Embed', 'error': str(e)}

    health_status['graph_store'] = _graph_store_status(app_config)
    return health_status


def _graph_store_status(app_config: AppConfig) -> Dict[str, Any]:
    backend = app_config.graph_backend

    if backend == 'jsonl':
        path = os.path.abspath(app_config.chat.flat_file_path)
        directory = os.path.dirname(path)
        return {'healthy': os.access(directory, os.W_OK), 'service': 'JSON-lines file', 'path': path}

    if backend == 'memory':
        return {'healthy': InMemoryGraphStore().health_check(), 'service': 'In-memory graph'}

    try:
        neptune = NeptuneGraphStore(app_config.neptune)
        try:
            healthy = neptune.health_check()
        finally:
            neptune.close()
        return {'healthy': healthy, 'service': 'Amazon Neptune', 'endpoint': app_config.neptune.endpoint}
    except Exception as e:
        return {'healthy': False, 'service': 'Amazon Neptune', 'error': str(e)}
