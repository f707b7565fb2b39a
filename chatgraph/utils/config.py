"""
Configuration management for AWS services and application settings.
"""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

GRAPH_BACKENDS = ('neptune', 'memory', 'jsonl')

DEFAULT_TOPIC_VOCABULARY = [
    'Áo',
    'Quần',
    'Váy',
    'Đầm',
    'Giày',
    'Túi xách',
    'Phụ kiện',
    'Kích cỡ',
    'Khuyến mãi',
    'Giảm giá',
    'Đổi trả',
    'Vận chuyển',
    'Thanh toán',
]

DEFAULT_SYSTEM_PROMPT = 'You are a helpful and friendly chatbot.'

# Default INGEST_SIMILARITY_THRESHOLD per INGEST_SCOPE
OWNER_SCOPE_THRESHOLD = '0.5'
GLOBAL_SCOPE_THRESHOLD = '0.7'


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float
    timeout: int


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    retry_delay: float
    timeout: int


@dataclass
class NeptuneConfig:
    """Configuration for Amazon Neptune graph database."""
    endpoint: str
    port: int
    region: str


@dataclass
class IngestionConfig:
    """Configuration for the ingestion-and-linking pipeline."""
    scope: str
    similarity_threshold: float
    edge_mode: str
    vocabulary: List[str] = field(default_factory=lambda: list(DEFAULT_TOPIC_VOCABULARY))


@dataclass
class ChatConfig:
    """Configuration for the interactive chat session."""
    system_prompt: str
    flat_file_path: str
    history_limit: int


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    graph_backend: str
    bedrock_llm: BedrockLLMConfig
    bedrock_embed: BedrockEmbedConfig
    neptune: NeptuneConfig
    ingestion: IngestionConfig
    chat: ChatConfig
    mcp: MCPConfig


def _parse_vocabulary(raw: str) -> List[str]:
    """Split a comma-separated vocabulary, keeping order and dropping blanks."""
    vocabulary = []
    for term in raw.split(','):
        term = term.strip()
        if term and term not in vocabulary:
            vocabulary.append(term)
    return vocabulary


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-haiku-20240307-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '1024')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.0')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')),
                                          timeout=int(os.getenv('BEDROCK_LLM_TIMEOUT', '60')))

    # Bedrock Embed configuration
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION', '1024')),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')),
                                              timeout=int(os.getenv('BEDROCK_EMBED_TIMEOUT', '30')))

    # Neptune configuration
    neptune_config = NeptuneConfig(endpoint=os.getenv('NEPTUNE_ENDPOINT', ''),
                                   port=int(os.getenv('NEPTUNE_PORT', '8182')),
                                   region=os.getenv('NEPTUNE_AWS_REGION', 'us-east-1'))

    # Ingestion configuration
    vocabulary_raw = os.getenv('TOPIC_VOCABULARY')
    vocabulary = _parse_vocabulary(vocabulary_raw) if vocabulary_raw is not None else list(DEFAULT_TOPIC_VOCABULARY)
    scope = os.getenv('INGEST_SCOPE', 'owner')
    default_threshold = GLOBAL_SCOPE_THRESHOLD if scope == 'global' else OWNER_SCOPE_THRESHOLD
    ingestion_config = IngestionConfig(scope=scope,
                                       similarity_threshold=float(os.getenv('INGEST_SIMILARITY_THRESHOLD', default_threshold)),
                                       edge_mode=os.getenv('INGEST_EDGE_MODE', 'append'),
                                       vocabulary=vocabulary)

    # Chat configuration
    chat_config = ChatConfig(system_prompt=os.getenv('CHAT_SYSTEM_PROMPT', DEFAULT_SYSTEM_PROMPT),
                             flat_file_path=os.getenv('FLAT_FILE_PATH', 'graph_nodes.jsonl'),
                             history_limit=int(os.getenv('CHAT_HISTORY_LIMIT', '40')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     graph_backend=os.getenv('GRAPH_BACKEND', 'neptune'),
                     bedrock_llm=bedrock_llm_config,
                     bedrock_embed=bedrock_embed_config,
                     neptune=neptune_config,
                     ingestion=ingestion_config,
                     chat=chat_config,
                     mcp=mcp_config)


def validate_config(app_config: AppConfig) -> None:
    """Check settings that must be valid before the chat loop starts.

    Raises:
        ConfigurationError: If a required setting is missing or invalid
    """
    if app_config.graph_backend not in GRAPH_BACKENDS:
        raise ConfigurationError(f'Unknown GRAPH_BACKEND {app_config.graph_backend!r}, expected one of {GRAPH_BACKENDS}')

    if app_config.graph_backend == 'neptune' and not app_config.neptune.endpoint:
        raise ConfigurationError('NEPTUNE_ENDPOINT is required when GRAPH_BACKEND is neptune')

    if app_config.ingestion.scope not in ('owner', 'global'):
        raise ConfigurationError(f'Unknown INGEST_SCOPE {app_config.ingestion.scope!r}')

    if app_config.ingestion.edge_mode not in ('append', 'merge'):
        raise ConfigurationError(f'Unknown INGEST_EDGE_MODE {app_config.ingestion.edge_mode!r}')

    if not app_config.ingestion.vocabulary:
        raise ConfigurationError('TOPIC_VOCABULARY must contain at least one topic')

    if not -1.0 <= app_config.ingestion.similarity_threshold <= 1.0:
        raise ConfigurationError('INGEST_SIMILARITY_THRESHOLD must be between -1.0 and 1.0')


# Global configuration instance
config = load_config()
