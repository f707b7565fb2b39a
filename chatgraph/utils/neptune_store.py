"""
Amazon Neptune graph store with Gremlin Python driver and AWS SigV4 authentication.

Each unit of work runs inside a Gremlin session transaction. Embeddings and
topic lists are stored as JSON strings because Neptune vertex properties
only support single and set cardinality.
"""

import json
from functools import wraps
from typing import Any, Dict, List, Optional

from boto3 import Session
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from gremlin_python.driver.aiohttp.transport import AiohttpTransport
from gremlin_python.driver.driver_remote_connection import DriverRemoteConnection
from gremlin_python.process.anonymous_traversal import traversal
from gremlin_python.process.graph_traversal import __
from gremlin_python.process.traversal import Cardinality, P

from ..models.core import (CandidateScope, ContextualLink, EdgeMode, Message, SimilarityCandidate, Topic, User,
                           UserPreferences)
from .config import NeptuneConfig
from .errors import ConfigurationError, ConnectivityError, PersistenceError
from .graph_store import GraphStore, UnitOfWork
from .identity import IdentityGenerator
from .logging_config import get_logger

logger = get_logger(__name__)


def retry_on_connection_error(func):
    """Decorator to retry Neptune operations on connection errors."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except Exception as e:
            if 'cannot write to closing transport' in str(e).lower():
                logger.warning(f'Connection error detected: {e}. Reconnecting...')
                self.close()
                self._connect()
                try:
                    return func(self, *args, **kwargs)
                except Exception as retry_e:
                    logger.error(f'Error in {func.__name__}: {retry_e}')
                    raise PersistenceError(f'Failed to {func.__name__}: {retry_e}')
            else:
                logger.error(f'Error in {func.__name__}: {e}')
                raise PersistenceError(f'Failed to {func.__name__}: {e}')

    return wrapper


def _decode_embedding(raw: Any) -> List[float]:
    """Parse a stored embedding; unreadable values count as empty."""
    if raw is None or raw == '':
        return []
    try:
        values = json.loads(raw) if isinstance(raw, str) else raw
        return [float(v) for v in values]
    except (TypeError, ValueError) as e:
        logger.warning(f'Ignoring malformed stored embedding: {e}')
        return []


def _decode_list(raw: Any) -> List[str]:
    if not raw:
        return []
    try:
        return list(json.loads(raw)) if isinstance(raw, str) else list(raw)
    except (TypeError, ValueError):
        return []


class NeptuneUnitOfWork(UnitOfWork):
    """A Gremlin session transaction."""

    def __init__(self, g, id_generator: IdentityGenerator):
        super().__init__(id_generator)
        self.tx = g.tx()
        self.gtx = self.tx.begin()

    def _create_message_node(self, message: Message) -> None:
        t = self.gtx.add_v('Message')\
            .property('message_id', message.id)\
            .property('timestamp', message.timestamp)\
            .property('sender', message.sender)\
            .property('content', message.content)\
            .property('embedding', json.dumps(list(message.embedding)))\
            .property('topics', json.dumps(list(message.topics), ensure_ascii=False))

        if message.owner_id:
            t = t.property('user_id', message.owner_id)

        t.iterate()
        logger.debug(f'Created message vertex: {message.id}')

    def _link_ownership(self, owner_id: str, message_id: str) -> None:
        edges = self.gtx.V().has('User', 'user_id', owner_id).as_('u')\
            .V().has('Message', 'message_id', message_id)\
            .add_e('OWNS').from_('u')\
            .to_list()
        if not edges:
            raise PersistenceError(f'User {owner_id} or message {message_id} not found')

    def _update_last_active(self, owner_id: str, timestamp: int) -> None:
        users = self.gtx.V().has('User', 'user_id', owner_id)\
            .property(Cardinality.single, 'last_active', timestamp)\
            .to_list()
        if not users:
            raise PersistenceError(f'User {owner_id} not found')

    def _upsert_topic(self, name: str, new_id: str, created_at: int) -> Topic:
        data = self.gtx.V().has('Topic', 'name', name).fold()\
            .coalesce(__.unfold(),
                      __.add_v('Topic').property('topic_id', new_id).property('name', name).property('created_at', created_at))\
            .project('topic_id', 'name', 'created_at').by('topic_id').by('name').by('created_at')\
            .next()
        return Topic(id=data['topic_id'], name=data['name'], created_at=int(data['created_at']))

    def _link_message_topic(self, message_id: str, topic_name: str) -> None:
        edges = self.gtx.V().has('Message', 'message_id', message_id).as_('m')\
            .V().has('Topic', 'name', topic_name)\
            .coalesce(__.in_e('BELONGS_TO').where(__.out_v().as_('m')),
                      __.add_e('BELONGS_TO').from_('m'))\
            .to_list()
        if not edges:
            raise PersistenceError(f'Message {message_id} or topic {topic_name} not found')

    def _fetch_similarity_candidates(self, message_id: str, scope: CandidateScope,
                                     owner_id: Optional[str]) -> List[SimilarityCandidate]:
        if scope is CandidateScope.OWNER:
            t = self.gtx.V().has('User', 'user_id', owner_id).out('OWNS')
        else:
            t = self.gtx.V().has_label('Message')

        rows = t.has('message_id', P.neq(message_id))\
            .project('message_id', 'embedding', 'content')\
            .by('message_id')\
            .by(__.coalesce(__.values('embedding'), __.constant('[]')))\
            .by(__.coalesce(__.values('content'), __.constant('')))\
            .to_list()

        return [
            SimilarityCandidate(message_id=row['message_id'],
                                embedding=_decode_embedding(row['embedding']),
                                content=row['content']) for row in rows
        ]

    def _create_similarity_edge(self, link: ContextualLink, mode: EdgeMode) -> None:
        t = self.gtx.V().has('Message', 'message_id', link.message_id_1).as_('a')\
            .V().has('Message', 'message_id', link.message_id_2)

        if mode is EdgeMode.MERGE:
            # One edge per unordered pair, whichever direction it was written in
            t = t.coalesce(__.both_e('CONTEXTUAL_LINK').where(__.other_v().as_('a')),
                           __.add_e('CONTEXTUAL_LINK').from_('a'))
        else:
            t = t.add_e('CONTEXTUAL_LINK').from_('a')

        edges = t.property('similarity', link.similarity).property('timestamp', link.timestamp).to_list()
        if not edges:
            raise PersistenceError(f'Messages {link.message_id_1} or {link.message_id_2} not found')

    def _commit(self) -> None:
        self.tx.commit()

    def _rollback(self) -> None:
        self.tx.rollback()


class NeptuneGraphStore(GraphStore):
    """Amazon Neptune store using Gremlin Python driver with AWS authentication."""

    def __init__(self, config: NeptuneConfig, id_generator: Optional[IdentityGenerator] = None):
        """
        Initialize Neptune store with Gremlin driver.

        Args:
            config: NeptuneConfig instance with connection parameters
            id_generator: Identifier source for new topics

        Raises:
            ConfigurationError: If endpoint or AWS credentials are missing
            ConnectivityError: If the connection cannot be established
        """
        super().__init__(id_generator)
        self.config = config
        self.connection = None
        self.g = None
        self._connect()

        logger.info(f'Connected to Neptune at {config.endpoint}')

    def _connect(self):
        """Establish connection to Neptune."""
        if not self.config.endpoint:
            raise ConfigurationError('Neptune endpoint is not configured')

        # Build WebSocket connection string
        conn_string = f'wss://{self.config.endpoint}:{self.config.port}/gremlin'

        # Get AWS credentials
        credentials = Session().get_credentials()
        if credentials is None:
            raise ConfigurationError('No AWS credentials found')
        creds = credentials.get_frozen_credentials()

        # Get region
        region = Session().region_name or self.config.region or 'us-east-1'

        # Create signed request for WebSocket connection
        request = AWSRequest(method='GET', url=conn_string, data=None)
        SigV4Auth(creds, 'neptune-db', region).add_auth(request)

        try:
            self.connection = DriverRemoteConnection(conn_string,
                                                     'g',
                                                     headers=request.headers.items(),
                                                     transport_factory=lambda: AiohttpTransport(call_from_event_loop=True))
            self.g = traversal().with_remote(self.connection)
        except Exception as e:
            logger.error(f'Failed to connect to Neptune at {conn_string}: {e}')
            raise ConnectivityError(f'Failed to connect to Neptune: {e}')

    def close(self):
        """Close the Neptune connection."""
        if self.connection is not None:
            self.connection.close()

    @retry_on_connection_error
    def begin(self) -> NeptuneUnitOfWork:
        return NeptuneUnitOfWork(self.g, self.id_generator)

    @retry_on_connection_error
    def ensure_user(self, user: User) -> User:
        """
        Create a user vertex unless one with the same id exists.

        Args:
            user: User to create

        Returns:
            The stored user, which is the existing one when already present
        """
        data = self.g.V().has('User', 'user_id', user.id).fold()\
            .coalesce(__.unfold(),
                      __.add_v('User')
                      .property('user_id', user.id)
                      .property('name', user.name)
                      .property('created_at', user.created_at)
                      .property('last_active', user.last_active)
                      .property('language', user.preferences.language)
                      .property('tone', user.preferences.tone)
                      .property('addressing_style', user.preferences.addressing_style)
                      .property('interests', json.dumps(user.preferences.interests, ensure_ascii=False)))\
            .value_map().next()

        logger.debug(f'Ensured user vertex: {user.id}')
        return self._to_user(data)

    @retry_on_connection_error
    def get_user(self, user_id: str) -> Optional[User]:
        rows = self.g.V().has('User', 'user_id', user_id).value_map().to_list()
        return self._to_user(rows[0]) if rows else None

    @retry_on_connection_error
    def get_message(self, message_id: str) -> Optional[Message]:
        rows = self.g.V().has('Message', 'message_id', message_id).value_map().to_list()
        if not rows:
            return None

        data = rows[0]
        return Message(id=_first(data, 'message_id'),
                       timestamp=int(_first(data, 'timestamp', 0)),
                       sender=_first(data, 'sender'),
                       content=_first(data, 'content', ''),
                       embedding=_decode_embedding(_first(data, 'embedding')),
                       topics=_decode_list(_first(data, 'topics')),
                       owner_id=_first(data, 'user_id'))

    @retry_on_connection_error
    def get_links(self, message_id: str) -> List[ContextualLink]:
        rows = self.g.V().has('Message', 'message_id', message_id)\
            .both_e('CONTEXTUAL_LINK').as_('e')\
            .other_v()\
            .project('other', 'similarity', 'timestamp')\
            .by('message_id')\
            .by(__.select('e').values('similarity'))\
            .by(__.select('e').values('timestamp'))\
            .to_list()

        return [
            ContextualLink(message_id_1=message_id,
                           message_id_2=row['other'],
                           similarity=float(row['similarity']),
                           timestamp=int(row['timestamp'])) for row in rows
        ]

    @retry_on_connection_error
    def get_message_topics(self, message_id: str) -> List[str]:
        names = self.g.V().has('Message', 'message_id', message_id).out('BELONGS_TO').values('name').to_list()
        return sorted(names)

    @retry_on_connection_error
    def health_check(self) -> bool:
        """
        Perform a health check on the Neptune service.

        Returns:
            True if service is healthy, False otherwise
        """
        # Simple query to test connectivity
        self.g.V().limit(1).count().next()
        return True

    @staticmethod
    def _to_user(data: Dict[str, Any]) -> User:
        return User(id=_first(data, 'user_id'),
                    name=_first(data, 'name', ''),
                    created_at=int(_first(data, 'created_at', 0)),
                    last_active=int(_first(data, 'last_active', 0)),
                    preferences=UserPreferences(language=_first(data, 'language', 'vi'),
                                                tone=_first(data, 'tone', 'friendly'),
                                                addressing_style=_first(data, 'addressing_style', 'mình'),
                                                interests=_decode_list(_first(data, 'interests'))))


def _first(data: Dict[str, Any], key: str, default: Any = None) -> Any:
    """value_map() returns every vertex property as a list."""
    value = data.get(key, default)
    if isinstance(value, list):
        return value[0] if value else default
    return value
