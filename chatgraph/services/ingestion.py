"""
Ingestion Pipeline: record one chat turn and link it into the knowledge graph.
"""

from typing import Callable, List, Optional, Sequence

from ..models.core import (SENDER_HUMAN, SENDERS, CandidateScope, EdgeMode, IngestResult, Message, SimilarityCandidate)
from ..utils.config import IngestionConfig
from ..utils.errors import IngestionError, PersistenceError
from ..utils.graph_store import GraphStore, UnitOfWork
from ..utils.identity import IdentityGenerator
from ..utils.logging_config import get_logger
from ..utils.similarity import cosine_similarity
from ..utils.timestamp_utils import now_seconds
from .topic_normalizer import NoTopicsFound, TopicNormalizer

logger = get_logger(__name__)


class IngestionPipeline:
    """Per-message algorithm: normalize topics, persist, scan candidates, link, commit.

    Everything from the message node to the last similarity edge happens in
    one unit of work. A failed structural write rolls the whole message back
    and raises IngestionError; failed topic or edge writes only reduce
    coverage.
    """

    def __init__(self,
                 store: GraphStore,
                 normalizer: TopicNormalizer,
                 settings: IngestionConfig,
                 id_generator: Optional[IdentityGenerator] = None,
                 clock: Callable[[], int] = now_seconds):
        """
        Initialize the ingestion pipeline.

        Args:
            store: Graph store the pipeline writes to
            normalizer: Topic normalizer built from the deployment vocabulary
            settings: Scope, threshold and edge mode of this deployment
            id_generator: Source of message ids (a fresh generator if None)
            clock: Returns the current Unix time in seconds
        """
        self.store = store
        self.normalizer = normalizer
        self.scope = CandidateScope(settings.scope)
        self.threshold = float(settings.similarity_threshold)
        self.edge_mode = EdgeMode(settings.edge_mode)
        self.id_generator = id_generator or IdentityGenerator()
        self.clock = clock

        logger.info(f'Initialized IngestionPipeline (scope={self.scope.value}, threshold={self.threshold}, '
                    f'edge_mode={self.edge_mode.value})')

    @property
    def user_scoped(self) -> bool:
        return self.scope is CandidateScope.OWNER

    def ingest(self,
               sender: str,
               content: str,
               owner_id: Optional[str] = None,
               embedding: Optional[Sequence[float]] = None,
               raw_topic_text: str = '') -> IngestResult:
        """
        Record a chat turn and link it to its owner, topics and similar messages.

        Args:
            sender: 'human' or 'ai'
            content: Message text
            owner_id: Owning user, required in the owner-scoped deployment
            embedding: Precomputed embedding; empty when the embedding service failed
            raw_topic_text: Label text from the extraction service; may be empty

        Returns:
            IngestResult with the new message id and advisory counts

        Raises:
            ValueError: If sender is unknown or owner_id is missing when required
            IngestionError: If a structural write failed; nothing was recorded
        """
        if sender not in SENDERS:
            raise ValueError(f'Sender must be one of {SENDERS}, got {sender!r}')
        if self.user_scoped and (not owner_id or not owner_id.strip()):
            raise ValueError('User ID is required in the owner-scoped deployment')

        message_id = self.id_generator.new_id()
        embedding = list(embedding or [])
        logger.debug(f'Message {message_id}: Pending -> {"Embedded" if embedding else "Degraded"}')

        match = self.normalizer.classify(raw_topic_text)
        if isinstance(match, NoTopicsFound):
            logger.debug(f'Message {message_id}: no topics')
        topics = list(match.names)

        message = Message(id=message_id,
                          timestamp=self.clock(),
                          sender=sender,
                          content=content,
                          embedding=embedding,
                          topics=topics,
                          owner_id=owner_id if self.user_scoped else None)

        try:
            with self.store.begin() as uow:
                uow.create_message_node(message)
                if self.user_scoped:
                    uow.link_ownership(owner_id, message_id)
                    if sender == SENDER_HUMAN:
                        uow.update_last_active(owner_id, message.timestamp)
                logger.debug(f'Message {message_id}: Persisted')

                linked_topics = self._link_topics(uow, message_id, topics)
                logger.debug(f'Message {message_id}: Topic-Linked ({len(linked_topics)}/{len(topics)})')

                candidates = uow.fetch_similarity_candidates(message_id, self.scope, owner_id)
                edges_created = self._link_similar(uow, message, candidates)
                logger.debug(f'Message {message_id}: Similarity-Evaluated')

                uow.commit()
        except PersistenceError as e:
            logger.error(f'Message {message_id}: Aborted: {e}')
            raise IngestionError(f'Failed to ingest message {message_id}: {e}', message_id=message_id) from e

        logger.info(f'Ingested {sender} message {message_id}: {edges_created} similarity edges '
                    f'from {len(candidates)} candidates, topics={linked_topics}')
        return IngestResult(message_id=message_id,
                            edges_created=edges_created,
                            candidates_scanned=len(candidates),
                            topics=linked_topics)

    def _link_topics(self, uow: UnitOfWork, message_id: str, topics: List[str]) -> List[str]:
        """Upsert and link each topic; a failed upsert skips its link. Returns the linked names."""
        linked = []
        for name in topics:
            topic = uow.upsert_topic(name)
            if topic is None:
                continue
            if uow.link_message_topic(message_id, topic.name):
                linked.append(topic.name)
        return linked

    def _link_similar(self, uow: UnitOfWork, message: Message, candidates: List[SimilarityCandidate]) -> int:
        """Create a CONTEXTUAL_LINK to every candidate strictly above the threshold."""
        if not message.embedding:
            # Degraded message: recorded, never linked
            return 0

        edges_created = 0
        for candidate in candidates:
            similarity = cosine_similarity(message.embedding, candidate.embedding)
            if not candidate.embedding or similarity <= self.threshold:
                continue
            if uow.create_similarity_edge(message.id, candidate.message_id, similarity, self.clock(), self.edge_mode):
                edges_created += 1
        return edges_created
