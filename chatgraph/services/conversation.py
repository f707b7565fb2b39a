"""
Conversation Service: one chat session feeding the knowledge graph.
"""

from typing import Dict, List, Optional

from ..models.core import SENDER_AI, SENDER_HUMAN, IngestResult, Message, User
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.bedrock_llm import BedrockLLM
from ..utils.errors import CollaboratorError, ConnectivityError, PersistenceError
from ..utils.flat_file import FlatFileWriter
from ..utils.identity import IdentityGenerator
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import now_seconds
from .ingestion import IngestionPipeline
from .label_extraction import LabelExtractionService
from .topic_normalizer import TopicNormalizer

logger = get_logger(__name__)

LANGUAGE_NAMES = {'vi': 'Vietnamese', 'en': 'English'}


def build_system_prompt(base_prompt: str, user: User) -> str:
    """Extend the base persona with the user's language, tone, addressing style and interests."""
    prefs = user.preferences
    language = LANGUAGE_NAMES.get(prefs.language, prefs.language)
    prompt = (f'{base_prompt}\n'
              f'The user is {user.name}. Reply in {language} with a {prefs.tone} tone. '
              f'When speaking Vietnamese, refer to yourself as "{prefs.addressing_style}".')
    if prefs.interests:
        prompt += f' The user is interested in: {", ".join(prefs.interests)}.'
    return prompt


class ConversationService:
    """Runs the collaborators for each turn, then records the turn.

    Collaborator calls happen before the graph unit of work opens. A failed
    embedding or label extraction degrades the turn (empty embedding, no
    topics); a failed ingestion is logged and the conversation goes on.
    """

    def __init__(self,
                 user: User,
                 embedder: BedrockEmbed,
                 labeler: LabelExtractionService,
                 chat: BedrockLLM,
                 vocabulary: List[str],
                 pipeline: Optional[IngestionPipeline] = None,
                 flat_file: Optional[FlatFileWriter] = None,
                 system_prompt: str = '',
                 history_limit: int = 40):
        if pipeline is None and flat_file is None:
            raise ValueError('Either an ingestion pipeline or a flat-file writer is required')

        self.user = user
        self.embedder = embedder
        self.labeler = labeler
        self.chat = chat
        self.vocabulary = list(vocabulary)
        self.pipeline = pipeline
        self.flat_file = flat_file
        self.normalizer = pipeline.normalizer if pipeline is not None else TopicNormalizer(self.vocabulary)
        self.system_prompt = build_system_prompt(system_prompt, user)
        self.history_limit = history_limit
        self.history: List[Dict[str, str]] = []
        self.id_generator = IdentityGenerator()

    def start(self) -> User:
        """
        Register the session's user in the graph (no-op for the flat file).

        Raises:
            ConnectivityError: If the graph store cannot record the user
        """
        if self.pipeline is not None:
            try:
                self.user = self.pipeline.store.ensure_user(self.user)
            except PersistenceError as e:
                raise ConnectivityError(f'Could not register user {self.user.id}: {e}') from e
            logger.info(f'Conversation started for user {self.user.id}')
        return self.user

    def embed(self, text: str) -> List[float]:
        try:
            return self.embedder.embed(text)
        except CollaboratorError as e:
            logger.warning(f'Embedding failed, storing message without embedding: {e}')
            return []

    def extract_topics(self, text: str) -> str:
        try:
            return self.labeler.extract_topics(text, self.vocabulary)
        except CollaboratorError as e:
            logger.warning(f'Label extraction failed, storing message without topics: {e}')
            return ''

    def record(self, sender: str, content: str) -> Optional[IngestResult]:
        """
        Embed, label and store one turn.

        Returns:
            IngestResult, or None when the turn went to the flat file or could not be recorded
        """
        embedding = self.embed(content)
        raw_topics = self.extract_topics(content)

        if self.pipeline is None:
            self._append_flat_file(sender, content, embedding, raw_topics)
            return None

        try:
            return self.pipeline.ingest(sender=sender,
                                        content=content,
                                        owner_id=self.user.id,
                                        embedding=embedding,
                                        raw_topic_text=raw_topics)
        except PersistenceError as e:
            logger.error(f'Could not record {sender} message: {e}')
            return None

    def send(self, user_input: str) -> Optional[str]:
        """
        Handle one user turn: record it, get the assistant's reply, record that.

        Returns:
            Reply text, or None when the chat service failed
        """
        self.record(SENDER_HUMAN, user_input)
        self._remember('user', user_input)

        try:
            reply = self.chat.reply(self.history, self.system_prompt)
        except CollaboratorError as e:
            logger.error(f'Chat completion failed: {e}')
            return None

        self.record(SENDER_AI, reply)
        self._remember('assistant', reply)
        return reply

    def _remember(self, role: str, content: str) -> None:
        self.history.append({'role': role, 'content': content})
        if len(self.history) > self.history_limit:
            self.history = self.history[-self.history_limit:]

    def _append_flat_file(self, sender: str, content: str, embedding: List[float], raw_topics: str) -> None:
        message = Message(id=self.id_generator.new_id(),
                          timestamp=now_seconds(),
                          sender=sender,
                          content=content,
                          embedding=embedding,
                          topics=self.normalizer.normalize(raw_topics))
        try:
            self.flat_file.append(message)
        except PersistenceError as e:
            logger.error(f'Could not record {sender} message: {e}')
