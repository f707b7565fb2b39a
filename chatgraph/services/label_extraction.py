"""
Label Extraction Service: ask the LLM which vocabulary topics a message is about.
"""

from typing import List, Optional

from ..utils.bedrock_llm import BedrockLLM, BedrockLLMError
from ..utils.config import config
from ..utils.errors import CollaboratorError
from ..utils.json_utils import clean_code_fences
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

NO_TAG_ANSWER = 'không có tag'


class LabelExtractionError(CollaboratorError):
    """Custom exception for label extraction errors."""
    pass


class LabelExtractionService:
    """Extract raw topic labels from a chat message using a Bedrock LLM."""

    def __init__(self, llm: Optional[BedrockLLM] = None):
        """Initialize the label extraction service."""
        self.llm = llm or BedrockLLM(config.bedrock_llm)

        logger.info('Initialized LabelExtractionService')

    def extract_topics(self, text: str, vocabulary: List[str]) -> str:
        """
        Ask the LLM for the vocabulary topics that apply to a message.

        The answer is returned as raw text; matching it against the
        vocabulary is left to TopicNormalizer, which tolerates extra
        words, other languages and invented tags.

        Args:
            text: Message content
            vocabulary: Allowed topic names

        Returns:
            Comma-separated topic names, the no-tag answer, or '' for blank text

        Raises:
            LabelExtractionError: If the LLM call fails
        """
        if not text or not text.strip():
            logger.debug('No content found for label extraction')
            return ''

        system_prompt = f"""
You classify chat messages for an online clothing shop.

Allowed tags: {', '.join(vocabulary)}

Reply with the tags that apply to the message, separated by commas, using the exact spelling above.
Use only tags from the allowed list. Do not explain.
If no tag applies, reply exactly: {NO_TAG_ANSWER}"""

        messages = [{'role': 'user', 'content': [{'text': f'Message:\n{text}'}]}]

        try:
            response, _ = self.llm.generate_response(messages=messages, system_prompt=system_prompt, max_tokens=100)
        except BedrockLLMError as e:
            logger.error(f'LLM error during label extraction: {e}')
            raise LabelExtractionError(f'Label extraction failed: {e}')

        labels = clean_code_fences(response)
        logger.debug(f'Extracted raw labels: {labels!r}')
        return labels
