"""
Amazon Bedrock LLM client wrapper with retry logic and error handling.
"""

import random
import time
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockLLMConfig
from .errors import CollaboratorError
from .logging_config import get_logger

logger = get_logger(__name__)

# Chat history roles mapped to Bedrock Converse roles
CONVERSE_ROLES = {'user': 'user', 'human': 'user', 'assistant': 'assistant', 'ai': 'assistant'}


class BedrockLLMError(CollaboratorError):
    """Custom exception for Bedrock LLM errors."""
    pass


def to_converse_messages(history: List[Dict[str, str]]) -> List[Dict[str, Any]]:
    """Convert role/content dicts into Bedrock Converse messages.

    System turns are dropped (they go through the system prompt) and
    consecutive turns of the same role are merged, since Converse requires
    alternating roles.
    """
    messages: List[Dict[str, Any]] = []
    for turn in history:
        role = CONVERSE_ROLES.get(turn.get('role', ''))
        content = turn.get('content', '')
        if role is None or not content.strip():
            continue
        if messages and messages[-1]['role'] == role:
            messages[-1]['content'].append({'text': content})
        else:
            messages.append({'role': role, 'content': [{'text': content}]})
    return messages


class BedrockLLM:
    """Amazon Bedrock LLM client with retry logic and error handling."""

    def __init__(self, config: BedrockLLMConfig):
        """
        Initialize Bedrock LLM client.

        Args:
            config: BedrockLLMConfig instance with connection parameters
        """
        self.config = config
        self.model_id = config.model_id

        # Create Bedrock runtime client with timeout configuration
        self.bedrock_runtime = boto3.client(
            'bedrock-runtime',
            region_name=config.region,
            config=BotoConfig(
                connect_timeout=config.timeout,
                read_timeout=config.timeout,
                retries={'max_attempts': 0}  # We handle retries manually
            ))

        logger.info(f'Initialized Bedrock LLM client with model: {self.model_id}')

    def generate_response(self,
                          messages: List[Dict[str, Any]],
                          system_prompt: str,
                          max_tokens: Optional[int] = None,
                          temperature: Optional[float] = None,
                          stop_sequences: Optional[List[str]] = None) -> Tuple[str, Optional[Dict[str, Any]]]:
        """
        Generate response using Bedrock LLM with retry logic.

        Args:
            messages: List of message dictionaries in Bedrock format
            system_prompt: System prompt for the conversation
            max_tokens: Maximum tokens to generate (uses config default if None)
            temperature: Temperature for generation (uses config default if None)
            stop_sequences: Stop sequences for generation

        Returns:
            Tuple of (response_text, invoke_metrics)

        Raises:
            BedrockLLMError: If all retry attempts fail
        """
        inf_params = {
            'maxTokens': max_tokens or self.config.max_tokens,
            'temperature': self.config.temperature if temperature is None else temperature,
            'stopSequences': stop_sequences or [],
        }

        for attempt in range(self.config.retry_attempts):
            try:
                logger.debug(f'Bedrock LLM request attempt {attempt + 1}/{self.config.retry_attempts}')

                stream = self.bedrock_runtime.converse_stream(modelId=self.model_id,
                                                              messages=messages,
                                                              system=[{'text': system_prompt}],
                                                              inferenceConfig=inf_params).get('stream')

                msg = ''
                invoke_metrics = None

                if stream:
                    for event in stream:
                        if 'contentBlockDelta' in event:
                            msg += event['contentBlockDelta']['delta']['text']
                        if 'metadata' in event:
                            invoke_metrics = {**event['metadata']['usage'], **event['metadata']['metrics']}

                logger.debug(f'Bedrock LLM response generated successfully (length: {len(msg)})')
                return msg, invoke_metrics

            except (ClientError, BotoCoreError) as e:
                logger.warning(f'Bedrock LLM attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')

                if attempt < self.config.retry_attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise BedrockLLMError(f'Bedrock LLM failed after {self.config.retry_attempts} attempts: {e}')

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock LLM: {e}')
                raise BedrockLLMError(f'Unexpected Bedrock LLM error: {e}')

        raise BedrockLLMError(f'Bedrock LLM failed after {self.config.retry_attempts} attempts')

    def reply(self, history: List[Dict[str, str]], system_prompt: str) -> str:
        """
        Generate the assistant's next turn for a conversation.

        Args:
            history: Conversation so far as role/content dicts, oldest first
            system_prompt: Persona and addressing instructions

        Returns:
            Reply text

        Raises:
            BedrockLLMError: If the conversation is empty or generation fails
        """
        messages = to_converse_messages(history)
        # Converse rejects conversations that open with an assistant turn
        while messages and messages[0]['role'] != 'user':
            messages.pop(0)
        if not messages:
            raise BedrockLLMError('Cannot reply to an empty conversation')

        response, _ = self.generate_response(messages=messages, system_prompt=system_prompt)
        reply = response.strip()
        if not reply:
            raise BedrockLLMError('Bedrock LLM returned an empty reply')
        return reply

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock LLM service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            test_messages = [{'role': 'user', 'content': [{'text': 'Hi'}]}]
            response, _ = self.generate_response(messages=test_messages,
                                                 system_prompt="You are a helpful assistant. Respond with just 'OK'.",
                                                 max_tokens=10,
                                                 temperature=0.0)
            return len(response.strip()) > 0

        except Exception as e:
            logger.error(f'Bedrock LLM health check failed: {e}')
            return False
