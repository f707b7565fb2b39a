"""
Command-line chat loop that records every turn in the knowledge graph.
"""

import argparse
import json
import sys
from typing import List, Optional, TextIO

from .models.core import UserPreferences
from .services.conversation import ConversationService
from .services.factory import build_conversation
from .utils.config import config
from .utils.errors import ConfigurationError, ConnectivityError
from .utils.health_check import get_health_status
from .utils.logging_config import get_logger

logger = get_logger(__name__)

EXIT_COMMAND = 'exit'


def run_chat(conversation: ConversationService, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> None:
    """Read user turns until 'exit' or end of input. Ingestion failures never stop the loop."""
    conversation.start()

    print("Chatbot is ready! Type 'exit' to end the conversation.", file=stdout)
    print('---------------------------------------------------------', file=stdout)

    while True:
        print('You: ', end='', file=stdout, flush=True)
        line = stdin.readline()
        if not line:
            break

        user_input = line.rstrip('\n')
        if user_input.strip() == EXIT_COMMAND:
            print('Goodbye!', file=stdout)
            break
        if not user_input.strip():
            continue

        reply = conversation.send(user_input)
        if reply is None:
            print('Bot: (the assistant is unavailable, please try again)', file=stdout)
        else:
            print(f'Bot: {reply}', file=stdout)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='chatgraph', description='Chat with an assistant and grow a knowledge graph.')
    subparsers = parser.add_subparsers(dest='command', required=True)

    chat = subparsers.add_parser('chat', help='Start an interactive chat session')
    chat.add_argument('--user-id', required=True, help='Identifier of the chatting user')
    chat.add_argument('--name', default='', help='Display name (defaults to the user id)')
    chat.add_argument('--language', choices=['vi', 'en'], default='vi')
    chat.add_argument('--tone', choices=['friendly', 'formal', 'casual'], default='friendly')
    chat.add_argument('--addressing', choices=['tôi', 'mình', 'em'], default='mình', help='How the assistant refers to itself')

    subparsers.add_parser('health', help='Check Bedrock and graph store connectivity')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == 'health':
        status = get_health_status(config)
        print(json.dumps(status, indent=2, ensure_ascii=False))
        return 0 if all(s.get('healthy', False) for s in status.values()) else 1

    preferences = UserPreferences(language=args.language, tone=args.tone, addressing_style=args.addressing)
    try:
        conversation = build_conversation(config, args.user_id, args.name or args.user_id, preferences)
    except (ConfigurationError, ConnectivityError) as e:
        logger.error(f'Startup failed: {e}')
        print(f'Error: {e}', file=sys.stderr)
        return 2

    try:
        run_chat(conversation)
    except ConnectivityError as e:
        logger.error(f'Startup failed: {e}')
        print(f'Error: {e}', file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print('\nGoodbye!')
    finally:
        if conversation.pipeline is not None:
            conversation.pipeline.store.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
