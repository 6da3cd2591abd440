#!/usr/bin/env python3
"""
Persona Voice Agent - Command Line Interface

Commands:
    chat              - Text chat with a persona in the terminal
    classify          - Show the detected emotion of a sentence
    check-connection  - Verify LiveKit settings and list a room's participants
    serve             - Run the HTTP API server

Usage:
    persona-voice chat --persona rafa
    persona-voice classify "I'm so worried about tomorrow"
    persona-voice check-connection --room voice-adina-1234
    persona-voice serve --port 3001

For help on a specific command:
    persona-voice <command> --help
"""

import argparse
import asyncio
import sys
import uuid

from persona_voice.config import settings
from persona_voice.logger import get_logger, init_logging

init_logging()
logger = get_logger(__name__)


def cmd_chat(args: argparse.Namespace) -> int:
    """
    Start an interactive chat session with a persona.
    """
    from persona_voice.realtime.voice_agent import VoiceAgent

    try:
        agent = VoiceAgent()
        persona = agent.get_persona(args.persona)
    except KeyError:
        print(f"❌ Unknown persona '{args.persona}'")
        return 1
    except Exception as e:
        print(f"❌ Chat failed: {e}")
        logger.exception("Chat setup error")
        return 1

    session_id = args.session or f"cli-{uuid.uuid4().hex[:8]}"

    print("\n" + "=" * 60)
    print(f"💬 Chat with {persona.name}")
    print("=" * 60)
    print("Commands:")
    print("  /clear  - Clear conversation history")
    print("  /quit   - Exit chat")
    print("-" * 60)
    if not agent.completion.is_configured:
        print("⚠️  AZURE_OPENAI_API_KEY not set, replies are test responses.\n")

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n👋 Goodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() == "/quit":
            print("\n👋 Goodbye!")
            break
        if user_input.lower() == "/clear":
            agent.clear_memory(session_id)
            print("🗑️  Conversation history cleared.\n")
            continue

        try:
            reply = asyncio.run(agent.chat(persona.id, user_input, session_id=session_id))
            print(f"{persona.name}: {reply}\n")
        except Exception as e:
            print(f"❌ {e}\n")
            logger.error(f"Chat error: {e}")

    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    """Print the emotion the classifier assigns to a sentence."""
    from persona_voice.core.emotion import EmotionClassifier

    result = EmotionClassifier().classify(args.text)
    print(f"Emotion:    {result.primary_emotion}")
    print(f"Confidence: {result.confidence:.2f}")
    hits = {name: count for name, count in result.counts.items() if count}
    if hits:
        print("Matches:    " + ", ".join(f"{name}={count}" for name, count in hits.items()))
    return 0


def cmd_check_connection(args: argparse.Namespace) -> int:
    """
    Verify LiveKit configuration: credentials, token generation and,
    when a room is given, participant listing.
    """
    from persona_voice.realtime.room_gateway import RoomGateway

    print("\n🔌 LiveKit connection check")
    print("-" * 50)
    print(f"   URL:        {settings.livekit.ws_url or '(not set)'}")
    print(f"   API key:    {'set' if settings.livekit.api_key else '(not set)'}")
    print(f"   API secret: {'set' if settings.livekit.api_secret else '(not set)'}")

    try:
        gateway = RoomGateway()
    except ValueError as e:
        print(f"❌ {e}")
        return 1

    token = gateway.mint_participant_token(args.room or "connection-test", "connection-test-user")
    print(f"✅ Token generated ({len(token)} chars)")

    if not args.room:
        return 0

    async def list_room() -> int:
        try:
            participants = await gateway.list_participants(args.room)
        except Exception as e:
            print(f"❌ Could not list participants in {args.room}: {e}")
            return 1
        finally:
            await gateway.close()

        print(f"👥 Participants in {args.room}: {len(participants)}")
        for participant in participants:
            kind = "bot" if participant.is_bot else "user"
            print(f"   - {participant.identity} ({kind}, {len(participant.track_sids)} tracks)")
        return 0

    return asyncio.run(list_room())


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "api_server:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog="persona-voice",
        description="Persona voice agent CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Text chat:
    persona-voice chat
    persona-voice chat --persona rafa --session my-session

  Emotion check:
    persona-voice classify "I feel so lonely and sad"

  LiveKit:
    persona-voice check-connection
    persona-voice check-connection --room voice-rafa-1234

  Server:
    persona-voice serve --port 3001
        """
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser(
        "chat",
        help="Text chat with a persona"
    )
    chat_parser.add_argument(
        "--persona", "-p",
        default="adina",
        help="Persona id (default: adina)"
    )
    chat_parser.add_argument(
        "--session", "-s",
        help="Session id for conversation memory (default: random)"
    )
    chat_parser.set_defaults(func=cmd_chat)

    classify_parser = subparsers.add_parser(
        "classify",
        help="Detect the emotion of a sentence"
    )
    classify_parser.add_argument(
        "text",
        help="Sentence to classify"
    )
    classify_parser.set_defaults(func=cmd_classify)

    check_parser = subparsers.add_parser(
        "check-connection",
        help="Verify LiveKit configuration"
    )
    check_parser.add_argument(
        "--room", "-r",
        help="Room whose participants should be listed"
    )
    check_parser.set_defaults(func=cmd_check_connection)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP API server"
    )
    serve_parser.add_argument(
        "--host",
        default=settings.server.host,
        help=f"Bind address (default: {settings.server.host})"
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=settings.server.port,
        help=f"Port (default: {settings.server.port})"
    )
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes"
    )
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    if args.verbose:
        import logging
        logging.getLogger().setLevel(logging.DEBUG)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
