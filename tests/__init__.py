"""
Test Package Initialization

This package contains all unit and integration tests for the
Persona Voice Agent project.

Test Structure:
- test_config.py: Configuration tests
- test_emotion.py, test_memory.py, test_persona.py, test_prompt.py: Conversation core
- test_llm.py, test_speech.py: Completion and synthesis clients
- test_events.py, test_room_gateway.py, test_transcript_listener.py: Realtime plumbing
- test_bot_participant.py, test_session_manager.py, test_voice_agent.py: Voice sessions
- test_api.py: HTTP and websocket endpoints
- test_cli.py: Command line interface
- test_logger.py: Logging helpers

Run tests with:
    pytest tests/ -v
"""
