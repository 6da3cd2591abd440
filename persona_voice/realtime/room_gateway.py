"""
Room Gateway Module

Everything the voice agent does against the LiveKit server goes through
this module: room creation, access tokens, participant discovery and
subscription, data-channel broadcast and bot removal.

Usage:
    from persona_voice.realtime.room_gateway import RoomGateway

    gateway = RoomGateway()
    await gateway.ensure_room("voice-rafa-1234", {"persona": "rafa"})
    token = gateway.mint_bot_token("voice-rafa-1234", "rafa")
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from livekit import api

from persona_voice.config import settings
from persona_voice.logger import get_logger

logger = get_logger(__name__)

BOT_IDENTITY_SUFFIX = "-bot"
DATA_TOPIC = "persona-audio"


def bot_identity(persona: str) -> str:
    """Identity the persona bot uses in a room."""
    return f"{persona}{BOT_IDENTITY_SUFFIX}"


def is_bot_identity(identity: str) -> bool:
    return identity.endswith(BOT_IDENTITY_SUFFIX)


@dataclass
class RoomParticipant:
    """Participant as reported by the room service."""
    identity: str
    sid: str
    track_sids: List[str] = field(default_factory=list)

    @property
    def is_bot(self) -> bool:
        return is_bot_identity(self.identity)


class RoomGateway:
    """
    Thin async wrapper over the LiveKit server API.

    The API client owns an aiohttp session, so it is created on first use
    from inside the running event loop and released by ``close()``.
    """

    def __init__(self):
        settings.livekit.validate()
        self._api_key = settings.livekit.api_key
        self._api_secret = settings.livekit.api_secret
        self._http_url = settings.livekit.http_url
        self._ws_url = settings.livekit.ws_url
        self._lkapi: Optional[api.LiveKitAPI] = None

    @property
    def ws_url(self) -> str:
        return self._ws_url

    def _client(self) -> api.LiveKitAPI:
        if self._lkapi is None:
            self._lkapi = api.LiveKitAPI(self._http_url, self._api_key, self._api_secret)
        return self._lkapi

    # ========================================================================
    # Rooms
    # ========================================================================

    async def ensure_room(self, room_name: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        Create a room if it does not exist yet.

        Raises:
            api.TwirpError: For any room service error other than "already exists"
        """
        request = api.CreateRoomRequest(
            name=room_name,
            empty_timeout=settings.livekit.empty_timeout_s,
            max_participants=settings.livekit.max_participants,
            metadata=json.dumps(metadata or {}),
        )
        try:
            await self._client().room.create_room(request)
            logger.info(f"Room {room_name} created")
        except api.TwirpError as e:
            if e.code != api.TwirpErrorCode.ALREADY_EXISTS:
                raise
            logger.info(f"Room {room_name} already exists")

    # ========================================================================
    # Tokens
    # ========================================================================

    def _mint_token(self, room_name: str, identity: str, name: str) -> str:
        grants = api.VideoGrants(
            room_join=True,
            room=room_name,
            can_publish=True,
            can_subscribe=True,
            can_publish_data=True,
        )
        token = api.AccessToken(self._api_key, self._api_secret) \
            .with_identity(identity) \
            .with_name(name) \
            .with_grants(grants)
        return token.to_jwt()

    def mint_bot_token(self, room_name: str, persona: str) -> str:
        """Access token for the persona bot, valid for exactly one room."""
        identity = bot_identity(persona)
        token = self._mint_token(room_name, identity, identity)
        logger.info(f"Generated token for bot: {identity}")
        return token

    def mint_participant_token(self, room_name: str, participant_name: str) -> str:
        """Access token for a human client joining a room."""
        return self._mint_token(room_name, participant_name, participant_name)

    # ========================================================================
    # Participants
    # ========================================================================

    async def list_participants(self, room_name: str) -> List[RoomParticipant]:
        """Participants currently in a room."""
        response = await self._client().room.list_participants(
            api.ListParticipantsRequest(room=room_name)
        )
        return [
            RoomParticipant(
                identity=p.identity,
                sid=p.sid,
                track_sids=[t.sid for t in p.tracks],
            )
            for p in response.participants
        ]

    async def subscribe_to_participant(
        self,
        room_name: str,
        subscriber_identity: str,
        participant: RoomParticipant,
    ) -> None:
        """Subscribe the bot to every track of a participant. Repeat calls are harmless."""
        request = api.UpdateSubscriptionsRequest(
            room=room_name,
            identity=subscriber_identity,
            subscribe=True,
            participant_tracks=[
                api.ParticipantTracks(
                    participant_sid=participant.sid,
                    track_sids=participant.track_sids,
                )
            ],
        )
        await self._client().room.update_subscriptions(request)
        logger.debug(f"{subscriber_identity} subscribed to {participant.identity} in {room_name}")

    # ========================================================================
    # Data channel
    # ========================================================================

    async def broadcast(
        self,
        room_name: str,
        payload: Dict[str, Any],
        exclude_identity: Optional[str] = None,
    ) -> bool:
        """
        Send a JSON payload reliably to every human participant.

        Returns:
            True if the payload was sent, False on failure or an empty room
        """
        try:
            participants = await self.list_participants(room_name)
            recipients = [
                p.identity for p in participants
                if p.identity != exclude_identity and not p.is_bot
            ]
            if not recipients:
                logger.warning(f"No participants to notify in room {room_name}")
                return False

            await self._client().room.send_data(
                api.SendDataRequest(
                    room=room_name,
                    data=json.dumps(payload).encode("utf-8"),
                    kind=api.DataPacket.RELIABLE,
                    destination_identities=recipients,
                    topic=DATA_TOPIC,
                )
            )
            logger.info(f"Notified {len(recipients)} participant(s) in {room_name}")
            return True
        except Exception as e:
            logger.error(f"Error notifying participants in {room_name}: {e}")
            return False

    # ========================================================================
    # Teardown
    # ========================================================================

    async def remove_bot_from_room(self, room_name: str, persona: str) -> None:
        """Remove the persona bot from a room. Errors are logged, not raised."""
        identity = bot_identity(persona)
        try:
            await self._client().room.remove_participant(
                api.RoomParticipantIdentity(room=room_name, identity=identity)
            )
            logger.info(f"Removed {identity} from room {room_name}")
        except Exception as e:
            logger.warning(f"Could not remove {identity} from room {room_name}: {e}")

    async def close(self) -> None:
        """Close the underlying API client."""
        if self._lkapi is not None:
            lkapi, self._lkapi = self._lkapi, None
            await lkapi.aclose()
