"""Collaborator contracts consumed by the answering service.

Conversation persistence and user profiles live outside this package. The
service only needs the narrow capabilities below; the in-memory versions are
used for local runs and tests.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol, runtime_checkable

from answering.models import Message


@runtime_checkable
class ConversationStore(Protocol):
    async def fetch_history(self, conversation_id: str) -> List[Message]:
        """Messages of the conversation, oldest first."""
        ...

    async def find_owner(self, conversation_id: str) -> Optional[str]:
        """Owner id of the conversation, or None when unknown."""
        ...


@runtime_checkable
class UserProfile(Protocol):
    async def get_personalization_preset(self, owner_id: str) -> Optional[str]: ...

    async def get_communication_style_hint(self, owner_id: str) -> Optional[str]: ...


class InMemoryConversationStore:
    def __init__(self) -> None:
        self._messages: Dict[str, List[Message]] = {}
        self._owners: Dict[str, str] = {}

    def add_conversation(self, conversation_id: str, owner_id: Optional[str], messages: Optional[List[Message]] = None) -> None:
        if owner_id is not None:
            self._owners[conversation_id] = owner_id
        self._messages[conversation_id] = list(messages or [])

    def add_message(self, message: Message) -> None:
        self._messages.setdefault(message.conversation_id, []).append(message)

    async def fetch_history(self, conversation_id: str) -> List[Message]:
        return list(self._messages.get(conversation_id, []))

    async def find_owner(self, conversation_id: str) -> Optional[str]:
        return self._owners.get(conversation_id)


class InMemoryUserProfile:
    def __init__(self) -> None:
        self._presets: Dict[str, str] = {}
        self._style_hints: Dict[str, str] = {}

    def set_profile(self, owner_id: str, preset_id: Optional[str] = None, style_hint: Optional[str] = None) -> None:
        if preset_id is not None:
            self._presets[owner_id] = preset_id
        if style_hint is not None:
            self._style_hints[owner_id] = style_hint

    async def get_personalization_preset(self, owner_id: str) -> Optional[str]:
        return self._presets.get(owner_id)

    async def get_communication_style_hint(self, owner_id: str) -> Optional[str]:
        return self._style_hints.get(owner_id)
