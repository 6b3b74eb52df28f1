"""
Dependency injection for FastAPI routes.

Provides reusable dependencies that can be easily mocked in tests:

    app.dependency_overrides[get_dispatcher] = lambda: FanOutDispatcher(fake_connections, fake_notifier)

Components are stateless apart from the process-wide ConnectionManager, so
they are built per request.
"""

from fastapi import Depends

from workspace_chat.config import settings
from workspace_chat.services.connection_manager import manager
from workspace_chat.services.conversation_store import ConversationStore
from workspace_chat.services.direct_service import DirectMessageService
from workspace_chat.services.dispatcher import FanOutDispatcher
from workspace_chat.services.group_service import GroupService
from workspace_chat.services.message_log import MessageLog
from workspace_chat.services.notifier import Notifier, ExpoPushNotifier, LoggingNotifier
from workspace_chat.services.read_state import ReadStateManager
from workspace_chat.services.user_directory import UserDirectory


def get_user_directory() -> UserDirectory:
    return UserDirectory()


def get_message_log() -> MessageLog:
    return MessageLog()


def get_read_state() -> ReadStateManager:
    return ReadStateManager()


def get_conversation_store(
    users: UserDirectory = Depends(get_user_directory),
    messages: MessageLog = Depends(get_message_log),
) -> ConversationStore:
    return ConversationStore(users, messages)


def get_notifier() -> Notifier:
    if settings.PUSH_NOTIFICATIONS_ENABLED:
        return ExpoPushNotifier()
    return LoggingNotifier()


def get_dispatcher(notifier: Notifier = Depends(get_notifier)) -> FanOutDispatcher:
    return FanOutDispatcher(manager, notifier)


def get_group_service(
    store: ConversationStore = Depends(get_conversation_store),
    messages: MessageLog = Depends(get_message_log),
    read_state: ReadStateManager = Depends(get_read_state),
    users: UserDirectory = Depends(get_user_directory),
    dispatcher: FanOutDispatcher = Depends(get_dispatcher),
) -> GroupService:
    return GroupService(store, messages, read_state, users, dispatcher)


def get_direct_service(
    messages: MessageLog = Depends(get_message_log),
    read_state: ReadStateManager = Depends(get_read_state),
    users: UserDirectory = Depends(get_user_directory),
    dispatcher: FanOutDispatcher = Depends(get_dispatcher),
) -> DirectMessageService:
    return DirectMessageService(messages, read_state, users, dispatcher)
