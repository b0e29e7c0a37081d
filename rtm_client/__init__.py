"""Remember The Milk client.

A terminal UI and command line client for the Remember The Milk task
service. Signs and performs REST calls, walks the desktop authorization
handshake, and keeps an in-memory tree of lists and tasks with optimistic
completion and undo.

Public API Usage:
    # Build a client from the saved keys and credential
    from rtm_client import connect

    result = connect()
    if result.success:
        lists = await result.client.fetch_lists()

    # Wire a client by hand
    from rtm_client import AppSettings, create_client

    client = create_client("key", "secret", AppSettings())
    url = await client.auth.start()
    ...
    credential = await client.auth.exchange_token()

    # Drive the model without a terminal
    from rtm_client import InteractionLoop, Refresh

    loop = InteractionLoop(client, on_render=print)
    loop.post(Refresh())
    await loop.run_until_idle()
"""

__version__ = "0.1.0"

# =============================================================================
# Client and Authentication
# =============================================================================

from rtm_client.auth import AuthSession, AuthState, CredentialSlot
from rtm_client.client import RtmClient
from rtm_client.services import ClientResult, connect, create_client
from rtm_client.transport import RtmTransport

# =============================================================================
# Model, Undo and Interaction
# =============================================================================

from rtm_client.events import (
    AddTask,
    CallCompleted,
    CompleteSelected,
    Refresh,
    SetFilter,
    Undo,
)
from rtm_client.interaction import InteractionLoop, Notice, RenderModel
from rtm_client.tree import NodeKind, TaskTree, TreeNode
from rtm_client.undo import UndoEntry, UndoStack

# =============================================================================
# Data Models
# =============================================================================

from rtm_client.models import (
    AppSettings,
    AuthConfig,
    Credential,
    Perms,
    Priority,
    Task,
    TaskChange,
    TaskList,
    TaskRef,
    TimeLeft,
    TimeLeftKind,
    Transaction,
    User,
)

# =============================================================================
# Configuration
# =============================================================================

from rtm_client.config import (
    clear_user_data,
    load_auth_config,
    load_settings,
    save_auth_config,
    save_settings,
)

# =============================================================================
# Exceptions
# =============================================================================

from rtm_client.exceptions import (
    AuthError,
    AuthFailureReason,
    ConfigError,
    ModelInconsistencyError,
    NotAuthenticatedError,
    RtmClientError,
    ServiceError,
    TransportError,
)

__all__ = [
    "__version__",
    # Client and authentication
    "AuthSession",
    "AuthState",
    "ClientResult",
    "CredentialSlot",
    "RtmClient",
    "RtmTransport",
    "connect",
    "create_client",
    # Model, undo and interaction
    "AddTask",
    "CallCompleted",
    "CompleteSelected",
    "InteractionLoop",
    "NodeKind",
    "Notice",
    "Refresh",
    "RenderModel",
    "SetFilter",
    "TaskTree",
    "TreeNode",
    "Undo",
    "UndoEntry",
    "UndoStack",
    # Data models
    "AppSettings",
    "AuthConfig",
    "Credential",
    "Perms",
    "Priority",
    "Task",
    "TaskChange",
    "TaskList",
    "TaskRef",
    "TimeLeft",
    "TimeLeftKind",
    "Transaction",
    "User",
    # Configuration
    "clear_user_data",
    "load_auth_config",
    "load_settings",
    "save_auth_config",
    "save_settings",
    # Exceptions
    "AuthError",
    "AuthFailureReason",
    "ConfigError",
    "ModelInconsistencyError",
    "NotAuthenticatedError",
    "RtmClientError",
    "ServiceError",
    "TransportError",
]
