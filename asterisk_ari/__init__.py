"""Asterisk ARI Python Library.

An async-first Python library for the Asterisk REST Interface (ARI) event
stream, with cached instance proxies for channels, bridges and playbacks.
"""

__version__ = "0.2.0"
__license__ = "MIT"

from asterisk_ari.client import ARIClient
from asterisk_ari.config import ARIConfig
from asterisk_ari.connection import ConnectionManager, ConnectionState, ReconnectInfo
from asterisk_ari.dispatcher import WILDCARD, ClientEvent, EventDispatcher
from asterisk_ari.exceptions import (
    ARIError,
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    ProtocolError,
    ReconnectExhausted,
    ResourceNotFoundError,
    RestError,
    WebSocketError,
)
from asterisk_ari.models import (
    # Base classes
    ARIModel,
    Event,
    UnknownEvent,
    # Enums
    ChannelState,
    PlaybackState,
    RecordingState,
    # Resource models
    CallerID,
    DialplanCEP,
    Channel,
    Bridge,
    Playback,
    Recording,
    # Event models
    StasisStart,
    StasisEnd,
    ChannelCreated,
    ChannelDestroyed,
    ChannelStateChange,
    ChannelDtmfReceived,
    ChannelHangupRequest,
    ChannelVarset,
    ChannelEnteredBridge,
    ChannelLeftBridge,
    BridgeCreated,
    BridgeDestroyed,
    PlaybackStarted,
    PlaybackContinuing,
    PlaybackFinished,
    RecordingStarted,
    RecordingFinished,
    parse_event,
)
from asterisk_ari.resources import (
    BridgeInstance,
    ChannelInstance,
    PlaybackInstance,
    ResourceInstance,
)

__all__ = [
    # Core client and config
    "ARIClient",
    "ARIConfig",
    # Event stream
    "ConnectionManager",
    "ConnectionState",
    "ReconnectInfo",
    "EventDispatcher",
    "ClientEvent",
    "WILDCARD",
    # Exceptions
    "ARIError",
    "AuthenticationError",
    "ConfigurationError",
    "ConnectionError",
    "ProtocolError",
    "ReconnectExhausted",
    "ResourceNotFoundError",
    "RestError",
    "WebSocketError",
    # Base model classes
    "ARIModel",
    "Event",
    "UnknownEvent",
    # Enums
    "ChannelState",
    "PlaybackState",
    "RecordingState",
    # Resource models
    "CallerID",
    "DialplanCEP",
    "Channel",
    "Bridge",
    "Playback",
    "Recording",
    # Event models
    "StasisStart",
    "StasisEnd",
    "ChannelCreated",
    "ChannelDestroyed",
    "ChannelStateChange",
    "ChannelDtmfReceived",
    "ChannelHangupRequest",
    "ChannelVarset",
    "ChannelEnteredBridge",
    "ChannelLeftBridge",
    "BridgeCreated",
    "BridgeDestroyed",
    "PlaybackStarted",
    "PlaybackContinuing",
    "PlaybackFinished",
    "RecordingStarted",
    "RecordingFinished",
    "parse_event",
    # Instances
    "ResourceInstance",
    "ChannelInstance",
    "BridgeInstance",
    "PlaybackInstance",
]
