"""Pydantic models for Asterisk ARI entities and event envelopes.

Entity models are deliberately lenient: only the identifier is required and
unknown fields are kept, because Asterisk versions differ in what they send.
Event envelopes are frozen; enrichment with instance proxies always produces
a new envelope.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union, Literal
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from asterisk_ari.exceptions import ProtocolError

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def _normalize_timestamp(v: Any) -> Any:
    """Accept ARI timestamps such as ``2023-09-21T12:00:00.000+0000``."""
    if isinstance(v, str):
        if v.endswith("Z"):
            return v[:-1] + "+00:00"
        return _COMPACT_OFFSET.sub(r"\1:\2", v)
    return v


class ChannelState(str, Enum):
    """Channel state enumeration."""
    DOWN = "Down"
    RESERVED = "Rsrvd"
    OFF_HOOK = "OffHook"
    DIALING = "Dialing"
    RING = "Ring"
    RINGING = "Ringing"
    UP = "Up"
    BUSY = "Busy"
    DIALING_OFFHOOK = "Dialing Offhook"
    PRE_RING = "Pre-ring"
    UNKNOWN = "Unknown"


class PlaybackState(str, Enum):
    """Playback state enumeration."""
    QUEUED = "queued"
    PLAYING = "playing"
    CONTINUING = "continuing"
    DONE = "done"
    FAILED = "failed"


class RecordingState(str, Enum):
    """Recording state enumeration."""
    QUEUED = "queued"
    RECORDING = "recording"
    PAUSED = "paused"
    DONE = "done"
    FAILED = "failed"
    CANCELED = "canceled"


class ARIModel(BaseModel):
    """Base class for all ARI entity models."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        use_enum_values=True,
        extra="allow",
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary with proper serialization."""
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ARIModel":
        """Create model instance from dictionary."""
        return cls.model_validate(data)


class CallerID(ARIModel):
    """Caller ID information."""
    name: Optional[str] = None
    number: Optional[str] = None


class DialplanCEP(ARIModel):
    """Dialplan Context, Extension, Priority."""
    context: Optional[str] = None
    exten: Optional[str] = None
    priority: Optional[int] = None
    app_name: Optional[str] = None
    app_data: Optional[str] = None


class Channel(ARIModel):
    """A channel within Asterisk."""

    id: str = Field(..., description="Unique identifier for the channel")
    name: Optional[str] = Field(None, description="Name of the channel")
    state: Optional[Union[ChannelState, str]] = Field(None, description="Current state of the channel")
    caller: Optional[CallerID] = None
    connected: Optional[CallerID] = None
    accountcode: Optional[str] = None
    dialplan: Optional[DialplanCEP] = None
    creationtime: Optional[datetime] = None
    language: Optional[str] = None

    @field_validator("creationtime", mode="before")
    @classmethod
    def parse_datetime(cls, v: Any) -> Any:
        """Parse datetime from ARI formats."""
        return _normalize_timestamp(v)


class Bridge(ARIModel):
    """A bridge within Asterisk."""

    id: str = Field(..., description="Unique identifier for the bridge")
    technology: Optional[str] = None
    bridge_type: Optional[str] = None
    bridge_class: Optional[str] = None
    channels: List[str] = Field(default_factory=list, description="Channel IDs in this bridge")
    name: Optional[str] = None
    creator: Optional[str] = None
    creationtime: Optional[datetime] = None

    @field_validator("creationtime", mode="before")
    @classmethod
    def parse_datetime(cls, v: Any) -> Any:
        """Parse datetime from ARI formats."""
        return _normalize_timestamp(v)


class Playback(ARIModel):
    """A playback operation within Asterisk."""

    id: str = Field(..., description="Unique identifier for the playback")
    media_uri: Optional[str] = None
    next_media_uri: Optional[str] = None
    target_uri: Optional[str] = None
    language: Optional[str] = None
    state: Optional[Union[PlaybackState, str]] = None


class Recording(ARIModel):
    """A live recording within Asterisk."""

    name: str = Field(..., description="Name of the recording")
    format: Optional[str] = None
    state: Optional[Union[RecordingState, str]] = None
    target_uri: Optional[str] = None
    duration: Optional[int] = None
    cause: Optional[str] = None


class Event(BaseModel):
    """Base envelope for events received on the event stream.

    Every envelope exposes the entity payloads it may carry (``channel``,
    ``bridge``, ``playback``) and, once enriched, the matching instance
    proxies (``instance_channel``, ``instance_bridge``, ``instance_playback``).
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="allow",
        arbitrary_types_allowed=True,
    )

    type: str = Field(..., description="Type of the event")
    application: Optional[str] = Field(None, description="Application receiving the event")
    timestamp: Optional[datetime] = None
    asterisk_id: Optional[str] = None

    channel: Optional[Channel] = None
    bridge: Optional[Bridge] = None
    playback: Optional[Playback] = None

    instance_channel: Optional[Any] = Field(None, alias="instanceChannel", exclude=True)
    instance_bridge: Optional[Any] = Field(None, alias="instanceBridge", exclude=True)
    instance_playback: Optional[Any] = Field(None, alias="instancePlayback", exclude=True)

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> Any:
        return _normalize_timestamp(v)

    def entity(self, kind: str) -> Optional[ARIModel]:
        """Return the entity payload of the given kind, if present."""
        return getattr(self, kind, None)

    def instance(self, kind: str) -> Optional[Any]:
        """Return the instance proxy attached for the given kind, if any."""
        return getattr(self, f"instance_{kind}", None)

    def with_instances(self, **instances: Any) -> "Event":
        """Return a copy with ``instance_<kind>`` fields set."""
        update = {f"instance_{kind}": instance for kind, instance in instances.items()}
        return self.model_copy(update=update)


class UnknownEvent(Event):
    """Envelope for event types this library does not model."""

    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)


class StasisStart(Event):
    """A channel entered a Stasis application."""

    type: Literal["StasisStart"] = "StasisStart"
    channel: Channel
    args: List[str] = Field(default_factory=list)
    replace_channel: Optional[Channel] = None


class StasisEnd(Event):
    """A channel left a Stasis application."""

    type: Literal["StasisEnd"] = "StasisEnd"
    channel: Channel


class ChannelCreated(Event):
    type: Literal["ChannelCreated"] = "ChannelCreated"
    channel: Channel


class ChannelDestroyed(Event):
    type: Literal["ChannelDestroyed"] = "ChannelDestroyed"
    channel: Channel
    cause: Optional[int] = None
    cause_txt: Optional[str] = None


class ChannelStateChange(Event):
    type: Literal["ChannelStateChange"] = "ChannelStateChange"
    channel: Channel


class ChannelDtmfReceived(Event):
    type: Literal["ChannelDtmfReceived"] = "ChannelDtmfReceived"
    channel: Channel
    digit: str
    duration_ms: Optional[int] = None


class ChannelHangupRequest(Event):
    type: Literal["ChannelHangupRequest"] = "ChannelHangupRequest"
    channel: Channel
    cause: Optional[int] = None
    soft: Optional[bool] = None


class ChannelVarset(Event):
    """A channel or global variable changed; ``channel`` is absent for globals."""

    type: Literal["ChannelVarset"] = "ChannelVarset"
    variable: str
    value: Optional[str] = None


class ChannelEnteredBridge(Event):
    type: Literal["ChannelEnteredBridge"] = "ChannelEnteredBridge"
    bridge: Bridge
    channel: Optional[Channel] = None


class ChannelLeftBridge(Event):
    type: Literal["ChannelLeftBridge"] = "ChannelLeftBridge"
    bridge: Bridge
    channel: Channel


class BridgeCreated(Event):
    type: Literal["BridgeCreated"] = "BridgeCreated"
    bridge: Bridge


class BridgeDestroyed(Event):
    type: Literal["BridgeDestroyed"] = "BridgeDestroyed"
    bridge: Bridge


class PlaybackStarted(Event):
    type: Literal["PlaybackStarted"] = "PlaybackStarted"
    playback: Playback


class PlaybackContinuing(Event):
    type: Literal["PlaybackContinuing"] = "PlaybackContinuing"
    playback: Playback


class PlaybackFinished(Event):
    type: Literal["PlaybackFinished"] = "PlaybackFinished"
    playback: Playback


class RecordingStarted(Event):
    type: Literal["RecordingStarted"] = "RecordingStarted"
    recording: Recording


class RecordingFinished(Event):
    type: Literal["RecordingFinished"] = "RecordingFinished"
    recording: Recording


EVENT_TYPES: Dict[str, Type[Event]] = {
    cls.model_fields["type"].default: cls
    for cls in (
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
    )
}


def parse_event(payload: Any) -> Event:
    """Build the envelope for a decoded stream frame.

    A frame whose body does not fit the model of its type is still
    delivered, as an :class:`UnknownEvent` that carries no entities and keeps
    the payload in ``raw``.

    Raises:
        ProtocolError: If the payload is not an object with a string ``type``
    """
    if not isinstance(payload, dict):
        raise ProtocolError(f"Event frame must be a JSON object, got {type(payload).__name__}")

    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise ProtocolError("Event frame has no 'type' field", frame=repr(payload))

    cls = EVENT_TYPES.get(event_type)
    try:
        if cls is None:
            return UnknownEvent.model_validate({**payload, "raw": payload})
        return cls.model_validate(payload)
    except ValidationError:
        application = payload.get("application")
        return UnknownEvent(
            type=event_type,
            application=application if isinstance(application, str) else None,
            raw=payload,
        )


__all__ = [
    "ARIModel",
    "ChannelState",
    "PlaybackState",
    "RecordingState",
    "CallerID",
    "DialplanCEP",
    "Channel",
    "Bridge",
    "Playback",
    "Recording",
    "Event",
    "UnknownEvent",
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
    "EVENT_TYPES",
    "parse_event",
]
