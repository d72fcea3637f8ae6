"""
Wire models for notifications and their actions.

Every model round-trips through a plain dict (the transport record) via
from_dict()/to_dict(). to_dict() always emits every key so consumers never
have to guess at defaults; from_dict() tolerates missing and unknown keys
because records arrive from session storage, live events and broadcast
queues that may have been written by an older or newer sender.

Records are shape-compatible with Filament notification payloads:

  Action       {"name", "color", "event", "eventData", "emitDirection", ...}
  ActionGroup  {"actions": [<Action>, ...], "color", "icon", ...}
  Notification {"id", "actions": [<Action|ActionGroup>, ...], "title", ...}

An action list entry is an ActionGroup iff it carries an "actions" key.
"""
import inspect
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Literal, Union

log = logging.getLogger("notifly.models")


class MissingFieldError(KeyError):
    """A record lacks a field that has no sensible default (e.g. Action.name)."""

    def __init__(self, model: str, field_name: str):
        super().__init__(field_name)
        self.model = model
        self.field_name = field_name

    def __str__(self):
        return f"{self.model} record is missing required field {self.field_name!r}"


# ── Conditions ────────────────────────────────────────────────

# A flag that may be decided at render time rather than at send time.
Condition = Union[bool, Callable[..., Any]]


def evaluate(condition: Condition, subject: Any = None) -> bool:
    """
    Resolve a Condition to a bool.

    Callables are invoked lazily with the owning object when they accept an
    argument, or with nothing when they don't.
    """
    if not callable(condition):
        return bool(condition)
    try:
        takes_arg = bool(inspect.signature(condition).parameters)
    except (TypeError, ValueError):
        takes_arg = True
    return bool(condition(subject) if takes_arg else condition())


# ── View safety ───────────────────────────────────────────────

# "namespace::dotted.name": no path separators, no parent-dir hops.
_TEMPLATE_NAME = re.compile(r"[A-Za-z0-9_-]+::[A-Za-z0-9_-]+(\.[A-Za-z0-9_-]+)*")


def _view_is_safe(view: str, prefixes: tuple[str, ...]) -> bool:
    if not isinstance(view, str) or not view:
        return False
    if not _TEMPLATE_NAME.fullmatch(view):
        return False
    return any(view.startswith(p) for p in prefixes)


def _str_or_none(value) -> str | None:
    if value is None:
        return None
    return str(value)


def _str_mapping(value) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items()}


def _headline(name: str) -> str:
    words = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", name)
    words = re.sub(r"[_\-.]+", " ", words)
    return " ".join(w.capitalize() for w in words.split())


# ── Interaction handler ───────────────────────────────────────

MARK_AS_READ   = "markAsRead"
MARK_AS_UNREAD = "markAsUnread"
OPEN_URL       = "openUrl"
EMIT           = "emit"
CLOSE          = "close"


@dataclass(frozen=True)
class InteractionHandler:
    """The single behavior a click on an action triggers."""
    kind: str
    url: str | None = None
    open_in_new_tab: bool = False
    event: str | None = None
    event_data: Any = None
    emit_direction: str | None = None
    emit_to_component: str | None = None


# ── Action ────────────────────────────────────────────────────

EmitDirection = Literal["self", "up", "to"]

BADGE_VIEW       = "filament-actions::badge-action"
BUTTON_VIEW      = "filament-actions::button-action"
GROUPED_VIEW     = "filament-actions::grouped-action"
ICON_BUTTON_VIEW = "filament-actions::icon-button-action"
LINK_VIEW        = "filament-actions::link-action"

_EMIT_DIRECTIONS = ("self", "up", "to")


@dataclass
class Action:
    """
    A single clickable control attached to a notification.

    Behavior, in click priority order:
      should_mark_as_read      mark the parent notification read
      should_mark_as_unread    mark it unread (ignored when read is also set)
      url                      navigate, optionally in a new tab
      event                    emit an event (global, self, up, or to a component)
      should_close             close the parent notification

    is_disabled suppresses all of the above.
    """
    kind: ClassVar[str] = "action"
    safe_view_prefixes: ClassVar[tuple[str, ...]] = ("filament-actions::",)
    default_view: ClassVar[str] = LINK_VIEW

    name: str

    # Presentation
    color: str | None = None
    icon: str | None = None
    icon_position: str = "before"
    icon_size: str | None = None
    label: str | None = None
    is_outlined: bool = False
    size: str = "sm"
    extra_attributes: dict[str, str] = field(default_factory=dict)
    view: str = ""

    # Behavior
    url: str | None = None
    should_open_url_in_new_tab: bool = False
    event: str | None = None
    event_data: Any = field(default_factory=dict)
    emit_direction: EmitDirection | None = None
    emit_to_component: str | None = None

    # Lifecycle
    is_disabled: bool = False
    should_close: bool = False
    should_mark_as_read: Condition = False
    should_mark_as_unread: Condition = False

    def __post_init__(self):
        if not self.name:
            raise MissingFieldError("Action", "name")
        if not self.view:
            self.view = self.default_view
        if self.url is None:
            self.should_open_url_in_new_tab = False
        if self.emit_direction not in _EMIT_DIRECTIONS:
            self.emit_direction = None
        if self.emit_direction != "to":
            self.emit_to_component = None
        if self.event_data is None:
            self.event_data = {}

    # ── Views ─────────────────────────────────────────────────

    @classmethod
    def is_view_safe(cls, view: str) -> bool:
        """True if view names a template inside an allow-listed namespace."""
        return _view_is_safe(view, cls.safe_view_prefixes)

    def button(self) -> "Action":
        self.view = BUTTON_VIEW
        return self

    def link(self) -> "Action":
        self.view = LINK_VIEW
        return self

    # ── Evaluated state ───────────────────────────────────────

    def get_label(self) -> str:
        return self.label if self.label is not None else _headline(self.name)

    def is_marked_as_read(self) -> bool:
        return evaluate(self.should_mark_as_read, self)

    def is_marked_as_unread(self) -> bool:
        return evaluate(self.should_mark_as_unread, self)

    def get_interaction_handler(self) -> InteractionHandler | None:
        """Resolve the one handler a click runs; None when nothing happens."""
        if self.is_disabled:
            return None
        if self.is_marked_as_read():
            return InteractionHandler(MARK_AS_READ)
        if self.is_marked_as_unread():
            return InteractionHandler(MARK_AS_UNREAD)
        if self.url:
            return InteractionHandler(OPEN_URL, url=self.url,
                                      open_in_new_tab=self.should_open_url_in_new_tab)
        if self.event:
            return InteractionHandler(
                EMIT, event=self.event, event_data=self.event_data,
                emit_direction=self.emit_direction,
                emit_to_component=self.emit_to_component,
            )
        if self.should_close:
            return InteractionHandler(CLOSE)
        return None

    # ── Serialization ─────────────────────────────────────────

    @classmethod
    def from_dict(cls, d: dict) -> "Action":
        """Build an Action from a transport record. Raises MissingFieldError without a name."""
        if not isinstance(d, dict):
            raise TypeError(f"Action record must be a mapping, got {type(d).__name__}")
        name = d.get("name")
        if not name:
            raise MissingFieldError("Action", "name")

        view = d.get("view")
        if view and not cls.is_view_safe(view):
            log.debug("Ignoring unsafe view %r on action %r", view, name)
            view = None

        direction = d.get("emitDirection")
        if direction not in _EMIT_DIRECTIONS:
            direction = None

        return cls(
            name=str(name),
            color=_str_or_none(d.get("color")),
            icon=_str_or_none(d.get("icon")),
            icon_position=str(d.get("iconPosition") or "before"),
            icon_size=_str_or_none(d.get("iconSize")),
            label=_str_or_none(d.get("label")),
            is_outlined=bool(d.get("isOutlined", False)),
            size=str(d.get("size") or "sm"),
            extra_attributes=_str_mapping(d.get("extraAttributes")),
            view=view or cls.default_view,
            url=_str_or_none(d.get("url")),
            should_open_url_in_new_tab=bool(d.get("shouldOpenUrlInNewTab", False)),
            event=_str_or_none(d.get("event")),
            event_data=d.get("eventData") if d.get("eventData") is not None else {},
            emit_direction=direction,
            emit_to_component=_str_or_none(d.get("emitToComponent")) if direction == "to" else None,
            is_disabled=bool(d.get("isDisabled", False)),
            should_close=bool(d.get("shouldClose", False)),
            should_mark_as_read=bool(d.get("shouldMarkAsRead", False)),
            should_mark_as_unread=bool(d.get("shouldMarkAsUnread", False)),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "color": self.color,
            "event": self.event,
            "eventData": self.event_data,
            "emitDirection": self.emit_direction,
            "emitToComponent": self.emit_to_component,
            "extraAttributes": dict(self.extra_attributes),
            "icon": self.icon,
            "iconPosition": self.icon_position,
            "iconSize": self.icon_size,
            "isOutlined": self.is_outlined,
            "isDisabled": self.is_disabled,
            # derived label; from_dict(to_dict(a)).label is never None
            "label": self.get_label(),
            "shouldClose": self.should_close,
            "shouldMarkAsRead": self.is_marked_as_read(),
            "shouldMarkAsUnread": self.is_marked_as_unread(),
            "shouldOpenUrlInNewTab": self.should_open_url_in_new_tab,
            "size": self.size,
            "url": self.url,
            "view": self.view,
        }


# ── ActionGroup ───────────────────────────────────────────────

@dataclass
class ActionGroup:
    """Ordered actions rendered behind one trigger (dropdown). Order is tab order."""
    kind: ClassVar[str] = "group"

    actions: list[Action] = field(default_factory=list)
    color: str | None = None
    icon: str | None = None
    icon_position: str | None = None
    icon_size: str | None = None
    label: str | None = None
    tooltip: str | None = None

    def __post_init__(self):
        if self.actions is None:
            self.actions = []

    @classmethod
    def from_dict(cls, d: dict) -> "ActionGroup":
        if not isinstance(d, dict):
            raise TypeError(f"ActionGroup record must be a mapping, got {type(d).__name__}")
        raw = d.get("actions") or []
        return cls(
            actions=[Action.from_dict(a) for a in raw],
            color=_str_or_none(d.get("color")),
            icon=_str_or_none(d.get("icon")),
            icon_position=_str_or_none(d.get("iconPosition")),
            icon_size=_str_or_none(d.get("iconSize")),
            label=_str_or_none(d.get("label")),
            tooltip=_str_or_none(d.get("tooltip")),
        )

    def to_dict(self) -> dict:
        return {
            "actions": [a.to_dict() for a in self.actions],
            "color": self.color,
            "icon": self.icon,
            "iconPosition": self.icon_position,
            "iconSize": self.icon_size,
            "label": self.label,
            "tooltip": self.tooltip,
        }


NotificationAction = Union[Action, ActionGroup]


def action_from_dict(d: dict) -> NotificationAction:
    """Deserialize one action-list entry, telling groups from actions by shape."""
    if isinstance(d, dict) and "actions" in d:
        return ActionGroup.from_dict(d)
    return Action.from_dict(d)


# ── Notification ──────────────────────────────────────────────

DEFAULT_DURATION = 6000   # milliseconds
PERSISTENT       = "persistent"
NOTIFICATION_VIEW = "filament-notifications::notification"

# status -> (icon, icon color) applied when not set explicitly
_STATUS_ICONS = {
    "success": ("heroicon-o-check-circle", "success"),
    "warning": ("heroicon-o-exclamation-circle", "warning"),
    "danger":  ("heroicon-o-x-circle", "danger"),
    "info":    ("heroicon-o-information-circle", "info"),
}


@dataclass
class Notification:
    """
    A transient message shown to one client session.

    id is the only key the delivery side looks at; everything else is
    display data carried through untouched.
    """
    safe_view_prefixes: ClassVar[tuple[str, ...]] = ("filament-notifications::",)
    broadcast_format: ClassVar[str] = "filament"

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    title: str | None = None
    body: str | None = None
    color: str | None = None
    icon: str | None = None
    icon_color: str | None = None
    status: str | None = None
    duration: int | str = DEFAULT_DURATION
    view: str = NOTIFICATION_VIEW
    view_data: dict = field(default_factory=dict)
    actions: list[NotificationAction] = field(default_factory=list)

    def __post_init__(self):
        if self.actions is None:
            self.actions = []
        if self.status in _STATUS_ICONS:
            icon, icon_color = _STATUS_ICONS[self.status]
            self.icon = self.icon or icon
            self.icon_color = self.icon_color or icon_color

    # ── Duration ──────────────────────────────────────────────

    def milliseconds(self, ms: int) -> "Notification":
        self.duration = int(ms)
        return self

    def seconds(self, s: float) -> "Notification":
        self.duration = int(s * 1000)
        return self

    def persistent(self) -> "Notification":
        self.duration = PERSISTENT
        return self

    def is_persistent(self) -> bool:
        return self.duration == PERSISTENT

    # ── Actions ───────────────────────────────────────────────

    def flat_actions(self) -> list[Action]:
        """Every Action, with groups expanded in place."""
        out: list[Action] = []
        for entry in self.actions:
            if entry.kind == "group":
                out.extend(entry.actions)
            else:
                out.append(entry)
        return out

    def find_action(self, name: str) -> Action | None:
        for action in self.flat_actions():
            if action.name == name:
                return action
        return None

    # ── Serialization ─────────────────────────────────────────

    @classmethod
    def is_view_safe(cls, view: str) -> bool:
        return _view_is_safe(view, cls.safe_view_prefixes)

    @classmethod
    def from_dict(cls, d: dict) -> "Notification":
        """
        Parse a transport record. Raises MissingFieldError / TypeError if any
        contained action is malformed; nothing partial is returned.
        """
        if not isinstance(d, dict):
            raise TypeError(f"Notification record must be a mapping, got {type(d).__name__}")
        view = d.get("view")
        if view and not cls.is_view_safe(view):
            log.debug("Ignoring unsafe view %r on notification %r", view, d.get("id"))
            view = None
        view = view or NOTIFICATION_VIEW
        duration = d.get("duration", DEFAULT_DURATION)
        if duration != PERSISTENT:
            try:
                duration = int(duration)
            except (TypeError, ValueError, OverflowError):
                duration = DEFAULT_DURATION
        view_data = d.get("viewData")
        return cls(
            id=str(d.get("id") or uuid.uuid4().hex),
            title=_str_or_none(d.get("title")),
            body=_str_or_none(d.get("body")),
            color=_str_or_none(d.get("color")),
            icon=_str_or_none(d.get("icon")),
            icon_color=_str_or_none(d.get("iconColor")),
            status=_str_or_none(d.get("status")),
            duration=duration,
            view=view,
            view_data=dict(view_data) if isinstance(view_data, dict) else {},
            actions=[action_from_dict(a) for a in (d.get("actions") or [])],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actions": [a.to_dict() for a in self.actions],
            "body": self.body,
            "color": self.color,
            "duration": self.duration,
            "icon": self.icon,
            "iconColor": self.icon_color,
            "status": self.status,
            "title": self.title,
            "view": self.view,
            "viewData": dict(self.view_data),
            "format": self.broadcast_format,
        }


# ── Principal ─────────────────────────────────────────────────

@dataclass
class User:
    """Minimal authenticated principal; only its key is used (for channel naming)."""
    id: str
    name: str = ""

    def get_key(self) -> str:
        return self.id
