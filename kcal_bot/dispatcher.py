"""Routing of chat commands to their handlers."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional, Protocol

from .calculations import build_short_stat
from .errors import ParseError, PersistenceError
from .parsing import parse_add_args, parse_command
from .rendering import as_pre_messages, format_item_stat, format_short_stat
from .shutdown import ShutdownSignal
from .storage import ConsumedItem, Gateway
from .timeutils import (
    DisplayPattern,
    format_kcal,
    format_offset,
    parse_lenient_double,
    user_day_start_utc,
    utc_now,
)


LOGGER = logging.getLogger(__name__)

# Keeps shifted dates far below datetime.max.
MAX_TIMEZONE_OFFSET = 1_000_000
NO_LIMIT_WORDS = frozenset({"off", "none", "no", "нет", "-"})
TIMEZONE_PATTERN = re.compile(r"[+-]?[0-9]+")
# Longer ids do not fit an SQLite INTEGER.
ITEM_ID_PATTERN = re.compile(r"[0-9]{1,18}")


class Action(str, Enum):
    HELP = "help"
    ADD = "add"
    REMOVE = "remove"
    REMOVE_FORCE = "remove_force"
    STAT = "stat"
    DAY_STAT = "day_stat"
    LONG_STAT = "long_stat"
    SUPER_STAT = "super_stat"
    TIMEZONE = "timezone"
    LIMIT = "limit"
    KILL = "kill"


KEYWORDS = {
    Action.HELP: ("help", "start", "h", "помощь", "хелп", "старт", "справка"),
    Action.ADD: ("add", "a", "eat", "добавить", "доб", "адд", "съел"),
    Action.REMOVE: ("remove", "rm", "del", "delete", "удалить", "ремув"),
    Action.REMOVE_FORCE: ("removeforce", "rmf", "forceremove"),
    Action.STAT: ("stat", "s", "today", "стат", "сегодня"),
    Action.DAY_STAT: ("daystat", "ds", "day", "дейстат", "день"),
    Action.LONG_STAT: ("longstat", "ls", "all", "лонгстат", "всё", "все"),
    Action.SUPER_STAT: ("superstat", "суперстат"),
    Action.TIMEZONE: ("timezone", "tz", "таймзона", "пояс"),
    Action.LIMIT: ("limit", "max", "лимит"),
    Action.KILL: ("kill", "killmeplease", "килл"),
}

ALIASES = {keyword: action for action, keywords in KEYWORDS.items() for keyword in keywords}

ADMIN_ACTIONS = frozenset({Action.REMOVE_FORCE, Action.SUPER_STAT, Action.KILL})

WELCOME_TEXT = "Hi! I count the calories you eat. You are registered now."

HELP_TEXT = (
    "What I understand:\n"
    "• /add <food>, <kcal> - log food, e.g. /add oatmeal, 150\n"
    "• /remove <id> - delete a logged item\n"
    "• /stat - today's total against your limit\n"
    "• /daystat - today's items\n"
    "• /longstat - everything you have logged\n"
    "• /timezone <hours> - your UTC offset, e.g. /timezone 3\n"
    "• /limit <kcal> - daily limit, /limit off to remove it\n"
    "• /help - this message\n"
    "Commands work without the slash and in Russian too: добавить, стат, лимит."
)

UNKNOWN_TEXT = "Unknown command. Send /help to see what I can do."
ERROR_TEXT = "Something went wrong. Please try again a bit later."
ADD_USAGE = "Usage: /add <food>, <kcal>, e.g. /add oatmeal, 150"


class Transport(Protocol):
    async def send_text(self, user_id: int, text: str, html: bool = False) -> None: ...


def is_admin(admin_ids: Iterable[int], user_id: int) -> bool:
    return user_id in admin_ids


def resolve_action(keyword: str, admin: bool) -> Optional[Action]:
    """Map a keyword to an action; admin actions are invisible to other users."""

    action = ALIASES.get(keyword.lower())
    if action in ADMIN_ACTIONS and not admin:
        return None
    return action


def parse_limit(args: str) -> Optional[float]:
    """Parse a daily limit; ``None`` clears it."""

    if args.lower() in NO_LIMIT_WORDS:
        return None
    value = parse_lenient_double(args)
    if value < 0:
        raise ParseError(f"Negative limit: {args!r}")
    return value


def describe_item(item: ConsumedItem) -> str:
    if item.kcal is None:
        return item.text
    return f"{item.text}, {format_kcal(item.kcal)} kcal"


Handler = Callable[[int, str], Awaitable[None]]


class CommandDispatcher:
    """Handles one inbound message at a time, start to finish."""

    def __init__(
        self,
        storage: Gateway,
        transport: Transport,
        admin_ids: Iterable[int] = (),
        shutdown: Optional[ShutdownSignal] = None,
    ) -> None:
        self.storage = storage
        self.transport = transport
        self.admin_ids = frozenset(admin_ids)
        self.shutdown = shutdown or ShutdownSignal()
        self._handlers: dict[Action, Handler] = {
            Action.HELP: self.help,
            Action.ADD: self.add,
            Action.REMOVE: self.remove,
            Action.REMOVE_FORCE: self.remove_force,
            Action.STAT: self.short_stat,
            Action.DAY_STAT: self.day_stat,
            Action.LONG_STAT: self.long_stat,
            Action.SUPER_STAT: self.super_stat,
            Action.TIMEZONE: self.timezone,
            Action.LIMIT: self.limit,
            Action.KILL: self.kill,
        }

    async def _send(self, user_id: int, text: str, html: bool = False) -> None:
        await self.transport.send_text(user_id, text, html=html)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    async def handle(self, user_id: int, text: str) -> None:
        """Process a message or callback payload; never raises."""

        try:
            await self._dispatch(user_id, text)
        except PersistenceError:
            LOGGER.exception("Storage failure while handling %r from %s", text, user_id)
            await self._send_safely(user_id, f"Database error while handling '{text}'. Please try again later.")
        except Exception:
            LOGGER.exception("Failed to handle %r from %s", text, user_id)
            await self._send_safely(user_id, ERROR_TEXT)

    async def _send_safely(self, user_id: int, text: str) -> None:
        try:
            await self._send(user_id, text)
        except Exception:
            LOGGER.exception("Cannot deliver error message to %s", user_id)

    async def _dispatch(self, user_id: int, text: str) -> None:
        command = parse_command(text)
        action = None
        if command is not None:
            action = resolve_action(command.keyword, is_admin(self.admin_ids, user_id))

        registered_now = await self._ensure_registered(user_id)
        if registered_now and action is Action.HELP:
            return

        if command is None or action is None:
            await self.unknown(user_id, text)
            return

        LOGGER.debug("User %s -> %s %r", user_id, action.value, command.args)
        await self._handlers[action](user_id, command.args)

    async def _ensure_registered(self, user_id: int) -> bool:
        if self.storage.has_user(user_id):
            return False
        if not self.storage.register_user(user_id, utc_now()):
            raise PersistenceError(f"Cannot register user {user_id}")
        LOGGER.info("Registered user %s", user_id)
        await self._send(user_id, WELCOME_TEXT)
        await self._send(user_id, HELP_TEXT)
        return True

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    async def help(self, user_id: int, args: str) -> None:
        await self._send(user_id, HELP_TEXT)

    async def unknown(self, user_id: int, text: str) -> None:
        await self._send(user_id, UNKNOWN_TEXT)

    async def add(self, user_id: int, args: str) -> None:
        try:
            parsed = parse_add_args(args)
            kcal = parse_lenient_double(parsed.kcal_text) if parsed.kcal_text is not None else None
        except ParseError:
            await self._send(user_id, f"Cannot understand '{args}'. {ADD_USAGE}")
            return

        item = self.storage.add_consumed_item(user_id, parsed.name, kcal, utc_now())
        if item is None:
            await self._send(user_id, f"Database error: could not add '{parsed.name}' for user {user_id}.")
            return

        LOGGER.info("User %s added item %s (%s kcal)", user_id, item.id, item.kcal)
        await self._send(user_id, f"Added #{item.id}: {describe_item(item)}")
        await self.short_stat(user_id, "")

    async def remove(self, user_id: int, args: str) -> None:
        await self._remove(user_id, args, force=False)

    async def remove_force(self, user_id: int, args: str) -> None:
        await self._remove(user_id, args, force=True)

    async def _remove(self, user_id: int, args: str, force: bool) -> None:
        if not ITEM_ID_PATTERN.fullmatch(args):
            await self._send(user_id, f"'{args}' is not an item id. Usage: /remove <id>")
            return
        item_id = int(args)

        item = self.storage.remove_consumed_item(item_id, None if force else user_id)
        if item is None:
            await self._send(user_id, f"Database error: item {item_id} was not found or cannot be removed.")
            return

        LOGGER.info("User %s removed item %s of user %s", user_id, item.id, item.user_id)
        owner = f" (user {item.user_id})" if item.user_id != user_id else ""
        await self._send(user_id, f"Removed #{item.id}{owner}: {describe_item(item)}")

    async def short_stat(self, user_id: int, args: str) -> None:
        offset = self.storage.get_user_timezone_offset(user_id)
        begin = user_day_start_utc(offset)
        total = self.storage.get_consumed_sum(begin, utc_now(), user_id)
        limit = self.storage.get_max_kcal(user_id)
        await self._send(user_id, format_short_stat(build_short_stat(total, limit)))

    async def day_stat(self, user_id: int, args: str) -> None:
        offset = self.storage.get_user_timezone_offset(user_id)
        items = self.storage.get_consumed_items(user_day_start_utc(offset), utc_now(), user_id)
        total = sum(item.kcal or 0.0 for item in items)
        text = format_item_stat("Today", items, offset, total, DisplayPattern.SHORT)
        for message in as_pre_messages(text):
            await self._send(user_id, message, html=True)

    async def long_stat(self, user_id: int, args: str) -> None:
        offset = self.storage.get_user_timezone_offset(user_id)
        items = self.storage.get_consumed_items(None, None, user_id)
        total = sum(item.kcal or 0.0 for item in items)
        text = format_item_stat("All time", items, offset, total, DisplayPattern.LONG)
        for message in as_pre_messages(text):
            await self._send(user_id, message, html=True)

    async def super_stat(self, user_id: int, args: str) -> None:
        offset = self.storage.get_user_timezone_offset(user_id)
        items = self.storage.get_consumed_items(None, None, None)
        total = sum(item.kcal or 0.0 for item in items)
        text = format_item_stat("All users", items, offset, total, DisplayPattern.LONG, with_user=True)
        for message in as_pre_messages(text):
            await self._send(user_id, message, html=True)

    async def timezone(self, user_id: int, args: str) -> None:
        if not args:
            offset = self.storage.get_user_timezone_offset(user_id)
            await self._send(
                user_id,
                f"Your timezone is UTC{format_offset(offset)}. Usage: /timezone <hours>",
            )
            return

        # Negative offsets are rejected even though the stat output can show them.
        offset = int(args) if TIMEZONE_PATTERN.fullmatch(args) else None
        if offset is None or offset < 0 or offset > MAX_TIMEZONE_OFFSET:
            await self._send(
                user_id,
                f"Invalid timezone '{args}'. Use a non-negative whole number of hours.",
            )
            return

        if not self.storage.set_user_timezone_offset(user_id, offset):
            await self._send(user_id, f"Database error: cannot set timezone {offset} for user {user_id}.")
            return
        LOGGER.info("User %s set timezone %s", user_id, offset)
        await self._send(user_id, f"Timezone set to UTC{format_offset(offset)}")

    async def limit(self, user_id: int, args: str) -> None:
        if not args:
            current = self.storage.get_max_kcal(user_id)
            state = "not set" if current is None else f"{format_kcal(current)} kcal"
            await self._send(user_id, f"Your daily limit is {state}. Usage: /limit <kcal> or /limit off")
            return

        try:
            max_kcal = parse_limit(args)
        except ParseError:
            await self._send(user_id, f"Invalid limit '{args}'. Use a non-negative number of kcal.")
            return

        if not self.storage.set_max_kcal(user_id, max_kcal):
            await self._send(user_id, f"Database error: cannot set limit {args} for user {user_id}.")
            return
        LOGGER.info("User %s set limit %s", user_id, max_kcal)
        if max_kcal is None:
            await self._send(user_id, "Daily limit removed")
        else:
            await self._send(user_id, f"Daily limit set to {format_kcal(max_kcal)} kcal")

    async def kill(self, user_id: int, args: str) -> None:
        LOGGER.warning("Shutdown requested by %s", user_id)
        await self._send(user_id, "Shutting down...")
        self.shutdown.request()
