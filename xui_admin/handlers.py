"""High level bot application logic.

Updates are processed one at a time. Free text is first matched against
the command table (:mod:`xui_admin.commands`); "Return to Main Menu",
"Cancel" and ``/start`` reset the conversation from any stage. Everything
else is dispatched on the user's current :class:`~xui_admin.state.Stage`.
"""
from __future__ import annotations

import html
import logging
import time
from typing import Callable, Dict, List, Optional

from .aggregation import SortType, aggregate_members, member_names, sub_id_for_member
from .commands import ESCAPE_INTENTS, Intent, button, resolve_intent
from .config import Settings
from .naming import extract_base_username
from .permissions import AccessType, PermissionController
from .provisioning import NoInboundsError, ProvisioningEngine
from .qr import render_qr_png
from .reports import (
    format_detailed_report,
    format_expiry_date,
    format_failures,
    format_members_overview,
    format_network_usage_report,
    format_online_report,
    format_subscription_info,
)
from .state import Stage, UserState, UserStateStore
from .storage import StorageError, TrustStore, pseudo_telegram_id
from .telegram import TelegramAPIError, TelegramBot, inline_keyboard, reply_keyboard
from .validation import parse_duration, sanitize_string, validate_telegram_username, validate_username
from .xui_api import ClientNotFoundError, XUIClient, XUIError

LOGGER = logging.getLogger(__name__)

REMOVE_VPN_PREFIX = "remove_vpn_"
REVOKE_TRUSTED_PREFIX = "revoke_trusted_"

SELECT_EDIT = "edit"
SELECT_DELETE = "delete"
SELECT_RESET = "reset"

AUTO_ACCOUNT_PASSWORD = "auto-generated"

StageHandler = Callable[[int, int, str, Optional[Intent], UserState], None]


def _esc(value: object) -> str:
    return html.escape(str(value))


def _parse_callback_id(data: str, prefix: str) -> Optional[int]:
    if not data.startswith(prefix):
        return None
    try:
        return int(data[len(prefix):])
    except ValueError:
        return None


class BotApp:
    """Telegram front end for administrators and trusted users."""

    def __init__(
        self,
        settings: Settings,
        *,
        bot: Optional[TelegramBot] = None,
        client: Optional[XUIClient] = None,
        trust_store: Optional[TrustStore] = None,
        states: Optional[UserStateStore] = None,
    ) -> None:
        self.settings = settings
        self.bot = bot if bot is not None else TelegramBot(settings.bot_token)
        if client is None:
            client = XUIClient(
                settings.xui_url,
                settings.xui_username,
                settings.xui_password,
                api_prefix=settings.xui_api_prefix,
                sub_url_prefix=settings.sub_url_prefix,
                verify_ssl=settings.xui_verify_ssl,
            )
        self.client = client
        self.engine = ProvisioningEngine(client)
        self.repository = self.engine.repository
        self.trust_store = trust_store if trust_store is not None else TrustStore(settings.data_file)
        self.permissions = PermissionController(settings.admin_ids, self.trust_store)
        self.states = states if states is not None else UserStateStore()

        self._admin_stages: Dict[Stage, StageHandler] = {
            Stage.AWAITING_USERNAME: self._handle_username,
            Stage.AWAITING_DURATION: self._handle_duration,
            Stage.AWAITING_SELECTION: self._handle_selection,
            Stage.AWAITING_ACTION: self._handle_action,
            Stage.AWAITING_EXTEND_DURATION: self._handle_extend_duration,
            Stage.AWAITING_RESET_CONFIRMATION: self._handle_reset_confirmation,
            Stage.AWAITING_DELETE_CONFIRMATION: self._handle_delete_confirmation,
            Stage.AWAITING_TRUSTED_USERNAME: self._handle_trusted_username,
        }
        self._trusted_stages: Dict[Stage, StageHandler] = {
            Stage.AWAITING_DELETE_CONFIRMATION: self._handle_trusted_delete_confirmation,
        }

    # ------------------------------------------------------------------
    # main loop
    # ------------------------------------------------------------------
    def run(self) -> None:  # pragma: no cover - infinite loop
        LOGGER.info("bot started")
        if not self.client.check_connection():
            LOGGER.warning("panel is not reachable yet, requests will retry on demand")
        offset: Optional[int] = None
        while True:
            try:
                updates = self.bot.get_updates(offset=offset, timeout=25)
            except TelegramAPIError as exc:
                LOGGER.error("failed to fetch updates: %s", exc)
                time.sleep(self.settings.poll_interval)
                continue
            for update in updates:
                offset = update["update_id"] + 1
                try:
                    self._process_update(update)
                except Exception as exc:
                    LOGGER.exception("unhandled error while processing update: %s", exc)
            time.sleep(self.settings.poll_interval)

    def _process_update(self, update: Dict) -> None:
        if "message" in update:
            self._handle_message(update["message"])
        elif "callback_query" in update:
            self._handle_callback(update["callback_query"])

    # ------------------------------------------------------------------
    # keyboards
    # ------------------------------------------------------------------
    @staticmethod
    def _main_keyboard(access: AccessType) -> Dict:
        if access is AccessType.ADMIN:
            return reply_keyboard([
                [button(Intent.ADD_MEMBER), button(Intent.EDIT_MEMBER)],
                [button(Intent.DELETE_MEMBER), button(Intent.ONLINE_MEMBERS)],
                [button(Intent.NETWORK_USAGE), button(Intent.DETAILED_USAGE)],
                [button(Intent.RESET_NETWORK_USAGE)],
                [button(Intent.ADD_TRUSTED), button(Intent.REVOKE_TRUSTED)],
            ])
        return reply_keyboard([
            [button(Intent.ADD_MEMBER)],
            [button(Intent.DELETE_MEMBER)],
        ])

    @staticmethod
    def _return_keyboard() -> Dict:
        return reply_keyboard([[button(Intent.RETURN)]])

    @staticmethod
    def _confirm_keyboard() -> Dict:
        return reply_keyboard([[button(Intent.CONFIRM)], [button(Intent.RETURN)]])

    @staticmethod
    def _action_keyboard() -> Dict:
        return reply_keyboard([
            [button(Intent.VIEW_CONFIG), button(Intent.EXTEND_DURATION)],
            [button(Intent.RESET_TRAFFIC), button(Intent.DELETE)],
            [button(Intent.RETURN)],
        ])

    @staticmethod
    def _selection_keyboard(names: List[str]) -> Dict:
        return reply_keyboard([[name] for name in names] + [[button(Intent.RETURN)]])

    # ------------------------------------------------------------------
    # messages
    # ------------------------------------------------------------------
    def _handle_message(self, message: Dict) -> None:
        chat_id = message["chat"]["id"]
        sender = message.get("from") or {}
        user_id = sender.get("id", chat_id)
        text = sanitize_string(message.get("text") or "")

        access = self.permissions.access_type(user_id, sender.get("username"))
        if access is AccessType.NONE:
            LOGGER.info("ignoring message from unauthorized user %s", user_id)
            self.bot.send_message(chat_id, "You are not authorized to use this bot.")
            return

        intent = resolve_intent(text)
        if intent in ESCAPE_INTENTS:
            self.states.clear(user_id)
            self._send_main_menu(chat_id, access, welcome=intent is Intent.START)
            return

        try:
            if access is AccessType.ADMIN:
                self._dispatch(self._admin_stages, self._handle_admin_command, chat_id, user_id, text, intent)
            else:
                self._dispatch(
                    self._trusted_stages,
                    lambda c, u, i: self._handle_trusted_command(c, u, i, sender),
                    chat_id,
                    user_id,
                    text,
                    intent,
                )
        except NoInboundsError as exc:
            self.bot.send_message(
                chat_id,
                f"{_esc(str(exc).capitalize())}. Please contact administrator.",
                reply_markup=self._main_keyboard(access),
            )
        except ClientNotFoundError as exc:
            self.bot.send_message(chat_id, _esc(exc), reply_markup=self._main_keyboard(access))
        except XUIError as exc:
            LOGGER.error("panel request failed: %s", exc)
            self.bot.send_message(chat_id, f"Panel error: {_esc(exc)}", reply_markup=self._main_keyboard(access))
        except StorageError as exc:
            LOGGER.error("trust store update failed: %s", exc)
            self.bot.send_message(chat_id, "Failed to update the local database.")

    def _dispatch(
        self,
        stages: Dict[Stage, StageHandler],
        on_idle: Callable[[int, int, Optional[Intent]], None],
        chat_id: int,
        user_id: int,
        text: str,
        intent: Optional[Intent],
    ) -> None:
        state = self.states.get(user_id)
        handler = stages.get(state.stage)
        if state.is_idle or handler is None:
            if not state.is_idle:
                LOGGER.warning("unexpected stage %s for user %s", state.stage.value, user_id)
                self.states.clear(user_id)
            on_idle(chat_id, user_id, intent)
            return
        handler(chat_id, user_id, text, intent, state)

    def _send_main_menu(self, chat_id: int, access: AccessType, *, welcome: bool = False) -> None:
        if access is AccessType.ADMIN:
            text = "Welcome to X-UI Admin Bot!" if welcome else "Main Menu"
        else:
            text = "Welcome! You are a trusted user." if welcome else "Main Menu"
        self.bot.send_message(chat_id, text, reply_markup=self._main_keyboard(access))

    def _send_qr(self, chat_id: int, url: str) -> None:
        try:
            self.bot.send_photo(chat_id, render_qr_png(url), caption="QR code for subscription")
        except TelegramAPIError as exc:
            LOGGER.error("Failed to send QR code: %s", exc)

    # ------------------------------------------------------------------
    # administrator menu
    # ------------------------------------------------------------------
    def _handle_admin_command(self, chat_id: int, user_id: int, intent: Optional[Intent]) -> None:
        if intent is Intent.ADD_MEMBER:
            self.states.transition(user_id, Stage.AWAITING_USERNAME, None)
            self.bot.send_message(
                chat_id,
                "Please enter the username for the new member:",
                reply_markup=self._return_keyboard(),
            )
        elif intent is Intent.EDIT_MEMBER:
            self._prompt_selection(chat_id, user_id, SELECT_EDIT, "Please select a member to edit:")
        elif intent is Intent.DELETE_MEMBER:
            self._prompt_selection(chat_id, user_id, SELECT_DELETE, "Please select a member to delete:")
        elif intent is Intent.RESET_NETWORK_USAGE:
            self._prompt_selection(chat_id, user_id, SELECT_RESET, "Please select a member to reset network usage:")
        elif intent is Intent.ONLINE_MEMBERS:
            online = self.client.get_online_clients()
            self.bot.send_message(chat_id, format_online_report(online), reply_markup=self._main_keyboard(AccessType.ADMIN))
        elif intent is Intent.NETWORK_USAGE:
            report = format_network_usage_report(self.repository.list())
            self.bot.send_message(chat_id, report, reply_markup=self._return_keyboard())
        elif intent is Intent.DETAILED_USAGE:
            report = format_detailed_report(self.repository.list())
            self.bot.send_message(chat_id, report, reply_markup=self._main_keyboard(AccessType.ADMIN))
        elif intent is Intent.ADD_TRUSTED:
            self.states.transition(user_id, Stage.AWAITING_TRUSTED_USERNAME, None)
            self.bot.send_message(chat_id, "Send @username to add to trusted list:", reply_markup=self._return_keyboard())
        elif intent is Intent.REVOKE_TRUSTED:
            self._prompt_revoke_trusted(chat_id)
        else:
            self._send_main_menu(chat_id, AccessType.ADMIN)

    def _prompt_selection(self, chat_id: int, user_id: int, purpose: str, prompt: str) -> None:
        members = aggregate_members(self.repository.list(), SortType.CREATION_ORDER)
        if not members:
            self.bot.send_message(chat_id, "No members found.", reply_markup=self._return_keyboard())
            return
        self.states.transition(user_id, Stage.AWAITING_SELECTION, purpose)
        if purpose == SELECT_EDIT:
            self.bot.send_message(chat_id, format_members_overview(members, SortType.CREATION_ORDER))
        names = [member.base_username for member in members]
        self.bot.send_message(chat_id, prompt, reply_markup=self._selection_keyboard(names))

    # ------------------------------------------------------------------
    # administrator dialogue stages
    # ------------------------------------------------------------------
    def _handle_username(self, chat_id: int, user_id: int, text: str, intent: Optional[Intent], state: UserState) -> None:
        ok, error = validate_username(text)
        if not ok:
            self.bot.send_message(chat_id, f"{error} Please try again:")
            return
        existing = {member.base_username for member in aggregate_members(self.repository.list())}
        if text in existing:
            self.bot.send_message(chat_id, f"Member {_esc(text)} already exists. Please choose another username:")
            return
        self.states.transition(user_id, Stage.AWAITING_DURATION, text)
        self.bot.send_message(
            chat_id,
            "Enter the duration in days (e.g., 30) or choose infinite duration:",
            reply_markup=reply_keyboard([[button(Intent.INFINITE)], [button(Intent.RETURN)]]),
        )

    def _handle_duration(self, chat_id: int, user_id: int, text: str, intent: Optional[Intent], state: UserState) -> None:
        days: Optional[int] = None
        if intent is not Intent.INFINITE:
            ok, days = parse_duration(text)
            if not ok:
                self.bot.send_message(
                    chat_id,
                    "Invalid duration. Please enter a number of days (e.g., 30) or choose infinite duration:",
                )
                return
        username = state.payload
        self.states.clear(user_id)
        if not username:
            self.bot.send_message(chat_id, "Username not found. Please try again.", reply_markup=self._main_keyboard(AccessType.ADMIN))
            return
        self._create_and_report(chat_id, user_id, username, days, AccessType.ADMIN)

    def _create_and_report(
        self,
        chat_id: int,
        user_id: int,
        username: str,
        days: Optional[int],
        access: AccessType,
    ) -> bool:
        result = self.engine.create_member(username, days, owner_id=user_id)
        if not result.success:
            title = "Failed to add client to any inbound:" if access is AccessType.ADMIN else "Failed to create account:"
            self.bot.send_message(chat_id, format_failures(title, result.warnings), reply_markup=self._main_keyboard(access))
            return False
        url = self.client.subscription_url(result.sub_id)
        self.bot.send_message(
            chat_id,
            format_subscription_info(username, days, result, url),
            reply_markup=self._main_keyboard(access),
        )
        self._send_qr(chat_id, url)
        return True

    def _handle_selection(self, chat_id: int, user_id: int, text: str, intent: Optional[Intent], state: UserState) -> None:
        names = [member.base_username for member in aggregate_members(self.repository.list())]
        if text not in names:
            self.bot.send_message(
                chat_id,
                "Member not found. Please select a member from the list:",
                reply_markup=self._selection_keyboard(names),
            )
            return
        if state.payload == SELECT_DELETE:
            self._ask_delete_confirmation(chat_id, user_id, text)
        elif state.payload == SELECT_RESET:
            self._ask_reset_confirmation(chat_id, user_id, text)
        else:
            self.states.transition(user_id, Stage.AWAITING_ACTION, text)
            self.bot.send_message(
                chat_id,
                f"Selected user: {_esc(text)}\nWhat would you like to do?",
                reply_markup=self._action_keyboard(),
            )

    def _ask_delete_confirmation(self, chat_id: int, user_id: int, username: str) -> None:
        self.states.transition(user_id, Stage.AWAITING_DELETE_CONFIRMATION, username)
        self.bot.send_message(
            chat_id,
            f"Are you sure you want to delete {_esc(username)}?",
            reply_markup=self._confirm_keyboard(),
        )

    def _ask_reset_confirmation(self, chat_id: int, user_id: int, username: str) -> None:
        self.states.transition(user_id, Stage.AWAITING_RESET_CONFIRMATION, username)
        self.bot.send_message(
            chat_id,
            f"Reset network usage of {_esc(username)}?",
            reply_markup=self._confirm_keyboard(),
        )

    def _handle_action(self, chat_id: int, user_id: int, text: str, intent: Optional[Intent], state: UserState) -> None:
        username = state.payload
        if not username:
            self.states.clear(user_id)
            self.bot.send_message(chat_id, "Username not found. Please try again.", reply_markup=self._main_keyboard(AccessType.ADMIN))
            return
        if intent is Intent.VIEW_CONFIG:
            self._view_config(chat_id, username)
        elif intent is Intent.EXTEND_DURATION:
            self.states.transition(user_id, Stage.AWAITING_EXTEND_DURATION)
            self.bot.send_message(
                chat_id,
                f"Please enter the number of days to extend for {_esc(username)}:",
                reply_markup=self._return_keyboard(),
            )
        elif intent is Intent.RESET_TRAFFIC:
            self._ask_reset_confirmation(chat_id, user_id, username)
        elif intent is Intent.DELETE:
            self._ask_delete_confirmation(chat_id, user_id, username)
        else:
            self.bot.send_message(chat_id, "Invalid action. Please try again.", reply_markup=self._action_keyboard())

    def _view_config(self, chat_id: int, username: str) -> None:
        sub_id = sub_id_for_member(self.repository.list(), username)
        if sub_id is None:
            self.bot.send_message(chat_id, f"No subscription found for {_esc(username)}.", reply_markup=self._action_keyboard())
            return
        url = self.client.subscription_url(sub_id)
        self.bot.send_message(
            chat_id,
            f"Subscription URL for {_esc(username)}:\n\n{_esc(url)}",
            reply_markup=self._action_keyboard(),
        )
        self._send_qr(chat_id, url)

    def _handle_extend_duration(self, chat_id: int, user_id: int, text: str, intent: Optional[Intent], state: UserState) -> None:
        ok, days = parse_duration(text)
        if not ok or days is None:
            self.bot.send_message(chat_id, "Invalid duration. Please enter a number of days (e.g., 30):")
            return
        username = state.payload or ""
        self.states.clear(user_id)
        result = self.engine.extend_member(username, days, owner_id=user_id)
        self.bot.send_message(
            chat_id,
            f"Successfully extended duration for {_esc(result.email)} by {days} days.\n"
            f"Expiry: {format_expiry_date(result.expiry_time)}",
            reply_markup=self._main_keyboard(AccessType.ADMIN),
        )

    def _handle_reset_confirmation(self, chat_id: int, user_id: int, text: str, intent: Optional[Intent], state: UserState) -> None:
        if intent is not Intent.CONFIRM:
            self.bot.send_message(
                chat_id,
                "Please click Confirm to reset network usage or use the Return button to cancel.",
                reply_markup=self._confirm_keyboard(),
            )
            return
        username = state.payload or ""
        self.states.clear(user_id)
        result = self.engine.reset_traffic(username)
        if not result.success:
            self.bot.send_message(
                chat_id,
                format_failures("Failed to reset traffic:", result.warnings),
                reply_markup=self._main_keyboard(AccessType.ADMIN),
            )
            return
        lines = [f"Traffic reset for {_esc(username)} ({len(result.succeeded)} record(s))."]
        if result.warnings:
            lines.append(format_failures("Some records could not be reset:", result.warnings))
        self.bot.send_message(chat_id, "\n".join(lines), reply_markup=self._main_keyboard(AccessType.ADMIN))

    def _handle_delete_confirmation(self, chat_id: int, user_id: int, text: str, intent: Optional[Intent], state: UserState) -> None:
        if intent is not Intent.CONFIRM:
            self.bot.send_message(
                chat_id,
                "Please click Confirm to proceed with deletion or use the Return button to cancel.",
                reply_markup=self._confirm_keyboard(),
            )
            return
        username = state.payload or ""
        self.states.clear(user_id)
        result = self.engine.delete_member(username)
        lines = [f"Client {_esc(username)} deleted successfully."]
        if result.warnings:
            lines.append(format_failures("Some records could not be deleted:", result.warnings))
        self.bot.send_message(chat_id, "\n".join(lines), reply_markup=self._main_keyboard(AccessType.ADMIN))

    # ------------------------------------------------------------------
    # trusted user management
    # ------------------------------------------------------------------
    def _handle_trusted_username(self, chat_id: int, user_id: int, text: str, intent: Optional[Intent], state: UserState) -> None:
        if not text.startswith("@") or not validate_telegram_username(text):
            self.bot.send_message(chat_id, "Please send a valid @username:")
            return
        username = text[1:]
        self.states.clear(user_id)
        if not self.trust_store.add_trusted(pseudo_telegram_id(username), username):
            self.bot.send_message(chat_id, f"@{_esc(username)} is already trusted.", reply_markup=self._main_keyboard(AccessType.ADMIN))
            return
        self.bot.send_message(chat_id, f"@{_esc(username)} added to trusted list.", reply_markup=self._main_keyboard(AccessType.ADMIN))

    def _prompt_revoke_trusted(self, chat_id: int) -> None:
        users = self.trust_store.trusted_users()
        if not users:
            self.bot.send_message(chat_id, "No trusted users found.")
            return
        keyboard = inline_keyboard([
            [{"text": f"❌ @{user.username}", "callback_data": f"{REVOKE_TRUSTED_PREFIX}{user.telegram_id}"}]
            for user in users
        ])
        self.bot.send_message(chat_id, "Select user to revoke:", reply_markup=keyboard)

    # ------------------------------------------------------------------
    # trusted tier
    # ------------------------------------------------------------------
    def _handle_trusted_command(self, chat_id: int, user_id: int, intent: Optional[Intent], sender: Dict) -> None:
        if intent is Intent.ADD_MEMBER:
            self._trusted_add_account(chat_id, user_id, sender)
        elif intent is Intent.DELETE_MEMBER:
            self._trusted_list_accounts(chat_id, user_id)
        else:
            self._send_main_menu(chat_id, AccessType.TRUSTED)

    def _next_account_name(self, tg_username: str, user_id: int) -> str:
        taken = {account.username for account in self.trust_store.accounts_for(user_id)}
        taken.update(extract_base_username(email) for email in member_names(self.repository.list()))
        number = 1
        while f"{tg_username}-add{number}" in taken:
            number += 1
        return f"{tg_username}-add{number}"

    def _trusted_add_account(self, chat_id: int, user_id: int, sender: Dict) -> None:
        limit = self.settings.trusted_account_limit
        if self.trust_store.account_count(user_id) >= limit:
            self.bot.send_message(chat_id, f"You can create maximum {limit} accounts.")
            return
        tg_username = sender.get("username")
        if not tg_username:
            self.bot.send_message(
                chat_id,
                "Error: You need to set a Telegram username first. "
                "Go to Telegram Settings -> Edit Profile -> Username",
            )
            return
        account_name = self._next_account_name(tg_username, user_id)
        self.bot.send_message(chat_id, f"Creating account '{_esc(account_name)}'...")
        if self._create_and_report(chat_id, user_id, account_name, None, AccessType.TRUSTED):
            self.trust_store.add_account(account_name, AUTO_ACCOUNT_PASSWORD, user_id)
            LOGGER.info("trusted user %s created account %s", user_id, account_name)

    def _trusted_list_accounts(self, chat_id: int, user_id: int) -> None:
        accounts = self.trust_store.accounts_for(user_id)
        if not accounts:
            self.bot.send_message(chat_id, "You have no accounts to remove.")
            return
        keyboard = inline_keyboard([
            [{"text": f"❌ {account.username}", "callback_data": f"{REMOVE_VPN_PREFIX}{account.id}"}]
            for account in accounts
        ])
        self.bot.send_message(chat_id, "Select account to remove:", reply_markup=keyboard)

    def _handle_trusted_delete_confirmation(
        self,
        chat_id: int,
        user_id: int,
        text: str,
        intent: Optional[Intent],
        state: UserState,
    ) -> None:
        if intent is not Intent.CONFIRM:
            self.bot.send_message(
                chat_id,
                "Please click Confirm to proceed with deletion or use the Return button to cancel.",
                reply_markup=self._confirm_keyboard(),
            )
            return
        self.states.clear(user_id)
        try:
            account_id = int(state.payload or "")
        except ValueError:
            self.bot.send_message(chat_id, "Invalid account. Please start the deletion process again.")
            return
        account = self.trust_store.get_account(account_id, user_id)
        if account is None:
            self.bot.send_message(chat_id, "Account not found. It may have already been deleted.")
            return

        menu = self._main_keyboard(AccessType.TRUSTED)
        try:
            self.engine.delete_member(account.username)
        except ClientNotFoundError:
            LOGGER.warning("account %s was already missing on the panel", account.username)
        except XUIError as exc:
            LOGGER.error("Failed to remove clients of %s: %s", account.username, exc)
            self.bot.send_message(
                chat_id,
                f"Couldn't delete account '{_esc(account.username)}' from server configurations.\n\n"
                f"Error: {_esc(exc)}",
                reply_markup=menu,
            )
            return
        self.trust_store.remove_account(account.id, user_id)
        self.bot.send_message(chat_id, f"Account '{_esc(account.username)}' has been removed.", reply_markup=menu)

    # ------------------------------------------------------------------
    # callbacks
    # ------------------------------------------------------------------
    def _handle_callback(self, callback: Dict) -> None:
        chat_id = callback["message"]["chat"]["id"]
        sender = callback.get("from") or {}
        user_id = sender.get("id", chat_id)
        data = callback.get("data", "")
        self.bot.answer_callback_query(callback["id"])

        access = self.permissions.access_type(user_id, sender.get("username"))
        revoke_id = _parse_callback_id(data, REVOKE_TRUSTED_PREFIX)
        remove_id = _parse_callback_id(data, REMOVE_VPN_PREFIX)

        if access is AccessType.ADMIN and revoke_id is not None:
            try:
                removed = self.trust_store.remove_trusted(revoke_id)
            except StorageError as exc:
                LOGGER.error("Failed to remove trusted user: %s", exc)
                self.bot.send_message(chat_id, "Failed to revoke user.")
                return
            text = "User revoked from trusted list." if removed else "User is not in the trusted list."
            self.bot.send_message(chat_id, text)
        elif access is AccessType.TRUSTED and remove_id is not None:
            account = self.trust_store.get_account(remove_id, user_id)
            if account is None:
                self.bot.send_message(chat_id, "Account not found.")
                return
            self.states.clear(user_id)
            self.states.transition(user_id, Stage.AWAITING_DELETE_CONFIRMATION, str(account.id))
            self.bot.send_message(
                chat_id,
                f"⚠️ You are about to permanently delete account <b>{_esc(account.username)}</b>.\n"
                "It will be removed from all server configurations. This cannot be undone.\n\n"
                "Are you absolutely sure?",
                reply_markup=self._confirm_keyboard(),
            )
        else:
            LOGGER.info("ignoring callback %r from user %s", data, user_id)
            self.bot.send_message(chat_id, "Unknown action.")
