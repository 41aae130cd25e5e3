"""Ownership-aware approval routing and execution.

A client that selects a destination for entities it does not own cannot
move them.  Instead it posts one durable, whispered approval message per
distinct recipient set.  Whoever clicks approve performs the move with
their own permissions; the first deletion of the message wins.
"""

from __future__ import annotations

import html
import logging
from collections.abc import Sequence

from pyelevator._constants import (
    APPROVAL_CONFIRMATION,
    APPROVAL_PROMPT,
    APPROVAL_TITLE,
    ERROR_INVALID_DESTINATION,
    MOD_ID,
    WARN_NOTHING_APPROVABLE,
    WARN_TELEPORT_UNAVAILABLE,
)
from pyelevator.config import ElevatorConfig
from pyelevator.host import (
    Actor,
    Host,
    MessagePost,
    Movable,
    NoticeLevel,
    movables_inside,
    resolve_movable,
    resolve_waypoint,
)
from pyelevator.messaging import CurrentLevelMessenger
from pyelevator.models.approval import ApprovalOutcome, ApprovalRoute, RoutedAs, TeleportRequest

_logger = logging.getLogger(__name__)

APPROVE_ACTION = f"{MOD_ID}-approve"
DENY_ACTION = f"{MOD_ID}-deny"


def route_entity(
    entity: Movable,
    *,
    host: Host,
    require_authority_for_all: bool = False,
) -> ApprovalRoute | None:
    """Decide who must approve moving *entity*.

    Online non-authority owners come first.  Without any, the request goes
    to online authority users, and failing that to every authority user so
    the message waits for their return.  ``None`` means nobody can approve.
    """
    users = list(host.users())
    if not require_authority_for_all:
        owners = [
            user.id
            for user in users
            if not user.is_authority and host.is_owner(entity, user.id) and host.is_online(user.id)
        ]
        if owners:
            return ApprovalRoute(entity_uuid=entity.uuid, recipients=tuple(owners), routed_as=RoutedAs.OWNER)

    authorities = [user.id for user in users if user.is_authority]
    recipients = [user_id for user_id in authorities if host.is_online(user_id)] or authorities
    if not recipients:
        return None
    return ApprovalRoute(entity_uuid=entity.uuid, recipients=tuple(recipients), routed_as=RoutedAs.AUTHORITY)


def render_approval_content(request: TeleportRequest, *, requester_name: str, subject_label: str = "") -> str:
    """HTML body of an approval message with its approve and deny buttons."""
    parts = [
        f'<div class="{MOD_ID}-approval" data-request-id="{html.escape(request.request_id)}">',
        f"<h3>{html.escape(APPROVAL_TITLE)}</h3>",
        f"<p><strong>{html.escape(requester_name)}</strong> {html.escape(APPROVAL_PROMPT)}</p>",
    ]
    if subject_label:
        parts.append(f'<p class="{MOD_ID}-subject">{html.escape(subject_label)}</p>')
    if request.dest_label:
        parts.append(f'<p class="{MOD_ID}-destination">{html.escape(request.dest_label)}</p>')
    parts.append(
        f'<div class="{MOD_ID}-actions">'
        f'<button type="button" data-action="{APPROVE_ACTION}">Approve</button>'
        f'<button type="button" data-action="{DENY_ACTION}">Deny</button>'
        "</div>"
    )
    parts.append("</div>")
    return "".join(parts)


class ApprovalWorkflow:
    """Creates approval messages and executes approve/deny clicks."""

    def __init__(
        self,
        host: Host,
        messenger: CurrentLevelMessenger,
        *,
        config: ElevatorConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._host = host
        self._messenger = messenger
        self._config = config or ElevatorConfig()
        self._logger = logger or _logger

    async def request_approval(
        self,
        actor: Actor,
        *,
        entities: Sequence[Movable],
        dest_uuid: str,
        dest_label: str = "",
        network_id: str | None = None,
        scene_from_id: str | None = None,
        origin_uuid: str | None = None,
    ) -> list[str]:
        """Post one approval message per distinct recipient set.

        Returns the ids of the created messages.  Entities nobody can
        approve are skipped.
        """
        groups: dict[tuple[str, ...], list[Movable]] = {}
        for entity in entities:
            try:
                route = route_entity(
                    entity,
                    host=self._host,
                    require_authority_for_all=self._config.require_authority_for_all,
                )
            except Exception:
                self._logger.warning("Approval routing failed entity=%s", entity.uuid, exc_info=True)
                continue
            if route is None:
                self._logger.debug("No approver for entity=%s; skipped", entity.uuid)
                continue
            groups.setdefault(tuple(sorted(route.recipients)), []).append(entity)

        message_ids: list[str] = []
        for recipients, members in groups.items():
            request = TeleportRequest(
                requester=actor.user_id,
                network_id=network_id,
                dest_uuid=dest_uuid,
                dest_label=dest_label,
                entity_uuids=[entity.uuid for entity in members],
                scene_from_id=scene_from_id,
                origin_uuid=origin_uuid,
            )
            post = MessagePost(
                content=render_approval_content(
                    request,
                    requester_name=actor.display_name,
                    subject_label=", ".join(entity.name for entity in members if entity.name),
                ),
                whisper=recipients,
                flags=request.to_message_flags(),
                speaker=actor.user_id,
            )
            try:
                message_id = await self._host.post_message(post)
            except Exception:
                self._logger.warning("Posting approval message failed recipients=%s", recipients, exc_info=True)
                continue
            self._logger.debug(
                "Approval requested message=%s request_id=%s recipients=%s entities=%d",
                message_id,
                request.request_id,
                recipients,
                len(members),
            )
            message_ids.append(message_id)
        return message_ids

    async def _candidates(self, request: TeleportRequest) -> list[Movable]:
        if request.entity_uuids:
            resolved = [await resolve_movable(self._host, uuid) for uuid in request.entity_uuids]
            return [entity for entity in resolved if entity is not None]

        # Requester could not enumerate the entities: re-scan the origin.
        origin = await resolve_waypoint(self._host, request.origin_uuid)
        if origin is None:
            return []
        return [
            entity
            for entity in movables_inside(self._host, origin)
            if (request.scene_from_id is None or entity.scene_id == request.scene_from_id)
            and not self._host.is_owner(entity, request.requester)
        ]

    async def _delete(self, message_id: str) -> bool:
        try:
            return await self._host.delete_message(message_id)
        except Exception:
            self._logger.warning("Deleting approval message failed message=%s", message_id, exc_info=True)
            return False

    async def _confirm(self, actor: Actor, request: TeleportRequest) -> None:
        content = f"<p>{html.escape(APPROVAL_CONFIRMATION)}</p>"
        if request.dest_label:
            content += f"<p>{html.escape(request.dest_label)}</p>"
        try:
            await self._host.post_message(
                MessagePost(content=content, whisper=(request.requester,), speaker=actor.user_id)
            )
        except Exception:
            self._logger.debug("Approval confirmation failed requester=%s", request.requester, exc_info=True)

    async def approve(self, actor: Actor, message_id: str) -> ApprovalOutcome:
        """Execute the request embedded in *message_id* on behalf of *actor*.

        A non-authority approver only moves entities they own.  When nothing
        moves the message is kept and a warning is shown; otherwise the
        message is deleted.
        """
        try:
            message = await self._host.get_message(message_id)
        except Exception:
            self._logger.debug("Reading approval message failed message=%s", message_id, exc_info=True)
            message = None
        if message is None:
            return ApprovalOutcome(message_id=message_id, already_gone=True)

        request = TeleportRequest.from_message_flags(message.flags)
        if request is None:
            self._host.notify(NoticeLevel.ERROR, ERROR_INVALID_DESTINATION)
            return ApprovalOutcome(message_id=message_id)

        dest = await resolve_waypoint(self._host, request.dest_uuid)
        if dest is None:
            self._host.notify(NoticeLevel.ERROR, ERROR_INVALID_DESTINATION)
            return ApprovalOutcome(message_id=message_id)

        moved: list[str] = []
        failed: list[str] = []
        skipped: list[str] = []
        for entity in await self._candidates(request):
            if not actor.is_authority and not self._host.is_owner(entity, actor.user_id):
                skipped.append(entity.uuid)
                continue
            try:
                await dest.teleport(entity)
            except Exception:
                self._logger.warning("Approved move failed entity=%s dest=%s", entity.uuid, dest.uuid, exc_info=True)
                failed.append(entity.uuid)
                continue
            moved.append(entity.uuid)

        if failed:
            self._host.notify(NoticeLevel.WARN, WARN_TELEPORT_UNAVAILABLE)
        if not moved:
            self._host.notify(NoticeLevel.WARN, WARN_NOTHING_APPROVABLE)
            return ApprovalOutcome(message_id=message_id, failed=failed, skipped=skipped)

        if request.network_id:
            try:
                await self._messenger.request_set_current_level(actor, request.network_id, request.dest_uuid)
            except Exception:
                self._logger.debug("Current level update after approval failed", exc_info=True)
        await self._confirm(actor, request)
        deleted = await self._delete(message_id)
        self._logger.debug(
            "Approval executed message=%s moved=%d failed=%d skipped=%d",
            message_id,
            len(moved),
            len(failed),
            len(skipped),
        )
        return ApprovalOutcome(
            message_id=message_id,
            moved=moved,
            failed=failed,
            skipped=skipped,
            deleted=deleted,
            already_gone=not deleted,
        )

    async def deny(self, actor: Actor, message_id: str) -> ApprovalOutcome:
        """Drop the request by deleting its message.  No state changes."""
        deleted = await self._delete(message_id)
        self._logger.debug("Approval denied message=%s by=%s deleted=%s", message_id, actor.user_id, deleted)
        return ApprovalOutcome(message_id=message_id, deleted=deleted, already_gone=not deleted)
