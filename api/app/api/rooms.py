"""
Rooms API

監視対象ルームの一覧・登録・承認（管理者のみ）

- GET   /rooms       Chatwork APIトークンが設定されていれば参加中ルームを同期してから返す
- POST  /rooms       ルームを手動登録（Slack は workspace_id 必須）
- PATCH /rooms/{id}  承認・監視停止

同期や LINE のグループ参加で自動登録されたルームは is_active=False のため、
ここで承認するまでタスク抽出されない。
"""

import asyncio
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from api.app.deps.auth import require_admin
from api.app.schemas.room import RoomCreateRequest, RoomResponse, RoomUpdateRequest
from taskcatcher.channels.chatwork import fetch_rooms as fetch_chatwork_rooms
from taskcatcher.db import session_scope
from taskcatcher.exceptions import MalformedRequest, NotFound, PermissionDenied
from taskcatcher.logging import get_logger, log_audit_event
from taskcatcher.models import SOURCES, Room
from taskcatcher.permissions import SessionUser, is_system_admin
from taskcatcher.store import rooms as rooms_store
from taskcatcher.store import settings as settings_store
from taskcatcher.tenant import validate_tenant_access

logger = get_logger(__name__)

router = APIRouter(prefix="/rooms", tags=["rooms"])


def _to_response(room: Room) -> dict:
    return {
        "id": room.id,
        "room_id": room.room_id,
        "room_name": room.room_name or "",
        "source": room.source,
        "is_active": room.is_active,
        "company_id": room.company_id,
        "workspace_id": room.workspace_id,
    }


def _get_chatwork_api_token_db(company_id: Optional[int]) -> Optional[str]:
    with session_scope() as session:
        settings_row = settings_store.get_company_settings(session, company_id)
        return settings_row.chatwork_api_token if settings_row else None


def _sync_chatwork_rooms_db(company_id: Optional[int], chatwork_rooms: List[Dict[str, str]]) -> None:
    """新しいルームは承認待ちで追加、既存ルームは名前だけ更新"""
    with session_scope() as session:
        for room in chatwork_rooms:
            rooms_store.register_pending_room(
                session, "chatwork", room["room_id"], company_id, room["name"]
            )


def _list_rooms_db(company_id: Optional[int], source: Optional[str]) -> List[dict]:
    with session_scope() as session:
        return [_to_response(r) for r in rooms_store.list_rooms(session, company_id, source)]


def _create_room_db(company_id: Optional[int], req: RoomCreateRequest) -> dict:
    with session_scope() as session:
        room = rooms_store.upsert_room(
            session,
            req.source,
            req.room_id,
            company_id,
            room_name=req.room_name,
            is_active=req.is_active,
            workspace_id=req.workspace_id,
        )
        return _to_response(room)


def _set_room_active_db(user: SessionUser, pk: int, is_active: bool) -> dict:
    with session_scope() as session:
        room = rooms_store.get_room_by_pk(session, pk)
        if room is None:
            raise NotFound("Room not found")
        if not validate_tenant_access(
            room.company_id,
            user.company_id,
            allow_cross_tenant=is_system_admin(user),
        ):
            raise PermissionDenied("Forbidden")
        rooms_store.set_room_active(session, pk, is_active)
        session.commit()
        return _to_response(room)


async def _sync_chatwork_rooms(company_id: Optional[int]) -> None:
    api_token = await asyncio.to_thread(_get_chatwork_api_token_db, company_id)
    if not api_token:
        return
    chatwork_rooms = await fetch_chatwork_rooms(api_token)
    if chatwork_rooms is None:
        logger.warning("Chatwork room sync skipped, returning stored rooms", company_id=company_id)
        return
    await asyncio.to_thread(_sync_chatwork_rooms_db, company_id, chatwork_rooms)
    logger.info("Chatwork rooms synced", company_id=company_id, count=len(chatwork_rooms))


@router.get("", response_model=List[RoomResponse])
async def list_rooms(
    source: Optional[str] = Query(None, description="chatwork / teams / lark / slack / line"),
    user: SessionUser = Depends(require_admin),
):
    """自テナントのルーム一覧（Chatwork は API から同期）"""
    if source is not None and source not in SOURCES:
        raise MalformedRequest("Invalid source")
    if source in (None, "chatwork"):
        await _sync_chatwork_rooms(user.company_id)
    return await asyncio.to_thread(_list_rooms_db, user.company_id, source)


@router.post("", response_model=RoomResponse, status_code=201)
async def create_room(
    req: RoomCreateRequest,
    user: SessionUser = Depends(require_admin),
):
    """ルームを手動登録（既存なら名前と有効状態を更新）"""
    if req.source == "slack" and not req.workspace_id:
        raise MalformedRequest("Missing workspace_id")

    room = await asyncio.to_thread(_create_room_db, user.company_id, req)
    log_audit_event(
        logger,
        action="create",
        resource_type="room",
        resource_id=str(room["id"]),
        user_id=str(user.id),
        details={"source": room["source"], "room_id": room["room_id"]},
    )
    return room


@router.patch("/{room_pk}", response_model=RoomResponse)
async def update_room(
    room_pk: int,
    req: RoomUpdateRequest,
    user: SessionUser = Depends(require_admin),
):
    """ルームの承認・監視停止"""
    room = await asyncio.to_thread(_set_room_active_db, user, room_pk, req.is_active)
    log_audit_event(
        logger,
        action="activate" if req.is_active else "deactivate",
        resource_type="room",
        resource_id=str(room_pk),
        user_id=str(user.id),
        details={"source": room["source"], "room_id": room["room_id"]},
    )
    return room
