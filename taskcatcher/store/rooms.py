"""
ルーム（監視対象）ストア

is_active=True のルームのメッセージのみタスク抽出の対象になる。
プラットフォームのイベント（LINE のグループ参加）で発見されたルームは
is_active=False で登録し、管理者の承認を待つ。
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskcatcher.models import Room


def _tenant_filter(company_id: Optional[int]):
    if company_id is None:
        return Room.company_id.is_(None)
    return Room.company_id == company_id


def get_room(
    session: Session,
    source: str,
    room_id: str,
    company_id: Optional[int],
) -> Optional[Room]:
    stmt = select(Room).where(
        Room.source == source,
        Room.room_id == room_id,
        _tenant_filter(company_id),
    )
    return session.execute(stmt).scalar_one_or_none()


def get_room_by_pk(session: Session, pk: int) -> Optional[Room]:
    return session.get(Room, pk)


def is_room_active(
    session: Session,
    source: str,
    room_id: str,
    company_id: Optional[int],
) -> bool:
    """ルームが監視対象（登録済みかつ有効）かどうか"""
    room = get_room(session, source, room_id, company_id)
    return bool(room is not None and room.is_active)


def get_active_rooms_by_source(
    session: Session,
    source: str,
    company_id: Optional[int],
) -> List[Room]:
    stmt = (
        select(Room)
        .where(
            Room.source == source,
            Room.is_active.is_(True),
            _tenant_filter(company_id),
        )
        .order_by(Room.id)
    )
    return list(session.execute(stmt).scalars())


def get_active_rooms_by_workspace(session: Session, workspace_id: str) -> List[Room]:
    """Slackワークスペース（team_id）配下の有効なルーム"""
    stmt = (
        select(Room)
        .where(
            Room.source == "slack",
            Room.workspace_id == workspace_id,
            Room.is_active.is_(True),
        )
        .order_by(Room.id)
    )
    return list(session.execute(stmt).scalars())


def list_rooms(
    session: Session,
    company_id: Optional[int],
    source: Optional[str] = None,
) -> List[Room]:
    stmt = select(Room).where(_tenant_filter(company_id))
    if source:
        stmt = stmt.where(Room.source == source)
    return list(session.execute(stmt.order_by(Room.source, Room.id)).scalars())


def upsert_room(
    session: Session,
    source: str,
    room_id: str,
    company_id: Optional[int],
    room_name: str = "",
    is_active: bool = True,
    workspace_id: Optional[str] = None,
) -> Room:
    """ルームを登録（既存なら名前と有効状態を更新）"""
    room = get_room(session, source, room_id, company_id)
    if room is None:
        room = Room(
            source=source,
            room_id=room_id,
            company_id=company_id,
            workspace_id=workspace_id,
        )
        session.add(room)
    room.room_name = room_name or room.room_name or ""
    room.is_active = is_active
    if workspace_id:
        room.workspace_id = workspace_id
    session.flush()
    return room


def register_pending_room(
    session: Session,
    source: str,
    room_id: str,
    company_id: Optional[int],
    room_name: str = "",
) -> Room:
    """
    イベントで発見したルームを承認待ちで登録

    新規ルームは is_active=False。既存ルームは有効状態を変えず、
    名前だけ更新する。
    """
    room = get_room(session, source, room_id, company_id)
    if room is None:
        room = Room(
            source=source,
            room_id=room_id,
            room_name=room_name,
            company_id=company_id,
            is_active=False,
        )
        session.add(room)
    elif room_name:
        room.room_name = room_name
    session.flush()
    return room


def set_room_active(session: Session, pk: int, is_active: bool) -> Optional[Room]:
    room = session.get(Room, pk)
    if room is None:
        return None
    room.is_active = is_active
    session.flush()
    return room
