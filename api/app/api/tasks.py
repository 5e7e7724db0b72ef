"""
Tasks API

ダッシュボードのタスク一覧・登録・ステータス更新・削除

権限:
    GET    /tasks            認証ユーザー（ロール権限で絞り込み）
    POST   /tasks            管理者のみ
    PATCH  /tasks/{id}       status は can_edit_status、memo は can_view
    DELETE /tasks/{id}       can_delete
    DELETE /tasks/completed  企業管理者（admin）のみ
"""

import asyncio
import uuid
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends

from api.app.deps.auth import get_current_user, require_admin
from api.app.schemas.task import (
    DeleteCompletedResponse,
    TaskCreateRequest,
    TaskResponse,
    TaskUpdateRequest,
)
from taskcatcher.db import session_scope
from taskcatcher.exceptions import MalformedRequest, NotFound, PermissionDenied
from taskcatcher.logging import get_logger, log_audit_event
from taskcatcher.message_url import generate_message_url, get_message_url_label
from taskcatcher.models import TASK_STATUSES, Task
from taskcatcher.notification import TaskInfo, dispatch_task_notification
from taskcatcher.permissions import (
    SessionUser,
    check_task_permission,
    filter_tasks_by_permission,
    is_system_admin,
)
from taskcatcher.store import tasks as tasks_store
from taskcatcher.tenant import validate_tenant_access

logger = get_logger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _to_response(task: Task) -> dict:
    data = task.to_dict()
    data["message_url"] = generate_message_url(
        task.source, task.room_id, task.message_id, task.service_url
    )
    data["message_url_label"] = get_message_url_label(task.source)
    return data


def _load_task_for_user(session, task_id: int, user: SessionUser) -> Task:
    """タスクを取得し、テナントを確認する（他テナントは 403）"""
    task = tasks_store.get_task(session, task_id)
    if task is None:
        raise NotFound("Task not found")
    if not validate_tenant_access(
        task.company_id,
        user.company_id,
        allow_cross_tenant=is_system_admin(user),
    ):
        raise PermissionDenied("Forbidden")
    return task


# =============================================================================
# DB処理（ワーカースレッドで実行）
# =============================================================================


def _list_tasks_db(user: SessionUser) -> List[dict]:
    with session_scope() as session:
        tasks = tasks_store.list_tasks(
            session,
            user.company_id,
            all_tenants=is_system_admin(user),
        )
        visible = filter_tasks_by_permission(session, user, tasks)
        return [_to_response(t) for t in visible]


def _create_task_db(user: SessionUser, req: TaskCreateRequest) -> dict:
    with session_scope() as session:
        task = tasks_store.create_task(
            session,
            room_id=req.room_id,
            message_id=f"manual-{uuid.uuid4().hex}",
            content=req.content.strip(),
            original_message=req.original_message or req.content,
            sender_name=req.sender_name,
            priority=req.priority,
            source=req.source,
            company_id=user.company_id,
            memo=req.memo,
        )
        if task is None:
            raise MalformedRequest("Failed to create task")
        session.commit()
        return _to_response(task)


def _update_task_db(
    user: SessionUser,
    task_id: int,
    req: TaskUpdateRequest,
) -> Tuple[dict, Optional[TaskInfo]]:
    with session_scope() as session:
        task = _load_task_for_user(session, task_id, user)
        permission = check_task_permission(session, user, task.room_id, task.source)

        if req.status is not None:
            if req.status not in TASK_STATUSES:
                raise MalformedRequest("Invalid status")
            if not permission.can_edit_status:
                raise PermissionDenied("No edit permission")
        if req.memo is not None and not permission.can_view:
            raise PermissionDenied("No view permission")

        was_completed = task.status == "completed"
        tasks_store.update_task(session, task, status=req.status, memo=req.memo)
        session.commit()

        completed_now = req.status == "completed" and not was_completed
        notify = TaskInfo.from_task(task) if completed_now else None
        return _to_response(task), notify


def _delete_task_db(user: SessionUser, task_id: int) -> Tuple[TaskInfo, Optional[int]]:
    with session_scope() as session:
        task = _load_task_for_user(session, task_id, user)
        permission = check_task_permission(session, user, task.room_id, task.source)
        if not permission.can_delete:
            raise PermissionDenied("No delete permission")

        info = TaskInfo.from_task(task)
        company_id = task.company_id
        tasks_store.delete_task(session, task)
        session.commit()
        return info, company_id


def _delete_completed_db(company_id: int) -> int:
    with session_scope() as session:
        return tasks_store.delete_completed_tasks(session, company_id)


# =============================================================================
# エンドポイント
# =============================================================================


@router.get("", response_model=List[TaskResponse])
async def list_tasks(user: SessionUser = Depends(get_current_user)):
    """
    タスク一覧

    並び順: ステータス → 優先度 → 作成日時の新しい順。
    system_admin は全テナントのタスクを返す。
    """
    return await asyncio.to_thread(_list_tasks_db, user)


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    req: TaskCreateRequest,
    user: SessionUser = Depends(require_admin),
):
    """タスクを手動登録（管理者のみ）"""
    task = await asyncio.to_thread(_create_task_db, user, req)
    log_audit_event(
        logger,
        action="create",
        resource_type="task",
        resource_id=str(task["id"]),
        user_id=str(user.id),
        details={"manual": True},
    )
    dispatch_task_notification(
        TaskInfo(
            id=task["id"],
            content=task["content"],
            sender_name=task["sender_name"],
            source=task["source"],
            priority=task["priority"],
        ),
        "create",
        user.company_id,
    )
    return task


@router.delete("/completed", response_model=DeleteCompletedResponse)
async def delete_completed_tasks(user: SessionUser = Depends(get_current_user)):
    """完了済みタスクを一括削除（企業管理者のみ）"""
    if user.user_type != "admin":
        raise PermissionDenied("Forbidden: Admin only")
    if user.company_id is None:
        raise MalformedRequest("Company not found")

    deleted_count = await asyncio.to_thread(_delete_completed_db, user.company_id)
    log_audit_event(
        logger,
        action="delete_completed",
        resource_type="task",
        resource_id="*",
        user_id=str(user.id),
        details={"deleted_count": deleted_count},
    )
    return {
        "success": True,
        "deletedCount": deleted_count,
        "message": f"{deleted_count}件の完了タスクを削除しました",
    }


@router.patch("/{task_id}")
async def update_task(
    task_id: int,
    req: TaskUpdateRequest,
    user: SessionUser = Depends(get_current_user),
):
    """ステータス・メモを更新（完了にしたら通知）"""
    if req.status is None and req.memo is None:
        raise MalformedRequest("Nothing to update")

    task, notify = await asyncio.to_thread(_update_task_db, user, task_id, req)
    log_audit_event(
        logger,
        action="update",
        resource_type="task",
        resource_id=str(task_id),
        user_id=str(user.id),
        details={"status": req.status, "memo_updated": req.memo is not None},
    )
    if notify is not None:
        dispatch_task_notification(notify, "complete", task["company_id"])
    return {"success": True, "task": task}


@router.delete("/{task_id}")
async def delete_task(
    task_id: int,
    user: SessionUser = Depends(get_current_user),
):
    """タスクを削除（削除通知を送信）"""
    info, company_id = await asyncio.to_thread(_delete_task_db, user, task_id)
    log_audit_event(
        logger,
        action="delete",
        resource_type="task",
        resource_id=str(task_id),
        user_id=str(user.id),
    )
    dispatch_task_notification(info, "delete", company_id)
    return {"success": True}
