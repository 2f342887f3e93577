from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from ..workspace import Workspace
from .common import get_workspace, raise_for_error, serialize

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _respond(result) -> Dict[str, Any]:
    raise_for_error(result.error, result.message)
    return serialize(result)


@router.get("")
async def list_tasks(workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    lifetime = workspace.tasks.lifetime_completed()
    return {
        "tasks": serialize(workspace.tasks.list_tasks()),
        "lifetimeCompleted": lifetime,
        "progress": serialize(workspace.milestones.progress_to_next(lifetime)),
    }


@router.post("")
async def add_task(body: Dict[str, Any], workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    text = body.get("text")
    if not isinstance(text, str):
        raise HTTPException(status_code=400, detail="text is required")
    return _respond(workspace.tasks.add_task(text))


@router.post("/{task_id}/toggle")
async def toggle_task(task_id: str, workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    return _respond(workspace.tasks.toggle_task(task_id))


@router.delete("/{task_id}")
async def delete_task(task_id: str, workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    return _respond(workspace.tasks.delete_task(task_id))


@router.post("/clear-completed")
async def clear_completed(workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    return _respond(workspace.tasks.clear_completed())


@router.post("/directive")
async def apply_directive(body: Dict[str, Any], workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    new_tasks = body.get("newTasks") or []
    remove_tasks = body.get("removeTasks") or []
    if not isinstance(new_tasks, list) or not isinstance(remove_tasks, list):
        raise HTTPException(status_code=400, detail="newTasks and removeTasks must be lists")
    return _respond(workspace.tasks.apply_directive(new_tasks, remove_tasks))


@router.get("/milestones")
async def milestones(workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    lifetime = workspace.tasks.lifetime_completed()
    return {
        "milestones": serialize(workspace.milestones.milestones()),
        "progress": serialize(workspace.milestones.progress_to_next(lifetime)),
    }
