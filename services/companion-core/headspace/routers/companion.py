from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from ..companion.conversation import ConversationManager
from ..errors import NotFound
from ..workspace import Workspace
from .common import get_workspace, raise_for_error, serialize

router = APIRouter(prefix="/companion", tags=["companion"])


def _manager(workspace: Workspace, companion_name: str) -> ConversationManager:
    try:
        return workspace.conversation(companion_name)
    except NotFound as error:
        raise HTTPException(status_code=404, detail=str(error)) from error


@router.get("")
async def current_companion(workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    companion = workspace.catalog.resolve(workspace.persona.companion_id())
    return {"companion": serialize(companion), "persona": workspace.persona.persona_text()}


@router.get("/catalog")
async def companion_catalog(workspace: Workspace = Depends(get_workspace)) -> Any:
    return serialize(workspace.catalog.all())


@router.post("/quiz")
async def personality_quiz(body: Dict[str, Any], workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    if body.get("skip"):
        companion = workspace.catalog.skip_quiz()
    else:
        answers = body.get("answers")
        if not isinstance(answers, list):
            raise HTTPException(status_code=400, detail="answers required")
        companion = workspace.catalog.score_quiz(str(answer) for answer in answers)
    raise_for_error(workspace.persona.set_companion_id(companion.id))
    return {"companion": serialize(companion)}


@router.put("/persona")
async def update_persona(body: Dict[str, Any], workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    raise_for_error(workspace.persona.set_persona_text(str(body.get("text") or "")), "persona text required")
    return {"persona": workspace.persona.persona_text()}


@router.get("/{companion_name}/history")
async def history(companion_name: str, workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    manager = _manager(workspace, companion_name)
    return {"state": manager.state.value, "messages": serialize(manager.history())}


@router.post("/{companion_name}/messages")
async def send_message(companion_name: str, body: Dict[str, Any], workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    manager = _manager(workspace, companion_name)
    result = await manager.send_user_message(str(body.get("text") or ""))
    raise_for_error(result.error, result.message)
    return serialize(result)


@router.delete("/{companion_name}/history")
async def clear_history(companion_name: str, confirm: bool = False, workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    if not confirm:
        raise HTTPException(status_code=400, detail="confirm=true required to clear history")
    cleared = _manager(workspace, companion_name).clear_history(confirmed=True)
    if not cleared:
        raise HTTPException(status_code=507, detail="history could not be cleared")
    return {"status": "cleared"}
