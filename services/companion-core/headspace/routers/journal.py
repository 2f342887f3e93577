from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from ..schemas.journal import JournalEntryInput
from ..workspace import Workspace
from .common import get_workspace, raise_for_error, serialize

router = APIRouter(prefix="/journal", tags=["journal"])


@router.get("")
async def list_entries(workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    latest = workspace.journal.latest_mood()
    return {"entries": serialize(workspace.journal.list_entries()), "lastMood": serialize(latest) if latest else None}


@router.post("")
async def save_entry(body: Dict[str, Any], workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    try:
        data = JournalEntryInput(**body)
    except ValidationError as error:
        raise HTTPException(status_code=400, detail="title and content are required") from error
    result = await workspace.journal.save_entry(data)
    raise_for_error(result.error, result.message)
    return serialize(result)


@router.delete("/{entry_id}")
async def delete_entry(entry_id: str, workspace: Workspace = Depends(get_workspace)) -> Dict[str, Any]:
    result = workspace.journal.delete_entry(entry_id)
    raise_for_error(result.error, result.message)
    return serialize(result)
