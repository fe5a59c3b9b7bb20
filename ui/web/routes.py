"""
Web Routes - Status API endpoints
=================================
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from core.logging import get_logger

logger = get_logger("web.routes")

router = APIRouter()


class CooldownModel(BaseModel):
    min: float
    max: float


class ChannelModel(BaseModel):
    """One channel's state, as stored in the snapshot."""
    channel_name: str
    mood: str
    last_message: float
    next_message: CooldownModel
    last_advice: float
    next_advice: float
    dedup_message: bool
    direct_message: bool
    off_topic: Optional[float] = None
    current_topic: Optional[str] = None
    total_off_topic: float


class StatusModel(BaseModel):
    channels: int
    ignores: int
    rules: Dict[str, int]
    timestamp: str


class RulesModel(BaseModel):
    commands: List[str]
    command_text: List[str]
    triggers: List[str]
    multi_triggers: List[List[str]]
    lists: Dict[str, int]


@router.get("/api/status", response_model=StatusModel)
async def get_status(request: Request):
    """Get bot status."""
    state = request.app.state.session_state
    rules = request.app.state.rules

    return StatusModel(
        channels=len(state.channels),
        ignores=len(state.ignores),
        rules=rules.summary(),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/api/channels", response_model=List[ChannelModel])
async def list_channels(request: Request):
    """Get every channel's state."""
    state = request.app.state.session_state
    return [
        ChannelModel(**channel.to_dict())
        for _, channel in sorted(state.channels.items())
    ]


@router.get("/api/channels/{name}", response_model=ChannelModel)
async def get_channel(request: Request, name: str):
    """Get one channel's state."""
    channel = request.app.state.session_state.get(name.lstrip("#"))
    if channel is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    return ChannelModel(**channel.to_dict())


@router.get("/api/rules", response_model=RulesModel)
async def get_rules(request: Request):
    """Get the loaded rule keys."""
    rules = request.app.state.rules
    return RulesModel(
        commands=sorted(rules.commands),
        command_text=sorted(rules.command_text),
        triggers=sorted(rules.triggers),
        multi_triggers=[list(multi.slots) for multi in rules.multi_triggers],
        lists={name: len(items) for name, items in sorted(rules.lists.items())},
    )
