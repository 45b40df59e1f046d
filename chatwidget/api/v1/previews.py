# file: chatwidget/api/v1/previews.py

import logging
import uuid
from typing import Dict

from fastapi import APIRouter, HTTPException, Request, Response, status

from chatwidget.core.settings import Settings
from chatwidget.schemas.previews import PreviewCreated, PreviewHandoverIn, PreviewMessageIn, PreviewSnapshot
from chatwidget.schemas.widget import WidgetConfig
from chatwidget.widget import ChatWidget

router = APIRouter()
logger = logging.getLogger("previews")
logger.setLevel(logging.INFO)


# ============================================================
# Utils
# ============================================================

def _registry(request: Request) -> Dict[str, ChatWidget]:
    return request.app.state.previews


def _get_widget(request: Request, preview_id: str) -> ChatWidget:
    widget = _registry(request).get(preview_id)
    if widget is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="preview_not_found")
    return widget


def _snapshot(preview_id: str, widget: ChatWidget) -> PreviewSnapshot:
    session = widget.session
    return PreviewSnapshot(
        preview_id=preview_id,
        is_open=widget.is_open,
        is_typing=widget.is_typing,
        connected=widget.connected,
        status_text=widget.status_text,
        session_key=session.session_key if session else None,
        conversation_id=session.conversation_id if session else None,
        messages=widget.messages,
    )


# ============================================================
# Endpoints
# ============================================================

@router.post("", response_model=PreviewCreated, status_code=status.HTTP_201_CREATED)
async def create_preview(config: WidgetConfig, request: Request):
    preview_id = f"prev_{uuid.uuid4().hex}"
    base: Settings = request.app.state.settings

    # each preview gets its own cache slot
    settings = base.model_copy(update={"STORAGE_KEY": f"{base.STORAGE_KEY}:{preview_id}"})
    widget = ChatWidget(config, settings=settings, redis=request.app.state.redis)
    _registry(request)[preview_id] = widget

    logger.info(f"[Preview] created {preview_id} tenant={config.tenant_id}")
    return PreviewCreated(preview_id=preview_id)


@router.get("/{preview_id}", response_model=PreviewSnapshot)
async def get_preview(preview_id: str, request: Request):
    return _snapshot(preview_id, _get_widget(request, preview_id))


@router.post("/{preview_id}/open", response_model=PreviewSnapshot)
async def open_preview(preview_id: str, request: Request):
    widget = _get_widget(request, preview_id)
    await widget.open()
    return _snapshot(preview_id, widget)


@router.post("/{preview_id}/close", response_model=PreviewSnapshot)
async def close_preview(preview_id: str, request: Request):
    widget = _get_widget(request, preview_id)
    await widget.close()
    return _snapshot(preview_id, widget)


@router.post("/{preview_id}/messages", response_model=PreviewSnapshot)
async def send_preview_message(preview_id: str, payload: PreviewMessageIn, request: Request):
    widget = _get_widget(request, preview_id)
    await widget.send_message(payload.text)
    return _snapshot(preview_id, widget)


@router.post("/{preview_id}/handover", response_model=PreviewSnapshot)
async def request_preview_handover(preview_id: str, payload: PreviewHandoverIn, request: Request):
    widget = _get_widget(request, preview_id)
    await widget.request_handover(payload.reason)
    return _snapshot(preview_id, widget)


@router.post("/{preview_id}/end", response_model=PreviewSnapshot)
async def end_preview_chat(preview_id: str, request: Request):
    widget = _get_widget(request, preview_id)
    await widget.end_chat()
    return _snapshot(preview_id, widget)


@router.delete("/{preview_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_preview(preview_id: str, request: Request):
    widget = _get_widget(request, preview_id)
    await widget.shutdown()
    _registry(request).pop(preview_id, None)

    logger.info(f"[Preview] removed {preview_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
