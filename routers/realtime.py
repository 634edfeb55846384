import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

import config
from state import get_ws_state

logger = logging.getLogger(__name__)
router = APIRouter(prefix=f"{config.BASE_PATH}/ws", tags=["realtime"])


@router.websocket("/signage/{signage_id}")
async def signage_socket(websocket: WebSocket, signage_id: str):
    registry = get_ws_state(websocket).registry
    await websocket.accept()
    try:
        # 등록 확인 메시지 전송이 실패해도 finally 에서 정리됨
        await registry.register(signage_id, websocket)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                logger.debug("Ignoring binary frame from signage %s", signage_id)
                continue
            try:
                data = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring malformed frame from signage %s", signage_id)
                continue
            # 연결 유지용 ping/pong (레지스트리 상태와는 무관)
            if isinstance(data, dict) and data.get("type") == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(signage_id, websocket)
