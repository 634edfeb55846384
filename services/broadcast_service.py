import asyncio
import json
import logging
from typing import Any, Dict, Set

from starlette.websockets import WebSocket, WebSocketState

logger = logging.getLogger(__name__)


class BroadcastRegistry:
    """사이니지 ID별로 살아있는 웹소켓 연결을 모아 두고 메시지를 뿌려준다."""

    def __init__(self):
        self._channels: Dict[str, Set[WebSocket]] = {}
        # 같은 사이니지로 가는 broadcast 는 호출 순서대로 하나씩
        self._locks: Dict[str, asyncio.Lock] = {}

    def connection_count(self, signage_id: str) -> int:
        return len(self._channels.get(signage_id, ()))

    def channel_ids(self):
        return list(self._channels)

    async def register(self, signage_id: str, websocket: WebSocket) -> None:
        self._channels.setdefault(signage_id, set()).add(websocket)
        logger.info("Signage %s connected (%d viewers)", signage_id, self.connection_count(signage_id))

        # 연결 확인 메시지는 새 연결에만 보냄 (broadcast 아님)
        try:
            await websocket.send_text(json.dumps({"type": "connected", "instanceId": signage_id}))
        except Exception:
            # 핸드셰이크 직후 끊긴 연결은 남겨 두지 않음
            self.unregister(signage_id, websocket)
            raise

    def unregister(self, signage_id: str, websocket: WebSocket) -> None:
        connections = self._channels.get(signage_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            # 빈 채널은 통째로 제거
            del self._channels[signage_id]
            lock = self._locks.get(signage_id)
            if lock is not None and not lock.locked():
                del self._locks[signage_id]
        logger.info("Signage %s disconnected (%d viewers)", signage_id, self.connection_count(signage_id))

    async def broadcast(self, signage_id: str, message: Dict[str, Any]) -> int:
        """
        message 를 한 번만 직렬화해서 열린 연결 전부에 보낸다.
        닫힌 연결은 건너뛰고, 전송 실패는 로그만 남긴다 (재시도 없음).
        반환값: 실제로 전송한 연결 수
        """
        connections = self._channels.get(signage_id)
        if not connections:
            return 0

        payload = json.dumps(message)
        delivered = 0
        async with self._locks.setdefault(signage_id, asyncio.Lock()):
            # 기다리는 동안 연결이 바뀌었을 수 있으니 다시 읽고 스냅샷으로 순회
            for websocket in list(self._channels.get(signage_id, ())):
                if websocket.application_state != WebSocketState.CONNECTED:
                    continue
                try:
                    await websocket.send_text(payload)
                    delivered += 1
                except Exception as e:
                    logger.warning("Failed to deliver %s to signage %s: %s", message.get("type"), signage_id, e)
        return delivered
