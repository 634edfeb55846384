import logging
from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie
import config
from models import DOCUMENT_MODELS  # 우리가 만든 모델 불러오기

logger = logging.getLogger(__name__)


async def init_db() -> AsyncIOMotorClient:
    # 1. Motor 클라이언트 생성 (비동기)
    # DB가 죽어 있으면 요청이 오래 매달리지 않도록 서버 선택 타임아웃을 짧게
    client = AsyncIOMotorClient(config.MONGODB_URL, serverSelectionTimeoutMS=config.MONGODB_TIMEOUT_MS)

    # 2. 데이터베이스 선택
    database = client[config.DB_NAME]

    # 3. Beanie 초기화 (모델 등록)
    # document_models에 등록된 클래스들은 자동으로 MongoDB 컬렉션과 매핑됨
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    logger.info("MongoDB connected via Beanie (db=%s)", config.DB_NAME)
    return client
