import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager

from stockwatch.services.quote_client import quote_client
from stockwatch.services.row_store import SchemaStatus, row_store

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # ----- 앱 시작 -----
    logger.info("🚀 FastAPI 앱이 시작됩니다...")
    logger.info("✅ 행 저장소 스키마 점검을 시도합니다.")

    status = await row_store.probe()
    if status == SchemaStatus.READY:
        logger.info("✅ 스키마 점검 완료.")
    elif status == SchemaStatus.MISSING:
        logger.error(f"⛔ 스키마 미구성: {row_store.missing}. POST /setup-db 로 생성 SQL 을 확인하세요.")
    else:
        logger.warning("⚠️ 행 저장소에 연결할 수 없어 스키마를 확인하지 못했습니다.")

    if not quote_client.api_key:
        logger.warning("⚠️ FINNHUB_API_KEY 가 설정되지 않았습니다. 시세 조회가 실패합니다.")

    yield
    # ----- 앱 종료 -----
    logger.info("⏳ FastAPI 앱이 종료됩니다...")
    await row_store.aclose()
    await quote_client.aclose()
    logger.info("✅ 외부 HTTP 연결이 종료되었습니다.")
