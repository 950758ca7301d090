import logging
from fastapi import APIRouter, Depends

from stockwatch.database import render_schema_sql
from stockwatch.schemas.common import SetupStatus
from stockwatch.services.row_store import RowStore, SchemaStatus, get_row_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Setup"])

@router.post("/setup-db", response_model=SetupStatus)
async def setup_database(store: RowStore = Depends(get_row_store)):
    """
    스키마 점검을 다시 실행한다.
    테이블/컬럼이 없으면 SQL 편집기에서 실행할 생성 스크립트를 함께 반환.
    """
    result = await store.probe()
    logger.info(f"스키마 점검 결과: {result.value} (missing={store.missing})")

    if result == SchemaStatus.READY:
        return SetupStatus(status=result.value, message="Database tables are properly set up and ready to use!")

    if result == SchemaStatus.MISSING:
        return SetupStatus(
            status=result.value,
            message="Database tables are missing or incomplete. Please run the following SQL in your database SQL editor:",
            missing=store.missing,
            sql=render_schema_sql(),
        )

    return SetupStatus(status=result.value, message="Could not reach the row store to check the schema.")
