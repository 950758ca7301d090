"""
행 저장소 스키마 정의

DB 에 직접 연결하지 않는다. 테이블 정의는 두 곳에서 쓰인다:
  1. 시작 시 스키마 점검(probe) 에서 조회할 컬럼 목록
  2. 스키마가 없을 때 사용자에게 돌려줄 생성 SQL
"""
from sqlalchemy import Column, Table
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.schema import CreateIndex, CreateTable

Base = declarative_base()

# 인증 제공자가 관리하는 사용자 테이블 (FK 대상으로만 선언)
auth_users = Table(
    "users",
    Base.metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    schema="auth",
)

# 소유자 단위 RLS 정책
RLS_TEMPLATE = """ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;
CREATE POLICY "Users can view own {table}" ON {table}
    FOR SELECT USING (auth.uid() = user_id);
CREATE POLICY "Users can insert own {table}" ON {table}
    FOR INSERT WITH CHECK (auth.uid() = user_id);
CREATE POLICY "Users can update own {table}" ON {table}
    FOR UPDATE USING (auth.uid() = user_id);
CREATE POLICY "Users can delete own {table}" ON {table}
    FOR DELETE USING (auth.uid() = user_id);"""


def _load_models():
    # 모델 모듈을 import 해야 Base.metadata 에 테이블이 등록된다
    from stockwatch.models import user_preferences, watchlist  # noqa: F401


def app_tables() -> list[Table]:
    _load_models()
    return [t for t in Base.metadata.sorted_tables if t.schema != "auth"]


def required_columns() -> dict[str, list[str]]:
    """테이블별 필수 컬럼 (스키마 점검용)"""
    return {t.name: [c.name for c in t.columns] for t in app_tables()}


def render_schema_sql() -> str:
    """
    SQL 편집기에서 그대로 실행할 수 있는 생성 스크립트
    """
    dialect = postgresql.dialect()
    statements = ["-- Run this in your database SQL editor:"]
    for table in app_tables():
        statements.append(str(CreateTable(table).compile(dialect=dialect)).strip() + ";")
        for index in sorted(table.indexes, key=lambda i: i.name):
            statements.append(str(CreateIndex(index).compile(dialect=dialect)).strip() + ";")
        statements.append(RLS_TEMPLATE.format(table=table.name))
    return "\n\n".join(statements) + "\n"
