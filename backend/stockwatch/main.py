from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stockwatch.core.config import settings
from stockwatch.core.exceptions import AuthenticationRequired, WatchlistError
from stockwatch.lifespan import lifespan
from stockwatch.routers import preferences, schema_setup, stocks, watchlist

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL], # 교차-출처 요청을 보낼 수 있는 출처의 리스트
    allow_credentials=True, # 교차-출처 요청시 쿠키 지원 여부를 설정
    allow_methods=["*"], # 교차-출처 요청을 허용하는 HTTP 메소드의 리스트
    allow_headers=["*"], # 교차-출처를 지원하는 HTTP 요청 헤더의 리스트
)

@app.exception_handler(WatchlistError)
async def watchlist_error_handler(request: Request, exc: WatchlistError):
    """도메인 에러 -> {"detail", "code"} JSON 응답"""
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationRequired) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

# 라우터 연결
app.include_router(watchlist.router)
app.include_router(preferences.router)
app.include_router(stocks.router)
app.include_router(schema_setup.router)

@app.get("/")
def read_root():
    return {"message": "Stock Watchlist API"}
