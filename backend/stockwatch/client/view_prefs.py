"""
목록 화면 설정 (필터 접두어, 정렬 기준)

로그인 사용자 단위가 아닌 기기 단위 설정이라 서버에 저장하지 않고
로컬 JSON 파일에 보관한다.
"""
import enum
import logging
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, ValidationError as PydanticValidationError

from stockwatch.client.state import WatchlistItem
from stockwatch.core.config import settings

logger = logging.getLogger(__name__)


class SortMode(str, enum.Enum):
    ALPHABETICAL = "alphabetical"
    PERCENT_CHANGE = "percent_change"   # 목표가 대비 퍼센트, 내림차순
    DOLLAR_CHANGE = "dollar_change"     # 목표가 대비 금액, 내림차순


class ViewPreferences(BaseModel):
    filter_prefix: str = ""
    sort_mode: SortMode = SortMode.ALPHABETICAL


class ViewPreferencesStore:
    def __init__(self, path: Path | None = None):
        self.path = Path(path or settings.VIEW_PREFS_PATH)

    def load(self) -> ViewPreferences:
        """파일이 없거나 깨져 있으면 기본값"""
        if not self.path.exists():
            return ViewPreferences()
        try:
            return ViewPreferences.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, PydanticValidationError) as e:
            logger.warning(f"⚠️ 화면 설정 로드 실패 ({self.path}): {e}")
            return ViewPreferences()

    def save(self, prefs: ViewPreferences) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(prefs.model_dump_json(), encoding="utf-8")


def apply_view(items: Iterable[WatchlistItem], prefs: ViewPreferences) -> list[WatchlistItem]:
    """
    접두어 필터 후 정렬. 입력은 바꾸지 않는다.
    정렬은 안정 정렬이라 같은 값끼리는 원래 순서를 유지한다.
    변화량을 계산할 수 없는 항목은 맨 뒤로 보낸다.
    """
    prefix = prefs.filter_prefix.strip().upper()
    visible = [item for item in items if item.symbol.upper().startswith(prefix)]

    if prefs.sort_mode == SortMode.PERCENT_CHANGE:
        return sorted(visible, key=lambda i: _desc_key(i.percent_change), reverse=True)
    if prefs.sort_mode == SortMode.DOLLAR_CHANGE:
        return sorted(visible, key=lambda i: _desc_key(i.dollar_change), reverse=True)
    return sorted(visible, key=lambda i: i.symbol)


def _desc_key(value):
    return (value is not None, value if value is not None else 0)
