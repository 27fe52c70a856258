import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.models import Preferences
from chat_core.infrastructure.logging.logger import logger


ALL_CHATS_KEY = "neuramorphosis_allChats"
ACTIVE_CHAT_ID_KEY = "neuramorphosis_activeChatId"
CUSTOM_CSS_KEY = "neuramorphosis_customCSS"
BASE_THEME_KEY = "neuramorphosis_baseTheme"
ACCENT_THEME_KEY = "neuramorphosis_accentTheme"
TARGET_LANGUAGE_KEY = "neuramorphosis_targetLanguage"
CHAT_MODEL_KEY = "neuramorphosis_chatModel"
THINKING_BUDGET_KEY = "neuramorphosis_thinkingBudget"


class JsonPreferenceStore:
    """键值式本地持久化：每个键一个 JSON 文件。

    读写失败只记日志并吞掉，读取失败时返回默认值；
    调用方的内存状态始终是权威，下一次变更会再次尝试写入。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._state_root = self._root / "state"
        self._state_root.mkdir(parents=True, exist_ok=True)

    # ---- 会话 ----

    def save_chats(self, chats: List[Dict[str, Any]]) -> None:
        self._set(ALL_CHATS_KEY, chats)

    def load_chats(self) -> List[Dict[str, Any]]:
        data = self._get(ALL_CHATS_KEY)
        return data if isinstance(data, list) else []

    def save_active_chat_id(self, chat_id: Optional[str]) -> None:
        if chat_id:
            self._set(ACTIVE_CHAT_ID_KEY, chat_id)
        else:
            self._remove(ACTIVE_CHAT_ID_KEY)

    def load_active_chat_id(self) -> Optional[str]:
        data = self._get(ACTIVE_CHAT_ID_KEY)
        return data if isinstance(data, str) and data else None

    # ---- 偏好 ----

    def save_custom_css(self, css: str) -> None:
        self._set(CUSTOM_CSS_KEY, css)

    def load_custom_css(self) -> str:
        return self._get_str(CUSTOM_CSS_KEY) or ""

    def save_base_theme(self, theme: str) -> None:
        self._set(BASE_THEME_KEY, theme)

    def load_base_theme(self) -> Optional[str]:
        return self._get_str(BASE_THEME_KEY)

    def save_accent_theme(self, theme: str) -> None:
        self._set(ACCENT_THEME_KEY, theme)

    def load_accent_theme(self) -> Optional[str]:
        return self._get_str(ACCENT_THEME_KEY)

    def save_target_language(self, code: str) -> None:
        self._set(TARGET_LANGUAGE_KEY, code)

    def load_target_language(self) -> Optional[str]:
        return self._get_str(TARGET_LANGUAGE_KEY)

    def save_chat_model(self, model: str) -> None:
        self._set(CHAT_MODEL_KEY, model)

    def load_chat_model(self) -> Optional[str]:
        return self._get_str(CHAT_MODEL_KEY)

    def save_thinking_budget(self, budget: int) -> None:
        self._set(THINKING_BUDGET_KEY, int(budget))

    def load_thinking_budget(self) -> Optional[int]:
        data = self._get(THINKING_BUDGET_KEY)
        if isinstance(data, bool) or not isinstance(data, int):
            return None
        return data

    def load_preferences(self, defaults: Optional[Preferences] = None) -> Preferences:
        """逐项加载偏好，缺失项取 defaults（默认 Preferences()）。"""

        defaults = defaults or Preferences()
        budget = self.load_thinking_budget()
        return Preferences(
            base_theme=self.load_base_theme() or defaults.base_theme,
            accent_theme=self.load_accent_theme() or defaults.accent_theme,
            custom_css=self.load_custom_css(),
            target_language=self.load_target_language() or defaults.target_language,
            thinking_budget=budget if budget is not None else defaults.thinking_budget,
            model=self.load_chat_model() or defaults.model,
        )

    def save_preferences(self, prefs: Preferences) -> None:
        self.save_base_theme(prefs.base_theme)
        self.save_accent_theme(prefs.accent_theme)
        self.save_custom_css(prefs.custom_css)
        self.save_target_language(prefs.target_language)
        self.save_thinking_budget(prefs.thinking_budget)
        self.save_chat_model(prefs.model)

    # ---- 底层读写 ----

    def _path(self, key: str) -> Path:
        return self._state_root / f"{key}.json"

    def _get(self, key: str) -> Any:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self._log_failure("Error loading key", key, e)
            return None

    def _get_str(self, key: str) -> Optional[str]:
        data = self._get(key)
        return data if isinstance(data, str) else None

    def _set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = self._state_root / f"{key}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            self._log_failure("Error saving key", key, e)
            tmp_path.unlink(missing_ok=True)

    def _remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            self._log_failure("Error removing key", key, e)

    @staticmethod
    def _log_failure(message: str, key: str, error: Exception) -> None:
        logger.log(logging.ERROR, message, extra={"extra": {"key": key, "error": str(error)}})
