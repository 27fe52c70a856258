"""模型与 Provider 配置。

本模块集中维护可选聊天模型、展示名称以及各模型的能力（是否支持思考预算），
并负责生成绑定到具体模型的系统指令。上层只关心模型 ID，能力判断统一在这里完成。
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from chat_core.prompts import load_prompt


@dataclass
class ModelConfig:
    """单个聊天模型的配置。"""

    model_id: str
    friendly_name: str
    supports_thinking: bool = False


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]


GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    models={
        "gemini-2.5-flash": ModelConfig(
            model_id="gemini-2.5-flash",
            friendly_name="Flash (Fast & Efficient)",
            supports_thinking=True,
        ),
        "gemini-2.5-pro": ModelConfig(
            model_id="gemini-2.5-pro",
            friendly_name="Pro (Advanced & Powerful)",
        ),
        "gemini-2.5-flash-lite": ModelConfig(
            model_id="gemini-2.5-flash-lite",
            friendly_name="Flash Lite (Ultra Fast)",
        ),
    },
)

AVAILABLE_CHAT_MODELS: List[str] = list(GEMINI_CONFIG.models)
DEFAULT_CHAT_MODEL = "gemini-2.5-flash"
# 标题生成固定使用轻量模型
TITLE_MODEL = "gemini-2.5-flash"
THINKING_CONFIG_SUPPORTED_MODELS: List[str] = [
    m.model_id for m in GEMINI_CONFIG.models.values() if m.supports_thinking
]

MIN_THINKING_BUDGET = 0
MAX_THINKING_BUDGET = 5

SUPPORTED_LANGUAGES: Dict[str, str] = {
    "none": "None (No Translation)",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese (Simplified)",
    "hi": "Hindi",
    "ar": "Arabic",
    "pt": "Portuguese",
}


def get_model_config(model_id: str) -> Optional[ModelConfig]:
    return GEMINI_CONFIG.models.get(model_id)


def get_friendly_model_name(model_id: str) -> str:
    cfg = get_model_config(model_id)
    return cfg.friendly_name if cfg else model_id


def supports_thinking(model_id: str) -> bool:
    return model_id in THINKING_CONFIG_SUPPORTED_MODELS


def clamp_thinking_budget(budget: int) -> int:
    """把思考预算截断到 0-5。"""

    return max(MIN_THINKING_BUDGET, min(MAX_THINKING_BUDGET, int(budget)))


def build_system_instruction(model_id: str) -> str:
    """生成绑定到当前模型配置的系统指令。"""

    return load_prompt("chat_system").format(friendly_name=get_friendly_model_name(model_id))

