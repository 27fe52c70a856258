"""提示词模板加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 markdown 模板，
模板使用 str.format 占位符，由调用方填充。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_prompt(name: str, locale: str = "en") -> str:
    """根据模板名和语言加载提示词文本。

    name 对应 prompts/<locale>/<name>.md，例如 "chat_system"、"title"。
    """

    fname = PROMPTS_DIR / locale / f"{name}.md"
    return fname.read_text(encoding="utf-8")
