"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 system prompt 文本，
用于构造 ChatMessage(role="system")。
"""

from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


def load_system_prompt(name: str = "assistant", locale: str = "en") -> str:
    """根据提示词名称和语言加载系统提示词文本。

    目前仅有 "assistant" 一种，对应 <locale>/assistant_system.md。
    """

    fname = PROMPTS_DIR / locale / f"{name}_system.md"
    return fname.read_text(encoding="utf-8").strip()
