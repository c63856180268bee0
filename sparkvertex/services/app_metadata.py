"""Gallery metadata for uploaded single-file HTML apps.

Each field has its own prompt and a post-processing step that turns free-form
model output into something the gallery can store. Model output is never
trusted as-is: categories are checked against a fixed list, app types against
known labels, and every field has a fallback.

The security verdict comes from a local regex scan by default. In model mode the
chat model audits the code instead, and the local scan is the fallback for any
failure or unreadable verdict.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Iterable

from pydantic import ValidationError

from sparkvertex.adapters.llm.base import AbstractLLMClient
from sparkvertex.core.errors import LLMAppError
from sparkvertex.schemas.analysis import (
    ALL_METADATA_FIELDS,
    AppMetadataResponse,
    MetadataField,
    SecurityMode,
    SecurityReport,
)

logger = logging.getLogger(__name__)

CATEGORIES: tuple[str, ...] = (
    "休闲游戏",
    "实用工具",
    "办公效率",
    "教育学习",
    "生活便利",
    "创意设计",
    "数据可视化",
    "影音娱乐",
    "开发者工具",
    "AI应用",
)
DEFAULT_CATEGORY = "实用工具"

APP_TYPES: tuple[str, ...] = ("Eye Candy", "Micro-Interactions", "Tiny Tools")

DEFAULT_TECH_STACK = ["HTML5", "JavaScript", "CSS3"]
MAX_TECH_TAGS = 6

DEFAULT_TITLES = {"zh": "未命名作品", "en": "Untitled App"}
DEFAULT_DESCRIPTIONS = {"zh": "这是一个创意 Web 应用。", "en": "This is a creative Web App."}
DEFAULT_PROMPTS = {"zh": "创建一个具有现代 UI 的 Web 应用。", "en": "Create a web application with modern UI."}

HTML_PROMPT_CHARS = 20_000
APP_TYPE_PROMPT_CHARS = 10_000
SECURITY_PROMPT_CHARS = 50_000

_QUOTES_RE = re.compile(r"[\"'《》]")
_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

SECURITY_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(
            r"<script[^>]*src\s*=\s*[\"'][^\"']*(?:bitcoin|crypto|miner|coinminer)[^\"']*[\"']",
            re.IGNORECASE,
        ),
        "可疑挖矿脚本",
    ),
    (re.compile(r"keylogger|keystroke|keypress.*password", re.IGNORECASE), "键盘监听可疑行为"),
    (re.compile(r"navigator\.sendBeacon", re.IGNORECASE), "后台数据发送"),
)


def strip_quotes(text: str) -> str:
    return _QUOTES_RE.sub("", text.strip())


def normalize_category(raw: str) -> str:
    category = strip_quotes(raw)
    return category if category in CATEGORIES else DEFAULT_CATEGORY


def normalize_title(raw: str, language: str) -> str:
    return strip_quotes(raw) or DEFAULT_TITLES[language]


def normalize_description(raw: str, language: str) -> str:
    return raw.strip() or DEFAULT_DESCRIPTIONS[language]


def parse_tech_stack(raw: str) -> list[str]:
    tags = [tag.strip() for tag in raw.split(",")]
    tags = [tag for tag in tags if tag]
    return tags[:MAX_TECH_TAGS] or list(DEFAULT_TECH_STACK)


def parse_app_types(raw: str) -> list[str]:
    """Keep known labels from the first JSON array in ``raw``."""
    match = _JSON_ARRAY_RE.search(raw)
    if not match:
        return []
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return [item for item in parsed if isinstance(item, str) and item in APP_TYPES]


def normalize_prompt(raw: str, language: str) -> str:
    return raw.strip() or DEFAULT_PROMPTS[language]


def parse_security_verdict(raw: str) -> SecurityReport | None:
    """Read the model's JSON verdict; None when there is no usable one."""
    match = _JSON_OBJECT_RE.search(raw)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict) or "error" in parsed:
        return None
    try:
        return SecurityReport.model_validate(parsed)
    except ValidationError:
        return None


def basic_security_check(html: str) -> SecurityReport:
    """Scan for miner scripts, keylogger markers and background beacons."""
    risks = []
    for pattern, label in SECURITY_PATTERNS:
        hits = len(pattern.findall(html))
        if hits:
            risks.append(f"{label} (检测到{hits}处)")
    if risks:
        return SecurityReport(is_safe=False, risks=risks, severity="high")
    return SecurityReport(is_safe=True, risks=[], severity="low")


def _category_prompts(html: str, language: str) -> tuple[str, str, float]:
    system = "你是一个资深的应用市场分类专家。你需要精准分析 HTML 代码的核心功能，并将其归类到一个最合适的类别中。"
    user = (
        "请分析以下 HTML 代码的核心功能和用户场景，将其归类为以下类别之一:\n"
        f"{', '.join(CATEGORIES)}\n\n只返回类别名称，不要解释，不要标点符号。代码:\n\n"
        f"{html[:HTML_PROMPT_CHARS]}"
    )
    return system, user, 0.3


def _title_prompts(html: str, language: str) -> tuple[str, str, float]:
    if language == "zh":
        system = "你是一个专业的 SEO 专家和产品经理。你需要分析 HTML 代码并提取或创作一个简洁、吸引人且符合 SEO 规范的标题。"
        user = (
            "请分析以下 HTML 代码，提取或创作一个标题 (10-30字)。\n"
            "要求：\n1. 包含核心关键词。\n2. 具有吸引力，能提高点击率。\n"
            "3. 如果代码中有 <title>，请优化它。\n\n只返回标题文本，不要引号，不要解释。代码:\n\n"
        )
    else:
        system = (
            "You are an SEO expert and Product Manager. Analyze the HTML code and "
            "extract or create a concise, attractive title."
        )
        user = (
            "Analyze the following HTML code, extract or create a title (10-60 characters).\n"
            "Requirements:\n1. Include core keywords.\n2. Attractive and click-worthy.\n"
            "3. If <title> exists, optimize it.\n\nReturn only the title text. No quotes. "
            "No explanation. Code:\n\n"
        )
    return system, user + html[:HTML_PROMPT_CHARS], 0.5


def _description_prompts(html: str, language: str) -> tuple[str, str, float]:
    if language == "zh":
        system = "你是一个资深的科技媒体编辑。你需要分析 HTML 代码并生成一段简洁、专业、极具吸引力的产品介绍。"
        user = (
            "请分析以下 HTML 代码的功能特性，生成一段 40-80 字的产品描述。\n"
            "要求：\n1. 突出核心价值和技术亮点。\n2. 语言风格现代、专业、简洁。\n"
            "3. 避免空洞的形容词。\n\n只返回描述文本。代码:\n\n"
        )
    else:
        system = (
            "You are a Tech Editor. Analyze the HTML code and generate a concise, "
            "professional, attractive product description."
        )
        user = (
            "Analyze the features of the following HTML code, generate a product "
            "description (40-80 words).\nRequirements:\n1. Highlight core value and tech "
            "features.\n2. Modern, professional, concise style.\n3. Avoid empty adjectives.\n\n"
            "Return only the description text. Code:\n\n"
        )
    return system, user + html[:HTML_PROMPT_CHARS], 0.7


def _tech_stack_prompts(html: str, language: str) -> tuple[str, str, float]:
    system = "你是一个全栈技术专家。你需要精准识别 HTML 代码中使用的关键技术、框架、库和 API。"
    user = (
        "分析以下代码使用的技术栈，从以下列表中选择 3-6 个最相关的标签：\n可选标签: \n"
        "- 核心: HTML5, CSS3, JavaScript, TypeScript, React, Vue\n"
        "- 样式: Tailwind, Bootstrap, SCSS\n"
        "- 图形: Canvas, WebGL, Three.js, D3.js, SVG\n"
        "- 数据: LocalStorage, IndexedDB, JSON\n"
        "- 网络: WebSocket, WebRTC, API Integration\n"
        "- 高级: PWA, Service Worker, WebAssembly, AI/ML, Web Audio\n\n"
        "只返回逗号分隔的标签名称，不要其他内容。代码:\n\n"
        f"{html[:HTML_PROMPT_CHARS]}"
    )
    return system, user, 0.3


def _app_type_prompts(html: str, language: str) -> tuple[str, str, float]:
    system = "你是一个应用分类专家。"
    user = (
        "请分析以下 HTML 代码，判断它是否属于以下特定类别之一或多个：\n"
        '1. "Eye Candy": 视觉效果惊艳、创意展示、艺术性强的 Demo。\n'
        '2. "Micro-Interactions": 专注于微交互、按钮动画、开关、加载动画等 UI 组件。\n'
        '3. "Tiny Tools": 小型的单功能实用工具（如计算器、转换器、生成器）。\n\n'
        "请返回一个 JSON 字符串数组，包含匹配的类别名称。如果没有匹配，返回空数组 []。\n"
        "只返回 JSON 数组，不要包含其他文本。\n\n代码片段:\n"
        f"{html[:APP_TYPE_PROMPT_CHARS]}"
    )
    return system, user, 0.3


def _prompt_prompts(html: str, language: str) -> tuple[str, str, float]:
    if language == "zh":
        system = "你是一个资深的 Prompt 工程师。你需要分析 HTML 代码并生成一个简洁、核心的 Prompt，用于指导 AI 重新生成类似应用。"
        user = (
            "请分析以下 HTML 代码，生成一个 100-200 字的核心功能 Prompt。\n"
            "要求：\n1. 说明应用的核心功能和目标。\n2. 描述关键交互逻辑。\n"
            "3. 给出视觉风格关键词。\n\n只返回 Prompt 文本，不要解释。代码:\n\n"
        )
    else:
        system = (
            "You are a Senior Prompt Engineer. Analyze the HTML code and generate a "
            "concise, core Prompt for AI to regenerate a similar app."
        )
        user = (
            "Analyze the following HTML code and write a core-function Prompt "
            "(100-200 words).\nRequirements:\n1. State the core function and goal.\n"
            "2. Describe the key interaction logic.\n3. Give visual style keywords.\n\n"
            "Return only the Prompt text. No explanation. Code:\n\n"
        )
    return system, user + html[:HTML_PROMPT_CHARS], 0.5


def _security_audit_prompts(html: str, language: str) -> tuple[str, str, float]:
    system = "你是一个宽容的代码审计师。这是一个代码分享平台，用户上传的通常是单文件应用（如计算器、小游戏）。"
    user = (
        "请审计以下代码。以下行为是允许的，不要报告：\n"
        "- 从 CDN 加载脚本和样式\n- 计算器等场景中使用 eval\n"
        "- 使用 localStorage 保存数据\n- 使用 innerHTML 渲染界面\n\n"
        "只报告真正的恶意行为：\n- 挖矿脚本\n"
        "- 窃取数据（通过 sendBeacon 或 fetch 发送到未知域名）\n"
        "- 破坏性行为或无限弹窗\n\n"
        '只返回 JSON：{"isSafe": true/false, "risks": ["风险描述"], '
        '"severity": "low" | "medium" | "high"}\n\n代码:\n\n'
        f"{html[:SECURITY_PROMPT_CHARS]}"
    )
    return system, user, 0.2


class AppMetadataService:
    """Compute gallery metadata for an HTML app, one model call per field."""

    def __init__(self, llm: AbstractLLMClient) -> None:
        self.llm = llm

    async def _ask(self, prompts: tuple[str, str, float]) -> str:
        system, user, temperature = prompts
        return await self.llm.generate_text(system, user, temperature=temperature)

    async def model_security_check(self, html: str) -> SecurityReport:
        """Audit with the chat model; the local scan answers when the model can't."""
        try:
            raw = await self._ask(_security_audit_prompts(html, "zh"))
        except LLMAppError as exc:
            logger.warning("app_metadata.security_fallback", extra={"error_code": exc.code})
            return basic_security_check(html)

        report = parse_security_verdict(raw)
        if report is None:
            logger.warning("app_metadata.security_fallback", extra={"error_code": "unreadable_verdict"})
            return basic_security_check(html)
        return report

    async def analyze(
        self,
        html: str,
        *,
        language: str = "zh",
        fields: Iterable[MetadataField] | None = None,
        security_mode: SecurityMode = "basic",
    ) -> AppMetadataResponse:
        """Compute the requested fields (all when ``fields`` is None).

        Raises:
            LLMAppError: If a model call fails. A failed security audit falls
                back to the local scan instead.
        """
        wanted = set(fields) if fields else set(ALL_METADATA_FIELDS)
        result = AppMetadataResponse()

        if "category" in wanted:
            result.category = normalize_category(await self._ask(_category_prompts(html, language)))
        if "title" in wanted:
            result.title = normalize_title(await self._ask(_title_prompts(html, language)), language)
        if "description" in wanted:
            result.description = normalize_description(
                await self._ask(_description_prompts(html, language)), language
            )
        if "tech_stack" in wanted:
            result.tech_stack = parse_tech_stack(await self._ask(_tech_stack_prompts(html, language)))
        if "app_types" in wanted:
            result.app_types = parse_app_types(await self._ask(_app_type_prompts(html, language)))
        if "prompt" in wanted:
            result.prompt = normalize_prompt(await self._ask(_prompt_prompts(html, language)), language)
        if "security" in wanted:
            if security_mode == "model":
                result.security = await self.model_security_check(html)
            else:
                result.security = basic_security_check(html)

        logger.info(
            "app_metadata.completed",
            extra={
                "fields": sorted(wanted),
                "html_chars": len(html),
                "language": language,
                "security_mode": security_mode,
            },
        )
        return result
