# -*- coding: utf-8 -*-
"""元信息与漫画脚本生成

组合 prompt 组装 → 模型适配 → 流聚合 → JSON 提取，再做字段级清洗：
缺失的可选字段使用默认值，自由文本字段截断到固定长度。

时间线/对联元信息失败时返回降级结果（success=False，但数据可用）；
漫画脚本要求完整的 卷 → 话 → 页 → 格 结构，不做局部修复，
结构不完整时返回明确的失败结果，由调用方提示用户重新生成。
"""
from typing import List, Optional, Dict, Any, Sequence

from models import Category, Panel, Page, Episode, Volume, ComicScript, MetaResult
from prompt_composer import compose
from model_adapter import ModelRoute, GenerationOptions, AdapterError, resolve_adapter
from stream_aggregator import collect
from classifier import parse_json_object, sanitize_category, sanitize_tags, DEFAULT_CATEGORY


DESCRIPTION_LIMIT = 180
FALLBACK_DESCRIPTION_LIMIT = 150
SUMMARY_LIMIT = 300
TITLE_LIMIT = 100

META_OPTIONS = GenerationOptions(temperature=0.3, max_tokens=700)
SUMMARY_OPTIONS = GenerationOptions(temperature=0.5, max_tokens=400)
COMIC_OPTIONS = GenerationOptions(temperature=0.8, max_tokens=4000)

COMIC_ICON = "🎨"
COMIC_COLOR = "#8b5cf6"
COMIC_STYLES = ("anime", "realistic", "cartoon", "watercolor", "sketch", "chibi")
PAGE_LAYOUTS = ("single", "double", "multi")

META_FAILURE = "元信息生成失败"
SUMMARY_FAILURE = "简介生成失败"
COMIC_FAILURE = "漫画内容生成失败"


class StructuralValidationFailure(Exception):
    """漫画脚本结构不完整；path 指出第一个不合格的节点"""

    def __init__(self, message: str, path: str = ""):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


# ==================== 漫画脚本结构校验 ====================

def _text(value: Any, default: str = "") -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        if isinstance(value, list):
            return "、".join(str(v).strip() for v in value if isinstance(v, (str, int, float)))
        return default
    text = str(value).strip()
    return text or default


def _non_empty_list(node: Dict[str, Any], key: str, path: str) -> List[Any]:
    value = node.get(key)
    if not isinstance(value, list) or not value:
        raise StructuralValidationFailure(f"缺少非空的 {key} 列表", path)
    return value


def _require_object(node: Any, path: str) -> Dict[str, Any]:
    if not isinstance(node, dict):
        raise StructuralValidationFailure("节点不是 JSON 对象", path)
    return node


def build_comic_script(data: Any, prompt: str = "") -> ComicScript:
    """把解析后的 JSON 转为 ComicScript

    卷、话、页、格都必须存在且非空；页码在每话内、格子编号在每页内重新连续编号。

    Raises:
        StructuralValidationFailure: 结构不完整
    """
    root = _require_object(data, "$")
    volumes: List[Volume] = []
    episode_counter = 0

    for v_index, raw_volume in enumerate(_non_empty_list(root, "volumes", "$"), start=1):
        v_path = f"volumes[{v_index - 1}]"
        volume_node = _require_object(raw_volume, v_path)
        episodes: List[Episode] = []

        for e_index, raw_episode in enumerate(_non_empty_list(volume_node, "episodes", v_path), start=1):
            e_path = f"{v_path}.episodes[{e_index - 1}]"
            episode_node = _require_object(raw_episode, e_path)
            episode_counter += 1
            pages: List[Page] = []

            for p_index, raw_page in enumerate(_non_empty_list(episode_node, "pages", e_path), start=1):
                p_path = f"{e_path}.pages[{p_index - 1}]"
                page_node = _require_object(raw_page, p_path)
                panels: List[Panel] = []

                for n_index, raw_panel in enumerate(_non_empty_list(page_node, "panels", p_path), start=1):
                    n_path = f"{p_path}.panels[{n_index - 1}]"
                    panel_node = _require_object(raw_panel, n_path)
                    scene = _text(panel_node.get("sceneDescription"))
                    if not scene:
                        raise StructuralValidationFailure("缺少画面描述 sceneDescription", n_path)
                    panels.append(Panel(
                        panel_number=n_index,
                        scene_description=scene,
                        dialogue=_text(panel_node.get("dialogue")),
                        narration=_text(panel_node.get("narration")),
                        emotion=_text(panel_node.get("emotion"), "平静"),
                        camera_angle=_text(panel_node.get("cameraAngle"), "正面视角"),
                        characters=_text(panel_node.get("characters"))
                    ))

                layout = _text(page_node.get("pageLayout"), "multi").lower()
                pages.append(Page(
                    page_number=p_index,
                    panels=panels,
                    page_layout=layout if layout in PAGE_LAYOUTS else "multi"
                ))

            episodes.append(Episode(
                title=_text(episode_node.get("title"), f"第{episode_counter}话")[:TITLE_LIMIT],
                description=_text(episode_node.get("description"))[:DESCRIPTION_LIMIT],
                pages=pages
            ))

        volumes.append(Volume(
            title=_text(volume_node.get("title"), f"第{v_index}卷")[:TITLE_LIMIT],
            description=_text(volume_node.get("description"))[:DESCRIPTION_LIMIT],
            episodes=episodes
        ))

    style = _text(root.get("style"), "anime").lower()
    return ComicScript(
        title=_text(root.get("title"), str(prompt)[:50])[:TITLE_LIMIT],
        description=_text(root.get("description"), str(prompt)[:FALLBACK_DESCRIPTION_LIMIT])[:DESCRIPTION_LIMIT],
        style=style if style in COMIC_STYLES else "anime",
        category=sanitize_category(root.get("category"), default_description="由AI智能生成的漫画",
                                   default_icon=COMIC_ICON, default_color=COMIC_COLOR),
        tags=sanitize_tags(root.get("tags")),
        volumes=volumes
    )


# ==================== 生成器 ====================

class MetaGenerator:
    """元信息生成器 - 时间线元信息、时间线简介、对联元信息、漫画脚本"""

    def __init__(self, routes: Optional[Sequence[ModelRoute]] = None):
        """
        Args:
            routes: 模型路由表，None 使用默认路由
        """
        self.routes = routes

    async def _complete(self, domain: str, prompt: str, language: str, model: Optional[str],
                        options: GenerationOptions, extra: Optional[Dict[str, Any]] = None) -> str:
        adapter = resolve_adapter(model, self.routes)
        text = compose(domain, prompt, language, extra)
        return await collect(adapter.stream_generate(text, options))

    # -------- 时间线 / 对联元信息 --------

    async def generate_timeline_meta(self, prompt: str, model: Optional[str] = None,
                                     language: str = "zh") -> MetaResult:
        """根据提示词生成时间线简介、分类和标签"""
        return await self._generate_meta("generic-meta", prompt, model, language,
                                         "由AI智能生成的时间线")

    async def generate_couplet_meta(self, prompt: str, model: Optional[str] = None,
                                    language: str = "zh") -> MetaResult:
        """根据提示词生成对联作品的简介、分类和标签"""
        return await self._generate_meta("couplet-meta", prompt, model, language,
                                         "由AI智能生成的对联")

    async def _generate_meta(self, domain: str, prompt: str, model: Optional[str],
                             language: str, default_description: str) -> MetaResult:
        try:
            response = await self._complete(domain, prompt, language, model, META_OPTIONS)
        except AdapterError as e:
            print(f"[WARN] {META_FAILURE}: {e}")
            return self._create_fallback_meta(prompt, default_description, str(e))

        data = parse_json_object(response)
        if data is None:
            print(f"[WARN] {META_FAILURE}: 响应中没有 JSON 对象")
            return self._create_fallback_meta(prompt, default_description, "No JSON found in response")

        description = data.get("description")
        return MetaResult(
            success=True,
            description=(description.strip()[:DESCRIPTION_LIMIT]
                         if isinstance(description, str) and description.strip()
                         else str(prompt)[:FALLBACK_DESCRIPTION_LIMIT]),
            category=sanitize_category(data.get("category"), default_description=default_description),
            tags=sanitize_tags(data.get("tags"))
        )

    def _create_fallback_meta(self, prompt: str, default_description: str, detail: str) -> MetaResult:
        """生成失败时的降级元信息：提示词截断作为简介，默认分类，无标签"""
        return MetaResult(
            success=False,
            description=str(prompt)[:FALLBACK_DESCRIPTION_LIMIT],
            category=Category(
                name=DEFAULT_CATEGORY.name,
                slug=DEFAULT_CATEGORY.slug,
                description=default_description,
                icon=DEFAULT_CATEGORY.icon,
                color=DEFAULT_CATEGORY.color,
                is_new=False
            ),
            tags=[],
            error=META_FAILURE,
            detail=detail
        )

    # -------- 时间线简介 --------

    async def generate_timeline_summary(self, prompt: str, events: Optional[Sequence[Any]] = None,
                                        model: Optional[str] = None, language: str = "zh") -> MetaResult:
        """为已生成的时间线写一段 100 字左右的简介"""
        events = list(events or [])
        try:
            response = await self._complete("timeline-summary", prompt, language, model,
                                            SUMMARY_OPTIONS, {"records": events})
        except AdapterError as e:
            print(f"[WARN] {SUMMARY_FAILURE}: {e}")
            return MetaResult(success=False, description=self._fallback_summary(prompt, events),
                              error=SUMMARY_FAILURE, detail=str(e))

        summary = response.strip().strip("`").strip()
        if not summary:
            return MetaResult(success=False, description=self._fallback_summary(prompt, events),
                              error=SUMMARY_FAILURE, detail="empty response")
        return MetaResult(success=True, description=summary[:SUMMARY_LIMIT])

    def _fallback_summary(self, prompt: str, events: List[Any]) -> str:
        for event in events:
            text = event.get("description") if isinstance(event, dict) else getattr(event, "description", "")
            if text:
                return str(text)[:FALLBACK_DESCRIPTION_LIMIT]
        return str(prompt)[:FALLBACK_DESCRIPTION_LIMIT]

    # -------- 漫画脚本 --------

    async def generate_comic_script(self, prompt: str, model: Optional[str] = None,
                                    language: str = "zh") -> MetaResult:
        """一次性生成完整的漫画脚本树

        返回的 MetaResult.success 为 False 时 comic 为 None，调用方应提示用户重新生成。
        """
        try:
            response = await self._complete("comic-meta", prompt, language, model, COMIC_OPTIONS)
        except AdapterError as e:
            print(f"[ERROR] {COMIC_FAILURE}: {e}")
            return MetaResult(success=False, error=COMIC_FAILURE, detail=str(e))

        data = parse_json_object(response)
        if data is None:
            print(f"[ERROR] {COMIC_FAILURE}: 响应中没有完整的 JSON 对象")
            return MetaResult(success=False, error=COMIC_FAILURE, detail="No JSON found in response")

        try:
            comic = build_comic_script(data, prompt)
        except StructuralValidationFailure as e:
            print(f"[ERROR] {COMIC_FAILURE}: 结构校验失败 {e}")
            return MetaResult(success=False, error=COMIC_FAILURE, detail=str(e))

        return MetaResult(
            success=True,
            description=comic.description,
            category=comic.category,
            tags=comic.tags,
            title=comic.title,
            style=comic.style,
            comic=comic
        )


META_DOMAINS = {
    "generic-meta": "timeline",
    "timeline-meta": "timeline",
    "meta": "timeline",
    "couplet-meta": "couplet",
    "couplet-set": "couplet",
    "timeline-summary": "summary",
    "comic-meta": "comic",
    "comic-script": "comic",
    "comic": "comic",
}


async def generate_meta(domain: str, prompt: str, language: str = "zh",
                        model: Optional[str] = None,
                        routes: Optional[Sequence[ModelRoute]] = None,
                        records: Optional[Sequence[Any]] = None) -> MetaResult:
    """按领域分发到对应的生成器；未知领域按时间线元信息处理"""
    generator = MetaGenerator(routes)
    kind = META_DOMAINS.get((domain or "").strip().lower(), "timeline")
    if kind == "couplet":
        return await generator.generate_couplet_meta(prompt, model, language)
    if kind == "summary":
        return await generator.generate_timeline_summary(prompt, records, model, language)
    if kind == "comic":
        return await generator.generate_comic_script(prompt, model, language)
    return await generator.generate_timeline_meta(prompt, model, language)
