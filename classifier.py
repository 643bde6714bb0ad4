# -*- coding: utf-8 -*-
"""分类引擎

两级策略：
- Tier 1：调用模型生成分类 JSON，提取第一个完整的 {...} 对象并校验
- Tier 2：quick_classify，基于固定分类表的关键词计分，不需要模型

Tier 1 的任何失败（后端错误、超时、JSON 损坏、缺少字段）都会转入 Tier 2，
因此 classify 永远返回有效的 ClassificationResult。
"""
import re
import json
import asyncio
import hashlib
from dataclasses import dataclass
from typing import List, Optional, Dict, Any, Sequence, Tuple

from models import Category, Tag, ClassificationResult
from prompt_composer import compose
from model_adapter import ModelRoute, GenerationOptions, resolve_adapter
from stream_aggregator import collect


MAX_TAGS = 5
DEFAULT_ICON = "🤖"
DEFAULT_COLOR = "#6366f1"


# ==================== 分类表 ====================

@dataclass(frozen=True)
class TaxonomyEntry:
    """分类表条目"""
    name: str
    slug: str
    keywords: Tuple[str, ...]
    icon: str
    color: str
    description: str = ""


# 声明顺序即平分时的优先顺序
TAXONOMY: Tuple[TaxonomyEntry, ...] = (
    TaxonomyEntry("历史人物", "historical-figures",
                  ("人物", "生平", "传记", "出生", "去世", "皇帝", "将军", "诗人", "作家", "科学家", "政治家", "领袖", "名人"),
                  "👤", "#3b82f6", "历史人物生平、传记、名人故事"),
    TaxonomyEntry("历史事件", "historical-events",
                  ("革命", "起义", "政变", "事件", "战役", "冲突", "改革", "变革", "运动"),
                  "⚔️", "#ef4444", "重大历史事件、革命、政治变革"),
    TaxonomyEntry("科技发展", "science-technology",
                  ("发明", "技术", "科技", "创新", "专利", "科学", "研究", "实验", "计算机", "互联网", "人工智能", "机器人"),
                  "🔬", "#10b981", "科技发明、技术演进、创新突破"),
    TaxonomyEntry("文化艺术", "culture-arts",
                  ("文学", "艺术", "音乐", "电影", "绘画", "雕塑", "建筑", "文化", "诗歌", "小说", "戏剧", "舞蹈"),
                  "🎨", "#8b5cf6", "文学、艺术、音乐、电影与文化发展"),
    TaxonomyEntry("政治制度", "politics-institutions",
                  ("政治", "制度", "政权", "政府", "法律", "宪法", "选举", "民主", "专制", "议会"),
                  "🏛️", "#f59e0b", "政治变革、制度演变、法律发展"),
    TaxonomyEntry("经济贸易", "economy-trade",
                  ("经济", "贸易", "商业", "金融", "货币", "市场", "公司", "股票", "银行", "投资"),
                  "💰", "#06b6d4", "经济发展、贸易往来、金融演变"),
    TaxonomyEntry("地理探索", "geography-exploration",
                  ("地理", "探险", "发现", "航海", "地图", "领土", "殖民", "新大陆"),
                  "🗺️", "#84cc16", "地理发现、探险活动、地理变迁"),
    TaxonomyEntry("社会变迁", "social-change",
                  ("社会", "风俗", "习惯", "生活方式", "社会制度", "阶级", "平等", "权利"),
                  "🏘️", "#f97316", "社会制度、风俗习惯、生活方式变化"),
    TaxonomyEntry("军事战争", "military-war",
                  ("军事", "战争", "军队", "武器", "战略", "战术", "士兵", "将军", "元帅"),
                  "🎖️", "#dc2626", "战争历史、军事发展、战役记录"),
    TaxonomyEntry("宗教哲学", "religion-philosophy",
                  ("宗教", "哲学", "信仰", "教派", "思想", "理论", "神学", "佛教", "基督教", "伊斯兰教"),
                  "⛪", "#7c3aed", "宗教发展、哲学思想、思想流派"),
    TaxonomyEntry("教育学术", "education-academia",
                  ("教育", "学术", "学校", "大学", "研究", "知识", "学习", "教授", "学者"),
                  "📚", "#059669", "教育发展、学术研究、知识传播"),
    TaxonomyEntry("体育竞技", "sports",
                  ("体育", "竞技", "运动", "比赛", "奥运会", "世界杯", "足球", "篮球", "网球"),
                  "⚽", "#ea580c", "体育历史、竞技发展、赛事记录"),
    TaxonomyEntry("医学健康", "medicine-health",
                  ("医学", "健康", "疾病", "治疗", "医院", "药物", "医生", "护士", "疫苗"),
                  "🏥", "#0891b2", "医学发展、疾病历史、医疗进步"),
    TaxonomyEntry("环境自然", "environment-nature",
                  ("环境", "自然", "气候", "生态", "污染", "保护", "动物", "植物", "森林"),
                  "🌍", "#16a34a", "自然环境、气候变化、生态演变"),
    TaxonomyEntry("娱乐休闲", "entertainment",
                  ("娱乐", "游戏", "休闲", "电影", "电视", "综艺", "明星", "偶像", "流行"),
                  "🎮", "#ec4899", "娱乐产业、游戏发展、流行文化"),
    TaxonomyEntry("交通通信", "transport-communication",
                  ("交通", "通信", "运输", "网络", "手机", "汽车", "飞机", "火车", "互联网"),
                  "🚗", "#8b5a2b", "交通发展、通信技术、运输工具"),
    TaxonomyEntry("工业制造", "industry-manufacturing",
                  ("工业", "制造", "生产", "工厂", "机器", "自动化", "工业革命", "制造业"),
                  "🏭", "#6b7280", "工业革命、制造业发展、生产技术"),
    TaxonomyEntry("农业食品", "agriculture-food",
                  ("农业", "食品", "种植", "养殖", "粮食", "蔬菜", "水果", "农业革命"),
                  "🌾", "#22c55e", "农业发展、食品技术、饮食文化"),
    TaxonomyEntry("建筑城市", "architecture-cities",
                  ("建筑", "城市", "规划", "城市化", "摩天大楼", "城市规划", "建筑风格"),
                  "🏙️", "#fbbf24", "建筑发展、城市规划、城市化进程"),
    TaxonomyEntry("个人生活", "personal-life",
                  ("个人", "生活", "经历", "成长", "故事", "回忆", "人生", "家庭"),
                  "👨‍👩‍👧‍👦", "#f59e0b", "个人经历、生活故事、成长历程"),
    TaxonomyEntry("企业发展", "business-development",
                  ("企业", "公司", "商业", "发展", "创业", "管理", "品牌", "市场"),
                  "🏢", "#3b82f6", "公司历史、商业发展、企业故事"),
    TaxonomyEntry("产品发展", "product-development",
                  ("产品", "技术", "迭代", "版本", "更新", "发布", "市场", "用户"),
                  "📱", "#10b981", "产品演进、技术迭代、市场变化"),
    TaxonomyEntry("社会现象", "social-phenomena",
                  ("社会", "现象", "趋势", "文化", "流行", "时尚", "潮流", "变化"),
                  "📊", "#8b5cf6", "社会趋势、文化现象、流行趋势"),
)

DEFAULT_CATEGORY = TaxonomyEntry("AI生成", "ai-generated", (), DEFAULT_ICON, DEFAULT_COLOR,
                                 "由AI智能生成的内容")


# 通用标签规则：任一关键词命中即追加标签
TAG_RULES: Tuple[Tuple[Tuple[str, ...], str, str], ...] = (
    (("中国", "中华"), "中国历史", "chinese-history"),
    (("古代",), "古代", "ancient"),
    (("现代",), "现代", "modern"),
    (("近代",), "近代", "early-modern"),
    (("世界",), "世界历史", "world-history"),
    (("美国",), "美国历史", "american-history"),
    (("欧洲",), "欧洲历史", "european-history"),
    (("亚洲",), "亚洲历史", "asian-history"),
)


# ==================== 工具函数 ====================

def _ascii_slug(text: str) -> str:
    slug = re.sub(r"\s+", "-", str(text or "").strip().lower())
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    return re.sub(r"-{2,}", "-", slug).strip("-")


def slugify(name: str) -> str:
    """小写 ASCII、连字符连接；没有可用字符时使用名称的稳定哈希"""
    slug = _ascii_slug(name)
    if slug:
        return slug
    digest = hashlib.md5(str(name or "").encode("utf-8")).hexdigest()[:8]
    return f"x-{digest}"


def _valid_slug(value: Any) -> Optional[str]:
    """规范化模型给出的 slug；没有可用的 ASCII 字符时返回 None，由名称推导"""
    if not isinstance(value, str):
        return None
    return _ascii_slug(value) or None


def extract_first_json_object(text: str) -> Optional[str]:
    """用括号深度扫描提取第一个平衡的 {...} 子串

    会跳过 JSON 字符串内部的括号和转义字符；某个起点无法闭合时，
    从下一个 '{' 继续尝试。
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        start = text.find("{", start + 1)

    return None


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """提取并解析响应中的第一个 JSON 对象，失败返回 None"""
    candidate = extract_first_json_object(text)
    while candidate is not None:
        try:
            data = json.loads(candidate)
            if isinstance(data, dict):
                return data
        except ValueError:
            pass
        # 该对象无法解析时，尝试后面的对象
        offset = text.find(candidate) + 1
        text = text[offset:]
        candidate = extract_first_json_object(text)
    return None


def sanitize_category(raw: Any, default_description: str = DEFAULT_CATEGORY.description,
                      default_icon: str = DEFAULT_ICON,
                      default_color: str = DEFAULT_COLOR) -> Category:
    """模型给出的分类 → Category，缺失字段使用默认值"""
    if isinstance(raw, str):
        raw = {"name": raw}
    if not isinstance(raw, dict):
        raw = {}

    name = str(raw.get("name") or "").strip() or DEFAULT_CATEGORY.name
    slug = _valid_slug(raw.get("slug")) or slugify(name)
    if name == DEFAULT_CATEGORY.name and not raw.get("slug"):
        slug = DEFAULT_CATEGORY.slug

    description = raw.get("description")
    icon = raw.get("icon")
    color = raw.get("color")
    return Category(
        name=name,
        slug=slug,
        description=description if isinstance(description, str) and description else default_description,
        icon=icon if isinstance(icon, str) and icon else default_icon,
        color=color if isinstance(color, str) and color else default_color,
        is_new=bool(raw.get("isNew", raw.get("is_new", False)))
    )


def sanitize_tags(raw: Any) -> List[Tag]:
    """模型给出的标签列表 → 最多 5 个 Tag，按名称去重"""
    if not isinstance(raw, list):
        return []

    tags: List[Tag] = []
    seen = set()
    for item in raw:
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if not name or name in seen:
            continue
        seen.add(name)
        color = item.get("color")
        tags.append(Tag(
            name=name,
            slug=_valid_slug(item.get("slug")) or slugify(name),
            color=color if isinstance(color, str) and color else None
        ))
        if len(tags) >= MAX_TAGS:
            break
    return tags


def record_text(record: Any) -> str:
    """记录中参与关键词计分的文本"""
    if isinstance(record, dict):
        parts = [record.get(k) for k in ("description", "upperLine", "lowerLine",
                                         "appreciation", "sceneDescription", "narration")]
    else:
        parts = [getattr(record, k, None) for k in ("description", "upper_line", "lower_line",
                                                    "appreciation", "scene_description", "narration")]
    return " ".join(str(p) for p in parts if p)


# ==================== Tier 2 ====================

def _score(text: str, entry: TaxonomyEntry) -> int:
    return sum(1 for keyword in entry.keywords if keyword in text)


def quick_classify(prompt: str, records: Optional[Sequence[Any]] = None) -> ClassificationResult:
    """基于关键词的确定性分类，不调用模型

    得分最高的分类胜出，平分时先声明者胜出；全部为 0 时使用默认分类。
    """
    text = f"{prompt or ''} {' '.join(record_text(r) for r in records or [])}".lower()

    best = DEFAULT_CATEGORY
    best_score = 0
    for entry in TAXONOMY:
        score = _score(text, entry)
        if score > best_score:
            best, best_score = entry, score

    tags: List[Tag] = []
    if best_score > 0:
        tags.append(Tag(name=best.name, slug=best.slug, color=best.color))

    for keywords, tag_name, tag_slug in TAG_RULES:
        if any(k in text for k in keywords) and all(t.name != tag_name for t in tags):
            tags.append(Tag(name=tag_name, slug=tag_slug))

    return ClassificationResult(
        category=Category(
            name=best.name,
            slug=best.slug,
            description=best.description,
            icon=best.icon,
            color=best.color,
            is_new=False
        ),
        tags=tags[:MAX_TAGS]
    )


# ==================== Tier 1 + 引擎 ====================

class ClassificationEngine:
    """分类引擎 - 优先使用 LLM，失败时回退到关键词分类"""

    def __init__(self, routes: Optional[Sequence[ModelRoute]] = None,
                 timeout: Optional[float] = None,
                 options: Optional[GenerationOptions] = None):
        """
        Args:
            routes: 模型路由表，None 使用默认路由
            timeout: Tier 1 的超时时间（秒），None 表示不限
            options: 生成参数，默认 temperature=0.3, max_tokens=700
        """
        self.routes = routes
        self.timeout = timeout
        self.options = options or GenerationOptions(temperature=0.3, max_tokens=700)

    async def classify(self, prompt: str, records: Optional[Sequence[Any]] = None,
                       model: Optional[str] = None, language: str = "zh") -> ClassificationResult:
        """为生成内容分配分类和标签，永不抛出异常"""
        records = list(records or [])
        try:
            call = self._classify_with_model(prompt, records, model, language)
            if self.timeout is not None:
                result = await asyncio.wait_for(call, timeout=self.timeout)
            else:
                result = await call
        except asyncio.TimeoutError:
            print(f"[WARN] AI 分类超时（{self.timeout}秒），使用关键词分类")
            return quick_classify(prompt, records)
        except Exception as e:
            print(f"[WARN] AI 分类生成失败（{type(e).__name__}: {e}），使用关键词分类")
            return quick_classify(prompt, records)

        if result is None:
            print("[WARN] AI 分类结果无效，使用关键词分类")
            return quick_classify(prompt, records)
        return result

    async def _classify_with_model(self, prompt: str, records: List[Any],
                                   model: Optional[str], language: str) -> Optional[ClassificationResult]:
        adapter = resolve_adapter(model, self.routes)
        text = compose("classification", prompt, language, {"records": records})
        response = await collect(adapter.stream_generate(text, self.options))
        return parse_classification(response)


def parse_classification(response: str) -> Optional[ClassificationResult]:
    """解析 Tier 1 响应；缺少 category 或 tags 时返回 None"""
    data = parse_json_object(response)
    if not data or not data.get("category") or "tags" not in data:
        return None
    if not isinstance(data["tags"], list):
        return None
    return ClassificationResult(
        category=sanitize_category(data["category"]),
        tags=sanitize_tags(data["tags"])
    )


async def classify(prompt: str, records: Optional[Sequence[Any]] = None,
                   model: Optional[str] = None, language: str = "zh",
                   routes: Optional[Sequence[ModelRoute]] = None,
                   timeout: Optional[float] = None) -> ClassificationResult:
    """ClassificationEngine 的便捷入口"""
    engine = ClassificationEngine(routes=routes, timeout=timeout)
    return await engine.classify(prompt, records, model=model, language=language)
