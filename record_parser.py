# -*- coding: utf-8 -*-
"""容错记录解析

把模型生成的自由文本逐行转换为类型化记录。模型输出可能是新的严格
JSON-lines 协议，也可能是旧的 @ 分隔协议，调用方无需关心是哪一种。

每一行独立处理：
1. 超过 20000 字符的行直接丢弃
2. 先按 JSON 对象解析，用同义字段表提取字段
3. 必填字段缺失时，对同一行再尝试 @ 分隔格式
4. 两者都失败则静默丢弃，计入 ParseReport.dropped

解析是纯函数：相同输入总是得到相同输出，某一行的内容不会影响其他行。
"""
import re
import json
from dataclasses import dataclass
from typing import List, Optional, Dict, Any, Callable, Tuple

from models import TimelineEvent, CoupletDraft, Panel, ParseReport


MAX_LINE_LENGTH = 20000
HORIZONTAL_SCROLL_PLACEHOLDER = "横批"


# ==================== 同义字段表 ====================

@dataclass(frozen=True)
class FieldRule:
    """一个输出字段：按顺序尝试的 JSON 键，第一个非空值生效"""
    name: str
    accessors: Tuple[str, ...]
    required: bool = False


TIMELINE_FIELDS = (
    FieldRule("start_date", ("startDate", "date"), required=True),
    FieldRule("end_date", ("endDate",)),
    FieldRule("description", ("description", "desc"), required=True),
)

COUPLET_FIELDS = (
    FieldRule("upper_line", ("upperLine", "title"), required=True),
    FieldRule("lower_line", ("lowerLine", "description"), required=True),
    FieldRule("horizontal_scroll", ("horizontalScroll", "startDate", "category")),
    FieldRule("appreciation", ("appreciation",)),
)

PANEL_FIELDS = (
    FieldRule("panel_number", ("panelNumber", "panel_number", "number")),
    FieldRule("scene_description", ("sceneDescription", "scene", "description"), required=True),
    FieldRule("dialogue", ("dialogue",)),
    FieldRule("narration", ("narration",)),
    FieldRule("emotion", ("emotion",)),
    FieldRule("camera_angle", ("cameraAngle", "camera")),
    FieldRule("characters", ("characters",)),
)


def _scalar_text(value: Any) -> str:
    """JSON 值 → 去除首尾空白的字符串；null、对象视为空"""
    if value is None or isinstance(value, dict):
        return ""
    if isinstance(value, bool):
        return ""
    if isinstance(value, list):
        return "、".join(_scalar_text(v) for v in value if _scalar_text(v))
    return str(value).strip()


def extract_fields(obj: Dict[str, Any], rules: Tuple[FieldRule, ...]) -> Optional[Dict[str, str]]:
    """按规则表提取字段，必填字段为空时返回 None"""
    fields: Dict[str, str] = {}
    for rule in rules:
        value = ""
        for key in rule.accessors:
            if key in obj:
                value = _scalar_text(obj[key])
                if value:
                    break
        if rule.required and not value:
            return None
        fields[rule.name] = value
    return fields


def _load_object(line: str) -> Optional[Dict[str, Any]]:
    try:
        obj = json.loads(line)
    except (ValueError, RecursionError):
        return None
    return obj if isinstance(obj, dict) else None


def _to_int(value: str) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


# ==================== 各领域的两种编码 ====================

TIMELINE_LEGACY_PATTERN = re.compile(r"@([^~@]+)(?:~([^@]+))?@(.+)")
COUPLET_LEGACY_PATTERN = re.compile(r"@([^@]+)@(.+)")
PANEL_LEGACY_PATTERN = re.compile(r"^\s*@([^@]+)(.*)")


def _timeline_from_json(obj: Dict[str, Any]) -> Optional[TimelineEvent]:
    fields = extract_fields(obj, TIMELINE_FIELDS)
    if fields is None:
        return None
    return TimelineEvent(
        start_date=fields["start_date"],
        end_date=fields["end_date"] or None,
        description=fields["description"]
    )


def _timeline_from_legacy(line: str) -> Optional[TimelineEvent]:
    """@开始时间~结束时间@描述 或 @时间点@描述"""
    match = TIMELINE_LEGACY_PATTERN.search(line)
    if not match:
        return None
    start, end, description = match.groups()
    start = start.strip()
    description = description.strip()
    if not start or not description:
        return None
    end = end.strip() if end else ""
    return TimelineEvent(start_date=start, end_date=end or None, description=description)


def _couplet_from_json(obj: Dict[str, Any]) -> Optional[CoupletDraft]:
    fields = extract_fields(obj, COUPLET_FIELDS)
    if fields is None:
        return None
    return CoupletDraft(
        upper_line=fields["upper_line"],
        lower_line=fields["lower_line"],
        horizontal_scroll=fields["horizontal_scroll"] or HORIZONTAL_SCROLL_PLACEHOLDER,
        appreciation=fields["appreciation"]
    )


def _couplet_from_legacy(line: str) -> Optional[CoupletDraft]:
    """@横批@上联@下联 或 @横批@下联（上联为空）"""
    match = COUPLET_LEGACY_PATTERN.search(line)
    if not match:
        return None
    horizontal_scroll, rest = match.groups()
    parts = rest.split("@")
    if len(parts) >= 2:
        upper_line, lower_line = parts[0].strip(), parts[1].strip()
    else:
        upper_line, lower_line = "", rest.strip()
    if not lower_line:
        return None
    return CoupletDraft(
        upper_line=upper_line,
        lower_line=lower_line,
        horizontal_scroll=horizontal_scroll.strip() or HORIZONTAL_SCROLL_PLACEHOLDER,
        appreciation=""
    )


def _panel_from_json(obj: Dict[str, Any]) -> Optional[Panel]:
    fields = extract_fields(obj, PANEL_FIELDS)
    if fields is None:
        return None
    return Panel(
        panel_number=_to_int(fields["panel_number"]),
        scene_description=fields["scene_description"],
        dialogue=fields["dialogue"],
        narration=fields["narration"],
        emotion=fields["emotion"] or "平静",
        camera_angle=fields["camera_angle"] or "正面视角",
        characters=fields["characters"]
    )


def _panel_from_legacy(line: str) -> Optional[Panel]:
    """@画面描述@对话@旁白，后两段可省略"""
    match = PANEL_LEGACY_PATTERN.search(line)
    if not match:
        return None
    scene, rest = match.groups()
    scene = scene.strip()
    if not scene:
        return None
    parts = rest.split("@")[1:] if rest else []
    return Panel(
        panel_number=0,
        scene_description=scene,
        dialogue=parts[0].strip() if len(parts) > 0 else "",
        narration=parts[1].strip() if len(parts) > 1 else ""
    )


# 领域 → (JSON 解析, 旧格式解析)
LineParsers = Tuple[Callable[[Dict[str, Any]], Any], Callable[[str], Any]]

DOMAIN_PARSERS: Dict[str, LineParsers] = {
    "timeline": (_timeline_from_json, _timeline_from_legacy),
    "couplet": (_couplet_from_json, _couplet_from_legacy),
    "comic-panel": (_panel_from_json, _panel_from_legacy),
}

DOMAIN_ALIASES = {
    "comic": "comic-panel",
    "panel": "comic-panel",
}

LINE_DOMAINS = tuple(DOMAIN_PARSERS)


def normalize_domain(domain: str) -> str:
    domain = (domain or "").strip().lower()
    return DOMAIN_ALIASES.get(domain, domain)


# ==================== 对外接口 ====================

def parse_line(domain: str, line: str) -> Optional[Any]:
    """解析单行，无法解析时返回 None"""
    parsers = DOMAIN_PARSERS.get(normalize_domain(domain))
    line = line.strip()
    if parsers is None or not line or len(line) > MAX_LINE_LENGTH:
        return None

    from_json, from_legacy = parsers
    obj = _load_object(line)
    if obj is not None:
        record = from_json(obj)
        if record is not None:
            return record

    for candidate in _legacy_candidates(line, obj):
        record = from_legacy(candidate)
        if record is not None:
            return record
    return None


def _legacy_candidates(line: str, obj: Optional[Dict[str, Any]]) -> List[str]:
    """旧格式的匹配对象：JSON 字段值中嵌入的 @ 记录优先，然后是整行"""
    candidates = []
    if obj is not None:
        candidates = [v.strip() for v in obj.values() if isinstance(v, str) and "@" in v]
    candidates.append(line)
    return candidates


def parse_report(domain: str, text: str) -> ParseReport:
    """逐行解析并统计被丢弃的行数"""
    report = ParseReport()
    if not text:
        return report

    for raw in text.split("\n"):
        if not raw.strip():
            continue
        report.total_lines += 1
        record = parse_line(domain, raw)
        if record is None:
            report.dropped += 1
        else:
            report.records.append(record)

    return report


def parse_records(domain: str, text: str) -> List[Any]:
    """把生成文本解析为记录列表，保持原始行序，从不抛出异常"""
    return parse_report(domain, text).records
