# -*- coding: utf-8 -*-
"""Prompt 组装模块

为每个内容领域渲染完整的指令文本：角色设定、原样嵌入的用户输入、
严格的输出协议以及目标语言指令。组装过程永远不会失败。
"""
from typing import List, Optional, Dict, Any


LANGUAGE_DISPLAY_NAMES = {
    "zh": "简体中文",
    "zh-cn": "简体中文",
    "zh-tw": "繁體中文",
    "zh-hk": "繁體中文",
    "en": "English",
    "ja": "日本語",
    "ko": "한국어",
    "fr": "Français",
    "de": "Deutsch",
    "es": "Español",
    "ru": "Русский",
    "pt": "Português",
    "it": "Italiano",
    "ar": "العربية",
}


def language_display_name(language: Optional[str]) -> str:
    """语言代码 → 展示名称，未知代码原样返回"""
    if not language:
        return LANGUAGE_DISPLAY_NAMES["en"]
    return LANGUAGE_DISPLAY_NAMES.get(language.strip().lower(), language)


# ==================== 行式领域 ====================

TIMELINE_PROMPT = """
## 角色设定
你是世界顶级的时间线生成专家，能够根据任何主题，基于权威资料和事实，生成细节充实、信息量丰富的时间线。所有内容必须客观、真实、可考证，严禁虚构和主观臆断。

## 任务要求
请根据用户输入的内容，生成一份基于事实、客观描述的时间线，包含：
1. 相关的时间节点和事件
2. 每个事件的详细描述（背景、起因、经过、结果、影响）
3. 时间顺序的合理性

## 用户输入内容
{user_input}

## 输出协议（NDJSON）
- 【非常重要】仅按"每行一个 JSON 对象（UTF-8，无多余文本）"输出，严禁输出解释性文字或额外格式。
- 每一行 JSON 对象字段：
  - startDate: 字符串，开始时间（如 "2020年01月"、"公元前221年"、"2020-01-01" 等）
  - endDate: 字符串或 null，结束时间（可选）
  - description: 字符串，客观描述
- 示例（两行）：
{{"startDate":"2020年01月","endDate":null,"description":"……详述……"}}
{{"startDate":"2020年02月","endDate":"2020年03月","description":"……详述……"}}
- 请确保：只输出上述 JSON 行；各事件按时间顺序排列；字段名固定为 startDate、endDate、description。

## 注意事项
- 统一使用{language}输出，不要输出其他语言的提示语、解释、标题、编号、列表、表格、代码块或 Markdown 语法。
- 严禁在 JSON 之外输出任何文本；每个事件必须单独占一行 JSON。
- 若无法确定时间，用"具体时间不详""约某年"等客观表述。
"""

COUPLET_PROMPT = """
## 角色设定
你是世界顶级的对联创作专家，能够根据用户输入智能创作对联：
1. 如果是主题词，则创作完整对联
2. 如果是上联，则对出下联并补充横批
3. 如果是下联，则对出上联并补充横批
4. 如果是横批，则创作相应的上下联
所有内容必须符合传统对联格律要求（平仄、对仗、押韵）。

## 用户输入内容
{user_input}

## 输出协议（NDJSON）
- 【非常重要】仅按"每行一个 JSON 对象（UTF-8，无多余文本）"输出，严禁输出解释性文字或额外格式。
- 每一行 JSON 对象字段：
  - horizontalScroll: 横批（纯文字，不要"横批："前缀）
  - upperLine: 上联（纯文字）
  - lowerLine: 下联（纯文字）
  - appreciation: 赏析（不少于100字）
- 示例：
{{"horizontalScroll":"万象更新","upperLine":"千门结彩迎春到","lowerLine":"万户欢歌庆团圆","appreciation":"……"}}
- 每副对联单独占一行 JSON。

## 注意事项
- 统一使用{language}输出，不要输出其他语言的提示语、解释、标题、编号、列表、表格、代码块或 Markdown 语法。
- 严禁在 JSON 之外输出任何文本。
"""

COMIC_PANEL_PROMPT = """
## 角色设定
你是专业的漫画分镜师，请根据用户的创意把故事拆解为连续的分镜格子。

## 用户输入内容
{user_input}

## 输出协议（NDJSON）
- 【非常重要】仅按"每行一个 JSON 对象（UTF-8，无多余文本）"输出。
- 每一行 JSON 对象字段：panelNumber（从 1 开始连续编号）、sceneDescription（画面描述，必填）、dialogue、narration、emotion、cameraAngle、characters
- 示例：
{{"panelNumber":1,"sceneDescription":"清晨的小镇街道，少女推着自行车","dialogue":"","narration":"故事从这里开始","emotion":"温馨","cameraAngle":"远景","characters":"少女（女，16岁，短发）"}}

## 注意事项
- 统一使用{language}输出，严禁在 JSON 之外输出任何文本。
- 所有角色的性别、外貌、性格在各个格子中保持一致。
"""


# ==================== 单对象领域 ====================

TIMELINE_SUMMARY_PROMPT = """
你是一个专业的内容总结专家，请根据以下用户输入和时间线事件，生成一段简洁、准确、吸引人的时间线简介（100字左右）：

【用户输入】
{user_input}

【时间线事件】
{events}

【输出要求】
使用{language}输出
只输出简介内容，不要有多余格式
100字左右
"""

CLASSIFICATION_PROMPT = """
## 角色设定
你是一个专业的内容分类和标签专家，需要根据用户输入的内容和生成的记录，为其推荐最合适的分类和标签。

## 内容信息
- 用户输入：{user_input}
- 记录数量：{record_count}
- 记录内容：{record_summary}

## 预定义分类体系（请优先选择最匹配的）
{taxonomy}

## 分类原则
1. 根据内容的主要主题和性质进行分类
2. 如果现有分类都不合适，可以建议新分类，并将 isNew 设为 true
3. 分类名称简洁明了，不超过10个字
4. 标签数量控制在3-5个，包含时间、地点、人物、主题等关键信息

## 输出格式要求（使用{language}输出）
只输出一个 JSON 对象，不要任何解释，不要 markdown 代码块：
{{
  "category": {{"name": "分类名称", "slug": "category-slug", "description": "分类描述", "icon": "🤖", "color": "#6366f1", "isNew": false}},
  "tags": [{{"name": "标签名称", "slug": "tag-slug", "color": "#6366f1"}}]
}}
所有 slug 必须是英文小写，用连字符分隔。
"""

GENERIC_META_PROMPT = """你是一个{subject}的元信息生成助手。仅根据用户的提示词，给出一句简介（约100-150字）、一个最合适的分类，以及3-5个相关标签。输出要结构化、简洁，并使用{language}。分类与标签提供 slug（小写英文、连字符）。只输出一个 JSON 对象，不能有任何解释、前后缀或 markdown 代码块。

用户提示词：{user_input}

请严格输出如下 JSON 结构：{{ "description": "...", "category": {{ "name": "...", "slug": "...", "description": "...", "icon": "...", "color": "...", "isNew": false }}, "tags": [{{ "name": "...", "slug": "...", "color": "..." }}] }}
"""

COMIC_META_PROMPT = """你是一个专业的漫画策划师和编剧。根据用户的创意提示词，为漫画作品生成完整的创作方案：

1. 漫画基本信息：标题、100-150字的故事简介、最合适的分类、3-5个标签、漫画风格（anime/realistic/cartoon/watercolor/sketch/chibi）
2. 卷结构：合理的卷数，每卷包含标题、简介和若干话
3. 每话包含标题、简介和若干页；每页包含页面布局（single/double/multi）和若干格子
4. 每个格子包含：画面描述、对话、旁白、情感氛围、镜头角度、角色信息

【重要】角色一致性：所有角色的性别、外貌、性格在整个漫画中保持完全一致。
【内容健康】所有内容健康向上，适合全年龄段。

输出要结构化、简洁，并使用{language}。分类与标签提供 slug（小写英文、连字符）。

用户创意提示词：{user_input}

【重要】严格按照以下要求输出：
1. 只输出一个完整的 JSON 对象
2. 不要添加任何 markdown 标记（如```json）
3. 不要添加任何解释文字
4. pageNumber 在每话内从 1 开始连续编号，panelNumber 在每页内从 1 开始连续编号

JSON格式：
{{
  "title": "漫画标题",
  "description": "漫画简介",
  "style": "anime",
  "category": {{"name": "分类名称", "slug": "category-slug", "description": "分类描述", "icon": "🎨", "color": "#8b5cf6", "isNew": false}},
  "tags": [{{"name": "标签1", "slug": "tag1-slug", "color": "#8b5cf6"}}],
  "volumes": [
    {{
      "title": "第1卷",
      "description": "第1卷简介",
      "episodes": [
        {{
          "title": "第1话",
          "description": "第1话简介",
          "pages": [
            {{
              "pageNumber": 1,
              "pageLayout": "multi",
              "panels": [
                {{"panelNumber": 1, "sceneDescription": "格子1画面描述", "dialogue": "对话1", "narration": "旁白1", "emotion": "情感1", "cameraAngle": "角度1", "characters": "角色1"}}
              ]
            }}
          ]
        }}
      ]
    }}
  ]
}}
"""

META_SUBJECTS = {
    "generic-meta": "时间线",
    "couplet-meta": "对联作品",
}


def _summarize_records(records: Optional[List[Any]], separator: str) -> List[str]:
    """从记录中提取可读文本（支持 dataclass 记录和 dict）"""
    lines = []
    for record in records or []:
        if isinstance(record, dict):
            start = record.get("startDate") or record.get("start_date") or ""
            text = (record.get("description") or record.get("lowerLine")
                    or record.get("sceneDescription") or "")
        else:
            start = getattr(record, "start_date", "") or ""
            text = (getattr(record, "description", None) or getattr(record, "lower_line", None)
                    or getattr(record, "scene_description", None) or "")
        if separator == "\n":
            lines.append(f"- {start} {text}".rstrip())
        else:
            lines.append(str(text))
    return lines


def _taxonomy_lines() -> str:
    # 延迟导入：classifier 依赖本模块
    from classifier import TAXONOMY
    return "\n".join(f"- {entry.name}：{'、'.join(entry.keywords[:6])}" for entry in TAXONOMY)


def compose(domain: str, user_input: str, language: str = "en",
            extra: Optional[Dict[str, Any]] = None) -> str:
    """渲染指定领域的完整 prompt

    Args:
        domain: timeline / timeline-summary / couplet / comic-panel /
                classification / generic-meta / couplet-meta / comic-meta
        user_input: 用户原始输入（原样嵌入）
        language: 目标语言代码
        extra: 领域上下文，timeline-summary 与 classification 读取 extra["records"]

    Returns:
        prompt 文本；未知领域回退到 generic-meta 模板
    """
    extra = extra or {}
    lang = language_display_name(language)
    user_input = "" if user_input is None else str(user_input)

    if domain == "timeline":
        return TIMELINE_PROMPT.format(user_input=user_input, language=lang)

    if domain == "couplet":
        return COUPLET_PROMPT.format(user_input=user_input, language=lang)

    if domain == "comic-panel":
        return COMIC_PANEL_PROMPT.format(user_input=user_input, language=lang)

    if domain == "timeline-summary":
        events = "\n".join(_summarize_records(extra.get("records"), "\n"))
        return TIMELINE_SUMMARY_PROMPT.format(user_input=user_input, events=events, language=lang)

    if domain == "classification":
        records = extra.get("records") or []
        return CLASSIFICATION_PROMPT.format(
            user_input=user_input,
            record_count=len(records),
            record_summary="; ".join(_summarize_records(records, "; ")),
            taxonomy=_taxonomy_lines(),
            language=lang
        )

    if domain == "comic-meta":
        return COMIC_META_PROMPT.format(user_input=user_input, language=lang)

    subject = META_SUBJECTS.get(domain, META_SUBJECTS["generic-meta"])
    return GENERIC_META_PROMPT.format(subject=subject, user_input=user_input, language=lang)
