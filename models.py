# -*- coding: utf-8 -*-
"""核心数据结构定义

流水线产出的所有记录都是一次性的生成产物：在内存中完成校验和清洗后，
交给外部的持久化协作方。to_dict() 输出 HTTP 层使用的 camelCase 结构。
"""
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Union


# ==================== 行记录 ====================

@dataclass
class TimelineEvent:
    """时间线事件"""
    start_date: str
    description: str
    end_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startDate": self.start_date,
            "endDate": self.end_date,
            "description": self.description
        }


@dataclass
class CoupletDraft:
    """对联草稿：上联、下联、横批、赏析"""
    upper_line: str
    lower_line: str
    horizontal_scroll: str = "横批"
    appreciation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "upperLine": self.upper_line,
            "lowerLine": self.lower_line,
            "horizontalScroll": self.horizontal_scroll,
            "appreciation": self.appreciation
        }


@dataclass
class Panel:
    """漫画分镜格子"""
    panel_number: int
    scene_description: str
    dialogue: str = ""
    narration: str = ""
    emotion: str = "平静"
    camera_angle: str = "正面视角"
    characters: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "panelNumber": self.panel_number,
            "sceneDescription": self.scene_description,
            "dialogue": self.dialogue,
            "narration": self.narration,
            "emotion": self.emotion,
            "cameraAngle": self.camera_angle,
            "characters": self.characters
        }


Record = Union[TimelineEvent, CoupletDraft, Panel]


@dataclass
class ParseReport:
    """一次解析的结果：保留下来的记录和被丢弃的行数"""
    records: List[Any] = field(default_factory=list)
    dropped: int = 0
    total_lines: int = 0


# ==================== 分类 ====================

@dataclass
class Category:
    """内容分类"""
    name: str
    slug: str
    description: str = ""
    icon: str = "🤖"
    color: str = "#6366f1"
    is_new: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "icon": self.icon,
            "color": self.color,
            "isNew": self.is_new
        }


@dataclass
class Tag:
    """内容标签"""
    name: str
    slug: str
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "slug": self.slug}
        if self.color is not None:
            data["color"] = self.color
        return data


@dataclass
class ClassificationResult:
    """分类结果，tags 最多 5 个"""
    category: Category
    tags: List[Tag] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.to_dict(),
            "tags": [t.to_dict() for t in self.tags]
        }


# ==================== 漫画脚本树 ====================

@dataclass
class Page:
    """漫画页"""
    page_number: int
    panels: List[Panel] = field(default_factory=list)
    page_layout: str = "multi"  # single/double/multi

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pageNumber": self.page_number,
            "pageLayout": self.page_layout,
            "panels": [p.to_dict() for p in self.panels]
        }


@dataclass
class Episode:
    """漫画话"""
    title: str
    description: str = ""
    pages: List[Page] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "pages": [p.to_dict() for p in self.pages]
        }


@dataclass
class Volume:
    """漫画卷"""
    title: str
    description: str = ""
    episodes: List[Episode] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "episodes": [e.to_dict() for e in self.episodes]
        }


@dataclass
class ComicScript:
    """完整的漫画脚本：卷 → 话 → 页 → 格"""
    title: str
    description: str
    style: str
    category: Category
    tags: List[Tag] = field(default_factory=list)
    volumes: List[Volume] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "style": self.style,
            "category": self.category.to_dict(),
            "tags": [t.to_dict() for t in self.tags],
            "volumes": [v.to_dict() for v in self.volumes]
        }


# ==================== 元信息结果 ====================

@dataclass
class MetaResult:
    """generate_meta 的统一返回

    success=False 时 data 字段仍然是可用的降级结果（漫画脚本除外，comic 为 None）。
    """
    success: bool
    description: str = ""
    category: Optional[Category] = None
    tags: List[Tag] = field(default_factory=list)
    title: Optional[str] = None
    style: Optional[str] = None
    comic: Optional[ComicScript] = None
    error: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "description": self.description}
        data["category"] = self.category.to_dict() if self.category else None
        data["tags"] = [t.to_dict() for t in self.tags]
        if self.title is not None:
            data["title"] = self.title
        if self.style is not None:
            data["style"] = self.style
        if self.comic is not None:
            data["comic"] = self.comic.to_dict()
        if self.error is not None:
            data["error"] = self.error
            data["detail"] = self.detail
        return data
