# -*- coding: utf-8 -*-
"""核心数据结构定义的测试"""
import pytest

from models import (
    TimelineEvent, CoupletDraft, Panel, ParseReport, Category, Tag,
    ClassificationResult, Page, Episode, Volume, ComicScript, MetaResult
)


class TestLineRecords:
    """测试逐行记录"""

    def test_timeline_event_defaults(self):
        """测试时间线事件默认没有结束时间"""
        event = TimelineEvent(start_date="1939", description="第二次世界大战爆发")
        assert event.end_date is None
        assert event.to_dict() == {
            "startDate": "1939",
            "endDate": None,
            "description": "第二次世界大战爆发"
        }

    def test_couplet_defaults(self):
        """测试对联默认横批占位符"""
        couplet = CoupletDraft(upper_line="春回大地", lower_line="福满人间")
        assert couplet.horizontal_scroll == "横批"
        assert couplet.appreciation == ""
        assert couplet.to_dict()["upperLine"] == "春回大地"

    def test_panel_defaults(self):
        """测试分镜格子默认情绪和镜头"""
        panel = Panel(panel_number=1, scene_description="雨夜的街道")
        data = panel.to_dict()
        assert data["emotion"] == "平静"
        assert data["cameraAngle"] == "正面视角"
        assert data["panelNumber"] == 1

    def test_parse_report_defaults(self):
        """测试空解析报告"""
        report = ParseReport()
        assert report.records == []
        assert report.dropped == 0


class TestClassificationModels:
    """测试分类结构"""

    def test_tag_without_color(self):
        """测试没有颜色的标签不输出 color 字段"""
        assert Tag(name="古代", slug="ancient").to_dict() == {"name": "古代", "slug": "ancient"}

    def test_classification_to_dict(self):
        """测试分类结果序列化"""
        result = ClassificationResult(
            category=Category(name="军事战争", slug="military-war", is_new=True),
            tags=[Tag(name="世界历史", slug="world-history", color="#000000")]
        )
        data = result.to_dict()
        assert data["category"]["isNew"] is True
        assert data["category"]["icon"] == "🤖"
        assert data["tags"][0]["color"] == "#000000"


class TestComicTree:
    """测试漫画脚本树"""

    def test_comic_script_to_dict(self):
        """测试卷 → 话 → 页 → 格的嵌套序列化"""
        comic = ComicScript(
            title="星际少女",
            description="少女与机器人的冒险",
            style="anime",
            category=Category(name="科幻", slug="sci-fi"),
            volumes=[Volume(
                title="第1卷",
                episodes=[Episode(
                    title="第1话",
                    pages=[Page(page_number=1, panels=[Panel(1, "飞船降落")])]
                )]
            )]
        )
        data = comic.to_dict()
        page = data["volumes"][0]["episodes"][0]["pages"][0]
        assert page["pageLayout"] == "multi"
        assert page["panels"][0]["sceneDescription"] == "飞船降落"

    def test_meta_result_error_fields(self):
        """测试只有失败结果才输出 error 字段"""
        ok = MetaResult(success=True, description="简介").to_dict()
        assert "error" not in ok
        assert ok["category"] is None

        failed = MetaResult(success=False, error="元信息生成失败", detail="timeout").to_dict()
        assert failed["error"] == "元信息生成失败"
        assert failed["detail"] == "timeout"
