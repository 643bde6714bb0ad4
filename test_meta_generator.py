# -*- coding: utf-8 -*-
"""元信息与漫画脚本生成的测试

通过 Mock LLM 返回值验证：元信息降级、时间线简介、漫画脚本树的结构校验与重新编号。
"""
import asyncio
import json
import pytest

from models import TimelineEvent
from model_adapter import MockLLMClient, AdapterError, mock_routes
from meta_generator import (
    MetaGenerator, generate_meta, build_comic_script, StructuralValidationFailure,
    META_FAILURE, COMIC_FAILURE, FALLBACK_DESCRIPTION_LIMIT
)


# ==================== Mock LLM 响应数据 ====================

def get_meta_mock_response():
    return '''```json
    {
        "description": "从1939年到1945年的第二次世界大战主要事件。",
        "category": {"name": "军事战争", "slug": "military-war", "icon": "🎖️", "color": "#dc2626"},
        "tags": [{"name": "二战", "slug": "ww2"}, {"name": "世界历史", "slug": "world-history"}]
    }
    ```'''


def get_comic_data():
    """页码和格子编号故意写乱，校验后应重新编号"""
    return {
        "title": "星海少女",
        "description": "少女与机器人穿越星海的冒险。",
        "style": "Watercolor",
        "category": {"name": "科幻冒险", "slug": "sci-fi-adventure"},
        "tags": [{"name": "机器人", "slug": "robot"}],
        "volumes": [
            {
                "title": "启程",
                "episodes": [
                    {
                        "title": "相遇",
                        "pages": [
                            {
                                "pageNumber": 7,
                                "pageLayout": "double",
                                "panels": [
                                    {"panelNumber": 4, "sceneDescription": "废墟中亮起蓝光"},
                                    {"panelNumber": 4, "sceneDescription": "机器人睁开眼睛",
                                     "dialogue": "你好", "emotion": "惊讶", "cameraAngle": "特写"}
                                ]
                            },
                            {
                                "pageNumber": 3,
                                "pageLayout": "spread",
                                "panels": [{"sceneDescription": "两人并肩离开"}]
                            }
                        ]
                    },
                    {
                        "pages": [{"panels": [{"sceneDescription": "飞船起飞"}]}]
                    }
                ]
            }
        ]
    }


def run(coro):
    return asyncio.run(coro)


class TestBuildComicScript:
    """测试漫画脚本树的结构校验"""

    def test_valid_tree_renumbered(self):
        """测试有效脚本重新连续编号并补全默认值"""
        comic = build_comic_script(get_comic_data(), "少女与机器人")
        episode = comic.volumes[0].episodes[0]

        assert [p.page_number for p in episode.pages] == [1, 2]
        assert [n.panel_number for n in episode.pages[0].panels] == [1, 2]
        assert episode.pages[0].page_layout == "double"
        assert episode.pages[1].page_layout == "multi"

        first = episode.pages[0].panels[0]
        assert first.emotion == "平静"
        assert first.camera_angle == "正面视角"
        assert episode.pages[0].panels[1].camera_angle == "特写"

    def test_episode_title_default_is_global(self):
        """测试缺少标题的话按全局序号命名"""
        comic = build_comic_script(get_comic_data())
        assert comic.volumes[0].episodes[1].title == "第2话"

    def test_style_normalized(self):
        """测试风格转为小写，未知风格回退 anime"""
        assert build_comic_script(get_comic_data()).style == "watercolor"
        data = get_comic_data()
        data["style"] = "oil-painting"
        assert build_comic_script(data).style == "anime"

    def test_comic_category_defaults(self):
        """测试漫画分类默认图标和颜色"""
        category = build_comic_script(get_comic_data()).category
        assert category.icon == "🎨"
        assert category.color == "#8b5cf6"

    def test_missing_volumes(self):
        """测试缺少卷时结构校验失败"""
        with pytest.raises(StructuralValidationFailure) as exc_info:
            build_comic_script({"title": "空"})
        assert exc_info.value.path == "$"

    def test_empty_panels(self):
        """测试空的格子列表报告具体路径"""
        data = get_comic_data()
        data["volumes"][0]["episodes"][0]["pages"][1]["panels"] = []
        with pytest.raises(StructuralValidationFailure) as exc_info:
            build_comic_script(data)
        assert exc_info.value.path == "volumes[0].episodes[0].pages[1]"

    def test_panel_without_scene(self):
        """测试格子缺少画面描述"""
        data = get_comic_data()
        data["volumes"][0]["episodes"][1]["pages"][0]["panels"][0] = {"dialogue": "只有对话"}
        with pytest.raises(StructuralValidationFailure) as exc_info:
            build_comic_script(data)
        assert "panels[0]" in exc_info.value.path

    def test_node_not_object(self):
        """测试节点不是对象"""
        with pytest.raises(StructuralValidationFailure):
            build_comic_script({"volumes": ["第一卷"]})


class TestMetaGenerator:
    """测试元信息生成"""

    def test_timeline_meta(self):
        """测试带 markdown 代码块的响应也能解析"""
        client = MockLLMClient(get_meta_mock_response())
        result = run(MetaGenerator(mock_routes(client)).generate_timeline_meta("第二次世界大战"))

        assert result.success is True
        assert result.category.slug == "military-war"
        assert [t.slug for t in result.tags] == ["ww2", "world-history"]
        assert client.options[0].max_tokens == 700

    def test_meta_fallback_on_adapter_error(self):
        """测试后端失败时返回降级元信息"""
        prompt = "很长的提示词" * 50
        client = MockLLMClient(error=AdapterError("timeout", family="deepseek"))
        result = run(MetaGenerator(mock_routes(client)).generate_couplet_meta(prompt))

        assert result.success is False
        assert result.error == META_FAILURE
        assert result.description == prompt[:FALLBACK_DESCRIPTION_LIMIT]
        assert result.category.slug == "ai-generated"
        assert result.category.description == "由AI智能生成的对联"
        assert result.tags == []

    def test_meta_fallback_on_no_json(self):
        """测试响应没有 JSON 时降级"""
        client = MockLLMClient("这不是 JSON")
        result = run(MetaGenerator(mock_routes(client)).generate_timeline_meta("秦朝"))
        assert result.success is False
        assert result.description == "秦朝"

    def test_missing_description_uses_prompt(self):
        """测试缺少简介时使用提示词"""
        client = MockLLMClient('{"category": {"name": "历史"}, "tags": []}')
        result = run(MetaGenerator(mock_routes(client)).generate_timeline_meta("汉朝"))
        assert result.success is True
        assert result.description == "汉朝"


class TestTimelineSummary:
    """测试时间线简介"""

    def test_summary(self):
        client = MockLLMClient("  二战是人类历史上规模最大的战争。 \n")
        events = [TimelineEvent("1939", "德国入侵波兰")]
        result = run(MetaGenerator(mock_routes(client)).generate_timeline_summary("二战", events))
        assert result.success is True
        assert result.description == "二战是人类历史上规模最大的战争。"
        assert "德国入侵波兰" in client.prompts[0]

    def test_summary_fallback_uses_first_event(self):
        """测试失败时使用第一个事件的描述"""
        client = MockLLMClient(error=AdapterError("down"))
        events = [{"startDate": "1939", "description": "德国入侵波兰"}]
        result = run(MetaGenerator(mock_routes(client)).generate_timeline_summary("二战", events))
        assert result.success is False
        assert result.description == "德国入侵波兰"


class TestComicScriptGeneration:
    """测试漫画脚本生成"""

    def test_success(self):
        client = MockLLMClient("好的：\n" + json.dumps(get_comic_data(), ensure_ascii=False))
        result = run(MetaGenerator(mock_routes(client)).generate_comic_script("少女与机器人"))

        assert result.success is True
        assert result.title == "星海少女"
        assert result.comic.volumes[0].episodes[0].pages[1].page_number == 2
        assert client.options[0].temperature == 0.8
        assert client.options[0].max_tokens == 4000

    def test_structural_failure(self):
        """测试结构失败时 comic 为 None 并给出路径"""
        client = MockLLMClient('{"title": "只有标题", "volumes": []}')
        result = run(MetaGenerator(mock_routes(client)).generate_comic_script("少女与机器人"))

        assert result.success is False
        assert result.comic is None
        assert result.error == COMIC_FAILURE
        assert "volumes" in result.detail

    def test_truncated_json(self):
        """测试被截断的 JSON 视为失败"""
        text = json.dumps(get_comic_data(), ensure_ascii=False)[:200]
        client = MockLLMClient(text)
        result = run(MetaGenerator(mock_routes(client)).generate_comic_script("少女与机器人"))
        assert result.success is False
        assert result.comic is None


class TestGenerateMetaDispatch:
    """测试按领域分发"""

    def test_comic_script_domain(self):
        client = MockLLMClient(json.dumps(get_comic_data(), ensure_ascii=False))
        result = run(generate_meta("comic-script", "少女与机器人", routes=mock_routes(client)))
        assert result.comic is not None

    def test_timeline_summary_domain_uses_records(self):
        client = MockLLMClient("简介")
        result = run(generate_meta("timeline-summary", "二战", routes=mock_routes(client),
                                   records=[TimelineEvent("1945", "日本投降")]))
        assert result.description == "简介"
        assert "日本投降" in client.prompts[0]

    def test_unknown_domain_is_generic(self):
        client = MockLLMClient(get_meta_mock_response())
        result = run(generate_meta("poem", "月亮", routes=mock_routes(client)))
        assert result.success is True
        assert "时间线" in client.prompts[0]
