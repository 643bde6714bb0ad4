# -*- coding: utf-8 -*-
"""容错记录解析的测试

覆盖 JSON-lines 与 @ 分隔两种协议、超长行保护、丢弃统计以及行间独立性。
"""
import json
import pytest

from models import TimelineEvent, CoupletDraft, Panel
from record_parser import (
    parse_records, parse_report, parse_line, normalize_domain,
    extract_fields, TIMELINE_FIELDS, MAX_LINE_LENGTH
)


# ==================== 测试数据 ====================

def get_mixed_timeline_output():
    """模型输出混用两种协议，并夹杂无关文本"""
    return "\n".join([
        '{"startDate": "1939-09-01", "endDate": "1945-09-02", "description": "第二次世界大战"}',
        "以下是时间线：",
        "@1941-12-07@珍珠港事件",
        '{"date": "1944-06-06", "desc": "诺曼底登陆"}',
        "",
        "@1945-05-08~1945-05-09@欧洲胜利日",
    ])


class TestTimelineParsing:
    """测试时间线解析"""

    def test_mixed_protocols(self):
        """测试两种协议混合时按原始行序输出"""
        records = parse_records("timeline", get_mixed_timeline_output())

        assert [r.start_date for r in records] == ["1939-09-01", "1941-12-07", "1944-06-06", "1945-05-08"]
        assert records[0].end_date == "1945-09-02"
        assert records[1].end_date is None
        assert records[2].description == "诺曼底登陆"
        assert records[3].end_date == "1945-05-09"
        assert all(isinstance(r, TimelineEvent) for r in records)

    def test_json_missing_required_without_legacy_is_dropped(self):
        """测试 JSON 缺少必填字段且没有 @ 记录时不产生记录"""
        assert parse_line("timeline", '{"startDate": "1949"}') is None
        assert parse_line("timeline", '{"description": "没有日期"}') is None

    def test_empty_required_field_recovered_from_same_line(self):
        """测试 JSON 必填字段为空时，同一行中的 @ 记录仍被解析"""
        record = parse_line("timeline", '{"startDate": "", "description": "@1990@柏林墙倒塌"}')
        assert record == TimelineEvent("1990", "柏林墙倒塌")

        record = parse_line("timeline", '{"startDate": "  ", "desc": "x"} @1991@苏联解体')
        assert record.start_date == "1991"

    def test_null_values_are_empty(self):
        """测试 null 被视为空值"""
        record = parse_line("timeline", '{"startDate": "1912", "endDate": null, "description": "民国成立"}')
        assert record.end_date is None

    def test_non_object_json_uses_legacy(self):
        """测试 JSON 数组或字符串不会当作记录"""
        assert parse_line("timeline", '["1912", "民国成立"]') is None
        assert parse_line("timeline", '"@1912@民国成立"') is not None

    def test_surrounding_whitespace(self):
        """测试字段首尾空白被去除"""
        record = parse_line("timeline", "   @ 1969 @ 阿波罗登月  ")
        assert record.start_date == "1969"
        assert record.description == "阿波罗登月"


class TestCoupletParsing:
    """测试对联解析"""

    def test_json_couplet(self):
        """测试 JSON 对联"""
        line = json.dumps({
            "upperLine": "春风送暖千家福",
            "lowerLine": "瑞雪迎春万户欢",
            "horizontalScroll": "春满人间",
            "appreciation": "对仗工整"
        }, ensure_ascii=False)
        record = parse_line("couplet", line)
        assert record == CoupletDraft("春风送暖千家福", "瑞雪迎春万户欢", "春满人间", "对仗工整")

    def test_json_couplet_synonyms(self):
        """测试旧字段名映射：title/description/startDate"""
        line = '{"title": "天增岁月人增寿", "description": "春满乾坤福满门", "startDate": "四季长春"}'
        record = parse_line("couplet", line)
        assert record.upper_line == "天增岁月人增寿"
        assert record.lower_line == "春满乾坤福满门"
        assert record.horizontal_scroll == "四季长春"

    def test_missing_horizontal_scroll_placeholder(self):
        """测试缺少横批时使用占位符"""
        record = parse_line("couplet", '{"upperLine": "上联", "lowerLine": "下联"}')
        assert record.horizontal_scroll == "横批"

    def test_legacy_three_segments(self):
        """测试 @横批@上联@下联"""
        record = parse_line("couplet", "@国泰民安@风调雨顺年年好@国泰民安步步高")
        assert record.horizontal_scroll == "国泰民安"
        assert record.upper_line == "风调雨顺年年好"
        assert record.lower_line == "国泰民安步步高"

    def test_legacy_two_segments(self):
        """测试 @横批@下联 时上联为空"""
        record = parse_line("couplet", "@吉星高照@万事如意")
        assert record.upper_line == ""
        assert record.lower_line == "万事如意"

    def test_couplet_scenario(self):
        """测试一条 JSON 对联和一行闲聊：只保留对联，丢弃 1 行"""
        text = ('{"upperLine": "门迎春夏秋冬福", "lowerLine": "户纳东西南北财", "horizontalScroll": "福满门"}\n'
                "希望您喜欢这副对联！")
        report = parse_report("couplet", text)
        assert len(report.records) == 1
        assert report.dropped == 1
        assert report.total_lines == 2


class TestPanelParsing:
    """测试分镜解析"""

    def test_json_panel(self):
        """测试 JSON 分镜及默认值"""
        record = parse_line("comic-panel", '{"panelNumber": 3, "sceneDescription": "主角推开大门"}')
        assert isinstance(record, Panel)
        assert record.panel_number == 3
        assert record.emotion == "平静"
        assert record.camera_angle == "正面视角"

    def test_legacy_panel(self):
        """测试 @画面@对话@旁白"""
        record = parse_line("comic-panel", "@城市夜景@你终于来了@雨一直在下")
        assert record.scene_description == "城市夜景"
        assert record.dialogue == "你终于来了"
        assert record.narration == "雨一直在下"

    def test_characters_list_joined(self):
        """测试角色列表被拼接为字符串"""
        record = parse_line("comic-panel", '{"scene": "对峙", "characters": ["小明", "小红"]}')
        assert record.characters == "小明、小红"

    def test_domain_alias(self):
        """测试领域别名"""
        assert normalize_domain("Comic") == "comic-panel"
        assert parse_line("panel", "@海边日落") is not None

    def test_inline_at_is_not_panel(self):
        """测试行中间出现 @ 的普通文字不会被当作分镜"""
        assert parse_line("comic-panel", "请关注我们的微博@漫画社") is None
        assert parse_line("comic-panel", "  @街角咖啡馆@欢迎光临").dialogue == "欢迎光临"


class TestParserGuarantees:
    """测试解析器的整体保证"""

    def test_length_guard(self):
        """测试超过 20000 字符的行被丢弃，恰好 20000 的行保留"""
        prefix = "@2000@"
        at_limit = prefix + "事" * (MAX_LINE_LENGTH - len(prefix))
        over_limit = at_limit + "事"
        assert len(at_limit) == MAX_LINE_LENGTH

        assert parse_line("timeline", at_limit) is not None
        assert parse_line("timeline", over_limit) is None

    def test_empty_text(self):
        """测试空文本返回空列表"""
        assert parse_records("timeline", "") == []
        assert parse_records("timeline", "\n\n  \n") == []

    def test_unknown_domain(self):
        """测试未知领域所有行都被丢弃"""
        report = parse_report("poem", "@1@2\n@3@4")
        assert report.records == []
        assert report.dropped == 2

    def test_idempotent(self):
        """测试相同输入得到相同输出"""
        text = get_mixed_timeline_output()
        assert parse_records("timeline", text) == parse_records("timeline", text)

    def test_line_independence(self):
        """测试插入损坏的行不影响其他记录"""
        text = get_mixed_timeline_output()
        noisy = text.replace("以下是时间线：", '{"startDate": "broken' + "\n" + "{{{{")
        assert parse_records("timeline", noisy) == parse_records("timeline", text)

    def test_deeply_nested_json_does_not_raise(self):
        """测试极深嵌套的 JSON 不会抛出异常"""
        line = "[" * 5000 + "]" * 5000
        assert parse_line("timeline", line) is None

    def test_extract_fields_first_non_empty(self):
        """测试同义字段按顺序取第一个非空值"""
        fields = extract_fields({"startDate": "", "date": "1911", "description": "辛亥革命"}, TIMELINE_FIELDS)
        assert fields["start_date"] == "1911"
