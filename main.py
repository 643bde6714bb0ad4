# -*- coding: utf-8 -*-
"""结构化生成流水线 - 对外入口

GenerationPipeline 向 HTTP 路由层暴露三类操作：
1. generate_records：时间线 / 对联 / 漫画分镜的逐行记录生成
2. classify：为生成内容分配分类和标签（永不抛出异常）
3. generate_meta：时间线简介、对联元信息、完整漫画脚本

每次调用相互独立，不共享可变状态。同时提供命令行入口。
"""
import argparse
import asyncio
import json
import os
import sys
from typing import List, Optional, Dict, Any, AsyncIterator, Sequence
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()

from models import ClassificationResult, MetaResult, Panel
from model_adapter import (
    ModelRoute, GenerationOptions, AdapterError, MockLLMClient,
    resolve_adapter, default_routes, mock_routes, DEFAULT_MODEL
)
from prompt_composer import compose
from stream_aggregator import collect, iter_lines
from record_parser import parse_report, parse_line, normalize_domain, LINE_DOMAINS
from classifier import ClassificationEngine
from meta_generator import generate_meta as dispatch_meta


# 行式生成不限制 token 数，记录条数由模型决定
LINE_OPTIONS = GenerationOptions(temperature=0.7, max_tokens=None)


class UnknownDomainError(ValueError):
    """请求了不支持的行式领域"""


def _renumber_panels(records: List[Any]) -> List[Any]:
    """分镜记录按顺序重新编号为 1..n"""
    number = 0
    for record in records:
        if isinstance(record, Panel):
            number += 1
            record.panel_number = number
    return records


class GenerationPipeline:
    """结构化生成流水线 - prompt 组装 → 模型 → 流聚合 → 解析 / 分类"""

    def __init__(self, routes: Optional[Sequence[ModelRoute]] = None,
                 default_model: Optional[str] = None,
                 classify_timeout: Optional[float] = None):
        """
        Args:
            routes: 模型路由表，None 使用 create_model_routes() 的结果
            default_model: 调用方未指定模型时使用的模型标识
            classify_timeout: Tier 1 分类的超时时间（秒），None 读取 CLASSIFY_TIMEOUT
        """
        self.routes = list(routes) if routes is not None else create_model_routes()
        self.default_model = default_model or os.environ.get("LLM_MODEL", DEFAULT_MODEL)
        if classify_timeout is None:
            classify_timeout = float(os.environ.get("CLASSIFY_TIMEOUT", "30"))
        self.classifier = ClassificationEngine(routes=self.routes, timeout=classify_timeout)

    def _check_domain(self, domain: str) -> str:
        normalized = normalize_domain(domain)
        if normalized not in LINE_DOMAINS:
            raise UnknownDomainError(f"不支持的领域：{domain}")
        return normalized

    async def generate_records(self, domain: str, user_input: str, language: str = "zh",
                               model: Optional[str] = None) -> List[Any]:
        """生成并解析逐行记录；后端失败时返回空列表"""
        domain = self._check_domain(domain)
        adapter = resolve_adapter(model or self.default_model, self.routes)
        prompt = compose(domain, user_input, language)

        try:
            text = await collect(adapter.stream_generate(prompt, LINE_OPTIONS))
        except AdapterError as e:
            print(f"[WARN] {domain} 生成失败（{adapter.family}/{adapter.model}）：{e}")
            return []

        report = parse_report(domain, text)
        if report.dropped:
            print(f"[INFO] {domain} 解析完成：保留 {len(report.records)} 条，丢弃 {report.dropped} 行")

        if domain == "comic-panel":
            _renumber_panels(report.records)
        return report.records

    async def stream_records(self, domain: str, user_input: str, language: str = "zh",
                             model: Optional[str] = None) -> AsyncIterator[Any]:
        """边生成边解析，每得到一条记录就立即产出"""
        domain = self._check_domain(domain)
        adapter = resolve_adapter(model or self.default_model, self.routes)
        prompt = compose(domain, user_input, language)

        number = 0
        try:
            async for line in iter_lines(adapter.stream_generate(prompt, LINE_OPTIONS)):
                record = parse_line(domain, line)
                if record is None:
                    continue
                if isinstance(record, Panel):
                    number += 1
                    record.panel_number = number
                yield record
        except AdapterError as e:
            print(f"[WARN] {domain} 流式生成中断（{adapter.family}/{adapter.model}）：{e}")

    async def classify(self, user_input: str, records: Optional[Sequence[Any]] = None,
                       model: Optional[str] = None, language: str = "zh") -> ClassificationResult:
        """分类和标签，永不抛出异常"""
        return await self.classifier.classify(user_input, records,
                                              model=model or self.default_model,
                                              language=language)

    async def generate_meta(self, domain: str, user_input: str, language: str = "zh",
                            model: Optional[str] = None,
                            records: Optional[Sequence[Any]] = None) -> MetaResult:
        """元信息 / 简介 / 漫画脚本；只有漫画脚本会报告结构失败"""
        return await dispatch_meta(domain, user_input, language,
                                   model=model or self.default_model,
                                   routes=self.routes, records=records)


def create_model_routes() -> List[ModelRoute]:
    """根据环境变量创建模型路由表"""
    if not (os.environ.get("DEEPSEEK_API_KEY") or os.environ.get("GROQ_API_KEY")):
        print("⚠️  未检测到 DEEPSEEK_API_KEY / GROQ_API_KEY，将使用 Mock 客户端进行测试")
        return mock_routes(MockLLMClient("", keep_history=False))
    return default_routes()


def _to_dict(item: Any) -> Any:
    return item.to_dict() if hasattr(item, "to_dict") else item


async def run(args: argparse.Namespace) -> Dict[str, Any]:
    """执行一次命令行请求"""
    pipeline = GenerationPipeline(default_model=args.model)

    if args.meta:
        meta = await pipeline.generate_meta(args.domain, args.prompt, args.language)
        return meta.to_dict()

    records = await pipeline.generate_records(args.domain, args.prompt, args.language)
    result: Dict[str, Any] = {
        "domain": normalize_domain(args.domain),
        "count": len(records),
        "records": [_to_dict(r) for r in records]
    }
    if args.classify:
        classification = await pipeline.classify(args.prompt, records, language=args.language)
        result["classification"] = classification.to_dict()
    return result


def main():
    """主函数 - 命令行入口"""
    parser = argparse.ArgumentParser(
        description="结构化生成流水线 - 时间线、对联、漫画脚本生成",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  # 生成时间线并分类
  python main.py --domain timeline --prompt "第二次世界大战" --classify

  # 生成对联
  python main.py --domain couplet --prompt "新春佳节" --output couplets.json

  # 生成完整漫画脚本
  python main.py --domain comic-script --meta --prompt "少女与机器人的冒险"
        """
    )

    parser.add_argument("--domain", "-d", type=str, required=True,
                        help="领域：timeline / couplet / comic-panel；配合 --meta 时为 "
                             "generic-meta / couplet-meta / timeline-summary / comic-script")
    parser.add_argument("--prompt", "-p", type=str, required=True, help="用户输入")
    parser.add_argument("--language", "-l", type=str, default="zh", help="输出语言（默认 zh）")
    parser.add_argument("--model", "-m", type=str, default=None, help="模型标识（默认 deepseek-chat）")
    parser.add_argument("--meta", action="store_true", help="生成元信息而不是逐行记录")
    parser.add_argument("--classify", action="store_true", help="为生成的记录分类")
    parser.add_argument("--output", "-o", type=str, default=None, help="输出文件路径（.json 格式）")

    args = parser.parse_args()

    try:
        result = asyncio.run(run(args))
    except UnknownDomainError as e:
        print(f"[ERROR] {e}")
        sys.exit(1)

    output = json.dumps(result, ensure_ascii=False, indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output)
        print(f"[SAVE] 结果已保存到：{args.output}")
    else:
        print(output)

    if args.meta and not result.get("success", True):
        sys.exit(2)


if __name__ == "__main__":
    main()
