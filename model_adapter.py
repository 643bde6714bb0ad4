# -*- coding: utf-8 -*-
"""模型适配层

把请求的模型标识映射到某个后端家族（Groq / DeepSeek），并暴露统一的
"根据 prompt 流式生成文本" 接口。两个家族都通过 OpenAI 兼容接口访问。
路由表是注入的配置（ModelRoute 列表），便于测试时替换为 Mock 客户端。
"""
import os
import random
import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, AsyncIterator, Callable, Sequence, Tuple


class AdapterError(Exception):
    """模型后端调用失败（网络错误、限流、服务端错误等）"""

    def __init__(self, message: str, family: Optional[str] = None,
                 model: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.family = family
        self.model = model
        self.cause = cause


@dataclass
class GenerationOptions:
    """透传给后端的生成参数；max_tokens 为 None 表示不设上限"""
    temperature: float = 0.7
    max_tokens: Optional[int] = None


# ==================== LLM 客户端 ====================

class LLMClient:
    """LLM 客户端基类 - 可继承实现不同平台的调用"""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key or os.environ.get("LLM_API_KEY", "")
        self.base_url = base_url or os.environ.get("LLM_BASE_URL", "")

    def stream_generate(self, prompt: str,
                        options: Optional[GenerationOptions] = None) -> AsyncIterator[str]:
        """流式生成文本片段"""
        raise NotImplementedError("子类必须实现 stream_generate 方法")


class MockLLMClient(LLMClient):
    """Mock LLM 客户端 - 用于测试时无需真实 API 调用

    把预设响应切成若干片段依次返回；设置 error 时在首个片段前抛出。
    keep_history=False 时不记录 prompt 和参数（长期运行的无密钥服务使用）。
    """

    def __init__(self, mock_response: str = "", chunk_size: int = 16,
                 error: Optional[BaseException] = None, keep_history: bool = True):
        super().__init__()
        self.mock_response = mock_response
        self.chunk_size = max(1, chunk_size)
        self.error = error
        self.keep_history = keep_history
        self.prompts: List[str] = []
        self.options: List[GenerationOptions] = []

    async def stream_generate(self, prompt: str,
                              options: Optional[GenerationOptions] = None) -> AsyncIterator[str]:
        if self.keep_history:
            self.prompts.append(prompt)
            self.options.append(options or GenerationOptions())
        if self.error is not None:
            raise self.error
        text = self.mock_response
        for i in range(0, len(text), self.chunk_size):
            await asyncio.sleep(0)
            yield text[i:i + self.chunk_size]


class OpenAICompatibleClient(LLMClient):
    """OpenAI 兼容 API 客户端 - 流式输出，首个请求带自动重试"""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 model: str = "deepseek-chat", family: str = "deepseek",
                 max_retries: int = 3, retry_delay: float = 1.0):
        """
        Args:
            api_key: API 密钥
            base_url: API 基础 URL
            model: 模型名称
            family: 后端家族名称，用于错误信息
            max_retries: 最大重试次数
            retry_delay: 基础重试延迟（秒），实际延迟按指数退避计算
        """
        super().__init__(api_key, base_url)
        self.model = model
        self.family = family
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _create_client(self):
        """创建 AsyncOpenAI 客户端，每次生成独占一个，结束后关闭"""
        from openai import AsyncOpenAI, OpenAIError

        try:
            return AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url if self.base_url else None
            )
        except OpenAIError as e:
            # 未配置 API 密钥
            raise AdapterError(f"{self.family} 客户端初始化失败: {e}",
                               family=self.family, model=self.model, cause=e) from e

    async def _open_stream(self, client, prompt: str, options: GenerationOptions):
        """发起请求并返回流对象

        Retries:
            - HTTP 429 / 5xx: 重试
            - Connection Error: 重试
            - HTTP 4xx: 不重试
        """
        from openai import APIStatusError, APIConnectionError, OpenAIError

        request_kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.temperature,
            "stream": True
        }
        if options.max_tokens is not None:
            request_kwargs["max_tokens"] = options.max_tokens

        for attempt in range(self.max_retries + 1):
            try:
                return await client.chat.completions.create(**request_kwargs)

            except APIStatusError as e:
                status_code = e.status_code
                retryable = status_code == 429 or 500 <= status_code < 600
                if retryable and attempt < self.max_retries:
                    delay = self.retry_delay * (2 ** attempt) + random.uniform(0, 1)
                    print(f"[RETRY] {self.family} API 错误 ({status_code})，{delay:.1f}秒后重试... "
                          f"(尝试 {attempt + 1}/{self.max_retries})")
                    await asyncio.sleep(delay)
                    continue
                raise AdapterError(f"{self.family} API 错误 ({status_code}): {e}",
                                   family=self.family, model=self.model, cause=e) from e

            except APIConnectionError as e:
                if attempt < self.max_retries:
                    delay = self.retry_delay * (2 ** attempt) + random.uniform(0, 1)
                    print(f"[RETRY] {self.family} 连接错误，{delay:.1f}秒后重试... "
                          f"(尝试 {attempt + 1}/{self.max_retries})")
                    await asyncio.sleep(delay)
                    continue
                raise AdapterError(f"{self.family} 连接错误: {e}",
                                   family=self.family, model=self.model, cause=e) from e

            except OpenAIError as e:
                raise AdapterError(f"{self.family} 调用失败 ({type(e).__name__}): {e}",
                                   family=self.family, model=self.model, cause=e) from e

        raise AdapterError("重试循环异常退出", family=self.family, model=self.model)

    async def stream_generate(self, prompt: str,
                              options: Optional[GenerationOptions] = None) -> AsyncIterator[str]:
        from openai import OpenAIError

        options = options or GenerationOptions()
        client = self._create_client()
        # 正常结束、出错、超时取消或调用方提前停止时都关闭流和连接池
        try:
            stream = await self._open_stream(client, prompt, options)
            try:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    content = chunk.choices[0].delta.content
                    if content:
                        yield content
            except OpenAIError as e:
                raise AdapterError(f"{self.family} 流式响应中断: {e}",
                                   family=self.family, model=self.model, cause=e) from e
            finally:
                await stream.close()
        finally:
            await client.close()


# ==================== 路由配置 ====================

GROQ_MODELS: Tuple[str, ...] = (
    "llama3-70b-8192",
    "llama3-8b-8192",
    "mixtral-8x7b-32768",
    "gemma-7b-it",
)

DEEPSEEK_MODELS: Tuple[str, ...] = (
    "deepseek-chat",
    "deepseek-reasoner",
)

DEFAULT_MODEL = "deepseek-chat"
DEFAULT_FAMILY = "deepseek"


@dataclass(frozen=True)
class ModelRoute:
    """一条路由：已知模型标识列表 → 后端家族及其客户端工厂"""
    family: str
    model_ids: Tuple[str, ...]
    client_factory: Callable[[str], LLMClient]

    def matches(self, model_id: str) -> bool:
        return model_id in self.model_ids


@dataclass
class AdapterHandle:
    """resolve_adapter 的结果：选定的家族、模型和客户端"""
    family: str
    model: str
    client: LLMClient = field(repr=False)

    def stream_generate(self, prompt: str,
                        options: Optional[GenerationOptions] = None) -> AsyncIterator[str]:
        return self.client.stream_generate(prompt, options)


def _openai_factory(family: str, key_env: str, url_env: str, default_url: str) -> Callable[[str], LLMClient]:
    def factory(model: str) -> LLMClient:
        return OpenAICompatibleClient(
            api_key=os.environ.get(key_env, ""),
            base_url=os.environ.get(url_env, default_url),
            model=model,
            family=family,
            max_retries=int(os.environ.get("LLM_MAX_RETRIES", "3"))
        )
    return factory


def default_routes() -> List[ModelRoute]:
    """默认路由：先匹配 Groq，再匹配 DeepSeek"""
    return [
        ModelRoute("groq", GROQ_MODELS,
                   _openai_factory("groq", "GROQ_API_KEY", "GROQ_BASE_URL",
                                   "https://api.groq.com/openai/v1")),
        ModelRoute("deepseek", DEEPSEEK_MODELS,
                   _openai_factory("deepseek", "DEEPSEEK_API_KEY", "DEEPSEEK_BASE_URL",
                                   "https://api.deepseek.com")),
    ]


def resolve_adapter(model_id: Optional[str],
                    routes: Optional[Sequence[ModelRoute]] = None,
                    default_model: str = DEFAULT_MODEL,
                    default_family: str = DEFAULT_FAMILY) -> AdapterHandle:
    """按优先级匹配路由；未知标识回退到默认模型，永不报错"""
    routes = list(routes) if routes is not None else default_routes()
    model_id = (model_id or "").strip()

    for route in routes:
        if model_id and route.matches(model_id):
            return AdapterHandle(route.family, model_id, route.client_factory(model_id))

    for route in routes:
        if route.family == default_family:
            return AdapterHandle(route.family, default_model, route.client_factory(default_model))

    # 路由表里没有默认家族时退回到第一条路由
    if routes:
        first = routes[0]
        return AdapterHandle(first.family, default_model, first.client_factory(default_model))
    return AdapterHandle(default_family, default_model,
                         _openai_factory(DEFAULT_FAMILY, "DEEPSEEK_API_KEY", "DEEPSEEK_BASE_URL",
                                         "https://api.deepseek.com")(default_model))


def mock_routes(client: LLMClient) -> List[ModelRoute]:
    """所有家族都指向同一个客户端的路由表（测试和无密钥运行使用）"""
    return [
        ModelRoute("groq", GROQ_MODELS, lambda model: client),
        ModelRoute("deepseek", DEEPSEEK_MODELS, lambda model: client),
    ]
