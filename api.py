# -*- coding: utf-8 -*-
"""
结构化生成流水线 - FastAPI Web 接口层

本模块提供基于 FastAPI 的 RESTful API 接口，支持：
1. 时间线 / 对联 / 漫画分镜的逐行记录生成（一次性返回或 NDJSON 流式返回）
2. 内容分类和标签
3. 元信息、时间线简介和完整漫画脚本生成
4. CORS 跨域支持

核心设计：
- 所有端点共享同一个 GenerationPipeline，请求之间不共享可变状态
- 模型失败时返回降级结果，只有非法领域和漫画结构失败会返回错误状态码
"""
import json
from datetime import datetime
from typing import Dict, List, Optional, Any

from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from main import GenerationPipeline, UnknownDomainError
from meta_generator import META_DOMAINS, COMIC_FAILURE


# ==================== 数据模型 ====================

class GenerateRequest(BaseModel):
    """逐行记录生成请求"""
    prompt: str = Field(..., min_length=1, description="用户输入的主题或提示词")
    language: str = Field(default="zh", description="输出语言代码，如 zh / en / ja")
    model: Optional[str] = Field(default=None, description="模型标识，未指定时使用默认模型")


class RecordsResponse(BaseModel):
    """逐行记录生成响应"""
    records: List[Dict[str, Any]] = Field(..., description="解析后的记录列表")
    count: int = Field(..., description="记录条数")


class ClassifyRequest(BaseModel):
    """分类请求"""
    prompt: str = Field(..., description="用户输入的主题或提示词")
    records: List[Dict[str, Any]] = Field(default_factory=list, description="已生成的记录")
    language: str = Field(default="zh", description="输出语言代码")
    model: Optional[str] = Field(default=None, description="模型标识")


class MetaRequest(BaseModel):
    """元信息生成请求"""
    prompt: str = Field(..., min_length=1, description="用户输入的主题或提示词")
    language: str = Field(default="zh", description="输出语言代码")
    model: Optional[str] = Field(default=None, description="模型标识")
    records: List[Dict[str, Any]] = Field(default_factory=list, description="时间线简介所需的事件")


class ErrorResponse(BaseModel):
    """错误响应模型"""
    detail: str = Field(..., description="错误详情")


# ==================== FastAPI 应用 ====================

app = FastAPI(
    title="Structured Generation API",
    description="结构化生成流水线 - 时间线、对联、漫画脚本生成与分类",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# 配置 CORS 中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 允许所有来源跨域
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== 工具函数 ====================

_pipeline: Optional[GenerationPipeline] = None


def get_pipeline() -> GenerationPipeline:
    """获取共享的 GenerationPipeline 实例（首次调用时创建）"""
    global _pipeline
    if _pipeline is None:
        _pipeline = GenerationPipeline()
    return _pipeline


def _record_dict(record: Any) -> Dict[str, Any]:
    return record.to_dict() if hasattr(record, "to_dict") else dict(record)


# ==================== API 端点 ====================

@app.get("/", response_model=Dict[str, str])
async def root():
    """API 根路径"""
    return {
        "service": "Structured Generation API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


@app.get("/api/v1/health")
async def health_check():
    """健康检查端点"""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat()
    }


@app.post(
    "/api/v1/records/{domain}",
    response_model=RecordsResponse,
    responses={400: {"model": ErrorResponse, "description": "不支持的领域"}}
)
async def generate_records(domain: str, request: GenerateRequest,
                           pipeline: GenerationPipeline = Depends(get_pipeline)):
    """
    生成逐行记录

    domain 取值：timeline / couplet / comic-panel。模型失败时返回空列表。
    """
    try:
        records = await pipeline.generate_records(domain, request.prompt,
                                                  request.language, request.model)
    except UnknownDomainError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"records": [_record_dict(r) for r in records], "count": len(records)}


@app.post(
    "/api/v1/records/{domain}/stream",
    responses={400: {"model": ErrorResponse, "description": "不支持的领域"}}
)
async def stream_records(domain: str, request: GenerateRequest,
                         pipeline: GenerationPipeline = Depends(get_pipeline)):
    """边生成边返回记录，每行一个 JSON 对象（application/x-ndjson）"""
    try:
        records = pipeline.stream_records(domain, request.prompt,
                                          request.language, request.model)
        # 第一次迭代前就完成领域校验
        first = await records.__anext__()
    except UnknownDomainError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StopAsyncIteration:
        first = None

    async def body():
        if first is None:
            return
        yield json.dumps(_record_dict(first), ensure_ascii=False) + "\n"
        async for record in records:
            yield json.dumps(_record_dict(record), ensure_ascii=False) + "\n"

    return StreamingResponse(body(), media_type="application/x-ndjson")


@app.post("/api/v1/classify")
async def classify(request: ClassifyRequest,
                   pipeline: GenerationPipeline = Depends(get_pipeline)):
    """为提示词和已生成记录分配分类和标签，始终返回 200"""
    result = await pipeline.classify(request.prompt, request.records,
                                     request.model, request.language)
    return result.to_dict()


@app.post(
    "/api/v1/meta/{domain}",
    responses={422: {"model": ErrorResponse, "description": "漫画脚本结构校验失败"}}
)
async def generate_meta(domain: str, request: MetaRequest,
                        pipeline: GenerationPipeline = Depends(get_pipeline)):
    """
    生成元信息

    domain 取值：generic-meta / couplet-meta / timeline-summary / comic-script。
    漫画脚本生成失败时返回 422，其余领域失败时返回带 error 字段的降级结果。
    """
    result = await pipeline.generate_meta(domain, request.prompt, request.language,
                                          request.model, request.records)

    if not result.success and META_DOMAINS.get(domain.strip().lower()) == "comic":
        raise HTTPException(status_code=422, detail=f"{COMIC_FAILURE}: {result.detail}")

    return result.to_dict()


# ==================== 启动配置 ====================

if __name__ == "__main__":
    import uvicorn

    # 生产环境建议使用：uvicorn api:app --host 0.0.0.0 --port 8000 --workers 4
    uvicorn.run(
        "api:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
