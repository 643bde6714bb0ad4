# -*- coding: utf-8 -*-
"""流式响应聚合

collect() 把模型返回的文本片段按到达顺序拼接成完整文本；
iter_lines() 是增量版本，每收到一个完整的行就立即产出，
供 NDJSON 流式接口边生成边解析。两者都不设超时，由调用方负责。
"""
from typing import AsyncIterable, AsyncIterator, List


async def collect(fragments: AsyncIterable[str]) -> str:
    """迭代片段直到结束，返回拼接后的完整文本"""
    parts: List[str] = []
    async for fragment in fragments:
        if fragment:
            parts.append(fragment)
    return "".join(parts)


async def iter_lines(fragments: AsyncIterable[str]) -> AsyncIterator[str]:
    """按行产出去除首尾空白后的非空行，最后产出末尾没有换行的残余内容"""
    buffer = ""
    async for fragment in fragments:
        if not fragment:
            continue
        buffer += fragment
        newline_index = buffer.find("\n")
        while newline_index != -1:
            line = buffer[:newline_index].strip()
            if line:
                yield line
            buffer = buffer[newline_index + 1:]
            newline_index = buffer.find("\n")

    tail = buffer.strip()
    if tail:
        yield tail
