# -*- coding: utf-8 -*-
"""
成本统计 (Cost Accounting)
- 只统计“完成”的调用；失败的调用不计数
- 计数只增不减，生命周期与项目会话相同
"""
from typing import Optional

from pydantic import Field

from schemas.shot import StudioModel

IMAGEN_COST_PER_IMAGE = 0.03
GEMINI_FLASH_INPUT_COST_PER_MILLION_TOKENS = 0.075
GEMINI_FLASH_OUTPUT_COST_PER_MILLION_TOKENS = 0.30
GEMINI_PRO_INPUT_COST_PER_MILLION_TOKENS = 3.50
GEMINI_PRO_OUTPUT_COST_PER_MILLION_TOKENS = 10.50


class TokenTally(StudioModel):
    input: int = 0
    output: int = 0


class ApiCallSummary(StudioModel):
    pro: int = 0
    flash: int = 0
    image: int = 0
    pro_tokens: TokenTally = Field(default_factory=TokenTally)
    flash_tokens: TokenTally = Field(default_factory=TokenTally)

    def record(self, tier: Optional[str], input_tokens: int = 0, output_tokens: int = 0) -> None:
        """记一次已完成的调用；tier 为 None / "video" 时没有对应计数器。"""
        if tier == "pro":
            self.pro += 1
            self.pro_tokens.input += max(input_tokens, 0)
            self.pro_tokens.output += max(output_tokens, 0)
        elif tier == "flash":
            self.flash += 1
            self.flash_tokens.input += max(input_tokens, 0)
            self.flash_tokens.output += max(output_tokens, 0)
        elif tier == "image":
            self.image += 1


def estimate_cost(summary: ApiCallSummary) -> float:
    per_million = 1_000_000
    pro = (
        summary.pro_tokens.input * GEMINI_PRO_INPUT_COST_PER_MILLION_TOKENS
        + summary.pro_tokens.output * GEMINI_PRO_OUTPUT_COST_PER_MILLION_TOKENS
    ) / per_million
    flash = (
        summary.flash_tokens.input * GEMINI_FLASH_INPUT_COST_PER_MILLION_TOKENS
        + summary.flash_tokens.output * GEMINI_FLASH_OUTPUT_COST_PER_MILLION_TOKENS
    ) / per_million
    return round(pro + flash + summary.image * IMAGEN_COST_PER_IMAGE, 6)
