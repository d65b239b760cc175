"""Tools package: streaming analysis client, prompts, JSON recovery, and text utilities."""

from tools.ai_client import AnalysisEngine, AnalysisSession
from tools.llm_client import extract_analysis_result, parse_json_response
from tools.prompts import (
    DEFAULT_AUTO_ANALYSIS_PROMPT,
    DEFAULT_CHAPTER_PROMPT,
    get_auto_analysis_prompt,
)
from tools.text_utils import count_chinese_chars, sanitize_filename

__all__ = [
    "AnalysisEngine",
    "AnalysisSession",
    "extract_analysis_result",
    "parse_json_response",
    "DEFAULT_AUTO_ANALYSIS_PROMPT",
    "DEFAULT_CHAPTER_PROMPT",
    "get_auto_analysis_prompt",
    "count_chinese_chars",
    "sanitize_filename",
]
