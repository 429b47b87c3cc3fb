"""
LLM Classification Module

Gemini is consulted only when a medication is not listed in the knowledge
base. It proposes a drug class; the knowledge base decides what that class
means clinically.
"""
from .gemini_client import GeminiClient, GeminiConfig, GeminiResponse
from .drug_class_oracle import (
    DrugClassOracle,
    GeminiDrugClassOracle,
    OracleAnswer,
    build_prompt,
    parse_answer,
)

__all__ = [
    "GeminiClient",
    "GeminiConfig",
    "GeminiResponse",
    "DrugClassOracle",
    "GeminiDrugClassOracle",
    "OracleAnswer",
    "build_prompt",
    "parse_answer",
]
