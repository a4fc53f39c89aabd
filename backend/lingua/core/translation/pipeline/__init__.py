"""Translation pipeline components.

This module provides the core pipeline components for translation:
- ChunkPlanner: Cuts segments into token-budgeted batches
- PromptEngine: Renders batch and arbiter prompts
- ResponseParser: Parses engine payloads into index-aligned items
- InvariantSanitizer: Repairs punctuation, numerals and line structure
- QualityGate: Heuristic quality scoring
- EscalationOrchestrator: Review/repair and committee flows
- WorkerPool: Bounded concurrent batch processing
- ResultAssembler: Index-keyed merge of batch results
- TranslationPipeline: Orchestrates the complete flow
"""

from .assembler import ResultAssembler
from .chunk_planner import ChunkPlanner, estimate_tokens
from .escalation import EscalationOrchestrator
from .output_processor import ParsedResponse, ResponseParser, extract_tagged
from .pipeline import PipelineConfig, PipelineFactory, TranslationPipeline
from .prompt_engine import PromptEngine, render_injections
from .quality import QualityGate
from .sanitizer import InvariantSanitizer, split_sentences
from .worker_pool import PoolRun, WorkerPool

__all__ = [
    "ChunkPlanner",
    "estimate_tokens",
    "PromptEngine",
    "render_injections",
    "ResponseParser",
    "ParsedResponse",
    "extract_tagged",
    "InvariantSanitizer",
    "split_sentences",
    "QualityGate",
    "EscalationOrchestrator",
    "WorkerPool",
    "PoolRun",
    "ResultAssembler",
    "TranslationPipeline",
    "PipelineConfig",
    "PipelineFactory",
]
