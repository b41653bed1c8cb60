# Core Parsing Module

from .models import ArchiveEntry, ArchiveResult, ParsedData, Plan, VM
from .line_normalizer import SeenLines, LineNormalizer
from .entity_store import EntityStore
from .log_parser import LogParser, parse_log_file
from .yaml_converter import parse_plan_yaml, is_yaml_content
from .merge import merge_results
from .archive_processor import (
    ArchiveClassifier,
    ArchiveProcessor,
    EntryKind,
    classify_entry,
    process_archive_entries,
    parse_file_content,
)
from .utils import CancellationToken

__all__ = [
    "ArchiveEntry",
    "ArchiveResult",
    "ParsedData",
    "Plan",
    "VM",
    "SeenLines",
    "LineNormalizer",
    "EntityStore",
    "LogParser",
    "parse_log_file",
    "parse_plan_yaml",
    "is_yaml_content",
    "merge_results",
    "ArchiveClassifier",
    "ArchiveProcessor",
    "EntryKind",
    "classify_entry",
    "process_archive_entries",
    "parse_file_content",
    "CancellationToken",
]
