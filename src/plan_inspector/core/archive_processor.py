"""
Content-based classification and dispatch of extracted archive members.

Members are sorted into controller logs, platform YAML resources and
conversion-tool logs by looking at their first bytes, then parsed with the
matching pipeline and merged into one result.
"""

import re
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from functools import reduce
from typing import Any, Callable, Dict, List, Optional

from .constants import TOOL_LOG_PATH_RE, YAML_KIND_RE_TEMPLATE
from .log_parser import parse_log_file
from .merge import merge_results
from .models import ArchiveEntry, ArchiveResult, ParsedData, ToolLogFile
from .utils import CancellationToken, check_cancelled
from .yaml_converter import is_yaml_content, parse_plan_yaml
from ..utils.config import config
from ..utils.exceptions import ParseCancelledError
from ..utils.logger import get_logger

logger = get_logger("archive")

ToolLogParser = Callable[[str], Any]

YAML_SEPARATOR = "\n---\n"


class EntryKind(Enum):
    CONTROLLER_LOG = "controller_log"
    YAML_RESOURCE = "yaml_resource"
    TOOL_LOG = "tool_log"
    UNCLASSIFIED = "unclassified"


class ArchiveClassifier:
    """Classifies members from the ``classifier`` configuration section."""

    def __init__(self, settings: Optional[Dict[str, Any]] = None):
        settings = settings if settings is not None else config.get_classifier_config()
        self.check_bytes = int(settings.get("check_bytes", 8192))
        self.log_signatures = list(settings.get("log_signatures", []))
        self.log_path_hints = [h.lower() for h in settings.get("log_path_hints", [])]
        self.api_group = settings.get("api_group", "forklift.konveyor.io")
        self.tool_log_signatures = list(settings.get("tool_log_signatures", []))
        self.tool_log_path_hints = [h.lower() for h in settings.get("tool_log_path_hints", [])]
        self.kind_patterns = [
            re.compile(YAML_KIND_RE_TEMPLATE.format(kind=re.escape(kind)))
            for kind in settings.get("yaml_kinds", ["Plan", "NetworkMap", "StorageMap"])
        ]

    def sample(self, entry: ArchiveEntry) -> str:
        return entry.content[:self.check_bytes]

    def is_controller_log(self, entry: ArchiveEntry, sample: str) -> bool:
        if any(signature in sample for signature in self.log_signatures):
            return True
        path = entry.path.lower()
        if any(hint in path for hint in self.log_path_hints):
            first_line = sample.lstrip().split("\n", 1)[0].strip()
            return first_line.startswith("{")
        return False

    def is_yaml_resource(self, sample: str) -> bool:
        if self.api_group not in sample:
            return False
        return any(pattern.search(sample) for pattern in self.kind_patterns)

    def is_tool_log(self, entry: ArchiveEntry, sample: str) -> bool:
        if any(signature in sample for signature in self.tool_log_signatures):
            return True
        path = entry.path.lower()
        if any(hint in path for hint in self.tool_log_path_hints):
            return True
        return bool(TOOL_LOG_PATH_RE.search(entry.path)) and path.endswith(".log")

    def classify(self, entry: ArchiveEntry) -> EntryKind:
        sample = self.sample(entry)
        if self.is_controller_log(entry, sample):
            return EntryKind.CONTROLLER_LOG
        if self.is_yaml_resource(sample):
            return EntryKind.YAML_RESOURCE
        if self.is_tool_log(entry, sample):
            return EntryKind.TOOL_LOG
        return EntryKind.UNCLASSIFIED


def classify_entry(entry: ArchiveEntry, settings: Optional[Dict[str, Any]] = None) -> EntryKind:
    return ArchiveClassifier(settings).classify(entry)


def tool_log_identity(path: str):
    """(plan name, VM id) parsed from a conversion pod path, or (None, None)."""
    match = TOOL_LOG_PATH_RE.search(path)
    if match is None:
        return None, None
    return match.group(1), match.group(2)


class ArchiveProcessor:
    """
    Fans classified members out to the parsers and merges the results.

    Args:
        tool_log_parser: Callable applied to each tool-log member's text;
            when None the member is listed but carries no parsed data
        max_workers: Thread pool size for controller logs; 1 parses inline
        classifier_settings: Overrides the ``classifier`` configuration
        parser_settings: Overrides the ``parser`` configuration
    """

    def __init__(
        self,
        tool_log_parser: Optional[ToolLogParser] = None,
        max_workers: Optional[int] = None,
        classifier_settings: Optional[Dict[str, Any]] = None,
        parser_settings: Optional[Dict[str, Any]] = None,
    ):
        if max_workers is None:
            max_workers = config.get_archive_config().get("max_workers", 1)
        self.max_workers = max(1, int(max_workers))
        self.tool_log_parser = tool_log_parser
        self.classifier = ArchiveClassifier(classifier_settings)
        self.parser_settings = parser_settings

    def process(self, entries: List[ArchiveEntry],
                cancel_token: Optional[CancellationToken] = None) -> ArchiveResult:
        """Classify, parse and merge; never raises."""
        try:
            return self._process(entries, cancel_token)
        except ParseCancelledError:
            logger.warning("Archive processing cancelled")
            return ArchiveResult.empty(cancelled=True)
        except Exception as e:
            logger.error(f"Archive processing failed: {e}")
            return ArchiveResult.empty()

    def _process(self, entries: List[ArchiveEntry],
                 cancel_token: Optional[CancellationToken]) -> ArchiveResult:
        buckets: Dict[EntryKind, List[ArchiveEntry]] = {kind: [] for kind in EntryKind}
        for entry in sorted(entries, key=lambda e: e.path):
            check_cancelled(cancel_token)
            buckets[self.classifier.classify(entry)].append(entry)

        logs = buckets[EntryKind.CONTROLLER_LOG]
        yamls = buckets[EntryKind.YAML_RESOURCE]
        tool_logs = buckets[EntryKind.TOOL_LOG]
        logger.info(
            f"Classified {len(entries)} files: {len(logs)} controller logs, "
            f"{len(yamls)} YAML resources, {len(tool_logs)} tool logs, "
            f"{len(buckets[EntryKind.UNCLASSIFIED])} skipped"
        )

        log_result = self._parse_logs(logs, cancel_token) if logs else None
        yaml_result = self._parse_yamls(yamls) if yamls else None
        tool_entries = [self._parse_tool_log(entry) for entry in tool_logs]

        return ArchiveResult(
            log_files=[e.path for e in logs],
            yaml_files=[e.path for e in yamls],
            tool_log_files=[e.path for e in tool_logs],
            tool_log_entries=tool_entries,
            skipped_files=[e.path for e in buckets[EntryKind.UNCLASSIFIED]],
            parsed_data=merge_results(log_result, yaml_result),
        )

    def _parse_log_entry(self, entry: ArchiveEntry,
                         cancel_token: Optional[CancellationToken]) -> Optional[ParsedData]:
        try:
            result = parse_log_file(
                entry.content, cancel_token=cancel_token, parser_config=self.parser_settings,
            )
        except ParseCancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to parse controller log {entry.path}: {e}")
            return None
        logger.debug(f"{entry.path}: {len(result.plans)} plans")
        return result

    def _parse_logs(self, entries: List[ArchiveEntry],
                    cancel_token: Optional[CancellationToken]) -> Optional[ParsedData]:
        """Parse each log on its own and reduce in path order."""
        if self.max_workers > 1 and len(entries) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(
                    lambda entry: self._parse_log_entry(entry, cancel_token), entries
                ))
        else:
            results = [self._parse_log_entry(entry, cancel_token) for entry in entries]
        return reduce(merge_results, results, None)

    def _parse_yamls(self, entries: List[ArchiveEntry]) -> Optional[ParsedData]:
        combined = YAML_SEPARATOR.join(entry.content for entry in entries)
        try:
            return parse_plan_yaml(combined, api_group=self.classifier.api_group)
        except Exception as e:
            logger.error(f"Failed to parse YAML resources: {e}")
            return None

    def _parse_tool_log(self, entry: ArchiveEntry) -> ToolLogFile:
        plan_name, vm_id = tool_log_identity(entry.path)
        data = None
        if self.tool_log_parser is not None:
            try:
                data = self.tool_log_parser(entry.content)
            except Exception as e:
                logger.error(f"Failed to parse tool log {entry.path}: {e}")
        return ToolLogFile(file_path=entry.path, data=data, plan_name=plan_name, vm_id=vm_id)


def process_archive_entries(
    entries: List[ArchiveEntry],
    tool_log_parser: Optional[ToolLogParser] = None,
    cancel_token: Optional[CancellationToken] = None,
    max_workers: Optional[int] = None,
) -> ArchiveResult:
    """Classify and parse a flat list of extracted archive members."""
    processor = ArchiveProcessor(tool_log_parser=tool_log_parser, max_workers=max_workers)
    return processor.process(entries, cancel_token)


def parse_file_content(content: str, cancel_token: Optional[CancellationToken] = None) -> ParsedData:
    """Parse a single file as YAML or controller log, decided by its content."""
    if is_yaml_content(content):
        return parse_plan_yaml(content)
    return parse_log_file(content, cancel_token=cancel_token)
