"""Controller log parsing: JSON-lines records interleaved with panic traces."""

from typing import Any, Dict, List, Optional

from .constants import PANIC_PREFIX
from .entity_store import EntityStore
from .line_normalizer import LineNormalizer, SeenLines
from .models import ParsedData, Plan
from .panic_processor import PanicProcessor
from .plan_processor import PlanEventProcessor
from .records import RecordKind, classify_record
from .utils import CancellationToken, check_cancelled, is_panic_line, parse_timestamp
from ..utils.config import config
from ..utils.logger import get_logger

logger = get_logger("parser")


class PanicBuffer:
    """Free-text trace lines waiting for the next JSON record."""

    def __init__(self):
        self.lines: List[str] = []
        self.plan: Optional[Plan] = None

    @property
    def is_open(self) -> bool:
        return bool(self.lines)

    def append(self, line: str, store: EntityStore) -> None:
        self.lines.append(line)
        if line.startswith(PANIC_PREFIX) and self.plan is None:
            self.plan = store.most_recent_plan()

    def reset(self) -> None:
        self.lines = []
        self.plan = None


class LogParser:
    """
    Parses one controller log into ``ParsedData``.

    A parser instance owns its entity store and seen-lines set; create a new
    one per file.
    """

    def __init__(
        self,
        seen: Optional[SeenLines] = None,
        cancel_token: Optional[CancellationToken] = None,
        parser_config: Optional[Dict[str, Any]] = None,
    ):
        settings = parser_config if parser_config is not None else config.get_parser_config()
        if seen is None:
            seen = SeenLines(settings.get("dedup_window", 0))
        self.store = EntityStore()
        self.normalizer = LineNormalizer(seen)
        self.plans = PlanEventProcessor(self.store, settings.get("event_description_max", 150))
        self.panics = PanicProcessor(self.store, settings.get("panic_description_max", 100))
        self.cancel_token = cancel_token
        self.panic_buffer = PanicBuffer()

    def parse(self, content: str) -> ParsedData:
        for line in content.split("\n"):
            check_cancelled(self.cancel_token)
            self.store.increment_stat("total_lines")
            self._handle_line(line)

        self._flush_panic_buffer()
        result = self.store.get_result()
        logger.debug(
            f"Parsed {result.stats.total_lines} lines: {result.stats.parsed_lines} records, "
            f"{result.stats.error_lines} undecodable, {result.stats.duplicate_lines} duplicates"
        )
        return result

    def _handle_line(self, line: str) -> None:
        if not line.strip():
            return
        if self.normalizer.is_duplicate(line):
            self.store.increment_stat("duplicate_lines")
            return

        normalized = self.normalizer.normalize(line)
        if not normalized.is_record:
            self.store.increment_stat("error_lines")
            if self.panic_buffer.is_open or is_panic_line(normalized.content):
                self.panic_buffer.append(normalized.content, self.store)
            return

        if self.panic_buffer.is_open:
            self._flush_panic_buffer()

        self.store.increment_stat("parsed_lines")
        self.dispatch(normalized.record, line)

    def _flush_panic_buffer(self) -> None:
        if not self.panic_buffer.is_open:
            return
        owner = self.panic_buffer.plan or self.store.most_recent_plan()
        self.panics.attach_stacktrace(owner, self.panic_buffer.lines)
        self.panic_buffer.reset()

    def dispatch(self, record: Dict[str, Any], raw_line: str) -> None:
        """Route one decoded record by its top-level kind."""
        ts = parse_timestamp(record.get("ts"))
        kind = classify_record(record)

        if kind is RecordKind.PANIC_OBSERVED:
            self.panics.process_panic_observed(record, ts, raw_line)
        elif kind is RecordKind.RECONCILER_ERROR:
            self.panics.process_reconciler_error(record, ts, raw_line)
        elif kind is RecordKind.PLAN:
            self.plans.process(record, ts, raw_line)
        elif kind is RecordKind.SCHEDULER:
            self.plans.process_scheduler(record, ts)


def parse_log_file(
    content: str,
    cancel_token: Optional[CancellationToken] = None,
    seen: Optional[SeenLines] = None,
    parser_config: Optional[Dict[str, Any]] = None,
) -> ParsedData:
    """
    Parse controller log text.

    Args:
        content: Full log text (JSON lines, optionally container-prefixed)
        cancel_token: Checked between lines; cancellation raises ParseCancelledError
        seen: Seen-lines set to use; a fresh one is created when omitted
        parser_config: ``parser`` settings; defaults to the loaded configuration

    Returns:
        Normalized ParsedData
    """
    parser = LogParser(seen=seen, cancel_token=cancel_token, parser_config=parser_config)
    return parser.parse(content)
