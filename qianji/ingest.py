"""Upload ingestion: parser dispatch + import pipeline orchestration.

    filename → pick parser → decode/parse → dedup import → summary

Parsers are tried in a fixed order, platform exports before the generic
CSV fallback, so "微信账单.csv" is read as a WeChat export even though it
also ends in .csv.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from qianji.categorize.keywords import CategorizationService
from qianji.config import (
    DEFAULT_OWNER_ID,
    Config,
    get_config,
    get_db_path,
    get_migrations_dir,
    get_owner_id,
)
from qianji.database.dedup import BillImporter
from qianji.database.models import Import
from qianji.database.repository import Repository
from qianji.parsers.alipay import AlipayParser
from qianji.parsers.base import (
    BaseParser,
    BillParseError,
    ParsedBill,
    UnsupportedFormatError,
)
from qianji.parsers.generic_csv import CsvMapping, GenericCsvParser
from qianji.parsers.wechat import WeChatParser

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = (
    "微信支付账单 (.csv)",
    "支付宝账单 (.csv)",
    "通用CSV格式 (.csv)",
    "银行流水 (.csv)",
)


def compute_file_hash(data: bytes) -> str:
    """SHA256 of the uploaded file contents."""
    return hashlib.sha256(data).hexdigest()


def default_parsers(config: Config | None = None) -> list[BaseParser]:
    """Platform parsers first, generic CSV last, sharing one categorizer."""
    if config is None:
        categorizer = CategorizationService.default()
        date_policy = "now"
        mapping = CsvMapping()
    else:
        categorizer = CategorizationService.from_config(config)
        date_policy = config.date_policy
        mapping = CsvMapping.from_dict(config.generic_csv_mapping)

    options = dict(categorizer=categorizer, date_policy=date_policy)
    return [
        WeChatParser(**options),
        AlipayParser(**options),
        GenericCsvParser(mapping=mapping, **options),
    ]


class BillParserFactory:
    """Select the first parser that accepts a file name and run it."""

    def __init__(self, parsers: list[BaseParser] | None = None, config: Config | None = None):
        self.parsers = parsers if parsers is not None else default_parsers(config)

    def find_parser(self, filename: str) -> BaseParser | None:
        for parser in self.parsers:
            if parser.can_parse(filename):
                return parser
        return None

    def get_parser(self, filename: str) -> BaseParser:
        parser = self.find_parser(filename)
        if parser is None:
            raise UnsupportedFormatError(filename)
        logger.info("Parsing %s with %s parser", filename, parser.platform)
        return parser

    def parse_file(self, filename: str, data: bytes) -> list[ParsedBill]:
        """Parse an uploaded file.

        Raises:
            UnsupportedFormatError: No parser accepts the file name.
            InvalidFormatError: Header row or a required column is missing.
        """
        return self.get_parser(filename).parse(data)

    @staticmethod
    def supported_formats() -> list[str]:
        return list(SUPPORTED_FORMATS)


@dataclass
class ImportSummary:
    """Result of importing one uploaded file."""
    file_name: str
    platform: str | None = None
    created_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    dropped_rows: int = 0  # rows the parser could not normalize
    total_amount: float = 0.0
    import_id: str | None = None


class ImportPipeline:
    """Run an uploaded bill file through parse → dedup → persist.

    Args:
        repo: Repository the bills are stored in.
        config: Optional Config; the packaged seed config is used without one.
        owner_id: User the bills belong to.
        factory: Parser dispatcher (built from config when omitted).
    """

    def __init__(
        self,
        repo: Repository,
        config: Config | None = None,
        owner_id: str = DEFAULT_OWNER_ID,
        factory: BillParserFactory | None = None,
    ):
        self.repo = repo
        self.owner_id = owner_id
        self.factory = factory or BillParserFactory(config=config)
        self.importer = BillImporter(repo, owner_id)

    @classmethod
    def from_env(cls) -> ImportPipeline:
        """Build a pipeline from QIANJI_* environment variables, migrating
        the database first."""
        repo = Repository(db_path=get_db_path())
        repo.apply_migrations(get_migrations_dir())
        return cls(repo, config=get_config(), owner_id=get_owner_id())

    def import_upload(self, filename: str, data: bytes) -> ImportSummary:
        """Import one uploaded file and return its summary.

        Parse failures (unsupported file, missing header or column) are
        recorded on the import row and re-raised for the caller.
        """
        self.repo.ensure_user(self.owner_id)
        imp = self.repo.insert_import(Import(
            file_name=filename,
            file_hash=compute_file_hash(data),
            file_size=len(data),
            user_id=self.owner_id,
        ))
        summary = ImportSummary(file_name=filename, import_id=imp.id)

        try:
            parser = self.factory.get_parser(filename)
            summary.platform = parser.platform
            bills = parser.parse(data)
        except BillParseError as e:
            logger.error("Failed to parse %s (%s stage): %s", filename, e.stage, e)
            self.repo.update_import_status(
                imp.id, "error",
                platform=summary.platform,
                error_message=str(e),
                completed_at=_utcnow(),
            )
            raise

        summary.dropped_rows = len(parser.row_errors)
        counts = self.importer.import_bills(bills, import_id=imp.id)
        summary.created_count = counts.created_count
        summary.skipped_count = counts.skipped_count
        summary.error_count = counts.error_count
        summary.total_amount = counts.total_amount

        self.repo.update_import_status(
            imp.id, "success",
            platform=summary.platform,
            created_count=summary.created_count,
            skipped_count=summary.skipped_count,
            error_count=summary.error_count,
            completed_at=_utcnow(),
        )
        logger.info(
            "%s (%s): %d imported, %d skipped, %d failed, %d rows dropped",
            filename, summary.platform, summary.created_count,
            summary.skipped_count, summary.error_count, summary.dropped_rows,
        )
        return summary


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()
