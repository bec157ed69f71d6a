"""
资源字符串乱码校验入口

用法:
    validate-resource-strings "bin/**/*.dll" "bin/**/*.exe" -x "bin/third_party/**"

stdout 只输出乱码诊断行，日志输出到 stderr。
退出码: 0 = 未发现乱码, 1 = 发现乱码, 2 = 文件加载失败中止
"""
import argparse
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from core.algorithms.mojibake import MojibakeDetector
from core.config import Settings, settings
from core.constants import EXIT_ABORTED, EXIT_CORRUPTION_FOUND, EXIT_OK
from core.exceptions import ConfigurationError, ResourceValidatorError
from core.logging import setup_logging
from services.file_matcher import resolve_patterns
from services.validation_service import ResourceValidationService
from version import VERSION

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="validate-resource-strings",
        description="Detect UTF-8 text mis-decoded as a legacy code page in RT_STRING resources",
    )
    parser.add_argument("patterns", nargs="*", help="Glob patterns of modules to validate (supports **)")
    parser.add_argument("-x", "--exclude", action="append", default=[], metavar="PATTERN",
                        help="Glob pattern to exclude (repeatable)")
    parser.add_argument("-j", "--workers", type=int, default=None, help="Number of worker threads")
    parser.add_argument("--code-page", default=None, help="Legacy code page (default: cp1252)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser


def _effective_settings(args: argparse.Namespace, base: Settings) -> Settings:
    """命令行参数覆盖配置文件 / 环境变量"""
    overrides = {}
    if args.workers is not None:
        overrides["MAX_WORKERS"] = args.workers
    if args.code_page:
        overrides["LEGACY_CODE_PAGE"] = args.code_page
    if not overrides:
        return base
    try:
        return Settings.model_validate({**base.model_dump(), **overrides})
    except ValidationError as e:
        raise ConfigurationError(
            f"参数无效: {', '.join(str(err['msg']) for err in e.errors())}",
            context={"overrides": overrides},
        ) from e


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings, level="DEBUG" if args.verbose or settings.DEBUG else None)

    try:
        cfg = _effective_settings(args, settings)
        patterns = args.patterns or cfg.INCLUDE_PATTERNS
        paths = resolve_patterns(patterns, exclude=[*cfg.EXCLUDE_PATTERNS, *args.exclude])
        logger.info(f"匹配到 {len(paths)} 个文件")

        detector = MojibakeDetector(code_page=cfg.LEGACY_CODE_PAGE)
        ResourceValidationService(detector, max_workers=cfg.MAX_WORKERS).validate_files(paths)
    except ResourceValidatorError as e:
        logger.error(f"校验中止: {e}", exc_info=args.verbose or settings.LOG_INCLUDE_TRACEBACK)
        return EXIT_ABORTED

    count = detector.corruption_count()
    if count > 0:
        logger.warning(f"发现 {count} 条乱码字符串")
        return EXIT_CORRUPTION_FOUND
    return EXIT_OK


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
