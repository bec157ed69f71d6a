from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

from core.algorithms.mojibake import MojibakeDetector
from core.logging import correlation_context, get_logger, log_performance, short_id
from services.pe_resources import iter_string_tables

logger = get_logger(__name__)


class ResourceValidationService:
    """
    资源字符串校验服务

    每个文件一个线程池任务；所有任务共享同一个 MojibakeDetector，
    乱码数量通过 detector.corruption_count() 汇总。
    """

    def __init__(self, detector: MojibakeDetector, max_workers: Optional[int] = None) -> None:
        self.detector = detector
        self.max_workers = max_workers

    def validate_file(self, path: str) -> int:
        """校验单个文件中的全部字符串表，返回扫描的资源块数量"""
        with correlation_context(short_id(path, 24), file=path):
            tables = 0
            for table in iter_string_tables(path):
                self.detector.scan_resource_block(path, table.code_units)
                tables += 1
            logger.debug(f"{path}: 已扫描 {tables} 个字符串表")
            return tables

    @log_performance("校验资源文件")
    def validate_files(self, paths: Iterable[str]) -> int:
        """
        并行校验多个文件，返回扫描的资源块总数

        任一文件加载失败时，等待其余任务结束后抛出第一个异常。
        """
        paths = list(paths)
        if not paths:
            logger.warning("没有匹配到任何文件")
            return 0

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="validate") as pool:
            futures = [pool.submit(self.validate_file, path) for path in paths]

        total = 0
        first_error = None
        for path, future in zip(paths, futures):
            error = future.exception()
            if error is None:
                total += future.result()
                continue
            logger.log_error("校验文件", error, entity_id=path)
            if first_error is None:
                first_error = error
        if first_error is not None:
            raise first_error

        logger.info(
            f"校验完成: {len(paths)} 个文件, {total} 个字符串表, "
            f"{self.detector.corruption_count()} 条乱码字符串"
        )
        return total
