import logging
from types import MappingProxyType
from typing import Iterator, Mapping, Tuple

from core.constants import DEFAULT_LEGACY_CODE_PAGE, LEGACY_UPPER_RANGE

logger = logging.getLogger(__name__)


def _decode_upper_range(code_page: str) -> Iterator[Tuple[int, int]]:
    """逐字节解码 0x80-0x9F，产出 (码位, 原字节)；未定义的字节直接跳过"""
    for byte in LEGACY_UPPER_RANGE:
        try:
            char = bytes((byte,)).decode(code_page)
        except UnicodeDecodeError:
            logger.debug(f"{code_page} 未定义字节 0x{byte:02X}，跳过")
            continue
        if len(char) != 1:
            continue
        yield ord(char), byte


class ReverseCodePageTable:
    """
    旧代码页反向映射表 (码位 -> 单字节值)

    只覆盖旧代码页把 0x80-0x9F 映射到的那些码位 (如 U+20AC -> 0x80)，
    0x00-0xFF 范围内的码位由 to_legacy_byte 直接截断处理。
    构造完成后只读，可在多个线程间无锁共享。
    """

    def __init__(self, code_page: str = DEFAULT_LEGACY_CODE_PAGE) -> None:
        self.code_page = code_page
        table = {}
        # 按 0x80 -> 0x9F 顺序插入，重复码位以后者为准
        for code_point, byte in _decode_upper_range(code_page):
            table[code_point] = byte
        self._table: Mapping[int, int] = MappingProxyType(table)

    @property
    def mapping(self) -> Mapping[int, int]:
        return self._table

    def get(self, code_point: int, default: int = 0) -> int:
        return self._table.get(code_point, default)

    def __contains__(self, code_point: int) -> bool:
        return code_point in self._table

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        return f"ReverseCodePageTable(code_page={self.code_page!r}, entries={len(self._table)})"

    def to_legacy_byte(self, code_unit: int) -> int:
        """
        把一个 UTF-16 代码单元投影回旧代码页字节值

        Returns:
            0x00-0xFF 之间的字节值；无法用旧代码页单字节表示时返回 0
            (0 永远不会被当作 UTF-8 前导字节)
        """
        if code_unit < 0x100:
            return code_unit & 0xFF
        return self._table.get(code_unit, 0)
