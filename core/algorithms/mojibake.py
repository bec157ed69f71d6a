"""
字符串表乱码 (Mojibake) 检测器

检测原本是 UTF-8 的文本被逐字节按单字节旧代码页 (cp1252) 解码、
再以 UTF-16 写入资源后的典型特征：把每个代码单元投影回旧代码页字节后，
若出现符合 UTF-8 前导字节 + 后续字节位模式的序列，基本可以断定发生了双重编码。

参考: https://devblogs.microsoft.com/oldnewthing/20190701-00/?p=102636
"""

import logging
import sys
import threading
from typing import Optional, Sequence, TextIO

from core.algorithms.code_page import ReverseCodePageTable
from core.constants import (
    DEFAULT_LEGACY_CODE_PAGE,
    PRINTABLE_ASCII_MAX,
    PRINTABLE_ASCII_MIN,
    REPLACEMENT_CHARACTER,
    STRING_TABLE_ENTRIES,
    UTF8_CONTINUATION_MASK,
    UTF8_CONTINUATION_VALUE,
    UTF8_LEAD_PATTERNS,
)

logger = logging.getLogger(__name__)


def _continuations_follow(units: Sequence[int], start: int, count: int, table: ReverseCodePageTable) -> bool:
    """units[start+1 .. start+count] 是否都是 10xxxxxx；越过字符串末尾视为不匹配"""
    if start + count >= len(units):
        return False
    for k in range(start + 1, start + count + 1):
        if (table.to_legacy_byte(units[k]) & UTF8_CONTINUATION_MASK) != UTF8_CONTINUATION_VALUE:
            return False
    return True


def find_corruption(units: Sequence[int], table: ReverseCodePageTable) -> Optional[int]:
    """
    返回第一个乱码位置，字符串干净时返回 None

    命中条件 (任一):
    1. 代码单元为 U+FFFD (原始 .rc 已损坏)
    2. 投影字节 > 0x7F，且与其后 1/2/3 个投影字节构成合法的 UTF-8 多字节位模式
    """
    for j, unit in enumerate(units):
        if unit == REPLACEMENT_CHARACTER:
            return j

        ch = table.to_legacy_byte(unit)
        if ch <= 0x7F:
            continue

        # Does this look like UTF-8?
        for mask, value, follow in UTF8_LEAD_PATTERNS:
            if (ch & mask) == value and _continuations_follow(units, j, follow, table):
                return j
    return None


def render_code_units(units: Sequence[int]) -> str:
    """可打印 ASCII 原样输出，其余代码单元转义为 \\uXXXX (大写十六进制)"""
    return "".join(
        chr(unit) if PRINTABLE_ASCII_MIN <= unit <= PRINTABLE_ASCII_MAX else f"\\u{unit:04X}"
        for unit in units
    )


def render_diagnostic(identifier: str, offset: int, units: Sequence[int]) -> str:
    return f"{identifier} offset {offset}: >>>{render_code_units(units)}<<<"


class MojibakeDetector:
    """
    字符串表资源校验器

    一个实例在整个进程生命周期内共享：反向映射表构造后只读，
    乱码计数器通过锁保证多线程下无丢失更新。

    注意：计数粒度是"乱码字符串"而不是"文件"，同一文件中两条乱码字符串计 2。
    """

    def __init__(
        self,
        code_page: str = DEFAULT_LEGACY_CODE_PAGE,
        stream: Optional[TextIO] = None,
        table: Optional[ReverseCodePageTable] = None,
    ) -> None:
        self.table = table or ReverseCodePageTable(code_page)
        self._stream = stream
        self._count = 0
        self._count_lock = threading.Lock()
        self._output_lock = threading.Lock()

    @property
    def stream(self) -> TextIO:
        # 每次写入时解析 sys.stdout
        return self._stream if self._stream is not None else sys.stdout

    def corruption_count(self) -> int:
        with self._count_lock:
            return self._count

    def scan_resource_block(self, identifier: str, buffer: Sequence[int]) -> None:
        """
        解析一个 RT_STRING 资源块 (16 个长度前缀条目) 并逐条校验

        资源块被截断时在缓冲区末尾安静停止，不抛异常。
        """
        cursor = 0
        end = len(buffer)
        for _ in range(STRING_TABLE_ENTRIES):
            if cursor >= end:
                break
            length = buffer[cursor]
            if length > 0:
                start = cursor + 1
                if start + length > end:
                    logger.debug(
                        f"{identifier}: 条目长度 {length} 超出资源块末尾 (剩余 {end - start})"
                    )
                self.scan_string(identifier, buffer[start:start + length])
            cursor += length + 1

    def scan_string(self, identifier: str, units: Sequence[int]) -> Optional[int]:
        """校验单条字符串；发现乱码时输出诊断行并计数，返回乱码位置"""
        offset = find_corruption(units, self.table)
        if offset is None:
            return None

        line = render_diagnostic(identifier, offset, units)
        with self._output_lock:
            stream = self.stream
            stream.write(line + "\n")
            stream.flush()

        with self._count_lock:
            self._count += 1
        return offset
