"""
PE 资源读取服务

不依赖 Win32 加载器 (LoadLibraryEx / EnumResourceNames)，直接解析 PE/COFF 结构：
DOS 头 -> NT 头 -> 可选头数据目录[2] -> .rsrc 三级资源树 (类型 -> 名称 -> 语言)，
把每个 RT_STRING 叶子节点的数据按小端 UTF-16 代码单元交给检测器。
"""

import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from core.constants import (
    IMAGE_DIRECTORY_ENTRY_RESOURCE,
    IMAGE_DOS_SIGNATURE,
    IMAGE_NT_OPTIONAL_HDR32_MAGIC,
    IMAGE_NT_OPTIONAL_HDR64_MAGIC,
    IMAGE_NT_SIGNATURE,
    RT_STRING,
    STRING_TABLE_ENTRIES,
)
from core.exceptions import MalformedResourceError, ResourceLoadError

logger = logging.getLogger(__name__)

_HIGH_BIT = 0x80000000
_OFFSET_MASK = 0x7FFFFFFF
_DIRECTORY_HEADER = struct.Struct("<IIHHHH")
_DIRECTORY_ENTRY = struct.Struct("<II")
_DATA_ENTRY = struct.Struct("<IIII")


@dataclass(frozen=True)
class Section:
    name: str
    vaddr: int
    vsize: int
    raw_size: int
    raw_offset: int


@dataclass(frozen=True)
class StringTableResource:
    """一个 RT_STRING 资源块"""
    block_id: Union[int, str]
    language: int
    code_units: Tuple[int, ...]

    @property
    def first_string_id(self) -> Optional[int]:
        """块内第一个字符串的 ID，命名资源没有数字 ID"""
        if isinstance(self.block_id, int):
            return (self.block_id - 1) * STRING_TABLE_ENTRIES
        return None


def _unpack(fmt: Union[str, struct.Struct], data: bytes, offset: int, what: str) -> tuple:
    try:
        if isinstance(fmt, struct.Struct):
            return fmt.unpack_from(data, offset)
        return struct.unpack_from(fmt, data, offset)
    except struct.error as e:
        raise MalformedResourceError(
            f"{what} 越界 (offset=0x{offset:X}, size={len(data)})",
            context={"offset": offset, "what": what},
        ) from e


def parse_pe(data: bytes) -> Tuple[List[Section], int, int]:
    """
    解析 PE 头，返回 (节表, 资源目录 RVA, 资源目录大小)

    Raises:
        ResourceLoadError: 不是 PE 映像
    """
    if len(data) < 0x40 or data[:2] != IMAGE_DOS_SIGNATURE:
        raise ResourceLoadError("Not a PE image (missing MZ header)")

    pe_offset = struct.unpack_from('<I', data, 0x3C)[0]
    if pe_offset + 4 > len(data) or data[pe_offset:pe_offset + 4] != IMAGE_NT_SIGNATURE:
        raise ResourceLoadError("Not a PE image (missing PE signature)")

    coff = pe_offset + 4
    num_sections = _unpack('<H', data, coff + 2, "COFF header")[0]
    opt_header_size = _unpack('<H', data, coff + 16, "COFF header")[0]

    opt = coff + 20
    magic = _unpack('<H', data, opt, "optional header")[0]
    if magic == IMAGE_NT_OPTIONAL_HDR64_MAGIC:  # PE32+
        rva_count_offset = opt + 108
    elif magic == IMAGE_NT_OPTIONAL_HDR32_MAGIC:  # PE32
        rva_count_offset = opt + 92
    else:
        raise ResourceLoadError(f"Unsupported optional header magic 0x{magic:X}")

    sections = []
    sec_offset = opt + opt_header_size
    for i in range(num_sections):
        s = sec_offset + i * 40
        name = data[s:s + 8].rstrip(b'\x00').decode('ascii', errors='replace')
        vsize, vaddr, raw_size, raw_offset = _unpack('<IIII', data, s + 8, "section header")
        sections.append(Section(name, vaddr, vsize, raw_size, raw_offset))

    # 资源目录是数据目录第 3 项；可选头太短或未声明时视为无资源
    dd_offset = rva_count_offset + 4
    entry_offset = dd_offset + IMAGE_DIRECTORY_ENTRY_RESOURCE * 8
    if entry_offset + 8 > opt + opt_header_size:
        return sections, 0, 0
    rva_count = _unpack('<I', data, rva_count_offset, "optional header")[0]
    if rva_count <= IMAGE_DIRECTORY_ENTRY_RESOURCE:
        return sections, 0, 0

    res_rva, res_size = _unpack('<II', data, entry_offset, "data directory")
    return sections, res_rva, res_size


def rva_to_offset(sections: List[Section], rva: int) -> int:
    for sec in sections:
        span = max(sec.vsize, sec.raw_size)
        if sec.vaddr <= rva < sec.vaddr + span:
            delta = rva - sec.vaddr
            if delta >= sec.raw_size:
                break
            return sec.raw_offset + delta
    raise MalformedResourceError(
        f"RVA 0x{rva:X} 不在任何节的文件数据内", context={"rva": rva}
    )


class _ResourceTree:
    """.rsrc 资源树遍历器；目录偏移相对资源节起点"""

    def __init__(self, data: bytes, sections: List[Section], base: int) -> None:
        self.data = data
        self.sections = sections
        self.base = base
        self._visited = set()

    def _read_name(self, rel: int) -> str:
        length = _unpack('<H', self.data, self.base + rel, "resource name")[0]
        start = self.base + rel + 2
        end = start + length * 2
        if end > len(self.data):
            raise MalformedResourceError("资源名称越界", context={"offset": rel})
        return self.data[start:end].decode('utf-16-le', errors='replace')

    def entries(self, rel: int) -> Iterator[Tuple[Union[int, str], bool, int]]:
        """产出目录条目 (名称或 ID, 是否子目录, 目标相对偏移)"""
        if rel in self._visited:
            raise MalformedResourceError("资源目录存在环", context={"offset": rel})
        self._visited.add(rel)

        header = _unpack(_DIRECTORY_HEADER, self.data, self.base + rel, "resource directory")
        count = header[4] + header[5]
        for i in range(count):
            name_field, offset_field = _unpack(
                _DIRECTORY_ENTRY, self.data, self.base + rel + 16 + i * 8, "resource directory entry"
            )
            if name_field & _HIGH_BIT:
                name = self._read_name(name_field & _OFFSET_MASK)
            else:
                name = name_field & 0xFFFF
            yield name, bool(offset_field & _HIGH_BIT), offset_field & _OFFSET_MASK

    def read_leaf(self, rel: int) -> Tuple[int, ...]:
        data_rva, size, _code_page, _reserved = _unpack(
            _DATA_ENTRY, self.data, self.base + rel, "resource data entry"
        )
        offset = rva_to_offset(self.sections, data_rva)
        if offset + size > len(self.data):
            raise MalformedResourceError(
                "资源数据越界", context={"rva": data_rva, "size": size}
            )
        count = size // 2
        return struct.unpack_from(f"<{count}H", self.data, offset)


def read_string_tables(data: bytes) -> List[StringTableResource]:
    """从 PE 映像字节中提取全部 RT_STRING 资源块 (包含所有语言)"""
    sections, res_rva, res_size = parse_pe(data)
    if not res_rva or not res_size:
        return []

    tree = _ResourceTree(data, sections, rva_to_offset(sections, res_rva))
    tables = []
    for type_id, is_dir, type_rel in tree.entries(0):
        if type_id != RT_STRING or not is_dir:
            continue
        for block_id, name_is_dir, name_rel in tree.entries(type_rel):
            if not name_is_dir:
                raise MalformedResourceError("RT_STRING 名称层缺少语言目录", context={"block_id": block_id})
            for language, lang_is_dir, leaf_rel in tree.entries(name_rel):
                if lang_is_dir:
                    raise MalformedResourceError("资源树层级超过 3 层", context={"block_id": block_id})
                tables.append(StringTableResource(block_id, language, tree.read_leaf(leaf_rel)))
    return tables


def iter_string_tables(path: Union[str, Path]) -> Iterator[StringTableResource]:
    """
    读取文件并逐个产出字符串表资源块

    Raises:
        ResourceLoadError: 文件无法读取或不是 PE 映像
        MalformedResourceError: 资源目录损坏
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise ResourceLoadError(
            f"Unable to open {path}", context={"path": str(path), "error": str(e)}
        ) from e

    try:
        tables = read_string_tables(data)
    except ResourceLoadError as e:
        e.context.setdefault("path", str(path))
        raise

    logger.debug(f"{path}: 发现 {len(tables)} 个字符串表资源块")
    yield from tables
