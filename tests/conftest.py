"""
测试全局 conftest.py
提供内存输出流的检测器、资源块构造器与最小 PE 映像构造器
"""
import io
import logging
import os
import struct
import sys

import pytest

# 确保项目根目录在 sys.path 最前面
_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from core.algorithms.mojibake import MojibakeDetector  # noqa: E402
from core.constants import RT_STRING, STRING_TABLE_ENTRIES  # noqa: E402
from core.logging import _ContextFilter  # noqa: E402

SECTION_RVA = 0x1000
FILE_ALIGNMENT = 0x200


def _align(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment


def build_string_block(*strings):
    """把若干条代码单元序列按 16 个长度前缀条目的布局拼成资源块"""
    assert len(strings) <= STRING_TABLE_ENTRIES
    block = []
    for units in strings:
        block.append(len(units))
        block.extend(units)
    block.extend([0] * (STRING_TABLE_ENTRIES - len(strings)))
    return block


def build_resource_section(tables, section_rva=SECTION_RVA) -> bytes:
    """
    构造 .rsrc 节：root -> RT_STRING -> 每个块一个名称目录 -> 一个语言叶子
    tables: [(block_id, language, code_units), ...]
    """
    n = len(tables)
    type_dir_off = 16 + 8
    name_dirs_off = type_dir_off + 16 + 8 * n
    data_entries_off = name_dirs_off + 24 * n
    blobs_off = data_entries_off + 16 * n

    out = bytearray()
    out += struct.pack("<IIHHHH", 0, 0, 0, 0, 0, 1)
    out += struct.pack("<II", RT_STRING, 0x80000000 | type_dir_off)

    out += struct.pack("<IIHHHH", 0, 0, 0, 0, 0, n)
    for i, (block_id, _, _) in enumerate(tables):
        out += struct.pack("<II", block_id, 0x80000000 | (name_dirs_off + 24 * i))

    for i, (_, language, _) in enumerate(tables):
        out += struct.pack("<IIHHHH", 0, 0, 0, 0, 0, 1)
        out += struct.pack("<II", language, data_entries_off + 16 * i)

    blobs = bytearray()
    positions = []
    for _, _, units in tables:
        positions.append(blobs_off + len(blobs))
        blobs += struct.pack(f"<{len(units)}H", *units)
        while len(blobs) % 4:
            blobs += b"\x00"

    for i, (_, _, units) in enumerate(tables):
        out += struct.pack("<IIII", section_rva + positions[i], 2 * len(units), 0, 0)

    out += blobs
    return bytes(out)


def build_pe_image(tables=(), pe32_plus=False, with_resources=True) -> bytes:
    """构造只含一个 .rsrc 节的最小 PE32 / PE32+ 映像"""
    opt_size = 240 if pe32_plus else 224
    rsrc = build_resource_section(list(tables)) if with_resources else b""
    raw_size = max(_align(len(rsrc), FILE_ALIGNMENT), FILE_ALIGNMENT)

    dos = bytearray(0x40)
    dos[0:2] = b"MZ"
    struct.pack_into("<I", dos, 0x3C, 0x40)

    machine = 0x8664 if pe32_plus else 0x14C
    coff = struct.pack("<HHIIIHH", machine, 1, 0, 0, 0, opt_size, 0x2102)

    opt = bytearray(opt_size)
    struct.pack_into("<H", opt, 0, 0x20B if pe32_plus else 0x10B)
    rva_count_offset = 108 if pe32_plus else 92
    struct.pack_into("<I", opt, rva_count_offset, 16)
    if with_resources:
        struct.pack_into("<II", opt, rva_count_offset + 4 + 2 * 8, SECTION_RVA, len(rsrc))

    section = struct.pack(
        "<8sIIIIIIHHI", b".rsrc", len(rsrc), SECTION_RVA, raw_size, FILE_ALIGNMENT,
        0, 0, 0, 0, 0x40000040,
    )

    headers = bytes(dos) + b"PE\x00\x00" + coff + bytes(opt) + section
    headers += b"\x00" * (FILE_ALIGNMENT - len(headers))
    return headers + rsrc + b"\x00" * (raw_size - len(rsrc))


def text_units(text: str):
    """BMP 文本 -> UTF-16 代码单元列表"""
    return [ord(c) for c in text]


def mojibake_units(text: str, code_page: str = "cp1252"):
    """模拟 UTF-8 字节被逐字节按旧代码页解码后的代码单元"""
    return text_units(text.encode("utf-8").decode(code_page))


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def detector(output):
    return MojibakeDetector(stream=output)


@pytest.fixture
def string_block():
    return build_string_block


@pytest.fixture
def pe_image():
    return build_pe_image


@pytest.fixture
def units():
    return text_units


@pytest.fixture
def garble():
    return mojibake_units


@pytest.fixture(autouse=True)
def restore_root_logging():
    """setup_logging 会替换 root handler，测试结束后移除它安装的 handler 并还原级别"""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if any(isinstance(f, _ContextFilter) for f in handler.filters):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
