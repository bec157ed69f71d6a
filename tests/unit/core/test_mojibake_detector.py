"""
乱码检测器单元测试
"""
from unittest.mock import patch

import pytest

from core.algorithms.code_page import ReverseCodePageTable
from core.algorithms.mojibake import (
    MojibakeDetector,
    find_corruption,
    render_code_units,
    render_diagnostic,
)


@pytest.fixture(scope="module")
def table():
    return ReverseCodePageTable("cp1252")


class TestFindCorruption:
    """测试单条字符串乱码判定"""

    def test_replacement_character_alone(self, table):
        assert find_corruption([0xFFFD], table) == 0

    def test_replacement_character_anywhere(self, table, units):
        assert find_corruption(units("ab") + [0xFFFD] + units("cd"), table) == 2

    def test_printable_ascii_is_clean(self, table):
        assert find_corruption(list(range(0x20, 0x7F)), table) is None

    def test_empty_string_is_clean(self, table):
        assert find_corruption([], table) is None

    def test_two_byte_sequence(self, table):
        """é (C3 A9) 被逐字节解码为 Ã©"""
        assert find_corruption([0xC3, 0xA9], table) == 0

    def test_two_byte_sequence_broken_continuation(self, table):
        assert find_corruption([0xC3, 0x41], table) is None

    def test_offset_points_at_lead_byte(self, table, units, garble):
        assert find_corruption(units("Caf") + garble("é"), table) == 3

    def test_three_byte_sequence_through_table(self, table, garble):
        """€ (E2 82 AC) -> â‚¬，0x82 需经反向映射表 (U+201A) 还原"""
        garbled = garble("€")
        assert garbled == [0xE2, 0x201A, 0xAC]
        assert find_corruption(garbled, table) == 0

    def test_three_byte_cjk(self, table, units, garble):
        assert find_corruption(units("id=") + garble("中文"), table) == 3

    def test_four_byte_sequence(self, table, garble):
        """😀 (F0 9F 98 80) -> ðŸ˜€"""
        garbled = garble("\U0001F600")
        assert garbled == [0xF0, 0x0178, 0x02DC, 0x20AC]
        assert find_corruption(garbled, table) == 0

    @pytest.mark.parametrize("truncated", [
        [0xC3],
        [0xE2, 0x201A],
        [0xF0, 0x0178, 0x02DC],
    ])
    def test_sequence_cut_at_string_end(self, table, truncated):
        assert find_corruption(truncated, table) is None

    @pytest.mark.parametrize("text", ["Café", "Crème brûlée", "naïve", "Größe", "Ångström"])
    def test_genuine_latin1_text_is_clean(self, table, units, text):
        assert find_corruption(units(text), table) is None

    def test_cjk_stored_correctly_is_clean(self, table, units):
        """正确存储的中文投影为 0，不会参与 UTF-8 模式"""
        assert find_corruption(units("中文字符串"), table) is None

    def test_unmappable_continuation_breaks_pattern(self, table):
        assert find_corruption([0xC3, 0x4E2D], table) is None

    def test_invalid_lead_bytes(self, table):
        """0x80-0xBF 与 0xF8-0xFF 都不是合法前导字节"""
        assert find_corruption([0x80, 0x80], table) is None
        assert find_corruption([0xF8, 0x80, 0x80, 0x80, 0x80], table) is None
        assert find_corruption([0xFF, 0x80], table) is None

    def test_stops_at_first_match(self, table):
        assert find_corruption([0x41, 0xC3, 0xA9, 0xFFFD], table) == 1


class TestRendering:
    """测试诊断行渲染"""

    def test_printable_literal(self):
        assert render_code_units([0x41, 0x20, 0x7E]) == "A ~"

    def test_tab_escaped(self):
        assert render_code_units([0x09]) == "\\u0009"

    def test_uppercase_hex(self):
        assert render_code_units([0x20AC, 0xFFFD, 0x7F]) == "\\u20AC\\uFFFD\\u007F"

    def test_diagnostic_line(self):
        line = render_diagnostic("bin/app.dll", 3, [0x43, 0x61, 0x66, 0xC3, 0xA9])
        assert line == "bin/app.dll offset 3: >>>Caf\\u00C3\\u00A9<<<"


class TestMojibakeDetector:
    """测试资源块解析与计数"""

    def test_initial_count(self, detector):
        assert detector.corruption_count() == 0

    def test_scan_string_reports_and_counts(self, detector, output):
        assert detector.scan_string("app.dll", [0x09, 0xC3, 0xA9]) == 1
        assert output.getvalue() == "app.dll offset 1: >>>\\u0009\\u00C3\\u00A9<<<\n"
        assert detector.corruption_count() == 1

    def test_clean_string_has_no_side_effects(self, detector, output, units):
        assert detector.scan_string("app.dll", units("Hello, world")) is None
        assert output.getvalue() == ""
        assert detector.corruption_count() == 0

    def test_block_of_empty_entries(self, detector, output):
        with patch.object(detector, "scan_string") as scan:
            detector.scan_resource_block("app.dll", [0] * 16)
        scan.assert_not_called()
        assert detector.corruption_count() == 0
        assert output.getvalue() == ""

    def test_block_passes_each_string(self, detector, string_block, units):
        block = string_block(units("OK"), [], units("Cancel"))
        with patch.object(detector, "scan_string") as scan:
            detector.scan_resource_block("app.dll", block)
        assert [c.args for c in scan.call_args_list] == [
            ("app.dll", units("OK")),
            ("app.dll", units("Cancel")),
        ]

    def test_multiple_corrupt_strings_in_one_block(self, detector, output, string_block, units, garble):
        """计数粒度为字符串而非文件：同一资源块两条乱码计 2"""
        block = string_block(garble("é"), units("fine"), units("x") + [0xFFFD])
        detector.scan_resource_block("app.dll", block)
        assert detector.corruption_count() == 2
        assert output.getvalue().splitlines() == [
            "app.dll offset 0: >>>\\u00C3\\u00A9<<<",
            "app.dll offset 1: >>>x\\uFFFD<<<",
        ]

    def test_counter_accumulates_across_calls(self, detector, string_block, garble):
        block = string_block(garble("ü"))
        detector.scan_resource_block("a.dll", block)
        detector.scan_resource_block("b.dll", block)
        assert detector.corruption_count() == 2

    def test_only_sixteen_entries_are_read(self, detector):
        block = [0] * 16 + [2, 0xC3, 0xA9]
        detector.scan_resource_block("app.dll", block)
        assert detector.corruption_count() == 0

    def test_empty_buffer(self, detector):
        detector.scan_resource_block("app.dll", [])
        assert detector.corruption_count() == 0

    def test_truncated_block_stops_quietly(self, detector, units):
        """条目数不足 16 时在末尾停止"""
        detector.scan_resource_block("app.dll", [2] + units("OK"))
        assert detector.corruption_count() == 0

    def test_entry_overrunning_buffer_is_scanned_as_present(self, detector, output):
        detector.scan_resource_block("app.dll", [5, 0xC3, 0xA9])
        assert detector.corruption_count() == 1
        assert output.getvalue() == "app.dll offset 0: >>>\\u00C3\\u00A9<<<\n"

    def test_accepts_tuple_buffer(self, detector, string_block, garble):
        detector.scan_resource_block("app.dll", tuple(string_block(garble("ß"))))
        assert detector.corruption_count() == 1

    def test_defaults_to_stdout(self, capsys):
        detector = MojibakeDetector()
        detector.scan_string("app.dll", [0xFFFD])
        assert capsys.readouterr().out == "app.dll offset 0: >>>\\uFFFD<<<\n"

    def test_code_page_selects_upper_range_mapping(self, output, garble):
        """latin-1 的 0x80-0x9F 就是 C1 控制字符，U+201A 无法还原为 0x82"""
        garbled = garble("€")
        assert MojibakeDetector(code_page="latin-1", stream=output).scan_string("app.dll", garbled) is None
        assert MojibakeDetector(code_page="cp1252", stream=output).scan_string("app.dll", garbled) == 0
