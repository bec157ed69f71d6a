"""
资源字符串校验常量
均为 Windows 资源二进制格式中的固定值，不受配置影响
"""

# 资源类型 RT_STRING (MAKEINTRESOURCE(6))
RT_STRING = 6

# 每个字符串表资源块固定包含 16 个长度前缀条目
STRING_TABLE_ENTRIES = 16

# U+FFFD REPLACEMENT CHARACTER，出现即说明 .rc 源文件在编译前已损坏
REPLACEMENT_CHARACTER = 0xFFFD

# 旧代码页中 0x80-0x9F 区间 (C1 控制区) 被映射到 Latin-1 以外的字符
LEGACY_UPPER_RANGE = range(0x80, 0xA0)

# 默认旧代码页 (Windows-1252)
DEFAULT_LEGACY_CODE_PAGE = "cp1252"

# 可打印 ASCII 区间 [0x20, 0x7E]，其余代码单元在诊断输出中转义为 \uXXXX
PRINTABLE_ASCII_MIN = 0x20
PRINTABLE_ASCII_MAX = 0x7E

# UTF-8 位模式 (mask, value, 后续字节数)
UTF8_LEAD_PATTERNS = (
    (0xE0, 0xC0, 1),  # 110xxxxx
    (0xF0, 0xE0, 2),  # 1110xxxx
    (0xF8, 0xF0, 3),  # 11110xxx
)
UTF8_CONTINUATION_MASK = 0xC0
UTF8_CONTINUATION_VALUE = 0x80

# PE/COFF
IMAGE_DOS_SIGNATURE = b"MZ"
IMAGE_NT_SIGNATURE = b"PE\x00\x00"
IMAGE_NT_OPTIONAL_HDR32_MAGIC = 0x10B
IMAGE_NT_OPTIONAL_HDR64_MAGIC = 0x20B
IMAGE_DIRECTORY_ENTRY_RESOURCE = 2

# 进程退出码
EXIT_OK = 0
EXIT_CORRUPTION_FOUND = 1
EXIT_ABORTED = 2
